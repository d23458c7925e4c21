"""
CotEvent: Cursor-on-Target event model (event / point / detail tree).

Parses and serializes CoT XML with xml.etree.ElementTree. Attribute order and
inner text are preserved so serialize(parse(x)) is stable for hashing.

    <event version="2.0" uid="..." type="a-f-G-U-C" how="m-g" time="..." start="..." stale="...">
        <point lat="..." lon="..." hae="..." ce="..." le="..."/>
        <detail> ...arbitrary child nodes... </detail>
    </event>

Property of Uncompromising Sensors LLC.
"""

# Imports
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional


COT_TIME_FORMAT = '%Y-%m-%dT%H:%M:%S'


class CotParseError(Exception):
    """CoT XML could not be parsed into an event"""
    pass


def formatCotTime(when: Optional[datetime] = None) -> str:
    """UTC timestamp in CoT form: 2024-01-01T00:00:00.000Z"""
    when = when or datetime.now(timezone.utc)
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    return f"{when.strftime(COT_TIME_FORMAT)}.{when.microsecond // 1000:03d}Z"


def parseCotTime(value: str) -> datetime:
    """Parse a CoT timestamp (with or without fractional seconds / 'Z') into an aware datetime"""
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def addMinutes(value: str, minutes: float) -> str:
    return formatCotTime(parseCotTime(value) + timedelta(minutes=minutes))


def _meaningful(text: Optional[str]) -> Optional[str]:
    return text if text is not None and text.strip() else None


class CotDetail:
    """
    One node of the detail tree: element name, ordered attributes, children, optional inner text.

    tailText is mixed-content text following the node inside its parent; whitespace-only
    text and tails are dropped, matching minify().
    """

    def __init__(self, name: str, attributes: Optional[Dict[str, str]] = None,
                 children: Optional[List['CotDetail']] = None, innerText: Optional[str] = None,
                 tailText: Optional[str] = None):
        self.name = name
        self.attributes: Dict[str, str] = dict(attributes or {})
        self.children: List['CotDetail'] = list(children or [])
        self.innerText = innerText
        self.tailText = tailText

    def getAttribute(self, key: str) -> Optional[str]:
        return self.attributes.get(key)

    def setAttribute(self, key: str, value) -> None:
        self.attributes[key] = '' if value is None else str(value)

    def addChild(self, child: 'CotDetail') -> 'CotDetail':
        self.children.append(child)
        return child

    def removeChild(self, child: 'CotDetail') -> bool:
        try:
            self.children.remove(child)
            return True
        except ValueError:
            return False

    def getFirstChildByName(self, name: str) -> Optional['CotDetail']:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def getChildrenByName(self, name: str) -> List['CotDetail']:
        return [child for child in self.children if child.name == name]

    def toElement(self) -> ET.Element:
        element = ET.Element(self.name, self.attributes)
        if self.innerText is not None:
            element.text = self.innerText
        for child in self.children:
            element.append(child.toElement())
        if self.tailText is not None:
            element.tail = self.tailText
        return element

    @staticmethod
    def fromElement(element: ET.Element) -> 'CotDetail':
        return CotDetail(
            name=element.tag,
            attributes=dict(element.attrib),
            children=[CotDetail.fromElement(child) for child in element],
            innerText=_meaningful(element.text),
            tailText=_meaningful(element.tail)
        )

    def __repr__(self):
        return f"CotDetail({self.name!r}, attrs={len(self.attributes)}, children={len(self.children)})"


@dataclass
class CotPoint:
    """WGS84 position; 9999999.0 marks unknown hae/ce/le"""
    lat: float = 0.0
    lon: float = 0.0
    hae: float = 9999999.0
    ce: float = 9999999.0
    le: float = 9999999.0

    def toAttributes(self) -> Dict[str, str]:
        return {'lat': _fmt(self.lat), 'lon': _fmt(self.lon), 'hae': _fmt(self.hae),
                'ce': _fmt(self.ce), 'le': _fmt(self.le)}

    @staticmethod
    def fromAttributes(attrs: Dict[str, str]) -> 'CotPoint':
        return CotPoint(
            lat=float(attrs.get('lat', 0.0)),
            lon=float(attrs.get('lon', 0.0)),
            hae=float(attrs.get('hae', 9999999.0)),
            ce=float(attrs.get('ce', 9999999.0)),
            le=float(attrs.get('le', 9999999.0))
        )


def _fmt(value: float) -> str:
    return repr(float(value))


class CotEvent:
    """
    A CoT event as seen on the host bus.

    Timestamps are kept as the strings received so a parsed event serializes back
    to the same text. Unknown <event> attributes are carried in extraAttributes.
    """

    def __init__(self, uid: Optional[str] = None, type: Optional[str] = None, how: str = 'm-g',
                 time: Optional[str] = None, start: Optional[str] = None, stale: Optional[str] = None,
                 point: Optional[CotPoint] = None, detail: Optional[CotDetail] = None,
                 version: str = '2.0', extraAttributes: Optional[Dict[str, str]] = None):
        self.uid = uid
        self.type = type
        self.how = how
        self.time = time
        self.start = start
        self.stale = stale
        self.point = point or CotPoint()
        self.detail = detail
        self.version = version
        self.extraAttributes: Dict[str, str] = dict(extraAttributes or {})

    # ===== Validation =====
    def isValid(self) -> bool:
        return bool(self.uid) and bool(self.type) and bool(self.time)

    # ===== Detail helpers =====
    def ensureDetail(self) -> CotDetail:
        if self.detail is None:
            self.detail = CotDetail('detail')
        return self.detail

    def findDetail(self, name: str) -> Optional[CotDetail]:
        return self.detail.getFirstChildByName(name) if self.detail is not None else None

    # ===== Serialization =====
    def toElement(self) -> ET.Element:
        attrs = {'version': self.version, 'uid': self.uid or '', 'type': self.type or ''}
        if self.how is not None:
            attrs['how'] = self.how
        for key in ('time', 'start', 'stale'):
            value = getattr(self, key)
            if value is not None:
                attrs[key] = value
        attrs.update(self.extraAttributes)

        root = ET.Element('event', attrs)
        ET.SubElement(root, 'point', self.point.toAttributes())
        if self.detail is not None:
            root.append(self.detail.toElement())
        return root

    def toXml(self) -> str:
        return ET.tostring(self.toElement(), encoding='unicode', short_empty_elements=True)

    def __str__(self):
        return self.toXml()

    @staticmethod
    def parse(xml: str) -> 'CotEvent':
        """
        Parse CoT XML into an event.

        Raises:
            CotParseError: Empty input, DOCTYPE declarations, malformed XML, or a root other than <event>
        """
        if not xml or not xml.strip():
            raise CotParseError('Empty CoT document')

        # Entity expansion is never needed for CoT; refuse DTDs outright
        if '<!DOCTYPE' in xml or '<!ENTITY' in xml:
            raise CotParseError('DOCTYPE/ENTITY declarations are not allowed')

        try:
            root = ET.fromstring(xml.strip())
        except ET.ParseError as e:
            raise CotParseError(f'Malformed CoT XML: {e}') from e

        if root.tag != 'event':
            raise CotParseError(f"Root element must be <event>, got <{root.tag}>")

        attrs = dict(root.attrib)
        known = ('version', 'uid', 'type', 'how', 'time', 'start', 'stale')
        event = CotEvent(
            uid=attrs.get('uid'),
            type=attrs.get('type'),
            how=attrs.get('how'),
            time=attrs.get('time'),
            start=attrs.get('start'),
            stale=attrs.get('stale'),
            version=attrs.get('version', '2.0'),
            extraAttributes={k: v for k, v in attrs.items() if k not in known}
        )

        pointElement = root.find('point')
        if pointElement is not None:
            try:
                event.point = CotPoint.fromAttributes(pointElement.attrib)
            except ValueError as e:
                raise CotParseError(f'Invalid point: {e}') from e

        detailElement = root.find('detail')
        if detailElement is not None:
            event.detail = CotDetail.fromElement(detailElement)

        return event

    def __repr__(self):
        return f"CotEvent(uid={self.uid!r}, type={self.type!r}, time={self.time!r})"
