"""
CoT event model tests

Test Coverage:
1. Parse position and chat events (point, detail tree, inner text)
2. Serialize -> parse keeps every field, including mixed-content tail text
3. Rejected documents (empty, DOCTYPE, wrong root, bad point)
4. CoT time helpers
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from cotkit.events import CotDetail, CotEvent, CotParseError, CotPoint, addMinutes, formatCotTime, parseCotTime
from samples import CHAT_XML, POSITION_XML, PRETTY_XML


class TestParse:
    """Parse CoT XML into events"""

    def test_position_fields(self):
        event = CotEvent.parse(POSITION_XML)
        assert event.uid == 'ANDROID-abc123'
        assert event.type == 'a-h-G'
        assert event.how == 'm-g'
        assert event.time == '2024-01-01T00:00:00.000Z'
        assert event.stale == '2024-01-01T00:05:00.000Z'
        assert event.point.lat == pytest.approx(52.52)
        assert event.point.hae == pytest.approx(35.0)
        assert event.isValid()

    def test_detail_tree(self):
        event = CotEvent.parse(CHAT_XML)
        chat = event.findDetail('__chat')
        assert chat.getAttribute('messageId') == 'msg-42'
        assert chat.getFirstChildByName('chatgrp').getAttribute('uid1') == 'ANDROID-me'
        assert event.findDetail('remarks').innerText == 'hello over lora'
        assert event.findDetail('missing') is None

    def test_whitespace_only_text_is_dropped(self):
        event = CotEvent.parse(PRETTY_XML)
        assert event.detail.innerText is None
        assert event.findDetail('usericon') is not None

    def test_missing_detail(self):
        event = CotEvent.parse('<event version="2.0" uid="u" type="a-f-G" time="t"><point lat="1" lon="2"/></event>')
        assert event.detail is None
        assert event.findDetail('contact') is None
        assert event.point.ce == 9999999.0


class TestSerialize:
    """toXml output parses back to the same event"""

    def test_round_trip(self):
        event = CotEvent.parse(CHAT_XML)
        again = CotEvent.parse(event.toXml())
        assert again.uid == event.uid
        assert again.type == event.type
        assert again.time == event.time
        assert again.findDetail('__chat').attributes == event.findDetail('__chat').attributes
        assert again.findDetail('remarks').innerText == 'hello over lora'

    def test_mixed_content_tail_kept(self):
        xml = ('<event version="2.0" uid="u" type="a-f-G" time="t"><point lat="1" lon="2"/>'
               '<detail><remarks>before<b/>after bold</remarks></detail></event>')
        remarks = CotEvent.parse(xml).findDetail('remarks')
        assert remarks.innerText == 'before'
        assert remarks.children[0].tailText == 'after bold'

        again = CotEvent.parse(CotEvent.parse(xml).toXml()).findDetail('remarks')
        assert again.children[0].tailText == 'after bold'

    def test_serialize_is_stable(self):
        event = CotEvent.parse(POSITION_XML)
        assert CotEvent.parse(event.toXml()).toXml() == event.toXml()

    def test_ensure_detail(self):
        event = CotEvent(uid='u', type='a-f-G', time=formatCotTime())
        detail = event.ensureDetail()
        detail.addChild(CotDetail('contact', {'callsign': 'X'}))
        assert event.ensureDetail() is detail
        assert '<contact callsign="X" />' in event.toXml() or '<contact callsign="X"/>' in event.toXml()

    def test_point_attributes(self):
        attrs = CotPoint(lat=1.5, lon=-2.25).toAttributes()
        assert attrs['lat'] == '1.5'
        assert attrs['lon'] == '-2.25'
        assert attrs['hae'] == '9999999.0'


class TestRejected:
    """Invalid documents raise CotParseError"""

    @pytest.mark.parametrize('xml', ['', '   ', '<event', '<message uid="x"/>'])
    def test_bad_documents(self, xml):
        with pytest.raises(CotParseError):
            CotEvent.parse(xml)

    def test_doctype_refused(self):
        xml = '<!DOCTYPE event [<!ENTITY x "y">]><event uid="&x;" type="a" time="t"/>'
        with pytest.raises(CotParseError):
            CotEvent.parse(xml)

    def test_bad_point(self):
        with pytest.raises(CotParseError):
            CotEvent.parse('<event uid="u" type="a" time="t"><point lat="north" lon="0"/></event>')

    def test_invalid_event(self):
        assert not CotEvent(uid='u', type=None, time='t').isValid()


class TestTime:
    """CoT timestamp helpers"""

    def test_format(self):
        from datetime import datetime, timezone
        when = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        assert formatCotTime(when) == '2024-01-02T03:04:05.678Z'

    def test_parse_round_trip(self):
        assert formatCotTime(parseCotTime('2024-01-02T03:04:05.678Z')) == '2024-01-02T03:04:05.678Z'

    def test_add_minutes(self):
        assert addMinutes('2024-01-01T23:58:00.000Z', 5) == '2024-01-02T00:03:00.000Z'
