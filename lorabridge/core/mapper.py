"""
Entity mapper: host CoT events <-> bridge entities, plus loop markers.

Generic events are keyed by a content hash:
    sha1("{uid}|{type}|{timeIso}|{len(canonicalText)}")
Chat events keep the identifier the message already declares, so the same chat
carries the same id on every node it crosses:
    __lora@originalId > __chat@messageId > event uid

Loop marker:
    <__lora origin="Host|PHY|Plugin" originalId="<entity id>" [node="<device uid>"]/>
"""

# Imports
import hashlib
import re
import uuid
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from cotkit.events import CotDetail, CotEvent, CotParseError, CotPoint, addMinutes, formatCotTime
from cotkit.logging import getLogger

from .contract import CHAT_TYPE, LOOP_MARKER_NAME, CodecFailure, Origin, isChatType
from .entities import ChatMessage, MessageEntity
from .hostBus import Directory, HostIdentity

log = getLogger()

_INTER_TAG_WHITESPACE = re.compile(r'>\s+<')

CHAT_STALE_MINUTES = 5
CHAT_POINT_ERROR = 10.0


@dataclass
class LoopMarker:
    origin: Optional[str]
    originalId: Optional[str]
    node: Optional[str] = None


def originLabel(origin: Union[Origin, str, None]) -> Optional[str]:
    if isinstance(origin, Enum):
        return origin.value
    return origin


def minify(xml: str) -> str:
    """Drop whitespace between tags"""
    return _INTER_TAG_WHITESPACE.sub('><', xml).strip()


def computeGenericId(uid: str, cotType: str, timeIso: str, text: str) -> str:
    return hashlib.sha1(f"{uid}|{cotType}|{timeIso}|{len(text)}".encode('utf-8')).hexdigest()


def canonicalText(event: CotEvent) -> str:
    return minify(event.toXml())


# ============================================================================
# Loop markers
# ============================================================================

def getLoopMarker(event: CotEvent) -> Optional[LoopMarker]:
    node = event.findDetail(LOOP_MARKER_NAME)
    if node is None:
        return None
    return LoopMarker(
        origin=node.getAttribute('origin'),
        originalId=node.getAttribute('originalId'),
        node=node.getAttribute('node')
    )


def hasLoopMarker(event: CotEvent) -> bool:
    return event.findDetail(LOOP_MARKER_NAME) is not None


def attachLoopMarker(event: CotEvent, origin: Union[Origin, str], originalId: str,
                     node: Optional[str] = None) -> CotEvent:
    """Tag the event with exactly one loop marker, replacing any existing one"""
    detail = event.ensureDetail()
    for existing in detail.getChildrenByName(LOOP_MARKER_NAME):
        detail.removeChild(existing)

    marker = CotDetail(LOOP_MARKER_NAME)
    marker.setAttribute('originalId', originalId)
    marker.setAttribute('origin', originLabel(origin))
    if node:
        marker.setAttribute('node', node)
    detail.addChild(marker)
    return event


# ============================================================================
# Host -> entity
# ============================================================================

def chatMessageId(event: CotEvent) -> Optional[str]:
    marker = event.findDetail(LOOP_MARKER_NAME)
    if marker is not None and marker.getAttribute('originalId'):
        return marker.getAttribute('originalId')
    chat = event.findDetail('__chat')
    if chat is not None and chat.getAttribute('messageId'):
        return chat.getAttribute('messageId')
    return event.uid


def fromHostEvent(event: CotEvent, origin: Union[Origin, str, None] = Origin.HOST) -> MessageEntity:
    """
    Map a host event to an entity.

    Raises:
        CodecFailure: event lacks uid or type
    """
    if event is None or not event.uid or not event.type:
        raise CodecFailure('Event lacks uid or type')

    timeIso = event.time or formatCotTime()
    text = canonicalText(event)
    if isChatType(event.type):
        messageId = chatMessageId(event)
    else:
        messageId = computeGenericId(event.uid, event.type, timeIso, text)

    return MessageEntity(
        id=messageId,
        uid=event.uid,
        type=event.type,
        timeIso=timeIso,
        origin=originLabel(origin),
        rawText=text
    )


def chatFromHostEvent(event: CotEvent, identity: HostIdentity, directory: Optional[Directory],
                      origin: Union[Origin, str, None] = Origin.HOST) -> ChatMessage:
    """
    Map a chat-class host event to a ChatMessage.

    Raises:
        CodecFailure: event is not a usable chat event
    """
    if event is None or not event.uid or not isChatType(event.type):
        raise CodecFailure('Not a chat event')

    chat = event.findDetail('__chat')
    link = event.findDetail('link')
    chatGroup = chat.getFirstChildByName('chatgrp') if chat is not None else None
    remarks = event.findDetail('remarks')

    senderUid = link.getAttribute('uid') if link is not None else None
    if not senderUid and chat is not None:
        senderUid = chat.getAttribute('sender')

    senderCallsign = chat.getAttribute('senderCallsign') if chat is not None else None
    if not senderCallsign and senderUid:
        senderCallsign = _lookupName(directory, senderUid)
    senderCallsign = senderCallsign or senderUid

    message = chat.getAttribute('message') if chat is not None else None
    if message is None and remarks is not None:
        message = remarks.innerText

    receiverUid = chat.getAttribute('id') if chat is not None else None
    if not receiverUid and chatGroup is not None:
        receiverUid = chatGroup.getAttribute('uid1')
    if not receiverUid and remarks is not None:
        receiverUid = remarks.getAttribute('to')

    receiverCallsign = _lookupName(directory, receiverUid) if receiverUid else None
    receiverCallsign = receiverCallsign or receiverUid

    messageType = (chat.getAttribute('messageType') if chat is not None else None) or 'text'

    return ChatMessage(
        id=chatMessageId(event),
        senderUid=senderUid,
        senderCallsign=senderCallsign,
        receiverUid=receiverUid,
        receiverCallsign=receiverCallsign,
        message=message,
        timestamp=event.time or formatCotTime(),
        messageType=messageType,
        origin=originLabel(origin),
        direction='outgoing' if senderUid and senderUid == identity.deviceUid else 'incoming',
        cotRawXml=canonicalText(event)
    )


def chatFromUserInput(identity: HostIdentity, receiverUid: str, message: str,
                      receiverCallsign: Optional[str] = None, messageType: str = 'text',
                      directory: Optional[Directory] = None) -> ChatMessage:
    """Outgoing chat typed on this device; the receiver callsign falls back to the directory, then the uid"""
    receiverCallsign = receiverCallsign or _lookupName(directory, receiverUid)
    return ChatMessage(
        id=str(uuid.uuid4()),
        senderUid=identity.deviceUid,
        senderCallsign=identity.callsign,
        receiverUid=receiverUid,
        receiverCallsign=receiverCallsign or receiverUid,
        message=message,
        timestamp=formatCotTime(),
        messageType=messageType,
        origin=Origin.LOCAL.value,
        direction='outgoing'
    )


def _lookupName(directory: Optional[Directory], uid: str) -> Optional[str]:
    if directory is None:
        return None
    try:
        return directory.lookupName(uid)
    except Exception as e:
        log.warning("Directory lookup failed", uid=uid, error=str(e))
        return None


# ============================================================================
# Entity -> host
# ============================================================================

def toHostEvent(entity: MessageEntity, origin: Union[Origin, str] = Origin.RADIO) -> Optional[CotEvent]:
    """Rebuild the host event and tag it with a loop marker; None if the text does not parse"""
    if entity is None or not entity.rawText:
        log.warning("Entity has no text to rebuild", entityId=getattr(entity, 'id', None))
        return None
    try:
        event = CotEvent.parse(entity.rawText)
    except CotParseError as e:
        log.warning("Entity text is not a CoT event", entityId=entity.id, error=str(e))
        return None
    return attachLoopMarker(event, origin, entity.id)


def chatToHostEvent(chat: ChatMessage, identity: HostIdentity) -> CotEvent:
    """GeoChat-compatible event for a locally generated chat"""
    senderUid = chat.senderUid or identity.deviceUid
    senderCallsign = chat.senderCallsign or identity.callsign
    receiverUid = chat.receiverUid or ''
    receiverCallsign = chat.receiverCallsign or receiverUid

    try:
        stale = addMinutes(chat.timestamp, CHAT_STALE_MINUTES)
    except ValueError:
        log.warning("Chat timestamp unreadable, stale from now", chatId=chat.id, timestamp=chat.timestamp)
        stale = formatCotTime(datetime.now(timezone.utc) + timedelta(minutes=CHAT_STALE_MINUTES))

    detail = CotDetail('detail')

    chatNode = detail.addChild(CotDetail('__chat'))
    chatNode.setAttribute('parent', 'RootContactGroup')
    chatNode.setAttribute('groupOwner', 'false')
    chatNode.setAttribute('messageId', chat.id)
    chatNode.setAttribute('chatroom', receiverCallsign)
    chatNode.setAttribute('id', receiverUid)
    chatNode.setAttribute('senderCallsign', senderCallsign)
    chatNode.setAttribute('sender', senderUid)
    chatNode.setAttribute('messageType', chat.messageType or 'text')

    chatGroup = chatNode.addChild(CotDetail('chatgrp'))
    chatGroup.setAttribute('uid0', senderUid)
    chatGroup.setAttribute('uid1', receiverUid)
    chatGroup.setAttribute('id', receiverUid)

    marker = detail.addChild(CotDetail(LOOP_MARKER_NAME))
    marker.setAttribute('originalId', chat.id)
    marker.setAttribute('origin', Origin.LOCAL.value)
    marker.setAttribute('node', identity.deviceUid)

    link = detail.addChild(CotDetail('link'))
    link.setAttribute('uid', senderUid)
    link.setAttribute('type', 'a-f-G-U-C')
    link.setAttribute('relation', 'p-p')

    remarks = detail.addChild(CotDetail('remarks', innerText=chat.message or ''))
    remarks.setAttribute('source', f'BAO.F.ATAK.{senderUid}')
    remarks.setAttribute('to', receiverUid)
    remarks.setAttribute('time', chat.timestamp)

    return CotEvent(
        uid=f'PluginMsg.{senderUid}.{receiverUid}.{chat.id}',
        type=CHAT_TYPE,
        how='h-g-i-g-o',
        time=chat.timestamp,
        start=chat.timestamp,
        stale=stale,
        point=CotPoint(lat=identity.lat, lon=identity.lon, hae=identity.hae,
                       ce=CHAT_POINT_ERROR, le=CHAT_POINT_ERROR),
        detail=detail
    )
