"""
Synchronization engine: relays host events to the radio and radio frames to the host.

Host -> Radio (onHostEvent):
    validate -> classify -> loop-marker check -> map -> dedup -> persist
             -> tag original event {origin: Host} -> encode -> channel send

Radio -> Host (onRadioPayload):
    decode -> type filter -> classify -> dedup -> rebuild event
           -> tag {origin: PHY} -> persist -> publish on host bus

Each service keeps one tracker per direction; the two directions share only
the store. Every failure is logged and ends that message's relay.

Property of Uncompromising Sensors LLC.
"""

# Imports
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from cotkit.events import CotEvent
from cotkit.logging import getLogger

from . import mapper
from .codec import FrameCodec
from .contract import (
    CHAT_TYPE,
    DEFAULT_RADIO_TYPE_FILTER,
    DEFAULT_TRACKER_HIGH_WATER_MARK,
    ChannelTag,
    CodecFailure,
    Origin,
    isChatType
)
from .database import Database, DatabaseError
from .entities import ChatMessage, MessageEntity
from .hostBus import Directory, HostBus, HostIdentity, Subscription
from .tracker import DedupTracker


COUNTER_NAMES = ('relayedToRadio', 'relayedToHost', 'duplicates', 'loopsSuppressed', 'filtered', 'failures')


class SyncServiceBase(ABC):
    """
    Shared relay pipeline; subclasses decide which events they own and how
    entities are mapped, stored and sent.

    Args:
        identity: This device
        bus: Host event bus
        channel: Radio channel (TransportChannel or anything with the same send/register methods)
        codec: Frame codec
        database: Store (optional; without it only the trackers deduplicate)
        directory: Callsign directory (optional)
        highWaterMark: Tracker size that triggers a reset
        radioTypeFilter: CoT types never relayed from radio to host
    """

    channelTag: ChannelTag = None
    hostEventType: Optional[str] = None

    def __init__(self, identity: HostIdentity, bus: HostBus, channel, codec: FrameCodec,
                 database: Optional[Database] = None, directory: Optional[Directory] = None,
                 highWaterMark: int = DEFAULT_TRACKER_HIGH_WATER_MARK,
                 radioTypeFilter: Optional[Iterable[str]] = None):
        self.identity = identity
        self.bus = bus
        self.channel = channel
        self.codec = codec
        self.database = database
        self.directory = directory
        self.radioTypeFilter = frozenset(DEFAULT_RADIO_TYPE_FILTER if radioTypeFilter is None else radioTypeFilter)
        self.log = getLogger()

        name = type(self).__name__
        self.hostTracker = DedupTracker(f'{name}.host', highWaterMark)
        self.radioTracker = DedupTracker(f'{name}.radio', highWaterMark)

        self._subscription: Optional[Subscription] = None
        self._lifecycleLock = threading.Lock()
        self._counters: Dict[str, int] = {key: 0 for key in COUNTER_NAMES}
        self._countersLock = threading.Lock()

    # ===== Lifecycle =====
    @property
    def running(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        with self._lifecycleLock:
            if self._subscription is not None:
                return
            self._registerRadioHandler(self.onRadioPayload)
            self._subscription = self.bus.subscribe(self.onHostEvent, eventType=self.hostEventType)
        self.log.info("Sync service started", channelTag=self.channelTag.value)

    def stop(self) -> None:
        with self._lifecycleLock:
            if self._subscription is None:
                return
            self._subscription.cancel()
            self._subscription = None
            self._registerRadioHandler(None)
        self.log.info("Sync service stopped", channelTag=self.channelTag.value)

    # ===== Host -> Radio =====
    def onHostEvent(self, event: Optional[CotEvent]) -> bool:
        """Returns True when the event was handed to the channel"""
        if event is None or not event.isValid():
            self.log.debug("Ignoring invalid host event")
            return False
        if not self._ownsType(event.type):
            return False

        marker = mapper.getLoopMarker(event)
        if marker is not None:
            if marker.origin == Origin.LOCAL.value and marker.node == self.identity.deviceUid:
                self.log.debug("Echo of locally generated message suppressed", uid=event.uid)
            else:
                self.log.debug("Event already synchronized", uid=event.uid, origin=marker.origin)
            self._count('loopsSuppressed')
            return False

        try:
            entity, record = self._mapHostEvent(event)
        except CodecFailure as e:
            self.log.warning("Host event could not be mapped", uid=event.uid, error=str(e))
            self._count('failures')
            return False

        if not self.hostTracker.markIfUnseen(entity.id):
            self._count('duplicates')
            return False

        if not self._persist(record):
            self._count('duplicates')
            return False

        mapper.attachLoopMarker(event, Origin.HOST, entity.id)
        return self._sendEntity(entity)

    def _sendEntity(self, entity: MessageEntity) -> bool:
        try:
            frame = self.codec.encode(entity)
        except CodecFailure as e:
            self.log.error("Encode failed", entityId=entity.id, error=str(e))
            self._count('failures')
            return False

        if not self._sendFrame(frame):
            self.log.warning("Channel did not accept frame", entityId=entity.id, size=len(frame))
            self._count('failures')
            return False

        self._count('relayedToRadio')
        self.log.debug("Relayed to radio", entityId=entity.id, cotType=entity.type, size=len(frame))
        return True

    # ===== Radio -> Host =====
    def onRadioPayload(self, data: bytes) -> bool:
        """Returns True when a host event was published"""
        result = self.codec.decode(data)
        if not result.ok:
            self._count('failures')
            return False
        entity = result.entity

        if entity.type in self.radioTypeFilter:
            self.log.debug("Radio frame filtered by type", cotType=entity.type, entityId=entity.id)
            self._count('filtered')
            return False
        if not self._ownsType(entity.type):
            self.log.debug("Radio frame of another class dropped", cotType=entity.type, entityId=entity.id)
            self._count('filtered')
            return False

        if not self.radioTracker.markIfUnseen(entity.id):
            self._count('duplicates')
            return False

        event = mapper.toHostEvent(entity, Origin.RADIO)
        if event is None:
            self._count('failures')
            return False

        entity.origin = Origin.RADIO.value
        try:
            record = self._radioRecord(entity, event)
        except CodecFailure as e:
            self.log.warning("Radio frame could not be mapped", entityId=entity.id, error=str(e))
            self._count('failures')
            return False

        if not self._persist(record):
            self._count('duplicates')
            return False

        try:
            self.bus.publish(event)
        except Exception as e:
            self.log.error("Host publish failed", entityId=entity.id, error=str(e), exc_info=True)
            self._count('failures')
            return False

        self._count('relayedToHost')
        self.log.debug("Relayed to host", entityId=entity.id, cotType=entity.type)
        return True

    # ===== Persistence =====
    def _persist(self, record) -> bool:
        """False only when the store already holds this id; store errors do not stop the relay"""
        if self.database is None:
            return True
        try:
            return self._insert(record)
        except DatabaseError as e:
            self.log.error("Persist failed, relaying anyway", recordId=record.id, error=str(e))
            return True

    # ===== Status =====
    def _count(self, key: str) -> None:
        with self._countersLock:
            self._counters[key] += 1

    def status(self) -> Dict[str, Any]:
        with self._countersLock:
            counters = dict(self._counters)
        counters.update({
            'running': self.running,
            'hostTracker': self.hostTracker.status(),
            'radioTracker': self.radioTracker.status()
        })
        return counters

    # ===== Subclass hooks =====
    @abstractmethod
    def _ownsType(self, cotType: str) -> bool:
        pass

    @abstractmethod
    def _mapHostEvent(self, event: CotEvent):
        """Returns (entity to encode, record to persist)"""
        pass

    @abstractmethod
    def _radioRecord(self, entity: MessageEntity, event: CotEvent):
        pass

    @abstractmethod
    def _insert(self, record) -> bool:
        pass

    @abstractmethod
    def _sendFrame(self, frame: bytes) -> bool:
        pass

    @abstractmethod
    def _registerRadioHandler(self, handler) -> None:
        pass


class CotSyncService(SyncServiceBase):
    """Generic (non-chat) CoT relay"""

    channelTag = ChannelTag.GENERIC_COT

    def _ownsType(self, cotType: str) -> bool:
        return not isChatType(cotType)

    def _mapHostEvent(self, event: CotEvent):
        entity = mapper.fromHostEvent(event, Origin.HOST)
        return entity, entity

    def _radioRecord(self, entity: MessageEntity, event: CotEvent):
        return entity

    def _insert(self, record: MessageEntity) -> bool:
        return self.database.insertGeneric(record)

    def _sendFrame(self, frame: bytes) -> bool:
        return bool(self.channel.sendCot(frame))

    def _registerRadioHandler(self, handler) -> None:
        self.channel.registerCotHandler(handler)


class ChatSyncService(SyncServiceBase):
    """GeoChat relay plus locally composed messages"""

    channelTag = ChannelTag.CHAT
    hostEventType = CHAT_TYPE

    def _ownsType(self, cotType: str) -> bool:
        return isChatType(cotType)

    def _mapHostEvent(self, event: CotEvent):
        chat = mapper.chatFromHostEvent(event, self.identity, self.directory, Origin.HOST)
        return chat.toEntity(), chat

    def _radioRecord(self, entity: MessageEntity, event: CotEvent):
        chat = mapper.chatFromHostEvent(event, self.identity, self.directory, Origin.RADIO)
        chat.id = entity.id
        chat.cotRawXml = entity.rawText
        return chat

    def _insert(self, record: ChatMessage) -> bool:
        return self.database.insertChat(record)

    def _sendFrame(self, frame: bytes) -> bool:
        return bool(self.channel.sendChat(frame))

    def _registerRadioHandler(self, handler) -> None:
        self.channel.registerChatHandler(handler)

    def sendMessage(self, receiverUid: str, text: str, receiverCallsign: Optional[str] = None,
                    messageType: str = "text") -> Optional[ChatMessage]:
        """
        Compose a chat from user input, show it locally and send it over the radio.

        Returns:
            The ChatMessage, or None if it could not be built or encoded
        """
        if not receiverUid:
            self.log.warning("Chat without receiver dropped")
            return None

        chat = mapper.chatFromUserInput(self.identity, receiverUid, text, receiverCallsign, messageType,
                                        directory=self.directory)
        event = mapper.chatToHostEvent(chat, self.identity)
        chat.cotRawXml = mapper.canonicalText(event)

        self.hostTracker.mark(chat.id)
        self._persist(chat)

        try:
            self.bus.publish(event)
        except Exception as e:
            self.log.error("Local chat publish failed", chatId=chat.id, error=str(e))

        if not self._sendEntity(chat.toEntity()):
            return None
        return chat
