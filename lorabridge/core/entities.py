"""
Bridge entities: the internal records persisted and framed for the radio.

- MessageEntity: one relayed message (generic CoT, or the framed form of a chat)
- ChatMessage: a chat line with sender/receiver metadata
- WireFrame: parsed header of a radio frame (payload still transport-encoded)
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .contract import CHAT_TYPE, ChannelTag


@dataclass
class MessageEntity:
    """
    A relayed message.

    id is the dedup key. origin is only used for loop suppression.
    rawText holds canonical CoT XML; compressedBytes the compacted form once encoded/decoded.
    """
    id: str
    uid: str
    type: str
    timeIso: str
    origin: Optional[str] = None
    rawText: Optional[str] = None
    compressedBytes: Optional[bytes] = None

    def toDict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['compressedBytes'] = self.compressedBytes.hex() if self.compressedBytes else None
        return result


@dataclass
class ChatMessage:
    """A chat message between this device and a counterpart"""
    id: str
    senderUid: Optional[str]
    senderCallsign: Optional[str]
    receiverUid: Optional[str]
    receiverCallsign: Optional[str]
    message: Optional[str]
    timestamp: str
    messageType: str = "text"
    origin: Optional[str] = None
    direction: str = "incoming"
    cotRawXml: Optional[str] = None

    @property
    def counterpartUid(self) -> Optional[str]:
        return self.receiverUid if self.direction == "outgoing" else self.senderUid

    def toEntity(self) -> MessageEntity:
        """Framed form of this chat: uid is the sender, text is the chat CoT XML"""
        return MessageEntity(
            id=self.id,
            uid=self.senderUid or "",
            type=CHAT_TYPE,
            timeIso=self.timestamp,
            origin=self.origin,
            rawText=self.cotRawXml
        )

    def toDict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WireFrame:
    """Parsed radio frame; payload is still base64 text"""
    channelTag: Optional[ChannelTag]
    id: str
    uid: str
    type: str
    timeIso: str
    origin: str
    payload: str

    @property
    def fields(self) -> tuple:
        return (self.id, self.uid, self.type, self.timeIso, self.origin, self.payload)
