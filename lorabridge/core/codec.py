"""
FrameCodec: MessageEntity <-> radio wire frame.

    encode:     rawText -> compact -> base64 -> "id|uid|type|timeIso|origin|<b64>"
    parseFrame: strip routing prefix, split on '|' (empty fields kept)
    decode:     parseFrame -> base64 -> expand -> MessageEntity

decode never raises; failures come back as a DecodeResult carrying a MalformedFrame.

Property of Uncompromising Sensors LLC.
"""

# Imports
import base64
import binascii
from dataclasses import dataclass
from typing import Optional

from cotkit.logging import getLogger

from .compaction import Compactor, createCompactor
from .contract import (
    CHANNEL_HEADERS,
    FRAME_DELIMITER,
    FRAME_FIELD_COUNT,
    TRANSPORT_ALPHABET,
    CodecFailure,
    MalformedFrame,
    Outcome
)
from .entities import MessageEntity, WireFrame


_TRANSPORT_CHARS = frozenset(TRANSPORT_ALPHABET)
_FORBIDDEN_HEADER_CHARS = (FRAME_DELIMITER, '\n', '\r')


@dataclass
class DecodeResult(Outcome):
    """Outcome of decode(): entity on success, MalformedFrame on failure"""

    @property
    def entity(self) -> Optional[MessageEntity]:
        return self.value


class FrameCodec:
    """
    Encodes entities to frames and back.

    Args:
        compactor: Compactor instance or registered name ('deflate', 'none')
    """

    def __init__(self, compactor=None):
        if compactor is None or isinstance(compactor, str):
            compactor = createCompactor(compactor)
        if not isinstance(compactor, Compactor):
            raise TypeError(f"compactor must be a Compactor or name, got {type(compactor).__name__}")
        self.compactor = compactor
        self.log = getLogger()

    # ===== Encode =====
    def encode(self, entity: MessageEntity) -> bytes:
        """
        Raises:
            CodecFailure: missing text, or a header field containing '|' or a newline
        """
        if entity is None or entity.rawText is None:
            raise CodecFailure('Entity has no text to encode')

        header = [entity.id, entity.uid, entity.type, entity.timeIso, entity.origin]
        header = ['' if value is None else str(value) for value in header]
        for value in header:
            if any(ch in value for ch in _FORBIDDEN_HEADER_CHARS):
                raise CodecFailure(f"Header field contains a reserved character: {value!r}")

        compressed = self.compactor.compress(entity.rawText)
        entity.compressedBytes = compressed
        payload = base64.b64encode(compressed).decode('ascii')

        return FRAME_DELIMITER.join(header + [payload]).encode('utf-8')

    # ===== Parse =====
    def parseFrame(self, data: bytes) -> WireFrame:
        """
        Split a frame into header fields and payload.

        Raises:
            MalformedFrame: non UTF-8 input or fewer than six fields
        """
        if data is None:
            raise MalformedFrame('No frame data')
        try:
            text = bytes(data).decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedFrame(f'Frame is not UTF-8: {e}') from e

        channelTag = None
        # 'LORA_COTX|' is matched before 'LORA|'
        for tag, header in sorted(CHANNEL_HEADERS.items(), key=lambda item: -len(item[1])):
            if text.startswith(header):
                channelTag = tag
                text = text[len(header):]
                break

        parts = text.split(FRAME_DELIMITER)
        if len(parts) < FRAME_FIELD_COUNT:
            raise MalformedFrame(f'Frame has {len(parts)} fields, expected {FRAME_FIELD_COUNT}')

        # Extra delimiters can only belong to the payload segment
        payload = FRAME_DELIMITER.join(parts[FRAME_FIELD_COUNT - 1:])
        return WireFrame(
            channelTag=channelTag,
            id=parts[0],
            uid=parts[1],
            type=parts[2],
            timeIso=parts[3],
            origin=parts[4],
            payload=payload
        )

    # ===== Decode =====
    def decode(self, data: bytes) -> DecodeResult:
        try:
            frame = self.parseFrame(data)
            compressed = self._decodePayload(frame)
            try:
                text = self.compactor.decompress(compressed)
            except CodecFailure as e:
                raise MalformedFrame(f'Payload could not be expanded: {e}') from e
        except MalformedFrame as e:
            self.log.warning("Dropping malformed frame", error=str(e))
            return DecodeResult(error=e)

        entity = MessageEntity(
            id=frame.id,
            uid=frame.uid,
            type=frame.type,
            timeIso=frame.timeIso,
            origin=frame.origin or None,
            rawText=text,
            compressedBytes=compressed
        )
        return DecodeResult(value=entity)

    def _decodePayload(self, frame: WireFrame) -> bytes:
        payload = ''.join(frame.payload.split())
        if not payload:
            raise MalformedFrame('Frame payload is empty')

        stray = set(payload) - _TRANSPORT_CHARS
        if stray:
            self.log.warning("Payload has characters outside the transport alphabet",
                             frameId=frame.id, characters=''.join(sorted(stray))[:16])
        try:
            return base64.b64decode(payload)
        except (binascii.Error, ValueError) as e:
            raise MalformedFrame(f'Payload is not valid base64: {e}') from e
