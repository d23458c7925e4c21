"""
Compaction: pluggable structured-text compressors for the radio payload.

CoT XML is an order of magnitude larger than a LoRa channel can carry
comfortably, so the codec compacts the canonical text before framing.

Compactors (selected by name through the registry):
- deflate: raw DEFLATE (level 9) primed with a dictionary of common CoT vocabulary,
           so short events compress well even without repetition of their own
- none:    UTF-8 pass-through, for modem bring-up and debugging

Both sides of a link must use the same compactor and the same dictionary.
"""

import zlib
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

from .contract import CodecFailure


# Most frequent fragments last: DEFLATE prefers the closest match
COT_DICTIONARY = "".join([
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>',
    '<__video url="', '<archive/>', '<usericon iconsetpath="', '<color argb="',
    '<sensor ', '<emergency type="', '<shape>', '<ellipse ', '<strokeColor value="',
    '<fillColor value="', '<labels_on value="false"/>', '<height value="',
    '<takv device="', ' platform="ATAK-CIV"', ' os="', '<uid Droid="',
    '<precisionlocation altsrc="GPS" geopointsrc="GPS"/>', '<status battery="',
    '<track course="', ' speed="', '<__group name="Cyan" role="Team Member"/>',
    '<contact endpoint="*:-1:stcp" callsign="', '<contact callsign="',
    '<remarks source="BAO.F.ATAK.', ' to="', '</remarks>', '<remarks/>',
    '<link uid="', ' type="a-f-G-U-C" relation="p-p"/>', ' production_time="',
    '<chatgrp uid0="', ' uid1="', '<__chat parent="RootContactGroup" groupOwner="false" messageId="',
    ' chatroom="', ' senderCallsign="', ' sender="', ' messageType="text"',
    '<__lora originalId="', ' origin="PHY"', ' origin="Host"', ' origin="Plugin"', ' node="',
    '<detail>', '</detail>', '</event>',
    ' ce="9999999.0" le="9999999.0"/>', ' hae="9999999.0"', '<point lat="', ' lon="', ' hae="', ' ce="', ' le="',
    '<event version="2.0" uid="', ' type="b-t-f"', ' type="a-f-G-U-C"', ' how="h-g-i-g-o"', ' how="m-g"',
    ' time="', ' start="', ' stale="', 'T00:00:00.000Z"', '.000Z"', '"/>', '">',
]).encode('utf-8')


class Compactor(ABC):
    """Lossless text <-> bytes compressor"""

    name: str = ''

    @abstractmethod
    def compress(self, text: str) -> bytes:
        pass

    @abstractmethod
    def decompress(self, data: bytes) -> str:
        pass


class DeflateCompactor(Compactor):
    """Raw DEFLATE with a CoT preset dictionary"""

    name = 'deflate'

    def __init__(self, level: int = 9, dictionary: bytes = COT_DICTIONARY):
        self.level = level
        self.dictionary = dictionary

    def compress(self, text: str) -> bytes:
        try:
            compressor = zlib.compressobj(self.level, zlib.DEFLATED, -15, 9, zlib.Z_DEFAULT_STRATEGY, self.dictionary)
            return compressor.compress(text.encode('utf-8')) + compressor.flush()
        except (zlib.error, UnicodeEncodeError) as e:
            raise CodecFailure(f'deflate compress failed: {e}') from e

    def decompress(self, data: bytes) -> str:
        try:
            decompressor = zlib.decompressobj(-15, self.dictionary)
            raw = decompressor.decompress(data) + decompressor.flush()
        except zlib.error as e:
            raise CodecFailure(f'deflate decompress failed: {e}') from e

        # Truncated streams decode partially without raising
        if not decompressor.eof:
            raise CodecFailure('deflate stream incomplete')
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise CodecFailure(f'decompressed payload is not UTF-8: {e}') from e


class IdentityCompactor(Compactor):
    """No compaction"""

    name = 'none'

    def compress(self, text: str) -> bytes:
        return text.encode('utf-8')

    def decompress(self, data: bytes) -> str:
        try:
            return bytes(data).decode('utf-8')
        except UnicodeDecodeError as e:
            raise CodecFailure(f'payload is not UTF-8: {e}') from e


# ============================================================================
# Registry
# ============================================================================

_compactors: Dict[str, Type[Compactor]] = {}


def registerCompactor(name: str, compactorClass: Type[Compactor]) -> None:
    if not issubclass(compactorClass, Compactor):
        raise TypeError(f"Compactor {compactorClass} must be a Compactor subclass")
    _compactors[name.lower()] = compactorClass


def createCompactor(name: Optional[str] = None, **opts) -> Compactor:
    key = (name or DeflateCompactor.name).lower()
    compactorClass = _compactors.get(key)
    if compactorClass is None:
        available = ', '.join(sorted(_compactors)) or 'none'
        raise ValueError(f"No compactor registered as '{key}'. Available: {available}")
    return compactorClass(**opts)


def availableCompactors() -> list:
    return sorted(_compactors)


registerCompactor(DeflateCompactor.name, DeflateCompactor)
registerCompactor(IdentityCompactor.name, IdentityCompactor)
