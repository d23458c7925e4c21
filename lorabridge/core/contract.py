"""
LoRa Bridge Contract Definitions

SINGLE SOURCE OF TRUTH for wire constants, origin labels and error types.
Import from this module instead of repeating literals elsewhere.

Wire frame (UTF-8, no embedded newline):
    [ROUTING_PREFIX]id|uid|type|timeIso|origin|<base64 compressed payload>

    ROUTING_PREFIX in {"", "LORA|", "LORA_COTX|"}
    Chat frames reach the codec with their prefix stripped; CoT frames keep it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

# Endpoint-level error, re-exported so callers import every bridge error from here
from cotkit.transport import TransportUnavailable


# ============================================================================
# Routing headers
# ============================================================================

class ChannelTag(str, Enum):
    """Message class carried on the radio channel"""
    CHAT = "chat"
    GENERIC_COT = "genericCot"


HDR_CHAT = "LORA|"
HDR_COT = "LORA_COTX|"

CHANNEL_HEADERS: Dict[ChannelTag, str] = {
    ChannelTag.CHAT: HDR_CHAT,
    ChannelTag.GENERIC_COT: HDR_COT
}

# Bytes of an inbound datagram inspected for the routing header
ROUTING_PREFIX_BYTES = 24


# ============================================================================
# Frame layout
# ============================================================================

FRAME_DELIMITER = "|"
FRAME_HEADER_FIELDS: List[str] = ["id", "uid", "type", "timeIso", "origin"]
FRAME_FIELD_COUNT = len(FRAME_HEADER_FIELDS) + 1  # header + payload

# Transport-safe alphabet for the payload segment (standard base64)
TRANSPORT_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/="


# ============================================================================
# Origins and loop marker
# ============================================================================

class Origin(str, Enum):
    """Relay origin recorded on entities and loop markers"""
    HOST = "Host"       # observed on the host bus
    RADIO = "PHY"       # arrived over the radio channel
    LOCAL = "Plugin"    # generated by this process (user input)


LOOP_MARKER_NAME = "__lora"


# ============================================================================
# CoT types
# ============================================================================

CHAT_TYPE = "b-t-f"

# Types not relayed from radio to host unless configured otherwise
DEFAULT_RADIO_TYPE_FILTER: List[str] = ["b-t-f-d", "b-t-f-r", "a-f-G-U-C"]

DEFAULT_TRACKER_HIGH_WATER_MARK = 2000


def isChatType(cotType: Optional[str]) -> bool:
    return cotType == CHAT_TYPE


# ============================================================================
# Errors
# ============================================================================

class BridgeError(Exception):
    """Base class for bridge errors"""
    pass


class MalformedFrame(BridgeError):
    """Frame has too few fields, bad encoding, or an undecodable payload"""
    pass


class CodecFailure(BridgeError):
    """Entity could not be mapped or encoded"""
    pass


class UnknownRoutingPrefix(BridgeError):
    """Inbound datagram does not start with a known routing header"""
    pass


# ============================================================================
# Results
# ============================================================================

@dataclass
class Outcome:
    """Explicit value-or-error result used at boundaries that must not raise"""
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @staticmethod
    def success(value: Any) -> 'Outcome':
        return Outcome(value=value)

    @staticmethod
    def failure(error: Exception) -> 'Outcome':
        return Outcome(error=error)
