"""
EndpointBase: Abstract base for blocking, bytes-in/bytes-out local datagram endpoints.

One endpoint plays one role:
    bind()    -> receive role (listen on the URI, recv() datagrams)
    connect() -> send role (send() datagrams to the URI)
recv() blocks at most recvTimeout seconds and returns None on timeout, so a
receive loop can re-check its running flag. close() from another thread makes
a blocked recv() return or raise promptly.

Property of Uncompromising Sensors LLC.
"""


# Imports
import time, uuid
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from urllib.parse import urlparse

from cotkit.logging import getLogger


class TransportUnavailable(Exception):
    """Endpoint is closed, unbound or otherwise unusable"""
    pass


class EndpointBase(ABC):
    """
    Abstract base class for endpoint adapters.

    Lifecycle States:
        - CLOSED: Not opened, or closed
        - BOUND: Receive role, listening
        - CONNECTED: Send role, target resolved
    """

    def __init__(self, uri: str, recvTimeout: float = 0.25):
        self.log = getLogger()

        self._uri = uri
        self._parsed = urlparse(uri)
        self._recvTimeout = recvTimeout
        self._state = 'CLOSED'
        self._openedAt: Optional[float] = None
        self._instanceId = str(uuid.uuid4())[:8]
        self._bytesIn = 0
        self._bytesOut = 0


    # ===== Core Abstract Methods (Must Implement) =====
    @abstractmethod
    def bind(self) -> None:
        pass

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def recv(self, bufferSize: int = 4096) -> Optional[bytes | memoryview]:
        pass

    @abstractmethod
    def send(self, payload: bytes) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


    # ===== Core Properties =====
    @property
    @abstractmethod
    def transportType(self) -> str:
        pass

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def state(self) -> str:
        return self._state

    @property
    def isOpen(self) -> bool:
        return self._state in ('BOUND', 'CONNECTED')


    # ===== Optional Methods (Safe Base Defaults) =====
    def status(self) -> Dict[str, Any]:
        return {'transport': self.transportType, 'uri': self._uri, 'state': self._state,
                'sinceTs': self._openedAt, 'bytesIn': self._bytesIn, 'bytesOut': self._bytesOut}


    # ===== Helper Methods =====
    def _markOpen(self, state: str):
        self._state = state
        self._openedAt = time.time()
        self.log.info(f'{self.transportType} endpoint {state.lower()}', uri=self._uri, instanceId=self._instanceId)

    def _requireState(self, state: str):
        if self._state != state:
            raise TransportUnavailable(f'{self.transportType} endpoint {self._uri} is {self._state}, expected {state}')


    # ===== Context Manager Support =====
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
