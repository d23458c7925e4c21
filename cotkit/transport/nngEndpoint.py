"""
NNG Endpoint Adapter

URI: nng+ipc:///path/to/socket, nng+tcp://host:port
Receive role: Pull0 socket listening on the address.
Send role: Push0 socket dialing the address (non-blocking dial, auto-retry).
Design: Blocking pynng calls with timeouts so loops can re-check their flags.

Property of Uncompromising Sensors LLC.
"""

# Imports
import os
from typing import Any, Optional

# Local Imports
from .endpointBase import EndpointBase, TransportUnavailable


class NngEndpoint(EndpointBase):
    """NNG pipeline endpoint for IPC and TCP."""

    def __init__(self, uri: str, recvTimeout: float = 0.25, sendTimeout: float = 1.0):
        super().__init__(uri, recvTimeout=recvTimeout)
        self._sendTimeout = sendTimeout
        self._sock: Any = None
        self._pynng = None  # Lazy-loaded

        scheme = self._parsed.scheme.lower()
        if scheme not in ('nng+ipc', 'nng+tcp'):
            raise ValueError(f"Unsupported NNG scheme '{scheme}'. Supported: nng+ipc, nng+tcp")
        self._address = self._buildAddress()

    @property
    def transportType(self) -> str:
        return 'nng'

    @property
    def address(self) -> str:
        return self._address


    def bind(self) -> None:
        if self.isOpen:
            raise RuntimeError(f'NngEndpoint already open ({self._state})')
        pynng = self._loadPynng()

        if self._address.startswith('ipc://'):
            os.makedirs(os.path.dirname(self._address[len('ipc://'):]) or '.', exist_ok=True)

        sock = pynng.Pull0(recv_timeout=int(self._recvTimeout * 1000))
        try:
            sock.listen(self._address)
        except Exception:
            sock.close()
            raise

        self._sock = sock
        self._markOpen('BOUND')


    def connect(self) -> None:
        if self.isOpen:
            raise RuntimeError(f'NngEndpoint already open ({self._state})')
        pynng = self._loadPynng()

        sock = pynng.Push0(send_timeout=int(self._sendTimeout * 1000))
        # Dial asynchronously so the peer may come up later
        sock.dial(self._address, block=False)

        self._sock = sock
        self._markOpen('CONNECTED')


    def recv(self, bufferSize: int = 4096) -> Optional[bytes]:
        self._requireState('BOUND')
        try:
            payload = self._sock.recv()
        except self._pynng.Timeout:
            return None
        except self._pynng.Closed as e:
            raise TransportUnavailable(f'NNG socket {self._address} closed') from e

        if len(payload) > bufferSize:
            self.log.warning('NNG message larger than receive buffer, truncated', size=len(payload), bufferSize=bufferSize)
            payload = payload[:bufferSize]
        self._bytesIn += len(payload)
        return payload


    def send(self, payload: bytes) -> None:
        self._requireState('CONNECTED')
        try:
            self._sock.send(payload)
        except self._pynng.Closed as e:
            raise TransportUnavailable(f'NNG socket {self._address} closed') from e
        self._bytesOut += len(payload)


    def close(self) -> None:
        if self._state == 'CLOSED':
            return
        self._state = 'CLOSED'

        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.close()
            except Exception as e:
                self.log.warning(f'Close NNG socket error: {e}', uri=self._uri)

        self.log.info('nng endpoint closed', uri=self._uri)


    # ===== Internal Methods =====
    def _loadPynng(self):
        if not self._pynng:
            try:
                import pynng
                self._pynng = pynng
            except ImportError as e:
                raise ImportError('pynng not installed. Run: pip install pynng') from e
        return self._pynng

    def _buildAddress(self) -> str:
        if self._parsed.scheme.lower() == 'nng+tcp':
            host = self._parsed.hostname or '127.0.0.1'
            port = self._parsed.port
            if port is None:
                raise ValueError(f"NNG TCP URI must include a port. Got: {self._uri}")
            return f'tcp://{host}:{port}'

        # nng+ipc:///tmp/lora/rx -> path in parsed.path
        path = self._parsed.path or self._parsed.netloc
        if not path:
            raise ValueError(f"NNG IPC URI must include a path: 'nng+ipc:///tmp/lora/rx'. Got: {self._uri}")
        return f'ipc://{path}'
