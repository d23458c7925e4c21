"""
UDP Endpoint Adapter

URI: udp://host:port  (port 0 binds an ephemeral port; see boundAddress)
Receive role binds host:port and reads into one reusable buffer; the returned
memoryview is only valid until the next recv(), callers copy it.
Send role keeps one unbound socket and sends each datagram to host:port.

Property of Uncompromising Sensors LLC.
"""

# Imports
import ipaddress, socket
from typing import Optional, Tuple

# Local Imports
from .endpointBase import EndpointBase, TransportUnavailable


class UdpEndpoint(EndpointBase):
    """UDP datagram endpoint, loopback by default."""

    def __init__(self, uri: str, recvTimeout: float = 0.25):
        super().__init__(uri, recvTimeout=recvTimeout)
        self._sock: Optional[socket.socket] = None
        self._buffer: Optional[bytearray] = None
        self._target = self._parseTarget()

        if not self._isLoopback(self._target[0]):
            self.log.warning('UDP endpoint is not loopback-only', uri=uri, host=self._target[0])

    @property
    def transportType(self) -> str:
        return 'udp'

    @property
    def boundAddress(self) -> Optional[Tuple[str, int]]:
        if self._state == 'BOUND' and self._sock is not None:
            return self._sock.getsockname()[:2]
        return None


    def bind(self) -> None:
        if self.isOpen:
            raise RuntimeError(f'UdpEndpoint already open ({self._state})')

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind(self._target)
            sock.settimeout(self._recvTimeout)
        except OSError:
            sock.close()
            raise

        self._sock = sock
        self._markOpen('BOUND')


    def connect(self) -> None:
        if self.isOpen:
            raise RuntimeError(f'UdpEndpoint already open ({self._state})')
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._markOpen('CONNECTED')


    def recv(self, bufferSize: int = 4096) -> Optional[memoryview]:
        self._requireState('BOUND')
        sock = self._sock

        if self._buffer is None or len(self._buffer) != bufferSize:
            self._buffer = bytearray(bufferSize)

        try:
            count, _addr = sock.recvfrom_into(self._buffer)
        except socket.timeout:
            return None

        self._bytesIn += count
        return memoryview(self._buffer)[:count]


    def send(self, payload: bytes) -> None:
        self._requireState('CONNECTED')
        sock = self._sock
        if sock is None:
            raise TransportUnavailable(f'UDP socket for {self._uri} is closed')
        sock.sendto(payload, self._target)
        self._bytesOut += len(payload)


    def close(self) -> None:
        if self._state == 'CLOSED':
            return
        self._state = 'CLOSED'

        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.close()
            except OSError as e:
                self.log.warning(f'Close UDP socket error: {e}', uri=self._uri)

        self.log.info('udp endpoint closed', uri=self._uri)


    # ===== Internal Methods =====
    def _parseTarget(self) -> Tuple[str, int]:
        host = self._parsed.hostname or '127.0.0.1'
        port = self._parsed.port
        if port is None:
            raise ValueError(f"UDP URI must include a port: 'udp://127.0.0.1:1383'. Got: {self._uri}")
        return (host, port)

    @staticmethod
    def _isLoopback(host: str) -> bool:
        if host == 'localhost':
            return True
        try:
            return ipaddress.ip_address(host).is_loopback
        except ValueError:
            return False
