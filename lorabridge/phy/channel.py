"""
TransportChannel: loopback datagram link to the LoRa modem process.

    RX  udp://127.0.0.1:1383  <- modem delivers received frames
    TX  udp://127.0.0.1:1382  -> modem transmits our frames

Outbound frames get a routing header ("LORA|" for chat, "LORA_COTX|" for CoT)
and are sent from the worker pool, never on the caller's thread.
Inbound datagrams are copied out of the receive buffer on the receive thread
and routed by header on the pool:
    LORA_COTX|...  -> CoT handler, header kept
    LORA|...       -> chat handler, header stripped
    anything else  -> dropped

Property of Uncompromising Sensors LLC.
"""

# Imports
import threading
import time
from typing import Any, Callable, Dict, Optional

from cotkit.logging import getLogger
from cotkit.transport import EndpointBase, TransportUnavailable, createEndpoint

from lorabridge.core.contract import HDR_CHAT, HDR_COT, ROUTING_PREFIX_BYTES, ChannelTag, UnknownRoutingPrefix
from .workerPool import BoundedWorkerPool

PayloadHandler = Callable[[bytes], Any]

_HDR_CHAT_BYTES = HDR_CHAT.encode('utf-8')
_HDR_COT_BYTES = HDR_COT.encode('utf-8')

# Back-off after a receive error while running
_ERROR_BACKOFF_SECONDS = 0.05


def classifyDatagram(data: bytes) -> ChannelTag:
    """
    Raises:
        UnknownRoutingPrefix: datagram starts with neither header
    """
    prefix = bytes(data[:ROUTING_PREFIX_BYTES]).decode('utf-8', errors='replace')
    if prefix.startswith(HDR_COT):
        return ChannelTag.GENERIC_COT
    if prefix.startswith(HDR_CHAT):
        return ChannelTag.CHAT
    raise UnknownRoutingPrefix(f"Unknown routing prefix: {prefix[:ROUTING_PREFIX_BYTES]!r}")


class TransportChannel:
    """
    Args:
        rxUri: Endpoint the modem delivers received frames to
        txUri: Endpoint the modem reads frames to transmit from
        workers: Worker threads for routing and sending
        queueSize: Pool queue length before the oldest task is discarded
        joinTimeoutSeconds: Bound on waiting for the receive thread at stop()
        recvBufferBytes: Largest inbound datagram
    """

    def __init__(self, rxUri: str = 'udp://127.0.0.1:1383', txUri: str = 'udp://127.0.0.1:1382',
                 workers: int = 2, queueSize: int = 100, joinTimeoutSeconds: float = 0.5,
                 recvBufferBytes: int = 4096):
        self.rxUri = rxUri
        self.txUri = txUri
        self.workers = workers
        self.queueSize = queueSize
        self.joinTimeoutSeconds = joinTimeoutSeconds
        self.recvBufferBytes = recvBufferBytes
        self.log = getLogger()

        self._rx: Optional[EndpointBase] = None
        self._tx: Optional[EndpointBase] = None
        self._pool: Optional[BoundedWorkerPool] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._lifecycleLock = threading.Lock()
        self._sendLock = threading.Lock()

        self._chatHandler: Optional[PayloadHandler] = None
        self._cotHandler: Optional[PayloadHandler] = None

        self._counters: Dict[str, int] = {
            'received': 0, 'routedChat': 0, 'routedCot': 0, 'unknown': 0,
            'unhandled': 0, 'sent': 0, 'sendFailures': 0, 'poolDrops': 0
        }
        self._countersLock = threading.Lock()

    @classmethod
    def fromConfig(cls, config: Dict[str, Any]) -> 'TransportChannel':
        keys = ('rxUri', 'txUri', 'workers', 'queueSize', 'joinTimeoutSeconds', 'recvBufferBytes')
        return cls(**{key: config[key] for key in keys if key in config})

    @property
    def running(self) -> bool:
        return self._running

    # ===== Lifecycle =====
    def start(self) -> bool:
        """Bind RX, open TX, start the pool and the receive thread. False if an endpoint failed."""
        with self._lifecycleLock:
            if self._running:
                return True

            rx = tx = None
            try:
                rx = createEndpoint(self.rxUri)
                rx.bind()
                tx = createEndpoint(self.txUri)
                tx.connect()
            except Exception as e:
                self.log.error("Channel failed to start", rxUri=self.rxUri, txUri=self.txUri, error=str(e))
                for endpoint in (rx, tx):
                    self._closeQuietly(endpoint)
                return False

            self._rx, self._tx = rx, tx
            self._pool = BoundedWorkerPool(self.workers, self.queueSize, name='lora-pool')
            self._running = True
            self._thread = threading.Thread(target=self._receiveLoop, args=(rx,), name='lora-rx', daemon=True)
            self._thread.start()

        self.log.info("Channel started", rxUri=self.rxUri, txUri=self.txUri, workers=self.workers)
        return True

    def stop(self) -> None:
        """Close both endpoints, bound-join the receive thread, cancel queued work. Safe to repeat."""
        with self._lifecycleLock:
            if not self._running and self._thread is None and self._pool is None:
                return
            self._running = False
            rx, tx = self._rx, self._tx
            self._rx = self._tx = None
            thread, self._thread = self._thread, None
            pool, self._pool = self._pool, None

        self._closeQuietly(rx)
        self._closeQuietly(tx)

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.joinTimeoutSeconds)
            if thread.is_alive():
                self.log.warning("Receive thread did not exit in time", timeout=self.joinTimeoutSeconds)

        cancelled = 0
        if pool is not None:
            cancelled = pool.shutdown(cancelPending=True, timeout=self.joinTimeoutSeconds)
            self._count('poolDrops', pool.discarded)
        self.log.info("Channel stopped", cancelled=cancelled)

    # ===== Handlers =====
    def registerChatHandler(self, handler: Optional[PayloadHandler]) -> None:
        self._chatHandler = handler

    def registerCotHandler(self, handler: Optional[PayloadHandler]) -> None:
        self._cotHandler = handler

    # ===== Send =====
    def sendChat(self, payload: bytes) -> bool:
        return self._submitSend(_HDR_CHAT_BYTES, payload)

    def sendCot(self, payload: bytes) -> bool:
        return self._submitSend(_HDR_COT_BYTES, payload)

    def _submitSend(self, header: bytes, payload: bytes) -> bool:
        if not payload:
            self.log.warning("Empty payload not sent", header=header.decode())
            return False
        pool = self._pool
        if not self._running or pool is None:
            self.log.warning("Channel not running, payload dropped", header=header.decode(), size=len(payload))
            return False
        return pool.submit(self._sendNow, header + bytes(payload))

    def _sendNow(self, datagram: bytes) -> None:
        tx = self._tx
        try:
            if tx is None:
                raise TransportUnavailable('TX endpoint is closed')
            with self._sendLock:
                tx.send(datagram)
            self._count('sent')
        except TransportUnavailable as e:
            self.log.warning("Send dropped, endpoint unavailable", error=str(e))
            self._count('sendFailures')
        except Exception as e:
            self.log.error("Send failed", error=str(e), size=len(datagram))
            self._count('sendFailures')

    # ===== Receive =====
    def _receiveLoop(self, rx: EndpointBase) -> None:
        while self._running:
            try:
                data = rx.recv(self.recvBufferBytes)
            except Exception as e:
                if not self._running:
                    break
                self.log.error("Receive error", error=str(e))
                time.sleep(_ERROR_BACKOFF_SECONDS)
                continue

            if data is None or len(data) == 0:
                continue

            # The endpoint reuses its buffer; copy before handing off
            payload = bytes(data)
            self._count('received')

            pool = self._pool
            if pool is None or not pool.submit(self._route, payload):
                self.log.debug("Pool closed, inbound datagram dropped", size=len(payload))
        self.log.debug("Receive loop exited")

    def _route(self, data: bytes) -> None:
        try:
            tag = classifyDatagram(data)
        except UnknownRoutingPrefix as e:
            self.log.warning("Inbound datagram dropped", error=str(e), size=len(data))
            self._count('unknown')
            return

        if tag is ChannelTag.GENERIC_COT:
            handler = self._cotHandler
            payload = data
            self._count('routedCot')
        else:
            handler = self._chatHandler
            payload = data[len(_HDR_CHAT_BYTES):]
            self._count('routedChat')

        if handler is None:
            self.log.warning("No handler registered, payload dropped", channelTag=tag.value, size=len(data))
            self._count('unhandled')
            return

        try:
            handler(payload)
        except Exception as e:
            self.log.error("Payload handler failed", channelTag=tag.value, error=str(e), exc_info=True)

    # ===== Status =====
    def _count(self, key: str, amount: int = 1) -> None:
        with self._countersLock:
            self._counters[key] += amount

    def status(self) -> Dict[str, Any]:
        with self._countersLock:
            counters = dict(self._counters)
        pool = self._pool
        if pool is not None:
            counters['poolDrops'] += pool.discarded
        return {
            'running': self._running,
            'rxUri': self.rxUri,
            'txUri': self.txUri,
            'rx': self._rx.status() if self._rx is not None else None,
            'tx': self._tx.status() if self._tx is not None else None,
            'pool': pool.status() if pool is not None else None,
            'counters': counters
        }

    def _closeQuietly(self, endpoint: Optional[EndpointBase]) -> None:
        if endpoint is None:
            return
        try:
            endpoint.close()
        except Exception as e:
            self.log.debug("Endpoint close failed", error=str(e))
