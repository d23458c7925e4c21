"""
Host-side collaborators: self identity, event bus and callsign directory.

HostBus is the typed subscription interface the sync services attach to.
Two implementations:
- LocalEventBus: in-process, synchronous dispatch (tests, embedding)
- UdpCotBus:     CoT XML datagrams in on one endpoint, out on another

Directory resolves a uid to a display name; ContactDirectory learns names from
observed <contact callsign="..."/> details.

Property of Uncompromising Sensors LLC.
"""

# Imports
import threading, time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from cotkit.events import CotEvent, CotParseError
from cotkit.logging import getLogger
from cotkit.transport import EndpointBase, createEndpoint

EventCallback = Callable[[CotEvent], None]

_RECV_ERROR_BACKOFF_SECONDS = 0.05


@dataclass(frozen=True)
class HostIdentity:
    """This device as seen by the host network"""
    deviceUid: str
    callsign: str
    lat: float = 0.0
    lon: float = 0.0
    hae: float = 9999999.0


# ============================================================================
# Subscriptions
# ============================================================================

class Subscription:
    """Handle returned by HostBus.subscribe(); cancel() is idempotent"""

    def __init__(self, bus: 'HostBus', callback: EventCallback, eventType: Optional[str] = None):
        self.bus = bus
        self.callback = callback
        self.eventType = eventType
        self.active = True

    def matches(self, event: CotEvent) -> bool:
        return self.eventType is None or event.type == self.eventType

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.bus._removeSubscription(self)


class HostBus(ABC):
    """Host event network"""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._subscriptionLock = threading.Lock()
        self.log = getLogger()

    def subscribe(self, callback: EventCallback, eventType: Optional[str] = None) -> Subscription:
        """
        Receive every published/observed event (or only those of eventType).

        Returns:
            Subscription whose cancel() detaches the callback
        """
        subscription = Subscription(self, callback, eventType)
        with self._subscriptionLock:
            self._subscriptions.append(subscription)
        return subscription

    @abstractmethod
    def publish(self, event: CotEvent) -> None:
        pass

    @property
    def subscriberCount(self) -> int:
        with self._subscriptionLock:
            return len(self._subscriptions)

    def _removeSubscription(self, subscription: Subscription) -> None:
        with self._subscriptionLock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _dispatch(self, event: CotEvent) -> int:
        """Deliver to a snapshot of matching subscribers; returns number delivered"""
        with self._subscriptionLock:
            targets = [s for s in self._subscriptions if s.active and s.matches(event)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.callback(event)
                delivered += 1
            except Exception as e:
                self.log.error("Subscriber failed", uid=event.uid, error=str(e), exc_info=True)
        return delivered


class LocalEventBus(HostBus):
    """In-process bus: publish() dispatches synchronously on the caller's thread"""

    def __init__(self):
        super().__init__()
        self.published: List[CotEvent] = []

    def publish(self, event: CotEvent) -> None:
        self.published.append(event)
        self._dispatch(event)


class UdpCotBus(HostBus):
    """
    Host bus over CoT XML datagrams.

    Args:
        rxUri: Endpoint URI to listen on (observed events)
        txUri: Endpoint URI events are published to
        recvBufferBytes: Largest datagram accepted
    """

    def __init__(self, rxUri: str, txUri: str, recvBufferBytes: int = 65535, joinTimeoutSeconds: float = 0.5):
        super().__init__()
        self.rxUri = rxUri
        self.txUri = txUri
        self.recvBufferBytes = recvBufferBytes
        self.joinTimeoutSeconds = joinTimeoutSeconds

        self._rx: Optional[EndpointBase] = None
        self._tx: Optional[EndpointBase] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> bool:
        with self._lock:
            if self._running:
                return True
            try:
                self._rx = createEndpoint(self.rxUri)
                self._rx.bind()
                self._tx = createEndpoint(self.txUri)
                self._tx.connect()
            except (OSError, ValueError, ImportError) as e:
                self.log.error("Host bus failed to start", rxUri=self.rxUri, txUri=self.txUri, error=str(e))
                self._closeEndpoints()
                return False

            self._running = True
            self._thread = threading.Thread(target=self._receiveLoop, name='hostbus-rx', daemon=True)
            self._thread.start()

        self.log.info("Host bus started", rxUri=self.rxUri, txUri=self.txUri)
        return True

    def stop(self) -> None:
        with self._lock:
            if not self._running and self._rx is None:
                return
            self._running = False
            self._closeEndpoints()
            thread, self._thread = self._thread, None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.joinTimeoutSeconds)
        self.log.info("Host bus stopped")

    def publish(self, event: CotEvent) -> None:
        tx = self._tx
        if not self._running or tx is None:
            self.log.warning("Host bus not running, event dropped", uid=event.uid)
            return
        try:
            tx.send(event.toXml().encode('utf-8'))
        except Exception as e:
            self.log.error("Host bus publish failed", uid=event.uid, error=str(e))

    def _receiveLoop(self) -> None:
        while self._running:
            rx = self._rx
            if rx is None:
                break
            try:
                data = rx.recv(self.recvBufferBytes)
            except Exception as e:
                if self._running:
                    self.log.error("Host bus receive error", error=str(e))
                    time.sleep(_RECV_ERROR_BACKOFF_SECONDS)
                    continue
                break

            if data is None:
                continue

            try:
                event = CotEvent.parse(bytes(data).decode('utf-8', errors='replace'))
            except CotParseError as e:
                self.log.warning("Unparseable CoT datagram dropped", error=str(e), size=len(data))
                continue

            self._dispatch(event)

    def _closeEndpoints(self) -> None:
        for endpoint in (self._rx, self._tx):
            if endpoint is not None:
                try:
                    endpoint.close()
                except Exception as e:
                    self.log.debug("Endpoint close failed", error=str(e))
        self._rx = None
        self._tx = None


# ============================================================================
# Directory
# ============================================================================

class Directory(ABC):
    """uid -> display name"""

    @abstractmethod
    def lookupName(self, uid: str) -> Optional[str]:
        pass


class StaticDirectory(Directory):

    def __init__(self, mapping: Optional[Dict[str, str]] = None):
        self.mapping = dict(mapping or {})

    def lookupName(self, uid: str) -> Optional[str]:
        return self.mapping.get(uid)


class ContactDirectory(Directory):
    """Learns callsigns from observed events; attach observe() to a HostBus"""

    def __init__(self):
        self._names: Dict[str, str] = {}
        self._lock = threading.Lock()

    def observe(self, event: CotEvent) -> None:
        contact = event.findDetail('contact')
        if contact is None or not event.uid:
            return
        callsign = contact.getAttribute('callsign')
        if callsign:
            with self._lock:
                self._names[event.uid] = callsign

    def lookupName(self, uid: str) -> Optional[str]:
        with self._lock:
            return self._names.get(uid)

    def __len__(self):
        with self._lock:
            return len(self._names)
