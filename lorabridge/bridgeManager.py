"""
LoRa Bridge Manager

Owns the bridge's service graph for one process:
- TransportChannel (radio link to the modem process)
- FrameCodec
- CotSyncService + ChatSyncService
- Database (opened here unless one is injected)

The host bus and directory are injected; the manager never creates globals.

Property of Uncompromising Sensors LLC.
"""

import threading
from typing import Any, Dict, Optional

from cotkit.logging import getLogger

from lorabridge.core.codec import FrameCodec
from lorabridge.core.database import Database, DatabaseError
from lorabridge.core.hostBus import Directory, HostBus, HostIdentity
from lorabridge.core.sync import ChatSyncService, CotSyncService
from lorabridge.phy.channel import TransportChannel


def identityFromConfig(config: dict) -> HostIdentity:
    section = config.get('identity', {})
    return HostIdentity(
        deviceUid=section['deviceUid'],
        callsign=section.get('callsign') or section['deviceUid'],
        lat=float(section.get('lat', 0.0)),
        lon=float(section.get('lon', 0.0)),
        hae=float(section.get('hae', 9999999.0))
    )


class BridgeManager:
    """
    Args:
        config: Full bridge config (see lorabridge.config.DEFAULT_CONFIG)
        bus: Host event bus
        directory: Callsign directory
        database: Store to use; when None one is opened from config['database']['path'] and closed on stop()
        channel: Radio channel; when None one is built from config['channel']
    """

    def __init__(self, config: dict, bus: HostBus, directory: Optional[Directory] = None,
                 database: Optional[Database] = None, channel=None):
        self.config = config
        self.bus = bus
        self.directory = directory
        self.identity = identityFromConfig(config)
        self.log = getLogger()

        self._ownsDatabase = database is None
        self.database = database
        self.channel = channel if channel is not None else TransportChannel.fromConfig(config.get('channel', {}))
        self.codec = FrameCodec(config.get('codec', {}).get('compactor'))

        self.cotSync: Optional[CotSyncService] = None
        self.chatSync: Optional[ChatSyncService] = None
        self._running = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def _buildServices(self) -> None:
        syncConfig = self.config.get('sync', {})
        common = dict(
            identity=self.identity,
            bus=self.bus,
            channel=self.channel,
            codec=self.codec,
            database=self.database,
            directory=self.directory,
            highWaterMark=syncConfig.get('trackerHighWaterMark', 2000),
            radioTypeFilter=syncConfig.get('radioTypeFilter')
        )
        self.cotSync = CotSyncService(**common)
        self.chatSync = ChatSyncService(**common)

    def start(self) -> bool:
        """Start the channel, then both sync services. False if the channel did not start."""
        with self._lock:
            if self._running:
                return True

            if self.database is None:
                dbPath = self.config.get('database', {}).get('path', 'data/lorabridge.db')
                try:
                    self.database = Database(dbPath)
                except (DatabaseError, OSError) as e:
                    self.log.error("[BridgeManager] Database unavailable, relaying without persistence",
                                   dbPath=dbPath, error=str(e))

            if self.cotSync is None:
                self._buildServices()

            if not self.channel.start():
                self.log.error("[BridgeManager] Channel did not start; services left stopped")
                return False

            self.cotSync.start()
            self.chatSync.start()
            self._running = True

        self.log.info("[BridgeManager] Bridge running", deviceUid=self.identity.deviceUid,
                      callsign=self.identity.callsign)
        return True

    def stop(self) -> None:
        """Stop services, then the channel, then close an owned database"""
        with self._lock:
            if not self._running and not (self._ownsDatabase and self.database is not None):
                return
            self._running = False

            for service in (self.chatSync, self.cotSync):
                if service is None:
                    continue
                try:
                    service.stop()
                except Exception as e:
                    self.log.error("[BridgeManager] Service stop failed", service=type(service).__name__,
                                   error=str(e))

            try:
                self.channel.stop()
            except Exception as e:
                self.log.error("[BridgeManager] Channel stop failed", error=str(e))

            if self._ownsDatabase and self.database is not None:
                try:
                    self.database.close()
                except Exception as e:
                    self.log.error("[BridgeManager] Database close failed", error=str(e))
                self.database = None
                # Services hold the closed store; rebuild on next start
                self.cotSync = self.chatSync = None

        self.log.info("[BridgeManager] Bridge stopped")

    def sendChat(self, receiverUid: str, text: str, receiverCallsign: Optional[str] = None):
        if not self._running or self.chatSync is None:
            self.log.warning("[BridgeManager] Bridge not running, chat dropped", receiverUid=receiverUid)
            return None
        return self.chatSync.sendMessage(receiverUid, text, receiverCallsign)

    def status(self) -> Dict[str, Any]:
        return {
            'running': self._running,
            'identity': {'deviceUid': self.identity.deviceUid, 'callsign': self.identity.callsign},
            'channel': self.channel.status() if hasattr(self.channel, 'status') else None,
            'cotSync': self.cotSync.status() if self.cotSync is not None else None,
            'chatSync': self.chatSync.status() if self.chatSync is not None else None,
            'database': str(self.database.dbPath) if self.database is not None else None
        }
