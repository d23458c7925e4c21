"""
Bridge manager tests

Test Coverage:
1. Start/stop ordering and idempotence
2. Channel start failure leaves the services stopped
3. Owned database lifecycle, injected database left open
4. Chat send through the manager and status reporting
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from cotkit.events import CotEvent
from lorabridge.bridgeManager import BridgeManager, identityFromConfig
from lorabridge.config import defaultConfig
from lorabridge.core.database import Database
from lorabridge.core.hostBus import LocalEventBus
from samples import POSITION_XML, LoopbackChannel


class DeadChannel(LoopbackChannel):
    def start(self):
        return False


@pytest.fixture
def config(tempDir):
    config = defaultConfig()
    config['identity']['deviceUid'] = 'ANDROID-me'
    config['identity']['callsign'] = 'BRAVO'
    config['database']['path'] = str(tempDir / 'data' / 'bridge.db')
    return config


@pytest.fixture
def manager(config):
    bridge = BridgeManager(config, LocalEventBus(), channel=LoopbackChannel())
    yield bridge
    bridge.stop()


class TestIdentity:

    def test_from_config(self, config):
        identity = identityFromConfig(config)
        assert identity.deviceUid == 'ANDROID-me'
        assert identity.callsign == 'BRAVO'
        assert identity.hae == 9999999.0

    def test_callsign_defaults_to_uid(self, config):
        config['identity']['callsign'] = ''
        assert identityFromConfig(config).callsign == 'ANDROID-me'


class TestLifecycle:

    def test_start_and_stop(self, manager, tempDir):
        assert manager.start()
        assert manager.running
        assert manager.channel.running
        assert manager.cotSync.running and manager.chatSync.running
        assert manager.bus.subscriberCount == 2
        assert (tempDir / 'data' / 'bridge.db').exists()

        manager.stop()
        assert not manager.running
        assert not manager.channel.running
        assert manager.bus.subscriberCount == 0
        assert manager.database is None

    def test_idempotent(self, manager):
        assert manager.start()
        assert manager.start()
        assert manager.bus.subscriberCount == 2
        manager.stop()
        manager.stop()
        assert manager.bus.subscriberCount == 0

    def test_restart(self, manager):
        assert manager.start()
        manager.stop()
        assert manager.start()
        manager.bus.publish(CotEvent.parse(POSITION_XML))
        assert len(manager.channel.sent) == 1

    def test_channel_failure(self, config):
        bridge = BridgeManager(config, LocalEventBus(), channel=DeadChannel())
        assert not bridge.start()
        assert not bridge.running
        assert bridge.bus.subscriberCount == 0
        bridge.stop()
        assert bridge.database is None

    def test_injected_database_left_open(self, config, tempDir):
        database = Database(str(tempDir / 'shared.db'))
        bridge = BridgeManager(config, LocalEventBus(), database=database, channel=LoopbackChannel())
        assert bridge.start()
        bridge.stop()
        assert bridge.database is database
        assert not database.existsGeneric('x')
        database.close()

    def test_database_unavailable(self, config, tempDir):
        blocker = tempDir / 'file'
        blocker.write_text('x')
        config['database']['path'] = str(blocker / 'bridge.db')
        bridge = BridgeManager(config, LocalEventBus(), channel=LoopbackChannel())
        assert bridge.start()
        bridge.bus.publish(CotEvent.parse(POSITION_XML))
        assert len(bridge.channel.sent) == 1
        bridge.stop()


class TestOperations:

    def test_relay_persisted(self, manager):
        manager.start()
        manager.bus.publish(CotEvent.parse(POSITION_XML))
        assert len(manager.channel.sent) == 1
        assert manager.database.getGenericByUid('ANDROID-abc123')

    def test_send_chat(self, manager):
        assert manager.sendChat('ANDROID-peer', 'ping') is None
        manager.start()
        chat = manager.sendChat('ANDROID-peer', 'ping', receiverCallsign='ALPHA-1')
        assert chat.receiverCallsign == 'ALPHA-1'
        assert manager.channel.sent[0][0] == 'chat'
        assert manager.database.getChatById(chat.id).message == 'ping'

    def test_status(self, manager):
        before = manager.status()
        assert not before['running']
        assert before['cotSync'] is None

        manager.start()
        status = manager.status()
        assert status['running']
        assert status['identity'] == {'deviceUid': 'ANDROID-me', 'callsign': 'BRAVO'}
        assert status['channel']['running']
        assert status['cotSync']['running']
        assert status['database'].endswith('bridge.db')
