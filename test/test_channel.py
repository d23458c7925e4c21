"""
Transport channel tests (loopback UDP)

Test Coverage:
1. Lifecycle: stop before start, repeated start/stop
2. Header routing: chat stripped, CoT kept, unknown dropped
3. Outbound header prefixing
4. Bind failure leaves the channel stopped
"""

import queue
import socket
import time
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from lorabridge.core.contract import ChannelTag, UnknownRoutingPrefix
from lorabridge.phy.channel import TransportChannel, classifyDatagram


def freePort() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


def waitFor(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def modem():
    """Socket standing in for the modem process: receives what the channel transmits"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(('127.0.0.1', 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


@pytest.fixture
def channel(modem):
    rxPort = freePort()
    txPort = modem.getsockname()[1]
    transport = TransportChannel(rxUri=f'udp://127.0.0.1:{rxPort}', txUri=f'udp://127.0.0.1:{txPort}')
    transport.rxPort = rxPort
    yield transport
    transport.stop()


class TestClassify:

    def test_headers(self):
        assert classifyDatagram(b'LORA_COTX|a|b') is ChannelTag.GENERIC_COT
        assert classifyDatagram(b'LORA|a|b') is ChannelTag.CHAT

    def test_unknown(self):
        with pytest.raises(UnknownRoutingPrefix):
            classifyDatagram(b'HELLO|a')

    def test_invalid_utf8_prefix(self):
        with pytest.raises(UnknownRoutingPrefix):
            classifyDatagram(b'\xff\xfeLORA|a')


class TestLifecycle:

    def test_stop_before_start(self):
        transport = TransportChannel(rxUri=f'udp://127.0.0.1:{freePort()}')
        transport.stop()
        transport.stop()
        assert not transport.running

    def test_start_is_idempotent(self, channel):
        assert channel.start()
        thread = channel._thread
        assert channel.start()
        assert channel._thread is thread
        assert channel.running

    def test_restart(self, channel):
        assert channel.start()
        channel.stop()
        assert not channel.running
        assert channel.start()
        assert channel.running

    def test_stop_is_bounded(self, channel):
        channel.start()
        began = time.monotonic()
        channel.stop()
        assert time.monotonic() - began < 2.0

    def test_bind_failure(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        blocker.bind(('127.0.0.1', 0))
        try:
            port = blocker.getsockname()[1]
            transport = TransportChannel(rxUri=f'udp://127.0.0.1:{port}', txUri=f'udp://127.0.0.1:{freePort()}')
            assert not transport.start()
            assert not transport.running
            status = transport.status()
            assert status['rx'] is None and status['tx'] is None and status['pool'] is None
            transport.stop()
        finally:
            blocker.close()

    def test_bad_uri(self):
        transport = TransportChannel(rxUri='carrier-pigeon://coop')
        assert not transport.start()


class TestRouting:

    def send(self, channel, datagram):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.sendto(datagram, ('127.0.0.1', channel.rxPort))

    def test_chat_header_stripped(self, channel):
        received = queue.Queue()
        channel.registerChatHandler(received.put)
        assert channel.start()
        self.send(channel, b'LORA|id|uid|b-t-f|T||QQ==')
        assert received.get(timeout=2.0) == b'id|uid|b-t-f|T||QQ=='

    def test_cot_header_kept(self, channel):
        received = queue.Queue()
        channel.registerCotHandler(received.put)
        assert channel.start()
        self.send(channel, b'LORA_COTX|id|uid|a-f-G|T||QQ==')
        assert received.get(timeout=2.0) == b'LORA_COTX|id|uid|a-f-G|T||QQ=='

    def test_unknown_dropped(self, channel):
        received = queue.Queue()
        channel.registerChatHandler(received.put)
        channel.registerCotHandler(received.put)
        assert channel.start()
        self.send(channel, b'NOISE|x')
        assert waitFor(lambda: channel.status()['counters']['unknown'] == 1)
        assert received.empty()

    def test_missing_handler(self, channel):
        assert channel.start()
        self.send(channel, b'LORA|x')
        assert waitFor(lambda: channel.status()['counters']['unhandled'] == 1)

    def test_handler_replaced_and_cleared(self, channel):
        first, second = queue.Queue(), queue.Queue()
        channel.registerChatHandler(first.put)
        channel.registerChatHandler(second.put)
        assert channel.start()
        self.send(channel, b'LORA|one')
        assert second.get(timeout=2.0) == b'one'
        assert first.empty()

        channel.registerChatHandler(None)
        self.send(channel, b'LORA|two')
        assert waitFor(lambda: channel.status()['counters']['unhandled'] == 1)

    def test_handler_exception_does_not_stop_routing(self, channel):
        received = queue.Queue()

        def handler(payload):
            if payload == b'bad':
                raise ValueError('bad payload')
            received.put(payload)

        channel.registerChatHandler(handler)
        assert channel.start()
        self.send(channel, b'LORA|bad')
        self.send(channel, b'LORA|good')
        assert received.get(timeout=2.0) == b'good'


class TestSend:

    def test_cot_prefixed(self, channel, modem):
        assert channel.start()
        assert channel.sendCot(b'frame-1')
        data, _ = modem.recvfrom(4096)
        assert data == b'LORA_COTX|frame-1'

    def test_chat_prefixed(self, channel, modem):
        assert channel.start()
        assert channel.sendChat(b'frame-2')
        data, _ = modem.recvfrom(4096)
        assert data == b'LORA|frame-2'
        assert waitFor(lambda: channel.status()['counters']['sent'] == 1)

    def test_dropped_when_stopped(self, channel):
        assert not channel.sendCot(b'frame')
        assert not channel.sendChat(b'frame')

    def test_empty_payload(self, channel):
        assert channel.start()
        assert not channel.sendChat(b'')
