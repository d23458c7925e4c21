"""
Endpoint adapter tests

Test Coverage:
1. URI registry (schemes, unknown scheme, missing port)
2. UDP bind/connect/recv/send and state checks
3. NNG ipc exchange and a channel running over NNG (skipped without pynng)
"""

import queue
import socket
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from cotkit.transport import (
    NngEndpoint,
    TransportUnavailable,
    UdpEndpoint,
    availableEndpoints,
    createEndpoint,
    registerEndpoint
)


def recvWithin(endpoint, attempts=20):
    for _ in range(attempts):
        data = endpoint.recv(4096)
        if data is not None:
            return bytes(data)
    return None


class TestRegistry:

    def test_default_schemes(self):
        assert {'udp', 'nng+ipc', 'nng+tcp'} <= set(availableEndpoints())

    def test_creates_by_scheme(self):
        assert isinstance(createEndpoint('udp://127.0.0.1:1383'), UdpEndpoint)
        assert isinstance(createEndpoint('nng+tcp://127.0.0.1:5555'), NngEndpoint)

    def test_unknown_scheme(self):
        with pytest.raises(ValueError):
            createEndpoint('serial:///dev/ttyUSB0')

    def test_missing_scheme(self):
        with pytest.raises(ValueError):
            createEndpoint('127.0.0.1:1383')

    def test_private_table(self):
        table = {}
        with pytest.raises(ValueError):
            createEndpoint('udp://127.0.0.1:1', table=table)
        registerEndpoint('UDP', UdpEndpoint, table=table)
        assert isinstance(createEndpoint('udp://127.0.0.1:1', table=table), UdpEndpoint)
        assert table == {'udp': UdpEndpoint}

    def test_scheme_is_case_insensitive(self):
        assert isinstance(createEndpoint('UDP://127.0.0.1:1383'), UdpEndpoint)

    def test_register_rejects_non_endpoint(self):
        with pytest.raises(TypeError):
            registerEndpoint('x', dict, table={})


class TestUdp:

    def test_port_required(self):
        with pytest.raises(ValueError):
            UdpEndpoint('udp://127.0.0.1')

    def test_exchange(self):
        rx = UdpEndpoint('udp://127.0.0.1:0')
        rx.bind()
        try:
            host, port = rx.boundAddress
            with UdpEndpoint(f'udp://127.0.0.1:{port}') as tx:
                tx.connect()
                tx.send(b'LORA|ping')
                assert recvWithin(rx) == b'LORA|ping'
                assert tx.status()['state'] == 'CONNECTED'
        finally:
            rx.close()

    def test_recv_timeout_returns_none(self):
        rx = UdpEndpoint('udp://127.0.0.1:0', recvTimeout=0.05)
        rx.bind()
        try:
            assert rx.recv() is None
        finally:
            rx.close()

    def test_closed_endpoint_unavailable(self):
        endpoint = UdpEndpoint('udp://127.0.0.1:0')
        with pytest.raises(TransportUnavailable):
            endpoint.recv()
        with pytest.raises(TransportUnavailable):
            endpoint.send(b'x')

    def test_wrong_role(self):
        rx = UdpEndpoint('udp://127.0.0.1:0')
        rx.bind()
        try:
            with pytest.raises(TransportUnavailable):
                rx.send(b'x')
        finally:
            rx.close()

    def test_double_bind_same_port(self):
        first = UdpEndpoint('udp://127.0.0.1:0')
        first.bind()
        try:
            second = UdpEndpoint(f'udp://127.0.0.1:{first.boundAddress[1]}')
            with pytest.raises(OSError):
                second.bind()
            assert not second.isOpen
        finally:
            first.close()


class TestNng:

    def test_ipc_exchange(self, tempDir):
        pytest.importorskip('pynng')
        uri = f'nng+ipc://{tempDir}/modem.rx'
        rx = createEndpoint(uri)
        rx.bind()
        tx = createEndpoint(uri)
        tx.connect()
        try:
            assert rx.address == f'ipc://{tempDir}/modem.rx'
            tx.send(b'LORA_COTX|frame')
            assert recvWithin(rx) == b'LORA_COTX|frame'
        finally:
            tx.close()
            rx.close()

    def test_requires_port_or_path(self):
        with pytest.raises(ValueError):
            NngEndpoint('nng+tcp://127.0.0.1')

    def test_channel_over_nng(self, tempDir):
        pytest.importorskip('pynng')
        from lorabridge.phy.channel import TransportChannel

        rxUri = f'nng+ipc://{tempDir}/lora.rx'
        txUri = f'nng+ipc://{tempDir}/lora.tx'
        modemOut = createEndpoint(txUri)
        modemOut.bind()
        channel = TransportChannel(rxUri=rxUri, txUri=txUri)
        received = queue.Queue()
        channel.registerChatHandler(received.put)
        modemIn = None
        try:
            assert channel.start()
            modemIn = createEndpoint(rxUri)
            modemIn.connect()
            modemIn.send(b'LORA|hello')
            assert received.get(timeout=3.0) == b'hello'

            assert channel.sendCot(b'frame')
            assert recvWithin(modemOut) == b'LORA_COTX|frame'
        finally:
            channel.stop()
            if modemIn is not None:
                modemIn.close()
            modemOut.close()
