"""cotkit.transport - Local datagram endpoints selected by URI scheme.

Public API:
    - EndpointBase: Abstract base class for endpoint adapters
    - TransportUnavailable: Raised when using a closed/unbound endpoint
    - createEndpoint: Factory function for creating endpoints from URIs
    - registerEndpoint: Register custom endpoint adapters
    - availableEndpoints: Registered URI schemes
    - UdpEndpoint: UDP datagram endpoint ('udp')
    - NngEndpoint: NNG pipeline endpoint ('nng+ipc', 'nng+tcp')

Usage:
    from cotkit.transport import createEndpoint

    rx = createEndpoint('udp://127.0.0.1:1383')
    rx.bind()
    data = rx.recv(4096)          # None on timeout

    tx = createEndpoint('udp://127.0.0.1:1382')
    tx.connect()
    tx.send(b'LORA|...')

    rx.close(); tx.close()

Property of Uncompromising Sensors LLC.
"""

from .endpointBase import EndpointBase, TransportUnavailable
from .endpointFactory import availableEndpoints, createEndpoint, registerEndpoint
from .udpEndpoint import UdpEndpoint
from .nngEndpoint import NngEndpoint

# Register default adapters
registerEndpoint('udp', UdpEndpoint)
registerEndpoint('nng+ipc', NngEndpoint)
registerEndpoint('nng+tcp', NngEndpoint)

__all__ = [
    'EndpointBase',
    'TransportUnavailable',
    'createEndpoint',
    'registerEndpoint',
    'availableEndpoints',
    'UdpEndpoint',
    'NngEndpoint'
]
