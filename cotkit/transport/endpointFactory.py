"""
Endpoint adapters keyed by URI scheme.

    createEndpoint('udp://127.0.0.1:1383') -> UdpEndpoint
    createEndpoint('nng+ipc:///tmp/modem.rx') -> NngEndpoint

Property of Uncompromising Sensors LLC.
"""

# Imports
from typing import Dict, Optional, Type
from urllib.parse import urlparse

from .endpointBase import EndpointBase


SchemeTable = Dict[str, Type[EndpointBase]]

_endpoints: SchemeTable = {}


def registerEndpoint(scheme: str, endpointClass: Type[EndpointBase], table: Optional[SchemeTable] = None) -> None:
    if not issubclass(endpointClass, EndpointBase):
        raise TypeError(f"Endpoint {endpointClass} must be an EndpointBase subclass")
    (_endpoints if table is None else table)[scheme.lower()] = endpointClass


def createEndpoint(uri: str, table: Optional[SchemeTable] = None, **opts) -> EndpointBase:
    """
    Raises:
        ValueError: URI has no scheme, or nothing is registered for it
    """
    scheme = urlparse(uri).scheme.lower()
    if not scheme:
        raise ValueError(f"Endpoint URI needs a scheme such as udp:// or nng+ipc://: {uri}")

    schemes = _endpoints if table is None else table
    endpointClass = schemes.get(scheme)
    if endpointClass is None:
        available = ', '.join(sorted(schemes)) or 'none'
        raise ValueError(f"No endpoint registered for '{scheme}'. Available: {available}")
    return endpointClass(uri, **opts)


def availableEndpoints() -> list:
    return sorted(_endpoints)
