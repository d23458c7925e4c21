"""
LoRa Bridge PHY link

TransportChannel talks to the external modem process over loopback datagrams;
BoundedWorkerPool runs routing and sends off the receive thread.
"""

from .channel import TransportChannel, classifyDatagram
from .workerPool import BoundedWorkerPool

__all__ = [
    'TransportChannel',
    'classifyDatagram',
    'BoundedWorkerPool'
]
