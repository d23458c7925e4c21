"""
LoRa Bridge

Relays Cursor-on-Target traffic between a host CoT network and a LoRa radio
modem process, with loop prevention and deduplication in both directions.
"""

__version__ = "1.0.0"
