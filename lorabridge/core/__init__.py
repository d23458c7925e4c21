"""
LoRa Bridge Core Package

Codec, entity mapping, dedup tracking, persistence, host bus adapters and the
synchronization services.

Invariants:
- Message id is the dedup key in both directions
- Origin labels are used only for loop suppression
- An event carries at most one loop marker
"""

__version__ = "1.0.0"
