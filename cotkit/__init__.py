"""cotkit - Reusable building blocks for CoT/radio bridges

Contains reusable modules for:
    - events: Cursor-on-Target event model (XML parse/serialize)
    - transport: Local datagram endpoints (UDP, NNG)
    - logging: Centralized hierarchical logging
"""

__version__ = "1.0-beta"
__versionInfo__ = (1, 0, 0, "beta")
