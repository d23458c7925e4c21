"""
cotkit.logging - Hierarchical logger with automatic name detection.

API:
    from cotkit.logging import getLogger

    # Class-level (auto-detect once in __init__)
    class CotSyncService:
        def __init__(self):
            self.log = getLogger()  # Auto: 'lorabridge.core.sync.CotSyncService'

        def onHostEvent(self, event):
            self.log.debug("Host event", uid=event.uid)

    # Module-level (auto-detect once at import)
    log = getLogger()  # Auto: 'lorabridge.core.mapper'

    # Global configuration (optional, once at app startup)
    from cotkit.logging import configureLogging
    configureLogging(logDir='logs', level='DEBUG')
"""

from .logger import getLogger, configureLogging
from .context import (
    setServiceContext,
    getServiceContext,
    clearServiceContext,
    installServiceContextFilter
)

__all__ = [
    'getLogger',
    'configureLogging',
    'setServiceContext',
    'getServiceContext',
    'clearServiceContext',
    'installServiceContextFilter'
]
