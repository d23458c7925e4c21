"""
Logging context: attaches the bridge node identity (nodeId, callsign, role) to every record.
"""

import logging
from typing import Optional
from contextvars import ContextVar

_role: ContextVar[Optional[str]] = ContextVar('role', default=None)
_node_id: ContextVar[Optional[str]] = ContextVar('node_id', default=None)
_callsign: ContextVar[Optional[str]] = ContextVar('callsign', default=None)

# Process-wide fallback so records emitted on worker threads carry the identity too
_processContext = {'role': None, 'nodeId': None, 'callsign': None}


class ServiceContextFilter(logging.Filter):
    """Adds role/nodeId/callsign to records when set"""

    def filter(self, record):
        context = getServiceContext()
        for key, value in context.items():
            if value:
                setattr(record, key, value)
        return True


def setServiceContext(role: str, nodeId: str, callsign: str = None):
    """
    Set service-level context for logging

    Args:
        role: Process role ('bridge', 'sim')
        nodeId: Device uid of this node
        callsign: Display callsign (optional)
    """
    _role.set(role)
    _node_id.set(nodeId)
    _processContext.update({'role': role, 'nodeId': nodeId})
    if callsign:
        _callsign.set(callsign)
        _processContext['callsign'] = callsign


def getServiceContext() -> dict:
    """Current context; falls back to the process-wide values on threads without one"""
    return {
        'role': _role.get() or _processContext['role'],
        'nodeId': _node_id.get() or _processContext['nodeId'],
        'callsign': _callsign.get() or _processContext['callsign']
    }


def clearServiceContext():
    _role.set(None)
    _node_id.set(None)
    _callsign.set(None)
    _processContext.update({'role': None, 'nodeId': None, 'callsign': None})


def installServiceContextFilter(logger: logging.Logger = None):
    """
    Install the context filter on a logger's handlers (root logger by default).

    Loggers from getLogger() do not propagate, so the filter goes on their handlers.
    """
    target = logger or logging.getLogger()
    holders = [target] + list(target.handlers)
    for holder in holders:
        if any(isinstance(f, ServiceContextFilter) for f in holder.filters):
            continue
        holder.addFilter(ServiceContextFilter())
