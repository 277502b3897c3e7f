# Integration Module
"""
End-to-end client flow and the security event log it feeds.

Session states: CONNECTING -> HANDSHAKING -> READY -> RECEIVING -> CLOSED,
with FAILED reachable from any non-terminal state.
"""

# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    if name in ('ClientSession', 'SessionState', 'run_client'):
        from . import session
        return getattr(session, name)
    from . import event_logger
    return getattr(event_logger, name)

__all__ = [
    'EventType',
    'SecurityEvent',
    'EventLogger',
    'ClientSession',
    'SessionState',
    'run_client',
]
