# Transport Module
"""
Blocking byte-stream helpers: full-buffer writes, exact reads, and the TCP
connect glue used by the command line client.
"""

from .stream_io import (
    Channel,
    write_all,
    read_exact,
    open_connection,
    close_quietly,
)

__all__ = [
    'Channel',
    'write_all',
    'read_exact',
    'open_connection',
    'close_quietly',
]
