"""
Reliable Stream I/O

All-or-nothing helpers over a blocking byte-stream channel that may deliver
partial writes and partial reads:

- write_all(channel, data): every byte is handed to the transport, or
  TransportError.
- read_exact(channel, n): exactly n bytes come back, or TransportError.
  A short buffer is never returned.

A "channel" is anything with socket-like send/recv/close, so a connected
socket.socket works directly. There are no retries: the first failed or
zero-length transfer is terminal for the connection.
"""

import logging
import socket
from typing import Optional, Protocol, Union

from ..errors import ConnectionClosedError, TransportError

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """Blocking, ordered, bidirectional byte stream."""

    def send(self, data: bytes) -> int: ...

    def recv(self, bufsize: int) -> bytes: ...

    def close(self) -> None: ...


def write_all(channel: Channel, data: Union[bytes, bytearray, memoryview]) -> None:
    """
    Write every byte of data to the channel.

    Args:
        channel: Connected channel
        data: Bytes to send

    Raises:
        TransportError: If a send writes nothing or fails
    """
    view = memoryview(data)
    total = len(view)
    offset = 0
    while offset < total:
        try:
            sent = channel.send(view[offset:])
        except OSError as exc:
            raise TransportError(
                f"send failed after {offset} of {total} bytes: {exc}"
            ) from exc
        if not sent:
            raise ConnectionClosedError(
                f"connection closed after sending {offset} of {total} bytes"
            )
        offset += sent


def read_exact(channel: Channel, n: int) -> bytes:
    """
    Read exactly n bytes from the channel.

    Args:
        channel: Connected channel
        n: Number of bytes required

    Returns:
        n bytes

    Raises:
        ValueError: If n is negative
        TransportError: If the peer closes or the read fails before n bytes
            have arrived
    """
    if n < 0:
        raise ValueError("cannot read a negative number of bytes")

    buf = bytearray()
    while len(buf) < n:
        try:
            chunk = channel.recv(n - len(buf))
        except OSError as exc:
            raise TransportError(
                f"receive failed after {len(buf)} of {n} bytes: {exc}"
            ) from exc
        if not chunk:
            raise ConnectionClosedError(
                f"connection closed after {len(buf)} of {n} bytes"
            )
        buf += chunk
    return bytes(buf)


def open_connection(host: str, port: int,
                    timeout: Optional[float] = None) -> socket.socket:
    """
    Connect a TCP socket to host:port.

    Args:
        host: Server address or name
        port: Server port
        timeout: Optional per-operation deadline in seconds, applied to the
            connect and to every later send/recv. None blocks indefinitely.

    Raises:
        TransportError: If the connection cannot be established
    """
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        raise TransportError(f"connect to {host}:{port} failed: {exc}") from exc
    sock.settimeout(timeout)
    logger.debug("connected to %s:%d", host, port)
    return sock


def close_quietly(channel: Optional[Channel]) -> None:
    """Close a channel; close errors are logged, not raised."""
    if channel is None:
        return
    try:
        channel.close()
    except OSError as exc:
        logger.warning("error while closing channel: %s", exc)
