"""
kxchannel - Main Entry Point

Connects to a server, performs the ephemeral key exchange and prints the
single message the server sends.

Usage:
    kxchannel-client <server_ip> [port]
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import ClientConfig
from .core_crypto.backend import initialize
from .errors import KXChannelError
from .integration.session import run_client


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="kxchannel-client",
        description="Receive one encrypted message over an ephemeral X25519 channel.",
    )
    p.add_argument("host", help="server address")
    p.add_argument("port", nargs="?", type=int,
                   help="server port (default 12345 or $KXCHANNEL_PORT)")
    p.add_argument("--max-message-size", type=int,
                   help="largest accepted ciphertext in bytes")
    p.add_argument("--timeout", type=float,
                   help="socket deadline in seconds for each read/write")
    p.add_argument("--log-level", help="logging level (default WARNING)")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the client; returns the process exit code."""
    try:
        initialize()
    except KXChannelError as exc:
        print(f"{exc.kind}: {exc}", file=sys.stderr)
        return 1

    args = parse_args(argv)

    try:
        config = ClientConfig.from_env(args.host).with_overrides(
            port=args.port,
            max_message_size=args.max_message_size,
            timeout=args.timeout,
            log_level=args.log_level,
        )
    except ValueError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Connecting to {config.address}...")
    try:
        plaintext = run_client(config)
    except KXChannelError as exc:
        print(f"{exc.kind}: {exc}", file=sys.stderr)
        return 1

    print(f"Received message ({len(plaintext)} bytes):")
    print(plaintext.decode("utf-8", errors="replace"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
