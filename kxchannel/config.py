"""
Client configuration.

Values come from, in increasing priority: built-in defaults, KXCHANNEL_*
environment variables, command line options.

    KXCHANNEL_PORT              server port (default 12345)
    KXCHANNEL_MAX_MESSAGE_SIZE  largest accepted ciphertext in bytes
    KXCHANNEL_TIMEOUT           per-operation socket deadline in seconds
    KXCHANNEL_LOG_LEVEL         logging level name (default WARNING)
"""

import logging
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .messaging.secure_channel import DEFAULT_MAX_MESSAGE_SIZE

DEFAULT_PORT = 12345
DEFAULT_LOG_LEVEL = "WARNING"

ENV_PREFIX = "KXCHANNEL_"


@dataclass(frozen=True)
class ClientConfig:
    """Settings for one client session."""
    host: str
    port: int = DEFAULT_PORT
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE
    timeout: Optional[float] = None
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self):
        if not self.host:
            raise ValueError("host must not be empty")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        if self.max_message_size <= 0:
            raise ValueError("max_message_size must be positive")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"unknown log level: {self.log_level}")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls, host: str,
                 environ: Optional[Mapping[str, str]] = None) -> 'ClientConfig':
        """
        Build a config for host from KXCHANNEL_* environment variables.

        Raises:
            ValueError: If a variable is set to an invalid value
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        port = env.get(ENV_PREFIX + "PORT")
        if port:
            kwargs['port'] = _parse(int, "PORT", port)
        max_size = env.get(ENV_PREFIX + "MAX_MESSAGE_SIZE")
        if max_size:
            kwargs['max_message_size'] = _parse(int, "MAX_MESSAGE_SIZE", max_size)
        timeout = env.get(ENV_PREFIX + "TIMEOUT")
        if timeout:
            kwargs['timeout'] = _parse(float, "TIMEOUT", timeout)
        log_level = env.get(ENV_PREFIX + "LOG_LEVEL")
        if log_level:
            kwargs['log_level'] = log_level

        return cls(host=host, **kwargs)

    def with_overrides(self, **overrides) -> 'ClientConfig':
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _parse(convert, name: str, value: str):
    try:
        return convert(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} is not a valid number: {value!r}") from None
