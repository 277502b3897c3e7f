# Core Cryptography Module
"""
Process-wide crypto backend state and secret-handling helpers:
- One-time `cryptography` backend initialization with self-test
- Wipeable, non-copyable buffers for key material
"""

from .backend import initialize, is_initialized, require_initialized
from .secret_buffer import SecretBuffer

__all__ = [
    'initialize',
    'is_initialized',
    'require_initialized',
    'SecretBuffer',
]
