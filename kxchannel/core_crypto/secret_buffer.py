"""
Wipeable buffers for key material.

Python's garbage collector frees memory eventually but never clears it.
SecretBuffer keeps key bytes in a single mutable bytearray that is owned by
one object, cannot be copied or pickled, and is overwritten with zeros when
wipe() is called or when the `with` block using it exits.
"""

import hmac
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]


class SecretBuffer:
    """
    Owned, non-copyable container for secret bytes.

    Example:
        with SecretBuffer(os.urandom(32)) as key:
            cipher = ChaCha20Poly1305Cipher(key)
            ...
        # key is zeroed here
    """

    __slots__ = ('_buf', '_wiped')

    def __init__(self, data: BytesLike):
        self._buf = bytearray(data)
        self._wiped = False

    @property
    def raw(self) -> bytearray:
        """The live buffer. Do not keep references past wipe()."""
        if self._wiped:
            raise ValueError("secret buffer has been wiped")
        return self._buf

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Overwrite the contents with zeros. Idempotent."""
        for i in range(len(self._buf)):
            self._buf[i] = 0
        self._wiped = True

    def __len__(self) -> int:
        return len(self._buf)

    def __enter__(self) -> 'SecretBuffer':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __eq__(self, other) -> bool:
        if not isinstance(other, SecretBuffer):
            return NotImplemented
        if self._wiped or other._wiped:
            return False
        return hmac.compare_digest(self._buf, other._buf)

    __hash__ = None

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else f"{len(self._buf)} bytes"
        return f"SecretBuffer(<{state}>)"

    def __copy__(self):
        raise TypeError("SecretBuffer cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("SecretBuffer cannot be copied")

    def __reduce__(self):
        raise TypeError("SecretBuffer cannot be pickled")
