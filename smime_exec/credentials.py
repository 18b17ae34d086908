"""Credential handling for the database password.

The password travels to the tool on its command line, so it has to exist
as bytes for the lifetime of one invocation. These helpers keep it in a
mutable buffer and overwrite that buffer as soon as the invocation is
over:

- Secure zeroization of byte arrays
- A wrapper type that clears itself on exit, deletion or request
- Resolution of the accepted credential sources (value or provider)

Python may still hold copies made by the interpreter (for example the
argument vector built for the child process); clearing is best-effort.
"""

import ctypes
from typing import Callable, Union

from smime_exec.errors import CredentialError


def secure_zero(data: bytearray) -> None:
    """Securely zero out a bytearray.

    Uses ctypes.memset to overwrite memory in place.

    Args:
        data: The bytearray to zero. Must be a mutable bytearray, not bytes.
    """
    if not isinstance(data, bytearray):
        raise TypeError("secure_zero requires a bytearray, not bytes")

    if len(data) == 0:
        return

    buffer_type = ctypes.c_char * len(data)
    buffer = buffer_type.from_buffer(data)
    ctypes.memset(ctypes.addressof(buffer), 0, len(data))


class Credential:
    """A password buffer that zeros itself when cleared.

    Example:
        with Credential(b"db-password") as credential:
            args = [..., "-p", credential.to_bytes()]
            run(args)
        # buffer is zeroed here
    """

    def __init__(self, data: Union[str, bytes, bytearray]):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._data = bytearray(data)
        self._cleared = False

    @property
    def data(self) -> bytearray:
        """Access the underlying buffer."""
        if self._cleared:
            raise CredentialError("Credential has been cleared")
        return self._data

    @property
    def cleared(self) -> bool:
        return self._cleared

    def to_bytes(self) -> bytes:
        """Copy out as bytes (for the argument vector - use sparingly)."""
        return bytes(self.data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        state = "cleared" if self._cleared else f"{len(self._data)} bytes"
        return f"<Credential {state}>"

    def clear(self) -> None:
        """Securely clear the buffer."""
        if not self._cleared:
            secure_zero(self._data)
            self._cleared = True

    def __enter__(self) -> "Credential":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.clear()

    def __del__(self) -> None:
        self.clear()


CredentialSource = Union[
    str,
    bytes,
    bytearray,
    Credential,
    Callable[[], Union[str, bytes, bytearray, Credential]],
]


def resolve_credential(source: CredentialSource) -> Credential:
    """Turn any accepted credential source into a fresh Credential.

    A callable is treated as an interactive provider and called once.
    A passed-in Credential is copied, so the caller's own object is left
    alone; a passed-in bytearray is zeroed once copied.

    Raises:
        CredentialError: No credential, an empty one, or a cleared one
    """
    if callable(source):
        source = source()

    if source is None:
        raise CredentialError("No credential supplied")

    if isinstance(source, Credential):
        credential = Credential(source.data)
    elif isinstance(source, bytearray):
        credential = Credential(source)
        secure_zero(source)
    elif isinstance(source, (str, bytes)):
        credential = Credential(source)
    else:
        raise CredentialError(f"Unsupported credential type: {type(source).__name__}")

    if len(credential) == 0:
        credential.clear()
        raise CredentialError("Credential is empty")
    return credential
