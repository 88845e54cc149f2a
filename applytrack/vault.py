"""Credential decryption for stored mailbox passwords.

Defines the CredentialVault protocol and a pass-through default. Stores
with encryption at rest implement the same interface.
"""
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class CredentialVault(Protocol):
    """Protocol for turning a stored secret into a usable password."""

    def decrypt(self, ciphertext: str) -> Optional[str]:
        """Return the plaintext, or None when the secret cannot be decrypted."""
        ...


class PlainTextVault:
    """Default vault for passwords stored without encryption."""

    def decrypt(self, ciphertext: str) -> Optional[str]:
        return ciphertext or None
