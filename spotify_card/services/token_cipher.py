"""Symmetric encryption utilities for protecting stored tokens."""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

_PREFIX = "fernet:"


class TokenCipherService:
    """Encrypt tokens at rest with a Fernet key derived from a secret.

    Ciphertexts carry a ``fernet:`` prefix so values written before
    encryption was enabled still read back as plaintext. Without a secret the
    service passes values through unchanged.
    """

    def __init__(self, *, secret: Optional[str] = None) -> None:
        self._fernet: Fernet | None = None
        if secret:
            digest = hashlib.sha256(secret.encode("utf-8")).digest()
            self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        if self._fernet is None:
            return plaintext
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return _PREFIX + token.decode("utf-8")

    def decrypt(self, stored: str) -> str:
        """Return the plaintext for a stored value, encrypted or legacy."""
        if not stored.startswith(_PREFIX):
            return stored
        if self._fernet is None:
            raise ValueError("Encrypted token found but no encryption secret is configured.")
        try:
            plaintext = self._fernet.decrypt(stored[len(_PREFIX):].encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to decrypt token; invalid ciphertext provided."
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService"]
