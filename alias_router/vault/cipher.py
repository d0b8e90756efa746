"""Fernet encryption for provider API keys at rest."""

from __future__ import annotations

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

from alias_router.core.config import DEV_ENCRYPTION_KEY
from alias_router.core.exceptions import VaultError

logger = logging.getLogger("alias_router.vault")


class KeyCipher:
    """Symmetric cipher keyed by the process-wide vault secret.

    The secret is stretched with SHA-256 into a 32-byte Fernet key, so any
    string works as ``AI_ENCRYPTION_KEY``. Fernet authenticates ciphertexts,
    which means a rotated or wrong secret fails loudly instead of yielding
    garbage.
    """

    def __init__(self, secret: str | None) -> None:
        if not secret:
            logger.warning(
                "AI_ENCRYPTION_KEY not set; using the development key",
                extra={"event": "vault_dev_key"},
            )
            secret = DEV_ENCRYPTION_KEY
        derived = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(derived))

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            raise VaultError("Refusing to encrypt an empty API key")
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError, ValueError) as exc:
            raise VaultError(
                "Decryption failed: the stored key was encrypted with a different "
                "secret or is corrupted"
            ) from exc


__all__ = ["KeyCipher"]
