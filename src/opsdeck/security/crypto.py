"""
opsdeck.security.crypto

Fernet encryption for connection profiles.

Responsibilities:
- Build a `Fernet` cipher from settings.
- Encrypt/decrypt JSON documents, raising a domain error on a bad token.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from opsdeck.errors import OpsDeckError
from opsdeck.settings import Settings


class DecryptionFailed(OpsDeckError):
    status_code = 500


def build_cipher(settings: Settings) -> Fernet:
    key = settings.secret_key.strip()
    if not key:
        # Dev/test only: a stable key derived from the service name.
        digest = hashlib.sha256(f"{settings.service_name}:dev-key".encode()).digest()
        key = base64.urlsafe_b64encode(digest).decode()
    return Fernet(key.encode())


class ProfileCipher:
    def __init__(self, fernet: Fernet) -> None:
        self._fernet = fernet

    def encrypt(self, document: dict[str, Any]) -> str:
        raw = json.dumps(document, separators=(",", ":"), sort_keys=True).encode()
        return self._fernet.encrypt(raw).decode()

    def decrypt(self, token: str) -> dict[str, Any]:
        try:
            raw = self._fernet.decrypt(token.encode())
        except InvalidToken as e:
            raise DecryptionFailed("Stored profile could not be decrypted") from e
        return json.loads(raw)


# --- Module Notes -----------------------------------------------------------
# Generate a production key with `Fernet.generate_key()` and set OPSDECK_SECRET_KEY.
