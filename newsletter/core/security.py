from __future__ import annotations

import hashlib
import secrets
import string
from dataclasses import dataclass

_TOKEN_ALPHABET = string.ascii_letters + string.digits


def generate_token(length: int = 25) -> str:
    """Return a random case-sensitive alphanumeric token."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


@dataclass(slots=True)
class SecurityService:
    token_salt: str

    def hash_token(self, token: str) -> str:
        payload = f"{self.token_salt}:{token}".encode("utf-8")
        return hashlib.sha256(payload).hexdigest()
