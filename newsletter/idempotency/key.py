from __future__ import annotations

import re
from dataclasses import dataclass

from newsletter.core.errors import ValidationError

MAX_KEY_LENGTH = 50
_ALLOWED_RE = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(frozen=True, slots=True)
class IdempotencyKey:
    """Client-supplied token identifying one logical publish command."""

    value: str

    @classmethod
    def parse(cls, raw: str) -> IdempotencyKey:
        if not raw:
            raise ValidationError("The idempotency key cannot be empty")
        if len(raw) > MAX_KEY_LENGTH:
            raise ValidationError(
                f"The idempotency key must be at most {MAX_KEY_LENGTH} characters long"
            )
        if not _ALLOWED_RE.fullmatch(raw):
            raise ValidationError(
                "The idempotency key may only contain letters, digits, '-' and '_'"
            )
        return cls(raw)

    def __str__(self) -> str:
        return self.value
