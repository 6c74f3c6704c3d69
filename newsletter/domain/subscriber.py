"""Subscriber value objects.

``SubscriberEmail`` and ``SubscriberName`` can only be built through
``parse()``, so holding one means the value has already been validated.
Raw values are never logged.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from newsletter.core.errors import ValidationError

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}")
_MAX_EMAIL_LENGTH = 320
_MAX_NAME_LENGTH = 256
_FORBIDDEN_NAME_CHARACTERS = frozenset('/()"<>\\{}')


@dataclass(frozen=True, slots=True)
class SubscriberEmail:
    value: str

    @classmethod
    def parse(cls, raw: str) -> SubscriberEmail:
        """Return a lowercased, whitespace-stripped address or raise ``ValidationError``."""
        stripped = raw.strip().lower()
        if not stripped:
            raise ValidationError("Subscriber email is empty")
        if len(stripped) > _MAX_EMAIL_LENGTH:
            raise ValidationError(f"Subscriber email is longer than {_MAX_EMAIL_LENGTH} characters")
        if not _EMAIL_RE.fullmatch(stripped):
            logger.debug("Rejected subscriber email (length=%d)", len(stripped))
            raise ValidationError("Subscriber email is not a valid address")
        return cls(stripped)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class SubscriberName:
    value: str

    @classmethod
    def parse(cls, raw: str) -> SubscriberName:
        stripped = raw.strip()
        if not stripped:
            raise ValidationError("Subscriber name is empty")
        if len(stripped) > _MAX_NAME_LENGTH:
            raise ValidationError(f"Subscriber name is longer than {_MAX_NAME_LENGTH} characters")
        if any(ch in _FORBIDDEN_NAME_CHARACTERS for ch in stripped):
            raise ValidationError("Subscriber name contains a forbidden character")
        return cls(stripped)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class NewSubscriber:
    email: SubscriberEmail
    name: SubscriberName

    @classmethod
    def parse(cls, *, email: str, name: str) -> NewSubscriber:
        return cls(email=SubscriberEmail.parse(email), name=SubscriberName.parse(name))
