"""Error taxonomy shared by the publish path and the delivery worker.

Only ``ValidationError``, ``ConflictError`` and ``PersistenceError`` ever
reach an HTTP caller.  ``DeliveryError`` is raised by the email clients and
is fully contained inside the delivery worker.
"""
from __future__ import annotations


class NewsletterError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(NewsletterError, ValueError):
    """User input failed validation.  Maps to 400 Bad Request."""


class ConflictError(NewsletterError):
    """An identical request is still being processed.  Maps to 409.

    Retryable: the client should resubmit after ``retry_after_s`` seconds.
    """

    def __init__(self, message: str, retry_after_s: int = 1) -> None:
        super().__init__(message)
        self.retry_after_s = retry_after_s


class PersistenceError(NewsletterError):
    """The database failed; the transaction was rolled back.  Maps to 500."""


class DeliveryError(NewsletterError):
    """The email transport failed to hand a message over."""
