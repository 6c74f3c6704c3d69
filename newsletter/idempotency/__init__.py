"""Idempotency store for the publish command.

Usage::

    key = IdempotencyKey.parse(form.idempotency_key)
    match try_processing(session_factory, key, user_id):
        case ReturnSavedResponse(response):
            return response
        case StartProcessing(session):
            ...  # business writes on ``session``
            return save_response(session, key, user_id, response)
"""
from newsletter.idempotency.key import IdempotencyKey
from newsletter.idempotency.persistence import (
    NextAction,
    ReturnSavedResponse,
    StartProcessing,
    get_saved_response,
    purge_expired_responses,
    save_response,
    try_processing,
)

__all__ = [
    "IdempotencyKey",
    "NextAction",
    "ReturnSavedResponse",
    "StartProcessing",
    "get_saved_response",
    "purge_expired_responses",
    "save_response",
    "try_processing",
]
