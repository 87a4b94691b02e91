from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from typing import Any

import sentry_sdk

CONTEXT_FIELDS = ("request_id", "user_id", "stripe_event_id", "stripe_event_type")

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


class RequestContextFilter(logging.Filter):
    """Inject request and webhook metadata from ContextVars into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - formatting only
        context = _log_context.get({})
        for field in CONTEXT_FIELDS:
            setattr(record, field, context.get(field))
        return True


def push_request_context(request_id: str) -> Token:
    return _log_context.set({"request_id": request_id})


def pop_request_context(token: Token) -> None:
    _log_context.reset(token)


def _update_context(**values: Any) -> None:
    context = _log_context.get({})
    if context:
        context.update(values)
    else:  # middleware bypassed (tests, direct service calls)
        _log_context.set({"request_id": None, **values})


def set_user_context(user_id: str | None) -> None:
    _update_context(user_id=user_id)
    sentry_sdk.set_user({"id": user_id} if user_id else None)


def set_event_context(event_id: str | None, event_type: str | None) -> None:
    _update_context(stripe_event_id=event_id, stripe_event_type=event_type)
    sentry_sdk.set_tag("stripe.event_type", event_type or "unknown")


__all__ = [
    "CONTEXT_FIELDS",
    "RequestContextFilter",
    "push_request_context",
    "pop_request_context",
    "set_event_context",
    "set_user_context",
]
