from __future__ import annotations

import logging
from types import TracebackType
from typing import Optional, Type

from domain.errors import LinkError
from domain.models import LogSeverity
from domain.repositories import AuditSink

logger = logging.getLogger(__name__)


def classify(exc: BaseException, error: LinkError) -> LinkError:
    """
    Turn an internal failure into the caller-facing `error`.

    The internal detail is logged and kept as the error's cause; the
    returned error only carries its static message.
    """

    logger.error("%s: %r", error.message, exc)
    error.__cause__ = exc
    return error


def failure_detail(error: LinkError) -> str:
    """Stringified original failure, falling back to the static message."""

    cause = error.__cause__
    if cause is None:
        return error.message
    return str(cause) or repr(cause)


async def audit(sink: AuditSink, error: LinkError, token: Optional[str] = None) -> LinkError:
    """Record a classified error on the audit sink at FAILURE severity."""

    detail = failure_detail(error)
    if token is None:
        content = detail
    else:
        content = f"Error with a user\n\ntoken: {token}\n\n{detail}"
    await sink.log(content, LogSeverity.FAILURE)
    return error


class FailureGuard:
    """
    Async context manager applying classify-then-audit to its block.

    Any exception raised inside the block is classified into `error`,
    audited, and re-raised as that error. An already classified
    `LinkError` is audited and re-raised unchanged.
    """

    def __init__(self, sink: AuditSink, error: LinkError, token: Optional[str] = None) -> None:
        self._sink = sink
        self._error = error
        self._token = token

    async def __aenter__(self) -> "FailureGuard":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        if exc is None or not isinstance(exc, Exception):
            return False

        if isinstance(exc, LinkError):
            classified = exc
        else:
            classified = classify(exc, self._error)
        await audit(self._sink, classified, self._token)
        raise classified from classified.__cause__


def guard(sink: AuditSink, error: LinkError, token: Optional[str] = None) -> FailureGuard:
    return FailureGuard(sink, error, token)
