"""Structured log events for merge-queue passes.

Every pass emits a start event, one event per candidate decision, and a
completion or failure event. Failures carry an error category suitable for
alert routing.
"""

from __future__ import annotations

import enum
import typing as typ

import httpx

from sluice.config import ConfigError
from sluice.errors import ActionFailedError, PipelineError
from sluice.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
)
from sluice.logging import get_logger, log_error, log_info
from sluice.polling import PollCancelledError, PollError
from sluice.staleness import StalenessError

if typ.TYPE_CHECKING:
    import datetime as dt

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500


class PassEventType(enum.StrEnum):
    """Structured log event types for a pass."""

    PASS_STARTED = "pass.started"
    PASS_COMPLETED = "pass.completed"
    PASS_FAILED = "pass.failed"
    CANDIDATE_SKIPPED = "candidate.skipped"
    CANDIDATE_ACTIONED = "candidate.actioned"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    CONFIGURATION = "configuration"
    POLICY = "policy"
    ACTION = "action"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (ActionFailedError, ErrorCategory.ACTION),
    (GitHubResponseShapeError, ErrorCategory.SCHEMA_DRIFT),
    (GitHubConfigError, ErrorCategory.CONFIGURATION),
    (ConfigError, ErrorCategory.CONFIGURATION),
    (StalenessError, ErrorCategory.POLICY),
    (PollCancelledError, ErrorCategory.CANCELLED),
    (PollError, ErrorCategory.TRANSIENT),
    (httpx.TransportError, ErrorCategory.TRANSIENT),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    A failed listing is categorised by the GitHub error that caused it.
    """
    if (
        isinstance(exc, PipelineError)
        and not isinstance(exc, ActionFailedError)
        and exc.__cause__ is not None
    ):
        exc = exc.__cause__

    if isinstance(exc, GitHubAPIError):
        if (
            exc.status_code is not None
            and exc.status_code >= _HTTP_SERVER_ERROR_THRESHOLD
        ):
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class PassEventLogger:
    """Emit structured pass events via femtologging."""

    def log_pass_started(self, *, repo_slug: str, candidates: int, dry_run: bool) -> None:
        """Log the start of a pass once candidates are listed."""
        log_info(
            logger,
            "[%s] repo_slug=%s candidates=%d dry_run=%s",
            PassEventType.PASS_STARTED,
            repo_slug,
            candidates,
            dry_run,
        )

    def log_candidate_skipped(self, *, repo_slug: str, number: int, reason: str) -> None:
        """Log a candidate dropped by a gate."""
        log_info(
            logger,
            "[%s] repo_slug=%s number=%d reason=%s",
            PassEventType.CANDIDATE_SKIPPED,
            repo_slug,
            number,
            reason,
        )

    def log_candidate_actioned(self, *, repo_slug: str, number: int) -> None:
        """Log a candidate handed to the action."""
        log_info(
            logger,
            "[%s] repo_slug=%s number=%d",
            PassEventType.CANDIDATE_ACTIONED,
            repo_slug,
            number,
        )

    def log_pass_completed(
        self,
        *,
        repo_slug: str,
        actioned: typ.Sequence[int],
        skipped: int,
        duration: dt.timedelta,
    ) -> None:
        """Log pass completion with decision counts."""
        log_info(
            logger,
            "[%s] repo_slug=%s duration_seconds=%.3f actioned=%s skipped=%d",
            PassEventType.PASS_COMPLETED,
            repo_slug,
            duration.total_seconds(),
            ",".join(str(number) for number in actioned) or "-",
            skipped,
        )

    def log_pass_failed(
        self,
        *,
        repo_slug: str,
        error: BaseException,
        duration: dt.timedelta,
    ) -> None:
        """Log a pass aborted by a fatal error."""
        log_error(
            logger,
            "[%s] repo_slug=%s duration_seconds=%.3f error_type=%s "
            "error_category=%s error_message=%s",
            PassEventType.PASS_FAILED,
            repo_slug,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )
