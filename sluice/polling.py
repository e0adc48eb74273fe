"""Blocking waits for results GitHub has not settled yet.

Three waits exist: one re-check of an unknown mergeability flag, polling the
aggregated status until it stops being pending, and polling until a freshly
triggered re-test shows up as pending. The status loops are unbounded unless
``PollConfig.max_attempts`` is set, and every sleep can be interrupted
through a :class:`CancellationToken`.
"""

from __future__ import annotations

import asyncio
import typing as typ

from sluice.config import PollConfig
from sluice.github.models import Mergeability
from sluice.logging import get_logger, log_debug, log_info
from sluice.status import StatusVerdict, get_status

if typ.TYPE_CHECKING:
    from sluice.common.slug import RepositoryRef
    from sluice.github.client import GitHubClient
    from sluice.github.models import PullRequest

logger = get_logger(__name__)


class PollError(RuntimeError):
    """Base class for polling failures."""


class PollTimeoutError(PollError):
    """Raised when a polling loop exhausts its attempts."""

    @classmethod
    def exhausted(cls, what: str, number: int, attempts: int) -> PollTimeoutError:
        """Return an error for a loop that gave up."""
        return cls(f"PR {number}: gave up waiting for {what} after {attempts} attempts")


class PollCancelledError(PollError):
    """Raised when a wait is cancelled through its token."""

    @classmethod
    def during(cls, what: str) -> PollCancelledError:
        """Return an error for a wait cancelled while waiting for ``what``."""
        return cls(f"cancelled while waiting for {what}")


class CancellationToken:
    """Cooperative cancellation shared by the waits of one pass."""

    def __init__(self) -> None:
        """Start uncancelled."""
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        """Return True once :meth:`cancel` has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel current and future waits."""
        self._event.set()

    def raise_if_cancelled(self, what: str) -> None:
        """Raise :class:`PollCancelledError` when cancelled."""
        if self.cancelled:
            raise PollCancelledError.during(what)

    async def sleep(self, seconds: float, *, what: str) -> None:
        """Sleep for ``seconds`` unless cancelled first.

        Raises
        ------
        PollCancelledError
            If the token is cancelled before or during the sleep.

        """
        self.raise_if_cancelled(what)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return
        raise PollCancelledError.during(what)


def _check_attempts(
    poll: PollConfig, attempts: int, *, what: str, number: int
) -> None:
    if poll.max_attempts is not None and attempts >= poll.max_attempts:
        raise PollTimeoutError.exhausted(what, number, attempts)


async def validate_status(  # noqa: PLR0913
    client: GitHubClient,
    repo: RepositoryRef,
    number: int,
    required: typ.Sequence[str],
    *,
    wait_on_pending: bool,
    poll: PollConfig | None = None,
    cancel: CancellationToken | None = None,
) -> bool:
    """Return True when the pull request's aggregated status is success.

    With ``wait_on_pending`` unset a pending verdict returns False at once.
    With it set, a pending verdict is re-fetched every ``interval_s`` until
    it settles.

    Raises
    ------
    PollTimeoutError
        If ``max_attempts`` fetches all came back pending.
    PollCancelledError
        If ``cancel`` is triggered between attempts.

    """
    poll = poll or PollConfig()
    cancel = cancel or CancellationToken()
    attempts = 0
    while True:
        cancel.raise_if_cancelled("status")
        verdict = await get_status(client, repo, number, required)
        attempts += 1
        if verdict is StatusVerdict.SUCCESS:
            return True
        if verdict is not StatusVerdict.PENDING or not wait_on_pending:
            log_debug(logger, "PR %d status is %s", number, verdict)
            return False
        _check_attempts(poll, attempts, what="status", number=number)
        log_debug(
            logger, "PR %d is pending, waiting for %.0f seconds", number, poll.interval_s
        )
        await cancel.sleep(poll.interval_s, what="status")


async def wait_for_pending(
    client: GitHubClient,
    repo: RepositoryRef,
    number: int,
    *,
    poll: PollConfig | None = None,
    cancel: CancellationToken | None = None,
) -> None:
    """Wait until the pull request's status becomes pending.

    Re-test requests are asynchronous; callers use this to make sure the new
    run has started before waiting for it to finish.
    """
    poll = poll or PollConfig()
    cancel = cancel or CancellationToken()
    attempts = 0
    while True:
        cancel.raise_if_cancelled("pending status")
        verdict = await get_status(client, repo, number, ())
        attempts += 1
        if verdict is StatusVerdict.PENDING:
            return
        _check_attempts(poll, attempts, what="pending status", number=number)
        log_debug(
            logger,
            "PR %d is not pending, waiting for %.0f seconds",
            number,
            poll.interval_s,
        )
        await cancel.sleep(poll.interval_s, what="pending status")


async def wait_for_mergeability(
    client: GitHubClient,
    repo: RepositoryRef,
    pr: PullRequest,
    *,
    poll: PollConfig | None = None,
    cancel: CancellationToken | None = None,
) -> PullRequest:
    """Return ``pr``, re-fetched once after a wait if mergeability was unknown.

    GitHub computes mergeability asynchronously and only caches it briefly,
    so a single delayed re-fetch usually resolves it. The returned pull
    request may still report :attr:`Mergeability.UNKNOWN`.
    """
    if pr.mergeability is not Mergeability.UNKNOWN:
        return pr
    poll = poll or PollConfig()
    cancel = cancel or CancellationToken()
    log_info(logger, "Waiting for mergeability on %s %d", pr.title, pr.number)
    await cancel.sleep(poll.mergeability_wait_s, what="mergeability")
    return await client.get_pr(repo, pr.number)
