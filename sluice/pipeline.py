"""Candidate evaluation pipeline for the merge queue.

One pass lists open pull requests carrying the approval and CLA labels and
walks them in the order GitHub returned them. Each candidate goes through
the gates in :mod:`sluice.gates` in a fixed order; the first gate that does
not pass drops the candidate for this pass. Survivors are handed to the
caller's action.

Per-candidate fetch failures are logged and skipped. Only a failed listing
or a failing action aborts the pass.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import time
import typing as typ

import httpx
import msgspec

from sluice.config import REQUIRED_LABELS, FilterConfig, PollConfig
from sluice.errors import ActionFailedError, PipelineError
from sluice.gates import (
    AddLabels,
    CreateComment,
    GateOutcome,
    Pass,
    RemoveLabel,
    SideEffect,
    Skip,
    SkipWithActions,
    identity_gate,
    label_gate,
    marker_cleanup_gate,
    mergeability_gate,
    min_number_gate,
    required_contexts,
    staleness_gate,
    status_gate,
    whitelist_gate,
)
from sluice.github.errors import GitHubAPIError, GitHubResponseShapeError
from sluice.github.models import Mergeability
from sluice.logging import get_logger, log_debug, log_error, log_warning
from sluice.observability import PassEventLogger
from sluice.polling import CancellationToken, validate_status, wait_for_mergeability
from sluice.staleness import StalenessError, is_approval_current, last_modified_time

if typ.TYPE_CHECKING:
    from sluice.common.slug import RepositoryRef
    from sluice.github.client import GitHubClient
    from sluice.github.models import Issue, PullRequest
    from sluice.whitelist import WhitelistCache

logger = get_logger(__name__)

_FETCH_ERRORS = (GitHubAPIError, GitHubResponseShapeError, httpx.HTTPError)

type PRAction = typ.Callable[
    [GitHubClient, PullRequest, Issue], typ.Awaitable[None]
]


@dataclasses.dataclass(slots=True)
class PassResult:
    """Decisions made during one pass."""

    repo_slug: str
    candidates: int = 0
    actioned: list[int] = dataclasses.field(default_factory=list)
    skipped: dict[int, str] = dataclasses.field(default_factory=dict)


class CandidatePipeline:
    """Evaluate merge candidates of one repository against a policy.

    Parameters
    ----------
    client
        GitHub capability used for every fetch and side effect.
    repo
        Repository whose pull requests are evaluated.
    config
        Merge policy for the pass.
    whitelist
        Cache of whitelisted authors; computed once and reused across the
        pass (and later passes until invalidated).
    poll
        Timing for the mergeability re-check and status polling.

    """

    def __init__(  # noqa: PLR0913
        self,
        client: GitHubClient,
        repo: RepositoryRef,
        config: FilterConfig,
        whitelist: WhitelistCache,
        *,
        poll: PollConfig | None = None,
        event_logger: PassEventLogger | None = None,
    ) -> None:
        """Store collaborators for later passes."""
        self._client = client
        self._repo = repo
        self._config = config
        self._whitelist = whitelist
        self._poll = poll or PollConfig()
        self._events = event_logger or PassEventLogger()

    async def run(
        self,
        action: PRAction,
        *,
        stop_after_first: bool = False,
        candidates: typ.Sequence[Issue] | None = None,
        cancel: CancellationToken | None = None,
    ) -> PassResult:
        """Run one pass, invoking ``action`` on every candidate that passes.

        Parameters
        ----------
        action
            Coroutine function called with the client, the pull request and
            its issue for each surviving candidate.
        stop_after_first
            Stop after the first successful action.
        candidates
            Pre-fetched candidates; when omitted they are listed from GitHub.
        cancel
            Token interrupting the pass's waits.

        Raises
        ------
        PipelineError
            If the candidate listing fails.
        ActionFailedError
            If ``action`` raises; the pass stops at that candidate.

        """
        started = time.monotonic()
        cancel = cancel or CancellationToken()
        result = PassResult(repo_slug=self._repo.slug)
        try:
            issues = (
                list(candidates)
                if candidates is not None
                else await self._list_candidates()
            )
            result.candidates = len(issues)
            whitelist = await self._whitelist.get(self._client)
            self._events.log_pass_started(
                repo_slug=self._repo.slug,
                candidates=len(issues),
                dry_run=self._config.dry_run,
            )
            for listed in issues:
                evaluated = await self._evaluate(listed, whitelist, result, cancel)
                if evaluated is None:
                    continue
                pr, issue = evaluated
                await self._run_action(action, pr, issue)
                result.actioned.append(pr.number)
                if stop_after_first:
                    break
        except Exception as exc:
            self._events.log_pass_failed(
                repo_slug=self._repo.slug,
                error=exc,
                duration=_elapsed(started),
            )
            raise

        self._events.log_pass_completed(
            repo_slug=self._repo.slug,
            actioned=result.actioned,
            skipped=len(result.skipped),
            duration=_elapsed(started),
        )
        return result

    async def _list_candidates(self) -> list[Issue]:
        try:
            return await self._client.list_open_pr_issues(self._repo, REQUIRED_LABELS)
        except _FETCH_ERRORS as exc:
            raise PipelineError.listing_failed(self._repo.slug) from exc

    async def _run_action(self, action: PRAction, pr: PullRequest, issue: Issue) -> None:
        try:
            await action(self._client, pr, issue)
        except Exception as exc:
            log_error(logger, "Failed to run user function on PR %d: %s", pr.number, exc)
            raise ActionFailedError.for_pr(pr.number, exc) from exc
        self._events.log_candidate_actioned(repo_slug=self._repo.slug, number=pr.number)

    async def _evaluate(  # noqa: C901, PLR0911
        self,
        issue: Issue,
        whitelist: frozenset[str],
        result: PassResult,
        cancel: CancellationToken,
    ) -> tuple[PullRequest, Issue] | None:
        """Return the fresh pull request and issue when every gate passes.

        Labels are taken from each fetched pull request, so a label removed
        after the listing stops the candidate.
        """
        number = issue.number
        config = self._config
        for outcome in (
            identity_gate(issue),
            min_number_gate(issue, config),
            label_gate(issue),
        ):
            if not await self._apply(number, outcome, result):
                return None
        log_debug(logger, "----==== %d ====----", number)

        try:
            pr = await self._client.get_pr(self._repo, number)
        except _FETCH_ERRORS as exc:
            log_error(logger, "Error getting pull request %d: %s", number, exc)
            self._skip(result, number, "pull request fetch failed")
            return None

        issue = _with_labels_of(issue, pr)
        if not await self._apply(number, label_gate(issue), result):
            return None
        if not await self._apply(
            number, whitelist_gate(pr, issue, whitelist, config), result
        ):
            return None
        await self._apply(number, marker_cleanup_gate(issue, config), result)

        try:
            approval_current = await self._approval_current(number)
        except (*_FETCH_ERRORS, StalenessError) as exc:
            log_error(logger, "Error validating LGTM: %s, skipping: %d", exc, number)
            self._skip(result, number, "approval freshness unknown")
            return None
        if not await self._apply(
            number,
            staleness_gate(approval_current=approval_current, config=config),
            result,
        ):
            return None

        try:
            pr = await wait_for_mergeability(
                self._client, self._repo, pr, poll=self._poll, cancel=cancel
            )
        except _FETCH_ERRORS as exc:
            log_error(logger, "Error re-fetching pull request %d: %s", number, exc)
            self._skip(result, number, "pull request fetch failed")
            return None
        issue = _with_labels_of(issue, pr)
        if not await self._apply(number, label_gate(issue), result):
            return None
        if pr.mergeability is Mergeability.UNKNOWN:
            log_error(
                logger,
                "No mergeability information for %s %d, skipping.",
                pr.title,
                number,
            )
        if not await self._apply(number, mergeability_gate(pr), result):
            return None

        try:
            status_ok = await validate_status(
                self._client,
                self._repo,
                number,
                required_contexts(issue, config),
                wait_on_pending=False,
                poll=self._poll,
                cancel=cancel,
            )
        except _FETCH_ERRORS as exc:
            log_error(logger, "Error validating PR %d status: %s", number, exc)
            self._skip(result, number, "status fetch failed")
            return None
        if not await self._apply(number, status_gate(status_ok=status_ok), result):
            return None
        return pr, issue

    async def _approval_current(self, number: int) -> bool:
        commits = await self._client.list_pr_commits(self._repo, number)
        last_commit_time = last_modified_time(commits, number=number)
        events = await self._client.list_issue_events(self._repo, number)
        return is_approval_current(events, last_commit_time, number=number)

    async def _apply(self, number: int, outcome: GateOutcome, result: PassResult) -> bool:
        """Carry out a gate's side effects and return whether to continue."""
        match outcome:
            case Pass(effects=effects):
                await self._perform(number, effects)
                return True
            case Skip(reason=reason):
                self._skip(result, number, reason)
                return False
            case SkipWithActions(reason=reason, effects=effects):
                await self._perform(number, effects)
                self._skip(result, number, reason)
                return False

    async def _perform(self, number: int, effects: typ.Sequence[SideEffect]) -> None:
        """Apply side effects in order; failures are logged, never raised."""
        for effect in effects:
            try:
                match effect:
                    case AddLabels(labels=labels):
                        await self._client.add_labels(self._repo, number, labels)
                    case RemoveLabel(label=label):
                        await self._client.remove_label(self._repo, number, label)
                    case CreateComment(body=body):
                        await self._client.create_comment(self._repo, number, body)
            except _FETCH_ERRORS as exc:
                log_warning(
                    logger, "PR %d: failed to %s: %s", number, effect.describe(), exc
                )

    def _skip(self, result: PassResult, number: int, reason: str) -> None:
        result.skipped[number] = reason
        self._events.log_candidate_skipped(
            repo_slug=self._repo.slug, number=number, reason=reason
        )


def _with_labels_of(issue: Issue, pr: PullRequest) -> Issue:
    return msgspec.structs.replace(issue, labels=list(pr.labels))


def _elapsed(started: float) -> dt.timedelta:
    return dt.timedelta(seconds=time.monotonic() - started)
