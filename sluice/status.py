"""Commit status aggregation for merge candidates.

A pull request's verdict is reduced from the combined status of every
commit it contains:

- if any required context never reported on any commit, ``incomplete``;
- otherwise the first of ``pending``, ``error``, ``failure`` present
  across the commits wins;
- otherwise ``success``.

Completeness is checked before any state, and an in-flight check always
outranks a settled one, so a verdict of success means every commit settled
successfully with every required context present.
"""

from __future__ import annotations

import enum
import typing as typ

from sluice.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    from sluice.common.slug import RepositoryRef
    from sluice.github.client import GitHubClient
    from sluice.github.models import CombinedStatus

logger = get_logger(__name__)


class StatusVerdict(enum.StrEnum):
    """Aggregated commit-status verdict for a pull request."""

    SUCCESS = "success"
    PENDING = "pending"
    ERROR = "error"
    FAILURE = "failure"
    INCOMPLETE = "incomplete"


# Highest precedence first.
_STATE_PRECEDENCE: tuple[StatusVerdict, ...] = (
    StatusVerdict.PENDING,
    StatusVerdict.ERROR,
    StatusVerdict.FAILURE,
)


def aggregate_status(
    reports: typ.Iterable[CombinedStatus],
    required: typ.Iterable[str],
) -> StatusVerdict:
    """Reduce per-commit combined statuses to one verdict.

    Parameters
    ----------
    reports
        Combined status of each commit in the pull request.
    required
        Context names that must have reported on at least one commit.

    Returns
    -------
    StatusVerdict
        ``INCOMPLETE`` when a required context is missing, else the
        highest-precedence state observed.

    """
    states: set[str] = set()
    contexts: set[str] = set()
    for report in reports:
        log_debug(logger, "Checking commit %s state=%s", report.sha, report.state)
        states.add(report.state)
        contexts.update(report.contexts)

    for context in required:
        if context not in contexts:
            log_debug(logger, "Required context %s missing from %s", context, contexts)
            return StatusVerdict.INCOMPLETE

    for verdict in _STATE_PRECEDENCE:
        if verdict.value in states:
            return verdict
    return StatusVerdict.SUCCESS


async def fetch_commit_statuses(
    client: GitHubClient, repo: RepositoryRef, number: int
) -> list[CombinedStatus]:
    """Return the combined status of each commit of a pull request, in order."""
    commits = await client.list_pr_commits(repo, number)
    return [await client.get_combined_status(repo, commit.sha) for commit in commits]


async def get_status(
    client: GitHubClient,
    repo: RepositoryRef,
    number: int,
    required: typ.Iterable[str],
) -> StatusVerdict:
    """Fetch the commit statuses of a pull request and aggregate them."""
    reports = await fetch_commit_statuses(client, repo, number)
    return aggregate_status(reports, required)
