"""Detect approvals that predate the latest push to a pull request."""

from __future__ import annotations

import typing as typ

from sluice.config import APPROVAL_LABEL

if typ.TYPE_CHECKING:
    import datetime as dt

    from sluice.github.models import Commit, IssueEvent

_LABELED_EVENT = "labeled"


class StalenessError(RuntimeError):
    """Raised when approval freshness cannot be determined."""

    def __init__(self, message: str, *, number: int) -> None:
        """Record the pull request the check was for."""
        self.number = number
        super().__init__(message)

    @classmethod
    def no_commit_dates(cls, number: int) -> StalenessError:
        """Return an error for a pull request without dated commits."""
        return cls(f"PR {number} has no commit with a committer date", number=number)


class ApprovalNotFoundError(StalenessError):
    """Raised when a pull request carries the approval label but no event for it."""

    @classmethod
    def for_pr(cls, number: int, label: str) -> ApprovalNotFoundError:
        """Return the error for ``number``."""
        return cls(
            f"Couldn't find time for {label!r} label, skipping PR {number}",
            number=number,
        )


def last_modified_time(commits: typ.Iterable[Commit], *, number: int) -> dt.datetime:
    """Return the latest committer date across a pull request's commits."""
    latest: dt.datetime | None = None
    for commit in commits:
        committed_at = commit.committed_at
        if committed_at is not None and (latest is None or committed_at > latest):
            latest = committed_at
    if latest is None:
        raise StalenessError.no_commit_dates(number)
    return latest


def latest_approval_time(
    events: typ.Iterable[IssueEvent], *, label: str = APPROVAL_LABEL
) -> dt.datetime | None:
    """Return when ``label`` was most recently applied.

    The maximum is taken so an approval removed and re-applied counts from
    the re-application.
    """
    latest: dt.datetime | None = None
    for event in events:
        if event.event != _LABELED_EVENT or event.label_name != label:
            continue
        if latest is None or event.created_at > latest:
            latest = event.created_at
    return latest


def is_approval_current(
    events: typ.Iterable[IssueEvent],
    last_commit_time: dt.datetime,
    *,
    number: int,
    label: str = APPROVAL_LABEL,
) -> bool:
    """Return True when the approval was applied strictly after the last commit.

    Raises
    ------
    ApprovalNotFoundError
        If no ``labeled`` event for ``label`` exists.

    """
    approved_at = latest_approval_time(events, label=label)
    if approved_at is None:
        raise ApprovalNotFoundError.for_pr(number, label)
    return last_commit_time < approved_at
