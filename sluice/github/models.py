"""Typed GitHub REST payloads consumed by the merge queue.

Only the fields the candidate pipeline reads are declared; msgspec ignores
everything else GitHub sends.
"""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ

import msgspec


class User(msgspec.Struct, frozen=True, kw_only=True):
    """GitHub account reference."""

    login: str | None = None


class Label(msgspec.Struct, frozen=True, kw_only=True):
    """Issue label reference."""

    name: str | None = None


class PullRequestLinks(msgspec.Struct, frozen=True, kw_only=True):
    """Marker present on issues that are really pull requests."""

    url: str | None = None


class Issue(msgspec.Struct, frozen=True, kw_only=True):
    """Issue-shaped pull request summary returned by the issues listing."""

    number: int
    title: str = ""
    state: str = "open"
    user: User | None = None
    labels: list[Label] = msgspec.field(default_factory=list)
    pull_request: PullRequestLinks | None = None

    @property
    def author(self) -> str | None:
        """Return the author login, if GitHub supplied one."""
        return self.user.login if self.user is not None else None

    @property
    def is_pull_request(self) -> bool:
        """Return True when the issue is a pull request."""
        return self.pull_request is not None

    @property
    def label_names(self) -> tuple[str, ...]:
        """Return label names in the order GitHub reported them."""
        return tuple(label.name for label in self.labels if label.name is not None)


class Mergeability(enum.Enum):
    """Tri-state mergeability of a pull request."""

    MERGEABLE = "mergeable"
    CONFLICTING = "conflicting"
    UNKNOWN = "unknown"

    @classmethod
    def from_flag(cls, flag: bool | None) -> Mergeability:
        """Map GitHub's nullable ``mergeable`` flag onto the tri-state."""
        if flag is None:
            return cls.UNKNOWN
        return cls.MERGEABLE if flag else cls.CONFLICTING


class GitRef(msgspec.Struct, frozen=True, kw_only=True):
    """Head or base reference of a pull request."""

    sha: str
    ref: str = ""


class PullRequest(msgspec.Struct, frozen=True, kw_only=True):
    """Pull request detail as returned by ``GET /pulls/{number}``."""

    number: int
    title: str = ""
    user: User | None = None
    mergeable: bool | None = None
    head: GitRef | None = None
    labels: list[Label] = msgspec.field(default_factory=list)

    @property
    def author(self) -> str | None:
        """Return the author login, if GitHub supplied one."""
        return self.user.login if self.user is not None else None

    @property
    def mergeability(self) -> Mergeability:
        """Return the tri-state mergeability."""
        return Mergeability.from_flag(self.mergeable)


class GitActor(msgspec.Struct, frozen=True, kw_only=True):
    """Author or committer signature on a git commit."""

    name: str | None = None
    date: dt.datetime | None = None


class GitCommit(msgspec.Struct, frozen=True, kw_only=True):
    """Git-level commit data nested in a pull request commit."""

    committer: GitActor | None = None
    message: str = ""


class Commit(msgspec.Struct, frozen=True, kw_only=True):
    """Commit entry from ``GET /pulls/{number}/commits``."""

    sha: str
    commit: GitCommit | None = None

    @property
    def committed_at(self) -> dt.datetime | None:
        """Return the committer timestamp, when present."""
        if self.commit is None or self.commit.committer is None:
            return None
        return self.commit.committer.date


class RepoStatus(msgspec.Struct, frozen=True, kw_only=True):
    """Single status context reported against a commit."""

    context: str
    state: str


class CombinedStatus(msgspec.Struct, frozen=True, kw_only=True):
    """Combined status of every context reported for one commit."""

    state: str
    sha: str = ""
    statuses: list[RepoStatus] = msgspec.field(default_factory=list)

    @property
    def contexts(self) -> frozenset[str]:
        """Return the names of every context that reported."""
        return frozenset(status.context for status in self.statuses)


class IssueEvent(msgspec.Struct, frozen=True, kw_only=True):
    """Issue timeline event such as ``labeled`` or ``unlabeled``."""

    event: str
    created_at: dt.datetime
    label: Label | None = None

    @property
    def label_name(self) -> str | None:
        """Return the label the event refers to, if any."""
        return self.label.name if self.label is not None else None


class Team(msgspec.Struct, frozen=True, kw_only=True):
    """Organisation team."""

    id: int
    slug: str = ""
    name: str = ""


class TeamRepository(msgspec.Struct, frozen=True, kw_only=True):
    """Repository as seen through a team, including the team's permissions."""

    full_name: str = ""
    permissions: dict[str, bool] = msgspec.field(default_factory=dict)


def has_label(labels: typ.Iterable[Label | str], name: str) -> bool:
    """Return True when ``name`` is among ``labels`` (case-sensitive)."""
    for label in labels:
        label_name = label if isinstance(label, str) else label.name
        if label_name == name:
            return True
    return False


def has_labels(labels: typ.Iterable[Label | str], names: typ.Iterable[str]) -> bool:
    """Return True when every name in ``names`` is among ``labels``."""
    materialised = list(labels)
    return all(has_label(materialised, name) for name in names)
