"""Merge-readiness gates as pure decision functions.

Each gate inspects already-fetched data and returns a tagged outcome:

- :class:`Pass` lets the candidate continue, optionally with best-effort
  side effects (removing a stale marker label);
- :class:`Skip` drops the candidate for this pass;
- :class:`SkipWithActions` drops it and describes the comment and label
  changes that explain why.

Gates never talk to GitHub. The pipeline fetches what they need and carries
out the side effects they return. A gate evaluated with ``dry_run`` set
never returns side effects.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from sluice.config import (
    APPROVAL_LABEL,
    NEEDS_OK_TO_MERGE_LABEL,
    REQUIRED_LABELS,
    FilterConfig,
)
from sluice.github.models import Issue, Mergeability, PullRequest, has_label, has_labels

NOT_WHITELISTED_COMMENT = (
    "The author of this PR is not in the whitelist for merge, can one of the "
    "admins add the '{override}' label?"
)
STALE_APPROVAL_COMMENT = "LGTM was before last commit, removing LGTM"


@dataclasses.dataclass(frozen=True, slots=True)
class AddLabels:
    """Add labels to the candidate."""

    labels: tuple[str, ...]

    def describe(self) -> str:
        """Return a short description for logs."""
        return f"add labels {', '.join(self.labels)}"


@dataclasses.dataclass(frozen=True, slots=True)
class RemoveLabel:
    """Remove one label from the candidate."""

    label: str

    def describe(self) -> str:
        """Return a short description for logs."""
        return f"remove label {self.label}"


@dataclasses.dataclass(frozen=True, slots=True)
class CreateComment:
    """Post a comment on the candidate."""

    body: str

    def describe(self) -> str:
        """Return a short description for logs."""
        return "post comment"


type SideEffect = AddLabels | RemoveLabel | CreateComment


@dataclasses.dataclass(frozen=True, slots=True)
class Pass:
    """Continue to the next gate after applying ``effects`` (best effort)."""

    effects: tuple[SideEffect, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class Skip:
    """Drop the candidate for this pass."""

    reason: str


@dataclasses.dataclass(frozen=True, slots=True)
class SkipWithActions:
    """Drop the candidate after applying ``effects``."""

    reason: str
    effects: tuple[SideEffect, ...]


type GateOutcome = Pass | Skip | SkipWithActions

PASS = Pass()


def identity_gate(issue: Issue) -> GateOutcome:
    """Skip candidates GitHub returned without an author."""
    if not issue.author:
        return Skip("no author information")
    return PASS


def min_number_gate(issue: Issue, config: FilterConfig) -> GateOutcome:
    """Skip candidates numbered below ``min_pr_number``."""
    if issue.number < config.min_pr_number:
        return Skip(f"number below minimum {config.min_pr_number}")
    return PASS


def label_gate(issue: Issue) -> GateOutcome:
    """Require the approval and contributor-agreement labels."""
    if not has_labels(issue.labels, REQUIRED_LABELS):
        return Skip("missing requisite labels")
    return PASS


def whitelist_gate(
    pr: PullRequest,
    issue: Issue,
    whitelist: typ.Container[str],
    config: FilterConfig,
) -> GateOutcome:
    """Require a whitelisted author or the override label.

    A failing candidate is marked with the needs-ok-to-merge label and an
    explanatory comment, once: when the marker is already present nothing is
    posted again.
    """
    author = pr.author or issue.author
    if has_label(issue.labels, config.whitelist_override_label) or (
        author is not None and author in whitelist
    ):
        return PASS

    reason = (
        f"{author} isn't in whitelist and "
        f"{config.whitelist_override_label} isn't present"
    )
    if config.dry_run:
        return Skip(f"{reason} (dry run)")
    if has_label(issue.labels, NEEDS_OK_TO_MERGE_LABEL):
        return Skip(reason)
    return SkipWithActions(
        reason,
        (
            AddLabels((NEEDS_OK_TO_MERGE_LABEL,)),
            CreateComment(
                NOT_WHITELISTED_COMMENT.format(override=config.whitelist_override_label)
            ),
        ),
    )


def marker_cleanup_gate(issue: Issue, config: FilterConfig) -> GateOutcome:
    """Remove the needs-ok-to-merge marker from a candidate that passed the whitelist."""
    if config.dry_run or not has_label(issue.labels, NEEDS_OK_TO_MERGE_LABEL):
        return PASS
    return Pass((RemoveLabel(NEEDS_OK_TO_MERGE_LABEL),))


def staleness_gate(*, approval_current: bool, config: FilterConfig) -> GateOutcome:
    """Reject approvals older than the latest commit, withdrawing the approval."""
    if approval_current:
        return PASS
    reason = "pushed after LGTM"
    if config.dry_run:
        return Skip(f"{reason} (dry run)")
    return SkipWithActions(
        reason,
        (CreateComment(STALE_APPROVAL_COMMENT), RemoveLabel(APPROVAL_LABEL)),
    )


def mergeability_gate(pr: PullRequest) -> GateOutcome:
    """Require GitHub to report the pull request as mergeable."""
    match pr.mergeability:
        case Mergeability.MERGEABLE:
            return PASS
        case Mergeability.CONFLICTING:
            return Skip("not mergeable")
        case Mergeability.UNKNOWN:
            return Skip("no mergeability information")


def required_contexts(issue: Issue, config: FilterConfig) -> tuple[str, ...]:
    """Return the status contexts a candidate must have reported.

    The primary e2e context is required unless an exemption label is
    configured and present on the candidate.
    """
    contexts = tuple(config.required_status_contexts)
    exempt = bool(config.dont_require_e2e_label) and has_label(
        issue.labels, config.dont_require_e2e_label
    )
    if not exempt and config.e2e_status_context:
        contexts = (*contexts, config.e2e_status_context)
    return contexts


def status_gate(*, status_ok: bool) -> GateOutcome:
    """Require a successful aggregated commit status."""
    return PASS if status_ok else Skip("status not successful")
