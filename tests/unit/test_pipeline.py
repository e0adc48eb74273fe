"""Unit tests for the candidate evaluation pipeline."""

from __future__ import annotations

import dataclasses
import datetime as dt
import typing as typ

import pytest

from sluice.common.slug import RepositoryRef
from sluice.config import NEEDS_OK_TO_MERGE_LABEL, FilterConfig, PollConfig
from sluice.errors import ActionFailedError, PipelineError
from sluice.gates import STALE_APPROVAL_COMMENT
from sluice.pipeline import CandidatePipeline, PassResult
from sluice.whitelist import WhitelistCache
from tests.helpers.fake_github import MUTATING_METHODS, FakeGitHubClient
from tests.helpers.github_builders import BASE_TIME, CandidateSpec, make_issue, make_pr

if typ.TYPE_CHECKING:
    from sluice.github.client import GitHubClient
    from sluice.github.models import Issue, PullRequest

_REPO = RepositoryRef(owner="kubernetes", name="kubernetes")
_CONFIG = FilterConfig(
    committers=("alice",),
    whitelist_override_label="ok-to-merge",
    dont_require_e2e_label="e2e-not-required",
    e2e_status_context="",
    required_status_contexts=("ci/test",),
)
_FAST = PollConfig(interval_s=0.0, mergeability_wait_s=0.0)


@dataclasses.dataclass(slots=True)
class _RecordingAction:
    """Action that records the pull requests it was called with."""

    numbers: list[int] = dataclasses.field(default_factory=list)
    fail_on: int | None = None

    async def __call__(
        self, client: GitHubClient, pr: PullRequest, issue: Issue
    ) -> None:
        del client
        assert pr.number == issue.number
        self.numbers.append(pr.number)
        if pr.number == self.fail_on:
            msg = f"merge of {pr.number} rejected"
            raise RuntimeError(msg)


def _client(*specs: CandidateSpec) -> FakeGitHubClient:
    client = FakeGitHubClient()
    # No teams: the whitelist falls back to the configured committers.
    client.fail_on("list_org_teams")
    for spec in specs:
        spec.register(client)
    return client


async def _run(
    client: FakeGitHubClient,
    config: FilterConfig = _CONFIG,
    *,
    action: _RecordingAction | None = None,
    stop_after_first: bool = False,
) -> tuple[PassResult, _RecordingAction]:
    action = action or _RecordingAction()
    pipeline = CandidatePipeline(
        client, _REPO, config, WhitelistCache(config, _REPO), poll=_FAST
    )
    result = await pipeline.run(action, stop_after_first=stop_after_first)
    return result, action


def _mutating_calls(client: FakeGitHubClient) -> list[tuple[str, object]]:
    return [call for call in client.calls if call[0] in MUTATING_METHODS]


@pytest.mark.asyncio
async def test_passing_candidate_reaches_action_once() -> None:
    """PR #42 with every gate satisfied is handed to the action exactly once."""
    client = _client(CandidateSpec(number=42))

    result, action = await _run(client)

    assert action.numbers == [42]
    assert result.actioned == [42]
    assert result.skipped == {}
    assert client.mutations == []


@pytest.mark.asyncio
async def test_unwhitelisted_author_gets_marker_and_comment() -> None:
    """PR #7 by an unknown author is marked and commented on, not actioned."""
    client = _client(CandidateSpec(number=7, author="mallory"))

    result, action = await _run(client)

    assert action.numbers == []
    assert 7 in result.skipped
    assert client.mutations[0] == ("add_labels", 7, (NEEDS_OK_TO_MERGE_LABEL,))
    assert client.mutations[1][0] == "create_comment"
    assert len(client.mutations) == 2
    assert client.calls_to("list_pr_commits") == 0, "Status gate must not be reached"


@pytest.mark.asyncio
async def test_marker_already_present_is_not_repeated() -> None:
    """Re-running with the marker present posts nothing new."""
    client = _client(
        CandidateSpec(
            number=7,
            author="mallory",
            labels=("lgtm", "cla: yes", NEEDS_OK_TO_MERGE_LABEL),
        )
    )

    result, action = await _run(client)

    assert action.numbers == []
    assert 7 in result.skipped
    assert client.mutations == []


@pytest.mark.asyncio
async def test_override_label_admits_unknown_author_and_cleans_marker() -> None:
    """The override label lets the PR through and the marker is removed."""
    client = _client(
        CandidateSpec(
            number=8,
            author="mallory",
            labels=("lgtm", "cla: yes", "ok-to-merge", NEEDS_OK_TO_MERGE_LABEL),
        )
    )

    result, action = await _run(client)

    assert action.numbers == [8]
    assert client.mutations == [("remove_label", 8, NEEDS_OK_TO_MERGE_LABEL)]
    assert result.actioned == [8]


@pytest.mark.asyncio
async def test_marker_cleanup_failure_does_not_block_candidate() -> None:
    """A failed marker removal is logged and evaluation continues."""
    client = _client(
        CandidateSpec(
            number=9, labels=("lgtm", "cla: yes", NEEDS_OK_TO_MERGE_LABEL)
        )
    )
    client.fail_on("remove_label")

    _, action = await _run(client)

    assert action.numbers == [9]


@pytest.mark.asyncio
async def test_stale_approval_is_withdrawn() -> None:
    """An approval older than the last push is commented on and removed."""
    client = _client(
        CandidateSpec(number=11, approved_at=BASE_TIME - dt.timedelta(minutes=5))
    )

    result, action = await _run(client)

    assert action.numbers == []
    assert result.skipped[11] == "pushed after LGTM"
    assert client.mutations == [
        ("create_comment", 11, STALE_APPROVAL_COMMENT),
        ("remove_label", 11, "lgtm"),
    ]


@pytest.mark.asyncio
async def test_missing_approval_event_skips_without_side_effects() -> None:
    """No lgtm event is an invariant violation: skip and move on."""
    client = _client(CandidateSpec(number=12, approved_at=None), CandidateSpec(13))

    result, action = await _run(client)

    assert action.numbers == [13]
    assert result.skipped[12] == "approval freshness unknown"
    assert client.mutations == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("mergeable", "actioned", "get_pr_calls"),
    [
        ((None, True), [14], 2),
        ((None, None), [], 2),
        ((False,), [], 1),
    ],
)
async def test_mergeability_gate_rechecks_unknown_once(
    mergeable: tuple[bool | None, ...], actioned: list[int], get_pr_calls: int
) -> None:
    """Unknown mergeability is re-fetched once; still unknown or false skips."""
    client = _client(CandidateSpec(number=14, mergeable=mergeable))

    _, action = await _run(client)

    assert action.numbers == actioned
    assert client.calls_to("get_pr") == get_pr_calls


@pytest.mark.asyncio
@pytest.mark.parametrize("state", ["pending", "error", "failure"])
async def test_non_success_status_skips(state: str) -> None:
    """Pending is not waited on; any non-success verdict skips."""
    client = _client(CandidateSpec(number=15, status_states=(state, "success")))

    result, action = await _run(client)

    assert action.numbers == []
    assert result.skipped[15] == "status not successful"
    assert client.calls_to("get_combined_status") == 1


@pytest.mark.asyncio
async def test_e2e_context_required_unless_exempt() -> None:
    """The exemption label removes the e2e context from the requirements."""
    config = dataclasses.replace(_CONFIG, e2e_status_context="e2e")
    client = _client(
        CandidateSpec(number=16),
        CandidateSpec(number=17, labels=("lgtm", "cla: yes", "e2e-not-required")),
    )

    result, action = await _run(client, config)

    assert action.numbers == [17]
    assert result.skipped[16] == "status not successful"


@pytest.mark.asyncio
async def test_identity_and_number_gates_skip_quietly() -> None:
    """Missing authors and old numbers are skipped before any fetch."""
    config = dataclasses.replace(_CONFIG, min_pr_number=100)
    client = _client(
        CandidateSpec(number=150, author=None),
        CandidateSpec(number=50),
        CandidateSpec(number=200),
    )

    result, action = await _run(client, config)

    assert action.numbers == [200]
    assert set(result.skipped) == {50, 150}
    assert client.calls_to("get_pr") == 1


@pytest.mark.asyncio
async def test_labels_rechecked_on_supplied_candidates() -> None:
    """Candidates whose labels changed since listing are skipped."""
    client = _client(CandidateSpec(number=18))
    stale_listing = [make_issue(18, labels=("cla: yes",))]
    pipeline = CandidatePipeline(
        client, _REPO, _CONFIG, WhitelistCache(_CONFIG, _REPO), poll=_FAST
    )
    action = _RecordingAction()

    result = await pipeline.run(action, candidates=stale_listing)

    assert action.numbers == []
    assert result.skipped[18] == "missing requisite labels"
    assert client.calls_to("list_open_pr_issues") == 0


@pytest.mark.asyncio
async def test_label_removed_after_listing_skips_candidate() -> None:
    """The fetched pull request's labels win over the listing's."""
    client = _client(CandidateSpec(number=5), CandidateSpec(number=6))
    client.pulls[5] = [make_pr(5, sha="sha-5", labels=("cla: yes",))]

    result, action = await _run(client)

    assert action.numbers == [6]
    assert result.skipped[5] == "missing requisite labels"
    assert client.calls_to("list_pr_commits") == 1
    assert client.mutations == []


@pytest.mark.asyncio
async def test_label_removed_during_mergeability_wait_skips_candidate() -> None:
    """Labels are checked again on the re-fetched pull request."""
    client = _client(CandidateSpec(number=8, mergeable=(None,)))
    client.pulls[8].append(make_pr(8, sha="sha-8", labels=("cla: yes",)))

    result, action = await _run(client)

    assert action.numbers == []
    assert result.skipped[8] == "missing requisite labels"
    assert client.calls_to("get_combined_status") == 0


@pytest.mark.asyncio
async def test_override_label_added_after_listing_is_honoured() -> None:
    """Whitelist and marker checks read the fetched labels."""
    client = _client(
        CandidateSpec(
            number=9,
            author="mallory",
            labels=("lgtm", "cla: yes", NEEDS_OK_TO_MERGE_LABEL),
        )
    )
    client.pulls[9] = [
        make_pr(
            9,
            author="mallory",
            sha="sha-9",
            labels=("lgtm", "cla: yes", NEEDS_OK_TO_MERGE_LABEL, "ok-to-merge"),
        )
    ]

    result, action = await _run(client)

    assert action.numbers == [9]
    assert result.skipped == {}
    assert client.mutations == [("remove_label", 9, NEEDS_OK_TO_MERGE_LABEL)]


@pytest.mark.asyncio
async def test_pull_request_fetch_failure_skips_candidate() -> None:
    """A per-candidate fetch failure does not end the pass."""
    client = _client(CandidateSpec(number=19), CandidateSpec(number=20))
    client.fail_on("get_pr", key=19)

    result, action = await _run(client)

    assert action.numbers == [20]
    assert result.skipped[19] == "pull request fetch failed"


@pytest.mark.asyncio
async def test_action_failure_aborts_pass() -> None:
    """A failing action stops the pass and surfaces the error."""
    client = _client(CandidateSpec(number=21), CandidateSpec(number=22))
    action = _RecordingAction(fail_on=21)

    with pytest.raises(ActionFailedError) as excinfo:
        await _run(client, action=action)

    assert excinfo.value.number == 21
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert action.numbers == [21]


@pytest.mark.asyncio
async def test_listing_failure_aborts_pass() -> None:
    """Failing to list candidates is fatal."""
    client = _client(CandidateSpec(number=23))
    client.fail_on("list_open_pr_issues")

    with pytest.raises(PipelineError, match="kubernetes/kubernetes"):
        await _run(client)


@pytest.mark.asyncio
async def test_stop_after_first_success() -> None:
    """Only the first passing candidate is actioned."""
    client = _client(
        CandidateSpec(number=24, author="mallory"),
        CandidateSpec(number=25),
        CandidateSpec(number=26),
    )

    result, action = await _run(client, stop_after_first=True)

    assert action.numbers == [25]
    assert result.actioned == [25]


@pytest.mark.asyncio
async def test_whitelist_computed_once_per_pass() -> None:
    """Every candidate reuses the same whitelist lookup."""
    client = _client(*(CandidateSpec(number=n) for n in (30, 31, 32)))

    await _run(client)

    assert client.calls_to("list_org_teams") == 1


@pytest.mark.asyncio
async def test_dry_run_makes_same_decisions_without_mutations() -> None:
    """Dry run skips and continues exactly like a live pass, silently."""
    specs = (
        CandidateSpec(number=40),
        CandidateSpec(number=41, author="mallory"),
        CandidateSpec(number=42, approved_at=BASE_TIME - dt.timedelta(hours=1)),
        CandidateSpec(number=43, labels=("lgtm", "cla: yes", NEEDS_OK_TO_MERGE_LABEL)),
        CandidateSpec(number=44, status_states=("failure",)),
    )
    live_client = _client(*specs)
    dry_client = _client(*specs)

    live, _ = await _run(live_client)
    dry, _ = await _run(dry_client, _CONFIG.with_dry_run(dry_run=True))

    assert dry.actioned == live.actioned == [40, 43]
    assert set(dry.skipped) == set(live.skipped) == {41, 42, 44}
    assert _mutating_calls(dry_client) == []
    assert _mutating_calls(live_client) != []
