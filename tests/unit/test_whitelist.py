"""Unit tests for the whitelist cache."""

from __future__ import annotations

import httpx
import pytest

from sluice.common.slug import RepositoryRef
from sluice.config import FilterConfig
from sluice.github.models import Team, User
from sluice.whitelist import WhitelistCache, users_with_commit
from tests.helpers.fake_github import FakeGitHubClient

_REPO = RepositoryRef(owner="kubernetes", name="kubernetes")
_CONFIG = FilterConfig(
    additional_user_whitelist=("trusted-bot",),
    committers=("static-committer",),
)


def _client_with_teams() -> FakeGitHubClient:
    client = FakeGitHubClient()
    client.teams = [
        Team(id=1, slug="maintainers"),
        Team(id=2, slug="readers"),
        Team(id=3, slug="no-access"),
    ]
    client.team_permissions = {
        "maintainers": {"pull": True, "push": True},
        "readers": {"pull": True, "push": False},
        "no-access": None,
    }
    client.team_members = {
        "maintainers": [User(login="bob"), User(login="alice")],
        "readers": [User(login="mallory")],
    }
    return client


@pytest.mark.asyncio
async def test_users_with_commit_keeps_pushing_teams_only() -> None:
    """Only members of teams with push permission are returned."""
    client = _client_with_teams()

    users = await users_with_commit(client, _REPO)

    assert users == ["alice", "bob"]
    assert client.calls_to("list_team_members") == 1


@pytest.mark.asyncio
async def test_member_listing_failure_skips_that_team() -> None:
    """One unreadable team does not lose the others."""
    client = _client_with_teams()
    client.team_permissions["readers"] = {"push": True}
    client.fail_on("list_team_members", key="maintainers")

    users = await users_with_commit(client, _REPO)

    assert users == ["mallory"]


@pytest.mark.asyncio
async def test_permission_lookup_failure_skips_that_team() -> None:
    """A team whose repository access cannot be read is left out."""
    client = _client_with_teams()
    client.team_permissions["readers"] = {"push": True}
    client.fail_on("team_repo_permissions", key="maintainers")

    users = await users_with_commit(client, _REPO)

    assert users == ["mallory"]
    assert client.calls_to("team_repo_permissions") == 3
    assert client.calls_to("list_team_members") == 1


@pytest.mark.asyncio
async def test_refresh_unions_dynamic_users_with_additional_whitelist() -> None:
    """The dynamic list replaces the static committers."""
    cache = WhitelistCache(_CONFIG, _REPO)

    users = await cache.refresh(_client_with_teams())

    assert users == frozenset({"alice", "bob", "trusted-bot"})


@pytest.mark.parametrize(
    "failure",
    [
        None,
        httpx.ConnectError("connection refused"),
    ],
)
@pytest.mark.asyncio
async def test_refresh_falls_back_to_static_committers(
    failure: Exception | None,
) -> None:
    """A failed team listing degrades to the configured committers."""
    client = _client_with_teams()
    client.fail_on("list_org_teams", failure)
    cache = WhitelistCache(_CONFIG, _REPO)

    users = await cache.refresh(client)

    assert users == frozenset({"static-committer", "trusted-bot"})
    assert cache.cached == users


@pytest.mark.asyncio
async def test_get_reuses_cached_whitelist_until_invalidated() -> None:
    """Teams are queried once per cache lifetime."""
    client = _client_with_teams()
    cache = WhitelistCache(_CONFIG, _REPO)

    first = await cache.get(client)
    second = await cache.get(client)
    assert first is second
    assert client.calls_to("list_org_teams") == 1

    cache.invalidate()
    assert cache.cached is None
    await cache.get(client)
    assert client.calls_to("list_org_teams") == 2
