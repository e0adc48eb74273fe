"""Authors allowed to merge without a manual override.

The whitelist is the union of configured extra users and everyone with push
access to the repository through an organisation team. The team lookup is
best effort: when it fails the static committer list stands in for it.

The computed set is cached on a :class:`WhitelistCache` that the pipeline
receives by reference, so one pass queries GitHub for it at most once.
"""

from __future__ import annotations

import typing as typ

import httpx

from sluice.github.errors import GitHubAPIError, GitHubResponseShapeError
from sluice.logging import get_logger, log_debug, log_error, log_info

if typ.TYPE_CHECKING:
    from sluice.common.slug import RepositoryRef
    from sluice.config import FilterConfig
    from sluice.github.client import GitHubClient

logger = get_logger(__name__)

_PUSH_PERMISSION = "push"
_FETCH_ERRORS = (GitHubAPIError, GitHubResponseShapeError, httpx.HTTPError)


async def users_with_commit(client: GitHubClient, repo: RepositoryRef) -> list[str]:
    """Return logins with push access to ``repo`` through an organisation team.

    A team whose repository lookup fails is treated as having no access, and
    a team whose members cannot be listed is skipped. Failure to list the
    organisation's teams propagates.
    """
    teams = await client.list_org_teams(repo.owner)

    pushing_teams = []
    for team in teams:
        try:
            permissions = await client.team_repo_permissions(repo.owner, team, repo)
        except _FETCH_ERRORS as exc:
            log_debug(logger, "Ignoring team %s: %s", team.slug, exc)
            continue
        if permissions and permissions.get(_PUSH_PERMISSION):
            pushing_teams.append(team)

    logins: set[str] = set()
    for team in pushing_teams:
        try:
            members = await client.list_team_members(repo.owner, team)
        except _FETCH_ERRORS as exc:
            log_error(logger, "Failed to list members of team %s: %s", team.slug, exc)
            continue
        logins.update(member.login for member in members if member.login)
    return sorted(logins)


class WhitelistCache:
    """Lazily computed whitelist shared by every candidate of a pass."""

    def __init__(self, config: FilterConfig, repo: RepositoryRef) -> None:
        """Bind the cache to a policy and repository."""
        self._config = config
        self._repo = repo
        self._users: frozenset[str] | None = None

    @property
    def cached(self) -> frozenset[str] | None:
        """Return the cached whitelist without fetching."""
        return self._users

    async def refresh(self, client: GitHubClient) -> frozenset[str]:
        """Recompute the whitelist and cache it.

        Never raises for fetch failures; they fall back to the static
        committer list.
        """
        users = set(self._config.additional_user_whitelist)
        try:
            users.update(await users_with_commit(client, self._repo))
        except _FETCH_ERRORS as exc:
            log_info(
                logger,
                "Falling back to static committers list for %s: %s",
                self._repo.slug,
                exc,
            )
            users.update(self._config.committers)
        self._users = frozenset(users)
        return self._users

    async def get(self, client: GitHubClient) -> frozenset[str]:
        """Return the cached whitelist, computing it on first use."""
        if self._users is None:
            return await self.refresh(client)
        return self._users

    def invalidate(self) -> None:
        """Forget the cached whitelist so the next ``get`` recomputes it."""
        self._users = None
