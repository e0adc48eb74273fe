"""GitHub REST client used by the merge queue.

The client exposes exactly the capabilities the candidate pipeline needs:
page-numbered listings, single resource fetches, and the three mutating
issue actions (plus merging, for the CLI's merge action).
"""

from __future__ import annotations

import dataclasses
import os
import typing as typ
from urllib.parse import quote

import httpx
import msgspec

from sluice.logging import get_logger, log_debug

from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError
from .models import (
    CombinedStatus,
    Commit,
    Issue,
    IssueEvent,
    PullRequest,
    Team,
    TeamRepository,
    User,
)
from .ratelimit import (
    ANONYMOUS_RATE_PER_S,
    AUTHENTICATED_RATE_PER_S,
    DEFAULT_BURST,
    RateLimitedTransport,
    TokenBucket,
)

if typ.TYPE_CHECKING:
    from sluice.common.slug import RepositoryRef

logger = get_logger(__name__)

PER_PAGE = 100
_HTTP_ERROR_STATUS_THRESHOLD = 400
_HTTP_NOT_FOUND = 404
_REPOSITORY_MEDIA_TYPE = "application/vnd.github.v3.repository+json"


class GitHubClient(typ.Protocol):
    """Capabilities the merge queue consumes from GitHub."""

    async def list_open_pr_issues(
        self, repo: RepositoryRef, labels: typ.Sequence[str]
    ) -> list[Issue]:
        """Return open pull requests (as issues) carrying every label."""
        ...

    async def get_pr(self, repo: RepositoryRef, number: int) -> PullRequest:
        """Return the pull request detail."""
        ...

    async def list_pr_commits(self, repo: RepositoryRef, number: int) -> list[Commit]:
        """Return the commits of a pull request in push order."""
        ...

    async def get_combined_status(
        self, repo: RepositoryRef, sha: str
    ) -> CombinedStatus:
        """Return the combined status for one commit."""
        ...

    async def list_issue_events(
        self, repo: RepositoryRef, number: int
    ) -> list[IssueEvent]:
        """Return every event recorded against an issue or pull request."""
        ...

    async def list_org_teams(self, org: str) -> list[Team]:
        """Return every team of an organisation."""
        ...

    async def team_repo_permissions(
        self, org: str, team: Team, repo: RepositoryRef
    ) -> dict[str, bool] | None:
        """Return the team's permissions on a repository, or None without access."""
        ...

    async def list_team_members(self, org: str, team: Team) -> list[User]:
        """Return every member of a team."""
        ...

    async def add_labels(
        self, repo: RepositoryRef, number: int, labels: typ.Sequence[str]
    ) -> None:
        """Add labels to an issue or pull request."""
        ...

    async def remove_label(self, repo: RepositoryRef, number: int, label: str) -> None:
        """Remove one label from an issue or pull request."""
        ...

    async def create_comment(self, repo: RepositoryRef, number: int, body: str) -> None:
        """Post a comment on an issue or pull request."""
        ...

    async def merge_pr(
        self, repo: RepositoryRef, number: int, *, sha: str | None = None
    ) -> None:
        """Merge a pull request, optionally pinned to an expected head SHA."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubRESTConfig:
    """Configuration for :class:`GitHubRESTClient`.

    ``rate_per_s`` defaults to a conservative share of GitHub's hourly quota
    for authenticated clients and to a trickle for anonymous ones.
    """

    token: str | None = None
    endpoint: str = "https://api.github.com"
    timeout_s: float = 20.0
    user_agent: str = "sluice/0.1"
    rate_per_s: float | None = None
    burst: int = DEFAULT_BURST

    @property
    def effective_rate(self) -> float:
        """Return the throttle rate in requests per second."""
        if self.rate_per_s is not None:
            return self.rate_per_s
        return AUTHENTICATED_RATE_PER_S if self.token else ANONYMOUS_RATE_PER_S

    @classmethod
    def from_env(cls) -> GitHubRESTConfig:
        """Build configuration from ``SLUICE_GITHUB_*`` environment variables.

        - ``SLUICE_GITHUB_TOKEN``: optional API token.
        - ``SLUICE_GITHUB_API_URL``: REST endpoint (GitHub Enterprise support).
        - ``SLUICE_GITHUB_RATE_PER_S``: optional throttle override.

        """
        token = os.environ.get("SLUICE_GITHUB_TOKEN", "").strip() or None
        endpoint = (
            os.environ.get("SLUICE_GITHUB_API_URL", "").strip()
            or "https://api.github.com"
        )
        if not endpoint.startswith(("http://", "https://")):
            raise GitHubConfigError.invalid_endpoint(endpoint)

        rate_per_s: float | None = None
        raw_rate = os.environ.get("SLUICE_GITHUB_RATE_PER_S", "").strip()
        if raw_rate:
            try:
                rate_per_s = float(raw_rate)
            except ValueError as exc:
                raise GitHubConfigError.invalid_rate_value(raw_rate) from exc
            if rate_per_s <= 0:
                raise GitHubConfigError.invalid_rate(rate_per_s, DEFAULT_BURST)

        return cls(token=token, endpoint=endpoint, rate_per_s=rate_per_s)


def _last_page(response: httpx.Response) -> int:
    """Return the page number of the ``rel="last"`` link, or 0 when absent."""
    last = response.links.get("last")
    if not last or "url" not in last:
        return 0
    page = httpx.URL(last["url"]).params.get("page")
    if page is None or not page.isdigit():
        return 0
    return int(page)


def _decode[T](response: httpx.Response, target: type[T], path: str) -> T:
    try:
        return msgspec.json.decode(response.content, type=target)
    except msgspec.DecodeError as exc:
        raise GitHubResponseShapeError.undecodable(path, exc) from exc


class GitHubRESTClient:
    """httpx-backed implementation of :class:`GitHubClient`.

    Every request goes through a :class:`RateLimitedTransport`, so the token
    bucket is shared by all passes that reuse this client.
    """

    def __init__(
        self,
        config: GitHubRESTConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        bucket: TokenBucket | None = None,
    ) -> None:
        """Create the underlying HTTP client around a throttled transport."""
        self._config = config
        self._bucket = bucket or TokenBucket(config.effective_rate, config.burst)
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": config.user_agent,
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._client = httpx.AsyncClient(
            base_url=config.endpoint,
            timeout=config.timeout_s,
            headers=headers,
            transport=RateLimitedTransport(self._bucket, transport),
        )

    @property
    def bucket(self) -> TokenBucket:
        """Return the token bucket throttling this client."""
        return self._bucket

    async def aclose(self) -> None:
        """Close the HTTP client and its transport."""
        await self._client.aclose()

    async def __aenter__(self) -> GitHubRESTClient:
        """Return self for ``async with`` usage."""
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Close on context exit."""
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, typ.Any] | None = None,
        json: object | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        log_debug(logger, "GitHub %s %s params=%s", method, path, params)
        response = await self._client.request(
            method, path, params=params, json=json, headers=headers
        )
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(method, path, response.status_code)
        return response

    async def _paginate[T](
        self,
        path: str,
        item_type: type[T],
        params: dict[str, typ.Any] | None = None,
    ) -> list[T]:
        """Fetch every page of a listing.

        Pages are requested in order; the listing ends when the ``last`` link
        is missing or points at the page just fetched.
        """
        items: list[T] = []
        page = 1
        while True:
            log_debug(logger, "Fetching page %d of %s", page, path)
            response = await self._request(
                "GET",
                path,
                params={**(params or {}), "per_page": PER_PAGE, "page": page},
            )
            items.extend(_decode(response, list[item_type], path))
            last_page = _last_page(response)
            if last_page in (0, page):
                return items
            page += 1

    async def list_open_pr_issues(
        self, repo: RepositoryRef, labels: typ.Sequence[str]
    ) -> list[Issue]:
        """Return open pull requests (as issues) carrying every label.

        The issues API supports server-side label filtering, which keeps the
        listing small; plain issues are dropped from the result.
        """
        issues = await self._paginate(
            f"/repos/{repo.owner}/{repo.name}/issues",
            Issue,
            {"state": "open", "labels": ",".join(labels), "sort": "created"},
        )
        return [issue for issue in issues if issue.is_pull_request]

    async def get_pr(self, repo: RepositoryRef, number: int) -> PullRequest:
        """Return the pull request detail."""
        path = f"/repos/{repo.owner}/{repo.name}/pulls/{number}"
        response = await self._request("GET", path)
        return _decode(response, PullRequest, path)

    async def list_pr_commits(self, repo: RepositoryRef, number: int) -> list[Commit]:
        """Return the commits of a pull request in push order."""
        return await self._paginate(
            f"/repos/{repo.owner}/{repo.name}/pulls/{number}/commits", Commit
        )

    async def get_combined_status(
        self, repo: RepositoryRef, sha: str
    ) -> CombinedStatus:
        """Return the combined status for one commit."""
        path = f"/repos/{repo.owner}/{repo.name}/commits/{sha}/status"
        response = await self._request("GET", path)
        return _decode(response, CombinedStatus, path)

    async def list_issue_events(
        self, repo: RepositoryRef, number: int
    ) -> list[IssueEvent]:
        """Return every event recorded against an issue or pull request."""
        return await self._paginate(
            f"/repos/{repo.owner}/{repo.name}/issues/{number}/events", IssueEvent
        )

    async def list_org_teams(self, org: str) -> list[Team]:
        """Return every team of an organisation."""
        return await self._paginate(f"/orgs/{org}/teams", Team)

    async def team_repo_permissions(
        self, org: str, team: Team, repo: RepositoryRef
    ) -> dict[str, bool] | None:
        """Return the team's permissions on a repository, or None without access."""
        path = f"/orgs/{org}/teams/{team.slug}/repos/{repo.owner}/{repo.name}"
        try:
            response = await self._request(
                "GET", path, headers={"Accept": _REPOSITORY_MEDIA_TYPE}
            )
        except GitHubAPIError as exc:
            if exc.status_code == _HTTP_NOT_FOUND:
                return None
            raise
        if not response.content:
            return None
        return _decode(response, TeamRepository, path).permissions

    async def list_team_members(self, org: str, team: Team) -> list[User]:
        """Return every member of a team."""
        return await self._paginate(f"/orgs/{org}/teams/{team.slug}/members", User)

    async def add_labels(
        self, repo: RepositoryRef, number: int, labels: typ.Sequence[str]
    ) -> None:
        """Add labels to an issue or pull request."""
        await self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/issues/{number}/labels",
            json={"labels": list(labels)},
        )

    async def remove_label(self, repo: RepositoryRef, number: int, label: str) -> None:
        """Remove one label from an issue or pull request."""
        await self._request(
            "DELETE",
            f"/repos/{repo.owner}/{repo.name}/issues/{number}/labels/"
            f"{quote(label, safe='')}",
        )

    async def create_comment(self, repo: RepositoryRef, number: int, body: str) -> None:
        """Post a comment on an issue or pull request."""
        await self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/issues/{number}/comments",
            json={"body": body},
        )

    async def merge_pr(
        self, repo: RepositoryRef, number: int, *, sha: str | None = None
    ) -> None:
        """Merge a pull request, optionally pinned to an expected head SHA."""
        payload: dict[str, str] = {}
        if sha is not None:
            payload["sha"] = sha
        await self._request(
            "PUT",
            f"/repos/{repo.owner}/{repo.name}/pulls/{number}/merge",
            json=payload,
        )
