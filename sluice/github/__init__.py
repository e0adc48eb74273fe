"""GitHub REST client, payload models and request throttling."""

from __future__ import annotations

from .client import PER_PAGE, GitHubClient, GitHubRESTClient, GitHubRESTConfig
from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError
from .models import (
    CombinedStatus,
    Commit,
    Issue,
    IssueEvent,
    Label,
    Mergeability,
    PullRequest,
    RepoStatus,
    Team,
    User,
    has_label,
    has_labels,
)
from .ratelimit import RateLimitedTransport, TokenBucket

__all__ = [
    "PER_PAGE",
    "CombinedStatus",
    "Commit",
    "GitHubAPIError",
    "GitHubClient",
    "GitHubConfigError",
    "GitHubRESTClient",
    "GitHubRESTConfig",
    "GitHubResponseShapeError",
    "Issue",
    "IssueEvent",
    "Label",
    "Mergeability",
    "PullRequest",
    "RateLimitedTransport",
    "RepoStatus",
    "Team",
    "TokenBucket",
    "User",
    "has_label",
    "has_labels",
]
