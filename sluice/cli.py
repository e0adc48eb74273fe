"""Run one merge-queue pass against a repository.

Configuration is read from ``SLUICE_*`` environment variables (see
:mod:`sluice.config` and :class:`sluice.github.GitHubRESTConfig`); the flags
below override the few settings that change between invocations.

Run with ``python -m sluice.cli owner/name``.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import typing as typ

from sluice.common.slug import RepositoryRef
from sluice.config import FilterConfig, PollConfig
from sluice.errors import PipelineError
from sluice.github.client import GitHubRESTClient, GitHubRESTConfig
from sluice.github.errors import GitHubConfigError
from sluice.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_exception,
    log_info,
    log_warning,
)
from sluice.pipeline import CandidatePipeline, PassResult
from sluice.polling import PollError
from sluice.whitelist import WhitelistCache

if typ.TYPE_CHECKING:
    from sluice.github.client import GitHubClient
    from sluice.github.models import Issue, PullRequest
    from sluice.pipeline import PRAction

logger = get_logger(__name__)


async def report_candidate(client: GitHubClient, pr: PullRequest, issue: Issue) -> None:
    """Log a candidate that is ready to merge."""
    del client, issue
    log_info(logger, "PR %d is ready to merge: %s", pr.number, pr.title)


def merge_action(repo: RepositoryRef) -> PRAction:
    """Return an action that merges each candidate at the head it was checked at."""

    async def _merge(client: GitHubClient, pr: PullRequest, issue: Issue) -> None:
        del issue
        head_sha = pr.head.sha if pr.head is not None else None
        await client.merge_pr(repo, pr.number, sha=head_sha)
        log_info(logger, "Merged PR %d: %s", pr.number, pr.title)

    return _merge


async def run_pass(  # noqa: PLR0913
    repo: RepositoryRef,
    *,
    config: FilterConfig,
    poll: PollConfig,
    github: GitHubRESTConfig,
    merge: bool,
    once: bool,
) -> PassResult:
    """Build the client and pipeline, then run a single pass."""
    async with GitHubRESTClient(github) as client:
        pipeline = CandidatePipeline(
            client, repo, config, WhitelistCache(config, repo), poll=poll
        )
        action = merge_action(repo) if merge else report_candidate
        return await pipeline.run(action, stop_after_first=once)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("repo", help="Repository in owner/name form")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Stop after the first candidate that passes every gate",
    )
    parser.add_argument(
        "--merge",
        action="store_true",
        help="Merge passing candidates instead of only reporting them",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Never label, comment or merge (overrides SLUICE_DRY_RUN)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("SLUICE_LOG_LEVEL", "INFO"),
        help="Log level (default: SLUICE_LOG_LEVEL or INFO)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run one pass and return the process exit code.

    Returns
    -------
    int
        0 when the pass completes, 1 when configuration is invalid or the
        pass aborts.

    """
    args = _build_parser().parse_args(argv)
    _, invalid_level = configure_logging(args.log_level)
    if invalid_level:
        log_warning(logger, "Invalid log level %r, using INFO", args.log_level)

    try:
        repo = RepositoryRef.parse(args.repo)
        config = FilterConfig.from_env()
        if args.dry_run is not None:
            config = config.with_dry_run(dry_run=args.dry_run)
        poll = PollConfig.from_env()
        github = GitHubRESTConfig.from_env()
    except (ValueError, GitHubConfigError) as exc:
        log_error(logger, "Invalid configuration: %s", exc)
        return 1

    if args.merge and config.dry_run:
        log_info(logger, "Dry run requested; candidates will be reported, not merged")

    try:
        result = asyncio.run(
            run_pass(
                repo,
                config=config,
                poll=poll,
                github=github,
                merge=args.merge and not config.dry_run,
                once=args.once,
            )
        )
    except (PipelineError, PollError, GitHubConfigError) as exc:
        log_exception(logger, f"Merge-queue pass for {repo.slug} failed", exc)
        return 1

    log_info(
        logger,
        "Pass for %s finished: %d candidates, %d actioned",
        repo.slug,
        result.candidates,
        len(result.actioned),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
