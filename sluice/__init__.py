"""Merge-queue candidate evaluation for GitHub pull requests."""

from __future__ import annotations

from .common.slug import RepositoryRef
from .config import FilterConfig, PollConfig
from .errors import ActionFailedError, PipelineError
from .pipeline import CandidatePipeline, PassResult
from .polling import CancellationToken, PollCancelledError, PollTimeoutError
from .status import StatusVerdict, aggregate_status
from .whitelist import WhitelistCache

__all__ = [
    "ActionFailedError",
    "CancellationToken",
    "CandidatePipeline",
    "FilterConfig",
    "PassResult",
    "PipelineError",
    "PollCancelledError",
    "PollConfig",
    "PollTimeoutError",
    "RepositoryRef",
    "StatusVerdict",
    "WhitelistCache",
    "aggregate_status",
]
