"""Errors that abort a whole merge-queue pass."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Raised when a pass cannot proceed at all."""

    @classmethod
    def listing_failed(cls, repo_slug: str) -> PipelineError:
        """Return the error for a failed candidate listing."""
        return cls(f"Failed to list merge candidates for {repo_slug}")


class ActionFailedError(PipelineError):
    """Raised when the caller's action fails for a candidate."""

    def __init__(self, message: str, *, number: int) -> None:
        """Record which pull request the action was running for."""
        self.number = number
        super().__init__(message)

    @classmethod
    def for_pr(cls, number: int, exc: BaseException) -> ActionFailedError:
        """Return the error wrapping ``exc`` raised by the action for ``number``."""
        return cls(f"Failed to run user function on PR {number}: {exc}", number=number)
