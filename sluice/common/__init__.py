"""Small helpers shared across sluice modules."""

from __future__ import annotations

from .slug import RepositoryRef, parse_repo_slug

__all__ = ["RepositoryRef", "parse_repo_slug"]
