"""Repository references in GitHub's ``owner/name`` notation.

Slugs are not filesystem paths even though they use ``/``; parse them with
these helpers rather than ``pathlib``.
"""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryRef:
    """Owner (user or organisation) and name of a GitHub repository."""

    owner: str
    name: str

    @property
    def slug(self) -> str:
        """Return the ``owner/name`` identifier."""
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        """Render as the slug."""
        return self.slug

    @classmethod
    def parse(cls, slug: str) -> RepositoryRef:
        """Build a reference from an ``owner/name`` slug.

        Raises
        ------
        ValueError
            If the slug is not in ``owner/name`` format.

        Examples
        --------
        >>> RepositoryRef.parse("kubernetes/kubernetes").owner
        'kubernetes'

        """
        owner, name = parse_repo_slug(slug)
        return cls(owner=owner, name=name)


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Split an ``owner/name`` slug, rejecting anything else with ValueError."""
    parts = slug.strip().split("/")
    if len(parts) != 2 or not all(parts):  # noqa: PLR2004
        msg = f"Invalid repository slug: expected 'owner/name', got {slug!r}"
        raise ValueError(msg)
    owner, name = parts
    return owner, name
