"""Unit tests for repository references."""

from __future__ import annotations

import pytest

from sluice.common.slug import RepositoryRef, parse_repo_slug


def test_repository_ref_renders_slug() -> None:
    """RepositoryRef formats as owner/name."""
    repo = RepositoryRef(owner="kubernetes", name="kubernetes")
    assert repo.slug == "kubernetes/kubernetes"
    assert str(repo) == "kubernetes/kubernetes"


def test_parse_repo_slug_splits_owner_and_name() -> None:
    """parse_repo_slug returns (owner, name) for valid slugs."""
    assert parse_repo_slug("kubernetes/contrib") == ("kubernetes", "contrib")
    assert parse_repo_slug(" Owner-Org/Repo_Name ") == ("Owner-Org", "Repo_Name")
    assert RepositoryRef.parse("octo/reef") == RepositoryRef(owner="octo", name="reef")


@pytest.mark.parametrize(
    "slug",
    [
        "",
        "   ",
        "/",
        "invalid",
        "owner/name/extra",
        r"owner\\name",
        "owner/",
        "/name",
        "owner//name",
    ],
)
def test_parse_repo_slug_rejects_invalid_slugs(slug: str) -> None:
    """parse_repo_slug raises ValueError for invalid slugs."""
    with pytest.raises(ValueError, match="Invalid repository slug"):
        RepositoryRef.parse(slug)
