"""Pin annotation, filtering and ordering of cached repositories."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from portfolio.domain.errors import ValidationError
from portfolio.domain.models import Pin, Repository

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class RepositoryView:
    repository: Repository
    is_pinned: bool


def _by_stars(repo: Repository):
    return -repo.stars


def _by_name(repo: Repository):
    return repo.name.lower()


def _by_updated(repo: Repository):
    return -repo.updated_at.timestamp()


def _by_created(repo: Repository):
    # Repositories cached before created_at was fetched sort last.
    return -(repo.created_at or _EPOCH).timestamp()


SORT_KEYS = {
    "stars": _by_stars,
    "name": _by_name,
    "updated": _by_updated,
    "created": _by_created,
}


def annotate_pins(repositories: Iterable[Repository], pins: Iterable[Pin]) -> List[RepositoryView]:
    pinned_ids = {pin.repository_id for pin in pins}
    return [RepositoryView(repository=repo, is_pinned=repo.id in pinned_ids) for repo in repositories]


def list_repositories(
    repositories: Iterable[Repository],
    pins: Iterable[Pin],
    sort: str = "stars",
    search: Optional[str] = None,
    language: Optional[str] = None,
) -> List[RepositoryView]:
    """
    Filter and order repositories for display, flagging pinned ones.

    Args:
        repositories: Repositories from a snapshot
        pins: Current pins of the identity
        sort: One of "stars", "name", "updated", "created"
        search: Case-insensitive substring of name or description
        language: Primary language name to keep (case-insensitive); None or "all" keeps every language
    """
    key = SORT_KEYS.get(sort)
    if key is None:
        raise ValidationError(f"Unknown sort order {sort!r}; expected one of {', '.join(SORT_KEYS)}")

    selected = list(repositories)
    if search:
        needle = search.strip().lower()
        selected = [
            repo for repo in selected
            if needle in repo.name.lower() or needle in (repo.description or "").lower()
        ]
    if language and language.lower() != "all":
        wanted = language.lower()
        selected = [
            repo for repo in selected
            if repo.primary_language and repo.primary_language.name.lower() == wanted
        ]

    return annotate_pins(sorted(selected, key=key), pins)
