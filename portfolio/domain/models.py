"""Domain entities for identities, cached GitHub snapshots and pins."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from portfolio.domain.errors import ValidationError


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp (GitHub uses a trailing 'Z')."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Expected ISO-8601 timestamp, got {value!r}")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp {value!r}: {e}") from e


def _require(data: Dict[str, Any], key: str) -> Any:
    if not isinstance(data, dict):
        raise ValidationError(f"Expected an object, got {type(data).__name__}")
    if data.get(key) is None:
        raise ValidationError(f"Missing required field '{key}'")
    return data[key]


def _as_int(data: Dict[str, Any], key: str) -> int:
    value = _require(data, key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Field '{key}' must be an integer, got {value!r}")
    return value


def _is_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float))


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Field '{key}' must be a string, got {value!r}")
    return value


@dataclass(frozen=True)
class Identity:
    """Authenticated user of the dashboard."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    github_username: Optional[str] = None
    github_access_token: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) or (self.github_username or self.id)

    def to_dict(self) -> Dict[str, Any]:
        # The credential never leaves the store boundary.
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "profile_image_url": self.profile_image_url,
            "github_username": self.github_username,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class Profile:
    """Public GitHub profile of a user."""

    login: str
    name: Optional[str]
    bio: Optional[str]
    avatar_url: Optional[str]
    followers: int = 0
    following: int = 0
    repository_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        return cls(
            login=_require(data, "login"),
            name=_optional_str(data, "name"),
            bio=_optional_str(data, "bio"),
            avatar_url=_optional_str(data, "avatar_url"),
            followers=_as_int(data, "followers"),
            following=_as_int(data, "following"),
            repository_count=_as_int(data, "repository_count"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "login": self.login,
            "name": self.name,
            "bio": self.bio,
            "avatar_url": self.avatar_url,
            "followers": self.followers,
            "following": self.following,
            "repository_count": self.repository_count,
        }


@dataclass(frozen=True)
class PrimaryLanguage:
    name: str
    color: Optional[str] = None


@dataclass(frozen=True)
class LanguageEdge:
    """Byte size of one language inside one repository."""

    language: str
    size: int


@dataclass(frozen=True)
class Repository:
    """Immutable repository entity, as cached inside a snapshot."""

    id: str
    name: str
    description: Optional[str]
    stars: int
    forks: int
    primary_language: Optional[PrimaryLanguage]
    updated_at: datetime
    url: str
    is_private: bool = False
    created_at: Optional[datetime] = None
    languages: Tuple[LanguageEdge, ...] = ()

    @property
    def owner(self) -> str:
        # https://github.com/<owner>/<name>
        parts = self.url.rstrip("/").split("/")
        return parts[3] if len(parts) > 3 else ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Repository":
        primary = data.get("primary_language")
        if primary is not None:
            primary = PrimaryLanguage(name=_require(primary, "name"), color=_optional_str(primary, "color"))

        languages = data.get("languages") or []
        if not isinstance(languages, list):
            raise ValidationError("Field 'languages' must be a list")
        edges = tuple(
            LanguageEdge(language=_require(edge, "language"), size=_as_int(edge, "size"))
            for edge in languages
        )

        created_at = data.get("created_at")
        return cls(
            id=_require(data, "id"),
            name=_require(data, "name"),
            description=_optional_str(data, "description"),
            stars=_as_int(data, "stars"),
            forks=_as_int(data, "forks"),
            primary_language=primary,
            updated_at=parse_timestamp(_require(data, "updated_at")),
            url=_require(data, "url"),
            is_private=bool(data.get("is_private", False)),
            created_at=parse_timestamp(created_at) if created_at else None,
            languages=edges,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "stars": self.stars,
            "forks": self.forks,
            "primary_language": (
                {"name": self.primary_language.name, "color": self.primary_language.color}
                if self.primary_language
                else None
            ),
            "updated_at": self.updated_at.isoformat(),
            "url": self.url,
            "is_private": self.is_private,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "languages": [{"language": edge.language, "size": edge.size} for edge in self.languages],
        }


@dataclass(frozen=True)
class ContributionCounters:
    commits: int = 0
    issues: int = 0
    pull_requests: int = 0
    pull_request_reviews: int = 0
    repositories: int = 0

    @property
    def total(self) -> int:
        return self.commits + self.issues + self.pull_requests + self.pull_request_reviews + self.repositories

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContributionCounters":
        return cls(
            commits=_as_int(data, "commits"),
            issues=_as_int(data, "issues"),
            pull_requests=_as_int(data, "pull_requests"),
            pull_request_reviews=_as_int(data, "pull_request_reviews"),
            repositories=_as_int(data, "repositories"),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "commits": self.commits,
            "issues": self.issues,
            "pull_requests": self.pull_requests,
            "pull_request_reviews": self.pull_request_reviews,
            "repositories": self.repositories,
        }


@dataclass(frozen=True)
class Snapshot:
    """Cached bundle for one (identity, GitHub username) pair."""

    identity_id: str
    username: str
    profile: Profile
    repositories: Tuple[Repository, ...]
    language_stats: Dict[str, float]
    contribution_stats: ContributionCounters
    last_updated: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.identity_id, self.username)

    @staticmethod
    def validate_language_stats(data: Any) -> Dict[str, float]:
        """
        Build the language share mapping, highest share first.

        Accepts either a list of ``[language, percentage]`` pairs, whose order is
        kept as given, or a plain object. Objects carry no reliable key order
        once stored as JSONB, so they are re-sorted by descending percentage.
        """
        if isinstance(data, dict):
            pairs = sorted(data.items(), key=lambda item: item[1] if _is_number(item[1]) else 0, reverse=True)
        elif isinstance(data, list):
            pairs = []
            for entry in data:
                if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                    raise ValidationError(f"Language stat must be a [language, percentage] pair, got {entry!r}")
                pairs.append((entry[0], entry[1]))
        else:
            raise ValidationError("Language stats must be an object or a list of pairs")

        stats: Dict[str, float] = {}
        for language, percentage in pairs:
            if not isinstance(language, str) or not language:
                raise ValidationError(f"Language name must be a string, got {language!r}")
            if not _is_number(percentage):
                raise ValidationError(f"Percentage for {language!r} must be a number")
            if not 0 <= percentage <= 100:
                raise ValidationError(f"Percentage for {language!r} out of range: {percentage}")
            stats[language] = float(percentage)
        return stats

    def language_stats_pairs(self) -> List[List[Any]]:
        """Language shares as ordered ``[language, percentage]`` pairs for storage."""
        return [[language, percentage] for language, percentage in self.language_stats.items()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity_id": self.identity_id,
            "username": self.username,
            "profile": self.profile.to_dict(),
            "repositories": [repo.to_dict() for repo in self.repositories],
            "language_stats": dict(self.language_stats),
            "contribution_stats": self.contribution_stats.to_dict(),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass(frozen=True)
class Pin:
    """User-selected favorite repository."""

    id: str
    identity_id: str
    repository_id: str
    repository_name: str
    repository_owner: str
    pinned_at: datetime = field(compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "identity_id": self.identity_id,
            "repository_id": self.repository_id,
            "repository_name": self.repository_name,
            "repository_owner": self.repository_owner,
            "pinned_at": self.pinned_at.isoformat(),
        }


def validate_pin_fields(identity_id: str, repository_id: str, name: str, owner: str) -> None:
    """Reject blank identifiers before a pin reaches a store."""
    for label, value in (
        ("identity id", identity_id),
        ("repository id", repository_id),
        ("repository name", name),
        ("repository owner", owner),
    ):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"A {label} is required to pin a repository")


GITHUB_LOGIN_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")


def validate_github_username(username: Any) -> str:
    """Return the trimmed login, or raise ValidationError if it cannot be a GitHub login."""
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("GitHub username is required")
    username = username.strip()
    if not GITHUB_LOGIN_PATTERN.match(username):
        raise ValidationError(f"Invalid GitHub username: {username!r}")
    return username


MAX_PINS = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
