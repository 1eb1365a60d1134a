from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


def pytest_configure():
    # Ensure project root is on sys.path for absolute imports like 'portfolio.domain.models'
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_repository():
    from portfolio.domain.models import LanguageEdge, PrimaryLanguage, Repository

    def _make(repo_id="R_1", name="repo", stars=0, languages=None, primary=None,
              updated="2024-01-01T00:00:00Z", created=None, description=None, owner="octocat"):
        from portfolio.domain.models import parse_timestamp
        return Repository(
            id=repo_id,
            name=name,
            description=description,
            stars=stars,
            forks=0,
            primary_language=PrimaryLanguage(name=primary, color="#000000") if primary else None,
            updated_at=parse_timestamp(updated),
            url=f"https://github.com/{owner}/{name}",
            created_at=parse_timestamp(created) if created else None,
            languages=tuple(LanguageEdge(language=lang, size=size) for lang, size in (languages or {}).items()),
        )

    return _make
