from __future__ import annotations

from datetime import datetime, timezone

import pytest

from portfolio.application.repository_listing import annotate_pins, list_repositories
from portfolio.domain.errors import ValidationError
from portfolio.domain.models import Pin


@pytest.fixture
def repositories(make_repository):
    return [
        make_repository("R_1", "zeta", stars=50, primary="Go", updated="2024-01-05T00:00:00Z",
                        created="2019-01-01T00:00:00Z", description="CLI tooling"),
        make_repository("R_2", "Alpha", stars=5, primary="Python", updated="2024-03-01T00:00:00Z",
                        created="2023-06-01T00:00:00Z"),
        make_repository("R_3", "mid", stars=20, primary="Go", updated="2023-12-01T00:00:00Z",
                        created="2021-01-01T00:00:00Z", description="web api"),
    ]


def _pin(repository_id):
    return Pin(
        id=f"pin-{repository_id}",
        identity_id="user-1",
        repository_id=repository_id,
        repository_name=repository_id,
        repository_owner="octocat",
        pinned_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_annotate_marks_pinned(repositories):
    views = annotate_pins(repositories, [_pin("R_3")])
    assert [(view.repository.id, view.is_pinned) for view in views] == [("R_1", False), ("R_2", False), ("R_3", True)]


@pytest.mark.parametrize(
    "sort, expected",
    [
        ("stars", ["zeta", "mid", "Alpha"]),
        ("name", ["Alpha", "mid", "zeta"]),
        ("updated", ["Alpha", "zeta", "mid"]),
        ("created", ["Alpha", "mid", "zeta"]),
    ],
)
def test_sort_orders(repositories, sort, expected):
    views = list_repositories(repositories, [], sort=sort)
    assert [view.repository.name for view in views] == expected


def test_created_sort_differs_from_updated(repositories):
    by_created = [v.repository.name for v in list_repositories(repositories, [], sort="created")]
    by_updated = [v.repository.name for v in list_repositories(repositories, [], sort="updated")]
    assert by_created != by_updated


def test_search_and_language_filters(repositories):
    assert [v.repository.name for v in list_repositories(repositories, [], search="API")] == ["mid"]
    assert [v.repository.name for v in list_repositories(repositories, [], language="go")] == ["zeta", "mid"]
    assert len(list_repositories(repositories, [], language="all")) == 3


def test_unknown_sort_is_rejected(repositories):
    with pytest.raises(ValidationError):
        list_repositories(repositories, [], sort="forks")
