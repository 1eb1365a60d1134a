from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from portfolio.application.sync_service import SyncService
from portfolio.domain.errors import AuthFailure, NotFound, ValidationError
from portfolio.domain.models import ContributionCounters, Profile
from portfolio.infrastructure.github_client import GitHubGraphQLClient
from portfolio.infrastructure.memory_storage import MemorySnapshotStore


class FakeGitHubClient(GitHubGraphQLClient):
    """Serves canned data; language stats come from the real implementation."""

    def __init__(self, repositories, fail_with=None, barrier=None):
        super().__init__(endpoint="https://example.test/graphql")
        self.repositories = repositories
        self.fail_with = fail_with or {}
        self.barrier = barrier
        self.calls = []
        self.windows = []

    def _call(self, name):
        self.calls.append(name)
        if self.barrier is not None:
            self.barrier.wait()
        if name in self.fail_with:
            raise self.fail_with[name]

    def fetch_profile(self, username, credential):
        self._call("profile")
        return Profile(login=username, name="Octo Cat", bio=None, avatar_url=None, followers=1)

    def fetch_repositories(self, username, credential, limit=100):
        self._call("repositories")
        return list(self.repositories)

    def fetch_contribution_stats(self, username, credential, year_start, year_end):
        self.windows.append((year_start, year_end))
        self._call("contributions")
        return ContributionCounters(commits=5)


@pytest.fixture
def repositories(make_repository):
    return [
        make_repository("R_1", "alpha", stars=9, languages={"Go": 800, "TS": 200}),
        make_repository("R_2", "beta", stars=3, languages={"Go": 0, "Python": 1000}),
    ]


def test_first_call_fetches_and_caches(clock, repositories):
    client = FakeGitHubClient(repositories)
    store = MemorySnapshotStore(clock=clock)
    service = SyncService(client, store, clock=clock, cache_ttl=timedelta(minutes=30))

    snapshot = service.get_or_refresh("user-1", "octocat", "tok")

    assert sorted(client.calls) == ["contributions", "profile", "repositories"]
    assert snapshot.last_updated == clock.now
    assert snapshot.language_stats == {"Python": 50.0, "Go": 40.0, "TS": 10.0}
    assert [repo.name for repo in snapshot.repositories] == ["alpha", "beta"]
    assert store.get("user-1", "octocat") is snapshot


def test_second_call_within_ttl_is_served_from_cache(clock, repositories):
    client = FakeGitHubClient(repositories)
    service = SyncService(client, MemorySnapshotStore(clock=clock), clock=clock, cache_ttl=timedelta(minutes=30))

    first = service.get_or_refresh("user-1", "octocat", "tok")
    clock.advance(minutes=29, seconds=59)
    second = service.get_or_refresh("user-1", "octocat", "tok")

    assert second is first
    assert len(client.calls) == 3


def test_expired_snapshot_is_refetched(clock, repositories):
    client = FakeGitHubClient(repositories)
    service = SyncService(client, MemorySnapshotStore(clock=clock), clock=clock, cache_ttl=timedelta(minutes=30))

    first = service.get_or_refresh("user-1", "octocat", "tok")
    clock.advance(minutes=30)
    second = service.get_or_refresh("user-1", "octocat", "tok")

    assert len(client.calls) == 6
    assert second.last_updated == first.last_updated + timedelta(minutes=30)


def test_force_refresh_bypasses_fresh_cache(clock, repositories):
    client = FakeGitHubClient(repositories)
    service = SyncService(client, MemorySnapshotStore(clock=clock), clock=clock, cache_ttl=timedelta(minutes=30))

    first = service.get_or_refresh("user-1", "octocat", "tok")
    clock.advance(seconds=1)
    second = service.get_or_refresh("user-1", "octocat", "tok", force_refresh=True)

    assert len(client.calls) == 6
    assert second.last_updated > first.last_updated


def test_cache_is_keyed_per_identity_and_username(clock, repositories):
    client = FakeGitHubClient(repositories)
    service = SyncService(client, MemorySnapshotStore(clock=clock), clock=clock)

    service.get_or_refresh("user-1", "octocat", "tok")
    service.get_or_refresh("user-2", "octocat", "tok")
    service.get_or_refresh("user-1", "hubot", "tok")

    assert len(client.calls) == 9


@pytest.mark.parametrize("failing", ["profile", "repositories", "contributions"])
def test_any_failed_fetch_aborts_without_writing(clock, repositories, failing):
    client = FakeGitHubClient(repositories, fail_with={failing: NotFound("no such user")})
    store = MemorySnapshotStore(clock=clock)
    service = SyncService(client, store, clock=clock)

    with pytest.raises(NotFound):
        service.get_or_refresh("user-1", "octocat", "tok")

    assert store.get("user-1", "octocat") is None


def test_failed_refresh_keeps_previous_snapshot(clock, repositories):
    store = MemorySnapshotStore(clock=clock)
    SyncService(FakeGitHubClient(repositories), store, clock=clock).get_or_refresh("user-1", "octocat", "tok")
    previous = store.get("user-1", "octocat")

    failing = FakeGitHubClient(repositories, fail_with={"profile": AuthFailure("bad credentials")})
    with pytest.raises(AuthFailure):
        SyncService(failing, store, clock=clock).get_or_refresh("user-1", "octocat", "tok", force_refresh=True)

    assert store.get("user-1", "octocat") is previous


def test_fetches_run_concurrently(clock, repositories):
    # Each fetch waits for the other two; sequential calls would break the barrier.
    barrier = threading.Barrier(3, timeout=5)
    client = FakeGitHubClient(repositories, barrier=barrier)
    service = SyncService(client, MemorySnapshotStore(clock=clock), clock=clock)

    snapshot = service.get_or_refresh("user-1", "octocat", "tok")

    assert snapshot.profile.login == "octocat"
    assert not barrier.broken


def test_contribution_window_is_current_year(clock, repositories):
    client = FakeGitHubClient(repositories)
    SyncService(client, MemorySnapshotStore(clock=clock), clock=clock).get_or_refresh("user-1", "octocat", "tok")

    assert client.windows == [(
        datetime(2024, 1, 1, tzinfo=timezone.utc),
        datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
    )]


@pytest.mark.parametrize("username", ["", "   ", "-leading-dash", "has space", "x" * 40])
def test_malformed_username_is_rejected(clock, repositories, username):
    client = FakeGitHubClient(repositories)
    service = SyncService(client, MemorySnapshotStore(clock=clock), clock=clock)

    with pytest.raises(ValidationError):
        service.get_or_refresh("user-1", username, "tok")
    assert client.calls == []


def test_cache_ttl_from_environment(monkeypatch, clock, repositories):
    monkeypatch.setenv("CACHE_TTL_MINUTES", "5")
    service = SyncService(FakeGitHubClient(repositories), MemorySnapshotStore(clock=clock), clock=clock)
    assert service.cache_ttl == timedelta(minutes=5)
