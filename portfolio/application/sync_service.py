"""Application service that serves cached GitHub snapshots or refreshes them."""

import logging
import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from portfolio.domain.errors import ValidationError
from portfolio.domain.models import Snapshot, utc_now, validate_github_username
from portfolio.infrastructure.github_client import GitHubGraphQLClient

logger = logging.getLogger(__name__)


class SyncService:
    """Decides between the cached snapshot and a fresh fetch from GitHub."""

    DEFAULT_CACHE_TTL_MINUTES = 30

    def __init__(
        self,
        github_client: GitHubGraphQLClient,
        snapshot_store,
        clock: Callable[[], datetime] = utc_now,
        cache_ttl: Optional[timedelta] = None,
    ):
        """
        Initialize sync service.

        Args:
            github_client: GitHub API client
            snapshot_store: Store holding one snapshot per (identity, username)
            clock: Returns the current UTC time
            cache_ttl: Age after which a snapshot is refreshed. If None, uses
                CACHE_TTL_MINUTES env var (default 30 minutes).
        """
        if cache_ttl is None:
            minutes = int(os.getenv("CACHE_TTL_MINUTES", str(self.DEFAULT_CACHE_TTL_MINUTES)))
            cache_ttl = timedelta(minutes=minutes)

        self.github_client = github_client
        self.snapshot_store = snapshot_store
        self.clock = clock
        self.cache_ttl = cache_ttl

    def is_fresh(self, snapshot: Snapshot) -> bool:
        if snapshot.last_updated is None:
            return False
        return self.clock() - snapshot.last_updated < self.cache_ttl

    def contribution_window(self) -> Tuple[datetime, datetime]:
        """Current calendar year in UTC."""
        year = self.clock().year
        return (
            datetime(year, 1, 1, 0, 0, 0, tzinfo=timezone.utc),
            datetime(year, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
        )

    def get_or_refresh(
        self,
        identity_id: str,
        username: str,
        credential: Optional[str],
        force_refresh: bool = False,
    ) -> Snapshot:
        """
        Return the cached snapshot, or fetch, store and return a new one.

        A snapshot younger than the cache TTL is returned as stored, without
        network calls. Otherwise profile, repositories and contribution stats
        are fetched concurrently; if any fetch fails, nothing is written and the
        failure propagates unchanged.

        Args:
            identity_id: Already-resolved caller identity
            username: GitHub login to show
            credential: Bearer token of the caller
            force_refresh: Skip the cache lookup entirely

        Returns:
            Snapshot for (identity_id, username)
        """
        if not identity_id:
            raise ValidationError("An identity is required")
        username = validate_github_username(username)

        if not force_refresh:
            cached = self.snapshot_store.get(identity_id, username)
            if cached is not None and self.is_fresh(cached):
                logger.info(f"Cache hit for {identity_id}/{username}")
                return cached
            logger.info(f"Cache {'expired' if cached else 'miss'} for {identity_id}/{username}")
        else:
            logger.info(f"Forced refresh for {identity_id}/{username}")

        profile, repositories, contribution_stats = self._fetch_all(username, credential)
        language_stats = self.github_client.compute_language_stats(repositories)

        snapshot = Snapshot(
            identity_id=identity_id,
            username=username,
            profile=profile,
            repositories=tuple(repositories),
            language_stats=language_stats,
            contribution_stats=contribution_stats,
        )
        return self.snapshot_store.upsert(snapshot)

    def _fetch_all(self, username: str, credential: Optional[str]):
        year_start, year_end = self.contribution_window()

        executor = ThreadPoolExecutor(max_workers=3, thread_name_prefix="github-sync")
        try:
            profile_future = executor.submit(self.github_client.fetch_profile, username, credential)
            repositories_future = executor.submit(self.github_client.fetch_repositories, username, credential)
            contributions_future = executor.submit(
                self.github_client.fetch_contribution_stats, username, credential, year_start, year_end
            )
            futures = [profile_future, repositories_future, contributions_future]

            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    logger.warning(f"GitHub fetch failed for {username}: {future.exception()}")
                    raise future.exception()

            return profile_future.result(), repositories_future.result(), contributions_future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
