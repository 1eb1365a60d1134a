#!/usr/bin/env python3
"""Script to refresh the cached GitHub snapshot of one user."""

import logging
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from portfolio.infrastructure.github_client import GitHubGraphQLClient
from portfolio.infrastructure.database import Database, PostgresSnapshotStore, PostgresPinStore
from portfolio.application.sync_service import SyncService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Serve or refresh the snapshot for IDENTITY_ID / GITHUB_USERNAME."""
    database = None
    try:
        github_token = os.getenv("GITHUB_TOKEN")
        if not github_token:
            logger.warning("GITHUB_TOKEN not found. GitHub will reject the request.")

        identity_id = os.getenv("IDENTITY_ID", "")
        username = os.getenv("GITHUB_USERNAME", "")
        force_refresh = os.getenv("FORCE_REFRESH", "false").lower() in ("1", "true", "yes")

        database = Database()
        database.connect()
        database.initialize_schema()

        sync_service = SyncService(GitHubGraphQLClient(), PostgresSnapshotStore(database))
        snapshot = sync_service.get_or_refresh(identity_id, username, github_token, force_refresh=force_refresh)

        pins = PostgresPinStore(database).list_pins(identity_id)
        top_languages = ", ".join(f"{name} ({share}%)" for name, share in list(snapshot.language_stats.items())[:5])
        logger.info(
            f"Snapshot for {snapshot.username} updated at {snapshot.last_updated.isoformat()}: "
            f"{len(snapshot.repositories)} repositories, {len(pins)} pinned, "
            f"{snapshot.contribution_stats.total} contributions this year. Top languages: {top_languages or 'none'}"
        )
        return 0

    except Exception as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        return 1
    finally:
        if database is not None:
            database.close()


if __name__ == "__main__":
    sys.exit(main())
