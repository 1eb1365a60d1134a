"""PostgreSQL connection handling and store implementations."""

import logging
import os
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import psycopg2
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from portfolio.domain.errors import AlreadyPinned, LimitExceeded, NotFound, ValidationError
from portfolio.domain.models import (
    ContributionCounters,
    Identity,
    Pin,
    Profile,
    Repository,
    Snapshot,
    MAX_PINS,
    utc_now,
    validate_pin_fields,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class Database:
    """Connection pool shared by the PostgreSQL stores."""

    def __init__(self, connection_string: Optional[str] = None):
        """
        Initialize database connection settings.

        Args:
            connection_string: PostgreSQL connection string. If None, uses env vars.
        """
        if connection_string is None:
            db_host = os.getenv("POSTGRES_HOST", "localhost")
            db_port = os.getenv("POSTGRES_PORT", "5432")
            db_name = os.getenv("POSTGRES_DB", "github_portfolio")
            db_user = os.getenv("POSTGRES_USER", "postgres")
            db_password = os.getenv("POSTGRES_PASSWORD", "postgres")

            connection_string = (
                f"host={db_host} port={db_port} dbname={db_name} "
                f"user={db_user} password={db_password}"
            )

        self.connection_string = connection_string
        self.pool: Optional[ThreadedConnectionPool] = None

    def connect(self):
        """Initialize connection pool."""
        try:
            self.pool = ThreadedConnectionPool(1, 5, self.connection_string)
            logger.info("Database connection pool created")
        except psycopg2.Error as e:
            logger.error(f"Error creating connection pool: {e}")
            raise

    def close(self):
        """Close connection pool."""
        if self.pool:
            self.pool.closeall()
            logger.info("Database connection pool closed")

    def get_connection(self):
        """Get a connection from the pool."""
        if not self.pool:
            self.connect()
        return self.pool.getconn()

    def return_connection(self, conn):
        """Return a connection to the pool."""
        if self.pool:
            self.pool.putconn(conn)

    def initialize_schema(self):
        """Create database tables if they don't exist."""
        conn = self.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS users (
                        id VARCHAR(255) PRIMARY KEY,
                        email VARCHAR(255) UNIQUE,
                        first_name VARCHAR(255),
                        last_name VARCHAR(255),
                        profile_image_url TEXT,
                        github_username VARCHAR(255),
                        github_access_token TEXT,
                        created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS github_user_data (
                        user_id VARCHAR(255) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                        github_username VARCHAR(255) NOT NULL,
                        profile_data JSONB NOT NULL,
                        repositories JSONB NOT NULL,
                        language_stats JSONB NOT NULL,
                        contribution_stats JSONB NOT NULL,
                        last_updated TIMESTAMPTZ NOT NULL,
                        PRIMARY KEY (user_id, github_username)
                    );

                    CREATE TABLE IF NOT EXISTS pinned_repositories (
                        id VARCHAR(255) PRIMARY KEY,
                        seq BIGSERIAL,
                        user_id VARCHAR(255) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                        repository_id VARCHAR(255) NOT NULL,
                        repository_name VARCHAR(255) NOT NULL,
                        repository_owner VARCHAR(255) NOT NULL,
                        pinned_at TIMESTAMPTZ NOT NULL,
                        CONSTRAINT unique_user_repository UNIQUE (user_id, repository_id)
                    );

                    CREATE INDEX IF NOT EXISTS idx_pinned_repositories_user ON pinned_repositories(user_id, pinned_at, seq);
                """)
                conn.commit()
                logger.info("Database schema initialized")
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Error initializing schema: {e}")
            raise
        finally:
            self.return_connection(conn)


def _row_to_identity(row: Dict[str, Any]) -> Identity:
    return Identity(
        id=row["id"],
        email=row.get("email"),
        first_name=row.get("first_name"),
        last_name=row.get("last_name"),
        profile_image_url=row.get("profile_image_url"),
        github_username=row.get("github_username"),
        github_access_token=row.get("github_access_token"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_snapshot(row: Dict[str, Any]) -> Snapshot:
    """Rebuild a typed snapshot from JSONB columns, rejecting malformed payloads."""
    repositories = row["repositories"]
    if not isinstance(repositories, list):
        raise ValidationError("Stored repositories must be a list")

    return Snapshot(
        identity_id=row["user_id"],
        username=row["github_username"],
        profile=Profile.from_dict(row["profile_data"]),
        repositories=tuple(Repository.from_dict(repo) for repo in repositories),
        language_stats=Snapshot.validate_language_stats(row["language_stats"]),
        contribution_stats=ContributionCounters.from_dict(row["contribution_stats"]),
        last_updated=row["last_updated"],
    )


def _row_to_pin(row: Dict[str, Any]) -> Pin:
    return Pin(
        id=row["id"],
        identity_id=row["user_id"],
        repository_id=row["repository_id"],
        repository_name=row["repository_name"],
        repository_owner=row["repository_owner"],
        pinned_at=row["pinned_at"],
    )


class PostgresIdentityStore:
    """Identity records in the users table."""

    def __init__(self, database: Database, clock: Clock = utc_now):
        self.database = database
        self.clock = clock

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        conn = self.database.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SELECT * FROM users WHERE id = %s", (identity_id,))
                row = cur.fetchone()
                return _row_to_identity(row) if row else None
        except psycopg2.Error as e:
            logger.error(f"Error loading user {identity_id}: {e}")
            raise
        finally:
            self.database.return_connection(conn)

    def upsert_identity(self, identity: Identity) -> Identity:
        now = self.clock()
        conn = self.database.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    INSERT INTO users (
                        id, email, first_name, last_name, profile_image_url,
                        github_username, github_access_token, created_at, updated_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id)
                    DO UPDATE SET
                        email = EXCLUDED.email,
                        first_name = EXCLUDED.first_name,
                        last_name = EXCLUDED.last_name,
                        profile_image_url = EXCLUDED.profile_image_url,
                        github_username = EXCLUDED.github_username,
                        github_access_token = EXCLUDED.github_access_token,
                        updated_at = EXCLUDED.updated_at
                    RETURNING *
                    """,
                    (
                        identity.id,
                        identity.email,
                        identity.first_name,
                        identity.last_name,
                        identity.profile_image_url,
                        identity.github_username,
                        identity.github_access_token,
                        now,
                        now,
                    ),
                )
                row = cur.fetchone()
                conn.commit()
                logger.info(f"Upserted user {identity.id}")
                return _row_to_identity(row)
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Error upserting user {identity.id}: {e}")
            raise
        finally:
            self.database.return_connection(conn)

    def update_github_info(self, identity_id: str, username: str, credential: Optional[str] = None) -> Identity:
        conn = self.database.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    UPDATE users
                    SET github_username = %s,
                        github_access_token = COALESCE(%s, github_access_token),
                        updated_at = %s
                    WHERE id = %s
                    RETURNING *
                    """,
                    (username, credential or None, self.clock(), identity_id),
                )
                row = cur.fetchone()
                conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Error updating GitHub info for {identity_id}: {e}")
            raise
        finally:
            self.database.return_connection(conn)

        if row is None:
            raise NotFound(f"User not found: {identity_id}")
        return _row_to_identity(row)


class PostgresSnapshotStore:
    """Cached snapshots keyed by (user_id, github_username)."""

    def __init__(self, database: Database, clock: Clock = utc_now):
        self.database = database
        self.clock = clock

    def get(self, identity_id: str, username: str) -> Optional[Snapshot]:
        conn = self.database.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT user_id, github_username, profile_data, repositories,
                           language_stats, contribution_stats, last_updated
                    FROM github_user_data
                    WHERE user_id = %s AND github_username = %s
                    """,
                    (identity_id, username),
                )
                row = cur.fetchone()
        except psycopg2.Error as e:
            logger.error(f"Error loading snapshot for {identity_id}/{username}: {e}")
            raise
        finally:
            self.database.return_connection(conn)

        return _row_to_snapshot(row) if row else None

    def upsert(self, snapshot: Snapshot) -> Snapshot:
        """
        Insert or fully replace the snapshot for its (identity, username) key.

        Args:
            snapshot: Snapshot to store; its last_updated is overwritten

        Returns:
            The stored snapshot carrying the new last_updated timestamp
        """
        payload = snapshot.to_dict()
        last_updated = self.clock()

        conn = self.database.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO github_user_data (
                        user_id, github_username, profile_data, repositories,
                        language_stats, contribution_stats, last_updated
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, github_username)
                    DO UPDATE SET
                        profile_data = EXCLUDED.profile_data,
                        repositories = EXCLUDED.repositories,
                        language_stats = EXCLUDED.language_stats,
                        contribution_stats = EXCLUDED.contribution_stats,
                        last_updated = EXCLUDED.last_updated
                    """,
                    (
                        snapshot.identity_id,
                        snapshot.username,
                        Json(payload["profile"]),
                        Json(payload["repositories"]),
                        # JSONB objects do not keep key order
                        Json(snapshot.language_stats_pairs()),
                        Json(payload["contribution_stats"]),
                        last_updated,
                    ),
                )
                conn.commit()
                logger.info(f"Upserted snapshot for {snapshot.identity_id}/{snapshot.username}")
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Error upserting snapshot: {e}")
            raise
        finally:
            self.database.return_connection(conn)

        return replace(snapshot, last_updated=last_updated)


class PostgresPinStore:
    """Pinned repositories, capped per user."""

    def __init__(self, database: Database, clock: Clock = utc_now, max_pins: int = MAX_PINS):
        self.database = database
        self.clock = clock
        self.max_pins = max_pins

    def list_pins(self, identity_id: str) -> List[Pin]:
        # seq breaks ties between pins stamped with the same time, newest insert first.
        conn = self.database.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT * FROM pinned_repositories
                    WHERE user_id = %s
                    ORDER BY pinned_at DESC, seq DESC
                    """,
                    (identity_id,),
                )
                return [_row_to_pin(row) for row in cur.fetchall()]
        except psycopg2.Error as e:
            logger.error(f"Error listing pins for {identity_id}: {e}")
            raise
        finally:
            self.database.return_connection(conn)

    def is_pinned(self, identity_id: str, repository_id: str) -> bool:
        conn = self.database.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT 1 FROM pinned_repositories WHERE user_id = %s AND repository_id = %s",
                    (identity_id, repository_id),
                )
                return cur.fetchone() is not None
        except psycopg2.Error as e:
            logger.error(f"Error checking pin for {identity_id}: {e}")
            raise
        finally:
            self.database.return_connection(conn)

    def add_pin(self, identity_id: str, repository_id: str, name: str, owner: str) -> Pin:
        validate_pin_fields(identity_id, repository_id, name, owner)

        conn = self.database.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    "SELECT repository_id FROM pinned_repositories WHERE user_id = %s",
                    (identity_id,),
                )
                existing = {row["repository_id"] for row in cur.fetchall()}
                if len(existing) >= self.max_pins:
                    raise LimitExceeded(f"Maximum {self.max_pins} repositories can be pinned")
                if repository_id in existing:
                    raise AlreadyPinned(f"Repository {repository_id} is already pinned")

                # The unique constraint catches a concurrent duplicate insert.
                cur.execute(
                    """
                    INSERT INTO pinned_repositories (
                        id, user_id, repository_id, repository_name, repository_owner, pinned_at
                    ) VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, repository_id) DO NOTHING
                    RETURNING *
                    """,
                    (str(uuid.uuid4()), identity_id, repository_id, name, owner, self.clock()),
                )
                row = cur.fetchone()
                if row is None:
                    raise AlreadyPinned(f"Repository {repository_id} is already pinned")
                conn.commit()
                logger.info(f"Pinned repository {repository_id} for {identity_id}")
                return _row_to_pin(row)
        except (LimitExceeded, AlreadyPinned):
            conn.rollback()
            raise
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Error pinning repository {repository_id}: {e}")
            raise
        finally:
            self.database.return_connection(conn)

    def remove_pin(self, identity_id: str, repository_id: str) -> None:
        conn = self.database.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM pinned_repositories WHERE user_id = %s AND repository_id = %s",
                    (identity_id, repository_id),
                )
                conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Error unpinning repository {repository_id}: {e}")
            raise
        finally:
            self.database.return_connection(conn)
