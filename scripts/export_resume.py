#!/usr/bin/env python3
"""Script to export the resume bundle of one user to JSON."""

import logging
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from portfolio.infrastructure.database import Database, PostgresIdentityStore, PostgresPinStore, PostgresSnapshotStore
from portfolio.application.resume_service import ResumeService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Write the resume bundle for IDENTITY_ID into OUTPUT_DIR."""
    database = None
    try:
        identity_id = os.getenv("IDENTITY_ID", "")
        output_dir = os.getenv("OUTPUT_DIR", "artifacts")
        os.makedirs(output_dir, exist_ok=True)

        database = Database()
        database.connect()

        identity = PostgresIdentityStore(database).get_identity(identity_id)
        if identity is None:
            logger.error(f"User not found: {identity_id}")
            return 1

        resume_service = ResumeService(PostgresSnapshotStore(database), PostgresPinStore(database))
        document = resume_service.render(identity)

        output_file = os.path.join(output_dir, resume_service.filename(identity))
        with open(output_file, 'wb') as f:
            f.write(document)

        logger.info(f"Resume export completed. File: {output_file}")
        return 0
    except Exception as e:
        logger.error(f"Resume export failed: {e}", exc_info=True)
        return 1
    finally:
        if database is not None:
            database.close()


if __name__ == "__main__":
    sys.exit(main())
