"""In-memory stores for development and tests.

Each store owns a dict keyed by the record's composite key, so an upsert is
a plain replace-or-insert and readers always see whole records.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from portfolio.domain.errors import AlreadyPinned, LimitExceeded, NotFound
from portfolio.domain.models import MAX_PINS, Identity, Pin, Snapshot, utc_now, validate_pin_fields

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class MemoryIdentityStore:
    def __init__(self, clock: Clock = utc_now):
        self.clock = clock
        self._identities: Dict[str, Identity] = {}

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        return self._identities.get(identity_id)

    def upsert_identity(self, identity: Identity) -> Identity:
        now = self.clock()
        existing = self._identities.get(identity.id)
        stored = replace(
            identity,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._identities[identity.id] = stored
        return stored

    def update_github_info(self, identity_id: str, username: str, credential: Optional[str] = None) -> Identity:
        existing = self._identities.get(identity_id)
        if existing is None:
            raise NotFound(f"User not found: {identity_id}")

        updated = replace(
            existing,
            github_username=username,
            github_access_token=credential or existing.github_access_token,
            updated_at=self.clock(),
        )
        self._identities[identity_id] = updated
        return updated


class MemorySnapshotStore:
    def __init__(self, clock: Clock = utc_now):
        self.clock = clock
        self._snapshots: Dict[Tuple[str, str], Snapshot] = {}

    def get(self, identity_id: str, username: str) -> Optional[Snapshot]:
        return self._snapshots.get((identity_id, username))

    def upsert(self, snapshot: Snapshot) -> Snapshot:
        stored = replace(snapshot, last_updated=self.clock())
        self._snapshots[stored.key] = stored
        logger.info(f"Cached snapshot for {stored.identity_id}/{stored.username}")
        return stored


class MemoryPinStore:
    def __init__(self, clock: Clock = utc_now, max_pins: int = MAX_PINS):
        self.clock = clock
        self.max_pins = max_pins
        self._pins: Dict[str, List[Pin]] = {}

    def list_pins(self, identity_id: str) -> List[Pin]:
        """Return pins for an identity, most recently pinned first."""
        newest_first = list(reversed(self._pins.get(identity_id, [])))
        return sorted(newest_first, key=lambda pin: pin.pinned_at, reverse=True)

    def is_pinned(self, identity_id: str, repository_id: str) -> bool:
        return any(pin.repository_id == repository_id for pin in self._pins.get(identity_id, []))

    def add_pin(self, identity_id: str, repository_id: str, name: str, owner: str) -> Pin:
        validate_pin_fields(identity_id, repository_id, name, owner)
        pins = self._pins.setdefault(identity_id, [])
        if len(pins) >= self.max_pins:
            raise LimitExceeded(f"Maximum {self.max_pins} repositories can be pinned")
        if self.is_pinned(identity_id, repository_id):
            raise AlreadyPinned(f"Repository {repository_id} is already pinned")

        pin = Pin(
            id=str(uuid.uuid4()),
            identity_id=identity_id,
            repository_id=repository_id,
            repository_name=name,
            repository_owner=owner,
            pinned_at=self.clock(),
        )
        pins.append(pin)
        return pin

    def remove_pin(self, identity_id: str, repository_id: str) -> None:
        pins = self._pins.get(identity_id)
        if not pins:
            return
        self._pins[identity_id] = [pin for pin in pins if pin.repository_id != repository_id]
