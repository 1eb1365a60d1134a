"""Assembles the resume bundle handed to the document renderer."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from portfolio.domain.errors import NotFound, ValidationError
from portfolio.domain.models import ContributionCounters, Identity, Pin, Profile, Repository

logger = logging.getLogger(__name__)

TOP_REPOSITORIES = 10


@dataclass(frozen=True)
class ResumeBundle:
    identity: Identity
    profile: Profile
    pins: Tuple[Pin, ...]
    top_repositories: Tuple[Repository, ...]
    contribution_stats: ContributionCounters
    language_stats: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.identity.display_name,
            "identity": self.identity.to_dict(),
            "profile": self.profile.to_dict(),
            "pins": [pin.to_dict() for pin in self.pins],
            "top_repositories": [repo.to_dict() for repo in self.top_repositories],
            "contribution_stats": self.contribution_stats.to_dict(),
            "language_stats": dict(self.language_stats),
        }


class JsonDocumentRenderer:
    """Renders a bundle as UTF-8 JSON, for exports and for tests."""

    content_type = "application/json"
    extension = "json"

    def render(self, bundle: ResumeBundle) -> bytes:
        return json.dumps(bundle.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")


def resume_filename(username: str, extension: str = "pdf") -> str:
    return f"github-resume-{username}.{extension}"


class ResumeService:
    """Builds resume bundles from the snapshot and pin stores."""

    def __init__(self, snapshot_store, pin_store, renderer=None):
        """
        Args:
            snapshot_store: Store holding cached snapshots
            pin_store: Store holding pins
            renderer: Object with render(bundle) -> bytes; defaults to JSON output
        """
        self.snapshot_store = snapshot_store
        self.pin_store = pin_store
        self.renderer = renderer or JsonDocumentRenderer()

    def build_bundle(self, identity: Identity) -> ResumeBundle:
        if not identity.github_username:
            raise ValidationError("GitHub username not set up")

        snapshot = self.snapshot_store.get(identity.id, identity.github_username)
        if snapshot is None:
            raise NotFound("GitHub profile data not found. Please refresh your data first.")

        pins: List[Pin] = self.pin_store.list_pins(identity.id)
        return ResumeBundle(
            identity=identity,
            profile=snapshot.profile,
            pins=tuple(pins),
            top_repositories=tuple(snapshot.repositories[:TOP_REPOSITORIES]),
            contribution_stats=snapshot.contribution_stats,
            language_stats=dict(snapshot.language_stats),
        )

    def render(self, identity: Identity) -> bytes:
        bundle = self.build_bundle(identity)
        document = self.renderer.render(bundle)
        logger.info(f"Rendered resume for {identity.github_username} ({len(document)} bytes)")
        return document

    def filename(self, identity: Identity) -> str:
        """Download name for the rendered document, using the renderer's extension."""
        return resume_filename(identity.github_username, getattr(self.renderer, "extension", "pdf"))
