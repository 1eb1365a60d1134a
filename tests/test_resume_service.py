from __future__ import annotations

import json

import pytest

from portfolio.application.resume_service import ResumeService, resume_filename
from portfolio.domain.errors import NotFound, ValidationError
from portfolio.domain.models import ContributionCounters, Identity, Profile, Snapshot
from portfolio.infrastructure.memory_storage import MemoryPinStore, MemorySnapshotStore


@pytest.fixture
def stores(clock, make_repository):
    snapshots = MemorySnapshotStore(clock=clock)
    pins = MemoryPinStore(clock=clock)
    repositories = tuple(make_repository(f"R_{i}", f"repo-{i}", stars=100 - i) for i in range(12))
    snapshots.upsert(Snapshot(
        identity_id="user-1",
        username="octocat",
        profile=Profile(login="octocat", name="The Octocat", bio="hi", avatar_url=None),
        repositories=repositories,
        language_stats={"Go": 60.0, "Python": 40.0},
        contribution_stats=ContributionCounters(commits=7),
    ))
    for i in range(3):
        clock.advance(seconds=1)
        pins.add_pin("user-1", f"R_{i}", f"repo-{i}", "octocat")
    return snapshots, pins


def test_bundle_has_top_ten_and_all_pins(stores):
    snapshots, pins = stores
    identity = Identity(id="user-1", first_name="Octo", github_username="octocat", github_access_token="secret")

    bundle = ResumeService(snapshots, pins).build_bundle(identity)

    assert len(bundle.top_repositories) == 10
    assert bundle.top_repositories[0].name == "repo-0"
    assert [pin.repository_id for pin in bundle.pins] == ["R_2", "R_1", "R_0"]
    assert bundle.language_stats == {"Go": 60.0, "Python": 40.0}
    assert bundle.contribution_stats.commits == 7


def test_json_rendering_leaves_out_the_credential(stores):
    snapshots, pins = stores
    identity = Identity(id="user-1", github_username="octocat", github_access_token="secret")

    document = ResumeService(snapshots, pins).render(identity)

    data = json.loads(document.decode("utf-8"))
    assert data["profile"]["login"] == "octocat"
    assert len(data["pins"]) == 3
    assert "secret" not in document.decode("utf-8")


def test_custom_renderer_receives_bundle(stores):
    snapshots, pins = stores
    received = []

    class Renderer:
        def render(self, bundle):
            received.append(bundle)
            return b"%PDF-1.4"

    document = ResumeService(snapshots, pins, renderer=Renderer()).render(Identity(id="user-1", github_username="octocat"))

    assert document == b"%PDF-1.4"
    assert received[0].profile.name == "The Octocat"


def test_bundle_requires_username_and_snapshot(stores):
    snapshots, pins = stores
    service = ResumeService(snapshots, pins)

    with pytest.raises(ValidationError):
        service.build_bundle(Identity(id="user-1"))
    with pytest.raises(NotFound):
        service.build_bundle(Identity(id="user-1", github_username="hubot"))


def test_resume_filename():
    assert resume_filename("octocat") == "github-resume-octocat.pdf"


def test_service_filename_follows_renderer(stores):
    snapshots, pins = stores
    identity = Identity(id="user-1", github_username="octocat")

    class PdfRenderer:
        extension = "pdf"

        def render(self, bundle):
            return b"%PDF-1.4"

    assert ResumeService(snapshots, pins).filename(identity) == "github-resume-octocat.json"
    assert ResumeService(snapshots, pins, renderer=PdfRenderer()).filename(identity) == "github-resume-octocat.pdf"


def test_rendered_bundle_carries_display_name(stores):
    snapshots, pins = stores
    identity = Identity(id="user-1", first_name="Mona", last_name="Lisa", github_username="octocat")

    data = json.loads(ResumeService(snapshots, pins).render(identity).decode("utf-8"))

    assert data["name"] == "Mona Lisa"
    assert list(data["language_stats"]) == ["Go", "Python"]
