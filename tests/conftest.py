"""
Shared test fixtures.
Services run over in-memory repositories, stub external services and a
fixed clock.
"""

from datetime import timedelta

import pytest

from docfiling.bulk.batches import BatchService
from docfiling.feedback.cache import ClassificationCache
from docfiling.feedback.corrections import CorrectionService
from docfiling.feedback.training_export import TrainingExportService
from docfiling.pipeline.bulk_processor import ItemAnalysisPipeline
from docfiling.repositories.memory import (
    InMemoryBulkRepository,
    InMemoryCacheRepository,
    InMemoryCorrectionRepository,
    InMemoryExportRepository,
)
from docfiling.services.stub_services import (
    LocalBlobStorage,
    RepositoryDuplicateChecker,
    StubClassificationService,
)
from docfiling.storage.artifact_store import ArtifactStore
from tests.factories import T0


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(str(tmp_path / "artifacts"))


# ── Repositories ─────────────────────────────────────────────

@pytest.fixture
def cache_repo():
    return InMemoryCacheRepository()


@pytest.fixture
def correction_repo():
    return InMemoryCorrectionRepository()


@pytest.fixture
def export_repo():
    return InMemoryExportRepository()


@pytest.fixture
def bulk_repo():
    return InMemoryBulkRepository()


# ── Services ─────────────────────────────────────────────────

@pytest.fixture
def cache(cache_repo, clock):
    return ClassificationCache(cache_repo, clock=clock)


@pytest.fixture
def corrections(correction_repo, cache, clock):
    return CorrectionService(correction_repo, cache, clock=clock)


@pytest.fixture
def exports(export_repo, correction_repo, store, clock):
    return TrainingExportService(export_repo, correction_repo, store, clock=clock)


@pytest.fixture
def scheduled():
    """Ids handed to a scheduler, in call order."""
    return []


@pytest.fixture
def batches(bulk_repo, corrections, scheduled, clock):
    def scheduler(batch_id):
        scheduled.append(batch_id)
        return f"job-{len(scheduled)}"

    return BatchService(bulk_repo, corrections, scheduler=scheduler, clock=clock)


@pytest.fixture
def classifier():
    return StubClassificationService()


@pytest.fixture
def blobs(store):
    return LocalBlobStorage(store)


@pytest.fixture
def pipeline(bulk_repo, classifier, blobs, clock):
    return ItemAnalysisPipeline(
        bulk_repo,
        classifier,
        RepositoryDuplicateChecker(bulk_repo),
        blobs,
        clock=clock,
        call_timeout=5,
    )
