"""
FastAPI dependency injection.
Provides repositories, services, the artifact store and API key validation.
The worker builds its services through the same getters.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from docfiling.bulk.batches import BatchService
from docfiling.config import settings
from docfiling.feedback.cache import ClassificationCache
from docfiling.feedback.corrections import CorrectionService
from docfiling.feedback.training_export import TrainingExportService
from docfiling.pipeline.bulk_processor import ItemAnalysisPipeline
from docfiling.repositories.base import (
    BulkRepository,
    CacheRepository,
    CorrectionRepository,
    ExportRepository,
)
from docfiling.services.base import BlobStorage, ClassificationService, DuplicateCheckService
from docfiling.services.http_services import (
    HttpBlobStorage,
    HttpClassificationService,
    HttpDuplicateCheckService,
)
from docfiling.storage.artifact_store import ArtifactStore


# ── Singleton instances ──────────────────────────────────────
# SQL repositories import the engine lazily so that tests overriding these
# getters never open a database pool.

@lru_cache
def get_artifact_store() -> ArtifactStore:
    return ArtifactStore()


@lru_cache
def get_cache_repository() -> CacheRepository:
    from docfiling.models.database import async_session_factory
    from docfiling.repositories.sql import SqlCacheRepository

    return SqlCacheRepository(async_session_factory)


@lru_cache
def get_correction_repository() -> CorrectionRepository:
    from docfiling.models.database import async_session_factory
    from docfiling.repositories.sql import SqlCorrectionRepository

    return SqlCorrectionRepository(async_session_factory)


@lru_cache
def get_export_repository() -> ExportRepository:
    from docfiling.models.database import async_session_factory
    from docfiling.repositories.sql import SqlExportRepository

    return SqlExportRepository(async_session_factory)


@lru_cache
def get_bulk_repository() -> BulkRepository:
    from docfiling.models.database import async_session_factory
    from docfiling.repositories.sql import SqlBulkRepository

    return SqlBulkRepository(async_session_factory)


@lru_cache
def get_classifier() -> ClassificationService:
    return HttpClassificationService()


@lru_cache
def get_duplicate_checker() -> DuplicateCheckService:
    return HttpDuplicateCheckService()


@lru_cache
def get_blob_storage() -> BlobStorage:
    return HttpBlobStorage()


# ── Services ─────────────────────────────────────────────────

def get_classification_cache(
    repo: CacheRepository = Depends(get_cache_repository),
) -> ClassificationCache:
    return ClassificationCache(repo)


def get_correction_service(
    repo: CorrectionRepository = Depends(get_correction_repository),
    cache: ClassificationCache = Depends(get_classification_cache),
) -> CorrectionService:
    return CorrectionService(repo, cache)


def get_export_service(
    exports: ExportRepository = Depends(get_export_repository),
    corrections: CorrectionRepository = Depends(get_correction_repository),
    store: ArtifactStore = Depends(get_artifact_store),
) -> TrainingExportService:
    from docfiling.worker.jobs import enqueue_export_generation

    return TrainingExportService(exports, corrections, store, scheduler=enqueue_export_generation)


def get_batch_service(
    repo: BulkRepository = Depends(get_bulk_repository),
    corrections: CorrectionService = Depends(get_correction_service),
) -> BatchService:
    from docfiling.worker.jobs import enqueue_batch_processing

    return BatchService(repo, corrections, scheduler=enqueue_batch_processing)


def get_item_pipeline(
    repo: BulkRepository = Depends(get_bulk_repository),
    classifier: ClassificationService = Depends(get_classifier),
    duplicates: DuplicateCheckService = Depends(get_duplicate_checker),
    blobs: BlobStorage = Depends(get_blob_storage),
) -> ItemAnalysisPipeline:
    return ItemAnalysisPipeline(repo, classifier, duplicates, blobs)


# ── Security ─────────────────────────────────────────────────

async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key
