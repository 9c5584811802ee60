"""
Local implementations of the external collaborators.
Used for tests and for running the service without the upstream
classifier. Duplicate checks and blob storage work for real against the
local document table and artifact store.
"""

import uuid
from typing import Optional

from docfiling.models.enums import MatchType
from docfiling.repositories.base import BulkRepository
from docfiling.schemas.bulk import (
    BatchInfo,
    ClassifierDocument,
    DuplicateCheckResult,
    ExistingDocumentRef,
    UploadedFile,
)
from docfiling.services.base import (
    BlobStorage,
    ClassificationService,
    DuplicateCheckService,
    ServiceError,
)
from docfiling.storage.artifact_store import ArtifactStore


class StubClassificationService(ClassificationService):
    """
    Returns canned results per filename, or a generic "Other" result.
    Filenames in fail_on raise ServiceError, to exercise item isolation.
    """

    def __init__(
        self,
        results: Optional[dict[str, ClassifierDocument]] = None,
        fail_on: Optional[set[str]] = None,
    ):
        self.results = results or {}
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    @property
    def service_name(self) -> str:
        return "stub_classifier"

    async def classify(self, file: UploadedFile, batch: BatchInfo) -> ClassifierDocument:
        self.calls.append(file.name)
        if file.name in self.fail_on:
            raise ServiceError(self.service_name, "ANALYSIS_FAILED", f"could not classify {file.name}")
        if file.name in self.results:
            return self.results[file.name].model_copy(deep=True)
        return ClassifierDocument(
            summary=f"Document {file.name}",
            file_type="Other",
            category="Other",
            confidence=0.5,
            suggested_folder="miscellaneous",
        )


class RepositoryDuplicateChecker(DuplicateCheckService):
    """Exact filename match against documents already filed for the client."""

    def __init__(self, repo: BulkRepository):
        self.repo = repo

    @property
    def service_name(self) -> str:
        return "local_duplicate_check"

    async def check(
        self,
        file_name: str,
        client_id: str,
        project_id: Optional[str] = None,
    ) -> DuplicateCheckResult:
        documents = await self.repo.find_documents(
            client_id=client_id,
            project_id=project_id,
            file_name=file_name,
        )
        refs = [
            ExistingDocumentRef(
                id=doc.id,
                file_name=doc.file_name,
                document_code=doc.document_code,
                version=doc.version,
                uploaded_at=doc.uploaded_at,
                match_type=MatchType.EXACT,
            )
            for doc in documents
        ]
        return DuplicateCheckResult(
            is_duplicate=bool(refs),
            has_exact_match=bool(refs),
            has_similar_match=False,
            existing_documents=refs,
        )


class LocalBlobStorage(BlobStorage):
    """Keeps uploaded bytes in the artifact store."""

    def __init__(self, store: ArtifactStore):
        self.store = store

    @property
    def service_name(self) -> str:
        return "local_blob_storage"

    async def upload(self, file: UploadedFile) -> str:
        storage_id = str(uuid.uuid4())
        self.store.save_blob(storage_id, file.name, file.content)
        return storage_id

    async def download(self, storage_id: str) -> bytes:
        path = self.store.find_blob(storage_id)
        if path is None:
            raise ServiceError(self.service_name, "NOT_FOUND", f"no blob {storage_id}")
        return self.store.load_bytes(path)
