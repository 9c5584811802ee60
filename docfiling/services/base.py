"""
Abstract base classes for the external collaborators of the bulk processor.
Every implementation must raise ServiceError on failure, never return a
partial or corrupt result.
"""

from abc import ABC, abstractmethod
from typing import Optional

from docfiling.schemas.bulk import (
    BatchInfo,
    ClassifierDocument,
    DuplicateCheckResult,
    UploadedFile,
)


class ClassificationService(ABC):
    """
    The upstream document classifier.

    Given file bytes plus batch context it returns one ClassifierDocument.
    Its output is advisory and is sanitised before storage.
    """

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def classify(self, file: UploadedFile, batch: BatchInfo) -> ClassifierDocument:
        ...


class DuplicateCheckService(ABC):
    """Looks up already-filed documents with the same original filename."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def check(
        self,
        file_name: str,
        client_id: str,
        project_id: Optional[str] = None,
    ) -> DuplicateCheckResult:
        ...


class BlobStorage(ABC):
    """Stores raw uploaded bytes and hands back a storage id."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def upload(self, file: UploadedFile) -> str:
        ...

    @abstractmethod
    async def download(self, storage_id: str) -> bytes:
        ...


class ServiceError(Exception):
    """Raised when an external service call fails."""

    def __init__(self, service_name: str, error_code: str, message: str):
        self.service_name = service_name
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{service_name}] {error_code}: {message}")
