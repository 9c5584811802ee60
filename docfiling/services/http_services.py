"""
HTTP adapters for the classification service, the duplicate-check service
and blob storage. Transport failures and non-2xx responses surface as
ServiceError; the bulk processor turns those into item-level errors.
"""

import json
import time
from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from docfiling.config import settings
from docfiling.observability.metrics import (
    external_service_errors_total,
    external_service_latency_seconds,
)
from docfiling.schemas.bulk import (
    BatchInfo,
    ClassifierDocument,
    ClassifierResponse,
    DuplicateCheckResult,
    UploadedFile,
)
from docfiling.services.base import (
    BlobStorage,
    ClassificationService,
    DuplicateCheckService,
    ServiceError,
)

logger = structlog.get_logger(__name__)


def _timeout() -> httpx.Timeout:
    return httpx.Timeout(timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS, connect=5.0)


def _headers() -> dict[str, str]:
    if settings.INTERNAL_SECRET:
        return {"X-Internal-Secret": settings.INTERNAL_SECRET}
    return {}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"


def _first_error(errors: list[Any]) -> Optional[str]:
    if not errors:
        return None
    first = errors[0]
    if isinstance(first, dict):
        return str(first.get("error") or first)
    return str(first)


async def _send(
    service: str,
    operation: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """One HTTP call with latency metrics and error mapping."""
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=_timeout()) as client:
            response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        external_service_errors_total.labels(service=service, operation=operation).inc()
        raise ServiceError(service, "TIMEOUT", f"{operation} timed out") from e
    except httpx.RequestError as e:
        external_service_errors_total.labels(service=service, operation=operation).inc()
        raise ServiceError(service, "UNREACHABLE", f"{operation} failed: {e}") from e
    finally:
        external_service_latency_seconds.labels(service=service, operation=operation).observe(
            time.monotonic() - start
        )

    if response.is_error:
        external_service_errors_total.labels(service=service, operation=operation).inc()
        logger.warning(
            "external_service_error",
            service=service,
            operation=operation,
            status_code=response.status_code,
        )
        raise ServiceError(service, f"HTTP_{response.status_code}", _error_message(response))
    return response


class HttpClassificationService(ClassificationService):
    """Posts the file as multipart form data along with the batch context."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.CLASSIFIER_URL

    @property
    def service_name(self) -> str:
        return "classifier"

    def _form(self, batch: BatchInfo) -> dict[str, str]:
        form = {
            "isInternal": "true" if batch.is_internal else "false",
            "uploaderInitials": batch.uploader_initials,
        }
        optional = {
            "instructions": batch.instructions,
            "clientType": batch.client_type,
            "clientName": batch.client_name,
            "projectShortcode": batch.project_shortcode,
        }
        form.update({k: v for k, v in optional.items() if v})
        if batch.checklist_items:
            form["checklistItems"] = json.dumps(batch.checklist_items)
        if batch.available_folders:
            form["availableFolders"] = json.dumps(batch.available_folders)
        return form

    async def classify(self, file: UploadedFile, batch: BatchInfo) -> ClassifierDocument:
        response = await _send(
            self.service_name,
            "classify",
            "POST",
            self.url,
            data=self._form(batch),
            files={"file": (file.name, file.content, file.content_type)},
            headers=_headers(),
        )

        try:
            parsed = ClassifierResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ServiceError(self.service_name, "BAD_RESPONSE", str(e)) from e

        if not parsed.success or not parsed.documents:
            reason = _first_error(parsed.errors) or "no documents returned"
            raise ServiceError(self.service_name, "ANALYSIS_FAILED", str(reason))

        if parsed.is_mock:
            logger.warning("classifier_mock_response", file_name=file.name)
        return parsed.documents[0]


class HttpDuplicateCheckService(DuplicateCheckService):
    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.DUPLICATE_CHECK_URL

    @property
    def service_name(self) -> str:
        return "duplicate_check"

    async def check(
        self,
        file_name: str,
        client_id: str,
        project_id: Optional[str] = None,
    ) -> DuplicateCheckResult:
        payload = {"originalFileName": file_name, "clientId": client_id}
        if project_id:
            payload["projectId"] = project_id

        response = await _send(
            self.service_name, "check", "POST", self.url, json=payload, headers=_headers()
        )
        try:
            return DuplicateCheckResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ServiceError(self.service_name, "BAD_RESPONSE", str(e)) from e


class HttpBlobStorage(BlobStorage):
    """Two-step upload: ask for a one-off upload URL, then POST the bytes to it."""

    def __init__(self, upload_url_endpoint: Optional[str] = None):
        self.upload_url_endpoint = upload_url_endpoint or settings.UPLOAD_URL_ENDPOINT

    @property
    def service_name(self) -> str:
        return "blob_storage"

    async def upload(self, file: UploadedFile) -> str:
        url_response = await _send(
            self.service_name, "upload_url", "POST", self.upload_url_endpoint, headers=_headers()
        )
        try:
            upload_url = url_response.json()["uploadUrl"]
        except (ValueError, KeyError, TypeError) as e:
            raise ServiceError(self.service_name, "BAD_RESPONSE", "missing uploadUrl") from e

        response = await _send(
            self.service_name,
            "upload",
            "POST",
            upload_url,
            content=file.content,
            headers={"Content-Type": file.content_type},
        )
        try:
            return str(response.json()["storageId"])
        except (ValueError, KeyError, TypeError) as e:
            raise ServiceError(self.service_name, "BAD_RESPONSE", "missing storageId") from e

    async def download(self, storage_id: str) -> bytes:
        response = await _send(
            self.service_name,
            "download",
            "GET",
            settings.BLOB_DOWNLOAD_URL.format(storage_id=storage_id),
            headers=_headers(),
        )
        return response.content
