"""
Tests for the HTTP adapters' handling of upstream payloads.
The transport is replaced so each test controls the JSON body returned.
"""

import httpx
import pytest

from docfiling.models.enums import BatchScope, ItemStatus, MatchType
from docfiling.schemas.bulk import (
    BatchInfo,
    ClassifierDocument,
    CreateBatchRequest,
    DuplicateCheckResult,
    UploadedFile,
)
from docfiling.services import http_services
from docfiling.services.base import ServiceError
from docfiling.services.http_services import HttpClassificationService, HttpDuplicateCheckService

PDF = UploadedFile(name="plan.pdf", content=b"%PDF-1.4 plan", content_type="application/pdf")


@pytest.fixture
def respond_with(monkeypatch):
    """Make every adapter call return the given JSON body."""

    def install(body):
        async def fake_send(service, operation, method, url, **kwargs):
            return httpx.Response(200, json=body)

        monkeypatch.setattr(http_services, "_send", fake_send)

    return install


class TestClassifierPayloads:
    async def test_malformed_fields_sanitised(self, respond_with):
        respond_with({
            "success": True,
            "documents": [{
                "fileType": "Plans",
                "category": 42,
                "confidence": "high",
                "checklistMatches": ["site plan", {"itemId": "chk-1", "itemName": "Site Plan", "confidence": 0.9}],
                "intelligenceFields": {"not": "a list"},
                "extractedData": "none",
                "documentAnalysis": ["x"],
                "suggestedFolder": {"path": "plans"},
            }],
        })

        document = await HttpClassificationService(url="http://classifier").classify(PDF, BatchInfo(batch_id="b-1"))

        assert document.file_type == "Plans"
        assert document.category == "42"
        assert document.confidence is None
        assert len(document.checklist_matches) == 2
        assert document.intelligence_fields is None
        assert document.extracted_data is None
        assert document.document_analysis is None
        assert document.suggested_folder is None

    def test_numeric_confidence_string_kept(self):
        document = ClassifierDocument.model_validate({"confidence": "0.75"})
        assert document.confidence == 0.75

    async def test_failure_reason_from_plain_string_error(self, respond_with):
        respond_with({"success": False, "documents": [], "errors": ["quota exceeded"]})

        with pytest.raises(ServiceError) as exc:
            await HttpClassificationService(url="http://classifier").classify(PDF, BatchInfo(batch_id="b-1"))
        assert exc.value.error_code == "ANALYSIS_FAILED"
        assert "quota exceeded" in str(exc.value)

    async def test_non_object_documents_dropped(self, respond_with):
        respond_with({"success": True, "documents": ["junk", {"fileType": "Memo"}]})

        document = await HttpClassificationService(url="http://classifier").classify(PDF, BatchInfo(batch_id="b-1"))
        assert document.file_type == "Memo"

    async def test_malformed_document_still_reaches_review(self, batches, pipeline, classifier):
        classifier.results["plan.pdf"] = ClassifierDocument.model_validate({
            "fileType": "Plans",
            "category": "Plans",
            "confidence": "high",
            "checklistMatches": ["site plan"],
        })
        batch = await batches.create_batch(CreateBatchRequest(
            scope=BatchScope.CLIENT,
            client_id="client-1",
            client_name="Acme Homes",
            project_shortcode="ACME1",
            user_id="user-1",
            total_files=1,
        ))
        item = await batches.add_item(batch.id, "plan.pdf", 100, "application/pdf")

        result = await pipeline.run(item.id, await batches.batch_info(batch.id), PDF)

        assert result.status == ItemStatus.READY_FOR_REVIEW
        assert result.confidence == 0.5
        assert result.suggested_checklist_items is None


class TestDuplicatePayloads:
    async def test_unknown_match_type_treated_as_similar(self, respond_with):
        respond_with({
            "isDuplicate": True,
            "existingDocuments": [{"_id": "doc-1", "fileName": "plan.pdf", "matchType": "fuzzy"}],
        })

        result = await HttpDuplicateCheckService(url="http://duplicates").check("plan.pdf", "client-1")

        assert result.is_duplicate is True
        assert result.existing_documents[0].id == "doc-1"
        assert result.existing_documents[0].match_type == MatchType.SIMILAR

    def test_references_without_id_dropped(self):
        result = DuplicateCheckResult.model_validate({
            "isDuplicate": True,
            "existingDocuments": [
                "doc-0",
                {"fileName": "no-id.pdf"},
                {"_id": 17, "uploadedAt": 12, "matchType": "EXACT"},
            ],
        })

        assert [d.id for d in result.existing_documents] == ["17"]
        assert result.existing_documents[0].uploaded_at is None
        assert result.existing_documents[0].match_type == MatchType.EXACT
