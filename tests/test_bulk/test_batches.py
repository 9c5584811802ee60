"""
Tests for the batch lifecycle: creation, review edits, duplicate version
resolution and filing with correction capture.
"""

from datetime import timedelta

import pytest

from docfiling.errors import BatchStateError, FilingError, NotFoundError
from docfiling.models.enums import (
    BatchScope,
    BatchStatus,
    CorrectableField,
    ItemStatus,
    ProcessingMode,
    VersionType,
)
from docfiling.pipeline.bulk_processor import BulkQueueProcessor
from docfiling.pipeline.fingerprint import content_hash
from docfiling.schemas.bulk import (
    ClassifierDocument,
    CreateBatchRequest,
    DocumentRecord,
    UpdateItemDetailsRequest,
    UploadedFile,
)
from docfiling.schemas.classification import Classification
from tests.factories import T0

APPRAISAL = ClassifierDocument(
    summary="RICS valuation of 12 Park Lane",
    file_type="Appraisal",
    category="Appraisal",
    confidence=0.92,
    suggested_folder="appraisals",
    checklist_matches=[
        {"itemId": "chk-1", "itemName": "Valuation Report", "confidence": 0.9},
        {"itemId": "chk-2", "itemName": "Site Plan", "confidence": 0.75},
    ],
)


def _batch_request(**kwargs):
    request = {
        "scope": BatchScope.CLIENT,
        "client_id": "client-1",
        "client_name": "Acme Homes",
        "project_id": "project-1",
        "project_name": "Park Lane",
        "project_shortcode": "ACME1",
        "uploader_name": "John Smith",
        "user_id": "user-1",
        "total_files": 1,
    }
    request.update(kwargs)
    return CreateBatchRequest(**request)


async def _processed(batches, pipeline, names, **kwargs):
    """A batch whose files have been through the foreground processor."""
    kwargs.setdefault("total_files", len(names))
    batch = await batches.create_batch(_batch_request(**kwargs))
    processor = BulkQueueProcessor(pipeline)
    processor.set_batch_info(await batches.batch_info(batch.id))
    items = []
    for name in names:
        item = await batches.add_item(batch.id, name, 100, "application/pdf")
        processor.add_item(item.id, UploadedFile(name=name, content=b"%PDF-1.4"))
        items.append(item)
    await processor.process_queue()
    return batch, items


async def _existing_documents(bulk_repo):
    await bulk_repo.create_document(DocumentRecord(
        id="doc-1",
        file_name="valuation.pdf",
        file_type_detected="Appraisal",
        category="Appraisal",
        client_id="client-1",
        project_id="project-1",
        document_code="ACME1-APPRAISAL-EXT-JS-V1.0-2026-01-01",
        version="V1.0",
        uploaded_at=T0 - timedelta(days=11),
    ))
    await bulk_repo.create_document(DocumentRecord(
        id="doc-2",
        file_name="valuation revised.pdf",
        file_type_detected="Appraisal",
        category="Appraisal",
        client_id="client-1",
        project_id="project-1",
        document_code="ACME1-APPRAISAL-EXT-JS-V1.1-2026-01-05",
        version="V1.1",
        previous_version_id="doc-1",
        uploaded_at=T0 - timedelta(days=7),
    ))


class TestCreateBatch:
    async def test_defaults(self, batches, clock):
        batch = await batches.create_batch(_batch_request(total_files=4))
        assert batch.status == BatchStatus.UPLOADING
        assert batch.uploader_initials == "JS"
        assert batch.client_type == "borrower"
        assert batch.total_files == 4
        assert batch.created_at == clock.now

    async def test_explicit_client_type_kept(self, batches):
        batch = await batches.create_batch(_batch_request(client_type="lender"))
        assert batch.client_type == "lender"

    async def test_client_scope_needs_client(self, batches):
        with pytest.raises(FilingError) as exc:
            await batches.create_batch(_batch_request(client_id=None))
        assert exc.value.error_code == "ERR_INVALID_BATCH"

    async def test_internal_scope_without_client(self, batches):
        batch = await batches.create_batch(
            _batch_request(scope=BatchScope.INTERNAL, client_id=None, internal_folder_id="f-1", is_internal=True)
        )
        assert batch.scope == BatchScope.INTERNAL

    async def test_unknown_batch(self, batches):
        with pytest.raises(NotFoundError):
            await batches.get_batch("missing")


class TestItems:
    async def test_item_inherits_internal_flag(self, batches):
        batch = await batches.create_batch(_batch_request(is_internal=True))
        item = await batches.add_item(batch.id, "memo.pdf", 10, "application/pdf")
        assert item.status == ItemStatus.PENDING
        assert item.is_internal is True

    async def test_completed_batch_refuses_items(self, batches, bulk_repo):
        batch = await batches.create_batch(_batch_request())
        await bulk_repo.update_batch(batch.id, status=BatchStatus.COMPLETED)
        with pytest.raises(BatchStateError):
            await batches.add_item(batch.id, "late.pdf", 10, "application/pdf")

    async def test_stats(self, batches, pipeline, classifier, bulk_repo):
        await _existing_documents(bulk_repo)
        classifier.fail_on.add("broken.pdf")
        batch, _ = await _processed(batches, pipeline, ["valuation.pdf", "broken.pdf", "memo.pdf"])

        stats = await batches.get_batch_stats(batch.id)
        assert stats.items == 3
        assert stats.status_counts["ready_for_review"] == 2
        assert stats.status_counts["error"] == 1
        assert stats.status_counts["filed"] == 0
        assert stats.duplicates_count == 1
        assert stats.unresolved_duplicates == 1

    async def test_list_items_by_status(self, batches, pipeline, classifier):
        classifier.fail_on.add("broken.pdf")
        batch, items = await _processed(batches, pipeline, ["ok.pdf", "broken.pdf"])
        errored = await batches.list_items(batch.id, status=ItemStatus.ERROR)
        assert [i.id for i in errored] == [items[1].id]


class TestBackgroundStart:
    async def test_schedules_and_estimates(self, batches, scheduled, bulk_repo, clock):
        batch = await batches.create_batch(_batch_request(total_files=4))
        response = await batches.start_background_processing(batch.id)

        assert scheduled == [batch.id]
        assert response.job_id == "job-1"
        assert response.estimated_minutes == 2
        assert response.estimated_completion_time == clock.now + timedelta(seconds=80)

        stored = await bulk_repo.get_batch(batch.id)
        assert stored.status == BatchStatus.PROCESSING
        assert stored.processing_mode == ProcessingMode.BACKGROUND
        assert stored.started_processing_at == clock.now

    async def test_only_from_uploading(self, batches, scheduled):
        batch = await batches.create_batch(_batch_request())
        await batches.start_background_processing(batch.id)
        with pytest.raises(BatchStateError):
            await batches.start_background_processing(batch.id)
        assert len(scheduled) == 1


class TestUpdateItemDetails:
    async def test_original_value_recorded_once(self, batches, pipeline):
        _, items = await _processed(batches, pipeline, ["notes.pdf"])
        item_id = items[0].id

        await batches.update_item_details(item_id, UpdateItemDetailsRequest(file_type_detected="Track Record"))
        updated = await batches.update_item_details(item_id, UpdateItemDetailsRequest(file_type_detected="Memo"))

        assert updated.file_type_detected == "Memo"
        assert updated.user_edits["file_type_detected"] is True
        assert updated.user_edits["original_file_type_detected"] == "Other"

    async def test_same_value_is_not_an_edit(self, batches, pipeline):
        _, items = await _processed(batches, pipeline, ["notes.pdf"])
        updated = await batches.update_item_details(items[0].id, UpdateItemDetailsRequest(category="Other"))
        assert "category" not in updated.user_edits

    async def test_checklist_originals(self, batches, pipeline, classifier):
        classifier.results["valuation.pdf"] = APPRAISAL
        _, items = await _processed(batches, pipeline, ["valuation.pdf"])

        updated = await batches.update_item_details(
            items[0].id, UpdateItemDetailsRequest(checklist_item_ids=["chk-2"])
        )
        assert updated.checklist_item_ids == ["chk-2"]
        assert updated.user_edits["original_checklist_item_ids"] == ["chk-1"]
        assert len(updated.user_edits["original_suggested_checklist_items"]) == 2

    async def test_filed_item_is_frozen(self, batches, pipeline):
        _, items = await _processed(batches, pipeline, ["notes.pdf"])
        await batches.file_item(items[0].id)
        with pytest.raises(BatchStateError):
            await batches.update_item_details(items[0].id, UpdateItemDetailsRequest(category="Memo"))


class TestSetVersionType:
    async def test_version_bumped_from_family(self, batches, pipeline, classifier, bulk_repo):
        await _existing_documents(bulk_repo)
        classifier.results["valuation.pdf"] = APPRAISAL
        _, items = await _processed(batches, pipeline, ["valuation.pdf"])

        minor = await batches.set_version_type(items[0].id, VersionType.MINOR)
        assert minor.version == "V1.2"
        assert minor.generated_document_code == "ACME1-APPRAISAL-EXT-JS-V1.2-2026-01-12"

        significant = await batches.set_version_type(items[0].id, VersionType.SIGNIFICANT)
        assert significant.version == "V2.0"

        stored = await bulk_repo.get_item(items[0].id)
        assert stored.version_type == VersionType.SIGNIFICANT
        assert stored.version == "V2.0"

    async def test_not_a_duplicate(self, batches, pipeline):
        _, items = await _processed(batches, pipeline, ["notes.pdf"])
        response = await batches.set_version_type(items[0].id, VersionType.SIGNIFICANT)
        assert response.version == "V1.0"


class TestFileItem:
    async def test_files_document(self, batches, pipeline, classifier, bulk_repo):
        classifier.results["valuation.pdf"] = APPRAISAL
        batch, items = await _processed(batches, pipeline, ["valuation.pdf"])

        response = await batches.file_item(items[0].id)

        assert response.correction_id is None
        document = await bulk_repo.get_document(response.document_id)
        assert document.document_code == "ACME1-APPRAISAL-EXT-JS-V1.0-2026-01-12"
        assert document.folder_id == "appraisals"
        assert document.folder_type == "project"
        assert document.version == "V1.0"
        assert document.client_id == "client-1"

        item = await bulk_repo.get_item(items[0].id)
        assert item.status == ItemStatus.FILED
        assert item.document_id == document.id

        stored = await bulk_repo.get_batch(batch.id)
        assert stored.status == BatchStatus.COMPLETED
        assert stored.filed_files == 1

    async def test_internal_scope_uses_internal_folder(self, batches, pipeline, bulk_repo):
        _, items = await _processed(
            batches, pipeline, ["memo.pdf"],
            scope=BatchScope.INTERNAL, client_id=None, internal_folder_id="internal-42", is_internal=True,
        )
        response = await batches.file_item(items[0].id)
        document = await bulk_repo.get_document(response.document_id)
        assert document.folder_id == "internal-42"
        assert document.folder_type is None
        assert document.is_internal is True

    async def test_batch_waits_for_remaining_items(self, batches, pipeline, bulk_repo):
        batch, items = await _processed(batches, pipeline, ["a.pdf", "b.pdf"])
        await batches.file_item(items[0].id)
        assert (await bulk_repo.get_batch(batch.id)).status == BatchStatus.REVIEW

        await batches.file_item(items[1].id)
        stored = await bulk_repo.get_batch(batch.id)
        assert stored.status == BatchStatus.COMPLETED
        assert stored.completed_processing_at is not None

    async def test_batch_with_errors_ends_partial(self, batches, pipeline, classifier, bulk_repo):
        classifier.fail_on.add("b.pdf")
        batch, items = await _processed(batches, pipeline, ["a.pdf", "b.pdf"])
        await batches.file_item(items[0].id)
        assert (await bulk_repo.get_batch(batch.id)).status == BatchStatus.PARTIAL

    async def test_batch_short_of_expected_files_stays_in_review(self, batches, pipeline, bulk_repo):
        batch, items = await _processed(batches, pipeline, ["a.pdf"], total_files=3)
        await batches.file_item(items[0].id)
        assert (await bulk_repo.get_batch(batch.id)).status == BatchStatus.REVIEW

    async def test_unresolved_duplicate_refused(self, batches, pipeline, classifier, bulk_repo):
        await _existing_documents(bulk_repo)
        classifier.results["valuation.pdf"] = APPRAISAL
        _, items = await _processed(batches, pipeline, ["valuation.pdf"])

        with pytest.raises(BatchStateError):
            await batches.file_item(items[0].id)

        await batches.set_version_type(items[0].id, VersionType.MINOR)
        response = await batches.file_item(items[0].id)
        document = await bulk_repo.get_document(response.document_id)
        assert document.version == "V1.2"
        assert document.previous_version_id == "doc-1"

    async def test_errored_item_cannot_be_filed(self, batches, pipeline, classifier):
        classifier.fail_on.add("a.pdf")
        _, items = await _processed(batches, pipeline, ["a.pdf"])
        with pytest.raises(FilingError):
            await batches.file_item(items[0].id)

    async def test_filing_twice_refused(self, batches, pipeline):
        _, items = await _processed(batches, pipeline, ["a.pdf"])
        await batches.file_item(items[0].id)
        with pytest.raises(BatchStateError):
            await batches.file_item(items[0].id)


class TestCorrectionOnFiling:
    async def test_edits_become_correction(self, batches, pipeline, correction_repo):
        _, items = await _processed(batches, pipeline, ["Track Record 2024.pdf"])
        item_id = items[0].id
        await batches.update_item_details(
            item_id,
            UpdateItemDetailsRequest(file_type_detected="Track Record", target_folder="track-record"),
        )

        response = await batches.file_item(item_id)

        correction = await correction_repo.get(response.correction_id)
        assert correction.source_item_id == item_id
        assert correction.corrected_fields == [CorrectableField.FILE_TYPE, CorrectableField.TARGET_FOLDER]
        assert correction.ai_prediction.file_type == "Other"
        assert correction.ai_prediction.target_folder == "miscellaneous"
        assert correction.user_correction.file_type == "Track Record"
        assert correction.user_correction.category is None
        assert correction.client_type == "borrower"
        assert correction.corrected_by == "user-1"

    async def test_reverted_edit_is_not_a_correction(self, batches, pipeline, correction_repo):
        _, items = await _processed(batches, pipeline, ["notes.pdf"])
        item_id = items[0].id
        await batches.update_item_details(item_id, UpdateItemDetailsRequest(file_type_detected="Memo"))
        await batches.update_item_details(item_id, UpdateItemDetailsRequest(file_type_detected="Other"))

        response = await batches.file_item(item_id)
        assert response.correction_id is None
        assert correction_repo.corrections == {}

    async def test_checklist_change_captured(self, batches, pipeline, classifier, correction_repo):
        classifier.results["valuation.pdf"] = APPRAISAL
        _, items = await _processed(batches, pipeline, ["valuation.pdf"])
        await batches.update_item_details(items[0].id, UpdateItemDetailsRequest(checklist_item_ids=["chk-2"]))

        response = await batches.file_item(items[0].id)

        correction = await correction_repo.get(response.correction_id)
        assert correction.corrected_fields == [CorrectableField.CHECKLIST_ITEMS]
        assert [(c.item_id, c.item_name) for c in correction.user_correction.checklist_items] == [
            ("chk-2", "Site Plan")
        ]
        assert len(correction.ai_prediction.suggested_checklist_items) == 2

    async def test_correction_invalidates_cached_classification(self, batches, pipeline, cache):
        _, items = await _processed(batches, pipeline, ["notes.pdf"])
        item = items[0]
        stored_summary = "Document notes.pdf"
        await cache.store(
            content_hash(stored_summary), "notes", Classification(file_type="Other", category="Other")
        )
        await batches.update_item_details(item.id, UpdateItemDetailsRequest(category="Memo"))
        await batches.file_item(item.id)

        assert (await cache.check(content_hash(stored_summary))).hit is False
