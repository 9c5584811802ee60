"""
Tests for training export jobs.
"""

import json
from datetime import datetime, timedelta

import pytest

from docfiling.errors import InvalidTransitionError, NotFoundError
from docfiling.feedback import training_export
from docfiling.feedback.training_export import TrainingExportService
from docfiling.models.enums import CorrectableField, ExportFormat, ExportStatus
from docfiling.schemas.exports import CreateExportRequest, ExportCriteria
from docfiling.storage.paths import export_artifact_path
from tests.factories import T0, correction_record


def _request(**kwargs):
    defaults = {
        "export_name": "january",
        "exported_by": "user-1",
        "format": ExportFormat.OPENAI_CHAT,
    }
    defaults.update(kwargs)
    return CreateExportRequest(**defaults)


@pytest.fixture
async def seeded(correction_repo):
    await correction_repo.insert(correction_record("a.pdf", "Other", "Track Record", client_type="lender"))
    await correction_repo.insert(correction_record("b.pdf", "Other", "Appraisal", client_type="borrower"))
    await correction_repo.insert(
        correction_record("c.pdf", "Memo", None, corrected_category="Credit", client_type="lender")
    )


class TestCreateExport:
    async def test_pending_with_zero_stats(self, exports, clock):
        export = await exports.create_export(_request())
        assert export.status == ExportStatus.PENDING
        assert export.stats.total_examples == 0
        assert export.exported_at == clock.now

    async def test_scheduler_receives_export_id(self, export_repo, correction_repo, store):
        scheduled = []
        service = TrainingExportService(
            export_repo, correction_repo, store, scheduler=lambda eid: scheduled.append(eid) or "job-1"
        )
        export = await service.create_export(_request())
        assert scheduled == [export.id]

    async def test_scheduler_failure_marks_error(self, export_repo, correction_repo, store):
        def broken(export_id):
            raise ConnectionError("redis down")

        service = TrainingExportService(export_repo, correction_repo, store, scheduler=broken)
        export = await service.create_export(_request())
        assert export.status == ExportStatus.ERROR
        assert "redis down" in export.error


class TestGenerate:
    async def test_writes_artifact_and_completes(self, exports, store, seeded):
        export = await exports.create_export(_request())
        done = await exports.generate(export.id)

        assert done.status == ExportStatus.COMPLETED
        assert done.artifact_path == export_artifact_path(export.id)
        assert done.stats.total_examples == 3
        assert done.stats.by_correction_type == {"fileType": 2, "category": 1}

        lines = store.load_text(done.artifact_path).split("\n")
        assert len(lines) == 3
        assert all("messages" in json.loads(line) for line in lines)

    async def test_criteria_applied(self, exports, seeded):
        criteria = ExportCriteria(
            client_types=["lender"],
            corrected_fields_filter=[CorrectableField.FILE_TYPE],
        )
        export = await exports.create_export(_request(criteria=criteria, format=ExportFormat.ALPACA))
        done = await exports.generate(export.id)
        assert done.stats.total_examples == 1
        assert done.stats.by_file_type == {"Track Record": 1}

    async def test_naive_date_range_read_as_utc(self, exports, correction_repo):
        await correction_repo.insert(correction_record("old.pdf", created_at=T0 - timedelta(days=20)))
        await correction_repo.insert(correction_record("new.pdf", created_at=T0))

        criteria = ExportCriteria(date_range_start=datetime(2026, 1, 1), date_range_end=datetime(2026, 2, 1))
        assert criteria.date_range_start.tzinfo is not None
        export = await exports.create_export(_request(criteria=criteria))
        done = await exports.generate(export.id)

        assert done.status == ExportStatus.COMPLETED
        assert done.stats.total_examples == 1

    async def test_failure_recorded_on_job(self, exports, correction_repo, store, monkeypatch):
        async def broken():
            raise RuntimeError("corrections unavailable")

        monkeypatch.setattr(correction_repo, "list_all", broken)
        export = await exports.create_export(_request())
        failed = await exports.generate(export.id)

        assert failed.status == ExportStatus.ERROR
        assert failed.error == "corrections unavailable"
        assert failed.artifact_path is None
        assert not store.exists(export_artifact_path(export.id))

    async def test_formatting_failure_leaves_no_artifact(self, exports, store, seeded, monkeypatch):
        def broken(correction, export_format):
            raise ValueError("bad example")

        monkeypatch.setattr(training_export, "format_training_example", broken)
        export = await exports.create_export(_request())
        failed = await exports.generate(export.id)

        assert failed.status == ExportStatus.ERROR
        assert store.list_prefix("exports") == []

    async def test_unknown_export(self, exports):
        with pytest.raises(NotFoundError):
            await exports.generate("missing")

    async def test_terminal_jobs_not_regenerated(self, exports, seeded):
        export = await exports.create_export(_request())
        await exports.generate(export.id)
        with pytest.raises(InvalidTransitionError):
            await exports.generate(export.id)


class TestReadBack:
    async def test_get_export_resolves_download_path(self, exports, store, seeded):
        export = await exports.create_export(_request())
        assert (await exports.get_export(export.id)).download_path is None

        await exports.generate(export.id)
        detail = await exports.get_export(export.id)
        assert detail.download_path == str(store.full_path(export_artifact_path(export.id)))
        assert exports.read_artifact(detail).count("\n") == 2

    async def test_get_missing_export(self, exports):
        assert await exports.get_export("missing") is None

    async def test_list_by_user(self, exports):
        await exports.create_export(_request(exported_by="alice"))
        await exports.create_export(_request(exported_by="bob"))
        await exports.create_export(_request(exported_by="alice", export_name="second"))

        names = [e.export_name for e in await exports.list_exports("alice")]
        assert names == ["second", "january"]
