"""
Tests for the artifact store and its path helpers.
"""

import pytest

from docfiling.schemas.bulk import UploadedFile
from docfiling.services.base import ServiceError
from docfiling.storage.paths import blob_path, export_artifact_path, safe_file_name


class TestPaths:
    def test_file_name_sanitised(self):
        assert safe_file_name("../../etc/passwd") == "passwd"
        assert safe_file_name("Site Plan (rev 2).pdf") == "Site_Plan_rev_2_.pdf"
        assert safe_file_name("...") == "file"

    def test_layout(self):
        assert blob_path("abc", "a b.pdf") == "blobs/abc/a_b.pdf"
        assert export_artifact_path("e-1") == "exports/e-1/training.jsonl"


class TestArtifactStore:
    def test_text_round_trip(self, store):
        path = store.save_text("exports/e-1/training.jsonl", '{"a": 1}\n')
        assert store.exists(path)
        assert store.load_text(path) == '{"a": 1}\n'
        assert store.list_prefix("exports") == ["exports/e-1/training.jsonl"]

    def test_overwrite_leaves_no_temp_files(self, store):
        store.save_text("exports/e-1/training.jsonl", "first")
        store.save_text("exports/e-1/training.jsonl", "second")
        assert store.load_text("exports/e-1/training.jsonl") == "second"
        assert [p.name for p in store.full_path("exports/e-1").iterdir()] == ["training.jsonl"]

    def test_missing_artifact(self, store):
        with pytest.raises(FileNotFoundError):
            store.load_bytes("blobs/none/file.pdf")
        assert store.delete("blobs/none/file.pdf") is False

    def test_blobs_found_by_storage_id(self, store):
        store.save_blob("s-1", "valuation.pdf", b"%PDF")
        assert store.find_blob("s-1") == "blobs/s-1/valuation.pdf"
        assert store.load_bytes(store.find_blob("s-1")) == b"%PDF"
        assert store.find_blob("s-2") is None


class TestLocalBlobStorage:
    async def test_upload_then_download(self, blobs):
        storage_id = await blobs.upload(UploadedFile(name="memo.pdf", content=b"memo"))
        assert await blobs.download(storage_id) == b"memo"

    async def test_unknown_blob(self, blobs):
        with pytest.raises(ServiceError) as exc:
            await blobs.download("missing")
        assert exc.value.error_code == "NOT_FOUND"
