"""
Artifact store for uploaded file bytes and training export files.
Local filesystem under ARTIFACT_ROOT; paths stay relative so the store can
be swapped for object storage without touching callers.

Writes go to a sibling temp file and are renamed into place, so a reader
never sees a half-written export.
"""

import os
import uuid
from pathlib import Path
from typing import Optional

import structlog

from docfiling.config import settings
from docfiling.storage.paths import blob_dir, blob_path, ensure_parent_dirs

logger = structlog.get_logger(__name__)


class ArtifactStore:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.ARTIFACT_ROOT)
        self.root.mkdir(parents=True, exist_ok=True)

    def _write(self, relative_path: str, data: bytes) -> None:
        full_path = ensure_parent_dirs(str(self.root), relative_path)
        tmp_path = full_path.with_name(f".{full_path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, full_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def _resolve(self, relative_path: str) -> Path:
        full_path = self.root / relative_path
        if not full_path.is_file():
            raise FileNotFoundError(f"Artifact not found: {relative_path}")
        return full_path

    # ── Generic artifacts ────────────────────────────────────

    def save_bytes(self, relative_path: str, data: bytes) -> str:
        self._write(relative_path, data)
        logger.info("artifact_saved", path=relative_path, size_bytes=len(data))
        return relative_path

    def save_text(self, relative_path: str, text: str) -> str:
        self._write(relative_path, text.encode("utf-8"))
        logger.info("artifact_saved_text", path=relative_path, size_chars=len(text))
        return relative_path

    def load_bytes(self, relative_path: str) -> bytes:
        return self._resolve(relative_path).read_bytes()

    def load_text(self, relative_path: str) -> str:
        return self._resolve(relative_path).read_text(encoding="utf-8")

    def exists(self, relative_path: str) -> bool:
        return (self.root / relative_path).is_file()

    def delete(self, relative_path: str) -> bool:
        """Returns True if the artifact existed."""
        full_path = self.root / relative_path
        if not full_path.is_file():
            return False
        full_path.unlink()
        logger.info("artifact_deleted", path=relative_path)
        return True

    def full_path(self, relative_path: str) -> Path:
        return self.root / relative_path

    def list_prefix(self, prefix: str) -> list[str]:
        """Relative paths of every file under a directory prefix, sorted."""
        base = self.root / prefix
        if not base.exists():
            return []
        return sorted(
            str(p.relative_to(self.root))
            for p in base.rglob("*")
            if p.is_file() and not p.name.endswith(".tmp")
        )

    # ── Uploaded blobs ───────────────────────────────────────

    def save_blob(self, storage_id: str, file_name: str, content: bytes) -> str:
        return self.save_bytes(blob_path(storage_id, file_name), content)

    def find_blob(self, storage_id: str) -> Optional[str]:
        """Path of the single file stored under a storage id, if any."""
        matches = self.list_prefix(blob_dir(storage_id))
        return matches[0] if matches else None
