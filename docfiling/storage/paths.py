"""
Path generation for artifact storage.
All paths are relative to ARTIFACT_ROOT.
"""

import re
from pathlib import Path

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(file_name: str) -> str:
    """Strip directory parts and characters that do not belong in a path segment."""
    base = Path(file_name).name
    cleaned = _UNSAFE.sub("_", base).strip("._")
    return cleaned or "file"


def blob_dir(storage_id: str) -> str:
    return f"blobs/{storage_id}"


def blob_path(storage_id: str, file_name: str) -> str:
    """Path for raw uploaded bytes."""
    return f"{blob_dir(storage_id)}/{safe_file_name(file_name)}"


def export_artifact_path(export_id: str) -> str:
    """Path for a generated training export (JSON lines)."""
    return f"exports/{export_id}/training.jsonl"


def ensure_parent_dirs(artifact_root: str, relative_path: str) -> Path:
    """Create parent directories and return the full absolute path."""
    full_path = Path(artifact_root) / relative_path
    full_path.parent.mkdir(parents=True, exist_ok=True)
    return full_path
