"""
Content fingerprinting for classification caching and correction dedup.
The hash is djb2 over a bounded, normalised prefix so cost is independent
of document size. Collisions are tolerated: cache correctness comes from
invalidation, not uniqueness.
"""

import re
import struct
from typing import Optional, Union

from pydantic import BaseModel

from docfiling.config import settings


DJB2_SEED = 5381
_MASK_32 = 0xFFFFFFFF

_EXTENSION = re.compile(r"\.[^.]+$")
_SEPARATORS = re.compile(r"[_\-.]")
_DIGIT_RUN = re.compile(r"\d+")
_WHITESPACE = re.compile(r"\s+")

DIGIT_PLACEHOLDER = "#"


class ContentFingerprint(BaseModel):
    hash: str
    normalized_filename: str

    model_config = {"frozen": True}


def _to_signed_32(value: int) -> int:
    value &= _MASK_32
    return value - 0x100000000 if value & 0x80000000 else value


def content_hash(content: Union[str, bytes], prefix_chars: Optional[int] = None) -> str:
    """
    8-digit hex djb2 hash of the first prefix_chars of content,
    lowercased and trimmed. Characters are consumed as UTF-16 code
    units so hashes agree with browser-side callers.
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    limit = prefix_chars if prefix_chars is not None else settings.CONTENT_HASH_PREFIX_CHARS

    normalized = content[:limit].lower().strip()
    encoded = normalized.encode("utf-16-le", errors="surrogatepass")
    code_units = struct.unpack(f"<{len(encoded) // 2}H", encoded)

    h = DJB2_SEED
    for unit in code_units:
        h = _to_signed_32(h * 33 + unit)

    return format(abs(h), "x").rjust(8, "0")


def normalize_filename(filename: str) -> str:
    """
    Lowercase, drop the extension, turn separators into spaces,
    replace digit runs with a placeholder and collapse whitespace.
    """
    name = filename.lower()
    name = _EXTENSION.sub("", name)
    name = _SEPARATORS.sub(" ", name)
    name = _DIGIT_RUN.sub(DIGIT_PLACEHOLDER, name)
    name = _WHITESPACE.sub(" ", name)
    return name.strip()


def fingerprint(content: Union[str, bytes], filename: str) -> ContentFingerprint:
    return ContentFingerprint(
        hash=content_hash(content),
        normalized_filename=normalize_filename(filename),
    )


_SEARCH_TERM = re.compile(r"[^\W\d_]{2,}")


def search_terms(normalized_filename: str) -> list[str]:
    """Distinct word tokens of a normalised filename, usable as full-text terms."""
    terms: list[str] = []
    for term in _SEARCH_TERM.findall(normalized_filename):
        if term not in terms:
            terms.append(term)
    return terms
