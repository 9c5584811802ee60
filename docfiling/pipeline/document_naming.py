"""
Deterministic document naming and versioning.

Format: <SHORTCODE>-<TYPE>-<INT|EXT>-<INITIALS>-V<major>.<minor>-<YYYY-MM-DD>
Example: WIMBPARK28-APPRAISAL-EXT-JS-V1.0-2026-01-12

Known ambiguity: a shortcode containing "-" does not round-trip through
parse_document_name, and neither does a type that itself contains an
"-INT-" or "-EXT-" segment. Callers sanitise shortcodes before generation.
"""

import re
from datetime import date, datetime
from typing import Iterable, Optional, Union

from pydantic import BaseModel


INITIAL_VERSION = "V1.0"
SHORTCODE_MAX_LEN = 10
INITIALS_MAX_LEN = 3
TYPE_FALLBACK_MAX_LEN = 8

_VERSION = re.compile(r"^V(\d+)\.(\d+)$")
_NON_ALNUM_LOWER = re.compile(r"[^a-z0-9]")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


# Category synonyms -> type abbreviation. Order matters for substring matching.
TYPE_ABBREVIATIONS: dict[str, str] = {
    # Appraisals & valuations
    "appraisal": "APPRAISAL",
    "valuation": "APPRAISAL",
    "red book valuation": "APPRAISAL",
    "rics valuation": "APPRAISAL",
    "red book": "APPRAISAL",
    # Term sheets
    "term sheet": "TERMSHEET",
    "termsheet": "TERMSHEET",
    "loan terms": "TERMSHEET",
    "terms comparison": "TERMSHEET",
    "term request": "TERMREQ",
    "terms request": "TERMREQ",
    # Credit
    "credit memo": "CREDIT",
    "credit submission": "CREDIT",
    "credit application": "CREDIT",
    # Financial / operating
    "operating statement": "OPERATING",
    "operating model": "OPERATING",
    "financial model": "FINMODEL",
    "cash flow": "CASHFLOW",
    "pro forma": "PROFORMA",
    # Legal
    "contract": "CONTRACT",
    "agreement": "AGREEMENT",
    "legal document": "LEGAL",
    # Business
    "invoice": "INVOICE",
    "receipt": "RECEIPT",
    # Communications
    "correspondence": "CORRESP",
    "email": "EMAIL",
    "letter": "LETTER",
    # KYC / identity
    "kyc": "KYC",
    "kyc document": "KYC",
    "identity verification": "KYC",
    # Notes / memos
    "note": "NOTE",
    "notes": "NOTE",
    "memo": "MEMO",
    "internal memo": "MEMO",
    # Reports
    "report": "REPORT",
    "inspection": "INSPECT",
    "survey": "SURVEY",
    # Default
    "other": "DOC",
    "document": "DOC",
}


class ParsedDocumentName(BaseModel):
    project_shortcode: str
    type: str
    is_internal: bool
    initials: str
    version: str
    date: str


def get_type_abbreviation(category: str) -> str:
    """Map a category to its abbreviation: exact, then substring, then fallback."""
    category_lower = category.lower().strip()

    if category_lower in TYPE_ABBREVIATIONS:
        return TYPE_ABBREVIATIONS[category_lower]

    for key, abbrev in TYPE_ABBREVIATIONS.items():
        if key in category_lower or category_lower in key:
            return abbrev

    return _NON_ALNUM_LOWER.sub("", category_lower).upper()[:TYPE_FALLBACK_MAX_LEN] or "DOC"


def get_user_initials(full_name: Optional[str]) -> str:
    """'John Smith' -> 'JS'. Empty names give 'XX'."""
    if not full_name or not full_name.strip():
        return "XX"
    initials = "".join(part[0].upper() for part in full_name.split())
    return initials[:INITIALS_MAX_LEN] or "XX"


def shortcode_from_client_name(client_name: Optional[str]) -> str:
    """Fallback shortcode when a batch has no project shortcode."""
    cleaned = _NON_ALNUM.sub("", client_name or "").upper()[:SHORTCODE_MAX_LEN]
    return cleaned or "CLIENT"


def format_date_for_naming(value: Union[date, datetime, None] = None) -> str:
    value = value or datetime.now()
    return value.strftime("%Y-%m-%d")


def _internal_marker(is_internal: bool) -> str:
    return "INT" if is_internal else "EXT"


def generate_document_name(
    project_shortcode: str,
    category: str,
    is_internal: bool,
    uploader_initials: str,
    version: str = INITIAL_VERSION,
    on_date: Union[date, datetime, None] = None,
) -> str:
    shortcode = project_shortcode.upper()[:SHORTCODE_MAX_LEN]
    type_abbrev = get_type_abbreviation(category)
    initials = uploader_initials.upper()[:INITIALS_MAX_LEN]
    date_str = format_date_for_naming(on_date)

    return f"{shortcode}-{type_abbrev}-{_internal_marker(is_internal)}-{initials}-{version}-{date_str}"


def parse_document_name(document_name: str) -> Optional[ParsedDocumentName]:
    """
    Split a generated name back into its fields.
    Returns None when the version or INT/EXT marker is not where expected.
    """
    parts = document_name.split("-")
    if len(parts) < 6:
        return None

    date_str = "-".join(parts[-3:])

    version = parts[-4]
    if not version.startswith("V"):
        return None

    initials = parts[-5]

    marker = parts[-6]
    if marker not in ("INT", "EXT"):
        return None

    type_end = len(parts) - 6
    return ParsedDocumentName(
        project_shortcode=parts[0],
        type="-".join(parts[1:type_end]),
        is_internal=marker == "INT",
        initials=initials,
        version=version,
        date=date_str,
    )


def _parse_version(version: str) -> Optional[tuple[int, int]]:
    match = _VERSION.match(version or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def _bump(major: int, minor: int, is_significant: bool) -> str:
    if is_significant:
        return f"V{major + 1}.0"
    return f"V{major}.{minor + 1}"


def increment_version(current_version: str, is_significant: bool) -> str:
    """V1.0 -> V2.0 (significant) or V1.1 (minor). Unparsable input counts as V1.0."""
    parsed = _parse_version(current_version)
    if parsed is None:
        return "V2.0" if is_significant else "V1.1"
    return _bump(parsed[0], parsed[1], is_significant)


def next_version(existing_versions: Iterable[str], is_significant: bool) -> str:
    """
    Bump relative to the highest (major, minor) already filed,
    never relative to a caller-supplied current version.
    """
    versions = list(existing_versions)
    if not versions:
        return INITIAL_VERSION

    highest = (1, 0)
    for ver in versions:
        parsed = _parse_version(ver)
        if parsed and parsed > highest:
            highest = parsed

    return _bump(highest[0], highest[1], is_significant)


def generate_base_pattern(project_shortcode: str, category: str, is_internal: bool) -> str:
    """<SHORTCODE>-<TYPE>-<INT|EXT>: clusters every version of one document."""
    shortcode = project_shortcode.upper()[:SHORTCODE_MAX_LEN]
    return f"{shortcode}-{get_type_abbreviation(category)}-{_internal_marker(is_internal)}"


def get_document_base_pattern(document_name: str) -> Optional[str]:
    parsed = parse_document_name(document_name)
    if parsed is None:
        return None
    return f"{parsed.project_shortcode}-{parsed.type}-{_internal_marker(parsed.is_internal)}"


def are_document_versions(name_a: str, name_b: str) -> bool:
    pattern_a = get_document_base_pattern(name_a)
    pattern_b = get_document_base_pattern(name_b)
    if not pattern_a or not pattern_b:
        return False
    return pattern_a == pattern_b
