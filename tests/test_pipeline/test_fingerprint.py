"""
Tests for content fingerprinting.
"""

from docfiling.pipeline.fingerprint import (
    content_hash,
    fingerprint,
    normalize_filename,
    search_terms,
)


class TestContentHash:
    """djb2 over a bounded, normalised prefix."""

    def test_empty_content_is_seed(self):
        assert content_hash("") == "00001505"

    def test_single_character(self):
        assert content_hash("a") == "0002b606"

    def test_case_and_surrounding_whitespace_ignored(self):
        assert content_hash("  Hello World \n") == content_hash("hello world")

    def test_always_eight_hex_digits(self):
        for text in ["", "a", "quarterly report", "x" * 5000]:
            h = content_hash(text)
            assert len(h) == 8
            int(h, 16)

    def test_deterministic(self):
        assert content_hash("Valuation report for 12 Park Lane") == content_hash(
            "Valuation report for 12 Park Lane"
        )

    def test_only_prefix_counts(self):
        prefix = "a" * 100
        assert content_hash(prefix + "tail one", prefix_chars=100) == content_hash(
            prefix + "different tail", prefix_chars=100
        )

    def test_bytes_decoded_as_utf8(self):
        assert content_hash("café".encode("utf-8")) == content_hash("café")

    def test_distinct_content_usually_differs(self):
        assert content_hash("appraisal") != content_hash("term sheet")


class TestNormalizeFilename:
    def test_extension_separators_and_digits(self):
        assert normalize_filename("Track_Record-2024.v2.pdf") == "track record # v#"

    def test_whitespace_collapsed(self):
        assert normalize_filename("  Bank   Statement  March.PDF") == "bank statement march"

    def test_no_extension(self):
        assert normalize_filename("Invoice 0042") == "invoice #"

    def test_idempotent_on_normalised_input(self):
        once = normalize_filename("Term_Sheet_Final_03.docx")
        assert normalize_filename(once) == once


class TestFingerprint:
    def test_combines_hash_and_filename(self):
        fp = fingerprint("Summary text", "Term_Sheet 2.pdf")
        assert fp.hash == content_hash("Summary text")
        assert fp.normalized_filename == "term sheet #"


class TestSearchTerms:
    def test_word_tokens_only(self):
        assert search_terms("track record # v#") == ["track", "record"]

    def test_distinct_in_first_seen_order(self):
        assert search_terms("report final report") == ["report", "final"]

    def test_nothing_searchable(self):
        assert search_terms("# #") == []
