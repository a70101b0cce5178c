"""Tests for invoice and receipt number allocation."""

from billing.numbering import document_prefix, next_document_number


class TestNextDocumentNumber:
    def test_first_number_in_series(self):
        assert next_document_number("INV", 2025, None) == "INV-2025-00001"

    def test_increments_last_number(self):
        assert next_document_number("INV", 2025, "INV-2025-00041") == "INV-2025-00042"

    def test_new_year_restarts_sequence(self):
        assert next_document_number("INV", 2026, "INV-2025-00041") == "INV-2026-00001"

    def test_receipt_series_is_independent(self):
        assert next_document_number("RCP", 2082, "INV-2082-00007") == "RCP-2082-00001"

    def test_prefix(self):
        assert document_prefix("RCP", 2082) == "RCP-2082-"
