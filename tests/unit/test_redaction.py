"""
Unit tests for log redaction and correlation processors.
"""
from statement_importer.middleware.logging import (
    REDACTED,
    add_correlation_id_processor,
    correlation_id,
    mask_document_numbers,
    redact_sensitive_data,
    redact_sensitive_processor,
)


class TestMaskDocumentNumbers:
    """Tests for CPF/CNPJ masking."""

    def test_cpf(self):
        """Test formatted and bare CPF numbers."""
        assert mask_document_numbers("Cliente 123.456.789-09") == f"Cliente {REDACTED}"
        assert mask_document_numbers("cpf 12345678909 ok") == f"cpf {REDACTED} ok"

    def test_cnpj(self):
        """Test formatted CNPJ numbers."""
        assert mask_document_numbers("CNPJ 12.345.678/0001-90") == f"CNPJ {REDACTED}"

    def test_plain_text_untouched(self):
        """Test amounts and dates are left alone."""
        text = "10/01/2026 Supermercado -150,00"

        assert mask_document_numbers(text) == text


class TestRedactSensitiveData:
    """Tests for redact_sensitive_data."""

    def test_sensitive_keys(self):
        """Test secrets are replaced whatever their value."""
        data = {"analyzer_api_key": "abc", "Authorization": "Bearer x", "filename": "a.csv"}

        assert redact_sensitive_data(data) == {
            "analyzer_api_key": REDACTED,
            "Authorization": REDACTED,
            "filename": "a.csv",
        }

    def test_nested_and_lists(self):
        """Test nested dicts and lists are walked."""
        data = {"rows": [{"raw_line": "Titular 123.456.789-09"}, {"token": "t"}], "count": 2}

        assert redact_sensitive_data(data) == {
            "rows": [{"raw_line": f"Titular {REDACTED}"}, {"token": REDACTED}],
            "count": 2,
        }

    def test_input_not_mutated(self):
        """Test a copy is returned."""
        data = {"password": "secret"}
        redact_sensitive_data(data)

        assert data == {"password": "secret"}


class TestProcessors:
    """Tests for the structlog processors."""

    def test_redact_processor(self):
        """Test event dicts are redacted."""
        event = {"event": "request_started", "cpf": "12345678909"}

        assert redact_sensitive_processor(None, "info", event)["cpf"] == REDACTED

    def test_correlation_id_processor(self):
        """Test the current correlation id is attached."""
        token = correlation_id.set("abc-123")
        try:
            event = add_correlation_id_processor(None, "info", {"event": "x"})
        finally:
            correlation_id.reset(token)

        assert event["correlation_id"] == "abc-123"
