"""
TalentDesk Backend: CV Parser Unit Tests
========================================

What:  Text extraction per file type and the name/email/phone heuristics.
How:   Plain-text inputs for the heuristics; a real .docx built in memory
       with python-docx for the Word path.
"""

import io
import zipfile

import docx
import pytest

from talentdesk.services.cv_parser import (
    CVParseError,
    calculate_confidence,
    extract_email,
    extract_name,
    extract_phone,
    extract_text,
    normalize_phone,
    parse_cv,
)
from talentdesk.services.file_service import DOCX_MIME


class TestExtractEmail:
    def test_first_real_address(self):
        text = "Contact: test@example.com or jane.doe@acme.io"
        assert extract_email(text) == "jane.doe@acme.io"

    def test_placeholder_only_falls_back_to_first_match(self):
        assert extract_email("mail: someone@example.com") == "someone@example.com"

    def test_no_address(self):
        assert extract_email("no contact details here") is None


class TestExtractPhone:
    def test_spaced_local_number(self):
        assert extract_phone("Tel: 0470 12 34 56") == "0470123456"

    def test_dotted_number(self):
        assert extract_phone("GSM 0470.12.34.56") == "0470123456"

    def test_too_few_digits(self):
        """Room numbers and years are not phone numbers."""
        assert extract_phone("Room 12, floor 3") is None


class TestExtractName:
    def test_first_line_name(self):
        text = "Jane Doe\nSoftware Engineer\njane@acme.io"
        assert extract_name(text) == "Jane Doe"

    def test_header_lines_are_skipped(self):
        text = "CURRICULUM VITAE\nJOHN SMITH\njohn@acme.io"
        assert extract_name(text) == "John Smith"

    def test_label_fallback(self):
        """Lines with digits are skipped, so the label pattern finds the name."""
        text = "1. Name: marie dupont 2024"
        assert extract_name(text) == "Marie Dupont"

    def test_nothing_found(self):
        assert extract_name("12345\n@@@\nhttp://example.com") is None


class TestConfidence:
    @pytest.mark.parametrize(
        "name,email,phone,expected",
        [
            ("Jane Doe", "jane@acme.io", "0470123456", 100),
            ("Jane Doe", "jane@acme.io", None, 80),
            (None, None, "0470123456", 20),
            (None, None, None, 0),
        ],
    )
    def test_weights(self, name, email, phone, expected):
        assert calculate_confidence(name, email, phone) == expected


class TestNormalizePhone:
    def test_international_kept(self):
        assert normalize_phone("+32 470 12 34 56") == "+32470123456"

    def test_double_zero_prefix(self):
        assert normalize_phone("0032470123456") == "+32470123456"

    def test_national_number_gets_country_prefix(self):
        assert normalize_phone("0470 12 34 56", "BE") == "+32470123456"
        assert normalize_phone("06 12345678", "NL") == "+31612345678"

    def test_unknown_country_defaults_to_belgium(self):
        assert normalize_phone("0470123456", "XX") == "+32470123456"

    def test_empty(self):
        assert normalize_phone("") is None
        assert normalize_phone(None) is None


class TestExtractText:
    def test_plain_text(self):
        assert extract_text("Zoë Janssens".encode("utf-8"), "text/plain") == "Zoë Janssens"

    def test_docx(self):
        document = docx.Document()
        document.add_paragraph("Jane Doe")
        document.add_paragraph("jane@acme.io")
        buffer = io.BytesIO()
        document.save(buffer)

        assert extract_text(buffer.getvalue(), DOCX_MIME) == "Jane Doe\njane@acme.io"

    def test_corrupt_docx(self):
        with pytest.raises(CVParseError):
            extract_text(b"not a zip file", DOCX_MIME)

    def test_docx_with_broken_xml(self):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("[Content_Types].xml", "<Types><broken")
        with pytest.raises(CVParseError, match="Word document"):
            extract_text(buffer.getvalue(), DOCX_MIME)

    def test_truncated_pdf(self):
        with pytest.raises(CVParseError, match="PDF"):
            extract_text(b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog", "application/pdf")

    def test_unsupported_type(self):
        with pytest.raises(CVParseError, match="Unsupported file type"):
            extract_text(b"\x89PNG", "image/png")


class TestParseCV:
    def test_full_parse(self):
        content = b"Jane Doe\nSoftware Engineer\njane@acme.io\nTel: 0470 12 34 56\n"
        parsed = parse_cv(content, "text/plain")

        assert parsed.full_name == "Jane Doe"
        assert parsed.email == "jane@acme.io"
        assert parsed.phone == "0470123456"
        assert parsed.confidence == 100
        assert "Software Engineer" in parsed.extracted_text

    def test_extracted_text_is_capped(self):
        parsed = parse_cv(b"a" * 20000, "text/plain")
        assert len(parsed.extracted_text) == 10000
