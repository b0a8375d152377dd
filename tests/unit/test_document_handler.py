"""Unit tests for the document parser."""

import pytest

from document_handler import (
    DocumentParser,
    detect_document_type,
    find_placeholders,
    find_template_tags,
    infer_field_type,
    normalize_placeholder,
)
from errors import ParseError
from models import DocumentField, FieldType


@pytest.fixture
def parser():
    return DocumentParser()


def _field(placeholder, field_type=FieldType.TEXT, index=0):
    return DocumentField(id=f"field-{index}", placeholder=placeholder, type=field_type, order=index)


class TestTypeInference:
    """Tests for keyword-based field typing."""

    @pytest.mark.parametrize("placeholder, expected", [
        ("Date of Safe", FieldType.DATE),
        ("effective_day", FieldType.DATE),
        ("Purchase Amount", FieldType.CURRENCY),
        ("Post-Money Valuation Cap", FieldType.CURRENCY),
        ("Company Name", FieldType.TEXT),
    ])
    def test_infer_field_type(self, placeholder, expected):
        assert infer_field_type(placeholder) == expected

    def test_normalize_placeholder(self):
        assert normalize_placeholder("Company_Name") == "company name"
        assert normalize_placeholder("  COMPANY -  name ") == "company name"


class TestTagExtraction:
    """Tests for {tag} and unstructured placeholder extraction."""

    def test_template_tags_in_first_seen_order(self):
        fields, tags = find_template_tags("{b} then {a} then {b}")
        assert [f.placeholder for f in fields] == ["b", "a"]
        assert all(f.required for f in fields)
        assert len(tags) == 3

    def test_control_markers_are_not_fields(self):
        fields, tags = find_template_tags("{#items}{name}{/items}{^empty}none{/empty}")
        assert [f.placeholder for f in fields] == ["name"]
        assert [t.type for t in tags] == ["loop", "simple", "loop", "condition", "loop"]

    def test_brackets_and_blanks(self):
        fields = find_placeholders("Between [Company Name] and [Investor]; [1] and [x] are ignored. Sign: ____")
        assert [f.placeholder for f in fields] == ["Company Name", "Investor", "Blank_1"]
        blank = fields[-1]
        assert blank.required is False
        assert blank.type == FieldType.TEXT

    def test_bracket_without_letters_is_skipped(self):
        assert find_placeholders("Total [$ ,] due") == []


class TestDocumentParser:
    """Tests for DocumentParser.parse."""

    def test_parse_tags_in_reading_order(self, parser, safe_template):
        parsed = parser.parse(safe_template)
        assert [f.placeholder for f in parsed.fields] == ["investor_name", "purchase_amount", "company_name"]
        assert [f.id for f in parsed.fields] == ["field-0", "field-1", "field-2"]
        assert [f.order for f in parsed.fields] == [0, 1, 2]
        assert parsed.fields[1].type == FieldType.CURRENCY
        assert parsed.metadata.document_type == "SAFE"
        assert len(parsed.metadata.fingerprint) == 32

    def test_structured_fields_win_over_brackets(self, parser, make_docx):
        buffer = make_docx(["{Company Name} also written as [company name]"])
        parsed = parser.parse(buffer)
        assert [f.placeholder for f in parsed.fields] == ["Company Name"]
        assert len(parsed.unstructured_fields) == 1

    def test_near_duplicates_collapse(self, parser, make_docx):
        buffer = make_docx(["[Company Name] / [company_name] / [COMPANY-NAME]"])
        parsed = parser.parse(buffer)
        assert [f.placeholder for f in parsed.fields] == ["Company Name"]

    def test_tables_headers_and_footers_are_read(self, parser, make_docx):
        buffer = make_docx(
            ["Body {body_tag}"],
            table=[["{cell_tag}", "plain"]],
            header="Header {header_tag}",
            footer="Footer {footer_tag}",
        )
        parsed = parser.parse(buffer)
        assert [f.placeholder for f in parsed.fields] == ["body_tag", "cell_tag", "header_tag", "footer_tag"]
        assert parsed.metadata.has_tables
        assert parsed.metadata.has_headers
        assert parsed.metadata.has_footers

    def test_tag_split_across_runs(self, parser, make_docx):
        buffer = make_docx([[("Company: {comp", True), ("any_na", False), ("me}", True)]])
        parsed = parser.parse(buffer)
        assert [f.placeholder for f in parsed.fields] == ["company_name"]

    @pytest.mark.parametrize("buffer", [b"", b"not a zip archive", b"PK\x03\x04broken"])
    def test_unreadable_buffer_raises(self, parser, buffer):
        with pytest.raises(ParseError) as exc_info:
            parser.parse(buffer)
        assert exc_info.value.code == "PARSE_ERROR"


class TestSmartDeduplication:
    """Tests for normalization-based deduplication."""

    def test_type_promotion_keeps_position(self, parser):
        fields = [
            _field("Purchase Amount", FieldType.TEXT, 0),
            _field("Company", FieldType.TEXT, 1),
            _field("purchase_amount", FieldType.CURRENCY, 2),
        ]
        result = parser.smart_deduplication(fields)
        assert [f.placeholder for f in result] == ["purchase_amount", "Company"]
        assert result[0].type == FieldType.CURRENCY

    def test_first_seen_wins_for_equal_types(self, parser):
        result = parser.smart_deduplication([_field("Company Name"), _field("company-name", index=1)])
        assert [f.placeholder for f in result] == ["Company Name"]

    def test_idempotent(self, parser):
        fields = [
            _field("Company Name"),
            _field("company_name", FieldType.CURRENCY, 1),
            _field("Date", FieldType.DATE, 2),
            _field("DATE", FieldType.TEXT, 3),
            _field("Investor", index=4),
        ]
        once = parser.smart_deduplication(fields)
        assert parser.smart_deduplication(once) == once


class TestDocumentType:
    """Tests for the document family guess."""

    @pytest.mark.parametrize("text, expected", [
        ("SIMPLE AGREEMENT FOR FUTURE EQUITY", "SAFE"),
        ("Mutual Non-Disclosure Agreement", "NDA"),
        ("Residential Lease Agreement between Landlord and Tenant", "LEASE"),
        ("Meeting notes", "GENERAL"),
    ])
    def test_detect_document_type(self, text, expected):
        assert detect_document_type(text) == expected
