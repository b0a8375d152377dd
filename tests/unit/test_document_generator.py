"""Unit tests for the document generator."""

import io
import zipfile
from datetime import datetime

import pytest
from docx import Document

from document_generator import DocumentGenerator, splice_runs, SUBSTITUTION_PATTERN
from document_handler import DocumentParser
from errors import GenerationError, MissingTagsError
from models import GenerationOptions

FIXED_CLOCK = datetime(2024, 3, 1, 9, 30)


@pytest.fixture
def generator():
    return DocumentGenerator(clock=lambda: FIXED_CLOCK)


@pytest.fixture
def values():
    return {"company_name": "Acme Inc.", "investor_name": "John Doe", "purchase_amount": "$100,000"}


class TestTransformForLegal:
    """Tests for the legal value transform."""

    def test_currency_gets_formatted_and_words(self, generator):
        transformed = generator.transform_for_legal({"purchase_amount": "$100,000"})
        assert transformed["purchase_amount"] == "$100,000"
        assert transformed["purchase_amount_formatted"] == "$100,000"
        assert transformed["purchase_amount_words"] == "One hundred thousand Dollars"

    def test_date_gets_formatted(self, generator):
        transformed = generator.transform_for_legal({"effective_date": "1/15/2024"})
        assert transformed["effective_date_formatted"] == "January 15, 2024"
        assert "effective_date_words" not in transformed

    def test_plain_number_gets_words(self, generator):
        transformed = generator.transform_for_legal({"share_count": 250})
        assert transformed["share_count_words"] == "Two hundred and fifty"

    def test_unparseable_date_is_kept_raw(self, generator):
        transformed = generator.transform_for_legal({"signing_date": "upon closing"})
        assert transformed["signing_date"] == "upon closing"
        assert "signing_date_formatted" not in transformed

    def test_injected_values(self, generator):
        transformed = generator.transform_for_legal({})
        assert transformed["current_date"] == "March 1, 2024"
        assert len(transformed["document_id"]) == 16
        int(transformed["document_id"], 16)


class TestGenerate:
    """Tests for DocumentGenerator.generate."""

    def test_fills_tags(self, generator, safe_template, values, docx_text):
        generated = generator.generate(safe_template, values)
        text = docx_text(generated.buffer)
        assert "This certifies that John Doe has paid $100,000 to Acme Inc.." in text
        assert "Signed by Acme Inc.." in text
        assert "{" not in text

    def test_metadata(self, generator, safe_template, values):
        generated = generator.generate(safe_template, values)
        assert generated.metadata.generated_at == FIXED_CLOCK
        assert generated.metadata.field_count == 3
        assert generated.metadata.file_size == len(generated.buffer)
        assert len(generated.metadata.checksum) == 64
        assert generated.audit_log is None

    def test_output_is_deterministic(self, generator, safe_template, values):
        first = generator.generate(safe_template, values)
        second = generator.generate(safe_template, values)
        assert first.buffer == second.buffer
        assert first.metadata.checksum == second.metadata.checksum

    def test_fixed_member_timestamps(self, generator, safe_template, values):
        generated = generator.generate(safe_template, values, GenerationOptions(compression_level=9))
        with zipfile.ZipFile(io.BytesIO(generated.buffer)) as archive:
            infos = archive.infolist()
        assert infos
        assert all(info.date_time == (1980, 1, 1, 0, 0, 0) for info in infos)
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in infos)

    def test_missing_tag_blocks_generation(self, generator, make_docx):
        template = make_docx(["Hello {name}, see {missing_field}."])
        with pytest.raises(MissingTagsError) as exc_info:
            generator.generate(template, {"name": "Jane"})
        error = exc_info.value
        assert error.missing_tags == ["missing_field"]
        assert error.code == "MISSING_TAGS"
        assert "Missing data for tag: missing_field" in error.message

    def test_empty_string_counts_as_missing_but_zero_does_not(self, generator, make_docx, docx_text):
        template = make_docx(["Count: {count}"])
        with pytest.raises(MissingTagsError):
            generator.generate(template, {"count": ""})
        generated = generator.generate(template, {"count": 0})
        assert "Count: 0" in docx_text(generated.buffer)

    def test_invalid_template(self, generator):
        with pytest.raises(GenerationError) as exc_info:
            generator.generate(b"not a docx", {})
        assert exc_info.value.code == "TEMPLATE_INVALID"

    def test_split_runs_keep_formatting(self, generator, make_docx):
        template = make_docx([[("Company: ", False), ("{company", True), ("_name}", False), (" signs.", False)]])
        generated = generator.generate(template, {"company_name": "Acme Inc."})

        paragraph = Document(io.BytesIO(generated.buffer)).paragraphs[0]
        assert paragraph.text == "Company: Acme Inc. signs."
        bold_runs = [run.text for run in paragraph.runs if run.bold]
        assert bold_runs == ["Acme Inc."]

    def test_tables_headers_and_footers(self, generator, make_docx):
        template = make_docx(
            ["Body"],
            table=[["{cell_tag}"]],
            header="{header_tag}",
            footer="{footer_tag}",
        )
        generated = generator.generate(template, {"cell_tag": "C", "header_tag": "H", "footer_tag": "F"})
        doc = Document(io.BytesIO(generated.buffer))
        assert doc.tables[0].cell(0, 0).text == "C"
        assert doc.sections[0].header.paragraphs[0].text == "H"
        assert doc.sections[0].footer.paragraphs[0].text == "F"

    def test_brackets_and_blanks(self, generator, make_docx, docx_text):
        template = make_docx(["Between [Company Name] and ____ on ____."])
        generated = generator.generate(template, {"Company Name": "Acme Inc.", "Blank_2": "Monday"})
        assert "Between Acme Inc. and ____ on Monday." in docx_text(generated.buffer)

    def test_blanks_inside_brackets_keep_parser_numbering(self, generator, make_docx, docx_text):
        template = make_docx(["Signed: [____]", "Dated: ____"])
        fields = DocumentParser().parse(template).fields
        assert [field.placeholder for field in fields] == ["Blank_1", "Blank_2"]

        generated = generator.generate(template, {"Blank_1": "Jane Smith", "Blank_2": "the first of March"})
        text = docx_text(generated.buffer)
        assert "Signed: [Jane Smith]" in text
        assert "Dated: the first of March" in text

    def test_filled_bracket_uses_up_its_blank_numbers(self, generator, make_docx, docx_text):
        template = make_docx(["Name: [Signatory ____]", "Title: ____"])
        generated = generator.generate(template, {"Signatory ____": "Jane Smith", "Blank_2": "CEO"})
        text = docx_text(generated.buffer)
        assert "Name: Jane Smith" in text
        assert "Title: CEO" in text

    def test_merged_spellings_all_receive_the_value(self, generator, make_docx, docx_text):
        template = make_docx(["{company_name} agrees.", "Signed for [Company Name].", "By {Company-Name}."])
        fields = DocumentParser().parse(template).fields
        assert [field.placeholder for field in fields] == ["company_name"]

        generated = generator.generate(template, {"company_name": "Acme Inc."})
        text = docx_text(generated.buffer)
        assert "Acme Inc. agrees." in text
        assert "Signed for Acme Inc.." in text
        assert "By Acme Inc.." in text

    def test_missing_tags_resolve_spelling_variants(self):
        template_text = "{company_name} and {Company-Name} for {purchase amount}"
        assert DocumentGenerator.find_missing_tags(template_text, {"company_name": "Acme Inc."}) == ["purchase amount"]

    def test_formatted_variants_render(self, generator, make_docx, docx_text):
        template = make_docx(["Pay {purchase_amount_words} ({purchase_amount_formatted})."])
        generated = generator.generate(template, {"purchase_amount": "100000"})
        assert "Pay One hundred thousand Dollars ($100,000)." in docx_text(generated.buffer)

    def test_inline_sections(self, generator, make_docx, docx_text):
        template = make_docx(["A{#pro_rata} with pro rata rights{/pro_rata}{^mfn} without MFN{/mfn}."])
        generated = generator.generate(template, {"pro_rata": "yes", "mfn": "no"})
        assert "A with pro rata rights without MFN." in docx_text(generated.buffer)

    def test_audit_trail(self, generator, safe_template, values):
        generated = generator.generate(safe_template, values, GenerationOptions(audit_trail=True))
        actions = [entry.action for entry in generated.audit_log]
        assert actions == ["field_filled"] * 3 + ["document_generated"]
        assert [entry.field for entry in generated.audit_log[:3]] == list(values)
        assert generated.audit_log[0].new_value == "Acme Inc."


class TestSpliceRuns:
    """Tests for the run-splicing substitution helper."""

    def test_untouched_runs_keep_text(self):
        doc = Document()
        paragraph = doc.add_paragraph()
        paragraph.add_run("keep ")
        paragraph.add_run("[Name]").italic = True
        paragraph.add_run(" end")

        count = splice_runs(paragraph, SUBSTITUTION_PATTERN, lambda match: "Jane")

        assert count == 1
        assert [run.text for run in paragraph.runs] == ["keep ", "Jane", " end"]
        assert paragraph.runs[1].italic is True
