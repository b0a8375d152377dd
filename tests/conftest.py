"""Shared fixtures: in-memory .docx templates, scripted LLMs and sessions."""

import io
from typing import List, Optional, Sequence
from unittest.mock import Mock

import pytest
from docx import Document
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from llm_handler import LLMService
from models import DocumentField, FieldType, Session


def build_docx(
    paragraphs: Sequence = (),
    table: Optional[List[List[str]]] = None,
    header: Optional[str] = None,
    footer: Optional[str] = None,
) -> bytes:
    """
    Build a .docx in memory

    A paragraph is either a string or a list of (text, bold) runs, which
    lets tests split a tag across runs the way Word does.
    """
    doc = Document()
    for paragraph in paragraphs:
        if isinstance(paragraph, str):
            doc.add_paragraph(paragraph)
            continue
        p = doc.add_paragraph()
        for text, bold in paragraph:
            p.add_run(text).bold = bold

    if table:
        grid = doc.add_table(rows=len(table), cols=len(table[0]))
        for row_index, row in enumerate(table):
            for col_index, text in enumerate(row):
                grid.cell(row_index, col_index).text = text

    section = doc.sections[0]
    if header is not None:
        section.header.is_linked_to_previous = False
        section.header.paragraphs[0].text = header
    if footer is not None:
        section.footer.is_linked_to_previous = False
        section.footer.paragraphs[0].text = footer

    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def read_docx_text(buffer: bytes) -> str:
    doc = Document(io.BytesIO(buffer))
    return "\n".join(p.text for p in doc.paragraphs)


@pytest.fixture
def make_docx():
    return build_docx


@pytest.fixture
def docx_text():
    return read_docx_text


@pytest.fixture
def safe_template():
    """Three-tag SAFE template."""
    return build_docx([
        "SAFE (Simple Agreement for Future Equity)",
        "This certifies that {investor_name} has paid {purchase_amount} to {company_name}.",
        "Signed by {company_name}.",
    ])


@pytest.fixture
def scripted_llm():
    """LLMService over a fake chat model that replies from a list."""
    def make(responses: List[str]) -> LLMService:
        return LLMService(chat_model=FakeListChatModel(responses=responses), enabled=True)
    return make


@pytest.fixture
def failing_llm():
    """LLMService whose model raises on every call."""
    model = Mock()
    model.invoke.side_effect = RuntimeError("connection reset")
    model.stream.side_effect = RuntimeError("connection reset")
    return LLMService(chat_model=model, enabled=True)


@pytest.fixture
def make_field():
    def make(placeholder: str, field_type: FieldType = FieldType.TEXT, required: bool = True, index: int = 0,
             options: Optional[List[str]] = None) -> DocumentField:
        return DocumentField(
            id=f"field-{index}",
            placeholder=placeholder,
            type=field_type,
            required=required,
            order=index,
            options=options,
        )
    return make


@pytest.fixture
def make_session(safe_template):
    def make(fields: List[DocumentField], **overrides) -> Session:
        data = {
            "session_id": "session-1",
            "filename": "safe.docx",
            "original_buffer": safe_template,
            "document_type": "SAFE",
            "fields": fields,
        }
        data.update(overrides)
        return Session(**data)
    return make
