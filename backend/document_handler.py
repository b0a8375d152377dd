# backend/document_handler.py
"""
Document processing module using python-docx
Extracts {template} tags and [Bracketed] / ____ placeholders as typed fields
"""

import hashlib
import io
import logging
import re
from typing import Dict, Iterator, List, Tuple

from docx import Document
from docx.text.paragraph import Paragraph

from errors import ParseError
from models import DocumentField, DocumentMetadata, DocumentTag, FieldType, ParsedDocument

logger = logging.getLogger(__name__)

# {tag} and {{tag}}; control markers start with #, / or ^
TAG_PATTERN = re.compile(r"\{\{?\s*([^{}\n]+?)\s*\}\}?")
CONTROL_PREFIXES = ("#", "/", "^")
BRACKET_PATTERN = re.compile(r"\[([^\[\]\n]+)\]")
BLANK_PATTERN = re.compile(r"_{3,}")
SEPARATORS = re.compile(r"[_\s-]+")

DATE_KEYWORDS = ("date", "day", "month", "year")
CURRENCY_KEYWORDS = ("amount", "price", "cost", "$", "valuation", "cap", "investment", "purchase")

DOCUMENT_TYPE_KEYWORDS = [
    ("SAFE", ("simple agreement for future equity", "safe agreement", "valuation cap")),
    ("NDA", ("non-disclosure", "nondisclosure", "confidentiality agreement")),
    ("EMPLOYMENT", ("employment agreement", "offer letter")),
    ("LEASE", ("lease agreement", "landlord", "tenant")),
]


def infer_field_type(placeholder: str) -> FieldType:
    """Guess the field type from keywords in its label"""
    lower = placeholder.lower()
    if any(keyword in lower for keyword in DATE_KEYWORDS):
        return FieldType.DATE
    if any(keyword in lower for keyword in CURRENCY_KEYWORDS):
        return FieldType.CURRENCY
    return FieldType.TEXT


def normalize_placeholder(placeholder: str) -> str:
    """Case-fold and collapse _, - and whitespace runs into one space"""
    return SEPARATORS.sub(" ", placeholder.lower()).strip()


def detect_document_type(text: str) -> str:
    """Rough guess of the legal document family, used as an enrichment cache key"""
    lower = text.lower()
    for document_type, keywords in DOCUMENT_TYPE_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return document_type
    if re.search(r"\bsafe\b", lower):
        return "SAFE"
    return "GENERAL"


def load_document(buffer: bytes):
    """
    Open a .docx byte buffer with python-docx

    Raises:
        ParseError: buffer is empty, not a zip, or not a Word package
    """
    if not buffer:
        raise ParseError("Failed to parse document: empty buffer")
    try:
        return Document(io.BytesIO(buffer))
    except Exception as e:
        logger.error("Could not open document: %s", e)
        raise ParseError(f"Failed to parse document: {e}") from e


def _walk_blocks(container) -> Iterator[Paragraph]:
    """Paragraphs of a body, cell or header in reading order, descending into tables"""
    for block in container.iter_inner_content():
        if isinstance(block, Paragraph):
            yield block
            continue
        seen_cells = set()
        for row in block.rows:
            for cell in row.cells:
                # merged cells repeat across the grid
                if id(cell._tc) in seen_cells:
                    continue
                seen_cells.add(id(cell._tc))
                yield from _walk_blocks(cell)


def _iter_header_footers(doc):
    for section in doc.sections:
        for part in (section.header, section.footer):
            if not part.is_linked_to_previous:
                yield part


def iter_paragraphs(doc) -> Iterator[Paragraph]:
    """
    Every paragraph in the document

    Body paragraphs and table cells come in reading order, followed by
    headers and footers that carry their own content.
    """
    yield from _walk_blocks(doc)
    for part in _iter_header_footers(doc):
        yield from _walk_blocks(part)


def find_template_tags(text: str) -> Tuple[List[DocumentField], List[DocumentTag]]:
    """
    Find {tag} template fields in document text

    Returns:
        Leaf value tags as required fields in first-seen order, and every
        tag (including loop/condition markers) as DocumentTag records
    """
    fields: List[DocumentField] = []
    tags: List[DocumentTag] = []
    seen = set()

    for match in TAG_PATTERN.finditer(text):
        name = match.group(1).strip()
        if not name:
            continue
        if name.startswith(CONTROL_PREFIXES):
            tag_type = "condition" if name.startswith("^") else "loop"
            tags.append(DocumentTag(name=name, type=tag_type, position=match.start(), raw=match.group(0)))
            continue
        tags.append(DocumentTag(name=name, type="simple", position=match.start(), raw=match.group(0)))
        if name in seen:
            continue
        seen.add(name)
        fields.append(DocumentField(
            id=f"field-{len(fields)}",
            placeholder=name,
            type=infer_field_type(name),
            required=True,
            order=len(fields),
        ))

    return fields, tags


def find_leaf_tags(text: str) -> List[str]:
    """Names of value tags, control markers skipped, first-seen order"""
    fields, _ = find_template_tags(text)
    return [field.placeholder for field in fields]


def find_placeholders(text: str) -> List[DocumentField]:
    """
    Find [Bracketed] placeholders and ____ blanks in document text

    Brackets shorter than 2 characters, pure digits or without any letter
    are skipped. Every run of 3+ underscores becomes an optional Blank_N.
    """
    fields: List[DocumentField] = []
    seen = set()

    for match in BRACKET_PATTERN.finditer(text):
        placeholder = match.group(1).strip()
        if len(placeholder) < 2 or placeholder.isdigit():
            continue
        if not re.search(r"[A-Za-z]", placeholder):
            continue
        key = placeholder.lower()
        if key in seen:
            continue
        seen.add(key)
        fields.append(DocumentField(
            id=f"unstructured-{len(fields)}",
            placeholder=placeholder,
            type=infer_field_type(placeholder),
            required=True,
            order=len(fields),
        ))

    for index, _ in enumerate(BLANK_PATTERN.finditer(text)):
        placeholder = f"Blank_{index + 1}"
        if placeholder.lower() in seen:
            continue
        fields.append(DocumentField(
            id=f"blank-{index}",
            placeholder=placeholder,
            type=FieldType.TEXT,
            required=False,
            order=len(fields),
        ))

    return fields


class DocumentParser:
    """
    Parses .docx templates into typed, deduplicated fields

    Template tags take priority over unstructured placeholders; the merged
    list is deduplicated and re-indexed in reading order.
    """

    def parse(self, buffer: bytes) -> ParsedDocument:
        """
        Parse a .docx buffer

        Raises:
            ParseError: the buffer is not a readable Word document
        """
        doc = load_document(buffer)
        try:
            paragraphs = list(iter_paragraphs(doc))
            text = "\n".join(paragraph.text for paragraph in paragraphs)
            structured_fields, tags = find_template_tags(text)
            unstructured_fields = find_placeholders(text)
            metadata = self._extract_metadata(doc, text, len(paragraphs), buffer)
        except Exception as e:
            logger.error("Document structure could not be read: %s", e)
            raise ParseError(f"Failed to parse document: {e}") from e

        merged = self.merge_fields(structured_fields, unstructured_fields)
        fields = self._reindex(self.smart_deduplication(merged))

        logger.info(
            "Parsed document %s: %d structured, %d unstructured, %d unique fields",
            metadata.fingerprint[:8], len(structured_fields), len(unstructured_fields), len(fields),
        )

        return ParsedDocument(
            buffer=buffer,
            text=text,
            structured_fields=structured_fields,
            unstructured_fields=unstructured_fields,
            fields=fields,
            metadata=metadata,
            tags=tags,
        )

    def merge_fields(
        self,
        structured_fields: List[DocumentField],
        unstructured_fields: List[DocumentField],
    ) -> List[DocumentField]:
        """Structured fields first; unstructured ones only when their label is new"""
        merged: Dict[str, DocumentField] = {}
        for field in structured_fields:
            merged.setdefault(field.placeholder.lower().strip(), field)
        for field in unstructured_fields:
            merged.setdefault(field.placeholder.lower().strip(), field)
        return self._reindex(list(merged.values()))

    def smart_deduplication(self, fields: List[DocumentField]) -> List[DocumentField]:
        """
        Drop near-duplicate placeholders

        "Company Name", "company_name" and "COMPANY-NAME" share one key. The
        first one seen is kept unless a later duplicate has a more specific
        type than text, which then takes the first one's slot.
        """
        seen: Dict[str, DocumentField] = {}
        for field in fields:
            key = normalize_placeholder(field.placeholder)
            existing = seen.get(key)
            if existing is None:
                seen[key] = field
            elif existing.type == FieldType.TEXT and field.type != FieldType.TEXT:
                seen[key] = field
        return list(seen.values())

    @staticmethod
    def _reindex(fields: List[DocumentField]) -> List[DocumentField]:
        return [
            field.model_copy(update={"id": f"field-{index}", "order": index})
            for index, field in enumerate(fields)
        ]

    def _extract_metadata(self, doc, text: str, paragraph_count: int, buffer: bytes) -> DocumentMetadata:
        headers = [section.header for section in doc.sections if not section.header.is_linked_to_previous]
        footers = [section.footer for section in doc.sections if not section.footer.is_linked_to_previous]
        return DocumentMetadata(
            word_count=len(text.split()),
            character_count=len(text),
            paragraph_count=paragraph_count,
            has_tables=len(doc.tables) > 0,
            has_images=len(doc.inline_shapes) > 0,
            has_headers=any(p.text.strip() for h in headers for p in h.paragraphs),
            has_footers=any(p.text.strip() for f in footers for p in f.paragraphs),
            document_type=detect_document_type(text),
            fingerprint=hashlib.md5(buffer).hexdigest(),
        )
