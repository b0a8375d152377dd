# backend/document_generator.py
"""
Document generation from .docx templates
Substitutes values into paragraph runs so surrounding formatting survives
"""

import hashlib
import io
import logging
import re
import secrets
import time
import zipfile
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from config import settings
from document_handler import (
    BLANK_PATTERN,
    CONTROL_PREFIXES,
    find_leaf_tags,
    iter_paragraphs,
    load_document,
    normalize_placeholder,
)
from errors import GenerationError, InvalidAmountError, InvalidDateError, MissingTagsError, ParseError
from formatters import currency_to_words, format_currency, format_legal_date, get_current_legal_date, number_to_words
from models import AuditLogEntry, GeneratedDocument, GenerationMetadata, GenerationOptions

logger = logging.getLogger(__name__)

CURRENCY_KEYWORDS = ("amount", "price", "cost", "valuation", "cap", "investment", "purchase")
DATE_KEYWORDS = ("date", "day")
NUMERIC_DATE = re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}")

# One pass over a paragraph: tags, [brackets] and ____ blanks
SUBSTITUTION_PATTERN = re.compile(
    r"(?P<tag>\{\{?\s*(?P<name>[^{}\n]+?)\s*\}\}?)"
    r"|(?P<bracket>\[(?P<label>[^\[\]\n]+)\])"
    r"|(?P<blank>_{3,})"
)
SECTION_PATTERN = re.compile(
    r"\{\{?\s*(?P<kind>[#^])\s*(?P<name>[^{}\n]+?)\s*\}\}?(?P<body>.*?)\{\{?\s*/\s*(?P=name)\s*\}\}?",
    re.DOTALL,
)
CONTROL_TAG_PATTERN = re.compile(r"\{\{?\s*[#/^][^{}\n]*\}\}?")

# Fixed member timestamps keep identical output byte-identical
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
FALSE_WORDS = ("false", "no", "0")

# Tags the legal transform fills on its own
GENERATED_TAGS = ("current_date", "document_id")
DERIVED_SUFFIXES = ("_formatted", "_words")


def is_generated_tag(name: str, placeholders: Iterable[str]) -> bool:
    """True for tags the generator derives from other values or injects itself"""
    if name in GENERATED_TAGS:
        return True
    names = set(placeholders)
    return any(name.endswith(suffix) and name[: -len(suffix)] in names for suffix in DERIVED_SUFFIXES)


def splice_runs(paragraph, pattern: re.Pattern, replace: Callable[[re.Match], str]) -> int:
    """
    Replace pattern matches in a paragraph, even when Word split them across runs

    Each replacement lands in the first run the match touches, keeping that
    run's formatting; the matched characters are removed from the other
    runs. Runs that are not touched keep their text and formatting.

    Returns:
        Number of matches found
    """
    runs = paragraph.runs
    texts = [run.text for run in runs]
    original = list(texts)
    lengths = [len(text) for text in texts]
    full_text = "".join(texts)

    matches = list(pattern.finditer(full_text))
    if not matches:
        return 0

    starts = []
    position = 0
    for length in lengths:
        starts.append(position)
        position += length

    # replacements are computed in reading order, applied back to front
    replacements = [(match.start(), match.end(), replace(match)) for match in matches]
    for start, end, value in reversed(replacements):
        if value == full_text[start:end]:
            continue
        touched = [
            index for index in range(len(runs))
            if lengths[index] and starts[index] < end and starts[index] + lengths[index] > start
        ]
        for index in touched:
            low = max(start - starts[index], 0)
            high = min(end - starts[index], lengths[index])
            text = texts[index]
            texts[index] = text[:low] + (value if index == touched[0] else "") + text[high:]

    for run, text, before in zip(runs, texts, original):
        if text != before:
            run.text = text
    return len(matches)


def _has_value(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return True
    if value is None:
        return False
    return bool(value) if not isinstance(value, str) else value != ""


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_WORDS and value.strip() != ""
    return bool(value)


def stringify(value: Any) -> str:
    """Render a bound value as document text"""
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return format_legal_date(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class _RenderState:
    """Per-document state shared across paragraphs while rendering"""

    def __init__(self, data: Dict[str, Any]):
        self.data = data
        # spellings the parser merged into one field share a normalized label
        self.labels: Dict[str, str] = {}
        for key in data:
            self.labels.setdefault(normalize_placeholder(str(key)), key)
        self.blank_count = 0

    def resolve(self, name: str) -> Optional[str]:
        """Data key for a tag or bracket label, exact spelling first"""
        if name in self.data:
            return name
        normalized = normalize_placeholder(name)
        return self.labels.get(normalized) if normalized else None

    def substitute(self, match: re.Match) -> str:
        if match.group("blank"):
            return self._fill_blank(match)

        if match.group("tag"):
            # underscore runs inside a tag still take a Blank_N number
            self._skip_blanks(match.group(0))
            name = match.group("name").strip()
            if name.startswith(CONTROL_PREFIXES):
                return match.group(0)
            key = self.resolve(name)
            if key is not None:
                return stringify(self.data[key])
            logger.warning("Missing field at render time: %s", name)
            return f"[MISSING: {name}]"

        key = self.resolve(match.group("label").strip())
        if key is not None:
            self._skip_blanks(match.group(0))
            return stringify(self.data[key])
        # unknown brackets stay, blanks inside them are filled in place
        return BLANK_PATTERN.sub(self._fill_blank, match.group(0))

    def _fill_blank(self, match: re.Match) -> str:
        self.blank_count += 1
        key = self.labels.get(f"blank {self.blank_count}")
        return stringify(self.data[key]) if key is not None else match.group(0)

    def _skip_blanks(self, text: str) -> None:
        self.blank_count += len(BLANK_PATTERN.findall(text))

    def evaluate_section(self, match: re.Match) -> str:
        key = self.resolve(match.group("name").strip())
        shown = key is not None and _is_truthy(self.data[key])
        if match.group("kind") == "^":
            shown = not shown
        return match.group("body") if shown else ""


class DocumentGenerator:
    """
    Production document generator

    transform values -> check every template tag is bound -> render runs
    -> re-pack the package -> metadata and optional audit log.
    """

    def __init__(self, compression_level: Optional[int] = None, clock: Optional[Callable[[], datetime]] = None):
        self.compression_level = settings.compression_level if compression_level is None else compression_level
        self._clock = clock or datetime.now

    def generate(
        self,
        template_buffer: bytes,
        values: Dict[str, Any],
        options: Optional[GenerationOptions] = None,
    ) -> GeneratedDocument:
        """
        Generate a filled document

        Raises:
            GenerationError: template is not a readable .docx (TEMPLATE_INVALID)
            MissingTagsError: a template tag has no value (MISSING_TAGS)
        """
        started = time.perf_counter()
        options = options or GenerationOptions()
        logger.info("Generating document with %d fields", len(values))

        transformed = self.transform_for_legal(values)

        try:
            doc = load_document(template_buffer)
        except ParseError as e:
            raise GenerationError(f"Document generation failed: {e.message}", code="TEMPLATE_INVALID") from e

        paragraphs = list(iter_paragraphs(doc))
        template_text = "\n".join(paragraph.text for paragraph in paragraphs)
        missing = self.find_missing_tags(template_text, transformed)
        if missing:
            logger.error("Generation blocked, missing tags: %s", ", ".join(missing))
            raise MissingTagsError(missing)

        state = _RenderState(transformed)
        try:
            for paragraph in paragraphs:
                self._render_paragraph(paragraph, state)
            buffer = self._serialize(doc, options.compression_level)
        except Exception as e:
            logger.error("Rendering failed: %s", e)
            raise GenerationError(f"Document generation failed: {e}") from e

        metadata = GenerationMetadata(
            generated_at=self._clock(),
            processing_time_ms=(time.perf_counter() - started) * 1000,
            field_count=len(values),
            file_size=len(buffer),
            checksum=hashlib.sha256(buffer).hexdigest(),
        )
        audit_log = self.create_audit_log(values, metadata) if options.audit_trail else None

        logger.info(
            "Generation complete in %.1fms, %.2f KB",
            metadata.processing_time_ms, metadata.file_size / 1024,
        )
        return GeneratedDocument(buffer=buffer, metadata=metadata, audit_log=audit_log)

    def transform_for_legal(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add legally formatted variants next to the raw values

        Dates get {key}_formatted; currency gets {key}_formatted and
        {key}_words; other numbers get {key}_words. current_date and
        document_id are always added.
        """
        transformed: Dict[str, Any] = {}
        for key, value in values.items():
            transformed[key] = value

            if self.is_date_field(key, value):
                try:
                    transformed[f"{key}_formatted"] = format_legal_date(value)
                except InvalidDateError:
                    logger.debug("Keeping %s unformatted, not a date: %r", key, value)
            elif self.is_currency_field(key, value):
                amount = self._to_number(value)
                if amount is not None:
                    transformed[f"{key}_formatted"] = format_currency(amount, include_cents=not amount.is_integer())
                    transformed[f"{key}_words"] = currency_to_words(amount)
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                try:
                    transformed[f"{key}_words"] = number_to_words(value)
                except InvalidAmountError:
                    logger.debug("Keeping %s without words: %r", key, value)

        transformed["current_date"] = get_current_legal_date(self._clock)
        transformed["document_id"] = secrets.token_hex(8)
        return transformed

    @staticmethod
    def is_currency_field(key: str, value: Any) -> bool:
        lower = key.lower()
        return any(keyword in lower for keyword in CURRENCY_KEYWORDS) or (
            isinstance(value, str) and "$" in value
        )

    @staticmethod
    def is_date_field(key: str, value: Any) -> bool:
        lower = key.lower()
        return (
            any(keyword in lower for keyword in DATE_KEYWORDS)
            or isinstance(value, (date, datetime))
            or (isinstance(value, str) and bool(NUMERIC_DATE.search(value)))
        )

    @staticmethod
    def _to_number(value: Any) -> Optional[float]:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float, Decimal)):
            return float(value)
        try:
            amount = float(re.sub(r"[^0-9.\-]", "", str(value)))
        except ValueError:
            return None
        return amount if amount == amount and abs(amount) != float("inf") else None

    @staticmethod
    def find_missing_tags(template_text: str, data: Dict[str, Any]) -> List[str]:
        """
        Leaf tags with no bound value; numeric zero counts as bound

        Tags resolve the way rendering does, so {Company-Name} is bound by
        a company_name value.
        """
        state = _RenderState(data)
        missing = []
        for tag in find_leaf_tags(template_text):
            key = state.resolve(tag)
            if key is None or not _has_value(data[key]):
                missing.append(tag)
        return missing

    @staticmethod
    def _render_paragraph(paragraph, state: _RenderState) -> None:
        splice_runs(paragraph, SUBSTITUTION_PATTERN, state.substitute)
        if CONTROL_TAG_PATTERN.search(paragraph.text):
            splice_runs(paragraph, SECTION_PATTERN, state.evaluate_section)
            # sections spanning paragraphs are not evaluated, only unwrapped
            splice_runs(paragraph, CONTROL_TAG_PATTERN, lambda match: "")

    def _serialize(self, doc, compression_level: Optional[int]) -> bytes:
        level = self.compression_level if compression_level is None else compression_level
        saved = io.BytesIO()
        doc.save(saved)

        output = io.BytesIO()
        with zipfile.ZipFile(io.BytesIO(saved.getvalue())) as source, \
                zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as target:
            for item in source.infolist():
                info = zipfile.ZipInfo(item.filename, date_time=ZIP_TIMESTAMP)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = item.external_attr
                target.writestr(info, source.read(item.filename), compresslevel=level)
        return output.getvalue()

    @staticmethod
    def create_audit_log(values: Dict[str, Any], metadata: GenerationMetadata) -> List[AuditLogEntry]:
        """One field_filled entry per value, then document_generated"""
        log = [
            AuditLogEntry(
                timestamp=metadata.generated_at,
                action="field_filled",
                field=key,
                new_value=stringify(value),
                user_id="user",
            )
            for key, value in values.items()
        ]
        log.append(AuditLogEntry(timestamp=metadata.generated_at, action="document_generated", user_id="system"))
        return log
