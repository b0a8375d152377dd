# backend/pipeline.py
"""
The document pipeline as plain functions

parse -> detect_fields -> advance_conversation -> validate -> generate
"""

from typing import Any, Dict, List, Optional

from conversation import ConversationEngine
from document_generator import DocumentGenerator, is_generated_tag
from document_handler import DocumentParser
from field_detector import HybridFieldDetector
from models import (
    ConversationTurn,
    DocumentField,
    FieldDetectionResult,
    GeneratedDocument,
    GenerationOptions,
    ParsedDocument,
    Session,
    ValidationResult,
)
from validator import DocumentValidator


def parse(buffer: bytes) -> ParsedDocument:
    return DocumentParser().parse(buffer)


def detect_fields(
    fields: List[DocumentField],
    document_text: str,
    document_type: str = "SAFE",
    detector: Optional[HybridFieldDetector] = None,
) -> FieldDetectionResult:
    detector = detector or HybridFieldDetector()
    return detector.detect_fields(fields, document_text, document_type)


def validate(fields: List[DocumentField], filled_fields: Dict[str, str]) -> ValidationResult:
    return DocumentValidator().validate(fields, filled_fields)


def advance_conversation(
    message: str,
    session: Session,
    engine: Optional[ConversationEngine] = None,
) -> ConversationTurn:
    engine = engine or ConversationEngine()
    return engine.advance_conversation(message, session)


def generate(
    template_buffer: bytes,
    values: Dict[str, Any],
    options: Optional[GenerationOptions] = None,
) -> GeneratedDocument:
    return DocumentGenerator().generate(template_buffer, values, options)


def build_value_map(fields: List[DocumentField], filled_fields: Dict[str, str]) -> Dict[str, str]:
    """Key filled values by placeholder, the names the template binds to"""
    return {
        field.placeholder: filled_fields[field.id]
        for field in fields
        if field.id in filled_fields
    }


def fillable_fields(fields: List[DocumentField]) -> List[DocumentField]:
    """Fields the user has to supply; derived and injected tags are left out"""
    placeholders = [field.placeholder for field in fields]
    return [field for field in fields if not is_generated_tag(field.placeholder, placeholders)]
