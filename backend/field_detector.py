# backend/field_detector.py
"""
Hybrid field detector
Template detection decides which fields exist; the LLM only describes them
"""

import logging
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from errors import AIServiceError
from llm_handler import LLMService, extract_json
from models import (
    DocumentField,
    FieldConstraints,
    FieldDetectionResult,
    FieldEnrichment,
    FieldType,
    ValidationRule,
)

logger = logging.getLogger(__name__)

ENRICHMENT_SCHEMA = TypeAdapter(List[FieldEnrichment])

FALLBACK_EXAMPLES = {
    FieldType.CURRENCY: ["$100,000", "$1,000,000", "$50,000"],
    FieldType.DATE: ["January 1, 2024", "March 15, 2024", "December 31, 2023"],
    FieldType.TEXT: ["Example value", "Sample text", "Your value here"],
}

SYSTEM_INSTRUCTION = "You are a legal document expert. Respond with JSON only."


class HybridFieldDetector:
    """
    Enriches parsed fields with descriptions, examples and validation hints

    One LLM call covers every field of a document. Results are cached per
    document type and field-name set; any LLM failure degrades to a
    deterministic, type-based enrichment.
    """

    def __init__(self, llm: Optional[LLMService] = None):
        self.llm = llm
        # enrichments keyed by placeholder, so a cached set fits any field order
        self._cache: Dict[str, Dict[str, FieldEnrichment]] = {}

    def detect_fields(
        self,
        fields: List[DocumentField],
        document_text: str,
        document_type: str = "SAFE",
    ) -> FieldDetectionResult:
        """
        Enrich fields without changing which fields exist or their order
        """
        logger.info("Hybrid field detection for %d fields (%s)", len(fields), document_type)
        if not fields:
            return FieldDetectionResult(fields=[], confidence=1.0, method="template", metadata={"cached": False})

        cache_key = self.generate_cache_key(document_type, fields)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info("Using cached enrichment")
            return FieldDetectionResult(
                fields=self.apply_enrichment(fields, [cached[field.placeholder] for field in fields]),
                confidence=0.99,
                method="hybrid",
                metadata={"cached": True},
            )

        llm_used = True
        try:
            enrichments = self.enrich_fields_with_llm(fields, document_text, document_type)
        except AIServiceError as e:
            logger.warning("LLM enrichment unavailable, using fallback: %s", e)
            enrichments = self.generate_fallback_enrichments(fields)
            llm_used = False

        self._cache[cache_key] = {field.placeholder: e for field, e in zip(fields, enrichments)}
        logger.debug("Enrichment cached under %s", cache_key)

        return FieldDetectionResult(
            fields=self.apply_enrichment(fields, enrichments),
            confidence=0.99 if llm_used else 0.85,
            method="hybrid" if llm_used else "template",
            metadata={
                "cached": False,
                "llm_used": llm_used,
                "enrichment_count": len(enrichments),
            },
        )

    def enrich_fields_with_llm(
        self,
        fields: List[DocumentField],
        document_text: str,
        document_type: str,
    ) -> List[FieldEnrichment]:
        """
        Ask the model for one enrichment per field, in field order

        Raises:
            AIServiceError: no model, call failure, or a reply that does not
                match the enrichment schema one-for-one
        """
        if self.llm is None or not self.llm.available:
            raise AIServiceError("LLM is not configured")

        response = self.llm.complete(self.build_prompt(fields, document_text, document_type), SYSTEM_INSTRUCTION)
        payload = extract_json(response)

        try:
            enrichments = ENRICHMENT_SCHEMA.validate_python(payload)
        except ValidationError as e:
            raise AIServiceError(f"Enrichment schema mismatch: {e.error_count()} errors") from e

        if len(enrichments) != len(fields):
            raise AIServiceError(f"LLM returned {len(enrichments)} enrichments, expected {len(fields)}")
        return enrichments

    @staticmethod
    def build_prompt(fields: List[DocumentField], document_text: str, document_type: str) -> str:
        field_list = "\n".join(f"{index + 1}. {field.placeholder}" for index, field in enumerate(fields))
        return f"""You are analyzing a {document_type} legal document to provide intelligent field classifications.

Document context (first 1000 chars):
{document_text[:1000]}

Fields to classify:
{field_list}

For EACH field, provide:
1. Clear description (what this field is for)
2. 2-3 examples of valid values
3. Validation rules (format, requirements)
4. Legal context or best practices (if applicable)
5. "options" only when the field must be one of a fixed list of choices

Respond with a JSON array, one object per field:
[
  {{
    "placeholder": "Company Name",
    "description": "The legal name of the company issuing the SAFE",
    "examples": ["Acme Inc.", "TechCorp LLC", "Startup Co."],
    "validationRules": [
      {{"type": "required", "rule": "Must not be empty", "message": "Company name is required"}}
    ],
    "legalContext": "Must match the name in incorporation documents exactly",
    "bestPractices": ["Verify with incorporation certificate"]
  }}
]

IMPORTANT: Return EXACTLY {len(fields)} objects, one for each field in order."""

    def apply_enrichment(
        self,
        fields: List[DocumentField],
        enrichments: List[FieldEnrichment],
    ) -> List[DocumentField]:
        """Attach enrichments by position; fields without one pass through unchanged"""
        enriched = []
        for index, field in enumerate(fields):
            enrichment = enrichments[index] if index < len(enrichments) else None
            if enrichment is None:
                enriched.append(field)
                continue
            update = {"enrichment": enrichment}
            if enrichment.options and field.type == FieldType.TEXT:
                update["type"] = FieldType.ENUM
                update["options"] = list(enrichment.options)
                update["validation"] = FieldConstraints(options=list(enrichment.options))
            enriched.append(field.model_copy(update=update))
        return enriched

    def generate_fallback_enrichments(self, fields: List[DocumentField]) -> List[FieldEnrichment]:
        """Deterministic enrichment from the inferred type alone"""
        return [
            FieldEnrichment(
                placeholder=field.placeholder,
                description=f"Please provide the {field.placeholder.lower()}",
                examples=list(FALLBACK_EXAMPLES.get(field.type, FALLBACK_EXAMPLES[FieldType.TEXT])),
                validation_rules=self._validation_for_type(field.type),
            )
            for field in fields
        ]

    @staticmethod
    def _validation_for_type(field_type: FieldType) -> List[ValidationRule]:
        rules = [ValidationRule(type="required", rule="Must not be empty", message="This field is required")]
        if field_type == FieldType.CURRENCY:
            rules.append(ValidationRule(
                type="format",
                rule="Must be a valid currency amount",
                message="Please enter a valid dollar amount",
            ))
        elif field_type == FieldType.DATE:
            rules.append(ValidationRule(
                type="format",
                rule="Must be a valid date",
                message="Please enter a valid date",
            ))
        return rules

    @staticmethod
    def generate_cache_key(document_type: str, fields: List[DocumentField]) -> str:
        names = sorted(field.placeholder for field in fields)
        return f"{document_type}:{'|'.join(names)}"

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        """Clear cache (useful for testing)"""
        self._cache.clear()
