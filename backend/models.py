# backend/models.py
"""
Pydantic models for data validation
Shared contract between parser, detector, validator, generator and conversation
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    """Semantic type inferred for a field"""
    TEXT = "text"
    DATE = "date"
    CURRENCY = "currency"
    ENUM = "enum"


class SessionStatus(str, Enum):
    """Lifecycle of a fill session"""
    PARSING = "parsing"
    FILLING = "filling"
    REVIEW = "review"
    CHANGING = "changing"
    COMPLETE = "complete"


class Intent(str, Enum):
    """What the user meant by a message while fields are being collected"""
    ANSWER = "answer"
    QUESTION = "question"
    HELP = "help"
    NAVIGATE = "navigate"
    UNCLEAR = "unclear"


class ValidationRule(BaseModel):
    """A human-readable validation hint attached by enrichment"""
    type: Literal["format", "range", "required", "pattern", "custom"] = "custom"
    rule: str
    message: str


class FieldConstraints(BaseModel):
    """Machine-checkable refinements for a field"""
    pattern: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    options: Optional[List[str]] = None


class FieldEnrichment(BaseModel):
    """Additive metadata produced by the hybrid detector"""
    placeholder: str = Field(..., description="Placeholder the enrichment describes")
    description: str = Field(..., min_length=1, description="What the field is for")
    examples: List[str] = Field(default_factory=list, description="Example values")
    validation_rules: List[ValidationRule] = Field(
        default_factory=list, alias="validationRules"
    )
    legal_context: Optional[str] = Field(default=None, alias="legalContext")
    best_practices: Optional[List[str]] = Field(default=None, alias="bestPractices")
    options: Optional[List[str]] = None

    model_config = {"populate_by_name": True}


class DocumentField(BaseModel):
    """A detected, typed fillable slot in a document template"""
    id: str = Field(..., description="Identifier, unique within a parse result")
    placeholder: str = Field(..., description="Label exactly as extracted")
    type: FieldType = Field(default=FieldType.TEXT, description="Inferred field type")
    required: bool = Field(default=True, description="Must be filled before generation")
    order: int = Field(default=0, description="Position in document reading order")
    validation: Optional[FieldConstraints] = None
    options: Optional[List[str]] = None
    enrichment: Optional[FieldEnrichment] = None

    @property
    def description(self) -> str:
        if self.enrichment:
            return self.enrichment.description
        return f"Please provide the {self.placeholder.lower()}"


class DocumentTag(BaseModel):
    """Template tag found in the document text"""
    name: str
    type: Literal["simple", "loop", "condition"] = "simple"
    position: int
    raw: str


class DocumentMetadata(BaseModel):
    """Metadata about a parsed document"""
    word_count: int
    character_count: int
    paragraph_count: int = 0
    has_tables: bool = False
    has_images: bool = False
    has_headers: bool = False
    has_footers: bool = False
    document_type: str = "GENERAL"
    fingerprint: str = Field(..., description="MD5 of the original document bytes")


class ParsedDocument(BaseModel):
    """Parse-time snapshot of an uploaded template"""
    buffer: bytes = Field(..., exclude=True, repr=False)
    text: str
    structured_fields: List[DocumentField] = Field(default_factory=list)
    unstructured_fields: List[DocumentField] = Field(default_factory=list)
    fields: List[DocumentField] = Field(default_factory=list)
    metadata: DocumentMetadata
    tags: List[DocumentTag] = Field(default_factory=list)


class FieldDetectionResult(BaseModel):
    """Outcome of hybrid field detection"""
    fields: List[DocumentField]
    confidence: float
    method: Literal["template", "regex", "llm", "hybrid"]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ValidationIssue(BaseModel):
    """Blocking validation error"""
    field: str
    message: str
    code: str
    suggestion: Optional[str] = None


class ValidationWarning(BaseModel):
    """Non-blocking validation warning"""
    field: str
    message: str
    severity: Literal["low", "medium", "high"] = "low"
    suggestion: Optional[str] = None


class ValidationResult(BaseModel):
    """Errors block generation, warnings do not"""
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)


class FieldCheckResult(BaseModel):
    """Result of the lenient per-turn check on one answer"""
    valid: bool
    error: Optional[str] = None
    code: Optional[str] = None
    suggestion: Optional[str] = None
    formatted_value: Optional[str] = None


class GenerationOptions(BaseModel):
    """Knobs for document generation"""
    include_metadata: bool = True
    compression_level: Optional[int] = Field(default=None, ge=0, le=9)
    audit_trail: bool = False


class GenerationMetadata(BaseModel):
    """Facts about one generated document"""
    generated_at: datetime
    processing_time_ms: float
    field_count: int
    file_size: int
    checksum: str = Field(..., description="SHA-256 of the output bytes")


class AuditLogEntry(BaseModel):
    """Audit log entry for legal compliance"""
    timestamp: datetime
    action: str
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    user_id: Optional[str] = None


class GeneratedDocument(BaseModel):
    """Generated document with its metadata"""
    buffer: bytes = Field(..., exclude=True, repr=False)
    metadata: GenerationMetadata
    audit_log: Optional[List[AuditLogEntry]] = None


class Message(BaseModel):
    """One conversation message"""
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)
    field_id: Optional[str] = None


class Session(BaseModel):
    """Long-lived fill session"""
    session_id: str
    filename: str = "document.docx"
    original_buffer: bytes = Field(..., exclude=True, repr=False)
    document_text: str = ""
    document_type: str = "GENERAL"
    fields: List[DocumentField] = Field(default_factory=list)
    filled_fields: Dict[str, str] = Field(default_factory=dict)
    conversation_history: List[Message] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.PARSING
    active_field_id: Optional[str] = None
    changing_field_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def progress(self) -> str:
        filled = sum(1 for f in self.fields if f.id in self.filled_fields)
        return f"{filled}/{len(self.fields)}"


class ConversationTurn(BaseModel):
    """Reply text plus the session as it stands after the turn"""
    reply_text: str
    session: Session


# HTTP models

class UploadResponse(BaseModel):
    """Response from upload endpoint"""
    session_id: str = Field(..., description="Unique session identifier")
    filename: str = Field(..., description="Uploaded filename")
    document_type: str = Field(..., description="Guessed document type")
    fields: List[DocumentField] = Field(..., description="Detected fields")
    message: str = Field(..., description="Greeting and first question")


class ChatRequest(BaseModel):
    """Request for chat endpoint"""
    session_id: str = Field(..., description="Session UUID")
    message: str = Field(..., description="User message")


class ChatResponse(BaseModel):
    """Response from chat endpoint"""
    assistant_message: str = Field(..., description="Assistant reply")
    status: SessionStatus
    filled_fields: Dict[str, str] = Field(default_factory=dict)
    progress: str = Field(..., description="e.g., '3/7'")


class ValidateRequest(BaseModel):
    """Request for validate endpoint"""
    session_id: str = Field(..., description="Session UUID")
    filled_fields: Optional[Dict[str, str]] = Field(
        default=None, description="Candidate values; defaults to the session's"
    )


class StatusResponse(BaseModel):
    """Response from status endpoint"""
    session_id: str
    status: SessionStatus
    fields: List[DocumentField]
    filled_fields: Dict[str, str]
    progress: str = Field(..., description="e.g., '3/7'")
    completed: bool = Field(..., description="Session confirmed by the user?")


class DownloadRequest(BaseModel):
    """Request for download endpoint"""
    session_id: str = Field(..., description="Session UUID")
    audit_trail: bool = Field(default=False, description="Return the audit log header")
