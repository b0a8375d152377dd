# backend/errors.py
"""
Error taxonomy for the document assistant

Parse and generation failures propagate to the caller. Validation outcomes
are returned as data; FieldValidationError only wraps them at the HTTP
download gate. AI failures are caught where the LLM is called.
"""

from typing import Any, Dict, List, Optional


class DocumentAssistantError(Exception):
    """Base error with a machine code and an HTTP status"""

    code = "APP_ERROR"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
        }


class UploadError(DocumentAssistantError):
    """Uploaded file rejected before parsing"""
    code = "UPLOAD_ERROR"
    status_code = 400


class ParseError(DocumentAssistantError):
    """Buffer is not a readable .docx container"""
    code = "PARSE_ERROR"
    status_code = 422


class GenerationError(DocumentAssistantError):
    """Template unreadable or rendering failed"""
    code = "GENERATION_ERROR"
    status_code = 500


class MissingTagsError(GenerationError):
    """One or more template tags have no bound value"""
    code = "MISSING_TAGS"
    status_code = 400

    def __init__(self, missing_tags: List[str]):
        self.missing_tags = list(missing_tags)
        listing = ", ".join(f"Missing data for tag: {tag}" for tag in self.missing_tags)
        super().__init__(f"Validation failed: {listing}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["missing_tags"] = self.missing_tags
        return data


class AIServiceError(DocumentAssistantError):
    """LLM call failed or returned unusable output"""
    code = "AI_ERROR"
    status_code = 503


class SessionNotFoundError(DocumentAssistantError):
    """No session stored under the requested id"""
    code = "SESSION_NOT_FOUND"
    status_code = 404

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found or expired. Please upload the document again.")


class FieldValidationError(DocumentAssistantError):
    """Filled values fail legal-grade validation"""
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.result is not None:
            data["errors"] = [e.model_dump() for e in self.result.errors]
            data["warnings"] = [w.model_dump() for w in self.result.warnings]
        return data


class InvalidAmountError(ValueError):
    """Input cannot be read as a currency amount"""


class InvalidDateError(ValueError):
    """Input cannot be read as a date"""
