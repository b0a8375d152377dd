# backend/main.py
"""
FastAPI application for Legal Document Assistant
Upload a .docx template, fill its fields in conversation, download the result
"""

import logging
import uuid

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from config import configure_logging, settings
from conversation import ConversationEngine, ConversationService
from document_generator import DocumentGenerator
from document_handler import DocumentParser
from errors import DocumentAssistantError, FieldValidationError, SessionNotFoundError, UploadError
from field_detector import HybridFieldDetector
from llm_handler import LLMService
from models import (
    ChatRequest,
    ChatResponse,
    DownloadRequest,
    GenerationOptions,
    Session,
    SessionStatus,
    StatusResponse,
    UploadResponse,
    ValidateRequest,
    ValidationResult,
)
from pipeline import build_value_map, fillable_fields
from session_store import InMemorySessionStore, SessionStore
from validator import DocumentValidator

# Load environment variables
load_dotenv()
configure_logging()

logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Create FastAPI app
app = FastAPI(
    title="Legal Document Assistant",
    description="Upload documents and fill placeholders with AI assistance",
    version="2.0.0"
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared services; sessions live in memory for the lifetime of the process
llm_service = LLMService()
app.state.session_store = InMemorySessionStore()
app.state.detector = HybridFieldDetector(llm_service)
app.state.engine = ConversationEngine(llm=llm_service)
app.state.parser = DocumentParser()
app.state.validator = DocumentValidator()
app.state.generator = DocumentGenerator()


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_detector(request: Request) -> HybridFieldDetector:
    return request.app.state.detector


def get_engine(request: Request) -> ConversationEngine:
    return request.app.state.engine


def get_conversation_service(
    store: SessionStore = Depends(get_session_store),
    engine: ConversationEngine = Depends(get_engine),
) -> ConversationService:
    return ConversationService(store, engine)


@app.exception_handler(DocumentAssistantError)
async def document_assistant_error_handler(request: Request, exc: DocumentAssistantError):
    logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.get("/health")
async def health_check(store: SessionStore = Depends(get_session_store)):
    """Health check endpoint"""
    return {
        "status": "ok",
        "model": settings.openai_model,
        "llm_available": llm_service.available,
        "active_sessions": store.size(),
        "service": "Legal Document Assistant"
    }


@app.post("/upload", response_model=UploadResponse)
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_session_store),
    detector: HybridFieldDetector = Depends(get_detector),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Upload and parse a .docx file

    Returns:
        - session_id: Unique session identifier
        - filename: Uploaded filename
        - document_type: Guessed document family
        - fields: Detected, enriched fields in document order
        - message: Greeting and the first question
    """

    # Validate file type
    filename = file.filename or ""
    if not any(filename.lower().endswith(ext) for ext in settings.allowed_file_types):
        raise UploadError("Only .docx files supported")

    # Validate file size
    content = await file.read()
    if len(content) > settings.max_file_size_mb * 1024 * 1024:
        raise UploadError(f"File too large (max {settings.max_file_size_mb}MB)")

    parsed = request.app.state.parser.parse(content)
    document_type = parsed.metadata.document_type
    if document_type == "GENERAL":
        document_type = settings.default_document_type
    detection = detector.detect_fields(fillable_fields(parsed.fields), parsed.text, document_type)

    session_id = str(uuid.uuid4())
    store.set(session_id, Session(
        session_id=session_id,
        filename=filename,
        original_buffer=content,
        document_text=parsed.text,
        document_type=document_type,
        fields=detection.fields,
    ))
    turn = service.start(session_id)
    removed = store.cleanup()

    logger.info(
        "Uploaded %s as session %s: %d fields (%s, confidence %.2f), %d idle sessions removed",
        filename, session_id, len(detection.fields), detection.method, detection.confidence, removed,
    )

    return UploadResponse(
        session_id=session_id,
        filename=filename,
        document_type=document_type,
        fields=turn.session.fields,
        message=turn.reply_text,
    )


@app.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, service: ConversationService = Depends(get_conversation_service)):
    """Handle one chat message for the session's conversation"""
    turn = service.handle_message(request.session_id, request.message)
    session = turn.session
    return ChatResponse(
        assistant_message=turn.reply_text,
        status=session.status,
        filled_fields=session.filled_fields,
        progress=session.progress,
    )


@app.get("/question/{session_id}/stream")
async def stream_question(
    session_id: str,
    service: ConversationService = Depends(get_conversation_service),
):
    """Stream the question for the current field as plain text"""
    session = service.get_session(session_id)
    return StreamingResponse(service.engine.stream_question(session), media_type="text/plain")


@app.post("/validate", response_model=ValidationResult)
async def validate_fields(
    request: ValidateRequest,
    http_request: Request,
    service: ConversationService = Depends(get_conversation_service),
):
    """Legal-grade validation of the session's values (or candidate values)"""
    session = service.get_session(request.session_id)
    filled = request.filled_fields if request.filled_fields is not None else session.filled_fields
    return http_request.app.state.validator.validate(session.fields, filled)


@app.post("/download")
async def download_document(
    request: DownloadRequest,
    http_request: Request,
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Generate and download completed document

    Blocked with a 400 when legal validation finds errors.
    """
    session = service.get_session(request.session_id)

    result = http_request.app.state.validator.validate(session.fields, session.filled_fields)
    if not result.valid:
        names = ", ".join(error.field for error in result.errors)
        raise FieldValidationError(f"Please fix the following fields: {names}", result)

    values = build_value_map(session.fields, session.filled_fields)
    generated = http_request.app.state.generator.generate(
        session.original_buffer,
        values,
        GenerationOptions(audit_trail=request.audit_trail),
    )

    headers = {
        "Content-Disposition": f'attachment; filename="completed_{session.filename}"',
        "X-Document-Checksum": generated.metadata.checksum,
        "X-Generated-At": generated.metadata.generated_at.isoformat(),
    }
    if generated.audit_log is not None:
        headers["X-Audit-Entries"] = str(len(generated.audit_log))

    logger.info("Document for session %s generated (%d bytes)", session.session_id, generated.metadata.file_size)
    return Response(content=generated.buffer, media_type=DOCX_MEDIA_TYPE, headers=headers)


@app.get("/status/{session_id}", response_model=StatusResponse)
async def get_status(session_id: str, service: ConversationService = Depends(get_conversation_service)):
    """Get current session status"""
    session = service.get_session(session_id)
    return StatusResponse(
        session_id=session_id,
        status=session.status,
        fields=session.fields,
        filled_fields=session.filled_fields,
        progress=session.progress,
        completed=session.status == SessionStatus.COMPLETE,
    )


@app.delete("/session/{session_id}")
async def delete_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Forget a session and its uploaded document"""
    if not store.delete(session_id):
        raise SessionNotFoundError(session_id)
    return {"session_id": session_id, "deleted": True}


@app.get("/debug/{session_id}")
async def debug_session(session_id: str, service: ConversationService = Depends(get_conversation_service)):
    """Debug endpoint to see current session state"""
    session = service.get_session(session_id)
    return {
        "session_id": session_id,
        "filename": session.filename,
        "status": session.status,
        "fields": [field.model_dump() for field in session.fields],
        "filled_fields": session.filled_fields,
        "conversation_history_length": len(session.conversation_history),
        "progress": session.progress,
        "unfilled_fields": [f.placeholder for f in session.fields if f.id not in session.filled_fields],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
