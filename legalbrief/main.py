"""
FastAPI application for Legal Brief.
"""
import logging

from fastapi import FastAPI, UploadFile, File, HTTPException, Form
from fastapi.middleware.cors import CORSMiddleware

from legalbrief import config, __version__
from legalbrief.models.schemas import (
    AnswerResponse,
    AskRequest,
    ExtractionFailure,
    ModelInfo,
    SessionSnapshot,
    SummaryResponse,
)
from legalbrief.services import gemini_service, session_manager, upload_validator
from legalbrief.services.document_processor import ExtractionError
from legalbrief.services.gemini_service import CallError
from legalbrief.services.session_manager import SessionStateError, ValidationRejected
from legalbrief.services.upload_validator import UploadValidationError


logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

RATE_LIMIT_GUIDANCE = (
    "Rate Limit Exceeded: You've made too many requests to the Gemini API. "
    "Please try one of these solutions:\n\n"
    "1. Wait 1-2 minutes and try again\n"
    "2. Switch to a different model\n"
    "3. Check your API quota at Google AI Studio"
)

app = FastAPI(
    title="Legal Brief",
    description="Legal document summarization and Q&A",
    version=__version__,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

sessions = session_manager.SessionRegistry()


def _get_session(session_id: str) -> session_manager.DocumentSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return session


def _call_error_to_http(error: CallError) -> HTTPException:
    if error.rate_limited:
        return HTTPException(status_code=429, detail=f"{RATE_LIMIT_GUIDANCE}\n\n({error})")
    return HTTPException(status_code=502, detail=str(error))


# ============================================================================
# Root & Health
# ============================================================================

@app.get("/")
async def root():
    return {"message": "Legal Brief API", "docs": "/docs"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "api_key_configured": config.is_configured()}


@app.get("/models", response_model=list[ModelInfo])
async def list_models():
    """List available models with their page-limit hints."""
    return gemini_service.list_models()


# ============================================================================
# Sessions
# ============================================================================

@app.post("/sessions", response_model=SessionSnapshot)
async def create_session(model: str = Form(config.DEFAULT_MODEL)):
    """Start a new document session."""
    try:
        session = sessions.create(model)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.snapshot()


@app.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str):
    return _get_session(session_id).snapshot()


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """End a session and stop any pending retries."""
    try:
        sessions.delete(session_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"deleted": session_id}


# ============================================================================
# Pipeline
# ============================================================================

@app.post("/sessions/{session_id}/upload", response_model=SessionSnapshot)
def upload_document(session_id: str, mode: str = Form(...), file: UploadFile = File(...)):
    """Extract and validate a document using the chosen upload slot."""
    session = _get_session(session_id)

    try:
        strategy = upload_validator.strategy_for_mode(mode)
        document = upload_validator.build_document(
            file.filename,
            # One byte past the limit is enough for the size check to reject it
            file.file.read(config.MAX_UPLOAD_BYTES + 1),
            file.content_type,
        )
    except UploadValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        session.load_document(document, strategy)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ExtractionError as e:
        status_code = 400 if e.reason is ExtractionFailure.UNSUPPORTED_MEDIA_KIND else 422
        raise HTTPException(status_code=status_code, detail=str(e))

    return session.snapshot()


@app.post("/sessions/{session_id}/confirm", response_model=SessionSnapshot)
def confirm_document(session_id: str, proceed: bool = Form(...)):
    """Continue (or not) with a document that did not look like a legal document."""
    session = _get_session(session_id)

    try:
        session.confirm(proceed)
    except (ValidationRejected, SessionStateError) as e:
        raise HTTPException(status_code=409, detail=str(e))

    return session.snapshot()


@app.post("/sessions/{session_id}/summarize", response_model=SummaryResponse)
def summarize_document(session_id: str):
    """Generate the structured summary for the accepted document."""
    session = _get_session(session_id)

    try:
        summary = session.summarize()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CallError as e:
        raise _call_error_to_http(e)

    return SummaryResponse(
        session_id=session.session_id,
        summary=summary,
        classification=session.classification,
        character_count=len(session.document_text),
    )


@app.post("/sessions/{session_id}/ask", response_model=AnswerResponse)
def ask_question(session_id: str, request: AskRequest):
    """Answer a follow-up question about the summarized document."""
    session = _get_session(session_id)

    try:
        answer = session.ask(request.question)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CallError as e:
        raise _call_error_to_http(e)

    return AnswerResponse(
        session_id=session.session_id,
        answer=answer,
        turn_count=len(session.history),
    )


# ============================================================================
# Run with: uvicorn legalbrief.main:app --reload
# ============================================================================

if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
