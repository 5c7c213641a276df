"""
Pydantic models for Legal Brief.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class MediaKind(str, Enum):
    """Declared kind of an uploaded document."""
    PDF = "pdf"
    IMAGE = "image"


class ExtractionStrategy(str, Enum):
    """How a document's bytes are turned into text. Chosen by the caller."""
    PDF_TEXT = "pdf_text"  # Native text layer
    PDF_OCR = "pdf_ocr"  # Rasterize each page, OCR through the model
    IMAGE_OCR = "image_ocr"  # Single image, OCR through the model

    @property
    def media_kind(self) -> MediaKind:
        if self is ExtractionStrategy.IMAGE_OCR:
            return MediaKind.IMAGE
        return MediaKind.PDF


class ExtractionFailure(str, Enum):
    """Reasons an extraction can fail."""
    CORRUPTED_OR_PROTECTED = "corrupted_or_protected"
    OCR_PIPELINE_FAILURE = "ocr_pipeline_failure"
    IMAGE_OCR_FAILED = "image_ocr_failed"
    UNSUPPORTED_MEDIA_KIND = "unsupported_media_kind"
    NO_TEXT_EXTRACTED = "no_text_extracted"


class SessionStatus(str, Enum):
    """Pipeline state of a document session."""
    IDLE = "idle"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    AWAITING_ACCEPTANCE = "awaiting_acceptance"
    SUMMARIZING = "summarizing"
    READY = "ready"
    ASKING_QUESTION = "asking_question"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Document(BaseModel):
    """An uploaded file. Immutable once selected."""
    model_config = ConfigDict(frozen=True)

    file_name: str
    content: bytes
    media_kind: MediaKind
    mime_type: str = ""


class InlineImage(BaseModel):
    """Base64 image payload for a multimodal request."""
    model_config = ConfigDict(frozen=True)

    mime_type: str = "image/png"
    data: str  # base64, no data-URL prefix


class ModelRequest(BaseModel):
    """A single generateContent request. Built fresh per call."""
    model_config = ConfigDict(frozen=True)

    prompt_text: str
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    image: Optional[InlineImage] = None

    def to_payload(self) -> dict:
        """Render the JSON body expected by the Gemini REST API."""
        parts: list[dict] = [{"text": self.prompt_text}]
        if self.image is not None:
            parts.append({
                "inline_data": {
                    "mime_type": self.image.mime_type,
                    "data": self.image.data,
                }
            })

        payload: dict = {"contents": [{"parts": parts}]}

        generation_config = {}
        if self.temperature is not None:
            generation_config["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            generation_config["maxOutputTokens"] = self.max_output_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        return payload


class PageText(BaseModel):
    """Text for one page (or one image), tagged with whether OCR failed."""
    page_num: int
    text: str = ""
    failed: bool = False
    error: Optional[str] = None


class ExtractionResult(BaseModel):
    """Output of the text extractor."""
    text: str
    strategy: ExtractionStrategy
    page_count: int = 0
    pages: list[PageText] = Field(default_factory=list)
    page_limit_exceeded: bool = False

    @property
    def failed_pages(self) -> list[int]:
        return [p.page_num for p in self.pages if p.failed]


class ClassificationResult(BaseModel):
    """Verdict of the legal keyword heuristic."""
    is_legal: bool
    confidence_percent: float = Field(ge=0, le=100)
    match_count: int = 0
    matched_keywords: list[str] = Field(default_factory=list)


class ConversationTurn(BaseModel):
    """One message in a document conversation."""
    role: Role
    content: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ModelInfo(BaseModel):
    """A model offered to the user, with its page-limit hint."""
    model_id: str
    name: str
    endpoint: str
    max_pages: int
    daily_limit: int
    description: str = ""


class SessionSnapshot(BaseModel):
    """Read-only view of a document session."""
    session_id: str
    state: SessionStatus
    model: str
    file_name: Optional[str] = None
    strategy: Optional[ExtractionStrategy] = None
    classification: Optional[ClassificationResult] = None
    summary: Optional[str] = None
    history: list[ConversationTurn] = Field(default_factory=list)
    character_count: int = 0
    page_count: int = 0
    failed_pages: list[int] = Field(default_factory=list)
    page_limit_exceeded: bool = False
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class AskRequest(BaseModel):
    """Request body for the question endpoint."""
    question: str


class SummaryResponse(BaseModel):
    """Response from the summarize endpoint."""
    session_id: str
    summary: str
    classification: Optional[ClassificationResult] = None
    character_count: int = 0


class AnswerResponse(BaseModel):
    """Response from the question endpoint."""
    session_id: str
    answer: str
    turn_count: int = 0
