"""Models package for Legal Brief."""
from .schemas import (
    MediaKind,
    ExtractionStrategy,
    ExtractionFailure,
    SessionStatus,
    Role,
    Document,
    InlineImage,
    ModelRequest,
    PageText,
    ExtractionResult,
    ClassificationResult,
    ConversationTurn,
    ModelInfo,
    SessionSnapshot,
    AskRequest,
    SummaryResponse,
    AnswerResponse,
)

__all__ = [
    "MediaKind",
    "ExtractionStrategy",
    "ExtractionFailure",
    "SessionStatus",
    "Role",
    "Document",
    "InlineImage",
    "ModelRequest",
    "PageText",
    "ExtractionResult",
    "ClassificationResult",
    "ConversationTurn",
    "ModelInfo",
    "SessionSnapshot",
    "AskRequest",
    "SummaryResponse",
    "AnswerResponse",
]
