"""
Document session orchestration.

A DocumentSession walks one document through extraction, classification,
acceptance and summarization, then answers follow-up questions against the
extracted text. All cross-call state (text, summary, history) lives on the
session object.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from legalbrief import config
from legalbrief.models.schemas import (
    ClassificationResult,
    ConversationTurn,
    Document,
    ExtractionFailure,
    ExtractionResult,
    ExtractionStrategy,
    Role,
    SessionSnapshot,
    SessionStatus,
)
from legalbrief.services import document_processor, gemini_service, legal_validator, prompt_builder
from legalbrief.services.document_processor import ExtractionError
from legalbrief.services.gemini_service import CallError


logger = logging.getLogger(__name__)


class SessionStateError(Exception):
    """Raised when an operation is not allowed in the session's current state."""
    pass


class ValidationRejected(Exception):
    """Raised when the user declines to continue with a document that failed validation."""

    def __init__(self, classification: ClassificationResult):
        self.classification = classification
        super().__init__(
            "Document validation failed. Please upload a legal document "
            f"(Confidence: {classification.confidence_percent:.1f}%)."
        )


class DocumentSession:
    """State machine for one document and its conversation."""

    def __init__(
        self,
        model: Optional[str] = None,
        session_id: Optional[str] = None,
        max_history_turns: Optional[int] = None,
    ):
        self.session_id = session_id or uuid4().hex
        self.model = gemini_service.get_model_info(model).model_id
        self.max_history_turns = (
            config.MAX_HISTORY_TURNS if max_history_turns is None else max_history_turns
        )
        if self.max_history_turns < 0:
            raise ValueError(
                f"max_history_turns must be 0 (unbounded) or positive, got {self.max_history_turns}"
            )
        self.cancel_event = threading.Event()
        self._lock = threading.Lock()
        self.created_at = datetime.utcnow()
        self._clear()

    def _clear(self) -> None:
        self.state = SessionStatus.IDLE
        self.document: Optional[Document] = None
        self.file_name: Optional[str] = None
        self.strategy: Optional[ExtractionStrategy] = None
        self.extraction: Optional[ExtractionResult] = None
        self.classification: Optional[ClassificationResult] = None
        self.accepted = False
        self.document_text = ""
        self.summary: Optional[str] = None
        self.history: list[ConversationTurn] = []
        self.last_error: Optional[str] = None
        self.updated_at = datetime.utcnow()

    def _reset(self, error: Optional[str] = None) -> None:
        """Return to idle, dropping the document, text and history."""
        self._clear()
        self.last_error = error

    def _set_state(self, state: SessionStatus) -> None:
        logger.debug(f"Session {self.session_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.updated_at = datetime.utcnow()

    @contextmanager
    def _exclusive(self):
        # One outstanding operation per session
        if not self._lock.acquire(blocking=False):
            raise SessionStateError("Session is busy with another request")
        try:
            yield
        finally:
            self._lock.release()

    def _require(self, *states: SessionStatus) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionStateError(
                f"Operation not allowed in state '{self.state.value}' (expected: {allowed})"
            )

    def load_document(self, document: Document, strategy: ExtractionStrategy) -> ClassificationResult:
        """
        Extract and classify a newly selected document.

        Selecting a document discards whatever the session held before.
        Legal-looking documents are accepted immediately; others wait for
        confirm().

        Returns:
            The classification of the extracted text

        Raises:
            ExtractionError: If extraction fails or yields no text (session goes idle)
        """
        with self._exclusive():
            self._reset()
            self.document = document
            self.file_name = document.file_name
            self.strategy = ExtractionStrategy(strategy)
            self._set_state(SessionStatus.EXTRACTING)

            try:
                result = document_processor.extract(document, self.strategy, model=self.model)
                if not result.text.strip():
                    raise ExtractionError(ExtractionFailure.NO_TEXT_EXTRACTED)
            except ExtractionError as e:
                logger.error(f"Extraction failed for {document.file_name}: {e}")
                self._reset(str(e))
                raise

            self.extraction = result
            self._set_state(SessionStatus.CLASSIFYING)

            classification = legal_validator.classify(result.text)
            self.classification = classification
            self.accepted = classification.is_legal
            self._set_state(SessionStatus.AWAITING_ACCEPTANCE)

            if classification.is_legal:
                logger.info(
                    f"Document validated (Confidence: {classification.confidence_percent:.1f}%)"
                )
            else:
                logger.warning(
                    f"{document.file_name} may not be a legal document "
                    f"(Confidence: {classification.confidence_percent:.1f}%), awaiting confirmation"
                )

            return classification

    def confirm(self, proceed: bool) -> None:
        """
        Record the user's decision about a document that failed validation.

        Raises:
            ValidationRejected: If proceed is False (session goes idle)
        """
        with self._exclusive():
            self._require(SessionStatus.AWAITING_ACCEPTANCE)

            if proceed:
                self.accepted = True
                self.updated_at = datetime.utcnow()
                return

            classification = self.classification
            rejection = ValidationRejected(classification)
            logger.info(f"Session {self.session_id}: document rejected by user")
            self._reset(str(rejection))
            raise rejection

    def summarize(self) -> str:
        """
        Generate the summary for the accepted document.

        On success the session is ready for questions and the history is
        empty. On failure the session goes idle with nothing retained.

        Raises:
            SessionStateError: If no accepted document is waiting
            CallError: If the model call fails
        """
        with self._exclusive():
            self._require(SessionStatus.AWAITING_ACCEPTANCE)
            if not self.accepted:
                raise SessionStateError(
                    "Document did not pass legal validation; confirm to proceed first"
                )

            text = self.extraction.text
            self._set_state(SessionStatus.SUMMARIZING)
            self.cancel_event.clear()

            request = prompt_builder.build_summary_request(text)
            try:
                summary = gemini_service.call_model(
                    request,
                    "Summary Generation",
                    model=self.model,
                    cancel_event=self.cancel_event,
                )
            except CallError as e:
                logger.error(f"Summarization failed: {e}")
                self._reset(str(e))
                raise

            # The raw upload is not needed once the text is summarized
            self.document = None
            self.document_text = text
            self.summary = summary
            self.history = []
            self._set_state(SessionStatus.READY)
            logger.info(f"Summary generated ({len(summary)} characters)")
            return summary

    def history_for_prompt(self) -> list[ConversationTurn]:
        """Turns sent with the next question: the most recent max_history_turns, or all if 0."""
        if self.max_history_turns and len(self.history) > self.max_history_turns:
            return self.history[-self.max_history_turns:]
        return list(self.history)

    def ask(self, question: str) -> str:
        """
        Answer a follow-up question about the summarized document.

        The user turn is recorded before the call; the assistant turn only
        after a successful one. A failed call leaves the user turn in the
        history and the session ready.

        Raises:
            ValueError: If the question is empty
            SessionStateError: If the session has no summarized document
            CallError: If the model call fails
        """
        question = (question or "").strip()
        if not question:
            raise ValueError("Question cannot be empty")

        with self._exclusive():
            self._require(SessionStatus.READY)

            prior_turns = self.history_for_prompt()
            self.history.append(ConversationTurn(role=Role.USER, content=question))
            self._set_state(SessionStatus.ASKING_QUESTION)
            self.cancel_event.clear()

            request = prompt_builder.build_followup_request(self.document_text, prior_turns, question)
            try:
                answer = gemini_service.call_model(
                    request,
                    "Question Answering",
                    model=self.model,
                    cancel_event=self.cancel_event,
                )
            except CallError as e:
                logger.error(f"Question answering failed: {e}")
                self.last_error = str(e)
                self._set_state(SessionStatus.READY)
                raise

            self.history.append(ConversationTurn(role=Role.ASSISTANT, content=answer))
            self.last_error = None
            self._set_state(SessionStatus.READY)
            return answer

    def process(
        self,
        document: Document,
        strategy: ExtractionStrategy,
        confirm_non_legal: Optional[Callable[[ClassificationResult], bool]] = None,
    ) -> str:
        """
        Run the whole pipeline: extract, classify, confirm if needed, summarize.

        Args:
            document: The selected document
            strategy: Extraction strategy for the upload slot
            confirm_non_legal: Asked whether to continue when validation fails;
                without it such documents are rejected

        Returns:
            The summary

        Raises:
            ExtractionError, ValidationRejected, CallError
        """
        classification = self.load_document(document, strategy)
        if not classification.is_legal:
            proceed = bool(confirm_non_legal and confirm_non_legal(classification))
            self.confirm(proceed)
        return self.summarize()

    def cancel(self) -> None:
        """Stop issuing further attempts for the in-flight call, if any."""
        self.cancel_event.set()

    def snapshot(self) -> SessionSnapshot:
        extraction = self.extraction
        return SessionSnapshot(
            session_id=self.session_id,
            state=self.state,
            model=self.model,
            file_name=self.file_name,
            strategy=self.strategy,
            classification=self.classification,
            summary=self.summary,
            history=list(self.history),
            character_count=len(extraction.text) if extraction else 0,
            page_count=extraction.page_count if extraction else 0,
            failed_pages=extraction.failed_pages if extraction else [],
            page_limit_exceeded=extraction.page_limit_exceeded if extraction else False,
            last_error=self.last_error,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class SessionRegistry:
    """
    In-memory store of active sessions, keyed by session id.

    Sessions idle for longer than idle_ttl_seconds are evicted, and creating
    a session beyond max_sessions evicts the least recently updated one.
    Either limit is disabled when 0.
    """

    def __init__(
        self,
        max_sessions: Optional[int] = None,
        idle_ttl_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._sessions: dict[str, DocumentSession] = {}
        self._lock = threading.Lock()
        self.max_sessions = config.MAX_SESSIONS if max_sessions is None else max_sessions
        self.idle_ttl_seconds = (
            config.SESSION_IDLE_TTL_SECONDS if idle_ttl_seconds is None else idle_ttl_seconds
        )
        self._clock = clock

    def _evict_locked(self, reserve: int = 0) -> list[DocumentSession]:
        evicted = []
        if self.idle_ttl_seconds > 0:
            cutoff = self._clock() - timedelta(seconds=self.idle_ttl_seconds)
            for session_id, session in list(self._sessions.items()):
                if session.updated_at < cutoff:
                    evicted.append(self._sessions.pop(session_id))

        if self.max_sessions > 0:
            while self._sessions and len(self._sessions) + reserve > self.max_sessions:
                oldest = min(self._sessions.values(), key=lambda s: s.updated_at)
                evicted.append(self._sessions.pop(oldest.session_id))

        return evicted

    def _discard(self, evicted: list[DocumentSession]) -> None:
        for session in evicted:
            session.cancel()
            logger.info(f"Evicted session {session.session_id} (last update {session.updated_at.isoformat()})")

    def create(self, model: Optional[str] = None) -> DocumentSession:
        session = DocumentSession(model=model)
        with self._lock:
            evicted = self._evict_locked(reserve=1)
            self._sessions[session.session_id] = session
        self._discard(evicted)
        logger.info(f"Created session {session.session_id} ({session.model})")
        return session

    def get(self, session_id: str) -> Optional[DocumentSession]:
        with self._lock:
            evicted = self._evict_locked()
            session = self._sessions.get(session_id)
        self._discard(evicted)
        return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise ValueError(f"Session not found: {session_id}")
        session.cancel()
        logger.info(f"Deleted session {session_id}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
