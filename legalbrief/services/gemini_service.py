"""
Gemini API caller with bounded retries and exponential backoff.

Every attempt goes through one loop. A failed attempt is classified as
rate limited (HTTP 429), transient (any other failure) or fatal
(misconfiguration), and the wait before the next attempt is always
base_delay_ms * 2^(attempt - 1), whatever the failure kind.
"""
import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

import requests

from legalbrief import config
from legalbrief.models.schemas import ModelInfo, ModelRequest


logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when the API cannot be called with the current settings."""
    pass


class CallError(Exception):
    """Raised when a model call fails after all attempts."""

    def __init__(
        self,
        operation_label: str,
        attempts: int,
        last_error_message: str,
        rate_limited: bool = False,
    ):
        self.operation_label = operation_label
        self.attempts = attempts
        self.last_error_message = last_error_message
        self.rate_limited = rate_limited
        super().__init__(
            f"{operation_label} failed after {attempts} attempts: {last_error_message}"
        )


class AttemptFailed(Exception):
    """A single attempt did not produce usable answer text."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"


_FATAL_ERRORS = (
    ConfigurationError,
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
)

_http_session: Optional[requests.Session] = None


def _get_http_session() -> requests.Session:
    """Get or create the shared HTTP session."""
    global _http_session
    if _http_session is None:
        _http_session = requests.Session()
        _http_session.headers.update({"Content-Type": "application/json"})
    return _http_session


def list_models() -> list[ModelInfo]:
    """Return the configured model catalogue."""
    return [
        ModelInfo(model_id=model_id, **settings)
        for model_id, settings in config.MODELS.items()
    ]


def get_model_info(model: Optional[str] = None) -> ModelInfo:
    """
    Look up a model in the catalogue.

    Args:
        model: Model identifier, defaults to config.DEFAULT_MODEL

    Returns:
        ModelInfo for the model

    Raises:
        ValueError: If the model is not in the catalogue
    """
    model_id = model or config.DEFAULT_MODEL
    settings = config.MODELS.get(model_id)
    if settings is None:
        raise ValueError(
            f"Unknown model: {model_id}. Available: {', '.join(config.MODELS)}"
        )
    return ModelInfo(model_id=model_id, **settings)


def backoff_delay_ms(attempt: int, base_delay_ms: int) -> int:
    """Delay to wait after a failed attempt (1-indexed) before the next one."""
    return base_delay_ms * 2 ** (attempt - 1)


def classify_failure(error: Exception) -> FailureKind:
    """Decide how the attempt loop treats a failed attempt."""
    if isinstance(error, AttemptFailed) and error.status_code == 429:
        return FailureKind.RATE_LIMITED
    if isinstance(error, _FATAL_ERRORS):
        return FailureKind.FATAL
    return FailureKind.TRANSIENT


def extract_answer_text(body: dict) -> Optional[str]:
    """Pull candidates[0].content.parts[0].text out of a response body."""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text:
        return None
    return text


def _build_url(model: Optional[str]) -> str:
    if not config.is_configured():
        raise ConfigurationError("GEMINI_API_KEY not set in environment")
    info = get_model_info(model)
    return f"{config.GEMINI_API_BASE_URL}/{info.endpoint}"


def _send_once(session: requests.Session, url: str, request: ModelRequest) -> str:
    response = session.post(
        url,
        params={"key": config.GEMINI_API_KEY},
        json=request.to_payload(),
        timeout=config.MODEL_REQUEST_TIMEOUT,
    )

    if response.status_code == 429:
        raise AttemptFailed("API error 429: rate limit exceeded", status_code=429)

    if not response.ok:
        raise AttemptFailed(
            f"API error {response.status_code}: {response.text}",
            status_code=response.status_code,
        )

    try:
        body = response.json()
    except ValueError:
        raise AttemptFailed("Response body is not valid JSON", status_code=response.status_code)

    text = extract_answer_text(body)
    if not text:
        raise AttemptFailed("No response text from API", status_code=response.status_code)

    return text


def call_model(
    request: ModelRequest,
    operation_label: str = "API Call",
    model: Optional[str] = None,
    max_attempts: Optional[int] = None,
    base_delay_ms: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """
    Send a request to the model, retrying failed attempts.

    Args:
        request: The request to send (unchanged across attempts)
        operation_label: Name used in logs and in the final error
        model: Model identifier, defaults to config.DEFAULT_MODEL
        max_attempts: Attempts before giving up, defaults to config.MAX_RETRIES
        base_delay_ms: Backoff base, defaults to config.BASE_DELAY_MS
        sleep: Called with the backoff delay in seconds
        cancel_event: When set, no further attempts are issued

    Returns:
        The answer text of the first successful attempt

    Raises:
        CallError: If every attempt failed, a fatal error occurred, or the
            call was cancelled
    """
    if max_attempts is None:
        max_attempts = config.MAX_RETRIES
    if base_delay_ms is None:
        base_delay_ms = config.BASE_DELAY_MS
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    try:
        url = _build_url(model)
    except (ConfigurationError, ValueError) as e:
        logger.error(f"{operation_label} cannot be sent: {e}")
        raise CallError(operation_label, 0, str(e))

    session = _get_http_session()
    last_error: Optional[Exception] = None
    rate_limited = False
    attempts_made = 0

    for attempt in range(1, max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"{operation_label} cancelled before attempt {attempt}")
            reason = f"cancelled ({last_error})" if last_error else "cancelled"
            raise CallError(operation_label, attempts_made, reason, rate_limited)

        attempts_made = attempt
        logger.info(f"{operation_label} - Attempt {attempt}/{max_attempts}")

        try:
            text = _send_once(session, url, request)
        except (AttemptFailed, requests.RequestException) as e:
            last_error = e
            kind = classify_failure(e)
            rate_limited = kind is FailureKind.RATE_LIMITED

            if kind is FailureKind.FATAL:
                logger.error(f"{operation_label} attempt {attempt} failed permanently: {e}")
                break

            if rate_limited:
                logger.warning(f"{operation_label} rate limited on attempt {attempt}")
            else:
                logger.warning(f"{operation_label} attempt {attempt} failed: {e}")

            if attempt < max_attempts:
                delay = backoff_delay_ms(attempt, base_delay_ms)
                logger.info(f"Retrying {operation_label} in {delay / 1000:.1f}s...")
                sleep(delay / 1000)
            continue

        logger.info(f"{operation_label} successful")
        return text

    message = str(last_error) if last_error else "Unknown error occurred"
    raise CallError(operation_label, attempts_made, message, rate_limited)
