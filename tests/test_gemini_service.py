import threading

import pytest
import requests

from conftest import FakeResponse, answer_body
from legalbrief import config
from legalbrief.models.schemas import InlineImage, ModelRequest
from legalbrief.services import gemini_service
from legalbrief.services.gemini_service import CallError, FailureKind


REQUEST = ModelRequest(prompt_text="Summarize this", temperature=0.3, max_output_tokens=2048)


def test_rate_limited_every_attempt_backs_off_and_fails(fake_http):
    http = fake_http([FakeResponse(429, text="Resource exhausted")])
    delays = []

    with pytest.raises(CallError) as exc_info:
        gemini_service.call_model(
            REQUEST,
            "Summary Generation",
            max_attempts=3,
            base_delay_ms=3000,
            sleep=delays.append,
        )

    assert delays == [3.0, 6.0]
    assert len(http.calls) == 3
    error = exc_info.value
    assert error.attempts == 3
    assert error.rate_limited is True
    assert "Summary Generation" in str(error)
    assert "429" in error.last_error_message


def test_transient_failures_then_success(fake_http):
    http = fake_http([
        FakeResponse(500, text="Internal error"),
        FakeResponse(200, body={"candidates": []}),
        FakeResponse(200, body=answer_body("Final summary")),
        FakeResponse(200, body=answer_body("never sent")),
    ])
    delays = []

    result = gemini_service.call_model(
        REQUEST, "Summary Generation", max_attempts=3, base_delay_ms=1000, sleep=delays.append
    )

    assert result == "Final summary"
    assert len(http.calls) == 3
    assert delays == [1.0, 2.0]


def test_mixed_failures_use_the_same_backoff(fake_http):
    fake_http([
        FakeResponse(429),
        FakeResponse(503, text="unavailable"),
        FakeResponse(429),
        FakeResponse(200, body=answer_body("ok")),
    ])
    delays = []

    result = gemini_service.call_model(
        REQUEST, "Question Answering", max_attempts=4, base_delay_ms=500, sleep=delays.append
    )

    assert result == "ok"
    assert delays == [0.5, 1.0, 2.0]


def test_last_error_message_is_reported(fake_http):
    fake_http([FakeResponse(429), FakeResponse(400, text="Invalid argument")])

    with pytest.raises(CallError) as exc_info:
        gemini_service.call_model(REQUEST, "Summary Generation", max_attempts=2, sleep=lambda s: None)

    error = exc_info.value
    assert error.rate_limited is False
    assert "API error 400: Invalid argument" in error.last_error_message
    assert str(error).startswith("Summary Generation failed after 2 attempts")


def test_request_shape(fake_http):
    http = fake_http([FakeResponse(200, body=answer_body("done"))])

    gemini_service.call_model(REQUEST, "Summary Generation", model="gemini-1.5-pro")

    call = http.calls[0]
    assert call["url"] == f"{config.GEMINI_API_BASE_URL}/gemini-1.5-pro:generateContent"
    assert call["params"] == {"key": "test-key"}
    assert call["json"] == {
        "contents": [{"parts": [{"text": "Summarize this"}]}],
        "generationConfig": {"temperature": 0.3, "maxOutputTokens": 2048},
    }


def test_transport_errors_are_retried(fake_http):
    http = fake_http([
        requests.ConnectionError("connection reset"),
        FakeResponse(200, body=answer_body("recovered")),
    ])

    result = gemini_service.call_model(REQUEST, "Summary Generation", sleep=lambda s: None)

    assert result == "recovered"
    assert len(http.calls) == 2


def test_invalid_json_body_is_transient(fake_http):
    http = fake_http([
        FakeResponse(200, body=None, text="<html>"),
        FakeResponse(200, body=answer_body("fine")),
    ])

    assert gemini_service.call_model(REQUEST, sleep=lambda s: None) == "fine"
    assert len(http.calls) == 2


def test_missing_api_key_fails_without_sending(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    sent = []
    monkeypatch.setattr(gemini_service, "_get_http_session", lambda: sent.append(1))

    with pytest.raises(CallError) as exc_info:
        gemini_service.call_model(REQUEST, "Summary Generation")

    assert exc_info.value.attempts == 0
    assert "GEMINI_API_KEY" in str(exc_info.value)
    assert sent == []


def test_invalid_url_is_fatal(fake_http):
    http = fake_http([requests.exceptions.MissingSchema("No scheme supplied")])
    delays = []

    with pytest.raises(CallError) as exc_info:
        gemini_service.call_model(REQUEST, max_attempts=3, sleep=delays.append)

    assert exc_info.value.attempts == 1
    assert len(http.calls) == 1
    assert delays == []


def test_cancelled_call_stops_issuing_attempts(fake_http):
    http = fake_http([FakeResponse(500, text="boom")])
    cancel = threading.Event()

    def sleep_then_cancel(seconds):
        cancel.set()

    with pytest.raises(CallError) as exc_info:
        gemini_service.call_model(
            REQUEST, "Summary Generation", max_attempts=3, sleep=sleep_then_cancel, cancel_event=cancel
        )

    assert len(http.calls) == 1
    assert exc_info.value.attempts == 1
    assert "cancelled" in exc_info.value.last_error_message


def test_unknown_model_fails(api_key):
    with pytest.raises(CallError) as exc_info:
        gemini_service.call_model(REQUEST, "Summary Generation", model="gpt-5")
    assert "Unknown model" in str(exc_info.value)


def test_max_attempts_must_be_positive(api_key):
    with pytest.raises(ValueError):
        gemini_service.call_model(REQUEST, max_attempts=0)


@pytest.mark.parametrize("attempt,expected", [(1, 3000), (2, 6000), (3, 12000)])
def test_backoff_delay(attempt, expected):
    assert gemini_service.backoff_delay_ms(attempt, 3000) == expected


def test_classify_failure():
    assert gemini_service.classify_failure(gemini_service.AttemptFailed("x", 429)) is FailureKind.RATE_LIMITED
    assert gemini_service.classify_failure(gemini_service.AttemptFailed("x", 500)) is FailureKind.TRANSIENT
    assert gemini_service.classify_failure(requests.Timeout()) is FailureKind.TRANSIENT
    assert gemini_service.classify_failure(requests.exceptions.InvalidURL()) is FailureKind.FATAL


@pytest.mark.parametrize("body", [
    {},
    {"candidates": []},
    {"candidates": [{"content": {"parts": []}}]},
    {"candidates": [{"content": {"parts": [{"text": ""}]}}]},
    {"candidates": [{"finishReason": "SAFETY"}]},
    [],
])
def test_extract_answer_text_missing(body):
    assert gemini_service.extract_answer_text(body) is None


def test_multimodal_payload():
    request = ModelRequest(prompt_text="Extract", image=InlineImage(mime_type="image/jpeg", data="QUJD"))

    assert request.to_payload() == {
        "contents": [{
            "parts": [
                {"text": "Extract"},
                {"inline_data": {"mime_type": "image/jpeg", "data": "QUJD"}},
            ]
        }]
    }


def test_model_catalogue():
    models = {m.model_id: m for m in gemini_service.list_models()}
    assert set(models) == set(config.MODELS)
    assert models["gemini-2.0-flash"].max_pages == 10
    assert gemini_service.get_model_info().model_id == config.DEFAULT_MODEL
