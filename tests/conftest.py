from typing import Any, Optional

import fitz
import pytest

from legalbrief import config
from legalbrief.models.schemas import Document, MediaKind
from legalbrief.services import gemini_service


LEGAL_TEXT_LINES = [
    "IN THE HIGH COURT OF DELHI",
    "Criminal Petition No. 123/2020",
    "The petitioner, through counsel, seeks bail",
    "under Section 439 CrPC. The respondent opposes.",
    "Judgment: the order under appeal is set aside.",
]
LEGAL_TEXT = "\n".join(LEGAL_TEXT_LINES)

# Only "judge" and "bail" are vocabulary entries
NON_LEGAL_TEXT = "Weather report: the judge was seen near the bail office."


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else ("" if body is None else str(body))

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeHTTPSession:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, responses: list):
        self._responses = list(responses)
        self.calls: list[dict] = []

    def post(self, url, params=None, json=None, timeout=None):
        self.calls.append({"url": url, "params": params, "json": json, "timeout": timeout})
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def answer_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_pdf(pages: list[str]) -> bytes:
    """Build a PDF in memory with one text block per page (empty string = blank page)."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


def make_document(content: bytes, media_kind: MediaKind = MediaKind.PDF, file_name: str = "judgment.pdf") -> Document:
    mime_type = "application/pdf" if media_kind is MediaKind.PDF else "image/png"
    return Document(file_name=file_name, content=content, media_kind=media_kind, mime_type=mime_type)


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "test-key")
    return "test-key"


@pytest.fixture
def fake_http(monkeypatch, api_key):
    """Install a FakeHTTPSession; call with the list of responses to serve."""
    def install(responses: list) -> FakeHTTPSession:
        session = FakeHTTPSession(responses)
        monkeypatch.setattr(gemini_service, "_get_http_session", lambda: session)
        return session
    return install
