"""
Command-line harness: summarize a local document, then answer questions about it.

Usage:
    python -m legalbrief.cli judgment.pdf --mode pdf-text
    python -m legalbrief.cli scan.pdf --mode pdf-ocr --model gemini-1.5-pro -q "Who is the petitioner?"
    python -m legalbrief.cli photo.jpg --mode image --yes
"""
import argparse
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional

from legalbrief import config
from legalbrief.models.schemas import ClassificationResult
from legalbrief.services import upload_validator
from legalbrief.services.document_processor import ExtractionError
from legalbrief.services.gemini_service import CallError
from legalbrief.services.session_manager import DocumentSession, ValidationRejected
from legalbrief.services.upload_validator import UploadValidationError


def _ask_to_proceed(assume_yes: bool):
    def confirm(classification: ClassificationResult) -> bool:
        print(
            "Warning: This document may not be a legal document "
            f"(Confidence: {classification.confidence_percent:.1f}%)."
        )
        if assume_yes:
            return True
        reply = input("Do you want to proceed anyway? [y/N] ")
        return reply.strip().lower() in ("y", "yes")
    return confirm


def _read_questions(questions: Optional[list[str]]):
    if questions is not None:
        yield from (question for question in questions if question.strip())
        return

    print("\nAsk questions about the document (empty line to quit).")
    while True:
        try:
            line = input("> ")
        except EOFError:
            return
        if not line.strip():
            return
        yield line


def run(
    file_path: Path,
    mode: str,
    model: Optional[str] = None,
    assume_yes: bool = False,
    questions: Optional[list[str]] = None,
) -> int:
    """Run the pipeline for one file. Returns a process exit code."""
    mime_type, _ = mimetypes.guess_type(file_path.name)

    try:
        strategy = upload_validator.strategy_for_mode(mode)
        document = upload_validator.build_document(file_path.name, file_path.read_bytes(), mime_type)
        session = DocumentSession(model=model)
    except (UploadValidationError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 2

    print(f"Processing {document.file_name} as {mode} with {session.model}...")

    try:
        summary = session.process(document, strategy, confirm_non_legal=_ask_to_proceed(assume_yes))
    except (ExtractionError, ValidationRejected) as e:
        print(f"Error: {e}")
        return 1
    except CallError as e:
        print(f"Error generating summary: {e}")
        if e.rate_limited:
            print("Rate limited: wait 1-2 minutes or switch to a different model.")
        return 1

    snapshot = session.snapshot()
    if snapshot.failed_pages:
        print(f"Warning: OCR failed for pages {snapshot.failed_pages}")
    if snapshot.page_limit_exceeded:
        print(f"Warning: {snapshot.page_count} pages exceeds the hint for {session.model}")

    print("=" * 60)
    print(summary)
    print("=" * 60)

    for question in _read_questions(questions):
        try:
            answer = session.ask(question)
        except CallError as e:
            print(f"Sorry, I encountered an error: {e}")
            continue
        print(f"\n{answer}\n")

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Summarize a legal document and ask questions about it")
    parser.add_argument("file", type=Path, help="PDF or image file")
    parser.add_argument(
        "--mode",
        choices=sorted(upload_validator.UPLOAD_MODES),
        default="pdf-text",
        help="Extraction mode (upload slot)",
    )
    parser.add_argument("--model", default=config.DEFAULT_MODEL, choices=sorted(config.MODELS))
    parser.add_argument("--yes", "-y", action="store_true", help="Proceed even if validation fails")
    parser.add_argument("--question", "-q", action="append", help="Question to ask (repeatable)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format="%(levelname)s %(name)s: %(message)s",
    )

    return run(args.file, args.mode, args.model, args.yes, args.question)


if __name__ == "__main__":
    sys.exit(main())
