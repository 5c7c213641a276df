"""
Document text extraction: native PDF text layer, rasterized-page OCR, and image OCR.

OCR is delegated to the multimodal model through gemini_service.
"""
import base64
import logging
from typing import Optional

import fitz  # PyMuPDF

from legalbrief import config
from legalbrief.models.schemas import (
    Document,
    ExtractionFailure,
    ExtractionResult,
    ExtractionStrategy,
    PageText,
)
from legalbrief.services import gemini_service, prompt_builder
from legalbrief.services.gemini_service import CallError


logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"

_DEFAULT_MESSAGES = {
    ExtractionFailure.CORRUPTED_OR_PROTECTED: (
        "Failed to extract text from PDF. The file may be corrupted or password-protected."
    ),
    ExtractionFailure.OCR_PIPELINE_FAILURE: (
        "Failed to extract text using OCR. Please try the standard PDF option."
    ),
    ExtractionFailure.IMAGE_OCR_FAILED: "Failed to extract text from image.",
    ExtractionFailure.UNSUPPORTED_MEDIA_KIND: "Invalid file type for this upload option.",
    ExtractionFailure.NO_TEXT_EXTRACTED: (
        "No text could be extracted from the file. The file may be empty or unreadable."
    ),
}


class ExtractionError(Exception):
    """Raised when a document cannot be turned into text."""

    def __init__(self, reason: ExtractionFailure, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or _DEFAULT_MESSAGES[reason])


def join_pages(pages: list[PageText]) -> str:
    """Concatenate page texts in order with blank-line separators. Failed pages count as empty."""
    return PAGE_SEPARATOR.join("" if p.failed else p.text for p in pages).strip()


def _open_pdf(content: bytes, failure: ExtractionFailure) -> fitz.Document:
    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        logger.error(f"Could not open PDF: {e}")
        raise ExtractionError(failure)

    if doc.needs_pass:
        doc.close()
        logger.error("PDF is password-protected")
        raise ExtractionError(failure)

    return doc


def _page_fragments(page: fitz.Page) -> list[str]:
    """Text-layer spans of a page in reading order."""
    fragments = []
    for block in page.get_text("dict")["blocks"]:
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                if span["text"]:
                    fragments.append(span["text"])
    return fragments


def extract_pdf_text(content: bytes) -> list[PageText]:
    """
    Extract the embedded text layer of a PDF, one entry per page (1-indexed).

    Raises:
        ExtractionError: corrupted_or_protected if the PDF cannot be parsed
    """
    doc = _open_pdf(content, ExtractionFailure.CORRUPTED_OR_PROTECTED)
    pages = []

    try:
        total_pages = len(doc)
        logger.info(f"Extracting text layer from {total_pages} pages")
        for page_num, page in enumerate(doc, start=1):
            pages.append(PageText(page_num=page_num, text=" ".join(_page_fragments(page))))
    except RuntimeError as e:
        logger.error(f"Text extraction failed: {e}")
        raise ExtractionError(ExtractionFailure.CORRUPTED_OR_PROTECTED)
    finally:
        doc.close()

    return pages


def render_page_png(page: fitz.Page, scale: float = config.OCR_RENDER_SCALE) -> bytes:
    """Render a page to PNG bytes at the given scale of its native size."""
    pixmap = page.get_pixmap(matrix=fitz.Matrix(scale, scale))
    return pixmap.tobytes("png")


def ocr_image(image_bytes: bytes, mime_type: str = "image/png", model: Optional[str] = None) -> str:
    """
    Send one image to the model for OCR, single attempt.

    Raises:
        CallError: If the call fails or returns no text
    """
    encoded = base64.b64encode(image_bytes).decode("ascii")
    request = prompt_builder.build_ocr_request(encoded, mime_type=mime_type)
    return gemini_service.call_model(request, "Image OCR", model=model, max_attempts=1)


def _ocr_page(page_num: int, png: bytes, model: Optional[str]) -> PageText:
    try:
        text = ocr_image(png, "image/png", model=model)
    except CallError as e:
        logger.warning(f"OCR failed for page {page_num}, continuing without it: {e}")
        return PageText(page_num=page_num, failed=True, error=str(e))
    return PageText(page_num=page_num, text=text)


def extract_pdf_ocr(content: bytes, model: Optional[str] = None) -> list[PageText]:
    """
    Rasterize every page and OCR it through the model.

    A page whose OCR call fails is kept as a failed entry and processing
    continues. A page that cannot be rendered aborts the whole run.

    Raises:
        ExtractionError: ocr_pipeline_failure if the PDF cannot be opened or rendered
    """
    doc = _open_pdf(content, ExtractionFailure.OCR_PIPELINE_FAILURE)
    pages = []

    try:
        total_pages = len(doc)
        logger.info(f"Processing {total_pages} pages with OCR")
        for page_num, page in enumerate(doc, start=1):
            try:
                png = render_page_png(page)
            except (RuntimeError, ValueError) as e:
                logger.error(f"Rendering page {page_num} failed: {e}")
                raise ExtractionError(ExtractionFailure.OCR_PIPELINE_FAILURE)
            pages.append(_ocr_page(page_num, png, model))
            logger.info(f"OCR page {page_num}/{total_pages} ({round(page_num / total_pages * 100)}%)")
    finally:
        doc.close()

    return pages


def extract_image(content: bytes, mime_type: str = "image/png", model: Optional[str] = None) -> PageText:
    """
    OCR a standalone image. Failures propagate since there is nothing to fall back to.

    Raises:
        ExtractionError: image_ocr_failed
    """
    try:
        text = ocr_image(content, mime_type or "image/png", model=model)
    except CallError as e:
        logger.error(f"Image OCR failed: {e}")
        raise ExtractionError(ExtractionFailure.IMAGE_OCR_FAILED, f"Failed to extract text from image: {e}")
    return PageText(page_num=1, text=text)


def extract(
    document: Document,
    strategy: ExtractionStrategy,
    model: Optional[str] = None,
) -> ExtractionResult:
    """
    Extract text from a document with the strategy the caller chose.

    Args:
        document: The uploaded document
        strategy: Extraction strategy; must match the document's media kind
        model: Model used for OCR and for the page-limit hint

    Returns:
        ExtractionResult with joined text and per-page results

    Raises:
        ExtractionError: If the media kind does not match or extraction fails
    """
    strategy = ExtractionStrategy(strategy)
    if document.media_kind != strategy.media_kind:
        raise ExtractionError(
            ExtractionFailure.UNSUPPORTED_MEDIA_KIND,
            f"Strategy {strategy.value} requires a {strategy.media_kind.value} file, "
            f"got {document.media_kind.value}",
        )

    logger.info(f"Extracting {document.file_name} as {strategy.value}")

    if strategy is ExtractionStrategy.PDF_TEXT:
        pages = extract_pdf_text(document.content)
    elif strategy is ExtractionStrategy.PDF_OCR:
        pages = extract_pdf_ocr(document.content, model=model)
    else:
        pages = [extract_image(document.content, document.mime_type, model=model)]

    text = join_pages(pages)
    page_count = len(pages)

    page_limit_exceeded = False
    max_pages = gemini_service.get_model_info(model).max_pages
    if page_count > max_pages:
        page_limit_exceeded = True
        logger.warning(
            f"{document.file_name} has {page_count} pages, above the {max_pages}-page hint "
            f"for {model or config.DEFAULT_MODEL}"
        )

    logger.info(f"Extracted {len(text)} characters from {document.file_name}")

    return ExtractionResult(
        text=text,
        strategy=strategy,
        page_count=page_count,
        pages=pages,
        page_limit_exceeded=page_limit_exceeded,
    )
