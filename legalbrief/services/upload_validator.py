"""
Upload validation: maps upload slots to extraction strategies and builds Documents.
"""
from typing import Optional

from legalbrief import config
from legalbrief.models.schemas import Document, ExtractionStrategy, MediaKind


class UploadValidationError(Exception):
    """Raised when an upload cannot be accepted."""
    pass


# Upload slot name -> extraction strategy
UPLOAD_MODES = {
    "pdf-text": ExtractionStrategy.PDF_TEXT,
    "pdf-ocr": ExtractionStrategy.PDF_OCR,
    "image": ExtractionStrategy.IMAGE_OCR,
}


def strategy_for_mode(mode: str) -> ExtractionStrategy:
    """
    Resolve the upload slot the user picked to an extraction strategy.

    Raises:
        UploadValidationError: If the slot is unknown
    """
    strategy = UPLOAD_MODES.get(mode)
    if strategy is None:
        raise UploadValidationError(
            f"Unknown upload type: {mode}. Supported: {', '.join(UPLOAD_MODES)}"
        )
    return strategy


def media_kind_for_mime(mime_type: Optional[str]) -> MediaKind:
    """
    Map a declared content type to a media kind. File bytes are not inspected.

    Raises:
        UploadValidationError: If the type is neither PDF nor an image
    """
    mime = (mime_type or "").lower()
    if mime == "application/pdf":
        return MediaKind.PDF
    if mime.startswith("image/"):
        return MediaKind.IMAGE
    raise UploadValidationError(
        f"Unsupported file type: {mime_type or 'unknown'}. Please upload PDF or Image."
    )


def validate_file_name(file_name: Optional[str]) -> str:
    """
    Validate an uploaded file name (no path components).

    Raises:
        UploadValidationError: If the name is empty or unsafe
    """
    if not file_name or not file_name.strip():
        raise UploadValidationError("Invalid file name: cannot be empty")

    if "/" in file_name or "\\" in file_name:
        raise UploadValidationError("Invalid file name: contains path separator")

    if ".." in file_name:
        raise UploadValidationError("Invalid file name: path traversal attempt")

    if file_name.startswith("."):
        raise UploadValidationError("Invalid file name: cannot start with '.'")

    return file_name.strip()


def build_document(file_name: Optional[str], content: bytes, mime_type: Optional[str]) -> Document:
    """
    Validate an upload and wrap it as an immutable Document.

    Args:
        file_name: Client-supplied file name
        content: Raw file bytes
        mime_type: Declared content type

    Returns:
        Document

    Raises:
        UploadValidationError: If any check fails
    """
    name = validate_file_name(file_name)
    media_kind = media_kind_for_mime(mime_type)

    if not content:
        raise UploadValidationError(f"File is empty: {name}")

    if len(content) > config.MAX_UPLOAD_BYTES:
        raise UploadValidationError(
            f"File too large: {len(content)} bytes (limit {config.MAX_UPLOAD_BYTES})"
        )

    return Document(
        file_name=name,
        content=content,
        media_kind=media_kind,
        mime_type=mime_type.lower(),
    )
