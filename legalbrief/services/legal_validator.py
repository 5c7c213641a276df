"""
Keyword heuristic that decides whether extracted text looks like a legal document.
"""
from legalbrief.models.schemas import ClassificationResult


LEGAL_KEYWORDS = (
    "plaintiff", "defendant", "petition", "court", "judge", "ipc", "section",
    "appellant", "respondent", "bail", "jurisdiction", "affidavit", "tribunal",
    "order", "judgment", "advocate", "counsel", "case", "law", "act", "crpc",
    "supreme court", "high court", "district court", "civil", "criminal",
)

# Distinct keywords required to pass, regardless of document length
LEGAL_KEYWORD_THRESHOLD = 5


def matched_keywords(text: str) -> list[str]:
    """Vocabulary entries that occur at least once as a substring (case-insensitive)."""
    lower_text = text.lower()
    return [keyword for keyword in LEGAL_KEYWORDS if keyword in lower_text]


def classify(text: str) -> ClassificationResult:
    """
    Score text against the legal vocabulary.

    The threshold is a fixed count of distinct keywords and does not
    scale with document length.

    Args:
        text: Extracted document text

    Returns:
        ClassificationResult with verdict and confidence in [0, 100]
    """
    if not text or not text.strip():
        return ClassificationResult(is_legal=False, confidence_percent=0.0)

    matches = matched_keywords(text)
    match_count = len(matches)
    confidence = min(match_count / len(LEGAL_KEYWORDS) * 100, 100.0)

    return ClassificationResult(
        is_legal=match_count >= LEGAL_KEYWORD_THRESHOLD,
        confidence_percent=confidence,
        match_count=match_count,
        matched_keywords=matches,
    )
