"""Legal Brief: legal document summarization and Q&A over Gemini."""

__version__ = "0.1.0"
