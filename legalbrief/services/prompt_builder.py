"""
Prompt assembly for summarization, follow-up questions and OCR.
"""
from legalbrief import config
from legalbrief.models.schemas import ConversationTurn, InlineImage, ModelRequest, Role


SUMMARY_SYSTEM_PROMPT = """You are a Legal Document Analyzer for Indian courts.

Structure summaries with these sections:
## Document Overview
- Type, Court, Case Number, Date

## Parties Involved
- Petitioner/Appellant vs Respondent/Defendant

## Key Legal Provisions
- IPC/CrPC sections, Acts cited

## Issues Framed
- Main legal questions

## Court's Reasoning
- Analysis of each issue

## Final Order
- Judgment outcome

## Precedents
- Case law citations

Use Indian legal terminology. Format in Markdown."""

SUMMARY_INSTRUCTION = "Summarize the following legal document:"

FOLLOWUP_SYSTEM_PROMPT = (
    "You are a legal expert assistant. Answer questions about the provided legal "
    "document accurately and concisely. Use Indian legal terminology."
)

OCR_INSTRUCTION = "Extract all text from this image. Preserve formatting and structure."

_ROLE_LABELS = {
    Role.USER: "User",
    Role.ASSISTANT: "Assistant",
}


def build_summary_prompt(document_text: str) -> str:
    """Build the summarization prompt. The document is never truncated here."""
    return f"{SUMMARY_SYSTEM_PROMPT}\n\n{SUMMARY_INSTRUCTION}\n\n{document_text}"


def render_history(history: list[ConversationTurn]) -> str:
    """Render turns as "<Role>: <content>" lines in insertion order."""
    return "".join(
        f"{_ROLE_LABELS[Role(turn.role)]}: {turn.content}\n" for turn in history
    )


def build_followup_prompt(
    document_text: str,
    history: list[ConversationTurn],
    question: str,
) -> str:
    """
    Build the prompt for a follow-up question.

    The prompt ends with an open "Assistant:" marker so the model
    completes the turn.

    Args:
        document_text: Full extracted text of the document
        history: Turns to include, oldest first
        question: The new question

    Returns:
        Prompt text
    """
    prompt = f"{FOLLOWUP_SYSTEM_PROMPT}\n\nDocument:\n{document_text}\n\n"

    if history:
        prompt += "Previous conversation:\n"
        prompt += render_history(history)

    prompt += f"\nUser: {question}\nAssistant:"
    return prompt


def build_summary_request(document_text: str) -> ModelRequest:
    return ModelRequest(
        prompt_text=build_summary_prompt(document_text),
        temperature=config.SUMMARY_TEMPERATURE,
        max_output_tokens=config.SUMMARY_MAX_OUTPUT_TOKENS,
    )


def build_followup_request(
    document_text: str,
    history: list[ConversationTurn],
    question: str,
) -> ModelRequest:
    return ModelRequest(
        prompt_text=build_followup_prompt(document_text, history, question),
        temperature=config.ANSWER_TEMPERATURE,
        max_output_tokens=config.ANSWER_MAX_OUTPUT_TOKENS,
    )


def build_ocr_request(image_base64: str, mime_type: str = "image/png") -> ModelRequest:
    """Multimodal OCR request. No generation config is sent."""
    return ModelRequest(
        prompt_text=OCR_INSTRUCTION,
        image=InlineImage(mime_type=mime_type, data=image_base64),
    )
