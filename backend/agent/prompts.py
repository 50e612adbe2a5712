"""Prompt templates for the Cosmos astronomy assistant."""

from backend.api.schemas import DayRecord

DEFAULT_QUESTION = (
    "Please give me a concise, engaging summary of why this image is significant, "
    "suitable for a general audience. Keep it under 100 words."
)

EXPLAIN_PROMPT_TEMPLATE = """You are an expert AI Astronomer called "Cosmos".
You are explaining the NASA Astronomy Picture of the Day (APOD) to a curious user.

Title: {title}
Date: {date}
Official Explanation: {explanation}
Media Type: {media_type}

User's Question: {question}"""

CHAT_SYSTEM_TEMPLATE = """You are Cosmos, a friendly expert astronomer.
You are currently discussing this APOD image: "{title}".
Context from NASA: {explanation}
Answer the user's questions about space, astronomy, or this specific image. Be concise and educational."""


def build_explain_prompt(record: DayRecord, question: str | None = None) -> str:
    """Single-turn prompt with the record embedded.

    Args:
        record: The APOD record being discussed.
        question: User question. Blank or None asks for a short summary.

    Returns:
        Formatted prompt string.
    """
    return EXPLAIN_PROMPT_TEMPLATE.format(
        title=record.title,
        date=record.date,
        explanation=record.explanation,
        media_type=record.media_type,
        question=(question or "").strip() or DEFAULT_QUESTION,
    )


def build_chat_instruction(record: DayRecord) -> str:
    """System instruction seeding a chat session about one record."""
    return CHAT_SYSTEM_TEMPLATE.format(title=record.title, explanation=record.explanation)
