"""Gemini-backed conversational client.

Wraps the google-genai SDK for two calls: a single-turn explanation of a
record and a streamed multi-turn chat reply. Any SDK or transport failure
surfaces as AssistantError; nothing is retried.
"""

from collections.abc import AsyncIterator, Sequence

import structlog
from google import genai
from google.genai import types

from backend.agent.prompts import build_chat_instruction, build_explain_prompt
from backend.api.schemas import ChatMessage, DayRecord

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
FALLBACK_EXPLANATION = "I couldn't generate an explanation at this time."


class AssistantError(Exception):
    """Conversational service failure (auth, quota, transport)."""
    pass


def _to_contents(history: Sequence[ChatMessage]) -> list[types.Content]:
    """Convert chat turns to Gemini contents, oldest first."""
    return [
        types.Content(
            role="model" if msg.role == "assistant" else "user",
            parts=[types.Part(text=msg.text)],
        )
        for msg in history
    ]


class CosmosAssistant:
    """Answers questions about an APOD record."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, client=None):
        """Initialize the assistant.

        Args:
            api_key: Google AI API key.
            model: Gemini model identifier.
            client: Pre-built genai.Client. Created lazily from api_key if omitted.
        """
        self.api_key = api_key
        self.model = model
        self._client = client

    def is_healthy(self) -> bool:
        """True if a key or client is configured."""
        return bool(self.api_key) or self._client is not None

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise AssistantError("GEMINI_API_KEY environment variable is not set.")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def explain(self, record: DayRecord, question: str | None = None) -> str:
        """One-shot explanation of a record.

        Args:
            record: The record to explain.
            question: Optional user question; defaults to a short summary request.

        Returns:
            Model text, or a fallback sentence when the model returns nothing.

        Raises:
            AssistantError: If the key is missing or the API call fails.
        """
        client = self._get_client()
        prompt = build_explain_prompt(record, question)

        try:
            response = await client.aio.models.generate_content(model=self.model, contents=prompt)
        except Exception as e:
            logger.error("assistant.explain_failed", date=record.date, error=str(e))
            raise AssistantError(f"Gemini API Error: {e}") from e

        logger.debug("assistant.explain_ok", date=record.date, model=self.model)
        return response.text or FALLBACK_EXPLANATION

    async def stream_reply(
        self,
        history: Sequence[ChatMessage],
        new_message: str,
        record: DayRecord,
    ) -> AsyncIterator[str]:
        """Stream the reply to new_message as text fragments, in arrival order.

        Args:
            history: Prior turns, oldest first.
            new_message: The user's new message.
            record: Record whose title and explanation seed the system instruction.

        Yields:
            Non-empty text fragments. Concatenated they form the full reply.

        Raises:
            AssistantError: If the key is missing, the session cannot be
                created, or the stream fails part way.
        """
        client = self._get_client()
        config = types.GenerateContentConfig(system_instruction=build_chat_instruction(record))

        logger.info("assistant.stream_start", date=record.date, turns=len(history))
        fragments = 0
        try:
            chat = client.aio.chats.create(model=self.model, config=config, history=_to_contents(history))
            stream = await chat.send_message_stream(new_message)
            async for chunk in stream:
                if chunk.text:
                    fragments += 1
                    yield chunk.text
        except Exception as e:
            logger.error("assistant.stream_failed", date=record.date, fragments=fragments, error=str(e))
            raise AssistantError(f"Gemini API Error: {e}") from e

        logger.info("assistant.stream_done", date=record.date, fragments=fragments)
