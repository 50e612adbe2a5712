"""Pydantic models for the API layer.

DayRecord mirrors the APOD provider JSON (field aliases keep the provider's
names on the wire). CacheEntry is the value stored per cached date.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DayRecord(BaseModel):
    """One day's published APOD item."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="Publication date, YYYY-MM-DD")
    title: str
    explanation: str
    media_type: Literal["image", "video"]
    url: str
    hd_url: str | None = Field(None, alias="hdurl")
    attribution: str | None = Field(None, alias="copyright")
    service_version: str = ""

    @property
    def display_url(self) -> str:
        """HD variant for images when available, otherwise the primary URL."""
        if self.media_type == "image" and self.hd_url:
            return self.hd_url
        return self.url

    def to_wire(self) -> dict:
        """Provider-shaped dict, only the fields the provider actually sent."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class CacheEntry(BaseModel):
    """Cached DayRecord plus the epoch second it was written."""
    stored_at: float
    payload: DayRecord

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_unset=True)


class ChatMessage(BaseModel):
    """Single turn in a conversation."""
    id: int
    role: Literal["user", "assistant"]
    text: str
    created_at: datetime


class ExplainRequest(BaseModel):
    """Ask the assistant about a record."""
    session_id: str | None = None
    record: DayRecord
    question: str | None = Field(None, max_length=2000)


class ExplainResponse(BaseModel):
    date: str
    text: str


class ChatStreamRequest(BaseModel):
    """Multi-turn chat message with the record under discussion."""
    session_id: str = Field(..., min_length=1, description="UUID4 session identifier")
    record: DayRecord
    history: list[ChatMessage] = Field(default_factory=list)
    message: str = Field(..., min_length=1, max_length=2000, description="User question")


class SettingsUpdate(BaseModel):
    """Partial settings update. Empty nasa_api_key clears the stored key."""
    nasa_api_key: str | None = Field(None, max_length=200)
    theme: Literal["dark", "light"] | None = None


class SettingsResponse(BaseModel):
    """Effective settings. The key itself is never returned."""
    nasa_api_key_set: bool
    using_demo_key: bool
    nasa_api_key_hint: str | None = None
    assistant_configured: bool
    theme: Literal["dark", "light"]
