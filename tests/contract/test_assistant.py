"""Contract tests for the Gemini assistant (mocked SDK client)."""

from datetime import datetime
from types import SimpleNamespace

import pytest

from backend.agent.assistant import FALLBACK_EXPLANATION, AssistantError, CosmosAssistant
from backend.api.schemas import ChatMessage, DayRecord


class FakeChat:
    def __init__(self, fragments, fail_after=None):
        self.fragments = fragments
        self.fail_after = fail_after
        self.sent = []

    async def send_message_stream(self, message):
        self.sent.append(message)

        async def stream():
            for i, text in enumerate(self.fragments):
                if self.fail_after is not None and i == self.fail_after:
                    raise RuntimeError("stream reset")
                yield SimpleNamespace(text=text)

        return stream()


class FakeChats:
    def __init__(self, chat):
        self.chat = chat
        self.create_kwargs = None

    def create(self, model, config, history):
        self.create_kwargs = {"model": model, "config": config, "history": history}
        return self.chat


class FakeModels:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents):
        self.calls.append({"model": model, "contents": contents})
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


def make_client(models=None, chat=None):
    return SimpleNamespace(aio=SimpleNamespace(
        models=models or FakeModels(text="ok"),
        chats=FakeChats(chat or FakeChat([])),
    ))


@pytest.fixture
def record(sample_record_data):
    return DayRecord.model_validate(sample_record_data)


class TestExplain:

    @pytest.mark.asyncio
    async def test_returns_model_text(self, record):
        models = FakeModels(text="A stunning spiral.")
        assistant = CosmosAssistant(api_key="k", model="test-model", client=make_client(models=models))

        text = await assistant.explain(record, "Why is it blue?")

        assert text == "A stunning spiral."
        assert models.calls[0]["model"] == "test-model"
        assert "Why is it blue?" in models.calls[0]["contents"]
        assert record.title in models.calls[0]["contents"]

    @pytest.mark.asyncio
    async def test_empty_text_falls_back(self, record):
        assistant = CosmosAssistant(api_key="k", client=make_client(models=FakeModels(text=None)))
        assert await assistant.explain(record) == FALLBACK_EXPLANATION

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self, record):
        models = FakeModels(error=RuntimeError("401 API key not valid"))
        assistant = CosmosAssistant(api_key="k", client=make_client(models=models))

        with pytest.raises(AssistantError, match="API key not valid") as exc:
            await assistant.explain(record)
        assert isinstance(exc.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_missing_key_raises(self, record):
        assistant = CosmosAssistant(api_key="")
        assert not assistant.is_healthy()
        with pytest.raises(AssistantError, match="GEMINI_API_KEY"):
            await assistant.explain(record)


class TestStreamReply:

    @pytest.mark.asyncio
    async def test_fragments_in_order(self, record):
        chat = FakeChat(["It ", "is ", "the Andromeda galaxy."])
        assistant = CosmosAssistant(api_key="k", client=make_client(chat=chat))

        partials = []
        text = ""
        async for fragment in assistant.stream_reply([], "What galaxy is this?", record):
            text += fragment
            partials.append(text)

        assert text == "It is the Andromeda galaxy."
        assert partials == ["It ", "It is ", "It is the Andromeda galaxy."]
        assert chat.sent == ["What galaxy is this?"]

    @pytest.mark.asyncio
    async def test_empty_fragments_skipped(self, record):
        chat = FakeChat(["Hi", "", None, " there"])
        assistant = CosmosAssistant(api_key="k", client=make_client(chat=chat))

        fragments = [f async for f in assistant.stream_reply([], "hello", record)]
        assert fragments == ["Hi", " there"]

    @pytest.mark.asyncio
    async def test_session_seeded_with_record_and_history(self, record):
        client = make_client(chat=FakeChat(["ok"]))
        assistant = CosmosAssistant(api_key="k", model="test-model", client=client)
        history = [
            ChatMessage(id=1, role="user", text="What is this?", created_at=datetime.now()),
            ChatMessage(id=2, role="assistant", text="A galaxy.", created_at=datetime.now()),
        ]

        [f async for f in assistant.stream_reply(history, "How far?", record)]

        kwargs = client.aio.chats.create_kwargs
        assert kwargs["model"] == "test-model"
        assert record.title in str(kwargs["config"].system_instruction)
        assert record.explanation in str(kwargs["config"].system_instruction)
        assert [c.role for c in kwargs["history"]] == ["user", "model"]
        assert [c.parts[0].text for c in kwargs["history"]] == ["What is this?", "A galaxy."]

    @pytest.mark.asyncio
    async def test_mid_stream_failure_wrapped(self, record):
        chat = FakeChat(["It ", "is ", "lost"], fail_after=2)
        assistant = CosmosAssistant(api_key="k", client=make_client(chat=chat))

        received = []
        with pytest.raises(AssistantError, match="stream reset"):
            async for fragment in assistant.stream_reply([], "hi", record):
                received.append(fragment)
        assert received == ["It ", "is "]

    @pytest.mark.asyncio
    async def test_abandoned_stream_stops_quietly(self, record):
        chat = FakeChat(["a", "b", "c"])
        assistant = CosmosAssistant(api_key="k", client=make_client(chat=chat))

        stream = assistant.stream_reply([], "hi", record)
        first = await stream.__anext__()
        await stream.aclose()
        assert first == "a"
