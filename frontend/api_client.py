"""HTTP client for the Cosmic Lens backend, used by the Streamlit app."""

import json
import os
from collections.abc import Iterable, Iterator

import requests

API_URL = os.environ.get("API_URL", "http://localhost:8000")


class ApiError(Exception):
    """Backend call failed. message is safe to show to the user."""

    def __init__(self, message: str, status_code: int | None = None, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.hint = hint


def iter_sse_events(lines: Iterable[bytes | str]) -> Iterator[dict]:
    """Decode `data: {...}` lines of a server-sent event stream.

    Blank lines, comments and undecodable payloads are skipped.
    """
    for line in lines:
        if not line:
            continue
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        if not line.startswith("data: "):
            continue
        try:
            yield json.loads(line[6:])
        except json.JSONDecodeError:
            continue


def _raise_for_status(resp: requests.Response) -> None:
    if resp.ok:
        return
    try:
        detail = resp.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    if not isinstance(detail, str):
        detail = f"Server error ({resp.status_code}). Please try again."
    raise ApiError(detail, status_code=resp.status_code)


class CosmicLensClient:
    """Thin wrapper over the backend endpoints."""

    def __init__(self, base_url: str = API_URL, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get(self, path: str, **params):
        try:
            resp = requests.get(f"{self.base_url}{path}", params=params or None, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(f"Cannot connect to the backend: {e}") from e
        _raise_for_status(resp)
        return resp.json()

    def get_apod(self, day: str) -> dict:
        return self._get("/apod", date=day)

    def get_range(self, start_date: str, end_date: str) -> list[dict]:
        return self._get("/apod/range", start_date=start_date, end_date=end_date)

    def get_random(self, count: int = 5) -> list[dict]:
        return self._get("/apod/random", count=count)

    def get_settings(self) -> dict:
        return self._get("/settings")

    def health(self) -> dict:
        return self._get("/health")

    def save_settings(self, nasa_api_key: str | None = None, theme: str | None = None) -> dict:
        """Persist settings. A blank key leaves the stored key untouched; see clear_nasa_key()."""
        payload = {}
        if nasa_api_key and nasa_api_key.strip():
            payload["nasa_api_key"] = nasa_api_key.strip()
        if theme is not None:
            payload["theme"] = theme
        return self._put_settings(payload)

    def clear_nasa_key(self) -> dict:
        """Remove the stored key so the backend falls back to NASA_API_KEY / DEMO_KEY."""
        return self._put_settings({"nasa_api_key": ""})

    def _put_settings(self, payload: dict) -> dict:
        try:
            resp = requests.put(f"{self.base_url}/settings", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(f"Cannot connect to the backend: {e}") from e
        _raise_for_status(resp)
        return resp.json()

    def explain(self, record: dict, session_id: str, question: str | None = None) -> str:
        try:
            resp = requests.post(
                f"{self.base_url}/explain",
                json={"record": record, "question": question, "session_id": session_id},
                timeout=60,
            )
        except requests.RequestException as e:
            raise ApiError(f"Cannot connect to the backend: {e}") from e
        _raise_for_status(resp)
        return resp.json()["text"]

    def stream_chat(self, session_id: str, record: dict, history: list[dict], message: str) -> Iterator[str]:
        """Yield reply fragments in arrival order.

        Raises:
            ApiError: On HTTP failure or an `error` event from the assistant.
        """
        try:
            resp = requests.post(
                f"{self.base_url}/chat/stream",
                json={
                    "session_id": session_id,
                    "record": record,
                    "history": history,
                    "message": message,
                },
                timeout=60,
                stream=True,
            )
        except requests.RequestException as e:
            raise ApiError(f"Cannot connect to the backend: {e}") from e

        with resp:
            _raise_for_status(resp)
            for event in iter_sse_events(resp.iter_lines()):
                event_type = event.get("type")
                if event_type == "fragment":
                    yield event.get("content", "")
                elif event_type == "error":
                    raise ApiError(
                        event.get("content", "Failed to connect to Cosmos."),
                        hint=event.get("hint"),
                    )
                elif event_type == "done":
                    return
