"""Shared fixtures for all tests."""

import pytest

from backend.core.kv_store import KeyValueStore


class FakeClock:
    """Controllable epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_record(day: str, **overrides) -> dict:
    """Provider-shaped APOD JSON object."""
    data = {
        "copyright": "Jane Astro",
        "date": day,
        "explanation": f"A spiral galaxy photographed on {day}.",
        "hdurl": f"https://apod.nasa.gov/apod/image/{day}_hd.jpg",
        "media_type": "image",
        "service_version": "v1",
        "title": f"Galaxy of {day}",
        "url": f"https://apod.nasa.gov/apod/image/{day}.jpg",
    }
    data.update(overrides)
    return data


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store() -> KeyValueStore:
    """Fresh in-memory store per test."""
    store = KeyValueStore("sqlite:///:memory:")
    yield store
    store.dispose()


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def sample_record_data() -> dict:
    return make_record("2024-01-15")


@pytest.fixture
def video_record_data() -> dict:
    return {
        "date": "2024-01-16",
        "explanation": "A time-lapse of the aurora.",
        "media_type": "video",
        "service_version": "v1",
        "title": "Aurora Dance",
        "url": "https://www.youtube.com/embed/abc123",
    }
