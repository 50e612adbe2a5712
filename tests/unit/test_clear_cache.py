"""Unit tests for the cache purge CLI (store mocked)."""

import importlib.util
import sys
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "clear_cache.py"


@pytest.fixture
def clear_cache():
    spec = importlib.util.spec_from_file_location("clear_cache", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def store(mocker, clear_cache):
    instance = mocker.MagicMock()
    mocker.patch.object(clear_cache, "KeyValueStore", return_value=instance)
    return instance


class TestClearCache:

    def test_empty_cache_still_disposes(self, clear_cache, store, monkeypatch):
        store.keys.return_value = []
        monkeypatch.setattr(sys, "argv", ["clear_cache.py"])

        clear_cache.main()

        store.dispose.assert_called_once()

    def test_declined_prompt_disposes_without_purging(self, clear_cache, store, mocker, monkeypatch):
        store.keys.return_value = ["cosmic_lens_cache_2024-01-15"]
        purge = mocker.patch.object(clear_cache, "purge_cache")
        monkeypatch.setattr(sys, "argv", ["clear_cache.py"])
        monkeypatch.setattr("builtins.input", lambda prompt: "n")

        clear_cache.main()

        purge.assert_not_called()
        store.dispose.assert_called_once()

    def test_force_purges(self, clear_cache, store, mocker, monkeypatch):
        store.keys.return_value = ["cosmic_lens_cache_2024-01-15"]
        purge = mocker.patch.object(clear_cache, "purge_cache", return_value=1)
        monkeypatch.setattr(sys, "argv", ["clear_cache.py", "--force", "--expired-only"])

        clear_cache.main()

        assert purge.call_args.args[0] is store
        assert purge.call_args.kwargs["expired_only"] is True
        store.dispose.assert_called_once()
