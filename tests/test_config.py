from __future__ import annotations

from pathlib import Path

import pytest

from copilot.config import Settings
from copilot.storage import JSONDocumentStore


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "Cerebras")
    monkeypatch.setenv("MAX_AGENT_STEPS", "4")
    monkeypatch.setenv("NAVIGATION_TIMEOUT_S", "8.5")
    monkeypatch.setenv("TRACE_TURNS", "yes")
    monkeypatch.setenv("HEADLESS_DEFAULT", "0")
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "store"))

    settings = Settings.from_env()

    assert settings.llm_provider == "cerebras"
    assert settings.max_agent_steps == 4
    assert settings.navigation_timeout_s == 8.5
    assert settings.trace_turns is True
    assert settings.headless_default is False
    assert settings.skills_path == tmp_path / "store" / "skills.json"


def test_unknown_provider_falls_back_to_openai(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mystery")
    assert Settings.from_env().llm_provider == "openai"


def test_corrupt_document_falls_back_to_default(tmp_path: Path) -> None:
    path = tmp_path / "skills.json"
    path.write_text("{not json")
    store = JSONDocumentStore(path, {"skills": []})
    assert store.get() == {"skills": []}

    store.replace({"skills": [{"id": "a"}]})
    document = store.get()
    document["skills"].clear()
    assert JSONDocumentStore(path, {"skills": []}).get() == {"skills": [{"id": "a"}]}
    assert store.get() == {"skills": [{"id": "a"}]}
