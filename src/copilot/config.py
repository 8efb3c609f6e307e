from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

load_dotenv()


LLMProvider = Literal["openai", "anthropic", "cerebras"]


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(slots=True)
class Settings:
    """Application configuration loaded from environment variables."""

    llm_provider: LLMProvider = "openai"
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    cerebras_api_key: str | None = None
    llm_model: str | None = None
    max_agent_steps: int = 6
    navigation_timeout_s: float = 12.0
    action_settle_timeout_s: float = 9.0
    ready_timeout_s: float = 2.0
    url_poll_interval_s: float = 0.2
    post_navigation_delay_s: float = 0.3
    post_action_delay_s: float = 0.8
    schema_ttl_s: float = 120.0
    follow_up_ttl_s: float = 600.0
    data_dir: Path = Path("data")
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    runs_dir: Path = Path("runs")
    trace_turns: bool = False
    headless_default: bool = True
    start_url: str = "about:blank"

    @classmethod
    def from_env(cls) -> "Settings":
        llm_raw = os.getenv("LLM_PROVIDER", "openai").strip().lower()
        llm_provider: LLMProvider = (
            llm_raw if llm_raw in {"openai", "anthropic", "cerebras"} else "openai"  # type: ignore[assignment]
        )

        return cls(
            llm_provider=llm_provider,
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            cerebras_api_key=os.getenv("CEREBRAS_API_KEY"),
            llm_model=os.getenv("LLM_MODEL") or None,
            max_agent_steps=int(os.getenv("MAX_AGENT_STEPS", "6")),
            navigation_timeout_s=_float_env("NAVIGATION_TIMEOUT_S", 12.0),
            action_settle_timeout_s=_float_env("ACTION_SETTLE_TIMEOUT_S", 9.0),
            ready_timeout_s=_float_env("READY_TIMEOUT_S", 2.0),
            url_poll_interval_s=_float_env("URL_POLL_INTERVAL_S", 0.2),
            post_navigation_delay_s=_float_env("POST_NAVIGATION_DELAY_S", 0.3),
            post_action_delay_s=_float_env("POST_ACTION_DELAY_S", 0.8),
            schema_ttl_s=_float_env("SCHEMA_TTL_S", 120.0),
            follow_up_ttl_s=_float_env("FOLLOW_UP_TTL_S", 600.0),
            data_dir=Path(os.getenv("DATA_DIR", "data")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=Path(os.getenv("LOG_DIR", "logs")),
            runs_dir=Path(os.getenv("RUNS_DIR", "runs")),
            trace_turns=_bool_env("TRACE_TURNS", False),
            headless_default=_bool_env("HEADLESS_DEFAULT", True),
            start_url=os.getenv("START_URL", "about:blank"),
        )

    @property
    def skills_path(self) -> Path:
        return self.data_dir / "skills.json"

    @property
    def visits_path(self) -> Path:
        return self.data_dir / "visits.json"

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        if self.trace_turns:
            self.runs_dir.mkdir(parents=True, exist_ok=True)
