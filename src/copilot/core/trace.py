from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import orjson
from pydantic import BaseModel


@dataclass(slots=True)
class TraceRecorder:
    """Persist plans, completion checks, actions, and outcomes for a turn."""

    turn_id: str
    root_dir: Path

    def __post_init__(self) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def step_dir(self, index: int) -> Path:
        path = self.root_dir / f"step_{index:03d}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def _write(path: Path, payload: Any) -> Path:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
        path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2, default=str))
        return path

    def record_plan(self, plan: BaseModel | None) -> Path:
        return self._write(self.root_dir / "plan.json", plan)

    def record_check(self, index: int, check: BaseModel | None) -> Path:
        return self._write(self.step_dir(index) / "check.json", check)

    def record_action(self, index: int, action: BaseModel | dict[str, Any]) -> Path:
        return self._write(self.step_dir(index) / "action.json", action)

    def record_result(self, index: int, result: dict[str, Any]) -> Path:
        return self._write(self.step_dir(index) / "result.json", result)

    @staticmethod
    def new_turn_dir(base_dir: Path, turn_id: str) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        path = base_dir / f"turn_{turn_id}_{timestamp}"
        path.mkdir(parents=True, exist_ok=True)
        return path
