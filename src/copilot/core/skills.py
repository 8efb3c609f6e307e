from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

import orjson
from pydantic import ValidationError

from ..browser.tools import is_http_url
from ..storage import JSONDocumentStore
from ..types import ActionPlan, OpenUrlStep, PageActionsStep, SkillEntry, SkillStep

if TYPE_CHECKING:
    from .planner import Planner

logger = logging.getLogger(__name__)

MAX_SKILLS = 60
MAX_STEPS = 40
REFINE_EVERY = 5

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def signature_for(text: str) -> str:
    """Lower-cased, punctuation-stripped, whitespace-collapsed form of ``text``."""

    lowered = _NON_ALNUM.sub(" ", (text or "").lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def _step_key(step: SkillStep) -> bytes:
    return orjson.dumps(step.to_document(), option=orjson.OPT_SORT_KEYS)


def compact_steps(steps: list[SkillStep]) -> list[SkillStep]:
    """Drop non-http navigations and consecutive duplicates, then cap the length."""

    compacted: list[SkillStep] = []
    last_key: bytes | None = None
    for step in steps:
        if isinstance(step, OpenUrlStep) and not is_http_url(step.url):
            continue
        key = _step_key(step)
        if key == last_key:
            continue
        compacted.append(step)
        last_key = key
    return compacted[:MAX_STEPS]


class SkillMemory:
    """Persistent skill slots keyed by trigger signature."""

    def __init__(self, store: JSONDocumentStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self._skills: list[SkillEntry] = []
        self._load()

    def _load(self) -> None:
        skills: list[SkillEntry] = []
        for item in self._store.get().get("skills") or []:
            try:
                skills.append(SkillEntry.model_validate(item))
            except ValidationError:
                logger.warning("Dropping malformed skill record", exc_info=True)
        self._skills = skills

    def _save(self) -> None:
        self._store.replace({"skills": [skill.to_document() for skill in self._skills]})

    def __len__(self) -> int:
        return len(self._skills)

    def signature(self, text: str) -> str:
        return signature_for(text)

    def get(self, skill_id: str) -> SkillEntry | None:
        return next((skill for skill in self._skills if skill.id == skill_id), None)

    def find(self, text: str) -> SkillEntry | None:
        signature = signature_for(text)
        if not signature:
            return None
        return next((skill for skill in self._skills if skill.signature == signature), None)

    def list(self) -> list[SkillEntry]:
        return sorted(self._skills, key=lambda skill: skill.updated_at, reverse=True)

    def save(
        self,
        trigger: str,
        steps: list[SkillStep],
        *,
        signature: str | None = None,
        goal: str | None = None,
    ) -> SkillEntry | None:
        signature = signature or signature_for(trigger)
        if not signature:
            return None
        compacted = compact_steps(steps)
        if not compacted:
            return None

        now = self._clock()
        existing = next((skill for skill in self._skills if skill.signature == signature), None)
        if existing is not None:
            existing.trigger = trigger
            existing.goal = goal
            existing.steps = compacted
            existing.updated_at = max(existing.updated_at, now)
            existing.success_count += 1
            self._save()
            logger.info("Updated skill", extra={"skill_id": existing.id, "signature": signature})
            return existing

        created = SkillEntry(
            id=str(uuid.uuid4()),
            trigger=trigger,
            signature=signature,
            goal=goal,
            steps=compacted,
            created_at=now,
            updated_at=now,
            use_count=0,
            success_count=1,
        )
        self._skills = [created, *self._skills][:MAX_SKILLS]
        self._save()
        logger.info("Saved new skill", extra={"skill_id": created.id, "signature": signature, "steps": len(compacted)})
        return created

    def record_use(self, skill_id: str) -> None:
        skill = self.get(skill_id)
        if skill is None:
            return
        skill.use_count += 1
        skill.last_used_at = self._clock()
        self._save()

    def update(self, skill_id: str, **changes: Any) -> SkillEntry | None:
        skill = self.get(skill_id)
        if skill is None:
            return None
        changes.pop("id", None)
        merged = {**dict(skill), **changes, "updated_at": max(skill.updated_at, self._clock())}
        updated = SkillEntry.model_validate(merged)
        self._skills = [updated if item.id == skill_id else item for item in self._skills]
        self._save()
        return updated

    def delete(self, skill_id: str) -> bool:
        remaining = [skill for skill in self._skills if skill.id != skill_id]
        if len(remaining) == len(self._skills):
            return False
        self._skills = remaining
        self._save()
        return True


@dataclass(slots=True)
class SkillCapture:
    """In-flight record of the steps taken during one goal loop."""

    trigger: str
    signature: str
    goal: str | None = None
    steps: list[SkillStep] = field(default_factory=list)

    def record_navigation(self, url: str, in_new_tab: bool = False) -> None:
        if url and is_http_url(url):
            self.steps.append(OpenUrlStep(url=url, in_new_tab=in_new_tab))

    def record_plan(self, plan: ActionPlan) -> None:
        if plan.actions:
            self.steps.append(PageActionsStep(plan=plan))


class SkillRefiner:
    """Generalizes freshly saved skills in background tasks, one per skill id."""

    def __init__(self, memory: SkillMemory, planner: "Planner", every: int = REFINE_EVERY) -> None:
        self._memory = memory
        self._planner = planner
        self._every = every
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def maybe_refine(self, skill: SkillEntry) -> asyncio.Task[None] | None:
        if skill.refinement is not None:
            return None
        if len(self._memory) % self._every != 0:
            return None
        if skill.id in self._in_flight:
            return None
        self._in_flight.add(skill.id)
        task = asyncio.get_running_loop().create_task(self._refine(skill))
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    async def _refine(self, skill: SkillEntry) -> None:
        try:
            refinement = await self._planner.refine_skill(skill)
            if refinement is not None and self._memory.get(skill.id) is not None:
                self._memory.update(skill.id, refinement=refinement)
                logger.info("Refined skill", extra={"skill_id": skill.id})
        finally:
            self._in_flight.discard(skill.id)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Skill refinement failed", exc_info=exc)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
