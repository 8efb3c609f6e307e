from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import orjson

from ..types import PageContent, SkillEntry
from .base import LLMClient
from .prompts import (
    ANSWER_PROMPT,
    BROWSING_PLAN_PROMPT,
    GOAL_CHECK_PROMPT,
    GOAL_PLAN_PROMPT,
    PAGE_ACTIONS_PROMPT,
    SKILL_REFINE_PROMPT,
)

logger = logging.getLogger(__name__)

PAGE_CONTENT_LIMIT = 60_000
BROWSING_SCHEMA_LIMIT = 30_000
SCHEMA_LIMIT = 60_000
FREQUENT_SITES_LIMIT = 20_000
NOTES_LIMIT = 8_000


@dataclass(slots=True)
class BrowsingContext:
    """Everything the browsing planner sees besides the request itself."""

    current_url: str
    current_title: str
    goal: str
    step_index: int
    plan_steps: list[str] = field(default_factory=list)
    success_criteria: list[str] = field(default_factory=list)
    last_action_summary: str = ""
    memory_summary: str = ""
    frequent_sites: list[dict[str, Any]] = field(default_factory=list)
    page_schema: str | None = None
    context_notes: str | None = None


def _bullets(items: list[str] | None, *, numbered: bool = False) -> str:
    if not items:
        return ""
    if numbered:
        return "\n".join(f"{idx}. {item}" for idx, item in enumerate(items, start=1))
    return "\n".join(f"- {item}" for item in items)


def _join_sections(*sections: str) -> str:
    return "\n\n".join(section for section in sections if section)


class Oracle:
    """Text operations of the planning model; every call returns the raw reply."""

    def __init__(self, client: LLMClient) -> None:
        self._client = client

    async def _ask(self, operation: str, system: str, message: str, *, json_mode: bool = True) -> str:
        logger.debug("Oracle request", extra={"operation": operation, "chars": len(message)})
        raw = await self._client.complete(
            system,
            [{"role": "user", "content": message}],
            json_mode=json_mode,
            max_tokens=2048 if json_mode else 4096,
        )
        logger.debug("Oracle response", extra={"operation": operation, "raw": raw[:2000]})
        return raw

    async def plan_goal(self, request: str) -> str:
        return await self._ask("plan_goal", GOAL_PLAN_PROMPT, f"User request:\n{request}")

    async def check_goal_completion(
        self,
        goal: str,
        request: str,
        page: PageContent,
        plan_steps: list[str] | None = None,
        success_criteria: list[str] | None = None,
        last_action_summary: str | None = None,
    ) -> str:
        message = _join_sections(
            f"Goal:\n{goal}",
            f"User request:\n{request}",
            f"Plan steps:\n{_bullets(plan_steps, numbered=True)}" if plan_steps else "",
            f"Success criteria:\n{_bullets(success_criteria)}" if success_criteria else "",
            f"Last action:\n{last_action_summary}" if last_action_summary else "",
            f"Current page:\n- Title: {page.title or 'Untitled'}\n- URL: {page.url}",
            f"Page content:\n{page.content[:PAGE_CONTENT_LIMIT]}",
        )
        return await self._ask("check_goal_completion", GOAL_CHECK_PROMPT, message)

    async def plan_browsing_action(self, request: str, context: BrowsingContext) -> str:
        sites = [
            {**site, "recentUrls": list(site.get("recentUrls", []))[:4]}
            for site in context.frequent_sites[:10]
        ]
        message = _join_sections(
            f"User request:\n{request}",
            f"Goal:\n{context.goal}",
            f"Plan steps:\n{_bullets(context.plan_steps, numbered=True)}" if context.plan_steps else "",
            f"Success criteria:\n{_bullets(context.success_criteria)}" if context.success_criteria else "",
            f"Current step: {context.step_index}",
            f"Last action:\n{context.last_action_summary}" if context.last_action_summary else "",
            f"Current page:\n- Title: {context.current_title}\n- URL: {context.current_url}",
            f"Frequent sites (JSON):\n{orjson.dumps(sites).decode()[:FREQUENT_SITES_LIMIT]}" if sites else "",
            f"Frequent sites summary:\n{context.memory_summary}" if context.memory_summary else "",
            f"Page schema (JSON):\n{context.page_schema[:BROWSING_SCHEMA_LIMIT]}" if context.page_schema else "",
            f"User context notes:\n{context.context_notes[:NOTES_LIMIT]}" if context.context_notes else "",
        )
        return await self._ask("plan_browsing_action", BROWSING_PLAN_PROMPT, message)

    async def plan_page_actions(self, request: str, schema: str) -> str:
        message = f"User request:\n{request}\n\nPage schema JSON:\n{schema[:SCHEMA_LIMIT]}"
        return await self._ask("plan_page_actions", PAGE_ACTIONS_PROMPT, message)

    async def refine_skill(self, entry: SkillEntry) -> str:
        payload = entry.model_dump(mode="json", by_alias=True, exclude={"refinement"}, exclude_none=True)
        message = f"Recorded skill (JSON):\n{orjson.dumps(payload).decode()}"
        return await self._ask("refine_skill", SKILL_REFINE_PROMPT, message)

    async def answer(
        self,
        request: str,
        page: PageContent,
        schema: str | None = None,
        snapshot: str | None = None,
        context_notes: str | None = None,
    ) -> str:
        message = _join_sections(
            f"Question: {request}",
            f"Page: {page.title or 'Untitled'}",
            f"Content:\n{page.content[:PAGE_CONTENT_LIMIT]}",
            f"Page Schema (JSON):\n{schema[:SCHEMA_LIMIT]}" if schema else "",
            f"DOM Snapshot (truncated):\n{snapshot[:SCHEMA_LIMIT]}" if snapshot else "",
            f"User Context Notes:\n{context_notes[:NOTES_LIMIT]}" if context_notes else "",
        )
        return await self._ask("answer", ANSWER_PROMPT, message, json_mode=False)
