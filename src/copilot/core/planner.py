from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

from ..errors import LLMError
from ..llm.oracle import BrowsingContext, Oracle
from ..types import (
    PAGE_ACTION_TYPES,
    ActionPlan,
    ChatBrowsingPlan,
    CreateSiteAction,
    GoalCheck,
    GoalPlan,
    OpenUrlAction,
    PageAction,
    PageActionsAction,
    PageContent,
    SearchAction,
    SkillEntry,
    SkillRefinement,
    SkillTreeNode,
    SuggestSitesAction,
    extract_json_payload,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NODE_TYPES = {"navigate", "action", "decision", "note"}
_CREATION_TYPES = {"webpage", "app", "game"}


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _scalar(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _payload(raw: Any) -> dict[str, Any] | None:
    parsed = extract_json_payload(raw) if isinstance(raw, str) else raw
    return parsed if isinstance(parsed, dict) else None


def parse_action_plan(raw: Any) -> ActionPlan | None:
    parsed = _payload(raw)
    if parsed is None:
        return None
    actions: list[PageAction] = []
    for item in parsed.get("actions") if isinstance(parsed.get("actions"), list) else []:
        if not isinstance(item, dict) or item.get("type") not in PAGE_ACTION_TYPES:
            continue
        actions.append(
            PageAction(
                type=item["type"],
                selector=_scalar(item.get("selector")),
                text=_scalar(item.get("text")),
                value=_scalar(item.get("value")),
                key=_scalar(item.get("key")),
                by=_number(item.get("by")),
                to=_number(item.get("to")),
            )
        )
    return ActionPlan(actions=actions, notes=_text(parsed.get("notes")))


def parse_chat_browsing_plan(raw: Any) -> ChatBrowsingPlan | None:
    parsed = _payload(raw)
    if parsed is None:
        return None
    actions: list[Any] = []
    for item in parsed.get("actions") if isinstance(parsed.get("actions"), list) else []:
        if not isinstance(item, dict):
            continue
        kind = item.get("type")
        if kind == "open_url" and isinstance(item.get("url"), str):
            actions.append(OpenUrlAction(url=item["url"], in_new_tab=bool(item.get("inNewTab"))))
        elif kind == "search" and isinstance(item.get("query"), str):
            actions.append(SearchAction(query=item["query"]))
        elif kind == "suggest_sites" and isinstance(item.get("suggestions"), list):
            suggestions = [entry for entry in item["suggestions"] if isinstance(entry, str)]
            if suggestions:
                actions.append(SuggestSitesAction(suggestions=suggestions))
        elif kind == "create_site" and isinstance(item.get("prompt"), str):
            creation_type = item.get("creationType")
            actions.append(
                CreateSiteAction(
                    prompt=item["prompt"],
                    creation_type=creation_type if creation_type in _CREATION_TYPES else None,
                )
            )
        elif kind == "page_actions" and isinstance(item.get("plan"), dict):
            plan = parse_action_plan(item["plan"])
            if plan is not None and plan.actions:
                actions.append(PageActionsAction(plan=plan))
    response = parsed.get("response")
    return ChatBrowsingPlan(
        response=response if isinstance(response, str) else None,
        actions=actions,
        notes=parsed.get("notes") if isinstance(parsed.get("notes"), str) else None,
    )


def parse_goal_plan(raw: Any) -> GoalPlan | None:
    parsed = _payload(raw)
    if parsed is None:
        return None
    goal = _text(parsed.get("goal")) or ""
    steps = _strings(parsed.get("steps"))
    if not goal and not steps:
        return None
    return GoalPlan(
        goal=goal,
        steps=steps,
        success_criteria=_strings(parsed.get("successCriteria")) or None,
        questions=_strings(parsed.get("questions")) or None,
    )


def parse_goal_check(raw: Any) -> GoalCheck | None:
    parsed = _payload(raw)
    if parsed is None:
        return None
    return GoalCheck(
        completed=bool(parsed.get("completed")),
        response=_text(parsed.get("response")),
        needs_user_input=bool(parsed.get("needsUserInput")) or None,
        question=_text(parsed.get("question")),
        evidence=_text(parsed.get("evidence")),
        confidence=_number(parsed.get("confidence")),
    )


def _parse_tree(value: Any) -> list[SkillTreeNode]:
    nodes: list[SkillTreeNode] = []
    for node in value if isinstance(value, list) else []:
        if not isinstance(node, dict):
            continue
        node_id, label = node.get("id"), node.get("label")
        if not isinstance(node_id, str) or not isinstance(label, str):
            continue
        if not node_id or not label.strip():
            continue
        parent_id = node.get("parentId")
        nodes.append(
            SkillTreeNode(
                id=node_id,
                parent_id=parent_id if isinstance(parent_id, str) else None,
                type=node.get("type") if node.get("type") in _NODE_TYPES else "action",
                label=label.strip(),
                url=node.get("url") if isinstance(node.get("url"), str) else None,
                selector=node.get("selector") if isinstance(node.get("selector"), str) else None,
                notes=node.get("notes") if isinstance(node.get("notes"), str) else None,
            )
        )
    return nodes


def parse_skill_refinement(raw: Any, now: float | None = None) -> SkillRefinement | None:
    parsed = _payload(raw)
    if parsed is None:
        return None
    trigger = _text(parsed.get("generalizedTrigger")) or ""
    algorithm = _strings(parsed.get("algorithm"))
    tree = _parse_tree(parsed.get("tree"))
    if not trigger and not algorithm and not tree:
        return None
    return SkillRefinement(
        generalized_trigger=trigger,
        generalized_goal=_text(parsed.get("generalizedGoal")),
        algorithm=algorithm,
        example=_text(parsed.get("example")),
        tree=tree or None,
        reusable_subpaths=_strings(parsed.get("reusableSubpaths")) or None,
        notes=_text(parsed.get("notes")),
        confidence=_number(parsed.get("confidence")),
        refined_at=time.time() if now is None else now,
    )


class Planner:
    """Oracle calls turned into parsed models; ``None`` means no usable result."""

    def __init__(self, oracle: Oracle) -> None:
        self._oracle = oracle

    async def _call(
        self,
        operation: str,
        request: Callable[[], Awaitable[str]],
        parser: Callable[[str], T | None],
    ) -> T | None:
        try:
            raw = await request()
        except LLMError:
            logger.warning("Oracle call %s failed", operation, exc_info=True)
            return None
        result = parser(raw)
        if result is None:
            logger.info("Oracle returned no usable %s result", operation)
        return result

    async def plan_goal(self, request: str) -> GoalPlan | None:
        return await self._call("plan_goal", lambda: self._oracle.plan_goal(request), parse_goal_plan)

    async def check_goal(
        self,
        goal: str,
        request: str,
        page: PageContent,
        plan: GoalPlan | None,
        last_action_summary: str = "",
    ) -> GoalCheck | None:
        return await self._call(
            "check_goal_completion",
            lambda: self._oracle.check_goal_completion(
                goal,
                request,
                page,
                plan_steps=plan.steps if plan else None,
                success_criteria=plan.success_criteria if plan else None,
                last_action_summary=last_action_summary or None,
            ),
            parse_goal_check,
        )

    async def plan_browsing(self, request: str, context: BrowsingContext) -> ChatBrowsingPlan | None:
        return await self._call(
            "plan_browsing_action",
            lambda: self._oracle.plan_browsing_action(request, context),
            parse_chat_browsing_plan,
        )

    async def plan_page_actions(self, request: str, schema: str) -> ActionPlan | None:
        return await self._call(
            "plan_page_actions",
            lambda: self._oracle.plan_page_actions(request, schema),
            parse_action_plan,
        )

    async def refine_skill(self, entry: SkillEntry) -> SkillRefinement | None:
        return await self._call("refine_skill", lambda: self._oracle.refine_skill(entry), parse_skill_refinement)

    async def answer(
        self,
        request: str,
        page: PageContent,
        schema: str | None = None,
        snapshot: str | None = None,
        context_notes: str | None = None,
    ) -> str | None:
        return await self._call(
            "answer",
            lambda: self._oracle.answer(request, page, schema, snapshot, context_notes),
            lambda raw: raw.strip() or None,
        )
