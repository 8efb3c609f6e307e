from __future__ import annotations

import logging
from typing import Any

import orjson

from ..errors import SurfaceError
from ..types import ActionPlan, ActionResult, PlanExecution
from .surface import PageSurface

logger = logging.getLogger(__name__)

NAVIGATING_ACTION_TYPES = frozenset({"click", "press", "select"})
_STATUSES = frozenset({"ok", "not_found", "skipped"})

_PLAN_SCRIPT_TEMPLATE = r"""
/* copilot:action-plan */
(async () => {
    const plan = __PLAN__;
    const results = [];
    const delay = (ms) => new Promise((resolve) => setTimeout(resolve, ms));
    const resolveEl = (selector) => {
        if (!selector) return null;
        try {
            return document.querySelector(selector);
        } catch (e) {
            return null;
        }
    };
    const resolvePressTarget = (selector) => resolveEl(selector) || document.activeElement;
    const dispatch = (el, type) => el && el.dispatchEvent(new Event(type, { bubbles: true }));
    const dispatchKey = (el, type, key) => {
        const isEnter = key === 'Enter';
        const keyCode = isEnter ? 13 : 0;
        el.dispatchEvent(new KeyboardEvent(type, {
            key,
            code: isEnter ? 'Enter' : undefined,
            keyCode,
            which: keyCode,
            bubbles: true,
            cancelable: true,
            composed: true
        }));
    };
    const attemptFormSubmit = (el) => {
        if (!el) return false;
        const form = el.form || (el.closest && el.closest('form'));
        if (!form) return false;
        const proceed = form.dispatchEvent(new Event('submit', { bubbles: true, cancelable: true }));
        if (proceed) {
            if (typeof form.requestSubmit === 'function') {
                form.requestSubmit();
            } else if (typeof form.submit === 'function') {
                form.submit();
            } else {
                const btn = form.querySelector('button[type="submit"], input[type="submit"]');
                if (btn && btn.click) btn.click();
            }
        }
        return true;
    };

    for (const action of plan.actions || []) {
        let status = 'skipped';
        const selector = action.selector;
        if (action.type === 'click') {
            const el = resolveEl(selector);
            if (el) {
                el.click();
                status = 'ok';
            } else {
                status = 'not_found';
            }
        } else if (action.type === 'focus') {
            const el = resolveEl(selector);
            if (el) {
                el.focus();
                status = 'ok';
            } else {
                status = 'not_found';
            }
        } else if (action.type === 'type') {
            const el = resolveEl(selector);
            if (el) {
                if ('value' in el) {
                    el.value = action.text || '';
                    dispatch(el, 'input');
                    dispatch(el, 'change');
                } else {
                    el.textContent = action.text || '';
                }
                if (el.focus) el.focus();
                status = 'ok';
            } else {
                status = 'not_found';
            }
        } else if (action.type === 'select') {
            const el = resolveEl(selector);
            if (el) {
                el.value = action.value || '';
                dispatch(el, 'change');
                status = 'ok';
            } else {
                status = 'not_found';
            }
        } else if (action.type === 'press') {
            const el = resolvePressTarget(selector);
            if (el) {
                const key = action.key || 'Enter';
                if (el.focus) el.focus();
                dispatchKey(el, 'keydown', key);
                dispatchKey(el, 'keypress', key);
                dispatchKey(el, 'keyup', key);
                if (key === 'Enter') attemptFormSubmit(el);
                status = 'ok';
            } else {
                status = 'not_found';
            }
        } else if (action.type === 'scroll') {
            if (typeof action.by === 'number') {
                window.scrollBy(0, action.by);
                status = 'ok';
            } else if (typeof action.to === 'number') {
                window.scrollTo(0, action.to);
                status = 'ok';
            }
        }
        results.push({ action, status });
        await delay(60);
    }
    return results;
})()
"""


def action_plan_may_navigate(plan: ActionPlan) -> bool:
    """Whether running ``plan`` can trigger a navigation worth waiting for."""

    return any(action.type in NAVIGATING_ACTION_TYPES for action in plan.actions)


def build_plan_script(plan: ActionPlan) -> str:
    payload = orjson.dumps(plan.to_document()).decode()
    return _PLAN_SCRIPT_TEMPLATE.replace("__PLAN__", payload)


class ActionPlanExecutor:
    """Run action plans against a page surface and report per-action outcomes."""

    def __init__(self, surface: PageSurface) -> None:
        self._surface = surface
        self._depth = 0

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def busy(self) -> bool:
        return self._depth > 0

    async def execute(self, plan: ActionPlan) -> PlanExecution:
        if not plan.actions:
            return PlanExecution()

        self._depth += 1
        try:
            raw = await self._surface.execute(build_plan_script(plan))
        except SurfaceError:
            logger.warning("Failed to execute action plan", exc_info=True)
            return PlanExecution()
        finally:
            self._depth = max(0, self._depth - 1)

        if not isinstance(raw, list):
            logger.info("Action plan produced no results; surface unavailable")
            return PlanExecution()

        results = self._align_results(plan, raw)
        execution = PlanExecution(
            executed=sum(1 for result in results if result.status == "ok"),
            attempted=len(results),
            results=results,
        )
        logger.info(
            "Executed action plan",
            extra={"executed": execution.executed, "attempted": execution.attempted},
        )
        return execution

    @staticmethod
    def _align_results(plan: ActionPlan, raw: list[Any]) -> list[ActionResult]:
        results: list[ActionResult] = []
        for index, action in enumerate(plan.actions):
            entry = raw[index] if index < len(raw) else None
            status = entry.get("status") if isinstance(entry, dict) else None
            if status not in _STATUSES:
                status = "skipped"
            results.append(ActionResult(action=action, status=status))
        return results
