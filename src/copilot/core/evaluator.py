from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from ..types import GoalCheck

TASK_DONE = "✅ Task done."
DEFAULT_COMPLETION = "Goal completed based on the current page."
DEFAULT_QUESTION = "I need more details to continue. What specifics should I use?"

VerdictKind = Literal["completed", "needs_input", "continue"]


@dataclass(slots=True)
class Verdict:
    kind: VerdictKind
    message: str | None = None


class CompletionEvaluator:
    """Turn completion checks into loop decisions and user-facing messages."""

    COMPLETION_PATTERN = re.compile(r"(done|complete|completed|finished|success|resolved|achieved)", re.IGNORECASE)
    HISTORY_PATTERN = re.compile(r"history|frequent|visited")
    DIRECT_NAV_PATTERN = re.compile(
        r"navigate directly|direct link|i(?:'|’)ll navigate directly|i will navigate directly"
    )

    def assess(self, check: GoalCheck | None) -> Verdict:
        if check is None:
            return Verdict(kind="continue")
        if check.completed:
            return Verdict(kind="completed", message=self.completion_message(check))
        if check.needs_user_input or check.question:
            return Verdict(kind="needs_input", message=check.response or check.question or DEFAULT_QUESTION)
        return Verdict(kind="continue")

    def completion_message(self, check: GoalCheck) -> str:
        text = check.response or check.evidence or DEFAULT_COMPLETION
        if self.COMPLETION_PATTERN.search(text):
            return text
        return f"{text} {TASK_DONE}"

    def suppress_planner_response(self, response: str, strict_plan: bool) -> bool:
        """Hide planner chatter about browsing history once a structured plan drives the turn."""

        if not strict_plan:
            return False
        lowered = response.lower()
        return bool(self.HISTORY_PATTERN.search(lowered) or self.DIRECT_NAV_PATTERN.search(lowered))
