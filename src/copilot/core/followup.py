from __future__ import annotations

import re
import time
from typing import Callable

from ..types import GoalPlan, PendingFollowUp

FOLLOW_UP_TTL_S = 600.0
ASSISTANT_SNIPPET_CHARS = 600

_CONTINUATION_PATTERN = re.compile(
    r"\b(do you want|would you like|want me to|should i|shall i|keep going|continue|next step|click on|open any|go ahead|anything else)\b",
    re.IGNORECASE,
)
_FRESH_TASK_PATTERN = re.compile(
    r"^(find|search|look up|show me|what is|who is|tell me|summarize|explain|create|generate|build|make|write)\b",
    re.IGNORECASE,
)
_AFFIRMATIVE_PATTERN = re.compile(r"^(yes|yeah|yep|sure|ok|okay|please|go ahead|do it|continue|next)\b", re.IGNORECASE)
_ACTION_VERB_PATTERN = re.compile(r"\b(click|open|select|choose|tap|press|scroll|type|enter|fill)\b", re.IGNORECASE)
_REFERENTIAL_PATTERN = re.compile(
    r"\b(this|that|these|those|one|first|second|third|above|previous|same)\b", re.IGNORECASE
)


def assistant_requests_continuation(text: str) -> bool:
    stripped = text.strip()
    if not stripped:
        return False
    return "?" in stripped or bool(_CONTINUATION_PATTERN.search(stripped))


def should_treat_as_follow_up(
    message: str,
    pending: PendingFollowUp | None,
    last_assistant_message: str,
    *,
    now: float,
    ttl_s: float = FOLLOW_UP_TTL_S,
) -> bool:
    if pending is None or now - pending.asked_at > ttl_s:
        return False
    stripped = message.strip()
    if not stripped:
        return False
    assistant_text = last_assistant_message or pending.last_assistant_message
    if not (pending.requires_follow_up or assistant_requests_continuation(assistant_text)):
        return False
    if _FRESH_TASK_PATTERN.search(stripped):
        return False

    short = len(stripped.split()) <= 12
    affirmative = bool(_AFFIRMATIVE_PATTERN.search(stripped))
    mentions_action = bool(_ACTION_VERB_PATTERN.search(stripped))
    referential = bool(_REFERENTIAL_PATTERN.search(stripped))
    return (short or affirmative or mentions_action) and (affirmative or mentions_action or referential or short)


def build_follow_up_prompt(reply: str, pending: PendingFollowUp) -> str:
    snippet = pending.last_assistant_message
    if len(snippet) > ASSISTANT_SNIPPET_CHARS:
        snippet = f"{snippet[:ASSISTANT_SNIPPET_CHARS]}..."
    lines = [
        "Continue the previous task.",
        f"Previous goal: {pending.goal_text}" if pending.goal_text else "",
        f"Assistant said: {snippet}" if snippet else "",
        f"Progress so far: {pending.last_action_summary}" if pending.last_action_summary else "",
        f"User reply: {reply}",
    ]
    return "\n".join(line for line in lines if line)


class FollowUpTracker:
    """Holds the single pending follow-up record of a conversation."""

    def __init__(self, ttl_s: float = FOLLOW_UP_TTL_S, clock: Callable[[], float] = time.time) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._pending: PendingFollowUp | None = None

    @property
    def pending(self) -> PendingFollowUp | None:
        return self._pending

    def clear(self) -> None:
        self._pending = None

    def is_follow_up(self, message: str, last_assistant_message: str) -> bool:
        return should_treat_as_follow_up(
            message, self._pending, last_assistant_message, now=self._clock(), ttl_s=self._ttl_s
        )

    def touch(self) -> None:
        if self._pending is not None:
            self._pending = self._pending.model_copy(update={"asked_at": self._clock()})

    def store(
        self,
        *,
        goal_text: str,
        user_message: str,
        assistant_message: str,
        url: str,
        title: str,
        plan: GoalPlan | None = None,
        last_action_summary: str | None = None,
        completed: bool = False,
        force: bool = False,
    ) -> PendingFollowUp:
        assistant_message = (assistant_message or "").strip()
        self._pending = PendingFollowUp(
            goal_text=goal_text or user_message,
            last_user_message=user_message,
            last_assistant_message=assistant_message,
            plan_steps=plan.steps if plan and plan.steps else None,
            success_criteria=plan.success_criteria if plan else None,
            last_action_summary=last_action_summary or None,
            url=url,
            title=title,
            completed=completed,
            asked_at=self._clock(),
            requires_follow_up=force or assistant_requests_continuation(assistant_message),
        )
        return self._pending
