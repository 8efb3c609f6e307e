from __future__ import annotations

from copilot.core.followup import (
    FollowUpTracker,
    assistant_requests_continuation,
    build_follow_up_prompt,
    should_treat_as_follow_up,
)
from copilot.types import GoalPlan, PendingFollowUp


def make_pending(asked_at: float = 100.0, requires: bool = True) -> PendingFollowUp:
    return PendingFollowUp(
        goal_text="Find a lofi playlist",
        last_user_message="find lofi music",
        last_assistant_message="I found three playlists. Do you want me to open the first one?",
        last_action_summary="Searched YouTube for lofi music.",
        asked_at=asked_at,
        requires_follow_up=requires,
    )


def test_assistant_continuation_phrases() -> None:
    assert assistant_requests_continuation("Which one should I open?")
    assert assistant_requests_continuation("I can keep going if you like.")
    assert not assistant_requests_continuation("The page is open. ✅ Task done.")
    assert not assistant_requests_continuation("   ")


def test_short_affirmative_reply_is_a_follow_up() -> None:
    pending = make_pending()
    assert should_treat_as_follow_up("yes please", pending, "", now=150.0)
    assert should_treat_as_follow_up("click the second one", pending, "", now=150.0)


def test_fresh_task_or_expired_record_is_not_a_follow_up() -> None:
    pending = make_pending()
    assert not should_treat_as_follow_up("search for jazz instead", pending, "", now=150.0)
    assert not should_treat_as_follow_up("yes", pending, "", now=100.0 + 601)
    assert not should_treat_as_follow_up("yes", None, "", now=150.0)
    assert not should_treat_as_follow_up("", pending, "", now=150.0)


def test_record_without_question_needs_assistant_prompt() -> None:
    pending = make_pending(requires=False).model_copy(update={"last_assistant_message": "Done."})
    assert not should_treat_as_follow_up("yes", pending, "", now=150.0)
    assert should_treat_as_follow_up("yes", pending, "Want me to continue?", now=150.0)


def test_follow_up_prompt_carries_previous_context() -> None:
    pending = make_pending().model_copy(update={"last_assistant_message": "x" * 700})
    prompt = build_follow_up_prompt("the first one", pending)
    lines = prompt.splitlines()
    assert lines[0] == "Continue the previous task."
    assert "Previous goal: Find a lofi playlist" in lines
    assert f"Assistant said: {'x' * 600}..." in lines
    assert lines[-1] == "User reply: the first one"


def test_tracker_store_touch_and_clear() -> None:
    now = [10.0]
    tracker = FollowUpTracker(ttl_s=60, clock=lambda: now[0])
    plan = GoalPlan(goal="Book a table", steps=["Open site", "Pick time"], success_criteria=["Booking confirmed"])
    stored = tracker.store(
        goal_text="Book a table",
        user_message="book a table for two",
        assistant_message="Which evening works for you?",
        url="https://example.com",
        title="Example",
        plan=plan,
    )
    assert stored.requires_follow_up is True
    assert stored.plan_steps == ["Open site", "Pick time"]
    assert tracker.is_follow_up("friday", "")

    now[0] = 65.0
    tracker.touch()
    now[0] = 100.0
    assert tracker.is_follow_up("friday", "")

    tracker.clear()
    assert tracker.pending is None
    assert not tracker.is_follow_up("friday", "")
