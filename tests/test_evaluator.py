from __future__ import annotations

from copilot.core.evaluator import DEFAULT_QUESTION, TASK_DONE, CompletionEvaluator
from copilot.types import GoalCheck


def test_missing_check_keeps_looping() -> None:
    assert CompletionEvaluator().assess(None).kind == "continue"
    assert CompletionEvaluator().assess(GoalCheck(completed=False)).kind == "continue"


def test_completion_appends_task_done_only_when_needed() -> None:
    evaluator = CompletionEvaluator()
    verdict = evaluator.assess(GoalCheck(completed=True, response="The Wikipedia homepage is open."))
    assert verdict.kind == "completed"
    assert verdict.message == f"The Wikipedia homepage is open. {TASK_DONE}"

    already = evaluator.assess(GoalCheck(completed=True, response="Search completed successfully."))
    assert already.message == "Search completed successfully."

    from_evidence = evaluator.assess(GoalCheck(completed=True, evidence="Results list is visible"))
    assert from_evidence.message.endswith(TASK_DONE)


def test_questions_need_user_input() -> None:
    evaluator = CompletionEvaluator()
    assert evaluator.assess(GoalCheck(question="Which size?")).message == "Which size?"
    verdict = evaluator.assess(GoalCheck(needs_user_input=True))
    assert verdict.kind == "needs_input"
    assert verdict.message == DEFAULT_QUESTION


def test_history_chatter_is_suppressed_under_a_plan() -> None:
    evaluator = CompletionEvaluator()
    chatter = "Based on your browsing history you often visit GitHub."
    assert evaluator.suppress_planner_response(chatter, strict_plan=True)
    assert not evaluator.suppress_planner_response(chatter, strict_plan=False)
    assert evaluator.suppress_planner_response("I'll navigate directly to the page.", strict_plan=True)
    assert not evaluator.suppress_planner_response("Opening the search page.", strict_plan=True)
