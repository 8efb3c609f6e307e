from __future__ import annotations

from copilot.core.planner import (
    parse_action_plan,
    parse_chat_browsing_plan,
    parse_goal_check,
    parse_goal_plan,
    parse_skill_refinement,
)
from copilot.types import OpenUrlAction, PageActionsAction, SearchAction, extract_json_payload


def test_extract_json_from_fenced_block() -> None:
    raw = 'Sure, here is the plan:\n```json\n{"goal": "Open docs", "steps": ["a"]}\n```'
    assert extract_json_payload(raw) == {"goal": "Open docs", "steps": ["a"]}


def test_extract_json_repairs_trailing_commas_and_prose() -> None:
    raw = """
    I think this works {
        "completed": true,
        "response": "Done",
    } hope that helps
    """
    assert extract_json_payload(raw) == {"completed": True, "response": "Done"}


def test_extract_json_returns_none_for_plain_text() -> None:
    assert extract_json_payload("I could not find anything useful.") is None
    assert extract_json_payload("") is None


def test_action_plan_drops_unknown_types_and_bad_fields() -> None:
    plan = parse_action_plan(
        {
            "actions": [
                {"type": "click", "selector": "#go"},
                {"type": "hover", "selector": "#menu"},
                {"type": "scroll", "by": "lots"},
                {"type": "type", "selector": "input[name=q]", "text": 42},
                "garbage",
            ],
            "notes": "  ",
        }
    )
    assert plan is not None
    assert [action.type for action in plan.actions] == ["click", "scroll", "type"]
    assert plan.actions[1].by is None
    assert plan.actions[2].text == "42"
    assert plan.notes is None


def test_chat_browsing_plan_keeps_only_well_formed_actions() -> None:
    raw = """```json
    {
      "response": "Opening the docs",
      "actions": [
        {"type": "open_url", "url": "https://docs.python.org", "inNewTab": true},
        {"type": "search", "query": "asyncio tutorial"},
        {"type": "page_actions", "plan": {"actions": []}},
        {"type": "page_actions", "plan": {"actions": [{"type": "click", "selector": "a.next"}]}},
        {"type": "suggest_sites", "suggestions": "not a list"},
        {"type": "teleport"}
      ]
    }
    ```"""
    plan = parse_chat_browsing_plan(raw)
    assert plan is not None
    assert plan.response == "Opening the docs"
    assert [type(action) for action in plan.actions] == [OpenUrlAction, SearchAction, PageActionsAction]
    assert plan.actions[0].in_new_tab is True


def test_goal_plan_requires_goal_or_steps() -> None:
    assert parse_goal_plan('{"goal": "", "steps": []}') is None
    plan = parse_goal_plan('{"goal": "Buy milk", "steps": ["Open shop", 3], "questions": ["Which brand?"]}')
    assert plan is not None
    assert plan.steps == ["Open shop"]
    assert plan.questions == ["Which brand?"]
    assert plan.success_criteria is None


def test_goal_check_parsing() -> None:
    check = parse_goal_check('{"completed": false, "needsUserInput": true, "question": "Which city?", "confidence": 0.4}')
    assert check is not None
    assert check.completed is False
    assert check.needs_user_input is True
    assert check.question == "Which city?"
    assert check.confidence == 0.4
    assert parse_goal_check("no json here") is None


def test_skill_refinement_tree_normalisation() -> None:
    refinement = parse_skill_refinement(
        {
            "generalizedTrigger": "open <site>",
            "algorithm": ["Navigate to the site"],
            "tree": [
                {"id": "n1", "label": "Open site", "type": "navigate", "url": "https://x.com"},
                {"id": "n2", "label": "Pick", "type": "wander", "parentId": "n1"},
                {"id": "", "label": "missing id"},
                {"id": "n3", "label": "   "},
            ],
        },
        now=123.0,
    )
    assert refinement is not None
    assert refinement.refined_at == 123.0
    assert [node.id for node in refinement.tree or []] == ["n1", "n2"]
    assert refinement.tree[1].type == "action"
    assert refinement.tree[1].parent_id == "n1"


def test_skill_refinement_without_content_is_rejected() -> None:
    assert parse_skill_refinement('{"notes": "nothing to say"}') is None
