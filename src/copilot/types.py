from __future__ import annotations

import re
from typing import Annotated, Any, ClassVar, Literal, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialised with the camelCase keys used by the stored documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


PageActionType = Literal["click", "type", "select", "scroll", "press", "focus"]
PAGE_ACTION_TYPES: frozenset[str] = frozenset({"click", "type", "select", "scroll", "press", "focus"})


class PageAction(CamelModel):
    """Single primitive DOM operation."""

    type: PageActionType
    selector: str | None = None
    text: str | None = None
    value: str | None = None
    key: str | None = None
    by: float | None = None
    to: float | None = None


class ActionPlan(CamelModel):
    actions: list[PageAction] = Field(default_factory=list)
    notes: str | None = None


ActionStatus = Literal["ok", "not_found", "skipped"]


class ActionResult(CamelModel):
    action: PageAction
    status: ActionStatus


class PlanExecution(CamelModel):
    """Outcome of running an action plan against the page surface."""

    executed: int = 0
    attempted: int = 0
    results: list[ActionResult] = Field(default_factory=list)

    def summary(self) -> str:
        return f"Executed {self.executed}/{self.attempted} page action(s)."


class OpenUrlAction(CamelModel):
    type: Literal["open_url"] = "open_url"
    url: str
    in_new_tab: bool = False


class SearchAction(CamelModel):
    type: Literal["search"] = "search"
    query: str


class SuggestSitesAction(CamelModel):
    type: Literal["suggest_sites"] = "suggest_sites"
    suggestions: list[str] = Field(default_factory=list)


class PageActionsAction(CamelModel):
    type: Literal["page_actions"] = "page_actions"
    plan: ActionPlan


CreationType = Literal["webpage", "app", "game"]


class CreateSiteAction(CamelModel):
    type: Literal["create_site"] = "create_site"
    prompt: str
    creation_type: CreationType | None = None


BrowsingAction = Annotated[
    Union[OpenUrlAction, SearchAction, SuggestSitesAction, PageActionsAction, CreateSiteAction],
    Field(discriminator="type"),
]


class ChatBrowsingPlan(CamelModel):
    response: str | None = None
    actions: list[BrowsingAction] = Field(default_factory=list)
    notes: str | None = None


class GoalPlan(CamelModel):
    goal: str = ""
    steps: list[str] = Field(default_factory=list)
    success_criteria: list[str] | None = None
    questions: list[str] | None = None

    def outline(self, fallback_goal: str) -> str:
        lines = [f"Goal: {self.goal or fallback_goal}"]
        if self.steps:
            numbered = "\n".join(f"{idx}. {step}" for idx, step in enumerate(self.steps[:6], start=1))
            lines.append(f"Plan:\n{numbered}")
        if self.success_criteria:
            criteria = "\n".join(f"- {item}" for item in self.success_criteria[:4])
            lines.append(f"Success criteria:\n{criteria}")
        if self.questions:
            questions = "\n".join(f"- {item}" for item in self.questions[:3])
            lines.append(f"Questions:\n{questions}")
        return "\n\n".join(lines)


class GoalCheck(CamelModel):
    completed: bool = False
    response: str | None = None
    needs_user_input: bool | None = None
    question: str | None = None
    evidence: str | None = None
    confidence: float | None = None


class ElementSummary(CamelModel):
    tag: str = ""
    text: str = ""
    id: str = ""
    name: str = ""
    type: str = ""
    placeholder: str = ""
    aria_label: str = ""
    role: str = ""
    selector: str = ""
    href: str | None = None


class HeadingSummary(CamelModel):
    level: str = ""
    text: str = ""
    selector: str = ""


class FormSummary(CamelModel):
    action: str = ""
    method: str = ""
    selector: str = ""
    inputs: list[ElementSummary] = Field(default_factory=list)


class PageSchema(CamelModel):
    """Bounded, selector-annotated structural summary of a page."""

    title: str = ""
    url: str = ""
    inputs: list[ElementSummary] = Field(default_factory=list)
    buttons: list[ElementSummary] = Field(default_factory=list)
    links: list[ElementSummary] = Field(default_factory=list)
    headings: list[HeadingSummary] = Field(default_factory=list)
    forms: list[FormSummary] = Field(default_factory=list)
    html_snippet: str = ""

    def to_prompt_json(self) -> str:
        payload = self.model_dump(mode="json", by_alias=True, exclude={"html_snippet"})
        return orjson.dumps(payload).decode()


class PageContent(BaseModel):
    url: str = ""
    title: str = ""
    content: str = ""


class OpenUrlStep(CamelModel):
    type: Literal["open_url"] = "open_url"
    url: str
    in_new_tab: bool = False


class PageActionsStep(CamelModel):
    type: Literal["page_actions"] = "page_actions"
    plan: ActionPlan


SkillStep = Annotated[Union[OpenUrlStep, PageActionsStep], Field(discriminator="type")]

SkillNodeType = Literal["navigate", "action", "decision", "note"]


class SkillTreeNode(CamelModel):
    id: str
    parent_id: str | None = None
    type: SkillNodeType = "action"
    label: str
    url: str | None = None
    selector: str | None = None
    notes: str | None = None


class SkillRefinement(CamelModel):
    generalized_trigger: str = ""
    generalized_goal: str | None = None
    algorithm: list[str] = Field(default_factory=list)
    example: str | None = None
    tree: list[SkillTreeNode] | None = None
    reusable_subpaths: list[str] | None = None
    notes: str | None = None
    confidence: float | None = None
    refined_at: float


class SkillEntry(CamelModel):
    id: str
    trigger: str
    signature: str
    goal: str | None = None
    steps: list[SkillStep] = Field(default_factory=list)
    created_at: float
    updated_at: float
    last_used_at: float | None = None
    use_count: int = 0
    success_count: int = 0
    refinement: SkillRefinement | None = None


class VisitEvent(CamelModel):
    url: str
    title: str
    host: str
    base_url: str
    timestamp: float


class SiteEntry(CamelModel):
    host: str
    base_url: str
    title: str
    count: int = 0
    last_visited: float
    recent_urls: list[str] = Field(default_factory=list)


class FrequentSite(SiteEntry):
    score: float = 0.0


class PendingFollowUp(CamelModel):
    goal_text: str
    last_user_message: str
    last_assistant_message: str
    plan_steps: list[str] | None = None
    success_criteria: list[str] | None = None
    last_action_summary: str | None = None
    url: str = ""
    title: str = ""
    completed: bool = False
    asked_at: float
    requires_follow_up: bool = False


class ChatMessage(CamelModel):
    role: Literal["user", "assistant", "system"]
    content: str
    kind: Literal["text", "action-log"] = "text"
    actions: list[ActionResult] | None = None


TurnOutcome = Literal["completed", "needs_input", "inconclusive", "answered", "replayed", "cancelled", "error"]


class TurnResult(BaseModel):
    outcome: TurnOutcome
    messages: list[ChatMessage] = Field(default_factory=list)
    steps: int = 0
    skill_id: str | None = None

    def last_text(self) -> str | None:
        for message in reversed(self.messages):
            if message.role == "assistant" and message.kind == "text":
                return message.content
        return None


class JSONRepair:
    COMMON_REPLACEMENTS: ClassVar[list[tuple[re.Pattern[str], str]]] = [
        (re.compile(r",\s*([}\]])"), r"\1"),
        (re.compile(r"(\{|\[)\s*,"), r"\1"),
        (re.compile(r"\bNone\b"), "null"),
        (re.compile(r"\bTrue\b"), "true"),
        (re.compile(r"\bFalse\b"), "false"),
    ]

    @staticmethod
    def _normalise_quotes(text: str) -> str:
        return text.replace("“", '"').replace("”", '"').replace("’", "'")

    @classmethod
    def repair(cls, payload: str) -> str:
        content = cls._normalise_quotes(payload.strip())
        if "{" in content:
            content = content[content.index("{") :]
        if "}" in content:
            content = content[: content.rindex("}") + 1]
        for pattern, replacement in cls.COMMON_REPLACEMENTS:
            content = pattern.sub(replacement, content)
        return content


_FENCED_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _try_loads(text: str) -> Any:
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        return None


def extract_json_payload(raw: str | None) -> Any:
    """Return the JSON value carried by an oracle response, or ``None``.

    Accepts a bare JSON document, JSON inside a fenced code block, or JSON
    embedded in surrounding prose.
    """

    if not raw or not raw.strip():
        return None
    direct = _try_loads(raw.strip())
    if direct is not None:
        return direct
    fenced = _FENCED_PATTERN.search(raw)
    if fenced:
        parsed = _try_loads(fenced.group(1).strip())
        if parsed is not None:
            return parsed
        return _try_loads(JSONRepair.repair(fenced.group(1)))
    if "{" not in raw:
        return None
    return _try_loads(JSONRepair.repair(raw))
