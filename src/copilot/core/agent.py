from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable

from ..browser.executor import ActionPlanExecutor, action_plan_may_navigate
from ..browser.schema import SchemaExtractor
from ..browser.surface import PageSurface
from ..browser.tools import is_home_like
from ..config import Settings
from ..errors import TurnCancelled
from ..llm.oracle import BrowsingContext
from ..logging import set_turn_context
from ..types import (
    ActionPlan,
    ChatBrowsingPlan,
    ChatMessage,
    GoalCheck,
    GoalPlan,
    OpenUrlStep,
    PageActionsStep,
    PageContent,
    PlanExecution,
    SkillEntry,
    TurnOutcome,
    TurnResult,
)
from .evaluator import CompletionEvaluator
from .followup import FollowUpTracker, build_follow_up_prompt
from .memory import VisitMemory
from .planner import Planner
from .resolvers import (
    RESOLVERS,
    SHORTCUT_RESOLVERS,
    Resolution,
    ResolutionContext,
    direct_navigation_target,
    is_explicit_action_request,
)
from .skills import SkillCapture, SkillMemory, SkillRefiner
from .trace import TraceRecorder

logger = logging.getLogger(__name__)

PLANNER_UNAVAILABLE = "Sorry, I couldn't work out a browsing step for that request. Please try rephrasing it."
NO_ACTION_SUMMARY = "No applicable browsing action was found on this step."
REPLAY_NOTICE = "Reusing a saved skill for this request."
REPLAY_DONE = "Replayed the saved steps."
REPLAY_UNCONFIRMED = "I replayed the saved steps but could not confirm the goal is complete. Should I keep going?"
PROCEED_REQUEST = "Proceed with the most relevant page action on this page to advance the goal."

_NO_FOLLOW_UP_ACTIONS = {"direct_navigation", "youtube_search"}


class CancellationToken:
    """Shared flag checked before every state mutation that follows an await."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelled("turn cancelled")


MessageSink = Callable[[ChatMessage], None]


@dataclass(slots=True)
class _Turn:
    token: CancellationToken
    sink: MessageSink | None
    trace: TraceRecorder | None = None
    messages: list[ChatMessage] = field(default_factory=list)
    page: PageContent = field(default_factory=PageContent)
    last_action_summary: str = ""
    last_response: str = ""
    youtube_search_done: bool = False

    def checkpoint(self) -> None:
        self.token.raise_if_cancelled()

    def emit(self, message: ChatMessage) -> None:
        self.checkpoint()
        self.messages.append(message)
        if self.sink is not None:
            self.sink(message)

    def say(self, text: str) -> None:
        self.emit(ChatMessage(role="assistant", content=text))

    def result(self, outcome: TurnOutcome, steps: int = 0, skill_id: str | None = None) -> TurnResult:
        return TurnResult(outcome=outcome, messages=list(self.messages), steps=steps, skill_id=skill_id)


class CopilotAgent:
    """Goal loop driving one page surface: plan, check completion, act, repeat."""

    def __init__(
        self,
        surface: PageSurface,
        planner: Planner,
        settings: Settings,
        skills: SkillMemory,
        visits: VisitMemory,
        *,
        followups: FollowUpTracker | None = None,
        refiner: SkillRefiner | None = None,
        extractor: SchemaExtractor | None = None,
        executor: ActionPlanExecutor | None = None,
        evaluator: CompletionEvaluator | None = None,
    ) -> None:
        self._surface = surface
        self._planner = planner
        self._settings = settings
        self._skills = skills
        self._visits = visits
        self._followups = followups or FollowUpTracker(ttl_s=settings.follow_up_ttl_s)
        self._refiner = refiner
        self._extractor = extractor or SchemaExtractor(surface, ttl_s=settings.schema_ttl_s)
        self._executor = executor or ActionPlanExecutor(surface)
        self._evaluator = evaluator or CompletionEvaluator()

    @property
    def surface(self) -> PageSurface:
        return self._surface

    @property
    def executor(self) -> ActionPlanExecutor:
        return self._executor

    @property
    def followups(self) -> FollowUpTracker:
        return self._followups

    async def run_turn(
        self,
        message: str,
        *,
        last_assistant_message: str = "",
        token: CancellationToken | None = None,
        sink: MessageSink | None = None,
    ) -> TurnResult:
        """Run one user turn to completion, a question, or the step cap.

        Raises ``TurnCancelled`` as soon as ``token`` is cancelled; messages
        already handed to ``sink`` stay where they are.
        """

        turn_id = uuid.uuid4().hex[:12]
        set_turn_context(turn_id=turn_id)
        turn = _Turn(token=token or CancellationToken(), sink=sink)
        if self._settings.trace_turns:
            turn.trace = TraceRecorder(
                turn_id=turn_id, root_dir=TraceRecorder.new_turn_dir(self._settings.runs_dir, turn_id)
            )

        text = message.strip()
        if not text:
            return turn.result("answered")

        pending = self._followups.pending
        follow_up = pending is not None and self._followups.is_follow_up(text, last_assistant_message)
        logger.info("Starting turn", extra={"follow_up": follow_up, "url": self._surface.get_url()})

        if follow_up and pending is not None:
            self._followups.touch()
            request = build_follow_up_prompt(text, pending)
            plan = GoalPlan(
                goal=pending.goal_text,
                steps=pending.plan_steps or [],
                success_criteria=pending.success_criteria,
            )
            turn.last_action_summary = pending.last_action_summary or ""
        else:
            self._followups.clear()
            skill = self._skills.find(text)
            if skill is not None and skill.steps:
                return await self._replay(turn, skill, text)

            request = text
            turn.checkpoint()
            plan = await self._planner.plan_goal(text)
            turn.checkpoint()
            plan = plan or GoalPlan(goal=text)
            if turn.trace is not None:
                turn.trace.record_plan(plan)
            if plan.questions:
                turn.say(plan.outline(text))
                self._store_follow_up(turn, plan.goal or text, text, plan, force=True)
                return turn.result("needs_input")

        goal_text = plan.goal or text
        explicit = is_explicit_action_request(text)
        capture = SkillCapture(trigger=text, signature=self._skills.signature(text), goal=goal_text)

        if not explicit and is_home_like(self._surface.get_url()):
            target = direct_navigation_target(text)
            if target:
                turn.say(f"Navigating to {target}")
                await self._navigate(turn, target)
                capture.record_navigation(target)
                turn.last_action_summary = f"Navigated to {target}."

        steps_taken = 0
        for step in range(1, self._settings.max_agent_steps + 1):
            steps_taken = step
            turn.checkpoint()
            turn.page = await self._read_page(turn)

            check: GoalCheck | None = None
            if not (step == 1 and follow_up and explicit):
                check = await self._planner.check_goal(
                    goal_text, request, turn.page, plan, turn.last_action_summary
                )
                turn.checkpoint()
                if turn.trace is not None:
                    turn.trace.record_check(step, check)

            verdict = self._evaluator.assess(check)
            if verdict.kind == "completed":
                turn.say(verdict.message or "")
                skill_id = None if follow_up else self._commit_skill(turn, capture)
                self._store_follow_up(turn, goal_text, text, plan, completed=True)
                logger.info("Goal completed", extra={"step": step, "skill_id": skill_id})
                return turn.result("completed", step, skill_id)
            if verdict.kind == "needs_input":
                turn.say(verdict.message or "")
                self._store_follow_up(turn, goal_text, text, plan, force=True)
                logger.info("Goal needs user input", extra={"step": step})
                return turn.result("needs_input", step)

            outcome = await self._step(turn, step, request, text, goal_text, plan, explicit, capture)
            if outcome is not None:
                self._store_follow_up(turn, goal_text, text, plan)
                return turn.result(outcome, step)

        logger.info("Step limit reached without completion", extra={"steps": steps_taken})
        self._store_follow_up(turn, goal_text, text, plan)
        return turn.result("inconclusive", steps_taken)

    async def _step(
        self,
        turn: _Turn,
        step: int,
        request: str,
        user_message: str,
        goal_text: str,
        plan: GoalPlan,
        explicit: bool,
        capture: SkillCapture,
    ) -> TurnOutcome | None:
        """One planning iteration; returns an outcome only when the turn ends here."""

        schema = await self._extractor.extract_schema()
        turn.checkpoint()
        strict_plan = bool(plan.steps)
        context = BrowsingContext(
            current_url=self._surface.get_url(),
            current_title=turn.page.title,
            goal=goal_text,
            step_index=step,
            plan_steps=plan.steps,
            success_criteria=plan.success_criteria or [],
            last_action_summary=turn.last_action_summary,
            memory_summary="" if strict_plan else self._visits.summary(),
            frequent_sites=[] if strict_plan else [site.to_document() for site in self._visits.frequent_sites()],
            page_schema=schema.to_prompt_json() if schema is not None else None,
        )
        browsing = await self._planner.plan_browsing(request, context)
        turn.checkpoint()
        planner_failed = browsing is None
        browsing = browsing or ChatBrowsingPlan()
        if turn.trace is not None:
            turn.trace.record_action(step, browsing)

        response = (browsing.response or "").strip()
        if response:
            turn.last_response = response
            if browsing.actions and not self._evaluator.suppress_planner_response(response, strict_plan):
                turn.say(response)

        step_hint = plan.steps[min(step, len(plan.steps)) - 1] if plan.steps else ""
        ctx = ResolutionContext(
            goal_text=goal_text,
            user_message=user_message,
            page_url=self._surface.get_url(),
            plan=browsing,
            schema=schema,
            explicit_action_request=explicit,
            step_hint=step_hint,
            youtube_search_done=turn.youtube_search_done,
        )
        resolvers = RESOLVERS if planner_failed or browsing.actions else SHORTCUT_RESOLVERS
        for resolver in resolvers:
            resolution = resolver(ctx)
            if resolution is None:
                continue
            logger.info("Resolved browsing action", extra={"source": resolution.source, "kind": resolution.kind})
            if resolution.kind in {"announce", "create"}:
                turn.say(resolution.message or "")
                turn.last_response = resolution.message or ""
                return "answered"
            await self._apply(turn, resolution, ctx, capture)
            if turn.trace is not None:
                turn.trace.record_result(
                    step, {"source": resolution.source, "summary": turn.last_action_summary, "url": self._surface.get_url()}
                )
            if resolution.ends_step or ctx.attempted or ctx.navigated:
                break

        if ctx.attempted or ctx.navigated:
            return None
        if planner_failed:
            turn.say(PLANNER_UNAVAILABLE)
            turn.last_response = PLANNER_UNAVAILABLE
            return "inconclusive"
        if not browsing.actions:
            if not response:
                answer = await self._planner.answer(
                    request,
                    turn.page,
                    schema.to_prompt_json() if schema is not None else None,
                    context_notes=turn.last_action_summary or None,
                )
                turn.checkpoint()
                response = answer or PLANNER_UNAVAILABLE
            turn.say(response)
            turn.last_response = response
            return "answered"
        turn.last_action_summary = NO_ACTION_SUMMARY
        return None

    async def _apply(
        self,
        turn: _Turn,
        resolution: Resolution,
        ctx: ResolutionContext,
        capture: SkillCapture,
    ) -> None:
        if resolution.kind == "navigate" and resolution.url:
            if resolution.message:
                turn.say(resolution.message)
            await self._navigate(turn, resolution.url)
            capture.record_navigation(resolution.url, resolution.in_new_tab)
            ctx.navigated = True
            turn.last_action_summary = resolution.summary or f"Opened {resolution.url}."
            if resolution.source not in _NO_FOLLOW_UP_ACTIONS:
                await self._proceed_on_new_page(turn, ctx, capture)
            return

        if resolution.kind == "run_plan" and resolution.plan is not None:
            if resolution.source == "youtube_search":
                turn.youtube_search_done = True
            if resolution.message:
                turn.say(resolution.message)
            execution = await self._run_plan(turn, resolution.plan, capture)
            ctx.attempted = True
            ctx.handled_page_actions = True
            if execution.executed == 0 and resolution.fallback_url:
                if resolution.fallback_message:
                    turn.say(resolution.fallback_message)
                await self._navigate(turn, resolution.fallback_url)
                capture.record_navigation(resolution.fallback_url)
                ctx.navigated = True
                turn.last_action_summary = f"Opened {resolution.fallback_url}."
                return
            turn.last_action_summary = resolution.summary or execution.summary()
            return

        if resolution.kind == "plan_page_actions" and ctx.schema is not None:
            action_plan = await self._planner.plan_page_actions(
                resolution.request or ctx.goal_text, ctx.schema.to_prompt_json()
            )
            turn.checkpoint()
            ctx.handled_page_actions = True
            if action_plan is None or not action_plan.actions:
                ctx.empty_page_action_plan = True
                return
            execution = await self._run_plan(turn, action_plan, capture)
            ctx.attempted = True
            turn.last_action_summary = execution.summary()

    async def _proceed_on_new_page(self, turn: _Turn, ctx: ResolutionContext, capture: SkillCapture) -> None:
        """After leaving for a planner-chosen page, take one in-page step there if it looks relevant."""

        schema = await self._extractor.extract_schema()
        turn.checkpoint()
        if schema is None:
            return
        landed = ResolutionContext(
            goal_text=ctx.goal_text,
            user_message=ctx.user_message,
            page_url=self._surface.get_url(),
            plan=ChatBrowsingPlan(),
            schema=schema,
            explicit_action_request=ctx.explicit_action_request,
        )
        if not landed.may_run_page_actions:
            return
        request = f"Goal: {ctx.goal_text}\n{PROCEED_REQUEST}"
        action_plan = await self._planner.plan_page_actions(request, schema.to_prompt_json())
        turn.checkpoint()
        if action_plan is None or not action_plan.actions:
            return
        execution = await self._run_plan(turn, action_plan, capture)
        turn.last_action_summary = f"{turn.last_action_summary} {execution.summary()}".strip()

    async def _run_plan(self, turn: _Turn, plan: ActionPlan, capture: SkillCapture | None = None) -> PlanExecution:
        turn.checkpoint()
        before_url = self._surface.get_url()
        may_navigate = action_plan_may_navigate(plan)
        watch = self._surface.watch()
        try:
            execution = await self._executor.execute(plan)
            turn.checkpoint()
            if may_navigate and execution.executed:
                await self._surface.wait_for_settle(watch, before_url, self._settings.action_settle_timeout_s)
        finally:
            watch.close()
        turn.checkpoint()
        turn.emit(
            ChatMessage(
                role="assistant",
                kind="action-log",
                content=execution.summary(),
                actions=execution.results,
            )
        )
        if capture is not None and execution.executed:
            capture.record_plan(plan)
        self._extractor.invalidate()
        if self._settings.post_action_delay_s > 0:
            await asyncio.sleep(self._settings.post_action_delay_s)
        return execution

    async def _navigate(self, turn: _Turn, url: str) -> bool:
        turn.checkpoint()
        loaded = await self._surface.navigate(url, self._settings.navigation_timeout_s)
        turn.checkpoint()
        await self._surface.wait_for_ready()
        if self._settings.post_navigation_delay_s > 0:
            await asyncio.sleep(self._settings.post_navigation_delay_s)
        turn.checkpoint()
        self._extractor.invalidate()
        self._visits.record_visit(self._surface.get_url() or url)
        return loaded

    async def _read_page(self, turn: _Turn) -> PageContent:
        page = await self._extractor.read_page()
        turn.checkpoint()
        if page.url:
            self._visits.record_visit(page.url, page.title)
        return page

    def _commit_skill(self, turn: _Turn, capture: SkillCapture) -> str | None:
        turn.checkpoint()
        entry = self._skills.save(capture.trigger, capture.steps, signature=capture.signature, goal=capture.goal)
        if entry is None:
            return None
        if self._refiner is not None:
            self._refiner.maybe_refine(entry)
        return entry.id

    def _store_follow_up(
        self,
        turn: _Turn,
        goal_text: str,
        user_message: str,
        plan: GoalPlan | None,
        *,
        completed: bool = False,
        force: bool = False,
    ) -> None:
        turn.checkpoint()
        assistant_message = next(
            (message.content for message in reversed(turn.messages) if message.kind == "text"),
            turn.last_response,
        )
        self._followups.store(
            goal_text=goal_text,
            user_message=user_message,
            assistant_message=assistant_message,
            url=turn.page.url or self._surface.get_url(),
            title=turn.page.title,
            plan=plan,
            last_action_summary=turn.last_action_summary,
            completed=completed,
            force=force,
        )

    async def _replay(self, turn: _Turn, skill: SkillEntry, text: str) -> TurnResult:
        """Run a stored skill step by step without any planning calls, then confirm once."""

        logger.info("Replaying skill", extra={"skill_id": skill.id, "steps": len(skill.steps)})
        turn.say(REPLAY_NOTICE)
        for step in skill.steps:
            turn.checkpoint()
            if isinstance(step, OpenUrlStep):
                turn.say(f"Navigating to {step.url}")
                await self._navigate(turn, step.url)
                turn.last_action_summary = f"Opened {step.url}."
            elif isinstance(step, PageActionsStep):
                execution = await self._run_plan(turn, step.plan)
                turn.last_action_summary = execution.summary()

        turn.checkpoint()
        self._skills.record_use(skill.id)

        goal_text = skill.goal or skill.trigger
        turn.page = await self._read_page(turn)
        check = await self._planner.check_goal(goal_text, text, turn.page, None, turn.last_action_summary)
        turn.checkpoint()
        steps = len(skill.steps)
        if check is None:
            check = GoalCheck(completed=True, response=REPLAY_DONE)
        verdict = self._evaluator.assess(check)
        if verdict.kind == "completed":
            turn.say(verdict.message or REPLAY_DONE)
            self._store_follow_up(turn, goal_text, text, None, completed=True)
            return turn.result("replayed", steps, skill.id)
        if verdict.kind == "needs_input":
            turn.say(verdict.message or REPLAY_UNCONFIRMED)
            self._store_follow_up(turn, goal_text, text, None, force=True)
            return turn.result("needs_input", steps, skill.id)
        turn.say(check.response or REPLAY_UNCONFIRMED)
        self._store_follow_up(turn, goal_text, text, None, force=True)
        return turn.result("inconclusive", steps, skill.id)
