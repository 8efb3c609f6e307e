from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional

import typer

from .browser.playwright_host import PlaywrightHost
from .browser.surface import PageSurface
from .config import Settings
from .core.agent import CopilotAgent
from .core.followup import FollowUpTracker
from .core.memory import VisitMemory
from .core.planner import Planner
from .core.session import CopilotSession
from .core.skills import SkillMemory, SkillRefiner
from .llm.anthropic_client import AnthropicClient
from .llm.base import LLMClient
from .llm.openai_client import CEREBRAS_BASE_URL, OpenAIClient
from .llm.oracle import Oracle
from .logging import setup_logging
from .storage import JSONDocumentStore
from .types import ChatMessage, TurnResult

app = typer.Typer(no_args_is_help=True)
skills_app = typer.Typer(help="Inspect and manage saved skills")
app.add_typer(skills_app, name="skills")

CEREBRAS_DEFAULT_MODEL = "llama-3.3-70b"


def main() -> None:
    app()


def build_llm_client(settings: Settings) -> LLMClient:
    if settings.llm_provider == "anthropic":
        if not settings.anthropic_api_key:
            raise typer.BadParameter("ANTHROPIC_API_KEY not configured")
        if settings.llm_model:
            return AnthropicClient(settings.anthropic_api_key, model=settings.llm_model)
        return AnthropicClient(settings.anthropic_api_key)
    if settings.llm_provider == "cerebras":
        if not settings.cerebras_api_key:
            raise typer.BadParameter("CEREBRAS_API_KEY not configured")
        return OpenAIClient(
            settings.cerebras_api_key,
            model=settings.llm_model or CEREBRAS_DEFAULT_MODEL,
            base_url=CEREBRAS_BASE_URL,
            provider="Cerebras",
        )
    if not settings.openai_api_key:
        raise typer.BadParameter("OPENAI_API_KEY not configured")
    if settings.llm_model:
        return OpenAIClient(settings.openai_api_key, model=settings.llm_model)
    return OpenAIClient(settings.openai_api_key)


def _skill_memory(settings: Settings) -> SkillMemory:
    return SkillMemory(JSONDocumentStore(settings.skills_path, {"skills": []}))


def _visit_memory(settings: Settings) -> VisitMemory:
    return VisitMemory(JSONDocumentStore(settings.visits_path, {"visits": [], "sites": {}}))


def _load_settings(provider: Optional[str] = None) -> Settings:
    settings = Settings.from_env()
    if provider:
        settings.llm_provider = provider.lower()  # type: ignore[assignment]
    settings.ensure_directories()
    setup_logging(settings.log_level, settings.log_dir / "copilot.log")
    return settings


def _print_message(message: ChatMessage) -> None:
    if message.role != "assistant":
        return
    if message.kind == "action-log":
        typer.echo(f"  [actions] {message.content}")
        for result in message.actions or []:
            target = result.action.selector or result.action.key or ""
            typer.echo(f"     {result.action.type} {target} -> {result.status}")
        return
    typer.echo(f"copilot> {message.content}")


def _print_outcome(result: TurnResult) -> None:
    if result.outcome in {"inconclusive", "cancelled"}:
        typer.echo(f"  ({result.outcome} after {result.steps} step(s))")


@app.command()
def chat(
    messages: Optional[List[str]] = typer.Argument(None, help="Messages to run in order; interactive when omitted"),
    start_url: Optional[str] = typer.Option(None, help="Initial URL to open"),
    headful: bool = typer.Option(False, help="Run browser in headed mode"),
    provider: Optional[str] = typer.Option(None, help="LLM provider override (openai, anthropic, cerebras)"),
) -> None:
    """Talk to the copilot while it drives a Chromium page."""

    settings = _load_settings(provider)
    if start_url:
        settings.start_url = start_url
    headless = settings.headless_default and not headful
    asyncio.run(_chat(settings, messages or [], headless=headless))


async def _chat(settings: Settings, messages: list[str], headless: bool) -> None:
    llm_client = build_llm_client(settings)
    planner = Planner(Oracle(llm_client))
    skills = _skill_memory(settings)
    refiner = SkillRefiner(skills, planner)

    async with PlaywrightHost(
        headless=headless,
        start_url=settings.start_url,
        navigation_timeout_s=settings.navigation_timeout_s,
    ) as host:
        surface = PageSurface(
            host,
            ready_timeout_s=settings.ready_timeout_s,
            poll_interval_s=settings.url_poll_interval_s,
        )
        agent = CopilotAgent(
            surface,
            planner,
            settings,
            skills,
            _visit_memory(settings),
            followups=FollowUpTracker(ttl_s=settings.follow_up_ttl_s),
            refiner=refiner,
        )
        session = CopilotSession(agent, refiner=refiner, on_message=_print_message)
        try:
            if messages:
                for message in messages:
                    typer.echo(f"you> {message}")
                    _print_outcome(await session.submit(message))
            else:
                await _interactive(session)
        finally:
            await session.close()
            await llm_client.close()


async def _interactive(session: CopilotSession) -> None:
    typer.echo("Type a request; /stop cancels the running turn, /quit exits.")
    current: asyncio.Task[TurnResult] | None = None
    while True:
        try:
            line = (await asyncio.to_thread(input, "you> ")).strip()
        except EOFError:
            break
        if not line:
            continue
        if line == "/quit":
            break
        if line == "/stop":
            await session.stop()
            continue
        current = asyncio.create_task(session.submit(line))
        current.add_done_callback(lambda task: task.cancelled() or _print_outcome(task.result()))
    if current is not None and not current.done():
        await session.stop()


@skills_app.command("list")
def list_skills() -> None:
    """Show saved skills, most recently updated first."""

    settings = Settings.from_env()
    skills = _skill_memory(settings).list()
    if not skills:
        typer.echo("No saved skills.")
        return
    for skill in skills:
        updated = datetime.fromtimestamp(skill.updated_at).strftime("%Y-%m-%d %H:%M")
        refined = " refined" if skill.refinement else ""
        typer.echo(
            f"{skill.id}  {skill.trigger!r}  steps={len(skill.steps)} uses={skill.use_count} "
            f"successes={skill.success_count} updated={updated}{refined}"
        )


@skills_app.command("delete")
def delete_skill(skill_id: str = typer.Argument(..., help="Identifier of the skill to delete")) -> None:
    """Remove a saved skill."""

    settings = Settings.from_env()
    if not _skill_memory(settings).delete(skill_id):
        typer.echo(f"No skill with id {skill_id}")
        raise typer.Exit(code=1)
    typer.echo(f"Deleted skill {skill_id}")


@app.command()
def sites(
    limit: int = typer.Option(8, help="Number of sites to show"),
    query: Optional[str] = typer.Option(None, help="Only show sites matching this text"),
) -> None:
    """Show the most frequently visited sites."""

    settings = Settings.from_env()
    memory = _visit_memory(settings)
    ranked = memory.search_sites(query, limit) if query else memory.frequent_sites(limit)
    if not ranked:
        typer.echo("No frequent sites recorded yet.")
        return
    for idx, site in enumerate(ranked, start=1):
        typer.echo(f"{idx}. {site.title} ({site.base_url}) visits={site.count} score={site.score:.1f}")
