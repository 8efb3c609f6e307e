from __future__ import annotations

import asyncio

import pytest

from copilot.browser.executor import ActionPlanExecutor, action_plan_may_navigate
from copilot.browser.surface import PageSurface, is_not_ready_message
from copilot.errors import SurfaceError
from copilot.types import ActionPlan, PageAction

from fakes import FakeHost


def make_surface(host: FakeHost) -> PageSurface:
    return PageSurface(host, ready_timeout_s=0.05, poll_interval_s=0.01)


@pytest.mark.asyncio
async def test_not_ready_is_retried_exactly_once() -> None:
    host = FakeHost("https://example.com/")
    surface = make_surface(host)
    host.not_ready_failures = 1
    assert await surface.execute("/* copilot:page-content */") == {
        "title": "https://example.com/",
        "content": "Page at https://example.com/",
    }
    assert len(host.scripts) == 2


@pytest.mark.asyncio
async def test_second_not_ready_gives_up_without_raising() -> None:
    host = FakeHost("https://example.com/")
    surface = make_surface(host)
    host.not_ready_failures = 5
    assert await surface.execute("/* copilot:page-content */") is None
    assert len(host.scripts) == 2


@pytest.mark.asyncio
async def test_communication_failure_propagates() -> None:
    host = FakeHost("https://example.com/")
    host.broken = True
    with pytest.raises(SurfaceError):
        await make_surface(host).execute("/* copilot:page-content */")


@pytest.mark.asyncio
async def test_navigate_waits_for_load_events() -> None:
    host = FakeHost()
    surface = make_surface(host)
    navigated: list[str] = []
    readiness: list[str] = []
    unsubscribe = surface.on_navigated(navigated.append)
    surface.on_ready(readiness.append)

    assert await surface.navigate("https://example.com/", timeout_s=0.05)
    assert surface.get_url() == "https://example.com/"
    assert navigated == ["did-navigate"]
    assert readiness == ["dom-ready"]

    unsubscribe()
    await surface.navigate("https://example.org/", timeout_s=0.05)
    assert navigated == ["did-navigate"]


@pytest.mark.asyncio
async def test_settle_observes_url_change_without_events() -> None:
    host = FakeHost("https://example.com/")
    surface = make_surface(host)
    watch = surface.watch(("did-navigate",))

    async def change_url() -> None:
        await asyncio.sleep(0.02)
        host.url = "https://example.com/next"

    mutator = asyncio.create_task(change_url())
    assert await surface.wait_for_settle(watch, "https://example.com/", timeout_s=0.5)
    await mutator


@pytest.mark.asyncio
async def test_settle_times_out_quietly() -> None:
    host = FakeHost("https://example.com/")
    surface = make_surface(host)
    assert not await surface.wait_for_settle(surface.watch(), "https://example.com/", timeout_s=0.05)


def test_not_ready_message_detection() -> None:
    assert is_not_ready_message("Execution context was destroyed, most likely because of a navigation")
    assert not is_not_ready_message("ReferenceError: foo is not defined")


@pytest.mark.asyncio
async def test_executor_reports_one_result_per_action() -> None:
    host = FakeHost("https://example.com/")
    executor = ActionPlanExecutor(make_surface(host))
    plan = ActionPlan(
        actions=[
            PageAction(type="focus", selector="input[name=q]"),
            PageAction(type="type", selector="input[name=q]", text="hello"),
            PageAction(type="press", key="Enter"),
        ]
    )
    execution = await executor.execute(plan)
    assert execution.attempted == len(plan.actions) == len(execution.results)
    assert execution.executed == 3
    assert [result.action for result in execution.results] == plan.actions
    assert host.plans[0][1] == {"type": "type", "selector": "input[name=q]", "text": "hello"}
    assert executor.depth == 0


@pytest.mark.asyncio
async def test_executor_pads_missing_and_unknown_statuses() -> None:
    host = FakeHost("https://example.com/")
    executor = ActionPlanExecutor(make_surface(host))
    plan = ActionPlan(actions=[PageAction(type="click", selector="#a"), PageAction(type="click", selector="#b")])

    async def short_answer(script: str) -> list[dict[str, str]]:
        return [{"status": "exploded"}]

    host.execute_javascript = short_answer  # type: ignore[method-assign]
    execution = await executor.execute(plan)
    assert [result.status for result in execution.results] == ["skipped", "skipped"]
    assert execution.executed == 0
    assert execution.attempted == 2


@pytest.mark.asyncio
async def test_executor_swallows_surface_failures() -> None:
    host = FakeHost("https://example.com/")
    host.broken = True
    executor = ActionPlanExecutor(make_surface(host))
    execution = await executor.execute(ActionPlan(actions=[PageAction(type="click", selector="#a")]))
    assert (execution.executed, execution.attempted, execution.results) == (0, 0, [])
    assert not executor.busy


@pytest.mark.asyncio
async def test_empty_plan_does_not_touch_the_page() -> None:
    host = FakeHost("https://example.com/")
    execution = await ActionPlanExecutor(make_surface(host)).execute(ActionPlan())
    assert execution.attempted == 0
    assert host.scripts == []


def test_navigation_capable_plans() -> None:
    assert action_plan_may_navigate(ActionPlan(actions=[PageAction(type="select", selector="#size", value="M")]))
    assert not action_plan_may_navigate(
        ActionPlan(actions=[PageAction(type="scroll", by=400), PageAction(type="type", selector="#q", text="a")])
    )
