from __future__ import annotations

import asyncio
import logging

from ..errors import TurnCancelled
from ..logging import clear_turn_context, set_turn_context
from ..types import ChatMessage, TurnResult
from .agent import CancellationToken, CopilotAgent, MessageSink
from .skills import SkillRefiner

logger = logging.getLogger(__name__)


class CopilotSession:
    """A conversation with at most one goal loop running against the page."""

    def __init__(
        self,
        agent: CopilotAgent,
        *,
        refiner: SkillRefiner | None = None,
        conversation_id: str | None = None,
        on_message: MessageSink | None = None,
    ) -> None:
        self._agent = agent
        self._refiner = refiner
        self._conversation_id = conversation_id
        self._on_message = on_message
        self._transcript: list[ChatMessage] = []
        self._token: CancellationToken | None = None
        self._task: asyncio.Task[TurnResult] | None = None

    @property
    def transcript(self) -> list[ChatMessage]:
        return list(self._transcript)

    @property
    def busy(self) -> bool:
        running = self._task is not None and not self._task.done()
        return running or self._agent.executor.busy

    def _record(self, message: ChatMessage) -> None:
        self._transcript.append(message)
        if self._on_message is not None:
            self._on_message(message)

    def _last_assistant_text(self) -> str:
        for message in reversed(self._transcript):
            if message.role == "assistant" and message.kind == "text":
                return message.content
        return ""

    async def submit(self, message: str) -> TurnResult:
        """Cancel whatever turn is running and run ``message`` as the new one."""

        await self._cancel_current()
        last_assistant = self._last_assistant_text()
        self._record(ChatMessage(role="user", content=message))
        token = CancellationToken()
        self._token = token
        task = asyncio.get_running_loop().create_task(self._run(message, last_assistant, token))
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            return TurnResult(outcome="cancelled")

    async def _run(self, message: str, last_assistant: str, token: CancellationToken) -> TurnResult:
        if self._conversation_id:
            set_turn_context(conversation_id=self._conversation_id)
        try:
            return await self._agent.run_turn(
                message,
                last_assistant_message=last_assistant,
                token=token,
                sink=self._record,
            )
        except TurnCancelled:
            logger.info("Turn cancelled")
            return TurnResult(outcome="cancelled")
        except Exception as exc:  # noqa: BLE001 - surfaced to the user as a chat message
            logger.exception("Turn failed")
            error = ChatMessage(role="assistant", content=f"❌ Error: {exc}")
            if not token.cancelled:
                self._record(error)
            return TurnResult(outcome="error", messages=[error])
        finally:
            clear_turn_context()

    async def _cancel_current(self) -> None:
        if self._token is not None:
            self._token.cancel()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._task = None

    async def stop(self) -> None:
        """Cancel the running turn and stop any page load in progress."""

        was_running = self._task is not None and not self._task.done()
        await self._cancel_current()
        if was_running:
            logger.info("Stopped current turn")
        await self._agent.surface.stop()

    async def close(self) -> None:
        await self._cancel_current()
        if self._refiner is not None:
            await self._refiner.drain()
