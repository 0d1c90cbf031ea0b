"""Run script text against a connected session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from serterm.core.errors import ScriptBusyError
from serterm.core.model import DataFormat, ExecutionResult
from serterm.core.script_executor import ProgressCallback, SleepFunc, execute
from serterm.core.script_parser import parse
from serterm.core.session import TransportSession

LOGGER = logging.getLogger(__name__)


class ScriptRunner:
    """Parses and executes one script at a time on behalf of an operator.

    SEND values go through `TransportSession.send_data` using `fmt`, so a
    script can carry either text or hex payloads. `stop()` takes effect at the
    next step boundary or during a delay.
    """

    def __init__(
        self,
        session: TransportSession,
        *,
        on_progress: ProgressCallback | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.session = session
        self.on_progress = on_progress
        self.sleep = sleep
        self.progress: tuple[int, int] = (0, 0)
        self._running = False
        self._stop_requested = False

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        if self._running:
            LOGGER.info("Stop requested for running script")
        self._stop_requested = True

    async def run(
        self,
        script: str,
        *,
        fmt: DataFormat = "text",
        line_ending: str = "none",
    ) -> ExecutionResult:
        if self._running:
            raise ScriptBusyError("A script is already running")

        commands = parse(script)
        self._running = True
        self._stop_requested = False
        send = self._sender(fmt, line_ending)
        LOGGER.info("Running script with %d commands", len(commands))
        try:
            return await execute(
                commands,
                send,
                on_progress=self._track_progress,
                should_stop=lambda: self._stop_requested,
                sleep=self.sleep,
            )
        finally:
            self._running = False
            self.progress = (0, 0)

    def _sender(self, fmt: DataFormat, line_ending: str) -> Callable[[str], Awaitable[object]]:
        async def _send(value: str) -> object:
            return await self.session.send_data(value, fmt, line_ending=line_ending)

        return _send

    def _track_progress(self, current: int, total: int) -> None:
        self.progress = (current, total)
        if self.on_progress is not None:
            self.on_progress(current, total)
