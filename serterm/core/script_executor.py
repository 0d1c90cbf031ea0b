"""Stack-based interpreter for parsed command sequences."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from serterm.core.errors import (
    EmptyScriptError,
    ExecutionCancelledError,
    RunawayExecutionError,
    SendFailedError,
    UnbalancedLoopError,
)
from serterm.core.model import Delay, ExecutionResult, LoopEnd, LoopStart, ScriptCommand, Send

MAX_STEPS = 1_000_000
_STOP_POLL_S = 0.05
LOGGER = logging.getLogger(__name__)

SendCallback = Callable[[str], Awaitable[object]]
ProgressCallback = Callable[[int, int], None]
StopCheck = Callable[[], bool]
SleepFunc = Callable[[float], Awaitable[object]]


@dataclass
class ExecutionFrame:
    start_index: int
    target_count: int
    completed: int = 0


async def execute(
    commands: Sequence[ScriptCommand],
    send: SendCallback,
    *,
    on_progress: ProgressCallback | None = None,
    should_stop: StopCheck | None = None,
    sleep: SleepFunc = asyncio.sleep,
    max_steps: int = MAX_STEPS,
) -> ExecutionResult:
    """Run `commands`, awaiting `send` for every SEND step.

    `should_stop` is polled before each step and while delaying; a stop is
    reported as `ExecutionCancelledError` at the index that would have run
    next, or at the DELAY it cut short. `on_progress(index + 1, total)` is called before each step runs.
    """
    total = len(commands)
    if total == 0:
        raise EmptyScriptError("No commands to execute")

    index = 0
    steps = 0
    sends = 0
    frames: list[ExecutionFrame] = []

    while index < total:
        if should_stop is not None and should_stop():
            raise ExecutionCancelledError("execution cancelled", index=index, total=total)

        steps += 1
        if steps > max_steps:
            raise RunawayExecutionError(
                f"exceeded {max_steps} steps (possible runaway loop)", index=index, total=total
            )

        command = commands[index]
        if on_progress is not None:
            on_progress(index + 1, total)

        if isinstance(command, Send):
            try:
                await send(command.value)
            except Exception as exc:
                raise SendFailedError(exc, index=index, total=total) from exc
            sends += 1
            index += 1
        elif isinstance(command, Delay):
            await _delay(command.milliseconds, sleep, should_stop)
            if should_stop is not None and should_stop():
                raise ExecutionCancelledError("execution cancelled during delay", index=index, total=total)
            index += 1
        elif isinstance(command, LoopStart):
            frames.append(ExecutionFrame(start_index=index, target_count=command.count))
            index += 1
        elif isinstance(command, LoopEnd):
            if not frames:
                raise UnbalancedLoopError("END without an open LOOP", index=index, total=total)
            frame = frames[-1]
            if command.start_index != frame.start_index:
                raise UnbalancedLoopError(
                    f"END pairs with command {command.start_index + 1}, open LOOP is command {frame.start_index + 1}",
                    index=index,
                    total=total,
                )
            frame.completed += 1
            if frame.completed < frame.target_count:
                index = frame.start_index + 1
            else:
                frames.pop()
                index += 1
        else:
            raise UnbalancedLoopError(
                f"unknown command type {type(command).__name__}", index=index, total=total
            )

    if frames:
        raise UnbalancedLoopError(
            f"{len(frames)} loop(s) still open at end of script", index=total - 1, total=total
        )

    LOGGER.debug("Script finished after %d steps (%d sends)", steps, sends)
    return ExecutionResult(steps=steps, sends=sends, total=total)


async def _delay(milliseconds: int, sleep: SleepFunc, should_stop: StopCheck | None) -> None:
    if should_stop is None:
        await sleep(milliseconds / 1000)
        return

    remaining = milliseconds / 1000
    while remaining > 0 and not should_stop():
        step = min(remaining, _STOP_POLL_S)
        await sleep(step)
        remaining -= step
