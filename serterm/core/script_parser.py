"""Parser and validator for the SEND/DELAY/LOOP/END script language.

One command per line, keywords are case-sensitive, blank lines and lines
starting with ``#`` are ignored::

    # wake the modem
    LOOP 3
    SEND "AT"
    DELAY 500
    END

LOOP/END pairs are resolved here: every `LoopStart` carries the index of its
`LoopEnd` and vice versa, so the executor never re-derives nesting.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from serterm.core.errors import EmptyScriptError, ScriptError, ScriptSyntaxError, ScriptValidationError
from serterm.core.model import CommandSequence, Delay, LoopEnd, LoopStart, ScriptCommand, Send

MAX_DELAY_MS = 60000
MIN_LOOP_COUNT = 1
MAX_LOOP_COUNT = 10000

_COMMAND_RE = re.compile(r"^(SEND|DELAY|LOOP)(?:\s+(.*))?$")
_INT_RE = re.compile(r"^[+-]?\d+$")
_QUOTES = "\"'"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: str | None = None
    line: int | None = None
    commands: int = 0


def parse(script: str) -> CommandSequence:
    """Parse script text into a flat, loop-paired command sequence.

    Raises `ScriptSyntaxError` (or its `ScriptValidationError` subclass for
    out-of-range numbers) tagged with the 1-based source line. Nothing is
    returned unless the whole script is valid.
    """
    if not script or not script.strip():
        raise EmptyScriptError("Script is empty")

    commands: list[ScriptCommand] = []
    open_loops: list[int] = []

    for line_number, raw_line in enumerate(script.split("\n"), start=1):
        text = raw_line.strip()
        if not text or text.startswith("#"):
            continue

        if text == "END":
            if not open_loops:
                raise ScriptSyntaxError("unmatched END (no open LOOP)", line=line_number)
            start_index = open_loops.pop()
            commands[start_index] = replace(commands[start_index], end_index=len(commands))
            commands.append(LoopEnd(start_index=start_index, line=line_number))
            continue

        match = _COMMAND_RE.match(text)
        if match is None:
            raise ScriptSyntaxError(f"unknown command: {text}", line=line_number)

        keyword, argument = match.group(1), (match.group(2) or "").strip()
        if keyword == "SEND":
            commands.append(Send(value=_parse_send_data(argument, line_number), line=line_number))
        elif keyword == "DELAY":
            delay = _parse_int(argument, "delay", line_number)
            if delay < 0:
                raise ScriptValidationError(f"invalid delay: {delay} (must not be negative)", line=line_number)
            if delay > MAX_DELAY_MS:
                raise ScriptValidationError(
                    f"delay too large: {delay}ms (max {MAX_DELAY_MS}ms)", line=line_number
                )
            commands.append(Delay(milliseconds=delay, line=line_number))
        else:
            count = _parse_int(argument, "loop count", line_number)
            if count < MIN_LOOP_COUNT:
                raise ScriptValidationError(
                    f"invalid loop count: {count} (min {MIN_LOOP_COUNT})", line=line_number
                )
            if count > MAX_LOOP_COUNT:
                raise ScriptValidationError(
                    f"loop count too large: {count} (max {MAX_LOOP_COUNT})", line=line_number
                )
            open_loops.append(len(commands))
            commands.append(LoopStart(count=count, line=line_number))

    if open_loops:
        innermost = commands[open_loops[-1]]
        raise ScriptSyntaxError(
            f"missing {len(open_loops)} END (LOOP at line {innermost.line} is never closed)",
            line=innermost.line,
        )

    return tuple(commands)


def validate(script: str) -> ValidationResult:
    try:
        commands = parse(script)
    except ScriptSyntaxError as exc:
        return ValidationResult(valid=False, error=str(exc), line=exc.line)
    except ScriptError as exc:
        return ValidationResult(valid=False, error=str(exc))
    return ValidationResult(valid=True, commands=len(commands))


def _parse_send_data(argument: str, line_number: int) -> str:
    if not argument:
        raise ScriptSyntaxError("SEND is missing data", line=line_number)
    value = argument
    if value[0] in _QUOTES:
        value = value[1:]
    if value and value[-1] in _QUOTES:
        value = value[:-1]
    if not value:
        raise ScriptSyntaxError("SEND payload is empty", line=line_number)
    return value


def _parse_int(argument: str, what: str, line_number: int) -> int:
    if not argument:
        raise ScriptSyntaxError(f"missing {what}", line=line_number)
    if not _INT_RE.match(argument):
        raise ScriptSyntaxError(f"invalid {what}: {argument}", line=line_number)
    return int(argument)
