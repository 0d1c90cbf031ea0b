"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from pathlib import Path
from typing import TypeVar

from serterm.core.errors import ScriptError, SettingsError, SettingsLoadError, TransportError
from serterm.core.log_ring import LogListener, LogRing
from serterm.core.model import DataFormat, ExecutionResult, LogEntry, SavedCommand, SerialConfig
from serterm.core.runner import ScriptRunner
from serterm.core.script_executor import ProgressCallback
from serterm.core.script_parser import ValidationResult, validate
from serterm.core.session import TransportSession
from serterm.core.settings import Settings, delete_script, load_scripts, load_settings, save_script
from serterm.transports.base import DevicePlatform
from serterm.transports.serial_port import PortInfo, SerialPlatform

LOGGER = logging.getLogger(__name__)
T = TypeVar("T")


class TerminalService:
    def __init__(
        self,
        *,
        platform: DevicePlatform | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings if settings is not None else load_settings()
        loaded = load_scripts()
        self.scripts = loaded.scripts
        self.load_warnings = loaded.warnings
        self.platform = platform or SerialPlatform()
        self.log = LogRing()

    def list_ports(self) -> list[PortInfo]:
        list_ports = getattr(self.platform, "list_ports", None)
        if list_ports is None:
            return []
        return list_ports()

    def list_scripts(self) -> list[str]:
        return sorted(self.scripts)

    def list_commands(self) -> list[SavedCommand]:
        return sorted(self.settings.commands, key=lambda c: c.name)

    def serial_config(
        self,
        *,
        baud_rate: int | None = None,
        data_bits: int | None = None,
        stop_bits: int | None = None,
        parity: str | None = None,
        flow_control: str | None = None,
    ) -> SerialConfig:
        overrides = {
            "baud_rate": baud_rate,
            "data_bits": data_bits,
            "stop_bits": stop_bits,
            "parity": parity,
            "flow_control": flow_control,
        }
        return replace(self.settings.serial, **{k: v for k, v in overrides.items() if v is not None})

    def resolve_script(self, path: Path | None = None, name: str | None = None) -> str:
        if path is not None and name is not None:
            raise ScriptError("Pass either a script file or a saved script name, not both")
        if path is not None:
            try:
                return path.read_text(encoding="utf-8")
            except OSError as exc:
                raise SettingsLoadError(f"Could not read script file {path}: {exc}") from exc
        if name is not None:
            script = self.scripts.get(name)
            if script is None:
                available = ", ".join(self.list_scripts()) or "<none>"
                raise ScriptError(f"Unknown script '{name}'. Available: {available}")
            return script
        raise ScriptError("No script given. Pass a script file or --script NAME")

    def validate_script(self, script: str) -> ValidationResult:
        return validate(script)

    def save_script(self, name: str, script: str) -> Path:
        result = validate(script)
        if not result.valid:
            raise ScriptError(f"Refusing to save invalid script '{name}': {result.error}")
        path = save_script(name, script)
        self.scripts[name] = script
        LOGGER.info("Saved script '%s' to %s", name, path)
        return path

    def delete_script(self, name: str) -> bool:
        deleted = delete_script(name)
        if deleted:
            self.scripts = load_scripts().scripts
        return deleted

    def resolve_command(self, name: str) -> SavedCommand:
        command = self.settings.command(name)
        if command is None:
            available = ", ".join(c.name for c in self.list_commands()) or "<none>"
            raise SettingsError(f"Unknown command '{name}'. Available: {available}")
        return command

    def run_script(
        self,
        script: str,
        *,
        config: SerialConfig | None = None,
        port: str | None = None,
        fmt: DataFormat = "text",
        line_ending: str = "none",
        settle_s: float = 0.0,
        on_entry: LogListener | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ExecutionResult:
        async def _run(session: TransportSession) -> ExecutionResult:
            runner = ScriptRunner(session, on_progress=on_progress)
            result = await runner.run(script, fmt=fmt, line_ending=line_ending)
            if settle_s > 0:
                await asyncio.sleep(settle_s)
            return result

        return asyncio.run(self._with_session(_run, config=config, port=port, on_entry=on_entry))

    def send(
        self,
        data: str,
        *,
        fmt: DataFormat = "text",
        line_ending: str = "none",
        config: SerialConfig | None = None,
        port: str | None = None,
        listen_s: float = 0.0,
        on_entry: LogListener | None = None,
    ) -> LogEntry:
        async def _send(session: TransportSession) -> LogEntry:
            entry = await session.send_data(data, fmt, line_ending=line_ending)
            if listen_s > 0:
                await asyncio.sleep(listen_s)
            return entry

        return asyncio.run(self._with_session(_send, config=config, port=port, on_entry=on_entry))

    def monitor(
        self,
        *,
        config: SerialConfig | None = None,
        port: str | None = None,
        duration_s: float | None = None,
        on_entry: LogListener | None = None,
    ) -> int:
        async def _monitor(session: TransportSession) -> int:
            received = 0

            def _count(entry: LogEntry) -> None:
                nonlocal received
                if entry.direction == "received":
                    received += 1

            unsubscribe = self.log.subscribe(_count)
            try:
                await asyncio.wait_for(session.wait_closed(), timeout=duration_s)
            except TimeoutError:
                pass
            finally:
                unsubscribe()
            if session.read_error is not None:
                raise TransportError(f"Reading failed: {session.read_error}") from session.read_error
            return received

        return asyncio.run(self._with_session(_monitor, config=config, port=port, on_entry=on_entry))

    def export_log(self, path: Path, display: DataFormat = "text") -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.log.export_text(display) + "\n", encoding="utf-8")
        except OSError as exc:
            raise SettingsLoadError(f"Could not write log file {path}: {exc}") from exc
        return path

    async def _with_session(
        self,
        work: Callable[[TransportSession], Awaitable[T]],
        *,
        config: SerialConfig | None,
        port: str | None,
        on_entry: LogListener | None,
    ) -> T:
        session = TransportSession(self.platform, log=self.log)
        unsubscribe = self.log.subscribe(on_entry) if on_entry is not None else None
        try:
            await session.connect(config or self.settings.serial, port=port or self.settings.port)
            async with session:
                return await work(session)
        finally:
            if unsubscribe is not None:
                unsubscribe()
