"""Stable public API for building tooling on top of serterm.

This module is the supported integration surface for third-party callers.
The synchronous `Client` covers one-shot tasks (run a script, send a
payload); async callers that need a long-lived connection use
`TransportSession` and `ScriptRunner` directly.
"""

from __future__ import annotations

from pathlib import Path

from serterm.core.codec import (
    bytes_to_hex,
    bytes_to_text,
    encode_payload,
    format_bytes,
    format_log_line,
    format_timestamp,
    hex_to_bytes,
    is_valid_hex,
    text_to_bytes,
)
from serterm.core.errors import (
    DeviceUnavailableError,
    EmptyPayloadError,
    EmptyScriptError,
    ExecutionCancelledError,
    ExecutionError,
    FormatError,
    HexFormatError,
    NotConnectedError,
    OpenFailedError,
    RunawayExecutionError,
    ScriptBusyError,
    ScriptError,
    ScriptSyntaxError,
    ScriptValidationError,
    SendFailedError,
    SertermError,
    SessionBusyError,
    SettingsError,
    SettingsLoadError,
    SettingsValidationError,
    TransportError,
    TransportWriteError,
    UnbalancedLoopError,
)
from serterm.core.log_ring import LogListener, LogRing
from serterm.core.model import (
    CommandSequence,
    ConnectionState,
    DataFormat,
    Delay,
    ExecutionResult,
    LogEntry,
    LoopEnd,
    LoopStart,
    SavedCommand,
    ScriptCommand,
    Send,
    SerialConfig,
)
from serterm.core.runner import ScriptRunner
from serterm.core.script_executor import ProgressCallback, execute
from serterm.core.script_parser import ValidationResult, parse, validate
from serterm.core.service import TerminalService
from serterm.core.session import TransportSession
from serterm.core.settings import Settings
from serterm.transports.base import Device, DevicePlatform
from serterm.transports.serial_port import PortInfo, SerialPlatform

__all__ = [
    "SertermError",
    "FormatError",
    "HexFormatError",
    "ScriptError",
    "EmptyScriptError",
    "ScriptSyntaxError",
    "ScriptValidationError",
    "ScriptBusyError",
    "ExecutionError",
    "SendFailedError",
    "ExecutionCancelledError",
    "RunawayExecutionError",
    "UnbalancedLoopError",
    "TransportError",
    "NotConnectedError",
    "EmptyPayloadError",
    "DeviceUnavailableError",
    "OpenFailedError",
    "SessionBusyError",
    "TransportWriteError",
    "SettingsError",
    "SettingsLoadError",
    "SettingsValidationError",
    "CommandSequence",
    "ConnectionState",
    "Delay",
    "ExecutionResult",
    "LogEntry",
    "LoopEnd",
    "LoopStart",
    "SavedCommand",
    "ScriptCommand",
    "Send",
    "SerialConfig",
    "Settings",
    "LogRing",
    "ScriptRunner",
    "TransportSession",
    "Device",
    "DevicePlatform",
    "PortInfo",
    "SerialPlatform",
    "ValidationResult",
    "parse",
    "validate",
    "execute",
    "ProgressCallback",
    "text_to_bytes",
    "bytes_to_text",
    "hex_to_bytes",
    "bytes_to_hex",
    "is_valid_hex",
    "encode_payload",
    "format_bytes",
    "format_timestamp",
    "format_log_line",
    "Client",
]


class Client:
    """Public client for interacting with serterm core capabilities.

    A `Client` instance wraps settings, saved scripts, port discovery, and
    one-shot connect/run/disconnect cycles behind a stable API intended for
    third-party tools (GUI/TUI/services/scripts). Every call opens its own
    connection; the traffic of all calls accumulates in `log`.
    """

    def __init__(
        self,
        *,
        platform: DevicePlatform | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._service = TerminalService(platform=platform, settings=settings)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def log(self) -> LogRing:
        return self._service.log

    def list_ports(self) -> list[PortInfo]:
        return self._service.list_ports()

    def list_scripts(self) -> list[str]:
        return self._service.list_scripts()

    def list_commands(self) -> list[SavedCommand]:
        return self._service.list_commands()

    def validate_script(self, script: str) -> ValidationResult:
        return self._service.validate_script(script)

    def run_script(
        self,
        script: str,
        *,
        config: SerialConfig | None = None,
        port: str | None = None,
        fmt: DataFormat = "text",
        line_ending: str = "none",
        on_entry: LogListener | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ExecutionResult:
        return self._service.run_script(
            script,
            config=config,
            port=port,
            fmt=fmt,
            line_ending=line_ending,
            on_entry=on_entry,
            on_progress=on_progress,
        )

    def run_saved_script(
        self,
        name: str,
        *,
        config: SerialConfig | None = None,
        port: str | None = None,
        fmt: DataFormat = "text",
        line_ending: str = "none",
        on_progress: ProgressCallback | None = None,
    ) -> ExecutionResult:
        return self.run_script(
            self._service.resolve_script(name=name),
            config=config,
            port=port,
            fmt=fmt,
            line_ending=line_ending,
            on_progress=on_progress,
        )

    def send(
        self,
        data: str,
        *,
        fmt: DataFormat = "text",
        line_ending: str = "none",
        config: SerialConfig | None = None,
        port: str | None = None,
        listen_s: float = 0.0,
    ) -> LogEntry:
        return self._service.send(
            data,
            fmt=fmt,
            line_ending=line_ending,
            config=config,
            port=port,
            listen_s=listen_s,
        )

    def send_command(
        self,
        name: str,
        *,
        config: SerialConfig | None = None,
        port: str | None = None,
        listen_s: float = 0.0,
    ) -> LogEntry:
        saved = self._service.resolve_command(name)
        return self.send(saved.data, fmt=saved.format, config=config, port=port, listen_s=listen_s)

    def export_log(self, path: Path, display: DataFormat = "text") -> Path:
        return self._service.export_log(path, display)
