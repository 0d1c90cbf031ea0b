"""Domain-specific errors for serterm."""

from __future__ import annotations


class SertermError(Exception):
    """Base error for serterm."""


class FormatError(SertermError):
    """Raised when operator data cannot be converted to bytes."""


class HexFormatError(FormatError):
    """Raised when a hexadecimal string cannot be converted to bytes."""


class ScriptError(SertermError):
    """Base error for script parsing and execution."""


class EmptyScriptError(ScriptError):
    """Raised when a script or command sequence has nothing to run."""


class ScriptSyntaxError(ScriptError):
    """Raised when a script line cannot be parsed."""

    def __init__(self, message: str, *, line: int | None = None) -> None:
        self.line = line
        self.message = message
        super().__init__(f"line {line}: {message}" if line is not None else message)


class ScriptValidationError(ScriptSyntaxError):
    """Raised when a numeric script argument is outside its allowed range."""


class ScriptBusyError(ScriptError):
    """Raised when a script is started while another one is running."""


class ExecutionError(ScriptError):
    """Base error for failures while executing a command sequence.

    `index` is the 0-based position of the failing command.
    """

    def __init__(self, message: str, *, index: int, total: int) -> None:
        self.index = index
        self.total = total
        self.message = message
        super().__init__(f"step {index + 1} of {total}: {message}")


class SendFailedError(ExecutionError):
    """Raised when the send operation fails during script execution."""

    def __init__(self, cause: BaseException, *, index: int, total: int) -> None:
        self.cause = cause
        super().__init__(f"send failed: {cause}", index=index, total=total)


class ExecutionCancelledError(ExecutionError):
    """Raised when a stop request is honored at a step boundary."""


class RunawayExecutionError(ExecutionError):
    """Raised when execution exceeds the step limit."""


class UnbalancedLoopError(ExecutionError):
    """Raised when loop bookkeeping does not match the command sequence."""


class TransportError(SertermError):
    """Base transport error."""


class NotConnectedError(TransportError):
    """Raised when sending without an open connection."""


class EmptyPayloadError(TransportError):
    """Raised when asked to send zero bytes."""


class DeviceUnavailableError(TransportError):
    """Raised when no device is selected or available."""


class OpenFailedError(TransportError):
    """Raised when the platform rejects the device or its configuration."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class SessionBusyError(TransportError):
    """Raised when connecting a session that already holds a device."""


class TransportWriteError(TransportError):
    """Raised when writing to the device fails."""


class SettingsError(SertermError):
    """Base error for settings and saved scripts."""


class SettingsLoadError(SettingsError):
    """Raised when reading settings or script files fails."""


class SettingsValidationError(SettingsError):
    """Raised when a settings file does not conform to schema or semantics."""
