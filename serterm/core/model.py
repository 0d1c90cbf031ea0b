"""Core data models used across parser, executor, session, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Union

Direction = Literal["sent", "received"]
DataFormat = Literal["text", "hex"]
Parity = Literal["none", "even", "odd"]
FlowControl = Literal["none", "hardware"]

BAUD_RATES = (300, 1200, 2400, 4800, 9600, 19200, 38400, 57600, 115200, 230400, 460800, 921600)
DATA_BITS = (7, 8)
STOP_BITS = (1, 2)
PARITIES = ("none", "even", "odd")
FLOW_CONTROLS = ("none", "hardware")


@dataclass(frozen=True)
class SerialConfig:
    baud_rate: int = 115200
    data_bits: int = 8
    stop_bits: int = 1
    parity: Parity = "none"
    flow_control: FlowControl = "none"


@dataclass(frozen=True)
class Send:
    value: str
    line: int = 0


@dataclass(frozen=True)
class Delay:
    milliseconds: int
    line: int = 0


@dataclass(frozen=True)
class LoopStart:
    count: int
    end_index: int = -1
    line: int = 0


@dataclass(frozen=True)
class LoopEnd:
    start_index: int
    line: int = 0


ScriptCommand = Union[Send, Delay, LoopStart, LoopEnd]
CommandSequence = tuple[ScriptCommand, ...]


@dataclass(frozen=True)
class ExecutionResult:
    steps: int
    sends: int
    total: int


@dataclass(frozen=True)
class LogEntry:
    id: int
    timestamp: float
    direction: Direction
    data: bytes
    text: str


@dataclass(frozen=True)
class SavedCommand:
    name: str
    data: str
    format: DataFormat = "text"
    description: str | None = None


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
