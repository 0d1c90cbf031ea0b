"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from serterm.core.model import SerialConfig


class Device(Protocol):
    name: str

    async def open(self, config: SerialConfig) -> None:
        """Open the device with the given line settings."""

    async def read(self) -> bytes | None:
        """Return the next inbound chunk, b"" when nothing arrived, or None at end of data."""

    def cancel_read(self) -> None:
        """Interrupt a pending `read` from another task."""

    async def write(self, data: bytes) -> None:
        """Write all of `data` to the device."""

    async def close(self) -> None:
        """Close the device."""


class DevicePlatform(Protocol):
    def request_device(self, hint: str | None = None) -> Device:
        """Select a device, raising DeviceUnavailableError when none fits."""
