"""Serial port transport implementation using pyserial."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import serial
from serial.tools import list_ports

from serterm.core.errors import DeviceUnavailableError, OpenFailedError, TransportWriteError
from serterm.core.model import SerialConfig

LOGGER = logging.getLogger(__name__)

_PARITY_MAP = {
    "none": serial.PARITY_NONE,
    "even": serial.PARITY_EVEN,
    "odd": serial.PARITY_ODD,
}
_STOPBITS_MAP = {
    1: serial.STOPBITS_ONE,
    2: serial.STOPBITS_TWO,
}
_BYTESIZE_MAP = {
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}


@dataclass(frozen=True)
class PortInfo:
    device: str
    description: str
    hwid: str


class SerialDevice:
    def __init__(
        self,
        name: str,
        *,
        read_timeout_s: float = 0.2,
        write_timeout_s: float = 5.0,
        read_size: int = 4096,
    ) -> None:
        self.name = name
        self.read_timeout_s = read_timeout_s
        self.write_timeout_s = write_timeout_s
        self.read_size = read_size
        self._port: serial.Serial | None = None

    async def open(self, config: SerialConfig) -> None:
        try:
            parity = _PARITY_MAP[config.parity]
            stopbits = _STOPBITS_MAP[config.stop_bits]
            bytesize = _BYTESIZE_MAP[config.data_bits]
        except KeyError as exc:
            raise OpenFailedError(f"Unsupported serial setting {exc} for {self.name}", cause=exc) from exc

        def _open() -> serial.Serial:
            return serial.serial_for_url(
                self.name,
                baudrate=config.baud_rate,
                bytesize=bytesize,
                parity=parity,
                stopbits=stopbits,
                rtscts=config.flow_control == "hardware",
                timeout=self.read_timeout_s,
                write_timeout=self.write_timeout_s,
            )

        try:
            self._port = await asyncio.to_thread(_open)
        except (serial.SerialException, ValueError) as exc:
            raise OpenFailedError(f"Could not open {self.name}: {exc}", cause=exc) from exc

    async def read(self) -> bytes | None:
        port = self._port
        if port is None or not port.is_open:
            return None

        def _read() -> bytes:
            return port.read(max(1, min(port.in_waiting, self.read_size)))

        return await asyncio.to_thread(_read)

    def cancel_read(self) -> None:
        port = self._port
        if port is not None and port.is_open and hasattr(port, "cancel_read"):
            port.cancel_read()

    async def write(self, data: bytes) -> None:
        port = self._port
        if port is None or not port.is_open:
            raise TransportWriteError(f"{self.name} is not open")

        def _write() -> None:
            port.write(data)
            port.flush()

        try:
            await asyncio.to_thread(_write)
        except serial.SerialTimeoutException as exc:
            raise TransportWriteError(f"Write to {self.name} timed out") from exc
        except serial.SerialException as exc:
            raise TransportWriteError(f"Write to {self.name} failed: {exc}") from exc

    async def close(self) -> None:
        port, self._port = self._port, None
        if port is not None:
            await asyncio.to_thread(port.close)


class SerialPlatform:
    def __init__(self, *, read_timeout_s: float = 0.2, write_timeout_s: float = 5.0) -> None:
        self.read_timeout_s = read_timeout_s
        self.write_timeout_s = write_timeout_s

    def list_ports(self) -> list[PortInfo]:
        return [
            PortInfo(device=p.device, description=p.description or "", hwid=p.hwid or "")
            for p in sorted(list_ports.comports(), key=lambda p: p.device)
        ]

    def request_device(self, hint: str | None = None) -> SerialDevice:
        ports = self.list_ports()

        if hint:
            exact = [p for p in ports if p.device == hint]
            if exact:
                return self._device(exact[0].device)
            lowered = hint.lower()
            hinted = [
                p
                for p in ports
                if lowered in p.device.lower() or lowered in p.description.lower() or lowered in p.hwid.lower()
            ]
            if len(hinted) == 1:
                return self._device(hinted[0].device)
            if len(hinted) > 1:
                desc = ", ".join(f"{p.device} ({p.description})" for p in hinted)
                raise DeviceUnavailableError(f"Multiple ports match '{hint}': {desc}. Use the full device path.")
            # Ports that do not enumerate (pty pairs, socket:// URLs) are opened as given.
            LOGGER.debug("Port '%s' not enumerated, opening as given", hint)
            return self._device(hint)

        if not ports:
            raise DeviceUnavailableError("No serial ports found. Connect a device or pass --port.")
        if len(ports) > 1:
            desc = ", ".join(p.device for p in ports)
            raise DeviceUnavailableError(f"Multiple serial ports found: {desc}. Use --port to choose one.")
        return self._device(ports[0].device)

    def _device(self, name: str) -> SerialDevice:
        return SerialDevice(
            name,
            read_timeout_s=self.read_timeout_s,
            write_timeout_s=self.write_timeout_s,
        )
