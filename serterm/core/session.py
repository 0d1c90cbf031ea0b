"""Connection lifecycle for a single byte-stream device.

A session moves through DISCONNECTED -> CONNECTING -> CONNECTED -> CLOSING ->
DISCONNECTED. While connected, exactly one background task pulls inbound
chunks into the log ring, and writes are serialized through a writer lock so
manual sends and script sends never interleave.
"""

from __future__ import annotations

import asyncio
import logging

from serterm.core.codec import encode_payload
from serterm.core.errors import (
    DeviceUnavailableError,
    EmptyPayloadError,
    NotConnectedError,
    OpenFailedError,
    SessionBusyError,
    TransportWriteError,
)
from serterm.core.log_ring import LogRing
from serterm.core.model import (
    DATA_BITS,
    FLOW_CONTROLS,
    PARITIES,
    STOP_BITS,
    ConnectionState,
    DataFormat,
    LogEntry,
    SerialConfig,
)
from serterm.transports.base import Device, DevicePlatform

LOGGER = logging.getLogger(__name__)


class TransportSession:
    def __init__(
        self,
        platform: DevicePlatform,
        *,
        log: LogRing | None = None,
        close_timeout_s: float = 2.0,
    ) -> None:
        self.platform = platform
        self.log = log if log is not None else LogRing()
        self.close_timeout_s = close_timeout_s
        self.config: SerialConfig | None = None
        self.device: Device | None = None
        self.read_error: BaseException | None = None
        self._state = ConnectionState.DISCONNECTED
        self._lifecycle_lock = asyncio.Lock()
        self._reader_lock = asyncio.Lock()
        self._writer_lock = asyncio.Lock()
        self._stop_reading = asyncio.Event()
        self._read_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def connect(self, config: SerialConfig, *, port: str | None = None) -> None:
        async with self._lifecycle_lock:
            if self._state is not ConnectionState.DISCONNECTED:
                name = self.device.name if self.device is not None else "<unknown>"
                raise SessionBusyError(f"Session already holds {name} ({self._state.value})")

            self._state = ConnectionState.CONNECTING
            try:
                _check_config(config)
                device = self.platform.request_device(port)
                try:
                    await device.open(config)
                except (DeviceUnavailableError, OpenFailedError):
                    raise
                except Exception as exc:
                    raise OpenFailedError(f"Could not open {device.name}: {exc}", cause=exc) from exc
            except BaseException:
                self._state = ConnectionState.DISCONNECTED
                raise

            self.device = device
            self.config = config
            self.read_error = None
            self._stop_reading = asyncio.Event()
            self._state = ConnectionState.CONNECTED
            self._read_task = asyncio.create_task(self._read_loop(device), name=f"serterm-read-{device.name}")
            LOGGER.info(
                "Connected to %s at %d baud (%d%s%d, flow=%s)",
                device.name,
                config.baud_rate,
                config.data_bits,
                config.parity[0].upper(),
                config.stop_bits,
                config.flow_control,
            )

    async def send(self, data: bytes) -> LogEntry:
        if self._state is not ConnectionState.CONNECTED:
            raise NotConnectedError("Serial port is not connected")
        if len(data) == 0:
            raise EmptyPayloadError("Refusing to send an empty payload")

        async with self._writer_lock:
            device = self.device
            if self._state is not ConnectionState.CONNECTED or device is None:
                raise NotConnectedError("Serial port disconnected before the write started")
            try:
                await device.write(bytes(data))
            except TransportWriteError:
                raise
            except Exception as exc:
                raise TransportWriteError(f"Write to {device.name} failed: {exc}") from exc
            return self.log.add("sent", data)

    async def send_data(self, data: str, fmt: DataFormat = "text", *, line_ending: str = "none") -> LogEntry:
        return await self.send(encode_payload(data, fmt, line_ending=line_ending))

    async def disconnect(self) -> None:
        async with self._lifecycle_lock:
            if self._state is ConnectionState.DISCONNECTED:
                return

            self._state = ConnectionState.CLOSING
            device, self.device = self.device, None
            read_task, self._read_task = self._read_task, None
            self._stop_reading.set()

            try:
                if device is not None:
                    try:
                        device.cancel_read()
                    except Exception as exc:
                        LOGGER.warning("Cancelling read on %s failed: %s", device.name, exc)

                if read_task is not None:
                    await self._finish_read_task(read_task)

                async with self._writer_lock:
                    if device is not None:
                        try:
                            await device.close()
                        except Exception as exc:
                            LOGGER.warning("Closing %s failed: %s", device.name, exc)
            finally:
                self._state = ConnectionState.DISCONNECTED
            LOGGER.info("Disconnected from %s", device.name if device is not None else "<unknown>")

    async def wait_closed(self) -> None:
        """Wait until the read loop ends, either by disconnect or end of data."""
        task = self._read_task
        if task is not None:
            await asyncio.shield(task)

    async def __aenter__(self) -> TransportSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    async def _finish_read_task(self, task: asyncio.Task[None]) -> None:
        done, _ = await asyncio.wait({task}, timeout=self.close_timeout_s)
        if not done:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                LOGGER.warning("Read loop ended with error during disconnect: %s", exc)

    async def _read_loop(self, device: Device) -> None:
        async with self._reader_lock:
            try:
                while not self._stop_reading.is_set():
                    chunk = await device.read()
                    if chunk is None:
                        LOGGER.info("End of data from %s", device.name)
                        break
                    if self._stop_reading.is_set():
                        break
                    if chunk:
                        self.log.add("received", chunk)
            except asyncio.CancelledError:
                LOGGER.debug("Read loop on %s cancelled", device.name)
                raise
            except Exception as exc:
                if self._stop_reading.is_set():
                    LOGGER.debug("Read on %s interrupted by disconnect: %s", device.name, exc)
                else:
                    self.read_error = exc
                    LOGGER.error("Reading from %s failed: %s", device.name, exc)


def _check_config(config: SerialConfig) -> None:
    if config.baud_rate <= 0:
        raise OpenFailedError(f"Invalid baud rate {config.baud_rate}")
    if config.data_bits not in DATA_BITS:
        raise OpenFailedError(f"Invalid data bits {config.data_bits} (allowed: 7, 8)")
    if config.stop_bits not in STOP_BITS:
        raise OpenFailedError(f"Invalid stop bits {config.stop_bits} (allowed: 1, 2)")
    if config.parity not in PARITIES:
        raise OpenFailedError(f"Invalid parity '{config.parity}' (allowed: {', '.join(PARITIES)})")
    if config.flow_control not in FLOW_CONTROLS:
        raise OpenFailedError(
            f"Invalid flow control '{config.flow_control}' (allowed: {', '.join(FLOW_CONTROLS)})"
        )
