"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import typer

from serterm.core.codec import LINE_ENDINGS, bytes_to_hex, format_bytes, format_log_line
from serterm.core.errors import ExecutionError, SertermError
from serterm.core.model import LogEntry, SerialConfig
from serterm.core.service import TerminalService

app = typer.Typer(help="Serial port terminal with SEND/DELAY/LOOP scripting")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> TerminalService:
    service = TerminalService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _config(
    service: TerminalService,
    baud: int | None,
    data_bits: int | None,
    stop_bits: int | None,
    parity: str | None,
    flow_control: str | None,
) -> SerialConfig:
    return service.serial_config(
        baud_rate=baud,
        data_bits=data_bits,
        stop_bits=stop_bits,
        parity=parity,
        flow_control=flow_control,
    )


def _echo_entries(hex_display: bool) -> Callable[[LogEntry], None]:
    def _echo(entry: LogEntry) -> None:
        typer.echo(format_log_line(entry, "hex" if hex_display else "text"))

    return _echo


def _echo_progress(current: int, total: int) -> None:
    typer.echo(f"[step {current}/{total}]", err=True)


def _check_line_ending(line_ending: str) -> None:
    if line_ending not in LINE_ENDINGS:
        allowed = ", ".join(LINE_ENDINGS)
        raise typer.BadParameter(f"Allowed: {allowed}", param_hint="--line-ending")


def _write_log(service: TerminalService, log_file: Path | None, hex_display: bool) -> None:
    if log_file is None:
        return
    try:
        path = service.export_log(log_file, "hex" if hex_display else "text")
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        return
    typer.echo(f"Log written to {path} ({len(service.log)} entries)", err=True)


@app.command("ports")
def list_ports() -> None:
    """List serial ports visible to this machine."""
    try:
        service = _build_service()
        ports = service.list_ports()
        if not ports:
            typer.echo("No serial ports found")
            return

        for port in ports:
            typer.echo(f"{port.device} {port.description} [{port.hwid}]")
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("validate")
def validate_script(script_file: Path = typer.Argument(..., exists=True, dir_okay=False)) -> None:
    """Check a script for syntax errors without connecting."""
    try:
        service = _build_service()
        result = service.validate_script(service.resolve_script(path=script_file))
        if not result.valid:
            typer.echo(f"Error: {result.error}", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"OK ({result.commands} commands)")
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("run")
def run_script(
    script_file: Path | None = typer.Argument(None, exists=True, dir_okay=False),
    script: str | None = typer.Option(None, "--script", "-s", help="Saved script name"),
    hex_payload: bool = typer.Option(False, "--hex", help="Treat SEND values as hex"),
    line_ending: str = typer.Option("none", "--line-ending", help="none, LF, CR or CRLF after each SEND"),
    settle: float = typer.Option(0.5, "--settle", help="Seconds to keep reading after the script ends"),
    show_progress: bool = typer.Option(False, "--progress", help="Print each step as it starts"),
    hex_display: bool = typer.Option(False, "--hex-display", help="Show log data as hex"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Export the log to this file"),
    port: str | None = typer.Option(None, "--port", "-p", help="Device path or partial name"),
    baud: int | None = typer.Option(None, "--baud", "-b", help="Baud rate"),
    data_bits: int | None = typer.Option(None, "--data-bits", help="7 or 8"),
    stop_bits: int | None = typer.Option(None, "--stop-bits", help="1 or 2"),
    parity: str | None = typer.Option(None, "--parity", help="none, even or odd"),
    flow_control: str | None = typer.Option(None, "--flow-control", help="none or hardware"),
) -> None:
    """Connect, run a script, and print the traffic log."""
    _check_line_ending(line_ending)
    service: TerminalService | None = None
    try:
        service = _build_service()
        text = service.resolve_script(path=script_file, name=script)
        result = service.run_script(
            text,
            config=_config(service, baud, data_bits, stop_bits, parity, flow_control),
            port=port,
            fmt="hex" if hex_payload else "text",
            line_ending=line_ending,
            settle_s=settle,
            on_entry=_echo_entries(hex_display),
            on_progress=_echo_progress if show_progress else None,
        )
        typer.echo(f"Script finished: {result.steps} steps, {result.sends} sends", err=True)
    except ExecutionError as exc:
        typer.echo(f"Error: script stopped at {exc}", err=True)
        raise typer.Exit(code=1) from None
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
        raise typer.Exit(code=130) from None
    finally:
        if service is not None:
            _write_log(service, log_file, hex_display)


@app.command("send")
def send_data(
    data: str | None = typer.Argument(None),
    command: str | None = typer.Option(None, "--command", "-c", help="Saved command name"),
    hex_payload: bool = typer.Option(False, "--hex", help="DATA is hex, e.g. '01 02 0A'"),
    line_ending: str = typer.Option("none", "--line-ending", help="none, LF, CR or CRLF"),
    listen: float = typer.Option(1.0, "--listen", help="Seconds to print replies after sending"),
    hex_display: bool = typer.Option(False, "--hex-display", help="Show log data as hex"),
    port: str | None = typer.Option(None, "--port", "-p", help="Device path or partial name"),
    baud: int | None = typer.Option(None, "--baud", "-b", help="Baud rate"),
    data_bits: int | None = typer.Option(None, "--data-bits", help="7 or 8"),
    stop_bits: int | None = typer.Option(None, "--stop-bits", help="1 or 2"),
    parity: str | None = typer.Option(None, "--parity", help="none, even or odd"),
    flow_control: str | None = typer.Option(None, "--flow-control", help="none or hardware"),
) -> None:
    """Send one payload (or a saved command) and print replies.

    Line endings apply to text payloads only.
    """
    _check_line_ending(line_ending)
    if (data is None) == (command is None):
        typer.echo("Error: pass either DATA or --command NAME", err=True)
        raise typer.Exit(code=1)
    try:
        service = _build_service()
        fmt = "hex" if hex_payload else "text"
        if command is not None:
            saved = service.resolve_command(command)
            data, fmt = saved.data, saved.format
        entry = service.send(
            data,
            fmt=fmt,
            line_ending=line_ending if fmt == "text" else "none",
            config=_config(service, baud, data_bits, stop_bits, parity, flow_control),
            port=port,
            listen_s=listen,
            on_entry=_echo_entries(hex_display),
        )
        typer.echo(f"Sent {format_bytes(len(entry.data))}: {bytes_to_hex(entry.data)}", err=True)
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("monitor")
def monitor(
    duration: float | None = typer.Option(None, "--duration", "-d", help="Stop after this many seconds"),
    hex_display: bool = typer.Option(False, "--hex-display", help="Show log data as hex"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Export the log to this file"),
    port: str | None = typer.Option(None, "--port", "-p", help="Device path or partial name"),
    baud: int | None = typer.Option(None, "--baud", "-b", help="Baud rate"),
    data_bits: int | None = typer.Option(None, "--data-bits", help="7 or 8"),
    stop_bits: int | None = typer.Option(None, "--stop-bits", help="1 or 2"),
    parity: str | None = typer.Option(None, "--parity", help="none, even or odd"),
    flow_control: str | None = typer.Option(None, "--flow-control", help="none or hardware"),
) -> None:
    """Print everything the device sends until Ctrl-C or --duration."""
    service: TerminalService | None = None
    try:
        service = _build_service()
        received = service.monitor(
            config=_config(service, baud, data_bits, stop_bits, parity, flow_control),
            port=port,
            duration_s=duration,
            on_entry=_echo_entries(hex_display),
        )
        typer.echo(f"Received {received} chunks", err=True)
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
    finally:
        if service is not None:
            _write_log(service, log_file, hex_display)


@app.command("scripts")
def list_scripts() -> None:
    """List saved scripts."""
    try:
        service = _build_service()
        names = service.list_scripts()
        if not names:
            typer.echo("No scripts saved")
            return
        for name in names:
            result = service.validate_script(service.scripts[name])
            status = f"{result.commands} commands" if result.valid else f"invalid: {result.error}"
            typer.echo(f"{name}: {status}")
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("commands")
def list_commands() -> None:
    """List saved commands from the settings file."""
    try:
        service = _build_service()
        commands = service.list_commands()
        if not commands:
            typer.echo("No commands saved")
            return
        for saved in commands:
            line = f"{saved.name} [{saved.format}]: {saved.data}"
            if saved.description:
                line += f"  # {saved.description}"
            typer.echo(line)
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("save-script")
def save_script(
    name: str,
    script_file: Path = typer.Argument(..., exists=True, dir_okay=False),
) -> None:
    """Validate a script file and save it under NAME."""
    try:
        service = _build_service()
        path = service.save_script(name, service.resolve_script(path=script_file))
        typer.echo(f"Saved '{name}' to {path}")
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("delete-script")
def delete_script(name: str) -> None:
    """Delete a user script saved under NAME."""
    try:
        service = _build_service()
        if not service.delete_script(name):
            typer.echo(f"Error: no user script named '{name}'", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"Deleted '{name}'")
    except SertermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
