from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from serterm import cli
from serterm.core.errors import DeviceUnavailableError, NotConnectedError, SendFailedError
from serterm.core.log_ring import LogRing
from serterm.core.model import ExecutionResult, SavedCommand, SerialConfig
from serterm.core.script_parser import validate
from serterm.transports.serial_port import PortInfo


class FakeService:
    def __init__(self) -> None:
        self.scripts = {"probe": "SEND AT\n", "broken": "LOOP 2\n"}
        self.load_warnings = ()
        self.log = LogRing()
        self.calls: list[tuple[str, dict]] = []

    def list_ports(self):
        return [PortInfo(device="/dev/ttyUSB0", description="CP2102", hwid="USB VID:PID=10C4:EA60")]

    def list_scripts(self):
        return sorted(self.scripts)

    def list_commands(self):
        return [SavedCommand(name="reset", data="1B 52", format="hex", description="soft reset")]

    def serial_config(self, **overrides):
        return SerialConfig(**{k: v for k, v in overrides.items() if v is not None})

    def resolve_script(self, path=None, name=None):
        if path is not None:
            return Path(path).read_text(encoding="utf-8")
        return self.scripts[name]

    def validate_script(self, script):
        return validate(script)

    def resolve_command(self, name):
        return self.list_commands()[0]

    def run_script(self, script, **kwargs):
        self.calls.append(("run", {"script": script, **kwargs}))
        if kwargs.get("on_progress") is not None:
            kwargs["on_progress"](1, 1)
        kwargs["on_entry"](self.log.add("sent", b"AT"))
        return ExecutionResult(steps=1, sends=1, total=1)

    def send(self, data, **kwargs):
        self.calls.append(("send", {"data": data, **kwargs}))
        entry = self.log.add("sent", b"\x1bR")
        kwargs["on_entry"](entry)
        return entry

    def monitor(self, **kwargs):
        kwargs["on_entry"](self.log.add("received", b"hello"))
        return 1

    def export_log(self, path, display="text"):
        path.write_text(self.log.export_text(display), encoding="utf-8")
        return path

    def save_script(self, name, script):
        return Path(f"/tmp/{name}.txt")

    def delete_script(self, name):
        return name == "probe"


runner = CliRunner()


def test_ports_command(monkeypatch):
    monkeypatch.setattr(cli, "TerminalService", FakeService)
    result = runner.invoke(cli.app, ["ports"])
    assert result.exit_code == 0
    assert "/dev/ttyUSB0 CP2102" in result.stdout


def test_validate_command(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "TerminalService", FakeService)
    good = tmp_path / "good.txt"
    good.write_text("LOOP 2\nSEND a\nEND\n", encoding="utf-8")
    bad = tmp_path / "bad.txt"
    bad.write_text("SEND a\nDELAY 70000\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["validate", str(good)])
    assert result.exit_code == 0
    assert "OK (3 commands)" in result.stdout

    result = runner.invoke(cli.app, ["validate", str(bad)])
    assert result.exit_code == 1
    assert "line 2" in result.stderr


def test_run_command_passes_connection_options(monkeypatch, tmp_path):
    service = FakeService()
    monkeypatch.setattr(cli, "TerminalService", lambda: service)
    log_file = tmp_path / "log.txt"

    result = runner.invoke(
        cli.app,
        [
            "run",
            "--script",
            "probe",
            "--port",
            "/dev/ttyUSB0",
            "--baud",
            "9600",
            "--parity",
            "even",
            "--line-ending",
            "CRLF",
            "--log-file",
            str(log_file),
        ],
    )

    assert result.exit_code == 0
    assert "sent: AT" in result.stdout
    assert "Script finished: 1 steps, 1 sends" in result.stderr
    _, kwargs = service.calls[0]
    assert kwargs["script"] == "SEND AT\n"
    assert kwargs["port"] == "/dev/ttyUSB0"
    assert kwargs["config"] == SerialConfig(baud_rate=9600, parity="even")
    assert kwargs["line_ending"] == "CRLF"
    assert "sent: AT" in log_file.read_text(encoding="utf-8")


def test_run_command_reports_failing_step(monkeypatch):
    class FailingService(FakeService):
        def run_script(self, script, **kwargs):
            raise SendFailedError(NotConnectedError("Serial port is not connected"), index=2, total=5)

    monkeypatch.setattr(cli, "TerminalService", FailingService)
    result = runner.invoke(cli.app, ["run", "--script", "probe"])
    assert result.exit_code == 1
    assert "Error: script stopped at step 3 of 5" in result.stderr
    assert "Traceback" not in result.stderr


def test_run_rejects_unknown_line_ending(monkeypatch):
    monkeypatch.setattr(cli, "TerminalService", FakeService)
    result = runner.invoke(cli.app, ["run", "--script", "probe", "--line-ending", "CRCR"])
    assert result.exit_code != 0


def test_send_command_hex(monkeypatch):
    service = FakeService()
    monkeypatch.setattr(cli, "TerminalService", lambda: service)
    result = runner.invoke(cli.app, ["send", "1B 52", "--hex", "--hex-display", "--line-ending", "CRLF"])
    assert result.exit_code == 0
    assert "sent: 1B 52" in result.stdout
    _, kwargs = service.calls[0]
    assert kwargs["fmt"] == "hex"
    assert kwargs["line_ending"] == "none"


def test_send_saved_command(monkeypatch):
    service = FakeService()
    monkeypatch.setattr(cli, "TerminalService", lambda: service)
    result = runner.invoke(cli.app, ["send", "--command", "reset"])
    assert result.exit_code == 0
    _, kwargs = service.calls[0]
    assert kwargs["data"] == "1B 52"
    assert kwargs["fmt"] == "hex"


def test_send_requires_data_or_command(monkeypatch):
    monkeypatch.setattr(cli, "TerminalService", FakeService)
    result = runner.invoke(cli.app, ["send"])
    assert result.exit_code == 1
    assert "pass either DATA or --command" in result.stderr


def test_send_error_is_clean(monkeypatch):
    class NoDeviceService(FakeService):
        def send(self, data, **kwargs):
            raise DeviceUnavailableError("No serial ports found. Connect a device or pass --port.")

    monkeypatch.setattr(cli, "TerminalService", NoDeviceService)
    result = runner.invoke(cli.app, ["send", "AT"])
    assert result.exit_code == 1
    assert "Error: No serial ports found" in result.stderr
    assert "Traceback" not in result.stdout


def test_monitor_command(monkeypatch):
    monkeypatch.setattr(cli, "TerminalService", FakeService)
    result = runner.invoke(cli.app, ["monitor", "--duration", "1"])
    assert result.exit_code == 0
    assert "received: hello" in result.stdout


def test_scripts_and_commands_listing(monkeypatch):
    monkeypatch.setattr(cli, "TerminalService", FakeService)
    result = runner.invoke(cli.app, ["scripts"])
    assert result.exit_code == 0
    assert "probe: 1 commands" in result.stdout
    assert "broken: invalid" in result.stdout

    result = runner.invoke(cli.app, ["commands"])
    assert result.exit_code == 0
    assert "reset [hex]: 1B 52  # soft reset" in result.stdout


def test_save_and_delete_script(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "TerminalService", FakeService)
    script_file = tmp_path / "x.txt"
    script_file.write_text("SEND a\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["save-script", "x", str(script_file)])
    assert result.exit_code == 0
    assert "Saved 'x'" in result.stdout

    result = runner.invoke(cli.app, ["delete-script", "probe"])
    assert result.exit_code == 0
    result = runner.invoke(cli.app, ["delete-script", "missing"])
    assert result.exit_code == 1


def test_load_warning_is_printed(monkeypatch):
    class WarnService(FakeService):
        def __init__(self) -> None:
            super().__init__()
            self.load_warnings = ("User script 'probe' overrides packaged script",)

    monkeypatch.setattr(cli, "TerminalService", WarnService)
    result = runner.invoke(cli.app, ["scripts"])
    assert result.exit_code == 0
    assert "Warning: User script 'probe' overrides packaged script" in result.stderr


def test_run_command_prints_progress(monkeypatch):
    monkeypatch.setattr(cli, "TerminalService", FakeService)
    result = runner.invoke(cli.app, ["run", "--script", "probe", "--progress"])
    assert result.exit_code == 0
    assert "[step 1/1]" in result.stderr

    result = runner.invoke(cli.app, ["run", "--script", "probe"])
    assert "[step" not in result.stderr
