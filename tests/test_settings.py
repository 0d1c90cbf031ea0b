from __future__ import annotations

from pathlib import Path

import pytest

from serterm.core.errors import SettingsValidationError
from serterm.core.model import SavedCommand, SerialConfig
from serterm.core.settings import (
    Settings,
    delete_script,
    load_scripts,
    load_settings,
    save_script,
    save_settings,
)


@pytest.fixture(autouse=True)
def _xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_missing_file_gives_defaults() -> None:
    settings = load_settings()
    assert settings.serial == SerialConfig()
    assert settings.port is None
    assert settings.commands == ()


def test_load_settings_file(tmp_path: Path) -> None:
    _write(
        tmp_path / "cfg" / "serterm" / "settings.yaml",
        """
serial:
  baud_rate: 9600
  data_bits: 7
  parity: even
port: /dev/ttyUSB1
commands:
  - name: reset
    data: "1B 52"
    format: hex
    description: soft reset
  - name: on
    data: ON
""",
    )

    settings = load_settings()
    assert settings.serial == SerialConfig(baud_rate=9600, data_bits=7, stop_bits=1, parity="even")
    assert settings.port == "/dev/ttyUSB1"
    assert settings.command("reset") == SavedCommand(
        name="reset", data="1B 52", format="hex", description="soft reset"
    )
    assert settings.command("on") == SavedCommand(name="on", data="ON")
    assert settings.command("missing") is None


def test_schema_violation_is_reported(tmp_path: Path) -> None:
    _write(tmp_path / "cfg" / "serterm" / "settings.yaml", "serial:\n  data_bits: 6\n")
    with pytest.raises(SettingsValidationError) as exc_info:
        load_settings()
    assert "serial.data_bits" in str(exc_info.value)


def test_invalid_hex_command_rejected(tmp_path: Path) -> None:
    _write(
        tmp_path / "cfg" / "serterm" / "settings.yaml",
        "commands:\n  - {name: bad, data: '0G', format: hex}\n",
    )
    with pytest.raises(SettingsValidationError) as exc_info:
        load_settings()
    assert "bad" in str(exc_info.value)


def test_duplicate_keys_rejected(tmp_path: Path) -> None:
    _write(tmp_path / "cfg" / "serterm" / "settings.yaml", "port: /dev/a\nport: /dev/b\n")
    with pytest.raises(SettingsValidationError):
        load_settings()


def test_duplicate_command_names_rejected(tmp_path: Path) -> None:
    _write(
        tmp_path / "cfg" / "serterm" / "settings.yaml",
        "commands:\n  - {name: a, data: x}\n  - {name: a, data: y}\n",
    )
    with pytest.raises(SettingsValidationError):
        load_settings()


def test_save_settings_round_trip(tmp_path: Path) -> None:
    settings = Settings(
        serial=SerialConfig(baud_rate=57600, stop_bits=2, flow_control="hardware"),
        port="COM3",
        commands=(SavedCommand(name="ping", data="PING"),),
    )
    path = save_settings(settings)
    assert path == tmp_path / "cfg" / "serterm" / "settings.yaml"
    assert load_settings() == settings


def test_packaged_scripts_are_loaded() -> None:
    loaded = load_scripts()
    assert "at_probe" in loaded.scripts
    assert "LOOP 3" in loaded.scripts["at_probe"]
    assert loaded.warnings == ()


def test_user_script_overrides_packaged(tmp_path: Path) -> None:
    _write(tmp_path / "data" / "serterm" / "scripts" / "at_probe.txt", "SEND mine\n")
    loaded = load_scripts()
    assert loaded.scripts["at_probe"] == "SEND mine\n"
    assert loaded.warnings


def test_save_and_delete_script(tmp_path: Path) -> None:
    path = save_script("blink", "SEND on\nDELAY 100\nSEND off\n")
    assert path == tmp_path / "data" / "serterm" / "scripts" / "blink.txt"
    assert load_scripts().scripts["blink"].startswith("SEND on")

    assert delete_script("blink")
    assert not delete_script("blink")
    assert "blink" not in load_scripts().scripts


def test_script_names_are_restricted() -> None:
    with pytest.raises(SettingsValidationError):
        save_script("../escape", "SEND a")
