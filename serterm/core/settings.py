"""Settings, saved commands, and saved scripts for serterm.

Settings live in ``$XDG_CONFIG_HOME/serterm/settings.yaml`` and are validated
against the packaged JSON schema. Scripts are plain text files: packaged
examples under ``serterm/scripts`` plus user scripts in
``$XDG_DATA_HOME/serterm/scripts``.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from serterm.core.codec import is_valid_hex
from serterm.core.errors import SettingsLoadError, SettingsValidationError
from serterm.core.model import SavedCommand, SerialConfig

_SCRIPT_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_SCRIPT_SUFFIX = ".txt"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

# Command data such as ON/OFF must stay strings.
for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise SettingsValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class Settings:
    serial: SerialConfig = field(default_factory=SerialConfig)
    port: str | None = None
    commands: tuple[SavedCommand, ...] = ()

    def command(self, name: str) -> SavedCommand | None:
        for command in self.commands:
            if command.name == name:
                return command
        return None


@dataclass(frozen=True)
class LoadedScripts:
    scripts: dict[str, str]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("serterm.schemas").joinpath("settings.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def config_dir() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "serterm"


def scripts_dir() -> Path:
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_data / "serterm/scripts"


def settings_path() -> Path:
    return config_dir() / "settings.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsLoadError(f"Could not read settings file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise SettingsValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise SettingsValidationError(f"Settings file {path} must contain a mapping at root")
    return loaded


def _build_settings(doc: dict[str, Any], source: Path) -> Settings:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise SettingsValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    serial_doc = doc.get("serial", {})
    defaults = SerialConfig()
    serial = SerialConfig(
        baud_rate=int(serial_doc.get("baud_rate", defaults.baud_rate)),
        data_bits=int(serial_doc.get("data_bits", defaults.data_bits)),
        stop_bits=int(serial_doc.get("stop_bits", defaults.stop_bits)),
        parity=serial_doc.get("parity", defaults.parity),
        flow_control=serial_doc.get("flow_control", defaults.flow_control),
    )

    commands: list[SavedCommand] = []
    seen: set[str] = set()
    for index, entry in enumerate(doc.get("commands", [])):
        name = entry["name"]
        if name in seen:
            raise SettingsValidationError(f"Duplicate command name '{name}' in {source}")
        seen.add(name)
        fmt = entry.get("format", "text")
        if fmt == "hex" and not is_valid_hex(entry["data"]):
            raise SettingsValidationError(
                f"commands.{index} ({name}) has invalid hex data '{entry['data']}' in {source}"
            )
        commands.append(
            SavedCommand(
                name=name,
                data=entry["data"],
                format=fmt,
                description=entry.get("description"),
            )
        )

    return Settings(serial=serial, port=doc.get("port"), commands=tuple(commands))


def load_settings(path: Path | None = None) -> Settings:
    source = path or settings_path()
    if not source.exists():
        LOGGER.debug("No settings file at %s, using defaults", source)
        return Settings()
    return _build_settings(_read_yaml(source), source)


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    target = path or settings_path()
    doc: dict[str, Any] = {"serial": asdict(settings.serial)}
    if settings.port:
        doc["port"] = settings.port
    if settings.commands:
        doc["commands"] = [
            {key: value for key, value in asdict(command).items() if value is not None}
            for command in settings.commands
        ]
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
    except OSError as exc:
        raise SettingsLoadError(f"Could not write settings file {target}: {exc}") from exc
    return target


def _iter_packaged_script_paths() -> list[Traversable]:
    script_root = resources.files("serterm.scripts")
    return [item for item in script_root.iterdir() if item.name.endswith(_SCRIPT_SUFFIX)]


def _iter_user_script_paths() -> list[Path]:
    directory = scripts_dir()
    if not directory.exists() or not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix == _SCRIPT_SUFFIX)


def _read_script(path: Path | Traversable) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsLoadError(f"Could not read script file {path}: {exc}") from exc


def load_scripts() -> LoadedScripts:
    scripts: dict[str, str] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_script_paths(), key=lambda p: p.name):
        scripts[path.name[: -len(_SCRIPT_SUFFIX)]] = _read_script(path)

    for path in _iter_user_script_paths():
        name = path.stem
        if name in scripts:
            warning = f"User script '{name}' overrides packaged script"
            LOGGER.warning(warning)
            warnings.append(warning)
        scripts[name] = _read_script(path)

    return LoadedScripts(scripts=scripts, warnings=tuple(warnings))


def save_script(name: str, content: str) -> Path:
    target = _user_script_path(name)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise SettingsLoadError(f"Could not write script file {target}: {exc}") from exc
    return target


def delete_script(name: str) -> bool:
    target = _user_script_path(name)
    if not target.exists():
        return False
    try:
        target.unlink()
    except OSError as exc:
        raise SettingsLoadError(f"Could not delete script file {target}: {exc}") from exc
    return True


def _user_script_path(name: str) -> Path:
    if not _SCRIPT_NAME_RE.match(name):
        raise SettingsValidationError(
            f"Script name '{name}' may only contain letters, digits, '.', '_' and '-'"
        )
    return scripts_dir() / f"{name}{_SCRIPT_SUFFIX}"
