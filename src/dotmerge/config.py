"""TOML configuration loading for dotmerge."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError

DEFAULT_CONFIG_FILENAME = "dotmerge.toml"
DEFAULT_MANIFEST_PATH = "~/.config/dotmerge/backup-manifest.toml"
DEFAULT_SELECTIONS_FILENAME = "selections.toml"
DEFAULT_PACKAGES_DIR = "./packages"
DEFAULT_TARGET_DIR = "~"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    manifest_path: Path
    selections_path: Path
    packages_dir: Path
    target_dir: Path
    linker: Literal["builtin", "stow"] = "builtin"
    package_list_command: tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        command = raw.get("package_list_command", ())
        if isinstance(command, str):
            command = command.split()
        manifest_path = _expand_path(raw.get("manifest_path", DEFAULT_MANIFEST_PATH), base_dir=base_dir)
        if "selections_path" in raw:
            selections_path = _expand_path(raw["selections_path"], base_dir=base_dir)
        else:
            selections_path = manifest_path.with_name(DEFAULT_SELECTIONS_FILENAME)
        try:
            return cls(
                manifest_path=manifest_path,
                selections_path=selections_path,
                packages_dir=_expand_path(raw.get("packages_dir", DEFAULT_PACKAGES_DIR), base_dir=base_dir),
                target_dir=_expand_path(raw.get("target_dir", DEFAULT_TARGET_DIR), base_dir=base_dir),
                linker=raw.get("linker", "builtin"),
                package_list_command=tuple(command),
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid [settings]: {exc}") from exc


class ToolConfig(BaseModel):
    """A tool whose install state dotmerge reports."""

    model_config = ConfigDict(frozen=True)

    name: str
    package: str | None = None
    detect_path: Path | None = None
    detect_command: str | None = None
    dependencies: tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, name: str, raw: Mapping[str, Any], *, base_dir: Path) -> "ToolConfig":
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Tool '{name}' must be a table")
        detect_path = raw.get("detect_path")
        detect_command = raw.get("detect_command")
        package = raw.get("package")
        if package is None and detect_path is None and detect_command is None:
            package = name
        try:
            return cls(
                name=name,
                package=package,
                detect_path=_expand_path(detect_path, base_dir=base_dir) if detect_path is not None else None,
                detect_command=detect_command,
                dependencies=tuple(raw.get("dependencies", ())),
            )
        except (TypeError, ValidationError) as exc:
            raise ConfigError(f"Invalid tool '{name}': {exc}") from exc


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None
    settings: Settings
    tools: Dict[str, ToolConfig]

    def tool(self, name: str) -> ToolConfig:
        try:
            return self.tools[name]
        except KeyError as exc:
            raise ConfigError(f"Unknown tool '{name}'") from exc


def default_config(base_dir: Path | None = None) -> Config:
    """Configuration used when no ``dotmerge.toml`` is present."""

    base = (base_dir or Path.cwd()).resolve(strict=False)
    return Config(config_path=None, settings=Settings.from_raw({}, base_dir=base), tools={})


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or its directory. Without one,
            ``dotmerge.toml`` in the current working directory is used if present and
            built-in defaults otherwise.
    """

    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            return default_config()
        path = candidate

    config_path = _resolve_config_path(path)
    base_dir = config_path.parent

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    settings = Settings.from_raw(data.get("settings", {}), base_dir=base_dir)

    tools_section = data.get("tools") or {}
    tools: Dict[str, ToolConfig] = {
        name: ToolConfig.from_raw(name, body, base_dir=base_dir) for name, body in tools_section.items()
    }

    return Config(config_path=config_path, settings=settings, tools=tools)


def _resolve_config_path(path: Path) -> Path:
    path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
