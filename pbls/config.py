"""Configuration loading for pbls (.pbls.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".pbls.yml"

_DEFAULT_DEBOUNCE_MS = 300


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class CompilerConfig:
    """External schema compiler settings."""

    executable: str = "protoc"
    args: List[str] = field(default_factory=list)
    enabled: bool = True


@dataclass
class DiagnosticsConfig:
    """Diagnostics pipeline tuning."""

    debounce_ms: int = _DEFAULT_DEBOUNCE_MS

    @property
    def debounce_seconds(self) -> float:
        return max(self.debounce_ms, 0) / 1000.0


@dataclass
class PblsConfig:
    """Represents the settings defined in .pbls.yml.

    ``proto_paths`` is ``None`` when the file does not configure import paths,
    which lets the import resolver fall back to discovered directories. An
    explicit empty list disables that fallback.
    """

    root: Path
    proto_paths: Optional[List[str]] = None
    exclude_paths: List[str] = field(default_factory=list)
    compiler: CompilerConfig = field(default_factory=CompilerConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)

    def search_paths(self) -> Optional[List[Path]]:
        """Return configured import paths resolved against the root, in order."""
        if self.proto_paths is None:
            return None
        resolved: List[Path] = []
        for entry in self.proto_paths:
            path = Path(entry).expanduser()
            if not path.is_absolute():
                path = self.root / path
            path = path.resolve()
            if path not in resolved:
                resolved.append(path)
        return resolved


def load_config(config_path: Path) -> PblsConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return PblsConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    proto_paths: Optional[List[str]] = None
    if "proto_paths" in data:
        proto_paths = _as_str_list(data.get("proto_paths"))

    compiler = CompilerConfig()
    compiler_data = _as_dict(data.get("compiler"))
    if compiler_data:
        compiler.executable = _as_str(compiler_data.get("executable")) or compiler.executable
        compiler.args = _as_str_list(compiler_data.get("args"))
        enabled = _as_bool(compiler_data.get("enabled"))
        if enabled is not None:
            compiler.enabled = enabled

    diagnostics = DiagnosticsConfig()
    diagnostics_data = _as_dict(data.get("diagnostics"))
    if diagnostics_data:
        debounce = _as_int(diagnostics_data.get("debounce_ms"))
        if debounce is not None:
            diagnostics.debounce_ms = debounce

    return PblsConfig(
        root=root,
        proto_paths=proto_paths,
        exclude_paths=_as_str_list(data.get("exclude_paths")),
        compiler=compiler,
        diagnostics=diagnostics,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "CompilerConfig",
    "ConfigError",
    "DiagnosticsConfig",
    "PblsConfig",
    "load_config",
]
