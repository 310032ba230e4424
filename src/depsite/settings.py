"""
Settings for depsite.

Values come from three layers, later ones winning:
1. Built-in defaults
2. YAML settings file (--config, $DEPSITE_CONFIG, or /etc/depsite/config.yaml)
3. DEPSITE_<KEY> environment variables (a .env file in the working
   directory is loaded first)
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from . import paths


@dataclass(frozen=True)
class Settings:
    """Tunable values used by the renderer, validators, and controllers."""
    client_max_body_size: str = "20M"
    proxy_read_timeout: str = "300s"
    proxy_connect_timeout: str = "75s"
    probe_timeout: float = 1.0
    min_free_bytes: int = 1024
    command_timeout: int = 60
    proxy_binary: str = "nginx"
    proxy_service: str = "nginx"
    certificate_tool: str = "certbot"


def _coerce(name: str, value: Any, target: type) -> Any:
    """Convert a raw value to a field's type."""
    if target is str:
        if isinstance(value, (dict, list)):
            raise ValueError(f"Invalid setting '{name}': expected a string")
        return str(value)
    try:
        return target(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid setting '{name}': expected {target.__name__}, got {value!r}")


def _field_types() -> Dict[str, type]:
    return {f.name: f.type for f in fields(Settings)}


def load_settings_file(config_path: Path) -> Dict[str, Any]:
    """
    Load settings overrides from a YAML file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Mapping of setting name to raw value

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the document is not a mapping or has unknown keys
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Settings file not found: {config_path}")

    with open(config_path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid settings file {config_path}: expected a mapping")

    known = _field_types()
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"Unknown settings in {config_path}: {', '.join(unknown)}")

    return data


def _env_overrides() -> Dict[str, str]:
    overrides = {}
    for name in _field_types():
        value = os.getenv(f"DEPSITE_{name.upper()}")
        if value is not None and value != "":
            overrides[name] = value
    return overrides


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Build Settings from defaults, the settings file, and the environment.

    Args:
        config_path: Explicit settings file; must exist when given

    Returns:
        Resolved Settings
    """
    load_dotenv()

    raw: Dict[str, Any] = {}

    explicit = config_path or os.getenv("DEPSITE_CONFIG")
    if explicit:
        raw.update(load_settings_file(Path(explicit)))
    else:
        default_path = paths.get_settings_path()
        if default_path.exists():
            raw.update(load_settings_file(default_path))

    raw.update(_env_overrides())

    types = _field_types()
    values = {name: _coerce(name, value, types[name]) for name, value in raw.items()}

    settings = replace(Settings(), **values)
    if settings.probe_timeout <= 0:
        raise ValueError("Invalid setting 'probe_timeout': must be positive")
    if settings.min_free_bytes < 0:
        raise ValueError("Invalid setting 'min_free_bytes': must not be negative")
    return settings
