"""
Configuration management for winops.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validate

from winops.exceptions import ConfigAlreadyExistsError, InvalidConfigError

CONFIG_FILENAME = "winops.yaml"
CONFIG_ENV = "WINOPS_CONFIG"

SCHEMA_FILE = Path(__file__).parent / "schema" / "config.schema.json"

DEFAULT_CONFIG: dict[str, Any] = {
    "runner": {
        "type": "local",
        "executable": "powershell",
        "timeout": 300,
        "winrm": {
            "host": None,
            "port": None,
            "use_ssl": False,
            "transport": "ntlm",
            "username": None,
            "password_env": "WINOPS_WINRM_PASSWORD",
            "server_cert_validation": "validate",
        },
    },
    "credentials": {
        "username": None,
        "password_env": "WINOPS_PASSWORD",
    },
    "events": {
        "log_name": "System",
        "hours": 24,
        "max_events": 5000,
        "top": 10,
    },
    "uptime": {"min_days": 0},
    "disk": {"warning_percent": 20, "critical_percent": 10},
    "archive": {"older_than_days": 30, "pattern": "*.log"},
    "audit": {"inactive_days": 90},
    "domain_join": {"max_workers": 8, "restart": False},
    "iis": {"top": 20},
    "logging": {"level": "WARNING"},
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base, recursing into nested mappings."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def find_config_file(explicit: Path | None = None) -> Path | None:
    """
    Locate the configuration file.

    Lookup order: explicit path, $WINOPS_CONFIG, ./winops.yaml.
    An explicit path is returned even if it does not exist so that
    loading reports a useful error.
    """
    if explicit is not None:
        return Path(explicit)

    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path)

    local = Path.cwd() / CONFIG_FILENAME
    if local.exists():
        return local

    return None


def init_config(directory: Path, force: bool = False) -> Path:
    """Write the default configuration to directory/winops.yaml."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    config_file = directory / CONFIG_FILENAME

    if config_file.exists() and not force:
        raise ConfigAlreadyExistsError(str(config_file))

    with open(config_file, "w") as f:
        yaml.dump(DEFAULT_CONFIG, f, default_flow_style=False, sort_keys=False)

    return config_file


def load_config(path: Path | None = None) -> dict[str, Any]:
    """
    Load configuration merged over defaults and validated against the schema.

    Returns the built-in defaults when no configuration file is found.

    Raises:
        InvalidConfigError: If the file is missing, unparsable, or invalid
    """
    config_file = find_config_file(path)
    if config_file is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    if not config_file.exists():
        raise InvalidConfigError("file not found", str(config_file))

    try:
        with open(config_file) as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InvalidConfigError(f"YAML syntax error: {e}", str(config_file)) from e

    if loaded is None:
        loaded = {}

    if not isinstance(loaded, dict):
        raise InvalidConfigError(
            f"expected a mapping, got {type(loaded).__name__}", str(config_file)
        )

    config = _deep_merge(DEFAULT_CONFIG, loaded)
    validate_config(config, str(config_file))
    return config


def validate_config(config: dict[str, Any], source: str | None = None) -> None:
    """Validate config against the bundled JSON schema."""
    schema = json.loads(SCHEMA_FILE.read_text())
    try:
        validate(instance=config, schema=schema)
    except ValidationError as e:
        location = ".".join(str(p) for p in e.path) or "<root>"
        raise InvalidConfigError(f"{e.message} (at {location})", source) from e
