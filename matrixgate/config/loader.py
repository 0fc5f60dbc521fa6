"""Configuration loading utilities."""

import json
import os
import re
from pathlib import Path
from typing import Any

from loguru import logger

from matrixgate.config.schema import Config, MatrixConfig
from matrixgate.errors import ConfigError

# Mappings whose keys are identifiers (room IDs), not field names
_VERBATIM_KEY_FIELDS = {"rooms"}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".matrixgate" / "config.json"


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    parts = name.split("_")
    return parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def _convert(data: Any, convert_key) -> Any:
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            new_key = convert_key(key)
            if camel_to_snake(key) in _VERBATIM_KEY_FIELDS and isinstance(value, dict):
                result[new_key] = {k: _convert(v, convert_key) for k, v in value.items()}
            else:
                result[new_key] = _convert(value, convert_key)
        return result
    if isinstance(data, list):
        return [_convert(item, convert_key) for item in data]
    return data


def convert_keys(data: Any) -> Any:
    """Recursively convert dict keys from camelCase to snake_case."""
    return _convert(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase."""
    return _convert(data, snake_to_camel)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from a JSON file.

    Falls back to defaults when the file is missing, empty or invalid.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            raw = path.read_text()
            if raw.strip():
                data = json.loads(raw)
                return Config(**convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to a JSON file using camelCase keys."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())
    path.write_text(json.dumps(data, indent=2) + "\n")


def _env_flag(value: str) -> bool:
    return value.strip().lower() == "true"


def apply_env_credentials(config: Config) -> Config:
    """Fill Matrix settings left empty in the config file from MATRIX_* variables."""
    matrix = config.matrix

    if not matrix.homeserver:
        matrix.homeserver = os.environ.get("MATRIX_HOMESERVER", "")
    if not matrix.user_id:
        matrix.user_id = os.environ.get("MATRIX_USER_ID", "")
    if not matrix.access_token:
        matrix.access_token = os.environ.get("MATRIX_ACCESS_TOKEN", "")
    if not matrix.device_id:
        matrix.device_id = os.environ.get("MATRIX_DEVICE_ID", "")

    if "MATRIX_ENCRYPTION" in os.environ:
        matrix.encryption = _env_flag(os.environ["MATRIX_ENCRYPTION"])
    if matrix.require_mention is None and "MATRIX_REQUIRE_MENTION" in os.environ:
        matrix.require_mention = os.environ["MATRIX_REQUIRE_MENTION"].strip().lower() != "false"

    return config


def require_credentials(matrix: MatrixConfig) -> None:
    """Raise ConfigError unless homeserver, user ID and access token are all set."""
    missing = [
        name for name, value in (
            ("homeserver", matrix.homeserver),
            ("userId", matrix.user_id),
            ("accessToken", matrix.access_token),
        )
        if not value
    ]
    if missing:
        raise ConfigError(
            f"Matrix credentials not configured (missing: {', '.join(missing)}). "
            "Set MATRIX_HOMESERVER, MATRIX_USER_ID and MATRIX_ACCESS_TOKEN, "
            f"or fill the matrix section of {get_config_path()}"
        )
