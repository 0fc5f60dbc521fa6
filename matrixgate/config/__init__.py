"""Configuration module for matrixgate."""

from matrixgate.config.loader import load_config, get_config_path
from matrixgate.config.schema import Config, MatrixConfig, RoomConfig, resolve_room_config

__all__ = ["Config", "MatrixConfig", "RoomConfig", "load_config", "get_config_path", "resolve_room_config"]
