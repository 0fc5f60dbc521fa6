"""Configuration schema using Pydantic."""

import re
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RoomConfig(BaseModel):
    """Per-room overrides."""
    enabled: bool = True  # False = ignore this room entirely
    require_mention: bool | None = None  # Overrides matrix.require_mention
    folder: str | None = None  # Isolated context folder for this room
    trigger_pattern: str | None = None  # Custom trigger regex


class MatrixConfig(BaseModel):
    """Matrix connection configuration."""
    homeserver: str = ""  # e.g. https://matrix.org
    user_id: str = ""  # Bot account, e.g. @andy:matrix.org
    access_token: str = ""
    device_id: str = ""
    encryption: bool = False  # End-to-end encryption (needs matrix-nio[e2e])
    require_mention: bool | None = None  # Global default; unset = main room exempt
    rooms: dict[str, RoomConfig] = Field(default_factory=dict)  # Keyed by room ID
    sync_timeout_ms: int = 30000
    typing_timeout_ms: int = 30000


class AssistantConfig(BaseModel):
    """Assistant identity."""
    name: str = "Andy"
    main_group_folder: str = "main"

    @property
    def trigger_pattern(self) -> re.Pattern[str]:
        """Global trigger: the message starts with @<name>."""
        return re.compile(rf"^@{re.escape(self.name)}\b", re.IGNORECASE)


class Config(BaseSettings):
    """Root configuration for matrixgate."""
    model_config = SettingsConfigDict(
        env_prefix="MATRIXGATE_",
        env_nested_delimiter="__",
    )

    matrix: MatrixConfig = Field(default_factory=MatrixConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    home: str = "~/.matrixgate"

    @property
    def home_path(self) -> Path:
        """Get expanded home path."""
        return Path(self.home).expanduser()

    @property
    def data_dir(self) -> Path:
        """Pairing and group registry files."""
        return self.home_path / "data"

    @property
    def store_dir(self) -> Path:
        """Matrix sync and crypto state."""
        return self.home_path / "store"

    @property
    def groups_dir(self) -> Path:
        """Per-group working folders."""
        return self.home_path / "groups"


def resolve_room_config(config: MatrixConfig, room_id: str) -> RoomConfig | None:
    """Look up the override record for a room, or None if not configured."""
    return config.rooms.get(room_id)
