"""Registered groups: rooms the gateway serves, keyed by room ID."""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from filelock import FileLock
from loguru import logger

from matrixgate.pairing.store import Owner, read_json_file, write_json_file

GROUPS_FILE = "registered_groups.json"


@dataclass
class RegisteredGroup:
    """A room the gateway has been told to serve."""
    name: str
    folder: str
    trigger: str
    added_at: str

    def to_json(self) -> dict[str, str]:
        return {
            "name": self.name,
            "folder": self.folder,
            "trigger": self.trigger,
            "added_at": self.added_at,
        }


class RegisteredGroupsStore:
    """JSON mapping of room ID to RegisteredGroup under the data directory."""

    def __init__(self, data_dir: Path, groups_dir: Path):
        self.path = data_dir / GROUPS_FILE
        self.groups_dir = groups_dir

    def _lock(self) -> FileLock:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(self.path.with_suffix(".lock"), timeout=10)

    def _read(self) -> dict[str, RegisteredGroup]:
        data = read_json_file(self.path) or {}
        groups: dict[str, RegisteredGroup] = {}
        for room_id, entry in data.items():
            if not isinstance(entry, dict) or "folder" not in entry:
                logger.warning(f"Skipping malformed group entry for {room_id}")
                continue
            groups[room_id] = RegisteredGroup(
                name=str(entry.get("name", "")),
                folder=str(entry["folder"]),
                trigger=str(entry.get("trigger", "")),
                added_at=str(entry.get("added_at", "")),
            )
        return groups

    def load(self) -> dict[str, RegisteredGroup]:
        """All registered groups."""
        return self._read()

    def get(self, room_id: str) -> RegisteredGroup | None:
        return self._read().get(room_id)

    def register(self, room_id: str, group: RegisteredGroup) -> None:
        """Add or replace the entry for a room."""
        with self._lock():
            groups = self._read()
            groups[room_id] = group
            write_json_file(self.path, {rid: g.to_json() for rid, g in groups.items()})
        logger.info(f"Registered group {group.name!r} for {room_id}")

    def ensure_group_dirs(self, folder: str) -> Path:
        """Create groups/<folder>/logs and return the group folder."""
        group_dir = self.groups_dir / folder
        (group_dir / "logs").mkdir(parents=True, exist_ok=True)
        return group_dir

    def register_main_group(self, owner: Owner, folder: str, assistant_name: str) -> Path:
        """Register the owner's main room and create its folder."""
        self.register(
            owner.main_room_id,
            RegisteredGroup(
                name="main",
                folder=folder,
                trigger=f"@{assistant_name}",
                added_at=datetime.now(timezone.utc).isoformat(),
            ),
        )
        return self.ensure_group_dirs(folder)
