"""File-backed slots for the owner record and the pending pairing request."""

import json
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from filelock import FileLock
from loguru import logger

OWNER_FILE = "owner.json"
PENDING_FILE = "pending_pairing.json"
LOCK_TIMEOUT = 10


@dataclass(frozen=True)
class Owner:
    """The paired owner. Never mutated once written."""
    owner_id: str  # @user:matrix.org
    main_room_id: str  # !room:matrix.org
    paired_at: str  # ISO timestamp

    def to_json(self) -> dict[str, str]:
        return {
            "ownerId": self.owner_id,
            "mainRoomId": self.main_room_id,
            "pairedAt": self.paired_at,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Owner":
        return cls(
            owner_id=str(data["ownerId"]),
            main_room_id=str(data["mainRoomId"]),
            paired_at=str(data["pairedAt"]),
        )


@dataclass(frozen=True)
class PendingPairing:
    """A pairing request waiting to be approved from the server terminal."""
    code: str
    requester_id: str
    room_id: str
    room_name: str
    created_at: str

    def to_json(self) -> dict[str, str]:
        return {
            "code": self.code,
            "requesterId": self.requester_id,
            "roomId": self.room_id,
            "roomName": self.room_name,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "PendingPairing":
        return cls(
            code=str(data["code"]),
            requester_id=str(data["requesterId"]),
            room_id=str(data["roomId"]),
            room_name=str(data.get("roomName", "")),
            created_at=str(data["createdAt"]),
        )


def read_json_file(path: Path) -> dict | None:
    """Safely read a JSON object; missing or unreadable files read as None."""
    try:
        if path.exists():
            data = json.loads(path.read_text())
            if isinstance(data, dict):
                return data
            logger.warning(f"Ignoring {path}: expected a JSON object")
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logger.warning(f"Error reading {path}: {e}")
    return None


def write_json_file(path: Path, data: dict) -> None:
    """Safely write a JSON file with atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f".{secrets.token_hex(4)}.tmp")
    tmp_path.write_text(json.dumps(data, indent=2) + "\n")
    tmp_path.chmod(0o600)
    tmp_path.replace(path)


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class PairingStore:
    """
    Two independent slots on disk: the owner and the pending request.

    Each slot is a single JSON file that is either present or absent.
    Nothing is cached; every read goes to disk. Writers take lock() around
    their read-modify-write; the store itself does not lock.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.owner_path = data_dir / OWNER_FILE
        self.pending_path = data_dir / PENDING_FILE

    def lock(self, path: Path) -> FileLock:
        """Advisory lock guarding one slot file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(path.with_suffix(".lock"), timeout=LOCK_TIMEOUT)

    # Owner slot

    def load_owner(self) -> Owner | None:
        data = read_json_file(self.owner_path)
        if data is None:
            return None
        try:
            return Owner.from_json(data)
        except KeyError as e:
            logger.warning(f"Owner record {self.owner_path} is missing {e}")
            return None

    def save_owner(self, owner: Owner) -> None:
        write_json_file(self.owner_path, owner.to_json())

    # Pending slot

    def load_pending(self) -> PendingPairing | None:
        data = read_json_file(self.pending_path)
        if data is None:
            return None
        try:
            return PendingPairing.from_json(data)
        except KeyError as e:
            logger.warning(f"Pending pairing {self.pending_path} is missing {e}")
            return None

    def save_pending(self, pending: PendingPairing) -> None:
        write_json_file(self.pending_path, pending.to_json())

    def delete_pending(self) -> None:
        _unlink(self.pending_path)
