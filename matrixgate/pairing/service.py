"""
Owner pairing.

The first user to complete pairing becomes the owner and the room they
asked from becomes the main (admin) room. States:

    Unpaired --create_pairing_request--> Pending --approve_pairing--> Paired

Paired is terminal; only deleting owner.json by hand returns to Unpaired.
Expiry of a pending request is observed on read, never scheduled.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable

from loguru import logger

from matrixgate.pairing.store import Owner, PairingStore, PendingPairing

PAIRING_CODE_LENGTH = 8
PAIRING_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # No ambiguous chars (0O1I)
PAIRING_TTL = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    """Generate a random pairing code."""
    return "".join(secrets.choice(PAIRING_CODE_ALPHABET) for _ in range(PAIRING_CODE_LENGTH))


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_pairing_message(code: str) -> str:
    """Message sent to the room that asked to pair."""
    minutes = int(PAIRING_TTL.total_seconds() // 60)
    return "\n".join([
        "🔐 **This bot is not paired yet**",
        "",
        f"Pairing code: `{code}`",
        "",
        "If you are the owner, run on the server:",
        "```",
        f"matrixgate pair {code}",
        "```",
        "",
        f"_The code expires in {minutes} minutes._",
    ])


class PairingService:
    """Reads and transitions pairing state through a PairingStore."""

    def __init__(self, store: PairingStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self._clock = clock

    # Owner queries

    def get_owner(self) -> Owner | None:
        return self.store.load_owner()

    def is_paired(self) -> bool:
        return self.get_owner() is not None

    def is_owner(self, user_id: str) -> bool:
        owner = self.get_owner()
        return owner is not None and owner.owner_id == user_id

    def get_main_room_id(self) -> str | None:
        owner = self.get_owner()
        return owner.main_room_id if owner else None

    def is_main_room(self, room_id: str) -> bool:
        owner = self.get_owner()
        return owner is not None and owner.main_room_id == room_id

    # Pending request

    def create_pairing_request(self, requester_id: str, room_id: str, room_name: str) -> str:
        """
        Create a pending pairing request, replacing any previous one.

        Returns the code to show the requester.
        """
        code = generate_code()
        pending = PendingPairing(
            code=code,
            requester_id=requester_id,
            room_id=room_id,
            room_name=room_name,
            created_at=self._clock().isoformat(),
        )
        with self.store.lock(self.store.pending_path):
            self.store.save_pending(pending)
        logger.info(f"Pairing request created for {requester_id} in {room_id}")
        return code

    def _is_expired(self, pending: PendingPairing) -> bool:
        created = _parse_timestamp(pending.created_at)
        if created is None:
            return True
        return self._clock() - created > PAIRING_TTL

    def _load_pending(self) -> PendingPairing | None:
        # Caller holds the pending lock
        pending = self.store.load_pending()
        if pending is None:
            return None
        if self._is_expired(pending):
            logger.debug(f"Pairing code for {pending.requester_id} expired")
            self.store.delete_pending()
            return None
        return pending

    def get_pending_pairing(self) -> PendingPairing | None:
        """Get the pending request, or None if there is none or it expired."""
        with self.store.lock(self.store.pending_path):
            return self._load_pending()

    def approve_pairing(self, code: str) -> Owner | None:
        """
        Approve a pairing code.

        Returns the new Owner, or None if nothing is pending or the code does
        not match. A wrong code leaves the pending request in place.
        """
        with self.store.lock(self.store.pending_path):
            pending = self._load_pending()
            if pending is None:
                return None

            if pending.code.upper() != code.strip().upper():
                logger.debug("Pairing code mismatch")
                return None

            owner = Owner(
                owner_id=pending.requester_id,
                main_room_id=pending.room_id,
                paired_at=self._clock().isoformat(),
            )
            with self.store.lock(self.store.owner_path):
                self.store.save_owner(owner)
            self.store.delete_pending()

        logger.info(f"Paired with {owner.owner_id}, main room {owner.main_room_id}")
        return owner
