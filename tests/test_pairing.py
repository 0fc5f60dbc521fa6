"""Tests for the pairing store and service."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from matrixgate.pairing import (
    PAIRING_CODE_ALPHABET,
    PAIRING_CODE_LENGTH,
    Owner,
    PairingService,
    PairingStore,
    PendingPairing,
    build_pairing_message,
    generate_code,
)


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path) -> PairingStore:
    return PairingStore(tmp_path / "data")


@pytest.fixture
def service(store: PairingStore, clock: FakeClock) -> PairingService:
    return PairingService(store, clock=clock)


# ── Codes ───────────────────────────────────────────────────────────


class TestGenerateCode:
    def test_length_and_alphabet(self):
        for _ in range(200):
            code = generate_code()
            assert len(code) == PAIRING_CODE_LENGTH == 8
            assert all(ch in PAIRING_CODE_ALPHABET for ch in code)

    def test_no_ambiguous_characters(self):
        for ch in "0O1I":
            assert ch not in PAIRING_CODE_ALPHABET

    def test_pairing_message_mentions_code_and_ttl(self):
        message = build_pairing_message("ABCD2345")
        assert "matrixgate pair ABCD2345" in message
        assert "10 minutes" in message


# ── Store ───────────────────────────────────────────────────────────


class TestPairingStore:
    def test_empty_slots(self, store: PairingStore):
        assert store.load_owner() is None
        assert store.load_pending() is None

    def test_owner_file_format(self, store: PairingStore):
        store.save_owner(Owner("@me:hs", "!main:hs", "2026-03-01T12:00:00+00:00"))
        data = json.loads(store.owner_path.read_text())
        assert data == {"ownerId": "@me:hs", "mainRoomId": "!main:hs", "pairedAt": "2026-03-01T12:00:00+00:00"}

    def test_pending_roundtrip(self, store: PairingStore):
        pending = PendingPairing("ABCDEFGH", "@me:hs", "!r:hs", "Room", "2026-03-01T12:00:00+00:00")
        store.save_pending(pending)
        assert store.load_pending() == pending
        assert set(json.loads(store.pending_path.read_text())) == {
            "code", "requesterId", "roomId", "roomName", "createdAt",
        }

    def test_delete_pending_when_absent(self, store: PairingStore):
        store.delete_pending()
        assert store.load_pending() is None

    def test_corrupt_file_reads_as_empty(self, store: PairingStore):
        store.owner_path.parent.mkdir(parents=True, exist_ok=True)
        store.owner_path.write_text("{not json")
        assert store.load_owner() is None

    def test_undecodable_file_reads_as_empty(self, store: PairingStore):
        store.owner_path.parent.mkdir(parents=True, exist_ok=True)
        store.owner_path.write_bytes(b"\xff\xfe garbage")
        store.pending_path.write_bytes(b"\xff\xfe garbage")
        assert store.load_owner() is None
        assert store.load_pending() is None

    def test_incomplete_record_reads_as_empty(self, store: PairingStore):
        store.owner_path.parent.mkdir(parents=True, exist_ok=True)
        store.owner_path.write_text(json.dumps({"ownerId": "@me:hs"}))
        assert store.load_owner() is None


# ── Service ─────────────────────────────────────────────────────────


class TestPendingPairing:
    def test_get_after_create(self, service: PairingService):
        code = service.create_pairing_request("@me:hs", "!r1:hs", "General")
        pending = service.get_pending_pairing()
        assert pending is not None
        assert pending.code == code
        assert pending.requester_id == "@me:hs"
        assert pending.room_id == "!r1:hs"
        assert pending.room_name == "General"

    def test_new_request_replaces_old(self, service: PairingService):
        service.create_pairing_request("@a:hs", "!r1:hs", "One")
        code = service.create_pairing_request("@b:hs", "!r2:hs", "Two")
        pending = service.get_pending_pairing()
        assert pending.code == code
        assert pending.requester_id == "@b:hs"

    def test_still_valid_at_ttl(self, service: PairingService, clock: FakeClock):
        service.create_pairing_request("@me:hs", "!r1:hs", "General")
        clock.advance(minutes=10)
        assert service.get_pending_pairing() is not None

    def test_expires_after_ttl(self, service: PairingService, store: PairingStore, clock: FakeClock):
        service.create_pairing_request("@me:hs", "!r1:hs", "General")
        clock.advance(minutes=10, seconds=1)
        # Present on disk until something reads it
        assert store.pending_path.exists()
        assert service.get_pending_pairing() is None
        assert not store.pending_path.exists()

    def test_unparseable_timestamp_is_expired(self, service: PairingService, store: PairingStore):
        store.save_pending(PendingPairing("ABCDEFGH", "@me:hs", "!r:hs", "Room", "yesterday"))
        assert service.get_pending_pairing() is None


class TestApprovePairing:
    def test_nothing_pending(self, service: PairingService):
        assert service.approve_pairing("ABCDEFGH") is None
        assert not service.is_paired()

    def test_case_insensitive_once(self, service: PairingService, clock: FakeClock):
        code = service.create_pairing_request("@me:hs", "!r1:hs", "General")
        owner = service.approve_pairing(code.lower())
        assert owner == Owner("@me:hs", "!r1:hs", clock.now.isoformat())
        assert service.get_pending_pairing() is None
        assert service.approve_pairing(code) is None

    def test_wrong_code_keeps_request(self, service: PairingService):
        code = service.create_pairing_request("@me:hs", "!r1:hs", "General")
        wrong = "22222222" if code != "22222222" else "33333333"
        assert service.approve_pairing(wrong) is None
        assert service.get_pending_pairing().code == code
        assert service.approve_pairing(code) is not None

    def test_expired_code_rejected(self, service: PairingService, clock: FakeClock):
        code = service.create_pairing_request("@me:hs", "!r1:hs", "General")
        clock.advance(minutes=11)
        assert service.approve_pairing(code) is None
        assert not service.is_paired()


class TestOwnerQueries:
    def test_unpaired(self, service: PairingService):
        assert service.get_owner() is None
        assert service.is_paired() is False
        assert service.is_owner("@me:hs") is False
        assert service.is_main_room("!r1:hs") is False
        assert service.get_main_room_id() is None

    def test_paired(self, service: PairingService):
        code = service.create_pairing_request("@me:hs", "!r1:hs", "General")
        service.approve_pairing(code)
        assert service.is_paired() is True
        assert service.is_owner("@me:hs") is True
        assert service.is_owner("@you:hs") is False
        assert service.is_main_room("!r1:hs") is True
        assert service.is_main_room("!r2:hs") is False
        assert service.get_main_room_id() == "!r1:hs"

    def test_reads_latest_state_from_disk(self, store: PairingStore, clock: FakeClock):
        service = PairingService(store, clock=clock)
        assert not service.is_paired()
        # A second service (e.g. the CLI process) pairs behind our back
        other = PairingService(PairingStore(store.data_dir), clock=clock)
        other.approve_pairing(other.create_pairing_request("@me:hs", "!r1:hs", "General"))
        assert service.is_main_room("!r1:hs")
