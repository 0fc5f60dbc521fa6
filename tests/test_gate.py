"""Tests for the registered groups store and the pairing gate."""

import json
from pathlib import Path

import pytest

from matrixgate.channels.matrix.types import MatrixMessage
from matrixgate.gateway import PairingGate
from matrixgate.groups import RegisteredGroup, RegisteredGroupsStore
from matrixgate.pairing import Owner, PairingService, PairingStore


@pytest.fixture
def groups(tmp_path: Path) -> RegisteredGroupsStore:
    return RegisteredGroupsStore(tmp_path / "data", tmp_path / "groups")


@pytest.fixture
def pairing(tmp_path: Path) -> PairingService:
    return PairingService(PairingStore(tmp_path / "data"))


def message(room_id: str = "!r1:hs", sender: str = "@me:hs", thread_id: str | None = None) -> MatrixMessage:
    return MatrixMessage(
        room_id=room_id,
        event_id="$e",
        sender=sender,
        sender_name=sender,
        content="hello",
        timestamp="2026-01-01T00:00:00+00:00",
        thread_id=thread_id,
    )


class Outbox:
    def __init__(self):
        self.sent: list[tuple[str, str, str | None]] = []

    async def __call__(self, room_id: str, text: str, thread_id: str | None) -> str:
        self.sent.append((room_id, text, thread_id))
        return "$sent"


class Recorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, msg, room_config, is_main):
        self.calls.append((msg, is_main))


# ── Registered groups ───────────────────────────────────────────────


class TestRegisteredGroupsStore:
    def test_empty(self, groups: RegisteredGroupsStore):
        assert groups.load() == {}
        assert groups.get("!r1:hs") is None

    def test_register_and_get(self, groups: RegisteredGroupsStore):
        group = RegisteredGroup("ops", "ops", "@Andy", "2026-01-01T00:00:00+00:00")
        groups.register("!r1:hs", group)
        assert groups.get("!r1:hs") == group

    def test_register_keeps_other_entries(self, groups: RegisteredGroupsStore):
        groups.register("!a:hs", RegisteredGroup("a", "a", "@Andy", "t"))
        groups.register("!b:hs", RegisteredGroup("b", "b", "@Andy", "t"))
        assert set(groups.load()) == {"!a:hs", "!b:hs"}

    def test_register_main_group(self, groups: RegisteredGroupsStore, tmp_path: Path):
        owner = Owner("@me:hs", "!main:hs", "2026-01-01T00:00:00+00:00")
        group_dir = groups.register_main_group(owner, "main", "Andy")

        assert group_dir == tmp_path / "groups" / "main"
        assert (group_dir / "logs").is_dir()
        data = json.loads(groups.path.read_text())
        entry = data["!main:hs"]
        assert entry["name"] == "main"
        assert entry["folder"] == "main"
        assert entry["trigger"] == "@Andy"
        assert entry["added_at"]

    def test_malformed_entry_skipped(self, groups: RegisteredGroupsStore):
        groups.path.parent.mkdir(parents=True, exist_ok=True)
        groups.path.write_text(json.dumps({"!bad:hs": "oops", "!ok:hs": {"folder": "ok"}}))
        assert set(groups.load()) == {"!ok:hs"}


# ── Pairing gate ────────────────────────────────────────────────────


class TestPairingGate:
    @pytest.mark.asyncio
    async def test_unpaired_creates_request_and_replies(self, pairing, groups):
        outbox, handler = Outbox(), Recorder()
        gate = PairingGate(pairing, groups, outbox, lambda room_id: "General", handler)

        await gate(message(thread_id="$t"), None, False)

        pending = pairing.get_pending_pairing()
        assert pending is not None
        assert pending.requester_id == "@me:hs"
        assert pending.room_id == "!r1:hs"
        assert pending.room_name == "General"
        room_id, text, thread_id = outbox.sent[0]
        assert room_id == "!r1:hs"
        assert pending.code in text
        assert thread_id == "$t"
        assert handler.calls == []

    @pytest.mark.asyncio
    async def test_paired_forwards_main_room(self, pairing, groups):
        pairing.approve_pairing(pairing.create_pairing_request("@me:hs", "!r1:hs", "General"))
        outbox, handler = Outbox(), Recorder()
        gate = PairingGate(pairing, groups, outbox, lambda room_id: room_id, handler)

        await gate(message(), None, True)

        assert len(handler.calls) == 1
        assert outbox.sent == []

    @pytest.mark.asyncio
    async def test_paired_drops_strangers_in_unregistered_rooms(self, pairing, groups):
        pairing.approve_pairing(pairing.create_pairing_request("@me:hs", "!r1:hs", "General"))
        handler = Recorder()
        gate = PairingGate(pairing, groups, Outbox(), lambda room_id: room_id, handler)

        await gate(message(room_id="!other:hs", sender="@stranger:hs"), None, False)
        assert handler.calls == []

        groups.register("!other:hs", RegisteredGroup("other", "other", "@Andy", "t"))
        await gate(message(room_id="!other:hs", sender="@stranger:hs"), None, False)
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_typing_wraps_handler(self, pairing, groups):
        pairing.approve_pairing(pairing.create_pairing_request("@me:hs", "!r1:hs", "General"))
        events: list = []

        async def set_typing(room_id, is_typing):
            events.append(("typing", room_id, is_typing))

        async def handler(msg, room_config, is_main):
            events.append(("handled", msg.room_id))

        gate = PairingGate(pairing, groups, Outbox(), lambda room_id: room_id, handler, set_typing=set_typing)
        await gate(message(), None, True)

        assert events == [("typing", "!r1:hs", True), ("handled", "!r1:hs"), ("typing", "!r1:hs", False)]

    @pytest.mark.asyncio
    async def test_typing_cleared_when_handler_fails(self, pairing, groups):
        pairing.approve_pairing(pairing.create_pairing_request("@me:hs", "!r1:hs", "General"))
        typing: list[bool] = []

        async def set_typing(room_id, is_typing):
            typing.append(is_typing)

        async def handler(msg, room_config, is_main):
            raise RuntimeError("agent crashed")

        gate = PairingGate(pairing, groups, Outbox(), lambda room_id: room_id, handler, set_typing=set_typing)
        with pytest.raises(RuntimeError):
            await gate(message(), None, True)
        assert typing == [True, False]

    @pytest.mark.asyncio
    async def test_no_typing_while_unpaired(self, pairing, groups):
        typing: list[bool] = []

        async def set_typing(room_id, is_typing):
            typing.append(is_typing)

        gate = PairingGate(pairing, groups, Outbox(), lambda room_id: room_id, Recorder(), set_typing=set_typing)
        await gate(message(), None, False)
        assert typing == []

    @pytest.mark.asyncio
    async def test_paired_owner_anywhere(self, pairing, groups):
        pairing.approve_pairing(pairing.create_pairing_request("@me:hs", "!r1:hs", "General"))
        handler = Recorder()
        gate = PairingGate(pairing, groups, Outbox(), lambda room_id: room_id, handler)

        await gate(message(room_id="!elsewhere:hs"), None, False)
        assert len(handler.calls) == 1
