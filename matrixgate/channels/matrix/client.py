"""Matrix session using matrix-nio."""

import asyncio
from typing import Any

from loguru import logger
from nio import (
    AsyncClient,
    AsyncClientConfig,
    ErrorResponse,
    InviteMemberEvent,
    MatrixRoom,
    RoomMessage,
)

from matrixgate.channels.matrix.types import EventCallback, EventKind, MatrixEventSource
from matrixgate.config.loader import require_credentials
from matrixgate.config.schema import Config, MatrixConfig
from matrixgate.errors import ConfigError, MatrixRequestError


class MatrixSession(MatrixEventSource):
    """
    One connection to the homeserver, created at startup and passed to
    whatever needs to talk to Matrix.

    Lifecycle: construct (validates credentials), start() (blocks while
    syncing), stop().
    """

    def __init__(self, config: Config):
        require_credentials(config.matrix)

        self.config = config
        self._client: AsyncClient | None = None
        self._callbacks: dict[str, list[EventCallback]] = {"message": [], "invite": []}
        self._initial_sync_done = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def user_id(self) -> str:
        return self.config.matrix.user_id

    @property
    def matrix_config(self) -> MatrixConfig:
        return self.config.matrix

    @property
    def client(self) -> AsyncClient:
        if not self._client:
            raise RuntimeError("Matrix session not started. Call start() first.")
        return self._client

    def on(self, kind: EventKind, callback: EventCallback) -> None:
        self._callbacks[kind].append(callback)

    def _build_client(self) -> AsyncClient:
        matrix = self.config.matrix
        storage_dir = self.config.store_dir / "matrix"
        storage_dir.mkdir(parents=True, exist_ok=True)

        client_config = AsyncClientConfig(store_sync_tokens=True, encryption_enabled=matrix.encryption)
        store_path = storage_dir
        if matrix.encryption:
            store_path = storage_dir / "crypto"
            store_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"E2EE crypto storage at {store_path}")

        client = AsyncClient(
            matrix.homeserver,
            matrix.user_id,
            device_id=matrix.device_id or None,
            store_path=str(store_path),
            config=client_config,
        )
        client.access_token = matrix.access_token
        client.user_id = matrix.user_id
        if matrix.device_id:
            client.device_id = matrix.device_id
        if matrix.encryption:
            client.load_store()

        client.add_event_callback(self._on_room_message, RoomMessage)
        client.add_event_callback(self._on_invite, InviteMemberEvent)

        logger.info(
            f"Matrix client initialized for {matrix.user_id} on {matrix.homeserver} "
            f"(encryption={matrix.encryption})"
        )
        return client

    async def _on_room_message(self, room: MatrixRoom, event: RoomMessage) -> None:
        # Timeline replayed by the first sync is history, not new requests
        if not self._initial_sync_done:
            return
        # Handled in the background so a slow handler does not stall sync
        for callback in self._callbacks["message"]:
            task = asyncio.create_task(callback(room.room_id, event.source))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Matrix event handler failed: {exc}")

    async def _resolve_device_id(self) -> None:
        """Ask the homeserver which device the access token belongs to."""
        matrix = self.config.matrix
        client = AsyncClient(matrix.homeserver, matrix.user_id)
        client.access_token = matrix.access_token
        try:
            resp = await client.whoami()
        finally:
            await client.close()
        if isinstance(resp, ErrorResponse):
            raise MatrixRequestError("whoami", resp.message)
        if not resp.device_id:
            raise ConfigError("Matrix encryption needs a device ID and the access token has none")
        matrix.device_id = resp.device_id
        logger.info(f"Using device {resp.device_id} reported by the homeserver")

    async def _on_invite(self, room: MatrixRoom, event: InviteMemberEvent) -> None:
        if event.state_key != self.user_id:
            return
        try:
            resp = await self.client.join(room.room_id)
            if isinstance(resp, ErrorResponse):
                logger.warning(f"Failed to join {room.room_id}: {resp.message}")
        except Exception as e:
            logger.warning(f"Failed to join {room.room_id}: {e}")
        for callback in self._callbacks["invite"]:
            await callback(room.room_id, event.source)

    async def start(self) -> None:
        """Connect and sync until stop() is called."""
        if self.config.matrix.encryption and not self.config.matrix.device_id:
            await self._resolve_device_id()
        self._client = self._build_client()

        resp = await self._client.sync(timeout=self.config.matrix.sync_timeout_ms, full_state=True)
        if isinstance(resp, ErrorResponse):
            raise MatrixRequestError("initial sync", resp.message)
        if self.config.matrix.encryption and self._client.should_upload_keys:
            await self._client.keys_upload()
        self._initial_sync_done = True
        logger.info("Matrix initial sync complete")

        await self._client.sync_forever(timeout=self.config.matrix.sync_timeout_ms)

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Matrix client stopped")

    async def send_message(self, room_id: str, text: str, thread_id: str | None = None) -> str:
        """Send a plain text message, optionally into a thread. Returns the event ID."""
        content: dict[str, Any] = {"msgtype": "m.text", "body": text}
        if thread_id:
            content["m.relates_to"] = {"rel_type": "m.thread", "event_id": thread_id}

        resp = await self.client.room_send(
            room_id,
            message_type="m.room.message",
            content=content,
            ignore_unverified_devices=True,
        )
        if isinstance(resp, ErrorResponse):
            raise MatrixRequestError("room_send", resp.message)

        logger.info(f"Matrix message sent to {room_id} ({len(text)} chars)")
        return resp.event_id

    async def set_typing(self, room_id: str, is_typing: bool) -> None:
        """Best effort typing indicator."""
        try:
            await self.client.room_typing(
                room_id,
                typing_state=is_typing,
                timeout=self.config.matrix.typing_timeout_ms if is_typing else 0,
            )
        except Exception as e:
            logger.debug(f"Failed to set typing indicator in {room_id}: {e}")

    async def get_joined_member_count(self, room_id: str) -> int:
        resp = await self.client.joined_members(room_id)
        if isinstance(resp, ErrorResponse):
            raise MatrixRequestError("joined_members", resp.message)
        return len(resp.members)

    async def get_display_name(self, user_id: str) -> str | None:
        resp = await self.client.get_displayname(user_id)
        if isinstance(resp, ErrorResponse):
            raise MatrixRequestError("get_displayname", resp.message)
        return resp.displayname

    def get_room_name(self, room_id: str) -> str:
        """Display name of a joined room, falling back to its ID."""
        room = self.client.rooms.get(room_id) if self._client else None
        return room.display_name if room else room_id
