"""Pairing gate between the admission filter and the agent."""

from typing import Awaitable, Callable

from loguru import logger

from matrixgate.channels.matrix.types import MatrixMessage, MessageHandler
from matrixgate.config.schema import RoomConfig
from matrixgate.groups.store import RegisteredGroupsStore
from matrixgate.pairing.service import PairingService, build_pairing_message

# (room_id) -> room display name
RoomNameLookup = Callable[[str], str]
# (room_id, text, thread_id) -> sent event ID
SendMessage = Callable[[str, str, str | None], Awaitable[str]]
# (room_id, is_typing)
SetTyping = Callable[[str, bool], Awaitable[None]]


class PairingGate:
    """
    Downstream handler that enforces pairing.

    Unpaired: every admitted message (re)creates the pending request and
    gets the pairing instructions as a reply. Paired: messages from the
    owner or in a registered room go on to the wrapped handler, with the
    typing indicator shown while it runs.
    """

    def __init__(
        self,
        pairing: PairingService,
        groups: RegisteredGroupsStore,
        send_message: SendMessage,
        room_name: RoomNameLookup,
        handler: MessageHandler,
        set_typing: SetTyping | None = None,
    ):
        self.pairing = pairing
        self.groups = groups
        self.send_message = send_message
        self.room_name = room_name
        self.handler = handler
        self.set_typing = set_typing

    async def __call__(self, message: MatrixMessage, room_config: RoomConfig | None, is_main: bool) -> None:
        if not self.pairing.is_paired():
            await self._request_pairing(message)
            return

        if not (is_main or self.pairing.is_owner(message.sender) or self.groups.get(message.room_id)):
            logger.debug(f"Dropping message from {message.sender} in unregistered room {message.room_id}")
            return

        if self.set_typing is None:
            await self.handler(message, room_config, is_main)
            return

        await self.set_typing(message.room_id, True)
        try:
            await self.handler(message, room_config, is_main)
        finally:
            await self.set_typing(message.room_id, False)

    async def _request_pairing(self, message: MatrixMessage) -> None:
        code = self.pairing.create_pairing_request(
            message.sender,
            message.room_id,
            self.room_name(message.room_id),
        )
        await self.send_message(message.room_id, build_pairing_message(code), message.thread_id)
        logger.info(f"Sent pairing code to {message.sender} in {message.room_id}")
