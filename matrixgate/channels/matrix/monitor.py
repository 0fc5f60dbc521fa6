"""Admission filter for inbound Matrix events."""

import re
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from matrixgate.channels.matrix.types import MatrixEventSource, MatrixMessage, MessageHandler
from matrixgate.config.schema import AssistantConfig, RoomConfig, resolve_room_config
from matrixgate.pairing.service import PairingService


def localpart(user_id: str) -> str:
    """@andy:matrix.org -> andy"""
    return user_id.split(":", 1)[0].lstrip("@")


def build_mention_pattern(display_name: str, user_id: str) -> re.Pattern[str]:
    """
    Match @<display name>, @<localpart> or the full user ID, case-insensitively.

    Every alternative is escaped, so IDs like @a.b:x.org only match literally.
    Empty names are skipped; a bare "@" would match any message.
    """
    alternatives = [
        "@" + re.escape(name)
        for name in (display_name, localpart(user_id))
        if name
    ]
    if user_id:
        alternatives.append(re.escape(user_id))
    if not alternatives:
        # Matches nothing
        return re.compile(r"(?!)")
    return re.compile("(" + "|".join(alternatives) + ")", re.IGNORECASE)


def strip_reply_fallback(body: str) -> str:
    """Drop the quoted '> ' block a client prepends to replies."""
    lines = body.split("\n")
    i = 0
    while i < len(lines) and lines[i].startswith(">"):
        i += 1
    if i == 0:
        return body
    if i < len(lines) and not lines[i].strip():
        i += 1
    return "\n".join(lines[i:])


def _timestamp(event: dict[str, Any]) -> str:
    ts = event.get("origin_server_ts")
    if isinstance(ts, (int, float)) and ts > 0:
        moment = datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
    else:
        moment = datetime.now(timezone.utc)
    return moment.isoformat()


class MatrixMonitor:
    """
    Decides which inbound messages reach the downstream handler.

    A message is dropped when it comes from the bot itself, is not plain
    text, is empty, or arrives in a disabled room. Otherwise DMs are always
    admitted; group rooms need a mention or trigger unless the room (or the
    global config) says otherwise. The main room needs none by default.
    """

    def __init__(
        self,
        source: MatrixEventSource,
        pairing: PairingService,
        assistant: AssistantConfig,
        on_message: MessageHandler,
    ):
        self.source = source
        self.pairing = pairing
        self.assistant = assistant
        self.on_message = on_message
        self.mention_pattern = build_mention_pattern(assistant.name, source.user_id)
        self.trigger_pattern = assistant.trigger_pattern
        self._room_triggers: dict[str, re.Pattern[str] | None] = {}

    def start(self) -> None:
        """Register event callbacks on the source."""
        self.source.on("message", self.handle_message)
        self.source.on("invite", self.handle_invite)
        logger.info("Matrix monitor started")

    async def handle_invite(self, room_id: str, event: dict[str, Any]) -> None:
        logger.info(f"Received invite to {room_id} from {event.get('sender')} (auto-joining)")

    def _room_trigger(self, room_id: str, room_config: RoomConfig | None) -> re.Pattern[str] | None:
        if room_config is None or not room_config.trigger_pattern:
            return None
        if room_id not in self._room_triggers:
            try:
                self._room_triggers[room_id] = re.compile(room_config.trigger_pattern, re.IGNORECASE)
            except re.error as e:
                logger.warning(f"Invalid trigger pattern for {room_id}: {e}")
                self._room_triggers[room_id] = None
        return self._room_triggers[room_id]

    def _is_triggered(self, text: str, room_id: str, room_config: RoomConfig | None) -> bool:
        if self.mention_pattern.search(text) or self.trigger_pattern.search(text):
            return True
        room_trigger = self._room_trigger(room_id, room_config)
        return bool(room_trigger and room_trigger.search(text))

    async def _is_dm(self, room_id: str) -> bool:
        try:
            return await self.source.get_joined_member_count(room_id) <= 2
        except Exception as e:
            # Unknown membership: treat as a group room so a mention is required
            logger.debug(f"Member lookup failed for {room_id}: {e}")
            return False

    async def _sender_name(self, sender: str) -> str:
        try:
            return await self.source.get_display_name(sender) or sender
        except Exception as e:
            logger.debug(f"Profile lookup failed for {sender}: {e}")
            return sender

    async def handle_message(self, room_id: str, event: dict[str, Any]) -> MatrixMessage | None:
        """
        Run one event through the filter.

        Returns the message handed to the handler, or None if it was dropped.
        """
        sender = event.get("sender")
        logger.debug(f"Received message event in {room_id} from {sender}")

        if not isinstance(sender, str) or sender == self.source.user_id:
            return None

        content = event.get("content")
        if not isinstance(content, dict) or content.get("msgtype") != "m.text":
            logger.debug(f"Ignoring non-text message in {room_id}")
            return None

        body = content.get("body")
        if not isinstance(body, str):
            return None

        relates_to = content.get("m.relates_to")
        if not isinstance(relates_to, dict):
            relates_to = {}
        in_reply_to = relates_to.get("m.in_reply_to")
        reply_to_id = in_reply_to.get("event_id") if isinstance(in_reply_to, dict) else None
        if reply_to_id:
            body = strip_reply_fallback(body)

        text = body.strip()
        if not text:
            return None

        room_config = resolve_room_config(self.source.matrix_config, room_id)
        if room_config is not None and room_config.enabled is False:
            return None

        is_main = self.pairing.is_main_room(room_id)
        is_dm = await self._is_dm(room_id)

        if is_dm:
            require_mention = False
        elif room_config is not None and room_config.require_mention is not None:
            require_mention = room_config.require_mention
        elif self.source.matrix_config.require_mention is not None:
            require_mention = self.source.matrix_config.require_mention
        else:
            require_mention = not is_main

        logger.debug(
            f"Message check in {room_id}: dm={is_dm} main={is_main} "
            f"require_mention={require_mention} text={text[:50]!r}"
        )

        if require_mention and not self._is_triggered(text, room_id, room_config):
            logger.debug(f"Message in {room_id} ignored, no mention or trigger")
            return None

        sender_name = await self._sender_name(sender)
        thread_id = relates_to.get("event_id") if relates_to.get("rel_type") == "m.thread" else None

        message = MatrixMessage(
            room_id=room_id,
            event_id=str(event.get("event_id", "")),
            sender=sender,
            sender_name=sender_name,
            content=text,
            timestamp=_timestamp(event),
            thread_id=thread_id,
            reply_to_id=reply_to_id,
        )

        logger.info(f"Processing Matrix message in {room_id} from {sender_name}")

        try:
            await self.on_message(message, room_config, is_main)
        except Exception as e:
            logger.error(f"Error handling Matrix message {message.event_id} in {room_id}: {e}")

        return message
