"""Matrix message and event-source types."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal

from matrixgate.config.schema import MatrixConfig, RoomConfig

EventKind = Literal["message", "invite"]

# (room_id, raw event dict as received from the homeserver)
EventCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


@dataclass
class MatrixMessage:
    """An admitted message, normalized for the downstream handler."""
    room_id: str
    event_id: str
    sender: str
    sender_name: str
    content: str
    timestamp: str  # ISO format
    thread_id: str | None = None
    reply_to_id: str | None = None


MessageHandler = Callable[[MatrixMessage, RoomConfig | None, bool], Awaitable[None]]


class MatrixEventSource(ABC):
    """
    What the admission filter needs from the transport.

    Events are delivered one at a time, but a callback may still be running
    when the next event arrives.
    """

    @property
    @abstractmethod
    def user_id(self) -> str:
        """The bot's own Matrix ID."""
        pass

    @property
    @abstractmethod
    def matrix_config(self) -> MatrixConfig:
        pass

    @abstractmethod
    def on(self, kind: EventKind, callback: EventCallback) -> None:
        """Register a callback for one category of events."""
        pass

    @abstractmethod
    async def get_joined_member_count(self, room_id: str) -> int:
        """Number of joined members. Raises on lookup failure."""
        pass

    @abstractmethod
    async def get_display_name(self, user_id: str) -> str | None:
        """A user's display name, if set. Raises on lookup failure."""
        pass
