"""Event and batch envelopes decoded from ``getUpdates`` responses."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Event:
    """One update received from the remote API.

    ``artifact_ref`` is the ``file_id`` of the largest photo size attached to
    the message, or ``None`` when the update carries no photo.
    """

    update_id: int
    chat_id: int | None = None
    message_id: int | None = None
    artifact_ref: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def has_artifact(self) -> bool:
        return (
            self.artifact_ref is not None
            and self.chat_id is not None
            and self.message_id is not None
        )

    @classmethod
    def from_update(cls, update: dict[str, Any]) -> Event:
        """Decode a raw update dict.

        Raises ``ValueError`` when ``update_id`` is missing or not an integer,
        since the cursor cannot advance past such an update.
        """
        update_id = update.get("update_id")
        if not isinstance(update_id, int) or isinstance(update_id, bool):
            msg = f"update without integer update_id: {update!r}"
            raise ValueError(msg)

        message = update.get("message")
        if not isinstance(message, dict):
            return cls(update_id=update_id, raw=update)

        chat = message.get("chat")
        chat_id = chat.get("id") if isinstance(chat, dict) else None
        message_id = message.get("message_id")

        artifact_ref: str | None = None
        sizes = message.get("photo")
        # Sizes are ordered smallest first; reply with the largest one.
        if isinstance(sizes, list) and sizes and isinstance(sizes[-1], dict):
            file_id = sizes[-1].get("file_id")
            if isinstance(file_id, str) and file_id:
                artifact_ref = file_id

        return cls(
            update_id=update_id,
            chat_id=chat_id if isinstance(chat_id, int) else None,
            message_id=message_id if isinstance(message_id, int) else None,
            artifact_ref=artifact_ref,
            raw=update,
        )


@dataclass(frozen=True, slots=True)
class Batch:
    """Ordered events returned by one poll call."""

    events: tuple[Event, ...] = ()

    def __len__(self) -> int:
        return len(self.events)

    def __bool__(self) -> bool:
        return bool(self.events)

    @property
    def last_id(self) -> int | None:
        return self.events[-1].update_id if self.events else None

    def next_cursor(self, current: int) -> int:
        """Cursor for the following poll: one past the last event, never lower."""
        last = self.last_id
        if last is None:
            return current
        return max(current, last + 1)

    @classmethod
    def from_updates(cls, updates: Sequence[dict[str, Any]]) -> Batch:
        return cls(events=tuple(Event.from_update(u) for u in updates))
