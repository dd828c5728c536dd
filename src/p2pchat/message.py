"""
P2P Chat - Chat message model and in-memory message log.

Created by orpheus497

Messages live only for the duration of a chat session. The log is
append-only; it is emptied only by an explicit clear. Subscribers receive
the full ordered sequence as an immutable tuple after every change.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)

MessageSnapshot = Tuple["ChatMessage", ...]
MessageCallback = Callable[[MessageSnapshot], None]


def current_millis() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ChatMessage:
    """A single line of chat, sent or received."""

    content: str
    is_from_me: bool
    timestamp: int = field(default_factory=current_millis)


class MessageLog:
    """
    Ordered, append-only sequence of chat messages.

    All mutation goes through append() and clear(); readers only ever see
    tuple snapshots.
    """

    def __init__(self):
        self._messages: MessageSnapshot = ()
        self._subscribers: List[MessageCallback] = []
        self._lock = threading.RLock()

    def append(self, message: ChatMessage) -> None:
        """Append a message and publish the new sequence."""
        with self._lock:
            self._messages = self._messages + (message,)
            self._publish()

    def clear(self) -> None:
        """Drop every message and publish the empty sequence."""
        with self._lock:
            if not self._messages:
                return
            self._messages = ()
            self._publish()

    def snapshot(self) -> MessageSnapshot:
        """Get the current message sequence."""
        return self._messages

    def subscribe(self, callback: MessageCallback) -> Callable[[], None]:
        """
        Register a callback for message sequence changes.

        The callback is invoked immediately with the current snapshot.

        Args:
            callback: Called with the full message tuple after each change

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)
            self._notify(callback, self._messages)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self._messages
        for callback in list(self._subscribers):
            self._notify(callback, snapshot)

    @staticmethod
    def _notify(callback: MessageCallback, snapshot: MessageSnapshot) -> None:
        try:
            callback(snapshot)
        except Exception as e:
            logger.error(f"Message subscriber error: {e}")

    def __len__(self) -> int:
        return len(self._messages)
