"""
P2P Chat - Connection State Machine for the chat session lifecycle.

Created by orpheus497

This module implements a formal finite state machine for the single peer
connection a chat session owns. Provides the tagged connection state,
valid transitions, transition history and state subscribers.
"""

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional

from .constants import STATE_HISTORY_LIMIT

logger = logging.getLogger(__name__)


class StateKind(Enum):
    """Connection state kinds."""

    DISCONNECTED = auto()  # No sockets open
    LISTENING = auto()  # Host bound, waiting for a peer
    CONNECTING = auto()  # Joiner dialing out
    CONNECTED = auto()  # Peer stream open
    ERROR = auto()  # Last attempt or stream failed


@dataclass(frozen=True)
class ConnectionState:
    """
    Tagged connection state.

    ``detail`` carries the peer address for CONNECTED and the error message
    for ERROR; it is None for every other kind.
    """

    kind: StateKind
    detail: Optional[str] = None

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls(StateKind.DISCONNECTED)

    @classmethod
    def listening(cls) -> "ConnectionState":
        return cls(StateKind.LISTENING)

    @classmethod
    def connecting(cls) -> "ConnectionState":
        return cls(StateKind.CONNECTING)

    @classmethod
    def connected(cls, peer_address: str) -> "ConnectionState":
        return cls(StateKind.CONNECTED, peer_address)

    @classmethod
    def error(cls, message: str) -> "ConnectionState":
        return cls(StateKind.ERROR, message)

    @property
    def peer_address(self) -> Optional[str]:
        """Peer address when connected."""
        return self.detail if self.kind == StateKind.CONNECTED else None

    @property
    def error_message(self) -> Optional[str]:
        """Error message when in the error state."""
        return self.detail if self.kind == StateKind.ERROR else None

    def __str__(self) -> str:
        if self.detail is None:
            return self.kind.name
        return f"{self.kind.name}({self.detail})"


class ConnectionEvent(Enum):
    """Events that trigger state transitions."""

    LISTEN_STARTED = auto()  # Listening socket bound
    BIND_FAILED = auto()  # Listening socket could not be bound
    CONNECT_REQUESTED = auto()  # Outbound connection requested
    TCP_CONNECTED = auto()  # Outbound connection established
    TCP_FAILED = auto()  # Outbound connection failed or timed out
    PEER_ACCEPTED = auto()  # Inbound connection accepted
    STREAM_CLOSED = auto()  # Peer closed the stream cleanly
    IO_FAILED = auto()  # Read or write failed on the open stream
    STOP_REQUESTED = auto()  # Explicit teardown


@dataclass
class StateTransition:
    """Represents a state transition."""

    from_state: ConnectionState
    event: ConnectionEvent
    to_state: ConnectionState
    timestamp: float = field(default_factory=time.time)


StateCallback = Callable[[ConnectionState], None]


class ConnectionStateMachine:
    """
    Finite state machine for the chat connection lifecycle.

    Enforces valid state transitions, tracks state history, and publishes
    every new state to subscribers in the order transitions happen.
    """

    # Define valid state transitions
    TRANSITIONS: Dict[StateKind, Dict[ConnectionEvent, StateKind]] = {
        StateKind.DISCONNECTED: {
            ConnectionEvent.LISTEN_STARTED: StateKind.LISTENING,
            ConnectionEvent.BIND_FAILED: StateKind.ERROR,
            ConnectionEvent.CONNECT_REQUESTED: StateKind.CONNECTING,
            ConnectionEvent.PEER_ACCEPTED: StateKind.CONNECTED,
            ConnectionEvent.STOP_REQUESTED: StateKind.DISCONNECTED,
        },
        StateKind.LISTENING: {
            ConnectionEvent.PEER_ACCEPTED: StateKind.CONNECTED,
            ConnectionEvent.STOP_REQUESTED: StateKind.DISCONNECTED,
        },
        StateKind.CONNECTING: {
            ConnectionEvent.TCP_CONNECTED: StateKind.CONNECTED,
            ConnectionEvent.TCP_FAILED: StateKind.ERROR,
            ConnectionEvent.STOP_REQUESTED: StateKind.DISCONNECTED,
        },
        StateKind.CONNECTED: {
            ConnectionEvent.PEER_ACCEPTED: StateKind.CONNECTED,
            ConnectionEvent.STREAM_CLOSED: StateKind.DISCONNECTED,
            ConnectionEvent.IO_FAILED: StateKind.ERROR,
            ConnectionEvent.STOP_REQUESTED: StateKind.DISCONNECTED,
        },
        StateKind.ERROR: {
            ConnectionEvent.PEER_ACCEPTED: StateKind.CONNECTED,
            ConnectionEvent.STOP_REQUESTED: StateKind.DISCONNECTED,
        },
    }

    def __init__(self):
        """Initialize state machine in the DISCONNECTED state."""
        self.current_state = ConnectionState.disconnected()
        self.previous_state: Optional[ConnectionState] = None
        self.state_entry_time = time.time()
        self.transition_history: List[StateTransition] = []
        self.max_history = STATE_HISTORY_LIMIT

        self._subscribers: List[StateCallback] = []
        self._lock = threading.RLock()

        logger.debug(f"State machine initialized in state: {self.current_state}")

    def transition(self, event: ConnectionEvent, detail: Optional[str] = None) -> bool:
        """
        Apply an event to the current state.

        Args:
            event: Event triggering transition
            detail: Peer address for CONNECTED targets, message for ERROR targets

        Returns:
            False if the event is not valid in the current state
        """
        with self._lock:
            if not self.is_valid_transition(self.current_state.kind, event):
                logger.warning(
                    f"Invalid transition: {self.current_state.kind.name} + "
                    f"{event.name} refused"
                )
                return False

            target = self.TRANSITIONS[self.current_state.kind][event]
            if target == StateKind.CONNECTED:
                new_state = ConnectionState.connected(detail or "unknown")
            elif target == StateKind.ERROR:
                new_state = ConnectionState.error(detail or "Unknown error")
            else:
                new_state = ConnectionState(target)

            old_state = self.current_state
            self.transition_history.append(StateTransition(old_state, event, new_state))
            del self.transition_history[: -self.max_history]

            if new_state == old_state:
                return True

            self.previous_state = old_state
            self.current_state = new_state
            self.state_entry_time = time.time()

            logger.info(f"State transition: {old_state} -> {new_state} (event: {event.name})")

            for callback in list(self._subscribers):
                self._notify(callback, new_state)

            return True

    def is_valid_transition(self, from_kind: StateKind, event: ConnectionEvent) -> bool:
        """
        Check if a transition is valid.

        Args:
            from_kind: Source state kind
            event: Event triggering transition

        Returns:
            True if valid, False otherwise
        """
        return from_kind in self.TRANSITIONS and event in self.TRANSITIONS[from_kind]

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """
        Register a callback for state changes.

        The callback is invoked immediately with the current state, then once
        per change.

        Args:
            callback: Called with the new ConnectionState

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)
            self._notify(callback, self.current_state)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @staticmethod
    def _notify(callback: StateCallback, state: ConnectionState) -> None:
        try:
            callback(state)
        except Exception as e:
            logger.error(f"State change callback error: {e}")

    def get_state(self) -> ConnectionState:
        return self.current_state

    def get_previous_state(self) -> Optional[ConnectionState]:
        """State before the last change, or None if nothing has changed yet."""
        return self.previous_state

    def get_time_in_state(self) -> float:
        """Seconds since the current state was entered."""
        return time.time() - self.state_entry_time

    def _is(self, kind: StateKind) -> bool:
        return self.current_state.kind == kind

    def is_connected(self) -> bool:
        return self._is(StateKind.CONNECTED)

    def is_listening(self) -> bool:
        return self._is(StateKind.LISTENING)

    def is_disconnected(self) -> bool:
        return self._is(StateKind.DISCONNECTED)

    def is_error(self) -> bool:
        return self._is(StateKind.ERROR)

    def get_history(self, count: int = 10) -> List[StateTransition]:
        """The last ``count`` accepted events, oldest first.

        Events that left the state unchanged are included.
        """
        return self.transition_history[-count:]

    def get_statistics(self) -> Dict[str, Any]:
        """Summary for diagnostics: current/previous kind, dwell time, event counts."""
        with self._lock:
            counts = Counter(t.event.name for t in self.transition_history)
            return {
                "current_state": self.current_state.kind.name,
                "previous_state": self.previous_state.kind.name if self.previous_state else None,
                "time_in_state": self.get_time_in_state(),
                "error_message": self.current_state.error_message,
                "total_transitions": len(self.transition_history),
                "event_counts": dict(counts),
            }

    def __repr__(self) -> str:
        history = len(self.transition_history)
        return f"ConnectionStateMachine(state={self.current_state}, history={history})"
