"""
Unit tests for p2pchat.connection_fsm module.

Created by orpheus497

Tests the connection state type, transition table, history and subscribers.
"""

import pytest

from p2pchat.connection_fsm import (
    ConnectionEvent,
    ConnectionState,
    ConnectionStateMachine,
    StateKind,
)


class TestConnectionState:
    """Test the tagged connection state."""

    def test_constructors(self):
        """Test that each constructor sets the right kind and detail."""
        assert ConnectionState.disconnected() == ConnectionState(StateKind.DISCONNECTED)
        assert ConnectionState.listening().kind == StateKind.LISTENING
        assert ConnectionState.connecting().detail is None
        assert ConnectionState.connected("::1").peer_address == "::1"
        assert ConnectionState.error("boom").error_message == "boom"

    def test_detail_accessors_are_kind_specific(self):
        """Test that peer_address and error_message only apply to their kind."""
        assert ConnectionState.connected("::1").error_message is None
        assert ConnectionState.error("boom").peer_address is None

    def test_equality_includes_detail(self):
        """Test that states compare by kind and detail."""
        assert ConnectionState.connected("::1") == ConnectionState.connected("::1")
        assert ConnectionState.connected("::1") != ConnectionState.connected("::2")
        assert ConnectionState.error("a") != ConnectionState.error("b")

    def test_str(self):
        """Test the printable form."""
        assert str(ConnectionState.listening()) == "LISTENING"
        assert str(ConnectionState.connected("::1")) == "CONNECTED(::1)"

    def test_immutable(self):
        """Test that states cannot be modified."""
        state = ConnectionState.listening()
        with pytest.raises(AttributeError):
            state.kind = StateKind.ERROR


class TestTransitions:
    """Test the transition table."""

    def test_initial_state(self):
        """Test that a new machine starts disconnected."""
        fsm = ConnectionStateMachine()
        assert fsm.get_state() == ConnectionState.disconnected()
        assert fsm.is_disconnected()
        assert fsm.get_previous_state() is None

    def test_host_lifecycle(self):
        """Test listen, accept, peer close."""
        fsm = ConnectionStateMachine()

        assert fsm.transition(ConnectionEvent.LISTEN_STARTED)
        assert fsm.is_listening()

        assert fsm.transition(ConnectionEvent.PEER_ACCEPTED, "2001:db8::2")
        assert fsm.get_state() == ConnectionState.connected("2001:db8::2")

        assert fsm.transition(ConnectionEvent.STREAM_CLOSED)
        assert fsm.is_disconnected()

    def test_join_lifecycle(self):
        """Test connect request, connect, I/O failure."""
        fsm = ConnectionStateMachine()

        assert fsm.transition(ConnectionEvent.CONNECT_REQUESTED)
        assert fsm.get_state() == ConnectionState.connecting()

        assert fsm.transition(ConnectionEvent.TCP_CONNECTED, "::1")
        assert fsm.is_connected()

        assert fsm.transition(ConnectionEvent.IO_FAILED, "Connection lost: reset")
        assert fsm.get_state() == ConnectionState.error("Connection lost: reset")

    def test_connect_failure(self):
        """Test that a failed connect ends in ERROR."""
        fsm = ConnectionStateMachine()
        fsm.transition(ConnectionEvent.CONNECT_REQUESTED)

        assert fsm.transition(ConnectionEvent.TCP_FAILED, "Connection failed: refused")
        assert fsm.is_error()
        assert fsm.get_state().error_message == "Connection failed: refused"

    def test_bind_failure(self):
        """Test that a failed bind ends in ERROR."""
        fsm = ConnectionStateMachine()
        assert fsm.transition(ConnectionEvent.BIND_FAILED, "Failed to start server: in use")
        assert fsm.is_error()

    def test_stop_from_every_state(self):
        """Test that STOP_REQUESTED is valid everywhere and lands in DISCONNECTED."""
        for kind, events in ConnectionStateMachine.TRANSITIONS.items():
            assert events[ConnectionEvent.STOP_REQUESTED] == StateKind.DISCONNECTED, kind

    def test_invalid_transitions(self):
        """Test that events outside the table are refused."""
        fsm = ConnectionStateMachine()

        assert fsm.transition(ConnectionEvent.TCP_CONNECTED, "::1") is False
        assert fsm.transition(ConnectionEvent.STREAM_CLOSED) is False
        assert fsm.is_disconnected()

        fsm.transition(ConnectionEvent.LISTEN_STARTED)
        assert fsm.transition(ConnectionEvent.CONNECT_REQUESTED) is False
        assert fsm.is_listening()

    def test_error_recovers_on_accept(self):
        """Test that a host in ERROR still adopts an incoming peer."""
        fsm = ConnectionStateMachine()
        fsm.transition(ConnectionEvent.LISTEN_STARTED)
        fsm.transition(ConnectionEvent.PEER_ACCEPTED, "::2")
        fsm.transition(ConnectionEvent.IO_FAILED, "Connection lost")

        assert fsm.transition(ConnectionEvent.PEER_ACCEPTED, "::3")
        assert fsm.get_state() == ConnectionState.connected("::3")

    def test_replacement_peer(self):
        """Test that accepting a second peer replaces the first."""
        fsm = ConnectionStateMachine()
        fsm.transition(ConnectionEvent.PEER_ACCEPTED, "::2")

        assert fsm.transition(ConnectionEvent.PEER_ACCEPTED, "::3")
        assert fsm.get_state().peer_address == "::3"
        assert fsm.get_previous_state() == ConnectionState.connected("::2")

    def test_default_details(self):
        """Test placeholder details when none are given."""
        fsm = ConnectionStateMachine()
        fsm.transition(ConnectionEvent.PEER_ACCEPTED)
        assert fsm.get_state().peer_address == "unknown"

        fsm.transition(ConnectionEvent.IO_FAILED)
        assert fsm.get_state().error_message == "Unknown error"


class TestSubscribers:
    """Test state change notifications."""

    def test_subscribe_receives_current_state(self):
        """Test that a new subscriber is told the current state."""
        fsm = ConnectionStateMachine()
        received = []

        fsm.subscribe(received.append)

        assert received == [ConnectionState.disconnected()]

    def test_notifications_in_order(self):
        """Test that subscribers see every change in order."""
        fsm = ConnectionStateMachine()
        received = []
        fsm.subscribe(received.append)

        fsm.transition(ConnectionEvent.CONNECT_REQUESTED)
        fsm.transition(ConnectionEvent.TCP_CONNECTED, "::1")
        fsm.transition(ConnectionEvent.STOP_REQUESTED)

        assert received == [
            ConnectionState.disconnected(),
            ConnectionState.connecting(),
            ConnectionState.connected("::1"),
            ConnectionState.disconnected(),
        ]

    def test_same_state_not_republished(self):
        """Test that a transition to an equal state does not notify."""
        fsm = ConnectionStateMachine()
        received = []
        fsm.subscribe(received.append)

        assert fsm.transition(ConnectionEvent.STOP_REQUESTED)
        assert fsm.transition(ConnectionEvent.STOP_REQUESTED)

        assert received == [ConnectionState.disconnected()]

    def test_invalid_transition_not_published(self):
        """Test that a refused event does not notify."""
        fsm = ConnectionStateMachine()
        received = []
        fsm.subscribe(received.append)

        fsm.transition(ConnectionEvent.TCP_FAILED, "nope")

        assert received == [ConnectionState.disconnected()]

    def test_unsubscribe(self):
        """Test that an unsubscribed callback is no longer called."""
        fsm = ConnectionStateMachine()
        received = []
        unsubscribe = fsm.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        fsm.transition(ConnectionEvent.LISTEN_STARTED)

        assert received == [ConnectionState.disconnected()]

    def test_failing_subscriber_isolated(self):
        """Test that one failing callback does not block the others."""
        fsm = ConnectionStateMachine()
        received = []

        def broken(state):
            raise RuntimeError("subscriber failure")

        fsm.subscribe(broken)
        fsm.subscribe(received.append)

        assert fsm.transition(ConnectionEvent.LISTEN_STARTED)
        assert received[-1] == ConnectionState.listening()


class TestHistory:
    """Test transition history and statistics."""

    def test_history_records_transitions(self):
        """Test that history lists events in order."""
        fsm = ConnectionStateMachine()
        fsm.transition(ConnectionEvent.LISTEN_STARTED)
        fsm.transition(ConnectionEvent.PEER_ACCEPTED, "::2")

        history = fsm.get_history()
        assert [t.event for t in history] == [
            ConnectionEvent.LISTEN_STARTED,
            ConnectionEvent.PEER_ACCEPTED,
        ]
        assert history[-1].from_state == ConnectionState.listening()
        assert history[-1].to_state == ConnectionState.connected("::2")

    def test_history_is_bounded(self):
        """Test that old transitions are dropped past the limit."""
        fsm = ConnectionStateMachine()
        for _ in range(fsm.max_history + 20):
            fsm.transition(ConnectionEvent.STOP_REQUESTED)

        assert len(fsm.transition_history) == fsm.max_history
        assert len(fsm.get_history(5)) == 5

    def test_statistics(self):
        """Test the statistics summary."""
        fsm = ConnectionStateMachine()
        fsm.transition(ConnectionEvent.CONNECT_REQUESTED)
        fsm.transition(ConnectionEvent.TCP_FAILED, "refused")

        stats = fsm.get_statistics()

        assert stats["current_state"] == "ERROR"
        assert stats["previous_state"] == "CONNECTING"
        assert stats["error_message"] == "refused"
        assert stats["total_transitions"] == 2
        assert stats["event_counts"] == {"CONNECT_REQUESTED": 1, "TCP_FAILED": 1}
        assert stats["time_in_state"] >= 0

    def test_repr(self):
        """Test the debug representation."""
        assert "DISCONNECTED" in repr(ConnectionStateMachine())
