"""
P2P Chat - Textual-based terminal user interface.

Created by orpheus497
"""

from datetime import datetime
from typing import Callable, List, Optional

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Button, Footer, Header, Input, Label, RichLog, Static

from . import join_code
from .config import Config
from .connection_fsm import ConnectionState, StateKind
from .constants import APP_NAME, DEFAULT_LISTEN_PORT
from .discovery import get_local_ipv6_addresses
from .errors import BindError, ConnectError, P2PChatError
from .message import ChatMessage, MessageSnapshot
from .network import ConnectionManager
from .qr_code import create_join_code_qr


def describe_state(state: ConnectionState, port: int = 0) -> str:
    """Render a connection state as a one-line status with markup."""
    if state.kind == StateKind.DISCONNECTED:
        return "[grey50]● Disconnected[/]"
    if state.kind == StateKind.LISTENING:
        return f"[yellow]● Waiting for a peer on port {port}[/]"
    if state.kind == StateKind.CONNECTING:
        return "[yellow]● Connecting...[/]"
    if state.kind == StateKind.CONNECTED:
        return f"[green]● Connected to {escape(state.peer_address or 'unknown')}[/]"
    return f"[red]● Error: {escape(state.error_message or 'Unknown error')}[/]"


def format_chat_line(message: ChatMessage) -> str:
    """Render one chat message for the log."""
    when = datetime.fromtimestamp(message.timestamp / 1000).strftime("%H:%M:%S")
    sender = "[cyan]You[/]" if message.is_from_me else "[magenta]Peer[/]"
    return f"[grey50]{when}[/] {sender}: {escape(message.content)}"


class ChatApp(App):
    """Single-peer chat over IPv6."""

    TITLE = APP_NAME

    CSS = """
    Screen {
        background: #000000;
    }

    #connection-status {
        padding: 0 1;
        height: 1;
    }

    #controls, #message-input-container {
        height: auto;
    }

    #peer-input, #message-input {
        width: 1fr;
    }

    #join-code {
        padding: 0 1;
        color: #cccccc;
        height: auto;
    }

    #chat-log {
        height: 1fr;
        border: solid #444444;
    }

    Input {
        background: #0a0a0a;
        border: solid #444444;
        color: #ffffff;
    }

    Input:focus {
        border: solid #8b0000;
    }

    Button {
        margin: 0 1;
    }
    """

    BINDINGS = [
        Binding("f2", "host", "Host"),
        Binding("f3", "join", "Join"),
        Binding("ctrl+d", "disconnect", "Disconnect", priority=True),
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(
        self,
        config: Config,
        initial_peer: Optional[str] = None,
        manager: Optional[ConnectionManager] = None,
    ):
        super().__init__()
        self.config = config
        self.initial_peer = initial_peer
        self.manager = manager or ConnectionManager()

        self._unsubscribers: List[Callable[[], None]] = []
        self._rendered_messages = 0

    def compose(self) -> ComposeResult:
        """Compose the main application layout."""
        yield Header()
        yield Label("", id="connection-status")
        with Horizontal(id="controls"):
            yield Button("Host", variant="primary", id="host-btn")
            yield Input(placeholder="Join code or [address]:port", id="peer-input")
            yield Button("Join", id="join-btn")
            yield Button("Disconnect", variant="error", id="disconnect-btn")
        yield Static("", id="join-code")
        yield RichLog(id="chat-log", markup=True, wrap=True)
        with Horizontal(id="message-input-container"):
            yield Input(placeholder="Type a message...", id="message-input")
            yield Button("Send", variant="primary", id="send-btn")
        yield Footer()

    def on_mount(self) -> None:
        """Wire the connection manager to the widgets."""
        self._unsubscribers = [
            self.manager.subscribe_state(self._handle_state_change),
            self.manager.subscribe_messages(self._handle_messages),
        ]

        if self.initial_peer:
            self.query_one("#peer-input", Input).value = self.initial_peer
            self.action_join()

    def on_unmount(self) -> None:
        """Release sockets when the app goes away."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.manager.destroy()

    def _handle_state_change(self, state: ConnectionState) -> None:
        self.query_one("#connection-status", Label).update(
            describe_state(state, self.manager.local_port)
        )

    def _handle_messages(self, messages: MessageSnapshot) -> None:
        chat_log = self.query_one("#chat-log", RichLog)
        if len(messages) < self._rendered_messages:
            chat_log.clear()
            self._rendered_messages = 0

        for message in messages[self._rendered_messages :]:
            chat_log.write(format_chat_line(message))
        self._rendered_messages = len(messages)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Dispatch button presses to actions."""
        if event.button.id == "host-btn":
            self.action_host()
        elif event.button.id == "join-btn":
            self.action_join()
        elif event.button.id == "disconnect-btn":
            self.action_disconnect()
        elif event.button.id == "send-btn":
            self._send_current_message()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Enter sends a message or joins, depending on the field."""
        if event.input.id == "message-input":
            self._send_current_message()
        elif event.input.id == "peer-input":
            self.action_join()

    def action_host(self) -> None:
        """Start listening for a peer."""
        self.run_worker(self._host(), exclusive=True, group="connection")

    async def _host(self) -> None:
        port = self.config.get("network", "port", DEFAULT_LISTEN_PORT)
        try:
            actual_port = await self.manager.start_server(port)
        except BindError as e:
            self.notify(e.message, severity="error")
            return

        self._show_join_info(get_local_ipv6_addresses(), actual_port)

    def _show_join_info(self, addresses: List[str], port: int) -> None:
        display = self.query_one("#join-code", Static)
        if not addresses:
            display.update(f"Listening on port {port}. No routable IPv6 address found.")
            return

        peer = join_code.PeerInfo(addresses[0], port)
        code = join_code.encode(peer.address, peer.port)
        text = f"Join code: [bold]{code}[/]  ({escape(join_code.format_peer(peer))})"

        if self.config.get("ui", "show_qr", True):
            try:
                text += "\n" + create_join_code_qr(code)
            except P2PChatError as e:
                self.notify(e.message, severity="warning")

        display.update(text)

    def action_join(self) -> None:
        """Connect to the peer typed in the peer field."""
        raw = self.query_one("#peer-input", Input).value
        peer = join_code.parse_input(raw)
        if peer is None:
            self.notify("Invalid join code or address format", severity="error")
            return

        self.query_one("#join-code", Static).update("")
        self.run_worker(self._join(peer), exclusive=True, group="connection")

    async def _join(self, peer: join_code.PeerInfo) -> None:
        try:
            await self.manager.connect_to_peer(peer.address, peer.port)
        except ConnectError as e:
            self.notify(e.message, severity="error")

    def _send_current_message(self) -> None:
        message_input = self.query_one("#message-input", Input)
        text = message_input.value
        if not text.strip():
            return

        message_input.value = ""
        self.run_worker(self._send(text), group="send")

    async def _send(self, text: str) -> None:
        if not await self.manager.send_message(text):
            self.notify("Message not sent", severity="warning")

    def action_disconnect(self) -> None:
        """Drop the connection and the conversation."""
        self.manager.stop_connection()
        self.manager.clear_messages()
        self.query_one("#join-code", Static).update("")
