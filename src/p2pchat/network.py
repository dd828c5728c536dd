"""
P2P Chat - Asynchronous point-to-point networking layer.

Created by orpheus497

This module implements:
- A dual-stack IPv6 listening socket for the host role
- A single outbound TCP connection for the joiner role
- Line-oriented UTF-8 message streaming
- Coordinated teardown of every socket and task the session owns

Exactly one peer stream exists at a time. A newly accepted peer replaces
the previous one.
"""

import asyncio
import contextlib
import functools
import logging
import socket
from typing import Callable, Optional

from .connection_fsm import (
    ConnectionEvent,
    ConnectionState,
    ConnectionStateMachine,
    StateCallback,
)
from .constants import (
    CONNECT_TIMEOUT,
    DEFAULT_LISTEN_PORT,
    LINE_TERMINATOR,
    LISTEN_BACKLOG,
    MAX_LINE_LENGTH,
    MESSAGE_ENCODING,
    WILDCARD_ADDRESS,
)
from .errors import BindError, ConnectError, ErrorCode, NetworkError
from .message import ChatMessage, MessageCallback, MessageLog, MessageSnapshot

# Configure logging for connection diagnostics
logger = logging.getLogger(__name__)


def _decode_line(line: bytes) -> str:
    """Strip one trailing line terminator (LF or CRLF) and decode."""
    if line.endswith(b"\n"):
        line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
    return line.decode(MESSAGE_ENCODING, errors="replace")


def _strip_zone(address: str) -> str:
    return address.split("%", 1)[0]


class ConnectionManager:
    """
    Owns the socket lifecycle of one chat session.

    The manager is either hosting (listening, and then talking to the last
    accepted peer) or joining (talking to the peer it dialed). All state
    changes go through a ConnectionStateMachine; received and sent lines go
    to a MessageLog. Callers observe both through subscriptions.

    Must be used from a single asyncio event loop.
    """

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT):
        self.connect_timeout = connect_timeout

        self.fsm = ConnectionStateMachine()
        self.message_log = MessageLog()

        self._server: Optional[asyncio.AbstractServer] = None
        self._server_port = 0
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._connect_task: Optional[asyncio.Task] = None

        # Bumped on every teardown so late accepts/connects from an older
        # session can tell they are stale.
        self._session = 0
        self._destroyed = False

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self.fsm.get_state()

    @property
    def messages(self) -> MessageSnapshot:
        """Current message sequence."""
        return self.message_log.snapshot()

    @property
    def local_port(self) -> int:
        """Port of the listening socket, or 0 when not hosting."""
        return self._server_port

    def is_connected(self) -> bool:
        """Check whether a peer stream is open."""
        return self.fsm.is_connected()

    def subscribe_state(self, callback: StateCallback) -> Callable[[], None]:
        """Subscribe to connection state changes. Returns an unsubscribe function."""
        return self.fsm.subscribe(callback)

    def subscribe_messages(self, callback: MessageCallback) -> Callable[[], None]:
        """Subscribe to message sequence changes. Returns an unsubscribe function."""
        return self.message_log.subscribe(callback)

    async def start_server(self, port: int = DEFAULT_LISTEN_PORT) -> int:
        """
        Start hosting: bind a listening socket and accept peers.

        Any previous session is torn down first.

        Args:
            port: Port to bind, 0 for an OS-assigned port

        Returns:
            The port actually bound

        Raises:
            BindError: If the socket cannot be created or bound
        """
        self._check_alive()
        self.stop_connection()

        try:
            sock = self._create_listen_socket(port)
        except (OSError, OverflowError) as e:
            raise self._bind_failed(port, e) from e

        try:
            self._server = await asyncio.start_server(
                functools.partial(self._handle_client, self._session),
                sock=sock,
                limit=MAX_LINE_LENGTH,
            )
        except OSError as e:
            sock.close()
            raise self._bind_failed(port, e) from e

        self._server_port = sock.getsockname()[1]
        self.fsm.transition(ConnectionEvent.LISTEN_STARTED)
        logger.info(f"P2P server listening on [{WILDCARD_ADDRESS}]:{self._server_port}")
        return self._server_port

    def _create_listen_socket(self, port: int) -> socket.socket:
        """Create and bind a dual-stack IPv6 listening socket."""
        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            # Accept IPv4-mapped peers too where the OS allows it.
            with contextlib.suppress(OSError, AttributeError):
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            sock.bind((WILDCARD_ADDRESS, port))
            sock.listen(LISTEN_BACKLOG)
        except BaseException:
            sock.close()
            raise
        return sock

    def _bind_failed(self, port: int, error: BaseException) -> BindError:
        message = f"Failed to start server: {error}"
        logger.error(f"{message} (port {port})")
        self.fsm.transition(ConnectionEvent.BIND_FAILED, message)
        return BindError(message, {"port": port, "error": str(error)})

    async def _handle_client(
        self, session: int, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ):
        """Adopt an accepted connection as the current peer and read from it."""
        peername = writer.get_extra_info("peername")
        peer_address = _strip_zone(str(peername[0])) if peername else "unknown"

        if session != self._session or self._destroyed:
            logger.debug(f"Dropping connection from {peer_address} accepted by a stopped server")
            writer.close()
            return

        logger.info(f"Incoming connection from {peer_address}")
        self._release_peer()
        self._reader, self._writer = reader, writer
        self._reader_task = asyncio.current_task()
        self.fsm.transition(ConnectionEvent.PEER_ACCEPTED, peer_address)

        await self._read_messages(reader, writer)

    async def connect_to_peer(self, address: str, port: int) -> None:
        """
        Start joining: open one outbound connection to a peer.

        Any previous session is torn down first. The attempt is bounded by
        ``connect_timeout``; there is no retry. stop_connection() aborts a
        pending attempt.

        Args:
            address: Peer IPv6 address (or resolvable host name)
            port: Peer port

        Raises:
            ConnectError: If resolution or connection fails, times out, or
                the attempt is stopped (E203)
        """
        self._check_alive()
        self.stop_connection()
        session = self._session

        self.fsm.transition(ConnectionEvent.CONNECT_REQUESTED)
        logger.info(f"Attempting connection to [{address}]:{port}")

        attempt = asyncio.create_task(
            asyncio.wait_for(
                asyncio.open_connection(address, port, limit=MAX_LINE_LENGTH),
                timeout=self.connect_timeout,
            )
        )
        self._connect_task = attempt
        try:
            reader, writer = await attempt
        except asyncio.TimeoutError as e:
            message = f"Connection failed: timed out after {self.connect_timeout}s"
            self._fail_connect(session, message)
            raise ConnectError(
                ErrorCode.E202_CONNECTION_TIMEOUT,
                message,
                {"address": address, "port": port},
            ) from e
        except asyncio.CancelledError:
            if session != self._session:
                logger.info(f"Connection attempt to [{address}]:{port} stopped")
                raise self._connect_cancelled(address, port) from None
            self._fail_connect(session, "Connection failed: cancelled")
            raise
        except (OSError, ValueError, OverflowError) as e:
            message = f"Connection failed: {e}"
            self._fail_connect(session, message)
            raise ConnectError(
                ErrorCode.E201_CONNECTION_FAILED,
                message,
                {"address": address, "port": port, "error": str(e)},
            ) from e
        finally:
            if self._connect_task is attempt:
                self._connect_task = None

        if session != self._session:
            writer.close()
            raise self._connect_cancelled(address, port)

        self._reader, self._writer = reader, writer
        self.fsm.transition(ConnectionEvent.TCP_CONNECTED, address)
        self._reader_task = asyncio.create_task(self._read_messages(reader, writer))
        logger.info(f"Connected to [{address}]:{port}")

    @staticmethod
    def _connect_cancelled(address: str, port: int) -> ConnectError:
        return ConnectError(
            ErrorCode.E203_CONNECTION_CLOSED,
            "Connection cancelled",
            {"address": address, "port": port},
        )

    def _fail_connect(self, session: int, message: str) -> None:
        logger.warning(message)
        if session == self._session:
            self.fsm.transition(ConnectionEvent.TCP_FAILED, message)

    async def _read_messages(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """
        Read lines from a peer stream until it ends.

        End-of-stream counts as a clean close (DISCONNECTED); an OSError or an
        over-long line counts as a failure (ERROR). Cancellation changes nothing.
        """
        logger.debug("Receive loop started")
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                self.message_log.append(ChatMessage(_decode_line(line), is_from_me=False))
        except (OSError, ValueError) as e:
            if self._writer is writer:
                logger.warning(f"[{ErrorCode.E205_RECEIVE_FAILED.value}] Connection lost: {e}")
                self.fsm.transition(ConnectionEvent.IO_FAILED, f"Connection lost: {e}")
                self._release_peer(cancel_reader=False)
            return
        finally:
            logger.debug("Receive loop ended")

        if self._writer is writer:
            logger.info("Connection closed by peer")
            if self.fsm.is_connected():
                self.fsm.transition(ConnectionEvent.STREAM_CLOSED)
            self._release_peer(cancel_reader=False)

    async def send_message(self, content: str) -> bool:
        """
        Send one chat line to the peer.

        The content is written as-is followed by a newline. A newline inside
        the content is not escaped, so the peer sees it as several messages.

        Args:
            content: Message text

        Returns:
            True if written, False if no stream is open or the write failed
        """
        self._check_alive()

        writer = self._writer
        if writer is None or writer.is_closing():
            logger.debug("No open peer stream, message not sent")
            return False

        try:
            writer.write((content + LINE_TERMINATOR).encode(MESSAGE_ENCODING))
            await writer.drain()
        except (OSError, RuntimeError, UnicodeError) as e:
            logger.warning(f"[{ErrorCode.E204_SEND_FAILED.value}] Send failed: {e}")
            return False

        self.message_log.append(ChatMessage(content, is_from_me=True))
        logger.debug(f"Sent {len(content)} characters")
        return True

    def stop_connection(self) -> None:
        """
        Tear down the session: close every socket and drop every task.

        Safe to call from any state and any number of times. Always ends in
        DISCONNECTED.
        """
        self._session += 1
        attempt = self._connect_task
        self._connect_task = None
        if attempt is not None and not attempt.done():
            attempt.cancel()
        self._release_peer()

        server = self._server
        self._server = None
        self._server_port = 0
        if server is not None:
            server.close()
            logger.info("P2P server stopped")

        self.fsm.transition(ConnectionEvent.STOP_REQUESTED)

    def _release_peer(self, cancel_reader: bool = True) -> None:
        """Close the current peer stream, if any, and forget it."""
        task = self._reader_task
        writer = self._writer
        self._reader_task = None
        self._reader = None
        self._writer = None

        if cancel_reader and task is not None and not task.done():
            if task is not self._running_task():
                task.cancel()

        if writer is not None:
            try:
                writer.close()
            except RuntimeError as e:
                # Event loop already closed; the transport goes with it.
                logger.debug(f"Error closing peer stream: {e}")

    @staticmethod
    def _running_task() -> Optional[asyncio.Task]:
        try:
            return asyncio.current_task()
        except RuntimeError:
            return None

    def clear_messages(self) -> None:
        """Empty the message sequence."""
        self.message_log.clear()

    def destroy(self) -> None:
        """Stop the session and retire the manager for good."""
        if self._destroyed:
            return
        self.stop_connection()
        self._destroyed = True
        logger.debug("Connection manager destroyed")

    def _check_alive(self) -> None:
        if self._destroyed:
            raise NetworkError(
                ErrorCode.E206_MANAGER_DESTROYED, "Connection manager has been destroyed"
            )

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.destroy()

    def __repr__(self) -> str:
        return f"ConnectionManager(state={self.state}, port={self._server_port})"
