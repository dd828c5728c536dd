"""
P2P Chat - Exceptions and Error Codes

Every exception raised on purpose by the package derives from P2PChatError
and carries an ErrorCode, so log lines and UI notifications can be matched
to their source. Codes are grouped by area:

    E0xx  general
    E2xx  sockets and the peer stream
    E3xx  join codes
    E7xx  configuration

Author: orpheus497
Version: 1.0.0
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Stable identifiers for P2P Chat failures."""

    # General
    E001_UNKNOWN_ERROR = "E001"

    # Network
    E200_NETWORK_ERROR = "E200"
    E201_CONNECTION_FAILED = "E201"
    E202_CONNECTION_TIMEOUT = "E202"
    E203_CONNECTION_CLOSED = "E203"
    E204_SEND_FAILED = "E204"
    E205_RECEIVE_FAILED = "E205"
    E206_MANAGER_DESTROYED = "E206"
    E210_BIND_FAILED = "E210"

    # Join codes
    E300_JOIN_CODE_ERROR = "E300"
    E301_INVALID_ADDRESS = "E301"
    E302_INVALID_PORT = "E302"

    # Configuration
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E703_INVALID_CONFIG = "E703"
    E704_CONFIG_PARSE_ERROR = "E704"


class P2PChatError(Exception):
    """Base class for P2P Chat errors.

    Subclasses set ``default_code`` and ``default_message`` so callers can
    omit them.

    Attributes:
        code: ErrorCode identifying the failure
        message: Human-readable description, without the code
        details: Extra context for logs (address, port, path, ...)
    """

    default_code = ErrorCode.E001_UNKNOWN_ERROR
    default_message = "Unexpected error"

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(f"[{self.code.value}] {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form: code value, message and details."""
        return {"code": self.code.value, "message": self.message, "details": self.details}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value}, {self.message!r})"


class NetworkError(P2PChatError):
    """A socket or peer-stream operation failed, or the manager is unusable."""

    default_code = ErrorCode.E200_NETWORK_ERROR
    default_message = "Network operation failed"


class BindError(NetworkError):
    """The listening socket could not be created or bound."""

    default_code = ErrorCode.E210_BIND_FAILED
    default_message = "Failed to start server"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E210_BIND_FAILED, message, details)


class ConnectError(NetworkError):
    """An outbound connection was refused, unreachable, cancelled or timed out."""

    default_code = ErrorCode.E201_CONNECTION_FAILED
    default_message = "Connection failed"


class JoinCodeError(P2PChatError, ValueError):
    """An address or port cannot be packed into a join code.

    Also a ValueError, so plain ``except ValueError`` callers still work.
    """

    default_code = ErrorCode.E300_JOIN_CODE_ERROR
    default_message = "Join code operation failed"


class ConfigError(P2PChatError):
    """The configuration file could not be read, parsed, validated or written."""

    default_code = ErrorCode.E700_CONFIG_ERROR
    default_message = "Configuration operation failed"
