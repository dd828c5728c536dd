"""
P2P Chat - Direct IPv6 Text Chat

A point-to-point chat between two hosts over plain TCP/IPv6, with compact
join codes (and QR codes) for sharing the host's address and port.

Author: orpheus497
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "orpheus497"
__license__ = "MIT"

# Import core modules for easy access
from .config import Config
from .connection_fsm import ConnectionState, StateKind
from .constants import APP_NAME, VERSION
from .errors import (
    BindError,
    ConfigError,
    ConnectError,
    ErrorCode,
    JoinCodeError,
    NetworkError,
    P2PChatError,
)
from .join_code import PeerInfo
from .message import ChatMessage
from .network import ConnectionManager

__all__ = [
    "APP_NAME",
    "VERSION",
    "BindError",
    "ChatMessage",
    "Config",
    "ConfigError",
    "ConnectError",
    "ConnectionManager",
    "ConnectionState",
    "ErrorCode",
    "JoinCodeError",
    "NetworkError",
    "P2PChatError",
    "PeerInfo",
    "StateKind",
    "__author__",
    "__license__",
    "__version__",
]
