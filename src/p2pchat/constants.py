"""
P2P Chat - Global Constants and Configuration Values

This module defines all constants used throughout the P2P Chat application.
All magic numbers and configuration defaults are centralized here.

Author: orpheus497
Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "P2P Chat"

# Network Constants
DEFAULT_LISTEN_PORT = 0  # 0 lets the OS pick an ephemeral port
WILDCARD_ADDRESS = "::"
LISTEN_BACKLOG = 5

# Connection Timeouts (seconds)
CONNECT_TIMEOUT = 10

# Wire Format
LINE_TERMINATOR = "\n"
MESSAGE_ENCODING = "utf-8"
MAX_LINE_LENGTH = 1024 * 1024  # 1 MB per line

# Join Code Format
IPV6_ADDRESS_LENGTH = 16  # bytes
PORT_LENGTH = 2  # bytes, big-endian
JOIN_CODE_PAYLOAD_LENGTH = IPV6_ADDRESS_LENGTH + PORT_LENGTH
JOIN_CODE_LENGTH = 24  # base64url characters, no padding

# Connection State Machine
STATE_HISTORY_LIMIT = 100  # Keep last 100 transitions

# QR Code Defaults
QR_ERROR_CORRECTION = "M"
QR_BOX_SIZE = 10
QR_BORDER = 2

# File Paths
DEFAULT_DATA_DIR = "~/.p2pchat"
CONFIG_FILENAME = "config.toml"
LOGS_DIR = "logs"
LOG_FILENAME = "p2pchat.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5
