"""
P2P Chat - Join code encoding for sharing a peer address.

Created by orpheus497

A join code packs an IPv6 address and a TCP port into a short string that
can be read out loud, pasted or shown as a QR code:

    base64url(address[16] + port[2]), no padding -> 24 characters

The module also parses the raw forms people paste instead of a code,
``[address]:port`` and ``address:port``.
"""

import base64
import ipaddress
import logging
import re
import struct
from typing import List, NamedTuple, Optional

from .constants import (
    IPV6_ADDRESS_LENGTH,
    JOIN_CODE_LENGTH,
    JOIN_CODE_PAYLOAD_LENGTH,
    PORT_LENGTH,
)
from .errors import ErrorCode, JoinCodeError

logger = logging.getLogger(__name__)

CODE_LENGTH = JOIN_CODE_LENGTH
PAYLOAD_LENGTH = JOIN_CODE_PAYLOAD_LENGTH

_CODE_PATTERN = re.compile(r"[A-Za-z0-9_-]+")
_BRACKETED_PATTERN = re.compile(r"\[([^\]]+)\]:([0-9]+)")
_PORT_PATTERN = re.compile(r"[0-9]+")


class PeerInfo(NamedTuple):
    """Address and port of a peer recovered from user input."""

    address: str
    port: int


def encode(address: str, port: int) -> str:
    """
    Pack an IPv6 address and port into a join code.

    Args:
        address: Textual IPv6 address, optionally with a ``%zone`` suffix
        port: TCP port (0-65535)

    Returns:
        24-character URL-safe base64 string

    Raises:
        JoinCodeError: If the address is not valid IPv6 text or the port is out of range
    """
    if not 0 <= port <= 0xFFFF:
        raise JoinCodeError(
            ErrorCode.E302_INVALID_PORT, f"Port out of range: {port}", {"port": port}
        )

    payload = _address_to_bytes(address) + struct.pack("!H", port)
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode(code: str) -> Optional[PeerInfo]:
    """
    Unpack a join code.

    Args:
        code: Join code as produced by encode()

    Returns:
        PeerInfo with the canonical compressed address, or None if the
        code is not valid base64url or does not hold exactly 18 bytes
    """
    code = code.strip()
    if not _CODE_PATTERN.fullmatch(code):
        return None

    # Restore the padding stripped by encode(); "=" in the input itself is rejected above.
    padded = code + "=" * (-len(code) % 4)
    try:
        payload = base64.urlsafe_b64decode(padded)
    except ValueError as e:
        logger.debug(f"Join code is not valid base64: {e}")
        return None

    if len(payload) != JOIN_CODE_PAYLOAD_LENGTH:
        return None

    port_bytes = payload[IPV6_ADDRESS_LENGTH:IPV6_ADDRESS_LENGTH + PORT_LENGTH]
    (port,) = struct.unpack("!H", port_bytes)
    return PeerInfo(format_ipv6(payload[:IPV6_ADDRESS_LENGTH]), port)


def format_ipv6(packed: bytes) -> str:
    """
    Render 16 address bytes as compressed IPv6 text.

    The longest run of zero groups becomes ``::`` (the first one wins a tie);
    a single zero group is never compressed.

    Args:
        packed: 16-byte address in network byte order

    Returns:
        Lowercase textual address
    """
    groups: List[int] = list(struct.unpack("!8H", packed))

    best_start, best_len = -1, 0
    run_start, run_len = -1, 0
    for index, group in enumerate(groups):
        if group == 0:
            if run_start == -1:
                run_start = index
            run_len += 1
            if run_len > best_len:
                best_start, best_len = run_start, run_len
        else:
            run_start, run_len = -1, 0

    hextets = [f"{group:x}" for group in groups]
    if best_len <= 1:
        return ":".join(hextets)

    before = ":".join(hextets[:best_start])
    after = ":".join(hextets[best_start + best_len :])
    return f"{before}::{after}"


def parse_input(text: str) -> Optional[PeerInfo]:
    """
    Parse whatever the user pasted as a peer address.

    Tries, in order: a join code, ``[address]:port``, and ``address:port``
    split at the last colon.

    Args:
        text: Raw user input

    Returns:
        PeerInfo from the first form that matches, or None
    """
    trimmed = text.strip()

    peer = decode(trimmed)
    if peer is not None:
        return peer

    match = _BRACKETED_PATTERN.fullmatch(trimmed)
    if match:
        port = int(match.group(2))
        if port <= 0xFFFF:
            return PeerInfo(match.group(1), port)

    last_colon = trimmed.rfind(":")
    if last_colon > 0:
        suffix = trimmed[last_colon + 1 :]
        if _PORT_PATTERN.fullmatch(suffix):
            port = int(suffix)
            if 1 <= port <= 0xFFFF:
                return PeerInfo(trimmed[:last_colon], port)

    return None


def is_valid_code(code: str) -> bool:
    """Check whether a string decodes as a join code."""
    return decode(code) is not None


def is_raw_ipv6(text: str) -> bool:
    """Check whether input looks like a pasted address rather than a join code."""
    return ":" in text and not is_valid_code(text)


def format_peer(peer: PeerInfo) -> str:
    """Render a peer as ``[address]:port``."""
    return f"[{peer.address}]:{peer.port}"


def _address_to_bytes(address: str) -> bytes:
    """Parse IPv6 text (zone id discarded) into 16 bytes."""
    clean = address.strip().split("%", 1)[0]
    try:
        return ipaddress.IPv6Address(clean).packed
    except ValueError as e:
        raise JoinCodeError(
            ErrorCode.E301_INVALID_ADDRESS,
            f"Invalid IPv6 address: {address!r}",
            {"address": address, "error": str(e)},
        )
