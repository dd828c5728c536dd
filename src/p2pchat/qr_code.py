"""
P2P Chat - QR codes for join codes

A join code is short enough for a version 2 symbol, so it fits in a
terminal next to the chat log. The art is drawn light-on-dark with half
blocks (two module rows per text line) and scans from a phone held up to
the screen. A PNG can be written for sharing out of band.

Author: orpheus497
Version: 1.0.0
"""

import logging
from pathlib import Path
from typing import List, Optional

import qrcode
import qrcode.constants
import qrcode.exceptions

from . import join_code
from .constants import QR_BORDER, QR_BOX_SIZE, QR_ERROR_CORRECTION
from .errors import ErrorCode, JoinCodeError, P2PChatError

logger = logging.getLogger(__name__)

_ERROR_LEVELS = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}

# (top is light, bottom is light) -> glyph
_HALF_BLOCKS = {
    (True, True): "█",
    (True, False): "▀",
    (False, True): "▄",
    (False, False): " ",
}


def generate_qr_code(
    data: str,
    error_correction: str = QR_ERROR_CORRECTION,
    box_size: int = QR_BOX_SIZE,
    border: int = QR_BORDER,
) -> qrcode.QRCode:
    """Build the smallest QR symbol holding ``data``.

    Args:
        data: Text to encode
        error_correction: L, M, Q or H; anything else means M
        box_size: Pixels per module in exported images
        border: Quiet zone width in modules

    Returns:
        QR code object with its matrix computed

    Raises:
        P2PChatError: If the data does not fit in any symbol version
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=_ERROR_LEVELS.get(error_correction.upper(), _ERROR_LEVELS["M"]),
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)

    try:
        qr.make(fit=True)
    except (ValueError, qrcode.exceptions.DataOverflowError) as e:
        raise P2PChatError(
            ErrorCode.E001_UNKNOWN_ERROR,
            f"QR code generation failed: {str(e) or 'data too long'}",
            {"length": len(data), "error_correction": error_correction},
        )

    logger.debug(f"QR version {qr.version} for {len(data)} characters")
    return qr


def render_qr_terminal(qr: qrcode.QRCode) -> str:
    """Draw a QR code as half-block text, light modules as ink.

    Returns:
        One text line per two module rows, each as wide as the matrix
    """
    matrix = qr.get_matrix()
    width = len(matrix)
    lines: List[str] = []

    for top in range(0, width, 2):
        upper = matrix[top]
        # An odd final row is paired with quiet zone.
        lower = matrix[top + 1] if top + 1 < width else [False] * width
        lines.append("".join(_HALF_BLOCKS[(not a, not b)] for a, b in zip(upper, lower)))

    return "\n".join(lines)


def export_qr_png(
    qr: qrcode.QRCode, output_path: Path, fill_color: str = "black", back_color: str = "white"
) -> None:
    """Save a QR code as PNG, creating parent directories.

    Raises:
        P2PChatError: If the file cannot be written
    """
    image = qr.make_image(fill_color=fill_color, back_color=back_color)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        image.save(str(output_path))
    except OSError as e:
        raise P2PChatError(
            ErrorCode.E001_UNKNOWN_ERROR,
            f"PNG export failed: {e}",
            {"path": str(output_path), "error": str(e)},
        )

    logger.info(f"Exported QR code to {output_path}")


def create_join_code_qr(code: str, output_path: Optional[Path] = None) -> str:
    """QR art for a join code, optionally also written as PNG.

    Raises:
        JoinCodeError: If ``code`` is not a join code
        P2PChatError: If rendering or export fails
    """
    code = code.strip()
    if not join_code.is_valid_code(code):
        raise JoinCodeError(
            ErrorCode.E300_JOIN_CODE_ERROR, f"Not a valid join code: {code!r}", {"code": code}
        )

    qr = generate_qr_code(code)
    if output_path is not None:
        export_qr_png(qr, output_path)

    return render_qr_terminal(qr)
