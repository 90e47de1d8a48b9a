"""
QR PNG Matrix — text to QR PNG in one call
===========================================

Builds the QR module grid with the `qrcode` library and hands it to the
1-bit encoder. Also provides the textual output forms (hex, base64,
data URL) used by the command line.
"""

import base64
import logging
from typing import List, Optional, Sequence, Union

import qrcode
import qrcode.constants

from qrpng_types import (
    DEFAULT_COLOR, DEFAULT_BACKGROUND, DEFAULT_PADDING, DEFAULT_ERROR_CORRECTION,
    InvalidErrorCorrection,
)
from qrpng_encoder import QRPngEncoder, encode_grid, validate_color, validate_padding

logger = logging.getLogger(__name__)

ERROR_CORRECTION_LEVELS = {
    'L': qrcode.constants.ERROR_CORRECT_L,  # ~7% recovery
    'M': qrcode.constants.ERROR_CORRECT_M,  # ~15%
    'Q': qrcode.constants.ERROR_CORRECT_Q,  # ~25%
    'H': qrcode.constants.ERROR_CORRECT_H,  # ~30%
}

DATA_URL_PREFIX = "data:image/png;base64,"


# ═══════════════════════════════════════════════════════════════
# MATRIX GENERATION
# ═══════════════════════════════════════════════════════════════

def resolve_error_correction(level: str) -> int:
    """Map 'L'/'M'/'Q'/'H' (any case) to the qrcode constant."""
    if not isinstance(level, str) or level.upper() not in ERROR_CORRECTION_LEVELS:
        raise InvalidErrorCorrection(
            f"error correction must be one of L, M, Q, H, got {level!r}"
        )
    return ERROR_CORRECTION_LEVELS[level.upper()]


def make_matrix(content: Union[str, bytes],
                error_correction: str = DEFAULT_ERROR_CORRECTION) -> List[List[bool]]:
    """
    QR module grid for `content`, without a quiet zone.
    The smallest version that fits is chosen.
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=resolve_error_correction(error_correction),
        border=0,
    )
    qr.add_data(content)
    qr.make(fit=True)
    modules = [[bool(cell) for cell in row] for row in qr.get_matrix()]
    logger.debug("QR version %d, %d modules per side", qr.version, len(modules))
    return modules


def make_qr_png(content: Union[str, bytes],
                color: Sequence[int] = DEFAULT_COLOR,
                background: Sequence[int] = DEFAULT_BACKGROUND,
                padding: int = DEFAULT_PADDING,
                error_correction: str = DEFAULT_ERROR_CORRECTION,
                encoder: Optional[QRPngEncoder] = None) -> bytes:
    """
    Render `content` as a QR code PNG.

    Args:
        content: Text or bytes to encode.
        color: Foreground RGB or RGBA, default opaque black.
        background: Background RGB or RGBA, default opaque white.
        padding: Quiet zone in modules around the code, default 4.
        error_correction: 'L', 'M', 'Q' or 'H'.

    Returns:
        PNG bytes, one pixel per module.
    """
    # Options are checked before the QR matrix is built.
    color = validate_color(color, "color")
    background = validate_color(background, "background")
    padding = validate_padding(padding)
    modules = make_matrix(content, error_correction)
    return encode_grid(modules, color, background, padding, encoder=encoder)


# ═══════════════════════════════════════════════════════════════
# OUTPUT FORMS
# ═══════════════════════════════════════════════════════════════

def to_hex(png: bytes) -> str:
    return png.hex()


def to_base64(png: bytes) -> str:
    return base64.b64encode(png).decode('ascii')


def to_data_url(png: bytes) -> str:
    """`data:image/png;base64,...`, usable directly as an <img> src."""
    return DATA_URL_PREFIX + to_base64(png)


OUTPUT_FORMATS = {
    'hex': to_hex,
    'base64': to_base64,
    'data-url': to_data_url,
}
