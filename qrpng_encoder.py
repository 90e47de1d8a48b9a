"""
QR PNG Encoder — 1-bit PNG writer for QR module grids
======================================================

Encodes a square boolean module grid into a minimal PNG:
  signature + IHDR + [PLTE] + [tRNS] + IDAT + IEND

Scope:
  - Padding helper (uniform background border around the module grid)
  - Colour plan: 1-bit grayscale fast path for opaque black on white,
    otherwise a 2-entry palette with optional tRNS alpha
  - Scanline packing: filter byte 0, MSB-first bit packing
  - Deflate via zlib at level 9 with the run-length strategy

All validation happens before the first byte is produced, so a call
either returns a complete image or raises.
"""

import zlib
import numbers
import logging
from typing import Any, List, Optional, Sequence

from qrpng_types import (
    PNG_SIGNATURE, IEND_CHUNK, CHUNK_IHDR, CHUNK_PLTE, CHUNK_TRNS, CHUNK_IDAT,
    FILTER_NONE, OPAQUE,
    DEFAULT_COLOR, DEFAULT_BACKGROUND, DEFAULT_PADDING,
    ColorPlan, InvalidColor, InvalidPadding, InvalidGrid,
    make_chunk, build_header, row_stride, split_color,
)

logger = logging.getLogger(__name__)

BLACK = (0, 0, 0)
WHITE = (255, 255, 255)


# ═══════════════════════════════════════════════════════════════
# DEFLATE ENGINE
# ═══════════════════════════════════════════════════════════════

class DeflateEngine:
    """zlib stream compression for IDAT payloads."""

    def __init__(self, level: int = 9, strategy: int = zlib.Z_RLE):
        self.level = level
        self.strategy = strategy

    def compress(self, data: bytes) -> bytes:
        """Compress `data` into a single zlib stream. zlib errors propagate."""
        compressor = zlib.compressobj(self.level, zlib.DEFLATED, zlib.MAX_WBITS,
                                      zlib.DEF_MEM_LEVEL, self.strategy)
        return compressor.compress(data) + compressor.flush()

    @staticmethod
    def decompress(data: bytes) -> bytes:
        return zlib.decompress(data)


# ═══════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════

def _is_integer(value: Any) -> bool:
    # numbers.Integral covers numpy integer scalars; bools are not colour bytes
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_byte(value: Any) -> bool:
    return _is_integer(value) and 0 <= value <= 255


def validate_color(color: Any, name: str = "color") -> tuple:
    """
    Check that `color` is 3 (RGB) or 4 (RGBA) integers in 0-255.
    Accepts any iterable, including bytes and numpy arrays. Returns a
    tuple of plain ints, so the result can be validated again safely.
    """
    try:
        components = tuple(color)
    except TypeError:
        raise InvalidColor(f"{name} must be a sequence of 3 or 4 bytes, got {color!r}")
    if len(components) not in (3, 4) or not all(_is_byte(c) for c in components):
        raise InvalidColor(
            f"{name} must be a length 3 or 4 sequence with elements in range 0-255, "
            f"got {color!r}"
        )
    return tuple(int(c) for c in components)


def validate_padding(padding: Any) -> int:
    if not _is_integer(padding):
        raise InvalidPadding(f"padding must be an integer, got {padding!r}")
    if padding < 0:
        raise InvalidPadding(f"padding must be >= 0, got {padding}")
    return int(padding)


def validate_grid(grid: Sequence[Sequence[Any]]) -> int:
    """Check that `grid` is a non-empty square. Returns its side length."""
    side = len(grid)
    if side == 0:
        raise InvalidGrid("grid must have at least one row")
    for y, row in enumerate(grid):
        if len(row) != side:
            raise InvalidGrid(
                f"grid must be square: row {y} has {len(row)} cells, expected {side}"
            )
    return side


# ═══════════════════════════════════════════════════════════════
# GRID HELPERS
# ═══════════════════════════════════════════════════════════════

def pad_grid(modules: Sequence[Sequence[Any]],
             padding: int = DEFAULT_PADDING) -> List[List[bool]]:
    """
    Surround the module grid with `padding` background cells on all
    four sides. Returns a new grid; `modules` is left untouched.
    """
    padding = validate_padding(padding)
    side = validate_grid(modules)
    padded_side = side + 2 * padding

    blank = [False] * padded_side
    margin = [False] * padding

    grid = [list(blank) for _ in range(padding)]
    for row in modules:
        grid.append(margin + [bool(cell) for cell in row] + margin)
    grid.extend(list(blank) for _ in range(padding))
    return grid


def invert_grid(grid: Sequence[Sequence[Any]]) -> List[List[bool]]:
    """Copy of `grid` with every cell's truth value flipped."""
    return [[not cell for cell in row] for row in grid]


# ═══════════════════════════════════════════════════════════════
# SCANLINE PACKER
# ═══════════════════════════════════════════════════════════════

def pack_scanlines(grid: Sequence[Sequence[Any]]) -> bytes:
    """
    Pack a grid of truthy/falsy cells into 1-bit PNG scanlines.

    Each row is a filter byte (0) followed by ceil(width / 8) bytes. The
    pixel at column n*8+i lands in bit 7-i of byte n; bits past the end
    of the row stay 0.
    """
    height = len(grid)
    width = len(grid[0]) if height else 0
    stride = row_stride(width)
    buf = bytearray(stride * height)

    for y, row in enumerate(grid):
        offset = y * stride
        buf[offset] = FILTER_NONE
        for x, cell in enumerate(row):
            if cell:
                buf[offset + 1 + (x >> 3)] |= 0x80 >> (x & 7)

    return bytes(buf)


# ═══════════════════════════════════════════════════════════════
# COLOUR MODE SELECTOR
# ═══════════════════════════════════════════════════════════════

def plan_colors(color: Sequence[int] = DEFAULT_COLOR,
                background: Sequence[int] = DEFAULT_BACKGROUND) -> ColorPlan:
    """
    Decide how the foreground/background pair is written.

    Opaque black on white becomes 1-bit grayscale (no palette, pixel
    sense inverted). Anything else is indexed with the background at
    palette index 0 and the foreground at index 1, plus tRNS alphas in
    the same order if either colour is translucent.
    """
    color = validate_color(color, "color")
    background = validate_color(background, "background")

    color_rgb, color_alpha = split_color(color)
    background_rgb, background_alpha = split_color(background)

    has_alpha = background_alpha != OPAQUE or color_alpha != OPAQUE
    uses_grayscale = (not has_alpha
                      and color_rgb == BLACK
                      and background_rgb == WHITE)

    if uses_grayscale:
        return ColorPlan(uses_grayscale=True, has_alpha=False)

    return ColorPlan(
        uses_grayscale=False,
        has_alpha=has_alpha,
        palette=(background_rgb, color_rgb),
        transparency=(background_alpha, color_alpha) if has_alpha else None,
    )


# ═══════════════════════════════════════════════════════════════
# ENCODER
# ═══════════════════════════════════════════════════════════════

class QRPngEncoder:
    """
    1-bit PNG encoder for square module grids.

    Usage:
        encoder = QRPngEncoder()
        png = encoder.encode(grid, color=(0, 0, 0), background=(255, 255, 255))
    """

    def __init__(self,
                 compression_level: int = 9,
                 strategy: int = zlib.Z_RLE):
        self.compressor = DeflateEngine(level=compression_level, strategy=strategy)

    def encode(self,
               grid: Sequence[Sequence[Any]],
               color: Sequence[int] = DEFAULT_COLOR,
               background: Sequence[int] = DEFAULT_BACKGROUND) -> bytes:
        """
        Encode an already padded pixel grid into PNG bytes.

        Args:
            grid: Square grid; truthy cells are foreground.
            color: Foreground RGB or RGBA.
            background: Background RGB or RGBA.

        Returns:
            The complete PNG file as bytes.
        """
        # ── 1. Validate everything up front ──
        plan = plan_colors(color, background)
        side = validate_grid(grid)

        # ── 2. Grayscale stores white as 1, so foreground becomes 0 ──
        if plan.uses_grayscale:
            grid = invert_grid(grid)

        # ── 3. Scanlines → deflate ──
        raw = pack_scanlines(grid)
        compressed = self.compressor.compress(raw)

        # ── 4. Assemble chunks in container order ──
        out = bytearray(PNG_SIGNATURE)
        out.extend(make_chunk(CHUNK_IHDR, build_header(side, side, plan)))
        if not plan.uses_grayscale:
            out.extend(make_chunk(CHUNK_PLTE, plan.palette_bytes()))
        if plan.has_alpha:
            out.extend(make_chunk(CHUNK_TRNS, plan.transparency_bytes()))
        out.extend(make_chunk(CHUNK_IDAT, compressed))
        out.extend(IEND_CHUNK)

        logger.debug(
            "Encoded %dx%d grid (%s, alpha=%s): %d raw → %d deflated, %d bytes total",
            side, side, plan.color_type.name, plan.has_alpha,
            len(raw), len(compressed), len(out)
        )
        return bytes(out)


# ═══════════════════════════════════════════════════════════════
# CONVENIENCE FUNCTIONS
# ═══════════════════════════════════════════════════════════════

def encode_grid(modules: Sequence[Sequence[Any]],
                color: Sequence[int] = DEFAULT_COLOR,
                background: Sequence[int] = DEFAULT_BACKGROUND,
                padding: int = DEFAULT_PADDING,
                encoder: Optional[QRPngEncoder] = None) -> bytes:
    """Convenience: pad a module grid and encode it in one call."""
    # Colours are validated before the grid, once; the tuples are passed on.
    color = validate_color(color, "color")
    background = validate_color(background, "background")
    grid = pad_grid(modules, padding)
    return (encoder or QRPngEncoder()).encode(grid, color, background)
