"""
QR PNG Decoder — reader and verifier for 1-bit QR PNGs
=======================================================

Reads back what QRPngEncoder writes and checks it the way a strict
reader would:
  - signature and chunk framing (lengths, truncation)
  - chunk CRCs
  - chunk order: IHDR < PLTE < tRNS < IDAT < IEND
  - IHDR fields this writer uses (bit depth 1, colour type 0 or 3,
    filter byte 0, no interlace)

Then inflates IDAT and returns the foreground grid plus RGBA pixels.
For an independent check, `load_image` hands the same bytes to Pillow.
"""

import io
import zlib
import logging
from typing import Dict, List, Optional, Tuple
from pathlib import Path

from PIL import Image

from qrpng_types import (
    PNG_SIGNATURE, CHUNK_IHDR, CHUNK_PLTE, CHUNK_TRNS, CHUNK_IDAT, CHUNK_IEND,
    CHUNK_ORDER, BIT_DEPTH, FILTER_NONE, INTERLACE_METHOD, OPAQUE,
    ColorType, Chunk, ImageHeader,
    QRPngFormatError, QRPngIntegrityError,
    row_stride,
)
from qrpng_encoder import DeflateEngine

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# DECODER
# ═══════════════════════════════════════════════════════════════

class QRPngDecoder:
    """
    Reader for 1-bit QR PNG files.

    Usage:
        decoder = QRPngDecoder()
        result = decoder.decode("qr.png")
        grid = result['grid']       # True where the foreground colour is
        pixels = result['pixels']   # rows of (r, g, b, a)

    With verify_integrity=True a CRC mismatch is recorded in
    'validation_errors'; with strict=True it raises QRPngIntegrityError.
    """

    def __init__(self, verify_integrity: bool = True, strict: bool = False):
        self.verify_integrity = verify_integrity
        self.strict = strict

    # ─── Main Entry Points ────────────────────────────────────

    def decode(self, filepath: str) -> dict:
        """Decode a PNG file from disk."""
        return self.decode_bytes(Path(filepath).read_bytes())

    def decode_bytes(self, data: bytes) -> dict:
        """
        Decode from in-memory bytes.

        Returns:
            dict with 'header', 'chunk_types', 'palette', 'transparency',
            'grid', 'pixels', 'validation_errors', 'valid'.
        """
        if data[:len(PNG_SIGNATURE)] != PNG_SIGNATURE:
            raise QRPngFormatError("Not a PNG file: signature mismatch")

        # ── Step 1: Walk and verify chunks ──
        chunks, validation_errors = self._read_chunks(data)
        types = [c.chunk_type for c in chunks]
        self._check_order(types)

        # ── Step 2: Image descriptor ──
        header = ImageHeader.unpack(chunks[0].data)
        self._check_header(header)

        # ── Step 3: Palette / transparency ──
        palette = None
        transparency = None
        for chunk in chunks:
            if chunk.chunk_type == CHUNK_PLTE:
                palette = self._parse_palette(chunk.data)
            elif chunk.chunk_type == CHUNK_TRNS:
                transparency = tuple(chunk.data)

        if header.color_type == ColorType.INDEXED and palette is None:
            raise QRPngFormatError("Indexed image without a PLTE chunk")
        if header.color_type == ColorType.GRAYSCALE and palette is not None:
            raise QRPngFormatError("Grayscale image carries a PLTE chunk")
        if header.color_type == ColorType.GRAYSCALE and transparency is not None:
            raise QRPngFormatError("Grayscale image carries a tRNS chunk")

        # ── Step 4: Inflate and unpack scanlines ──
        compressed = b''.join(c.data for c in chunks if c.chunk_type == CHUNK_IDAT)
        try:
            raw = DeflateEngine.decompress(compressed)
        except zlib.error as e:
            raise QRPngFormatError(f"IDAT inflate failed: {e}")
        bits = self._unpack_scanlines(raw, header.width, header.height)

        grid, pixels = self._resolve_pixels(bits, header.color_type,
                                            palette, transparency)

        logger.debug("Decoded %dx%d %s image, chunks=%s, errors=%d",
                     header.width, header.height, header.color_type.name,
                     [t.decode('ascii') for t in types], len(validation_errors))

        return {
            'header': {
                'width': header.width,
                'height': header.height,
                'bit_depth': header.bit_depth,
                'color_type': int(header.color_type),
                'compression': header.compression,
                'filter': header.filter,
                'interlace': header.interlace,
            },
            'chunk_types': [t.decode('ascii') for t in types],
            'palette': palette,
            'transparency': transparency,
            'grid': grid,
            'pixels': pixels,
            'validation_errors': validation_errors,
            'valid': len(validation_errors) == 0,
        }

    # ─── Chunk Walking ────────────────────────────────────────

    def _read_chunks(self, data: bytes) -> Tuple[List[Chunk], List[str]]:
        chunks = []
        validation_errors = []
        pos = len(PNG_SIGNATURE)

        while pos < len(data):
            chunk, stored_crc, consumed = Chunk.unpack(data, pos)
            if self.verify_integrity and chunk.crc != stored_crc:
                message = (
                    f"{chunk.chunk_type.decode('ascii', errors='replace')} at offset {pos}: "
                    f"CRC mismatch (stored {stored_crc:08x}, computed {chunk.crc:08x})"
                )
                if self.strict:
                    raise QRPngIntegrityError(message)
                validation_errors.append(message)
            chunks.append(chunk)
            pos += consumed
            if chunk.chunk_type == CHUNK_IEND:
                break

        if pos != len(data):
            validation_errors.append(f"{len(data) - pos} trailing bytes after IEND")
        return chunks, validation_errors

    @staticmethod
    def _check_order(types: List[bytes]):
        """Known chunks only, in CHUNK_ORDER order, each once except IDAT."""
        if not types or types[0] != CHUNK_IHDR:
            raise QRPngFormatError("First chunk must be IHDR")
        if types[-1] != CHUNK_IEND:
            raise QRPngFormatError("Last chunk must be IEND")
        if CHUNK_IDAT not in types:
            raise QRPngFormatError("No IDAT chunk")

        rank = -1
        for chunk_type in types:
            if chunk_type not in CHUNK_ORDER:
                raise QRPngFormatError(f"Unexpected chunk {chunk_type!r}")
            current = CHUNK_ORDER.index(chunk_type)
            if current < rank or (current == rank and chunk_type != CHUNK_IDAT):
                raise QRPngFormatError(f"Chunk {chunk_type!r} out of order")
            rank = current

    @staticmethod
    def _check_header(header: ImageHeader):
        if header.width < 1 or header.height < 1:
            raise QRPngFormatError(f"Invalid dimensions {header.width}x{header.height}")
        if header.bit_depth != BIT_DEPTH:
            raise QRPngFormatError(f"Unsupported bit depth {header.bit_depth}")
        if header.compression != 0 or header.filter != 0:
            raise QRPngFormatError("Unknown compression or filter method")
        if header.interlace != INTERLACE_METHOD:
            raise QRPngFormatError("Interlaced images are not supported")

    @staticmethod
    def _parse_palette(data: bytes) -> List[Tuple[int, int, int]]:
        if len(data) == 0 or len(data) % 3:
            raise QRPngFormatError(f"PLTE length {len(data)} is not a multiple of 3")
        return [tuple(data[i:i+3]) for i in range(0, len(data), 3)]

    # ─── Pixel Reconstruction ─────────────────────────────────

    @staticmethod
    def _unpack_scanlines(raw: bytes, width: int, height: int) -> List[List[int]]:
        stride = row_stride(width)
        if len(raw) != stride * height:
            raise QRPngFormatError(
                f"Image data is {len(raw)} bytes, expected {stride * height}"
            )
        rows = []
        for y in range(height):
            offset = y * stride
            if raw[offset] != FILTER_NONE:
                raise QRPngFormatError(f"Row {y}: unsupported filter type {raw[offset]}")
            line = raw[offset + 1:offset + stride]
            rows.append([(line[x >> 3] >> (7 - (x & 7))) & 1 for x in range(width)])
        return rows

    @staticmethod
    def _resolve_pixels(bits: List[List[int]], color_type: ColorType,
                        palette: Optional[list],
                        transparency: Optional[tuple]) -> tuple:
        if color_type == ColorType.GRAYSCALE:
            # 0 is black (foreground), 1 is white
            lut = {0: (0, 0, 0, OPAQUE), 1: (255, 255, 255, OPAQUE)}
            grid = [[bit == 0 for bit in row] for row in bits]
        else:
            if len(palette) < 2:
                raise QRPngFormatError("Palette needs two entries for a 1-bit image")
            alphas = list(transparency or ()) + [OPAQUE] * len(palette)
            lut = {i: palette[i] + (alphas[i],) for i in (0, 1)}
            grid = [[bit == 1 for bit in row] for row in bits]
        pixels = [[lut[bit] for bit in row] for row in bits]
        return grid, pixels


# ═══════════════════════════════════════════════════════════════
# CONVENIENCE FUNCTIONS
# ═══════════════════════════════════════════════════════════════

def decode_file(filepath: str, verify: bool = True) -> dict:
    """Convenience: decode a PNG file in one call."""
    return QRPngDecoder(verify_integrity=verify).decode(filepath)


def load_image(data: bytes) -> Image.Image:
    """Open PNG bytes with Pillow and convert to RGBA."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.convert('RGBA')


def pixel_counts(data: bytes) -> Dict[Tuple[int, int, int, int], int]:
    """Histogram of RGBA values as Pillow decodes them."""
    img = load_image(data)
    return {rgba: count for count, rgba in img.getcolors(maxcolors=img.width * img.height)}
