"""
QR PNG Types & Constants — 1-bit PNG container
===============================================

Foundational type definitions, constants, error classes and the two
leaf primitives of the encoder (CRC-32 and chunk framing) for the QR PNG
system. This module has ZERO external dependencies beyond the Python
standard library.

Format authority:
  - PNG (ISO/IEC 15948) signature, chunk layout, IHDR fields
  - PNG CRC appendix (reflected polynomial 0xEDB88320)
"""

import struct
from enum import IntEnum
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

# ═══════════════════════════════════════════════════════════════
# MAGIC BYTES & FIXED CHUNKS
# ═══════════════════════════════════════════════════════════════

# PNG file signature (8 bytes, precedes the first chunk)
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# IEND never carries data, so its CRC is fixed: 0xAE426082
IEND_CHUNK = b"\x00\x00\x00\x00IEND\xae\x42\x60\x82"

# Chunk types written by the encoder, in the order they must appear
CHUNK_IHDR = b"IHDR"
CHUNK_PLTE = b"PLTE"
CHUNK_TRNS = b"tRNS"
CHUNK_IDAT = b"IDAT"
CHUNK_IEND = b"IEND"

CHUNK_ORDER = (CHUNK_IHDR, CHUNK_PLTE, CHUNK_TRNS, CHUNK_IDAT, CHUNK_IEND)

# Chunk framing overhead: length(4) + type(4) + crc(4)
CHUNK_OVERHEAD = 12

# Image descriptor fixed fields
BIT_DEPTH = 1
COMPRESSION_METHOD = 0
FILTER_METHOD = 0
INTERLACE_METHOD = 0

# Per-scanline filter byte ("None"; no adaptive filtering)
FILTER_NONE = 0

# Largest chunk payload a conforming reader is required to accept
MAX_CHUNK_LENGTH = 2 ** 31 - 1


# ═══════════════════════════════════════════════════════════════
# DEFAULTS
# ═══════════════════════════════════════════════════════════════

DEFAULT_COLOR = (0, 0, 0)
DEFAULT_BACKGROUND = (255, 255, 255)
DEFAULT_PADDING = 4
DEFAULT_ERROR_CORRECTION = "M"
OPAQUE = 255


# ═══════════════════════════════════════════════════════════════
# COLOR TYPES (IHDR byte 9, only the two we emit)
# ═══════════════════════════════════════════════════════════════

class ColorType(IntEnum):
    """IHDR colour type codes used by a 1-bit image."""
    GRAYSCALE = 0  # Bit value is the gray level: 0 black, 1 white
    INDEXED   = 3  # Bit value indexes PLTE: 0 background, 1 foreground


# ═══════════════════════════════════════════════════════════════
# ERROR CLASSES
# ═══════════════════════════════════════════════════════════════

class QRPngError(Exception):
    """Base error for all QR PNG operations."""
    pass

class InvalidColor(QRPngError, ValueError):
    """Colour is not 3 or 4 integer components in 0-255."""
    pass

class InvalidPadding(QRPngError, ValueError):
    """Padding is negative or not an integer."""
    pass

class InvalidGrid(QRPngError, ValueError):
    """Module grid is empty, ragged, or not square."""
    pass

class InvalidErrorCorrection(QRPngError, ValueError):
    """Error correction level is not one of L, M, Q, H."""
    pass

class QRPngFormatError(QRPngError):
    """PNG structural or parsing error."""
    pass

class QRPngIntegrityError(QRPngError):
    """Chunk CRC verification failure."""
    pass


# ═══════════════════════════════════════════════════════════════
# CRC-32
# ═══════════════════════════════════════════════════════════════

def _make_crc_table() -> Tuple[int, ...]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            if c & 1:
                c = 0xEDB88320 ^ (c >> 1)
            else:
                c >>= 1
        table.append(c)
    return tuple(table)


# Built once at import; read-only afterwards, shared by every encode call.
CRC_TABLE = _make_crc_table()


def crc32(data: bytes, crc: int = 0) -> int:
    """
    CRC-32 as defined by the PNG specification.

    `crc` continues a previous checksum, so
    crc32(b + c) == crc32(c, crc32(b)). Returns an unsigned 32-bit int.
    """
    crc ^= 0xFFFFFFFF
    for byte in data:
        crc = CRC_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


# ═══════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class ColorPlan:
    """
    How the two requested colours are written.

    uses_grayscale: opaque black on white, written as colour type 0
                    with the pixel sense inverted; no PLTE chunk.
    has_alpha:      either colour is not fully opaque; a tRNS chunk
                    follows the palette.
    palette:        (background_rgb, foreground_rgb), None in grayscale.
    transparency:   (background_alpha, foreground_alpha), None without alpha.
    """
    uses_grayscale: bool
    has_alpha: bool
    palette: Optional[Tuple[RGB, RGB]] = None
    transparency: Optional[Tuple[int, int]] = None

    @property
    def color_type(self) -> ColorType:
        return ColorType.GRAYSCALE if self.uses_grayscale else ColorType.INDEXED

    def palette_bytes(self) -> bytes:
        """PLTE payload: background RGB then foreground RGB (6 bytes)."""
        background, foreground = self.palette
        return bytes(background) + bytes(foreground)

    def transparency_bytes(self) -> bytes:
        """tRNS payload: one alpha per palette entry, same order (2 bytes)."""
        return bytes(self.transparency)


@dataclass
class Chunk:
    """
    A single PNG chunk.

    Wire format (12 + len(data) bytes):
        length     : uint32 (4 bytes) — len(data), big-endian
        chunk_type : bytes  (4 bytes) — ASCII tag
        data       : bytes  (variable)
        crc        : uint32 (4 bytes) — CRC-32 of chunk_type + data
    """
    chunk_type: bytes
    data: bytes = b''

    def __post_init__(self):
        if isinstance(self.chunk_type, str):
            self.chunk_type = self.chunk_type.encode('ascii')
        if len(self.chunk_type) != 4:
            raise ValueError(f"Chunk type must be 4 bytes, got {self.chunk_type!r}")

    @property
    def crc(self) -> int:
        return crc32(self.data, crc32(self.chunk_type))

    def pack(self) -> bytes:
        """Serialize to wire format."""
        return (
            struct.pack('>I', len(self.data))
            + self.chunk_type
            + self.data
            + struct.pack('>I', self.crc)
        )

    @classmethod
    def unpack(cls, data: bytes, offset: int = 0) -> tuple:
        """
        Deserialize the chunk starting at `offset`.
        Returns (Chunk, stored_crc, bytes_consumed).
        """
        if len(data) - offset < CHUNK_OVERHEAD:
            raise QRPngFormatError(
                f"Chunk at offset {offset} needs >={CHUNK_OVERHEAD} bytes, "
                f"got {len(data) - offset}"
            )
        length = struct.unpack('>I', data[offset:offset+4])[0]
        if length > MAX_CHUNK_LENGTH:
            raise QRPngFormatError(f"Chunk length {length} exceeds 2^31-1")
        end = offset + 8 + length + 4
        if end > len(data):
            raise QRPngFormatError(
                f"Chunk at offset {offset} truncated: "
                f"need {end - offset} bytes, have {len(data) - offset}"
            )
        chunk_type = bytes(data[offset+4:offset+8])
        body = bytes(data[offset+8:offset+8+length])
        stored_crc = struct.unpack('>I', data[end-4:end])[0]
        return cls(chunk_type=chunk_type, data=body), stored_crc, end - offset


@dataclass
class ImageHeader:
    """
    IHDR payload — the image descriptor.

    Wire format (13 bytes):
        width       : uint32 (4 bytes)
        height      : uint32 (4 bytes)
        bit_depth   : uint8  (1 byte)  — always 1 here
        color_type  : uint8  (1 byte)  — 0 grayscale, 3 indexed
        compression : uint8  (1 byte)  — 0 (deflate)
        filter      : uint8  (1 byte)  — 0 (adaptive, per-row byte)
        interlace   : uint8  (1 byte)  — 0 (none)
    """
    width: int
    height: int
    color_type: ColorType
    bit_depth: int = BIT_DEPTH
    compression: int = COMPRESSION_METHOD
    filter: int = FILTER_METHOD
    interlace: int = INTERLACE_METHOD

    PACKED_SIZE = 4 + 4 + 1 + 1 + 1 + 1 + 1  # 13 bytes

    def pack(self) -> bytes:
        return struct.pack(
            '>IIBBBBB', self.width, self.height, self.bit_depth,
            int(self.color_type), self.compression, self.filter, self.interlace
        )

    @classmethod
    def unpack(cls, data: bytes) -> 'ImageHeader':
        if len(data) != cls.PACKED_SIZE:
            raise QRPngFormatError(f"IHDR needs {cls.PACKED_SIZE} bytes, got {len(data)}")
        width, height, depth, color_type, comp, filt, interlace = struct.unpack('>IIBBBBB', data)
        try:
            color_type = ColorType(color_type)
        except ValueError:
            raise QRPngFormatError(f"Unsupported colour type {color_type}")
        return cls(width=width, height=height, color_type=color_type,
                   bit_depth=depth, compression=comp, filter=filt,
                   interlace=interlace)


# ═══════════════════════════════════════════════════════════════
# UTILITY FUNCTIONS
# ═══════════════════════════════════════════════════════════════

def make_chunk(chunk_type, data: bytes = b'') -> bytes:
    """Frame `data` as a chunk of the given 4-character type."""
    return Chunk(chunk_type, bytes(data)).pack()


def build_header(width: int, height: int, plan: ColorPlan) -> bytes:
    """
    IHDR payload for a 1-bit image of the given size.

    Dimensions above 2^31-1 are not checked; readers may reject them.
    """
    if width < 1 or height < 1:
        raise InvalidGrid(f"Image must be at least 1x1, got {width}x{height}")
    return ImageHeader(width=width, height=height, color_type=plan.color_type).pack()


def row_stride(width: int) -> int:
    """Bytes per scanline: filter byte plus ceil(width / 8) packed bytes."""
    return 1 + (width + 7) // 8


def split_color(color: Sequence[int]) -> Tuple[RGB, int]:
    """Split a validated colour into (rgb, alpha); alpha defaults to opaque."""
    rgb = (color[0], color[1], color[2])
    alpha = color[3] if len(color) == 4 else OPAQUE
    return rgb, alpha


def chunk_types(png: bytes) -> List[bytes]:
    """List the chunk types of a PNG buffer in file order, without CRC checks."""
    types = []
    pos = len(PNG_SIGNATURE)
    while pos < len(png):
        chunk, _, consumed = Chunk.unpack(png, pos)
        types.append(chunk.chunk_type)
        pos += consumed
    return types
