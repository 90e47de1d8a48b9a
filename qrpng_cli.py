"""
Command line for QR PNG.

Usage:
    # Write a PNG
    qrpng "https://example.com" -o example.png

    # Red on transparent, printed as a data URL
    qrpng "hello" --color 200,0,0 --background 255,255,255,0 --format data-url

Defaults for --padding, --ecl and --log-level can be set via the
QRPNG_PADDING, QRPNG_ERROR_CORRECTION and QRPNG_LOG_LEVEL env vars.
"""

import os
import sys
import logging
import argparse
from pathlib import Path
from typing import Optional

from qrpng_types import (
    DEFAULT_COLOR, DEFAULT_BACKGROUND, DEFAULT_PADDING, DEFAULT_ERROR_CORRECTION,
    QRPngError,
)
from qrpng_matrix import make_qr_png, OUTPUT_FORMATS, ERROR_CORRECTION_LEVELS

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _str_env(env_var: str, default: str = None) -> str:
    """Helper to parse string environment variable."""
    return os.getenv(env_var, default)


def parse_color(value: str) -> tuple:
    """'R,G,B' or 'R,G,B,A' → tuple of ints. Range checks happen in the encoder."""
    try:
        return tuple(int(part) for part in value.split(','))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated integers, got {value!r}")


def configure_args(parser: argparse.ArgumentParser):
    parser.add_argument(
        "content",
        help="Text to encode in the QR code."
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        help="Write the PNG to this file. Without it the image is printed in --format."
    )
    parser.add_argument(
        "--color",
        type=parse_color,
        default=DEFAULT_COLOR,
        help="Foreground as R,G,B or R,G,B,A (default: 0,0,0)."
    )
    parser.add_argument(
        "--background",
        type=parse_color,
        default=DEFAULT_BACKGROUND,
        help="Background as R,G,B or R,G,B,A (default: 255,255,255)."
    )
    parser.add_argument(
        "--padding",
        type=int,
        # A string default goes through type=int, so a bad env value is a usage error
        default=_str_env("QRPNG_PADDING", str(DEFAULT_PADDING)),
        help="Quiet zone in modules (default: 4). Can be set via QRPNG_PADDING env var."
    )
    parser.add_argument(
        "--ecl",
        type=str.upper,
        choices=sorted(ERROR_CORRECTION_LEVELS),
        default=_str_env("QRPNG_ERROR_CORRECTION", DEFAULT_ERROR_CORRECTION).upper(),
        help="Error correction level (default: M). Can be set via QRPNG_ERROR_CORRECTION env var."
    )
    parser.add_argument(
        "--format",
        choices=sorted(OUTPUT_FORMATS) + ["png"],
        default="base64",
        help="Form written to stdout when no --output is given: raw png bytes "
             "or a text encoding (default: base64)."
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=_str_env("QRPNG_LOG_LEVEL", "WARNING").upper(),
        choices=LOG_LEVELS,
        help="Logging level (default: WARNING). Can be set via QRPNG_LOG_LEVEL env var."
    )


def configure_logging(args):
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def main(cli_args: Optional[list] = None) -> int:
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Render text as a minimal 1-bit QR code PNG"
    )
    configure_args(parser)
    args = parser.parse_args(cli_args)
    # argparse does not check env-provided defaults against choices
    if args.log_level not in LOG_LEVELS:
        parser.error(f"argument --log-level: invalid choice: {args.log_level!r}")
    configure_logging(args)

    try:
        png = make_qr_png(
            args.content,
            color=args.color,
            background=args.background,
            padding=args.padding,
            error_correction=args.ecl,
        )
    except QRPngError as e:
        parser.error(str(e))

    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        Path(args.output).write_bytes(png)
        logger.info("Wrote %d bytes to %s", len(png), args.output)
    elif args.format == "png":
        sys.stdout.buffer.write(png)
        sys.stdout.buffer.flush()
    else:
        print(OUTPUT_FORMATS[args.format](png))
    return 0


if __name__ == "__main__":
    sys.exit(main())
