#!/usr/bin/env python3
"""
Convert small palette-limited images to the 2bpp binary format.

2bpp format:
- 2-byte header: width, height (one byte each)
- Palette table: RGB triples for color ids 1..k (id 0 is always transparent)
- Pixel stream: 2-bit color ids, 4 pixels per byte, first pixel in bits 0-1

Usage:
    python convert_2bpp.py input.png output.bin
"""
import argparse
import os
import stat
import struct
import sys
import tempfile
from collections import namedtuple

import numpy as np
from PIL import Image

LIMIT_COLORS = 4
TRANSPARENT = (0, 0, 0, 0)
MAX_DIMENSION = 0xFF


class ConversionError(ValueError):
    """Base class for errors that abort a conversion."""


class DecodeError(ConversionError):
    pass


class TooManyColorsError(ConversionError):
    def __init__(self, x, y):
        super().__init__(f"Image has more than {LIMIT_COLORS} colors at position ({x}, {y})")
        self.x = x
        self.y = y


class DimensionOverflowError(ConversionError):
    def __init__(self, width, height):
        super().__init__(
            f"Image is {width}x{height}, but width and height must each be at most {MAX_DIMENSION}"
        )
        self.width = width
        self.height = height


class PaletteMismatchError(ConversionError):
    """Raised when the encoding pass sees pixels the palette pass did not."""

    def __init__(self, x, y, message=None):
        super().__init__(message or f"Pixel at ({x}, {y}) is not in the palette")
        self.x = x
        self.y = y


EncodedImage = namedtuple('EncodedImage', ['data', 'size'])


class Palette:
    """Color -> id mapping with id 0 reserved for full transparency.

    Ids are handed out in order of first appearance. The id -> color
    direction is kept in a list so the palette table never needs a
    reverse search.
    """

    def __init__(self):
        self._ids = {TRANSPARENT: 0}
        self._colors = [TRANSPARENT]

    def _add(self, color):
        self._ids[color] = len(self._colors)
        self._colors.append(color)

    def __len__(self):
        return len(self._colors)

    def __contains__(self, color):
        return tuple(color) in self._ids

    def __repr__(self):
        return f"Palette({self._colors!r})"

    @property
    def colors(self):
        return tuple(self._colors)

    def color_id(self, color):
        return self._ids[tuple(color)]

    def rgb_table(self):
        """Return the palette table: RGB of ids 1..n-1, alpha dropped."""
        return bytes(c for color in self._colors[1:] for c in color[:3])


def load_image(input_path):
    """Open an image file and convert it to RGBA."""
    try:
        with Image.open(input_path) as img:
            return img.convert('RGBA')
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Cannot decode image {input_path}: {e}") from e


def _as_rgba_array(image):
    if isinstance(image, Image.Image):
        if image.mode != 'RGBA':
            image = image.convert('RGBA')
        return np.asarray(image, dtype=np.uint8)
    arr = np.asarray(image, dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError(f"Expected an (H, W, 4) RGBA array, got shape {arr.shape}")
    return arr


def image_dimensions(image):
    """Return (width, height) of a PIL image or an (H, W, 4) array."""
    if isinstance(image, Image.Image):
        return image.size
    arr = _as_rgba_array(image)
    return arr.shape[1], arr.shape[0]


def iter_pixels(image):
    """Yield (x, y, (r, g, b, a)) for every pixel in row-major order."""
    arr = _as_rgba_array(image)
    # tolist() gives plain ints, so the tuples hash the same as literals
    for y, row in enumerate(arr.tolist()):
        for x, pixel in enumerate(row):
            yield x, y, tuple(pixel)


def build_palette(pixels):
    """Assign color ids 1..3 in order of first appearance.

    pixels: iterable of (x, y, (r, g, b, a)) in row-major order.
    The transparent color is pre-assigned id 0 and counts toward the
    4-color limit even when the image has no transparent pixels.

    Raises TooManyColorsError at the first pixel that would need a 5th id.
    """
    palette = Palette()
    for x, y, pixel in pixels:
        pixel = tuple(pixel)
        if pixel in palette:
            continue
        if len(palette) < LIMIT_COLORS:
            palette._add(pixel)
        else:
            raise TooManyColorsError(x, y)
    return palette


def pack_indices(ids):
    """Pack 2-bit color ids 4 per byte, first id in the least significant bits.

    A trailing partial byte has its unused high bit pairs left as zero.
    """
    ids = np.asarray(ids, dtype=np.uint8) & 0b11
    pad = -len(ids) % 4
    if pad:
        ids = np.concatenate([ids, np.zeros(pad, dtype=np.uint8)])
    quads = ids.reshape(-1, 4)
    packed = quads[:, 0] | (quads[:, 1] << 2) | (quads[:, 2] << 4) | (quads[:, 3] << 6)
    return packed.astype(np.uint8).tobytes()


def encoded_size(width, height, palette_size):
    return 2 + 3 * (palette_size - 1) + (width * height + 3) // 4


def encode(width, height, pixels, palette, truncate=False):
    """Encode pixels with a palette from build_palette().

    pixels must yield the same row-major sequence build_palette() saw.
    Width and height above 255 raise DimensionOverflowError unless
    truncate=True, which keeps only the low byte of each in the header.

    Returns: EncodedImage(data, size)
    """
    if not truncate and not (0 <= width <= MAX_DIMENSION and 0 <= height <= MAX_DIMENSION):
        raise DimensionOverflowError(width, height)

    header = struct.pack('<BB', width & 0xFF, height & 0xFF)
    table = palette.rgb_table()

    pixel_count = width * height
    ids = np.zeros(pixel_count, dtype=np.uint8)
    n = 0
    for x, y, pixel in pixels:
        if n >= pixel_count:
            raise PaletteMismatchError(x, y, f"Pixel at ({x}, {y}) is outside a {width}x{height} image")
        try:
            ids[n] = palette.color_id(pixel)
        except KeyError:
            raise PaletteMismatchError(x, y) from None
        n += 1
    if n != pixel_count:
        raise PaletteMismatchError(n % width, n // width, f"Expected {pixel_count} pixels, got {n}")

    data = header + table + pack_indices(ids)
    size = encoded_size(width, height, len(palette))
    assert len(data) == size
    return EncodedImage(data, size)


def _output_mode(output_path):
    """Mode open(output_path, 'wb') would leave the file with."""
    try:
        return stat.S_IMODE(os.stat(output_path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def _write_atomic(output_path, data):
    """Write data to output_path, leaving no file behind on failure."""
    out_dir = os.path.dirname(os.path.abspath(output_path))
    tmp = tempfile.NamedTemporaryFile(dir=out_dir, prefix='.2bpp-', suffix='.tmp', delete=False)
    try:
        with tmp:
            tmp.write(data)
            tmp.flush()
        # NamedTemporaryFile is always 0600
        os.chmod(tmp.name, _output_mode(output_path))
        os.replace(tmp.name, output_path)
    except BaseException:
        try:
            os.unlink(tmp.name)
        except FileNotFoundError:
            pass
        raise


def convert_image_file(input_path, output_path, truncate=False):
    """Convert an image file to a 2bpp file. Returns the output size in bytes."""
    img = load_image(input_path)
    width, height = img.size
    print(f"Loaded {input_path} ({width}x{height})")

    # First pass: palette. Nothing is written if it fails.
    palette = build_palette(iter_pixels(img))
    print(f"  Found {len(palette) - 1} colors (+ transparent)")
    for color_id, (r, g, b, a) in enumerate(palette.colors[1:], start=1):
        print(f"  Color {color_id}: #{r:02X}{g:02X}{b:02X} (alpha {a})")

    # Second pass: header, palette table, packed pixels
    encoded = encode(width, height, iter_pixels(img), palette, truncate=truncate)

    print(f"Saving 2bpp binary to {output_path}...")
    _write_atomic(output_path, encoded.data)
    return encoded.size


def main():
    parser = argparse.ArgumentParser(
        description="Convert an image with at most 4 colors (including transparent) to 2bpp binary"
    )
    parser.add_argument('input', help='Input image file (.png)')
    parser.add_argument('output', help='Output binary file (.bin)')
    args = parser.parse_args()

    print("2bpp Image Converter")
    print("====================")
    try:
        size = convert_image_file(args.input, args.output)
    except (ConversionError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Converted successfully! Output size: {size} bytes")


if __name__ == "__main__":
    main()
