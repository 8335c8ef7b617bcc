#!/usr/bin/env python3
"""
Module to parse and summarize 2bpp binary files.

2bpp format uses:
- 2-byte header: width, height
- k RGB triples (k = 0..3) for color ids 1..k, id 0 is transparent
- ceil(width * height / 4) bytes of 2-bit color ids, first pixel in bits 0-1

The file carries no palette length, so k is derived from the file size.

Usage:
    python inspect_2bpp.py input.bin
"""
import argparse
import struct
import sys

import numpy as np


def parse_header(data):
    """Parse 2-byte header."""
    if len(data) < 2:
        raise ValueError(f"File too short for header (expected 2 bytes, got {len(data)})")
    width, height = struct.unpack('<BB', data[:2])
    return {
        'width': width,
        'height': height,
    }


def parse_encoded(data):
    """Split a 2bpp file into header, palette table and pixel stream.

    Returns: dict with width, height, palette (list of (r, g, b) for ids 1..k)
    and pixels (the packed pixel bytes).
    """
    header = parse_header(data)
    width = header['width']
    height = header['height']
    pixel_bytes = (width * height + 3) // 4

    table_len = len(data) - 2 - pixel_bytes
    if table_len < 0 or table_len % 3 != 0 or table_len > 9:
        raise ValueError(
            f"File length {len(data)} does not match a {width}x{height} image "
            f"(expected {2 + pixel_bytes} + 3*k bytes, k = 0..3)"
        )

    table = data[2:2 + table_len]
    palette = [tuple(table[i:i + 3]) for i in range(0, table_len, 3)]
    return {
        'width': width,
        'height': height,
        'palette': palette,
        'pixels': bytes(data[2 + table_len:]),
    }


def count_indices(stream, pixel_count):
    """Count how many pixels use each color id.

    Returns: (counts, padding_ok) where counts has 4 entries and padding_ok
    is False if the unused bit pairs of a partial final byte are non-zero.
    """
    arr = np.frombuffer(stream, dtype=np.uint8)
    ids = np.stack([(arr >> shift) & 0b11 for shift in (0, 2, 4, 6)], axis=1).reshape(-1)
    counts = np.bincount(ids[:pixel_count], minlength=4)
    padding_ok = not ids[pixel_count:].any()
    return [int(c) for c in counts], padding_ok


def inspect_file(input_file):
    """Print a summary of a 2bpp file and return the parsed contents."""
    with open(input_file, 'rb') as f:
        data = f.read()

    parsed = parse_encoded(data)
    width = parsed['width']
    height = parsed['height']
    palette = parsed['palette']
    print(f"Header: {width}x{height}, {len(data)} bytes")

    counts, padding_ok = count_indices(parsed['pixels'], width * height)
    print(f"Color 0: transparent ({counts[0]} pixels)")
    for color_id, (r, g, b) in enumerate(palette, start=1):
        print(f"Color {color_id}: #{r:02X}{g:02X}{b:02X} ({counts[color_id]} pixels)")

    # ids past the palette table have no color to map to
    for color_id in range(len(palette) + 1, 4):
        if counts[color_id]:
            print(f"Warning: {counts[color_id]} pixels use color {color_id}, which is not in the palette")
    if not padding_ok:
        print("Warning: unused bits in the last byte are not zero")

    parsed['counts'] = counts
    return parsed


def main():
    parser = argparse.ArgumentParser(description="Summarize a 2bpp binary file")
    parser.add_argument('input', help='Input binary file (.bin)')
    args = parser.parse_args()

    try:
        inspect_file(args.input)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
