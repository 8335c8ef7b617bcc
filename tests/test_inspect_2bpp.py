import numpy as np
import pytest
from PIL import Image

import inspect_2bpp
from inspect_2bpp import count_indices, inspect_file, parse_encoded, parse_header
from convert_2bpp import convert_image_file


def test_parse_header():
    assert parse_header(bytes([16, 8, 0xAA])) == {'width': 16, 'height': 8}


def test_parse_header_too_short():
    with pytest.raises(ValueError):
        parse_header(b'\x01')


def test_parse_encoded_splits_palette_and_pixels():
    data = bytes([3, 1, 10, 20, 30, 40, 50, 60, 0b10_01_00])
    parsed = parse_encoded(data)
    assert parsed['width'] == 3
    assert parsed['height'] == 1
    assert parsed['palette'] == [(10, 20, 30), (40, 50, 60)]
    assert parsed['pixels'] == bytes([0b10_01_00])


def test_parse_encoded_header_only():
    assert parse_encoded(bytes([0, 0])) == {'width': 0, 'height': 0, 'palette': [], 'pixels': b''}


@pytest.mark.parametrize('data', [
    bytes([2, 2]),  # missing pixel byte
    bytes([1, 1, 9, 9, 0]),  # palette table not a multiple of 3
    bytes([1, 1]) + bytes(12) + bytes([0]),  # 4 palette entries
])
def test_parse_encoded_rejects_bad_lengths(data):
    with pytest.raises(ValueError):
        parse_encoded(data)


def test_count_indices():
    counts, padding_ok = count_indices(bytes([0b11_10_01_00, 0b01_01]), 6)
    assert counts == [1, 3, 1, 1]
    assert padding_ok


def test_count_indices_dirty_padding():
    counts, padding_ok = count_indices(bytes([0b11_00_01_01]), 3)
    assert counts == [1, 2, 0, 0]
    assert not padding_ok


def test_inspect_converted_file(tmp_path, capsys):
    rows = [
        [(0, 0, 0, 0), (255, 0, 0, 255), (255, 0, 0, 255)],
        [(0, 128, 255, 255), (255, 0, 0, 255), (0, 0, 0, 0)],
    ]
    src = tmp_path / 'in.png'
    Image.fromarray(np.array(rows, dtype=np.uint8)).save(src)
    out = tmp_path / 'out.bin'
    convert_image_file(str(src), str(out))
    capsys.readouterr()

    parsed = inspect_file(str(out))
    assert parsed['palette'] == [(255, 0, 0), (0, 128, 255)]
    assert parsed['counts'] == [2, 3, 1, 0]
    output = capsys.readouterr().out
    assert "Header: 3x2, 10 bytes" in output
    assert "Color 2: #0080FF (1 pixels)" in output
    assert "Warning" not in output


def test_inspect_warns_about_ids_without_color(tmp_path, capsys):
    path = tmp_path / 'odd.bin'
    path.write_bytes(bytes([2, 1, 1, 2, 3, 0b11_01]))
    inspect_file(str(path))
    assert "Warning: 1 pixels use color 3" in capsys.readouterr().out


def test_main_reports_errors(tmp_path, monkeypatch, capsys):
    path = tmp_path / 'bad.bin'
    path.write_bytes(b'\x05')
    monkeypatch.setattr('sys.argv', ['inspect-2bpp', str(path)])
    with pytest.raises(SystemExit) as exc_info:
        inspect_2bpp.main()
    assert exc_info.value.code == 1
    assert "Error: File too short for header" in capsys.readouterr().err
