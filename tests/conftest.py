"""Shared fixtures for the grid picker tests."""

import zlib
from io import BytesIO

import pytest
from PIL import Image

from grid_state import GridStore, initialize_grid, set_image


@pytest.fixture()
def png_bytes() -> bytes:
    """A tiny red PNG."""
    buf = BytesIO()
    Image.new('RGB', (4, 3), (255, 0, 0)).save(buf, format='PNG')
    return buf.getvalue()


@pytest.fixture()
def grid():
    """3 x 4 grid with images in cells 0 and 2."""
    g = initialize_grid(3, 4)
    g = set_image(g, 0, 'https://example.com/a.jpg')
    return set_image(g, 2, 'https://example.com/b.jpg')


@pytest.fixture()
def store() -> GridStore:
    return GridStore(rows=3, columns=4)


@pytest.fixture()
def oversized_png(png_bytes: bytes) -> bytes:
    """The tiny PNG with its header claiming 100000 x 100000 pixels."""
    ihdr_start = 8
    data_start = ihdr_start + 8
    header = bytearray(png_bytes[data_start:data_start + 13])
    header[0:4] = (100000).to_bytes(4, 'big')
    header[4:8] = (100000).to_bytes(4, 'big')
    crc = zlib.crc32(b'IHDR' + bytes(header)).to_bytes(4, 'big')
    return png_bytes[:data_start] + bytes(header) + crc + png_bytes[data_start + 17:]
