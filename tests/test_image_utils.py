"""Tests for turning uploads into data URLs."""

import base64
from io import BytesIO

from PIL import Image

from image_utils import (
    encode_data_url,
    guess_mime_type,
    load_image_reference,
    needs_transcode,
    read_upload,
    transcode_to_jpeg,
)


class BrokenStream:
    def seek(self, pos: int) -> None:
        pass

    def read(self) -> bytes:
        raise OSError('disk went away')


def _payload(data_url: str) -> bytes:
    return base64.b64decode(data_url.split(',', 1)[1])


class TestReadUpload:
    def test_reads_from_start(self, png_bytes: bytes) -> None:
        stream = BytesIO(png_bytes)
        stream.read(3)
        assert read_upload(stream) == png_bytes

    def test_unreadable_stream(self) -> None:
        assert read_upload(BrokenStream()) is None


class TestGuessMimeType:
    def test_declared_type_wins(self, png_bytes: bytes) -> None:
        assert guess_mime_type(png_bytes, 'photo.jpg', 'image/PNG') == 'image/png'

    def test_from_file_name(self, png_bytes: bytes) -> None:
        assert guess_mime_type(png_bytes, 'photo.jpg') == 'image/jpeg'

    def test_sniffed_by_pillow(self, png_bytes: bytes) -> None:
        assert guess_mime_type(png_bytes) == 'image/png'

    def test_unknown_bytes(self) -> None:
        assert guess_mime_type(b'not an image') == 'application/octet-stream'


class TestEncodeDataUrl:
    def test_embeds_bytes_verbatim(self, png_bytes: bytes) -> None:
        url = encode_data_url(png_bytes, 'red.png', 'image/png')
        assert url.startswith('data:image/png;base64,')
        assert _payload(url) == png_bytes

    def test_no_content_validation(self) -> None:
        url = encode_data_url(b'hello', 'notes.png', 'image/png')
        assert _payload(url) == b'hello'

    def test_empty_file(self) -> None:
        assert encode_data_url(b'', 'empty.png', 'image/png') == 'data:image/png;base64,'

    def test_heic_that_is_not_decodable(self) -> None:
        assert encode_data_url(b'garbage', 'IMG_0001.HEIC', 'image/heic') is None


class TestTranscode:
    def test_needs_transcode(self) -> None:
        assert needs_transcode('image/heic')
        assert needs_transcode('application/octet-stream', 'IMG_0001.HEIC')
        assert not needs_transcode('image/png', 'red.png')
        assert not needs_transcode('image/jpeg')

    def test_to_jpeg(self, png_bytes: bytes) -> None:
        jpeg = transcode_to_jpeg(png_bytes)
        with Image.open(BytesIO(jpeg)) as img:
            assert img.format == 'JPEG'
            assert img.size == (4, 3)

    def test_keeps_alpha_images_working(self) -> None:
        buf = BytesIO()
        Image.new('RGBA', (2, 2), (0, 0, 255, 128)).save(buf, format='PNG')
        assert transcode_to_jpeg(buf.getvalue()) is not None

    def test_garbage(self) -> None:
        assert transcode_to_jpeg(b'garbage') is None

    def test_oversized_header(self, oversized_png: bytes) -> None:
        assert transcode_to_jpeg(oversized_png) is None
        assert encode_data_url(oversized_png, 'big.heic', 'image/heic') is None
        assert guess_mime_type(oversized_png) == 'application/octet-stream'


class TestLoadImageReference:
    def test_no_file(self) -> None:
        assert load_image_reference(None) is None

    def test_unreadable_file(self) -> None:
        assert load_image_reference(BrokenStream(), 'x.png', 'image/png') is None

    def test_png(self, png_bytes: bytes) -> None:
        url = load_image_reference(BytesIO(png_bytes), 'red.png', 'image/png')
        assert _payload(url) == png_bytes
