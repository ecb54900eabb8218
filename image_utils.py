import base64
import mimetypes
from io import BytesIO
from typing import BinaryIO, Optional

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

# Lets Pillow open iPhone photos so they can be re-encoded for the browser
register_heif_opener()

# Browsers can't render these, so they get converted to JPEG on ingest
BROWSER_UNSAFE_TYPES = {'image/heic', 'image/heif', 'image/heic-sequence', 'image/heif-sequence'}
BROWSER_UNSAFE_EXTS = {'.heic', '.heif', '.hif'}

FALLBACK_MIME = 'application/octet-stream'


def read_upload(stream: BinaryIO) -> Optional[bytes]:
    """Reads the whole upload. Returns None if the stream can't be read."""
    try:
        stream.seek(0)
    except (AttributeError, OSError, ValueError):
        pass  # not seekable, read from wherever it is
    try:
        return stream.read()
    except (OSError, ValueError) as e:
        print(f"Error reading upload: {e}")
        return None


def sniff_mime_type(data: bytes) -> Optional[str]:
    """Asks Pillow what the bytes are. None if it doesn't recognise them."""
    try:
        with Image.open(BytesIO(data)) as img:
            return Image.MIME.get(img.format)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None


def guess_mime_type(data: bytes, name: Optional[str] = None, content_type: Optional[str] = None) -> str:
    if content_type:
        return content_type.lower()
    if name:
        guessed, _ = mimetypes.guess_type(name)
        if guessed:
            return guessed
    return sniff_mime_type(data) or FALLBACK_MIME


def needs_transcode(mime_type: str, name: Optional[str] = None) -> bool:
    if mime_type in BROWSER_UNSAFE_TYPES:
        return True
    return bool(name) and any(name.lower().endswith(ext) for ext in BROWSER_UNSAFE_EXTS)


def transcode_to_jpeg(data: bytes, quality: int = 90) -> Optional[bytes]:
    """Re-encodes an image as JPEG, keeping its EXIF orientation."""
    try:
        with Image.open(BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            # Convert to RGB if needed
            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')
            buf = BytesIO()
            img.save(buf, 'JPEG', quality=quality)
            return buf.getvalue()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        print(f"Error converting image to JPEG: {e}")
        return None


def encode_data_url(data: bytes, name: Optional[str] = None, content_type: Optional[str] = None) -> Optional[str]:
    """
    Turns file bytes into a self-contained data URL.

    The bytes are embedded as-is, except for HEIC/HEIF which is converted to
    JPEG first. Returns None only when that conversion fails.
    """
    mime_type = guess_mime_type(data, name, content_type)
    if needs_transcode(mime_type, name):
        data = transcode_to_jpeg(data)
        if data is None:
            return None
        mime_type = 'image/jpeg'

    encoded = base64.b64encode(data).decode('ascii')
    return f"data:{mime_type};base64,{encoded}"


def load_image_reference(stream: Optional[BinaryIO], name: Optional[str] = None,
                         content_type: Optional[str] = None) -> Optional[str]:
    """Reads an uploaded file and returns its data URL, or None if that fails."""
    if stream is None:
        return None
    data = read_upload(stream)
    if data is None:
        return None
    return encode_data_url(data, name, content_type)
