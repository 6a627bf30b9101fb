import base64
import binascii
from io import BytesIO

from PIL import Image, UnidentifiedImageError

SUPPORTED_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def image_bytes_to_base64(image_bytes: bytes) -> str:
    return base64.b64encode(image_bytes).decode("utf-8")


def is_remote_url(value: str) -> bool:
    return value.strip().lower().startswith(("http://", "https://"))


def split_data_url(image_base64: str) -> tuple[str | None, str]:
    """Split a data URL into (mime type, base64 body); bare base64 has no mime."""
    raw = (image_base64 or "").strip()
    if raw.startswith("data:") and "," in raw:
        header, _, body = raw.partition(",")
        mime = header[5:].split(";", 1)[0] or None
        return mime, "".join(body.split())
    return None, "".join(raw.split())


def decode_base64_image(encoded: str) -> bytes:
    if not encoded:
        raise ValueError("image data must not be empty.")
    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("image data is not valid base64 content.") from exc
    if not decoded:
        raise ValueError("image data decoded to empty bytes.")
    return decoded


def detect_image_format(image_bytes: bytes) -> str:
    """Return the Pillow format name, raising ValueError for undecodable or unsupported images.

    `verify` only checks container structure, so the pixel data is decoded as well.
    """
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            img.verify()
            fmt = (img.format or "").upper()
        with Image.open(BytesIO(image_bytes)) as img:
            img.load()
    except Image.DecompressionBombError as exc:
        raise ValueError("image dimensions exceed the allowed pixel count.") from exc
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise ValueError("image could not be decoded as a raster image.") from exc
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"unsupported image format '{fmt or 'unknown'}'.")
    return fmt


def resize_image_if_needed(image_bytes: bytes, max_size: int = 2048) -> bytes:
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            if max(img.size) <= max_size:
                return image_bytes
            fmt = img.format or "PNG"
            img.thumbnail((max_size, max_size))
            buf = BytesIO()
            img.save(buf, format=fmt)
            return buf.getvalue()
    except Image.DecompressionBombError as exc:
        raise ValueError("image dimensions exceed the allowed pixel count.") from exc
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError("image could not be resized.") from exc
