from clinassist.utils.image_utils import (
    decode_base64_image,
    detect_image_format,
    image_bytes_to_base64,
    resize_image_if_needed,
)

__all__ = [
    "decode_base64_image",
    "detect_image_format",
    "image_bytes_to_base64",
    "resize_image_if_needed",
]
