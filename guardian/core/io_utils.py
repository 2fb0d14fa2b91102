"""Image payload helpers: canonical data-URI form for request images."""

import base64
import binascii
import mimetypes
from pathlib import Path

from guardian.core.errors import ValidationError

DEFAULT_IMAGE_MEDIA_TYPE = "image/jpeg"
DATA_URI_PREFIX = "data:"


def to_data_uri(image: object) -> str:
    """
    Return the image as a data URI, prefixing data:image/jpeg;base64, when no prefix is present.

    Raises ValidationError when image is missing, not a string, empty, or not valid base64.
    """
    if image is None:
        raise ValidationError("Missing image")
    if not isinstance(image, str):
        raise ValidationError("Field 'image' must be a base64 string or data URI")
    value = image.strip()
    if not value:
        raise ValidationError("Missing image")

    if value.startswith(DATA_URI_PREFIX):
        header, sep, data = value.partition(",")
        if not sep or not data.strip():
            raise ValidationError("Malformed image data URI")
        if header.endswith(";base64"):
            return f"{header},{_compact_base64(data)}"
        return value

    return f"{DATA_URI_PREFIX}{DEFAULT_IMAGE_MEDIA_TYPE};base64,{_compact_base64(value)}"


def _compact_base64(data: str) -> str:
    """Drop line breaks and other whitespace (MIME-wrapped base64), then validate."""
    compact = "".join(data.split())
    try:
        base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Field 'image' is not valid base64") from None
    return compact


def encode_image_file(path: Path) -> str:
    """Read an image file and return it as a data URI (media type guessed from the extension)."""
    path = Path(path)
    media_type, _ = mimetypes.guess_type(path.name)
    if media_type is None or not media_type.startswith("image/"):
        media_type = DEFAULT_IMAGE_MEDIA_TYPE
    b64 = base64.b64encode(path.read_bytes()).decode()
    return f"{DATA_URI_PREFIX}{media_type};base64,{b64}"
