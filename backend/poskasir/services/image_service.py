# Overview: Image helpers: storage-key to link resolution plus avatar and logo normalization.

from __future__ import annotations

import io

from flask import current_app
from PIL import Image, UnidentifiedImageError

from ..errors import StorageError, ValidationError
from ..storage import get_optional_storage

AVATAR_JPEG_QUALITY = 75


def resolve_link(key: str | None, *, fallback_to_key: bool = True) -> str | None:
    """
    Turn a stored object key into a shareable link.

    Empty keys short-circuit without touching storage, and with no adapter
    configured the key is returned as-is. When the adapter fails the raw key
    is returned if fallback_to_key is set, otherwise StorageError propagates.
    """
    if not key:
        return None
    storage = get_optional_storage()
    if storage is None:
        return key
    try:
        return storage.get_file_share_link(key)
    except StorageError:
        if not fallback_to_key:
            raise
        current_app.logger.warning("Falling back to raw key for image %s", key)
        return key


def normalize_avatar(data: bytes) -> bytes:
    """
    Validate an uploaded avatar and re-encode it as JPEG.

    The image must decode and must be square.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError):
        raise ValidationError("File is not a valid image")

    width, height = image.size
    if width != height:
        raise ValidationError("Avatar must be a square image")

    # JPEG has no alpha channel
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    output = io.BytesIO()
    image.save(output, format="JPEG", quality=AVATAR_JPEG_QUALITY, optimize=True)
    return output.getvalue()


def normalize_logo(data: bytes) -> bytes:
    """Validate an uploaded logo and re-encode it as PNG, keeping transparency."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError):
        raise ValidationError("File is not a valid image")

    if image.mode not in ("RGB", "RGBA", "L", "LA"):
        image = image.convert("RGBA")

    output = io.BytesIO()
    image.save(output, format="PNG", optimize=True)
    return output.getvalue()
