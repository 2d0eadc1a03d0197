from __future__ import annotations

import logging
import mimetypes
import time
from typing import TYPE_CHECKING

from botocore.exceptions import BotoCoreError, ClientError

from app.doctrack.errors import StoreError, ValidationError
from app.doctrack.storage import Storage, StorageError

if TYPE_CHECKING:
    from app.doctrack.store import Store

logger = logging.getLogger(__name__)

LOGO_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/svg+xml": ".svg",
    "image/webp": ".webp",
}
ALLOWED_LOGO_TYPES = tuple(LOGO_EXTENSIONS)

# /assets/<key> derives the served mimetype from the key suffix
for _ctype, _ext in LOGO_EXTENSIONS.items():
    mimetypes.add_type(_ctype, _ext)


def logo_key(content_type: str, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"logos/lgu_logo_{now_ms}{LOGO_EXTENSIONS.get(content_type, '')}"


def upload_logo(
    store: "Store",
    storage: Storage,
    data: bytes,
    *,
    content_type: str | None,
    now_ms: int | None = None,
) -> str:
    """Store the image and point site_configs row 1 at its public URL. Returns the URL."""
    if not data:
        raise ValidationError("Choose an image to upload.")
    content_type = (content_type or "").strip().lower()
    if content_type not in ALLOWED_LOGO_TYPES:
        raise ValidationError("Logo must be a PNG, JPEG, GIF, SVG or WebP image.")

    key = logo_key(content_type, now_ms)
    try:
        storage.put_bytes(key, data, content_type=content_type)
    except (OSError, StorageError, BotoCoreError, ClientError) as e:
        logger.exception("Logo upload failed (key=%s)", key)
        raise StoreError("upload logo", str(e)) from e
    url = storage.public_url(key)
    store.upsert_site_config({"logo_url": url})
    logger.info("Site logo updated (key=%s)", key)
    return url
