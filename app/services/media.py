import os
import uuid
import logging
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError
from supabase import Client

from app.core.config import settings

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/jpg", "image/webp"}
EXTENSIONS = {"image/jpeg": ".jpg", "image/jpg": ".jpg", "image/png": ".png", "image/webp": ".webp"}


def detect_image_type_from_bytes(file_bytes: bytes) -> Optional[str]:
    """Return a short image type string like 'jpeg' or 'png', or None if unknown."""
    try:
        with Image.open(BytesIO(file_bytes)) as img:
            fmt = (img.format or "").lower()
    except (UnidentifiedImageError, OSError):
        return None
    return fmt if fmt in ("jpeg", "png", "webp") else None


def resolve_content_type(declared: Optional[str], file_bytes: bytes) -> Optional[str]:
    """Trust a known declared type, otherwise sniff the bytes (clients often send octet-stream)."""
    if declared in ALLOWED_CONTENT_TYPES:
        return declared
    detected = detect_image_type_from_bytes(file_bytes)
    return f"image/{detected}" if detected else None


def upload_image_to_storage(db: Client, file_bytes: bytes, filename: Optional[str], content_type: str, owner_id: str) -> str:
    """Uploads a report photo to Supabase Storage and returns the public URL.
    Note: the photo bucket must be configured as Public in Supabase."""
    _, ext = os.path.splitext(filename or "")
    ext = ext.lower() or EXTENSIONS.get(content_type, "")

    file_name = f"{owner_id}/{uuid.uuid4().hex}{ext}"

    bucket = db.storage.from_(settings.STORAGE_BUCKET)

    try:
        bucket.upload(file_name, file_bytes, {"content-type": content_type})
    except Exception:
        logging.exception("Supabase upload failed")
        raise RuntimeError("Failed to upload photo to cloud storage")

    try:
        pub_res = bucket.get_public_url(file_name)
        public_image_url = None
        if isinstance(pub_res, dict):
            public_image_url = pub_res.get("publicURL") or pub_res.get("public_url") or (pub_res.get("data") or {}).get("publicUrl")
        else:
            public_image_url = str(pub_res)
        if not public_image_url:
            raise ValueError("No public URL returned")
        return public_image_url
    except Exception:
        logging.exception("Failed to obtain public URL from Supabase")
        raise RuntimeError("Failed to obtain public photo URL")
