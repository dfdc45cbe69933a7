"""Google Drive helpers for vehicle images.

Images live in one Drive folder per category and are referenced from the
sheet by thumbnail URL. These helpers build and take apart those references.
"""
import re
from typing import Any, Optional, Tuple
from urllib.parse import parse_qs, quote, urlparse

from core.config import DriveConfig

FILE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{10,}$")
FILE_PATH_PATTERN = re.compile(r"/file/d/([a-zA-Z0-9_-]{10,})")
GOOGLEUSERCONTENT_PATTERN = re.compile(r"googleusercontent\.com/d/([a-zA-Z0-9_-]{10,})")
DATA_URL_PATTERN = re.compile(r"^data:(image/[a-z0-9.+-]+);base64,([a-z0-9+/=]+)$", re.IGNORECASE)

DEFAULT_THUMBNAIL_SIZE = "w1000-h1000"

# Extension used in upload file names, by mime type
MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
    "image/heif": "heif",
}


def drive_thumbnail_url(file_id: str, size: str = DEFAULT_THUMBNAIL_SIZE) -> str:
    return (
        f"https://drive.google.com/thumbnail?id={quote(file_id, safe='')}"
        f"&sz={quote(size, safe='')}"
    )


def extract_drive_file_id(value: Any) -> Optional[str]:
    """
    Extract a Drive file id from a bare id or a Drive URL.

    Recognized forms:
    - FILEID (10+ url-safe characters)
    - https://drive.google.com/thumbnail?id=FILEID&sz=...
    - https://drive.google.com/open?id=FILEID, .../uc?id=FILEID
    - https://drive.google.com/file/d/FILEID/view
    - https://lh3.googleusercontent.com/d/FILEID=...

    Returns None for anything else.
    """
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None

    if FILE_ID_PATTERN.match(raw):
        return raw

    parsed = urlparse(raw)
    if parsed.scheme and parsed.netloc:
        ids = parse_qs(parsed.query).get("id")
        if ids and FILE_ID_PATTERN.match(ids[0]):
            return ids[0]

    match = FILE_PATH_PATTERN.search(raw)
    if match:
        return match.group(1)

    match = GOOGLEUSERCONTENT_PATTERN.search(raw)
    if match:
        return match.group(1)

    return None


def drive_folder_id_for_category(category: Any, config: DriveConfig) -> Optional[str]:
    """Resolve the upload folder for a category in either sheet or display form."""
    raw = category.strip() if isinstance(category, str) else ("" if category is None else str(category).strip())
    normalized = raw.lower()
    if not normalized:
        return None

    if normalized in ("car", "cars"):
        return config.folder_cars
    if normalized in ("motorcycle", "motorcycles"):
        return config.folder_motorcycles
    if normalized in ("tuktuk", "tuk tuk", "tuk-tuk"):
        return config.folder_tuktuk

    return None


def parse_image_data_url(value: Any) -> Optional[Tuple[str, str]]:
    """Split ``data:image/...;base64,...`` into ``(mime_type, base64_data)``."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed.startswith("data:"):
        return None

    match = DATA_URL_PATTERN.match(trimmed)
    if not match:
        return None

    mime_type = match.group(1).lower()
    base64_data = match.group(2)
    if not mime_type or not base64_data:
        return None
    return mime_type, base64_data


def extension_for_mime(mime_type: str) -> str:
    if mime_type in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[mime_type]
    subtype = mime_type.split("/", 1)[-1]
    return re.sub(r"[^a-z0-9]", "", subtype.lower()) or "jpg"
