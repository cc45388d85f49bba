from __future__ import annotations

import os
from urllib.parse import urlsplit

DEFAULT_IMAGE_MIME = "image/jpeg"

_EXTENSION_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def resolve_mime_type(path_or_url: str, declared_content_type: str | None = None) -> str:
    """Best-guess image MIME type for a file path or URL.

    A declared ``Content-Type`` always wins (parameters after ``;`` are
    dropped).  Otherwise the lowercase extension decides, and anything
    unknown falls back to ``image/jpeg``.  Whether the result is actually
    an image type is for the caller to check.
    """
    if declared_content_type and declared_content_type.strip():
        return declared_content_type.split(";", 1)[0].strip()
    path = path_or_url
    if "://" in path_or_url:
        # Only the URL path carries an extension; ignore ?query and #fragment.
        path = urlsplit(path_or_url).path
    ext = os.path.splitext(path)[1].lower()
    return _EXTENSION_MIME.get(ext, DEFAULT_IMAGE_MIME)
