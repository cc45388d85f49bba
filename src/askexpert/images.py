"""
Image input normalization for ``ask_expert_on_image``.

Callers hand us an untyped string.  It is classified into exactly one of
four shapes, tried in this order:

  1. data URI      ``data:image/<type>;base64,<payload>``   returned as-is
  2. remote URL    absolute http(s) URL                     downloaded once
  3. file path     existing regular file                    read from disk
  4. raw base64    strict base64, longer than 16 chars      wrapped as JPEG

Once a shape is chosen its failure is final; a bad data URI is never
retried as a file name and a failed download is never retried as base64.
Cheap local checks come first so the weakest evidence (a base64-looking
string) is only trusted when nothing else fits.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

import httpx

from .errors import (
    DownloadFailedError,
    FileReadFailedError,
    InvalidDataUriError,
    NonImageContentError,
    UnrecognizedInputError,
)
from .mime import DEFAULT_IMAGE_MIME, resolve_mime_type

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 60.0

_DATA_URI_PREFIX = "data:image"
_DATA_URI_SEPARATOR = ";base64,"
_DATA_URI_RE = re.compile(r"^data:image/[a-zA-Z]+;base64,")
_BASE64_RE = re.compile(r"(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?")
_MIN_RAW_BASE64_LEN = 16
_PREVIEW_CHARS = 100


class ImageForm(str, Enum):
    DATA_URI = "data_uri"
    REMOTE_URL = "remote_url"
    FILE_PATH = "file_path"
    RAW_BASE64 = "raw_base64"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True, slots=True)
class NormalizedImage:
    mime_type: str
    payload: str

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.payload}"

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> "NormalizedImage":
        return cls(mime_type, base64.standard_b64encode(data).decode("ascii"))


def is_http_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
        parts.port  # raises ValueError for a non-numeric or out-of-range port
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def looks_like_base64(value: str) -> bool:
    return len(value) > _MIN_RAW_BASE64_LEN and _BASE64_RE.fullmatch(value) is not None


def classify_image(value: str) -> ImageForm:
    """Return the first matching shape for *value*; never raises."""
    if value.startswith(_DATA_URI_PREFIX):
        return ImageForm.DATA_URI
    if is_http_url(value):
        return ImageForm.REMOTE_URL
    # os.path.isfile swallows ENAMETOOLONG / embedded NULs, which long
    # base64 blobs routinely trigger.
    if os.path.isfile(value):
        return ImageForm.FILE_PATH
    if looks_like_base64(value):
        return ImageForm.RAW_BASE64
    return ImageForm.UNRECOGNIZED


async def normalize_image(value: str, *, timeout: float = DEFAULT_FETCH_TIMEOUT) -> NormalizedImage:
    form = classify_image(value)
    logger.debug("Image input classified as %s (%d chars)", form.value, len(value))

    if form is ImageForm.DATA_URI:
        return _parse_data_uri(value)
    if form is ImageForm.REMOTE_URL:
        return await _download_image(value, timeout)
    if form is ImageForm.FILE_PATH:
        return await _read_image_file(value)
    if form is ImageForm.RAW_BASE64:
        # Trusted as-is: the payload is not decoded or sniffed.
        return NormalizedImage(DEFAULT_IMAGE_MIME, value)

    preview = value[:_PREVIEW_CHARS]
    raise UnrecognizedInputError(
        "Invalid image string: not a valid data URI, URL, existing file path, "
        f'or recognizable raw base64 string. Please check the input: "{preview}..."'
    )


def _parse_data_uri(value: str) -> NormalizedImage:
    if not _DATA_URI_RE.match(value):
        raise InvalidDataUriError("Invalid base64 data URI format.")
    header, payload = value.split(_DATA_URI_SEPARATOR, 1)
    return NormalizedImage(header[len("data:"):], payload)


async def _download_image(url: str, timeout: float) -> NormalizedImage:
    # Separate client: never carries the API base URL or bearer token.
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            data = response.content
            content_type = response.headers.get("content-type")
    except httpx.HTTPStatusError as exc:
        raise DownloadFailedError(
            f"Failed to download image from URL: {url}. HTTP {exc.response.status_code}",
            status_code=exc.response.status_code,
        ) from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise DownloadFailedError(f"Failed to download image from URL: {url}. {exc}") from exc

    mime_type = resolve_mime_type(url, content_type)
    if not mime_type.startswith("image/"):
        raise NonImageContentError(
            f"Downloaded content from {url} is not a recognized image type (MIME: {mime_type})."
        )
    logger.info("Downloaded image %s (%s, %d bytes)", url, mime_type, len(data))
    return NormalizedImage.from_bytes(data, mime_type)


async def _read_image_file(path: str) -> NormalizedImage:
    mime_type = resolve_mime_type(path)
    if not mime_type.startswith("image/"):
        raise NonImageContentError(
            f"File {path} is not a recognized image type (MIME determined as: {mime_type})."
        )
    try:
        data = await asyncio.to_thread(_read_bytes, path)
    except OSError as exc:
        raise FileReadFailedError(f"Error reading image file {path}: {exc}") from exc
    logger.info("Read image file %s (%s, %d bytes)", path, mime_type, len(data))
    return NormalizedImage.from_bytes(data, mime_type)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()
