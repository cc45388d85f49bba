"""
Tests for the image input pipeline (askexpert.images).

Sections:
  1. TestClassify        — shape detection and priority order
  2. TestDataUri         — pass-through and early failure
  3. TestRemoteUrl       — single GET, MIME resolution, download failures
  4. TestFilePath        — local reads and read failures
  5. TestRawBase64       — fallback wrapping and rejection
"""
from __future__ import annotations

import base64
import os

import httpx
import pytest

from askexpert import images
from askexpert.errors import (
    DownloadFailedError,
    FileReadFailedError,
    InvalidDataUriError,
    NonImageContentError,
    UnrecognizedInputError,
)
from askexpert.images import ImageForm, NormalizedImage, classify_image, normalize_image

from conftest import PNG_BYTES

PNG_B64 = base64.standard_b64encode(PNG_BYTES).decode("ascii")
TINY_PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8BQDwADhQGAWjR9awAAAABJRU5ErkJggg=="
UNPADDED_B64 = "QUJDREVGR0hJSktMTU5PUFFS"  # "ABCDEFGHIJKLMNOPQR", 24 chars


@pytest.fixture
def isfile_calls(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Record every os.path.isfile call while still answering truthfully."""
    calls: list[str] = []
    real_isfile = os.path.isfile

    def _spy(path):
        calls.append(path)
        return real_isfile(path)

    monkeypatch.setattr(os.path, "isfile", _spy)
    return calls


# ===========================================================================
# 1. Classification
# ===========================================================================

class TestClassify:
    def test_data_uri(self):
        assert classify_image(f"data:image/png;base64,{PNG_B64}") is ImageForm.DATA_URI

    def test_malformed_data_uri_is_still_data_uri(self):
        assert classify_image("data:image-nonsense") is ImageForm.DATA_URI

    @pytest.mark.parametrize("url", ["http://example.com/a.png", "https://example.com/x?y=1"])
    def test_http_urls(self, url):
        assert classify_image(url) is ImageForm.REMOTE_URL

    @pytest.mark.parametrize("value", ["ftp://example.com/a.png", "https://", "example.com/a.png"])
    def test_non_http_urls_are_not_remote(self, value):
        assert classify_image(value) is not ImageForm.REMOTE_URL

    @pytest.mark.parametrize("value", ["https://example.com:abc/x.png", "http://example.com:99999/x.png"])
    def test_bad_port_is_not_remote(self, value):
        assert classify_image(value) is ImageForm.UNRECOGNIZED

    def test_existing_file(self, tmp_path):
        path = tmp_path / "cat.png"
        path.write_bytes(PNG_BYTES)
        assert classify_image(str(path)) is ImageForm.FILE_PATH

    def test_raw_base64(self):
        assert classify_image(TINY_PNG_B64) is ImageForm.RAW_BASE64
        assert classify_image(UNPADDED_B64) is ImageForm.RAW_BASE64

    @pytest.mark.parametrize(
        "value",
        ["", "QUJD", "QUJDREVGR0hJSktM", "not base64 at all!", "QUJDREVGR0hJSktMTU5PUFF", "/no/such/file.png"],
    )
    def test_unrecognized(self, value):
        assert classify_image(value) is ImageForm.UNRECOGNIZED

    def test_very_long_input_does_not_raise(self):
        assert classify_image("A" * 100_000) is ImageForm.RAW_BASE64

    def test_file_beats_base64(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / UNPADDED_B64).write_bytes(PNG_BYTES)
        assert classify_image(UNPADDED_B64) is ImageForm.FILE_PATH


# ===========================================================================
# 2. Data URIs
# ===========================================================================

class TestDataUri:
    @pytest.mark.asyncio
    async def test_valid_data_uri_passes_through(self, fake_http, isfile_calls):
        uri = f"data:image/png;base64,{PNG_B64}"
        result = await normalize_image(uri)
        assert result == NormalizedImage("image/png", PNG_B64)
        assert result.data_uri == uri
        assert fake_http.requests == []
        assert isfile_calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value",
        [
            "data:image",
            "data:image/png;base64",
            "data:image/;base64,AAAA",
            "data:image/svg+xml;base64,AAAA",
            "data:image/png,AAAA",
            "data:imagery/png;base64,AAAA",
        ],
    )
    async def test_invalid_data_uri_fails_without_io(self, value, fake_http, isfile_calls):
        with pytest.raises(InvalidDataUriError):
            await normalize_image(value)
        assert fake_http.requests == []
        assert isfile_calls == []

    @pytest.mark.asyncio
    async def test_normalize_is_idempotent(self, fake_http):
        fake_http.respond(lambda request: httpx.Response(
            200, content=PNG_BYTES, headers={"content-type": "image/png"}
        ))
        first = await normalize_image("https://images.example.org/cat.png")
        second = await normalize_image(first.data_uri)
        assert second == first
        assert len(fake_http.requests) == 1


# ===========================================================================
# 3. Remote URLs
# ===========================================================================

class TestRemoteUrl:
    URL = "https://images.example.org/pics/cat.png"

    @pytest.mark.asyncio
    async def test_download_uses_content_type(self, fake_http, isfile_calls):
        fake_http.respond(lambda request: httpx.Response(
            200, content=PNG_BYTES, headers={"content-type": "image/webp; q=0.9"}
        ))
        result = await normalize_image(self.URL)
        assert result.mime_type == "image/webp"
        assert result.payload == PNG_B64
        assert self.URL not in isfile_calls

    @pytest.mark.asyncio
    async def test_exactly_one_get_without_api_credentials(self, fake_http):
        fake_http.respond(lambda request: httpx.Response(200, content=PNG_BYTES))
        await normalize_image(self.URL)
        assert len(fake_http.requests) == 1
        request = fake_http.requests[0]
        assert request.method == "GET"
        assert str(request.url) == self.URL
        assert "authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_missing_content_type_falls_back_to_extension(self, fake_http):
        fake_http.respond(lambda request: httpx.Response(200, content=b"GIF89a"))
        result = await normalize_image("http://example.com/anim.gif")
        assert result.mime_type == "image/gif"
        assert result.payload == base64.b64encode(b"GIF89a").decode()

    @pytest.mark.asyncio
    async def test_non_image_content_is_terminal(self, fake_http, isfile_calls):
        url = "https://example.com/page"
        fake_http.respond(lambda request: httpx.Response(
            200, text="<html></html>", headers={"content-type": "text/html; charset=utf-8"}
        ))
        with pytest.raises(NonImageContentError) as exc:
            await normalize_image(url)
        assert "text/html" in str(exc.value)
        assert url not in isfile_calls

    @pytest.mark.asyncio
    async def test_http_error_status(self, fake_http):
        fake_http.respond(lambda request: httpx.Response(404, text="not here"))
        with pytest.raises(DownloadFailedError) as exc:
            await normalize_image(self.URL)
        assert exc.value.status_code == 404
        assert self.URL in str(exc.value)

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self, fake_http):
        def _boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_http.respond(_boom)
        with pytest.raises(DownloadFailedError) as exc:
            await normalize_image(self.URL)
        assert "connection refused" in str(exc.value)
        assert isinstance(exc.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_bad_port_is_rejected_before_any_request(self, fake_http):
        with pytest.raises(UnrecognizedInputError):
            await normalize_image("https://example.com:abc/x.png")
        assert fake_http.requests == []

    @pytest.mark.asyncio
    async def test_unparseable_url_is_a_download_failure(self, fake_http):
        with pytest.raises(DownloadFailedError) as exc:
            await images._download_image("https://example.com:abc/x.png", 5.0)
        assert isinstance(exc.value.__cause__, httpx.InvalidURL)
        assert fake_http.requests == []

    @pytest.mark.asyncio
    async def test_timeout_is_passed_to_client(self, fake_http):
        from unittest.mock import patch

        seen: dict = {}
        real_client = httpx.AsyncClient

        def _factory(*args, **kwargs):
            seen.update(kwargs)
            return real_client(*args, **kwargs)

        fake_http.respond(lambda request: httpx.Response(200, content=PNG_BYTES))
        with patch("httpx.AsyncClient", side_effect=_factory):
            await normalize_image(self.URL, timeout=12.5)
        assert seen["timeout"] == 12.5
        assert seen["follow_redirects"] is True


# ===========================================================================
# 4. Local files
# ===========================================================================

class TestFilePath:
    @pytest.mark.asyncio
    async def test_reads_file_and_uses_extension(self, tmp_path, fake_http):
        path = tmp_path / "diagram.PNG"
        path.write_bytes(PNG_BYTES)
        result = await normalize_image(str(path))
        assert result == NormalizedImage("image/png", PNG_B64)
        assert fake_http.requests == []

    @pytest.mark.asyncio
    async def test_unknown_extension_defaults_to_jpeg(self, tmp_path):
        path = tmp_path / "capture.bin"
        path.write_bytes(b"\xff\xd8\xff\xe0")
        result = await normalize_image(str(path))
        assert result.mime_type == "image/jpeg"
        assert result.payload == base64.b64encode(b"\xff\xd8\xff\xe0").decode()

    @pytest.mark.asyncio
    async def test_existing_file_never_reaches_base64_fallback(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / UNPADDED_B64).write_bytes(PNG_BYTES)
        result = await normalize_image(UNPADDED_B64)
        assert result.payload == PNG_B64
        assert result.payload != UNPADDED_B64

    @pytest.mark.asyncio
    async def test_read_failure(self, tmp_path, monkeypatch):
        path = tmp_path / "locked.png"
        path.write_bytes(PNG_BYTES)

        def _denied(p):
            raise PermissionError(13, "Permission denied", p)

        monkeypatch.setattr(images, "_read_bytes", _denied)
        with pytest.raises(FileReadFailedError) as exc:
            await normalize_image(str(path))
        assert "Permission denied" in str(exc.value)


# ===========================================================================
# 5. Raw base64 and unrecognized input
# ===========================================================================

class TestRawBase64:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [TINY_PNG_B64, UNPADDED_B64])
    async def test_wrapped_as_jpeg_unchanged(self, value, fake_http):
        result = await normalize_image(value)
        assert result.mime_type == "image/jpeg"
        assert result.payload == value
        assert result.data_uri == f"data:image/jpeg;base64,{value}"
        assert fake_http.requests == []

    @pytest.mark.asyncio
    async def test_sixteen_chars_is_too_short(self):
        with pytest.raises(UnrecognizedInputError):
            await normalize_image("QUJDREVGR0hJSktM")

    @pytest.mark.asyncio
    async def test_unrecognized_message_is_truncated(self):
        value = "?" * 500
        with pytest.raises(UnrecognizedInputError) as exc:
            await normalize_image(value)
        message = str(exc.value)
        assert "?" * 100 in message
        assert "?" * 101 not in message
