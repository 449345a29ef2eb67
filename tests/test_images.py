"""Tests for image retrieval."""

from pathlib import Path

import pytest
import requests

from ali_image_scraper.config import CrawlConfig
from ali_image_scraper.errors import (
    OversizeError,
    TransientFetchError,
    UnsupportedContentError,
    ValidationError,
)
from ali_image_scraper.images import FileTransfer, ImageDownloader, RequestsFileTransfer

PNG_HEADER = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

URL_A = "https://sc04.alicdn.com/kf/Ha.jpg_960x960q80.jpg"
URL_B = "https://sc04.alicdn.com/kf/Hb.png_960x960q80.png?sig=1"
URL_C = "https://sc04.alicdn.com/kf/Hc.jpg_960x960q80.jpg"


class _RecordingTransfer(FileTransfer):
    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def fetch_to_file(self, url, destination, max_bytes, max_redirects, headers, timeout):
        self.calls.append(url)
        destination.write_bytes(b"partial")
        if url in self.fail_on:
            raise TransientFetchError(f"connection reset while reading {url}")
        destination.write_bytes(PNG_HEADER)


class _Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _config(tmp_path, **overrides):
    values = dict(output_root=tmp_path, min_pacing=0.2, max_pacing=0.4)
    values.update(overrides)
    return CrawlConfig(**values)


@pytest.mark.asyncio
async def test_duplicate_urls_are_fetched_once(tmp_path):
    transfer = _RecordingTransfer()
    downloader = ImageDownloader(_config(tmp_path), transfer=transfer, sleep=_Sleeps())

    batch = await downloader.download_all([URL_A, URL_A, URL_A], "1601", "Lamp")

    assert transfer.calls == [URL_A]
    assert batch.duplicates == 2
    assert batch.succeeded == [tmp_path / "1601" / "Lamp_0.jpg"]
    assert batch.failed == []


@pytest.mark.asyncio
async def test_files_follow_the_download_layout(tmp_path):
    downloader = ImageDownloader(_config(tmp_path), transfer=_RecordingTransfer(), sleep=_Sleeps())

    batch = await downloader.download_all([URL_A, URL_B], "16/01", 'Desk "Lamp" LED')

    assert [path.relative_to(tmp_path) for path in batch.succeeded] == [
        Path("16_01") / "Desk_Lamp_LED_0.jpg",
        Path("16_01") / "Desk_Lamp_LED_1.png",
    ]
    assert all(path.read_bytes() == PNG_HEADER for path in batch.succeeded)


@pytest.mark.asyncio
async def test_missing_target_and_name_use_fallbacks(tmp_path):
    downloader = ImageDownloader(_config(tmp_path), transfer=_RecordingTransfer(), sleep=_Sleeps())

    batch = await downloader.download_all([URL_A], None, None)

    assert batch.succeeded == [tmp_path / "unknown" / "image_0.jpg"]


@pytest.mark.asyncio
async def test_failure_does_not_stop_the_batch_and_leaves_no_partial_file(tmp_path):
    transfer = _RecordingTransfer(fail_on={URL_B})
    downloader = ImageDownloader(_config(tmp_path), transfer=transfer, sleep=_Sleeps())

    batch = await downloader.download_all([URL_A, URL_B, URL_C], "1601", "Lamp")

    assert transfer.calls == [URL_A, URL_B, URL_C]
    assert batch.succeeded == [tmp_path / "1601" / "Lamp_0.jpg", tmp_path / "1601" / "Lamp_2.jpg"]
    assert len(batch.failed) == 1
    assert batch.failed[0].url == URL_B
    assert "connection reset" in batch.failed[0].error
    assert not (tmp_path / "1601" / "Lamp_1.png").exists()


@pytest.mark.asyncio
async def test_invalid_url_is_reported_without_fetching(tmp_path):
    transfer = _RecordingTransfer()
    downloader = ImageDownloader(_config(tmp_path), transfer=transfer, sleep=_Sleeps())

    batch = await downloader.download_all(["not a url"], "1601", "Lamp")

    assert transfer.calls == []
    assert batch.succeeded == []
    assert batch.failed[0].error == "Invalid URL: not a url"


@pytest.mark.asyncio
async def test_existing_file_is_not_fetched_again(tmp_path):
    existing = tmp_path / "1601" / "Lamp_0.jpg"
    existing.parent.mkdir(parents=True)
    existing.write_bytes(b"already here")
    transfer = _RecordingTransfer()
    downloader = ImageDownloader(_config(tmp_path), transfer=transfer, sleep=_Sleeps())

    batch = await downloader.download_all([URL_A], "1601", "Lamp")

    assert transfer.calls == []
    assert batch.succeeded == [existing]
    assert existing.read_bytes() == b"already here"


@pytest.mark.asyncio
async def test_items_are_paced(tmp_path):
    sleeps = _Sleeps()
    downloader = ImageDownloader(
        _config(tmp_path), transfer=_RecordingTransfer(fail_on={URL_A}), sleep=sleeps
    )

    await downloader.download_all([URL_A, URL_B, URL_C], "1601", "Lamp")

    assert len(sleeps.delays) == 2
    assert all(0.2 <= delay <= 0.4 for delay in sleeps.delays)


class _FakeResponse:
    def __init__(self, chunks, headers=None, status_error=None, stream_error=None):
        self._chunks = chunks
        self.headers = headers or {}
        self._status_error = status_error
        self._stream_error = stream_error

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self._status_error:
            raise self._status_error

    def iter_content(self, chunk_size=1):
        yield from self._chunks
        if self._stream_error:
            raise self._stream_error


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.max_redirects = None
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def _fetch(transfer, destination, max_bytes=1024):
    transfer.fetch_to_file(
        URL_A, destination, max_bytes, 5, {"User-Agent": "test"}, 30.0
    )


def test_requests_transfer_streams_to_disk(tmp_path):
    session = _FakeSession(_FakeResponse([PNG_HEADER, b"\x01" * 10], {"Content-Type": "image/png"}))
    destination = tmp_path / "a.png"

    _fetch(RequestsFileTransfer(session), destination)

    assert destination.read_bytes() == PNG_HEADER + b"\x01" * 10
    assert session.max_redirects == 5
    url, kwargs = session.requests[0]
    assert url == URL_A
    assert kwargs["stream"] is True
    assert kwargs["headers"] == {"User-Agent": "test"}


def test_requests_transfer_rejects_declared_oversize(tmp_path):
    session = _FakeSession(_FakeResponse([PNG_HEADER], {"Content-Length": "999999"}))
    with pytest.raises(OversizeError):
        _fetch(RequestsFileTransfer(session), tmp_path / "a.png")


def test_requests_transfer_rejects_streamed_oversize(tmp_path):
    session = _FakeSession(_FakeResponse([PNG_HEADER] * 100, {"Content-Type": "image/png"}))
    with pytest.raises(OversizeError):
        _fetch(RequestsFileTransfer(session), tmp_path / "a.png", max_bytes=100)


def test_requests_transfer_rejects_html(tmp_path):
    session = _FakeSession(
        _FakeResponse([b"<html><body>Access denied</body></html>"], {"Content-Type": "text/html"})
    )
    with pytest.raises(UnsupportedContentError):
        _fetch(RequestsFileTransfer(session), tmp_path / "a.png")


@pytest.mark.asyncio
async def test_oversized_stream_leaves_no_file_behind(tmp_path):
    session = _FakeSession(_FakeResponse([PNG_HEADER] * 100, {"Content-Type": "image/png"}))
    config = _config(tmp_path, max_image_bytes=100)
    downloader = ImageDownloader(config, transfer=RequestsFileTransfer(session), sleep=_Sleeps())

    batch = await downloader.download_all([URL_A], "1601", "Lamp")

    assert batch.succeeded == []
    assert "exceeded 100 bytes" in batch.failed[0].error
    assert list((tmp_path / "1601").iterdir()) == []


def test_requests_transfer_rejects_malformed_url(tmp_path):
    session = _FakeSession(error=requests.exceptions.InvalidURL("Invalid URL 'http://[::1'"))
    with pytest.raises(ValidationError):
        _fetch(RequestsFileTransfer(session), tmp_path / "a.png")


@pytest.mark.parametrize(
    "error",
    [
        requests.Timeout("read timed out"),
        requests.ConnectionError("connection refused"),
        requests.TooManyRedirects("Exceeded 5 redirects."),
    ],
)
def test_requests_transfer_maps_network_errors_to_transient(tmp_path, error):
    session = _FakeSession(error=error)
    with pytest.raises(TransientFetchError):
        _fetch(RequestsFileTransfer(session), tmp_path / "a.png")


def test_requests_transfer_maps_http_status_to_transient(tmp_path):
    response = _FakeResponse([PNG_HEADER], status_error=requests.HTTPError("404 Client Error"))
    with pytest.raises(TransientFetchError):
        _fetch(RequestsFileTransfer(_FakeSession(response)), tmp_path / "a.png")


def test_requests_transfer_maps_broken_stream_to_transient(tmp_path):
    response = _FakeResponse(
        [PNG_HEADER],
        {"Content-Type": "image/png"},
        stream_error=requests.exceptions.ChunkedEncodingError("connection broken"),
    )
    with pytest.raises(TransientFetchError):
        _fetch(RequestsFileTransfer(_FakeSession(response)), tmp_path / "a.png")


@pytest.mark.asyncio
async def test_broken_stream_leaves_no_file_behind(tmp_path):
    response = _FakeResponse(
        [PNG_HEADER],
        {"Content-Type": "image/png"},
        stream_error=requests.exceptions.ChunkedEncodingError("connection broken"),
    )
    downloader = ImageDownloader(
        _config(tmp_path), transfer=RequestsFileTransfer(_FakeSession(response)), sleep=_Sleeps()
    )

    batch = await downloader.download_all([URL_A], "1601", "Lamp")

    assert batch.succeeded == []
    assert "connection broken" in batch.failed[0].error
    assert list((tmp_path / "1601").iterdir()) == []


def test_transfer_without_fetch_cannot_be_built():
    class _Incomplete(FileTransfer):
        pass

    with pytest.raises(TypeError):
        _Incomplete()
