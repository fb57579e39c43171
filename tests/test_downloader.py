"""Tests for MediaDownloader retry and fallback behaviour."""

import httpx
import pytest

from clipchain.errors import PermanentError, TransientError
from clipchain.schemas.media import InlineMedia, StreamMedia, UriMedia
from clipchain.services.downloader import MediaDownloader
from clipchain.services.retry_policy import RetryPolicy

URI = "https://generativelanguage.googleapis.com/v1beta/files/abc:download?alt=media"


def make_downloader(handler, fake_sleep, max_attempts=4):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    policy = RetryPolicy(max_attempts=max_attempts, base_delay=5.0).with_sleep(fake_sleep)
    return MediaDownloader(client, retry_policy=policy, timeout=30.0)


def scripted_handler(responses, seen):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses.pop(0)
    return handler


class TestFetchUri:

    @pytest.mark.asyncio
    async def test_404_404_200_succeeds_on_third_attempt(self, fake_sleep):
        seen = []
        downloader = make_downloader(scripted_handler([
            httpx.Response(404, text="not ready"),
            httpx.Response(404, text="not ready"),
            httpx.Response(200, content=b"VIDEO"),
        ], seen), fake_sleep)

        data = await downloader.fetch(UriMedia(URI, headers={"x-goog-api-key": "k"}))

        assert data == b"VIDEO"
        assert len(seen) == 3
        assert fake_sleep.calls == [5.0, 10.0]
        assert seen[0].headers["x-goog-api-key"] == "k"

    @pytest.mark.asyncio
    async def test_bad_request_fails_immediately(self, fake_sleep):
        seen = []
        downloader = make_downloader(scripted_handler([
            httpx.Response(400, text="bad request"),
        ], seen), fake_sleep)

        with pytest.raises(PermanentError) as exc_info:
            await downloader.fetch(UriMedia(URI))
        assert exc_info.value.status == 400
        assert len(seen) == 1
        assert fake_sleep.calls == []

    @pytest.mark.asyncio
    async def test_exhaustion_reports_last_status_and_short_uri(self, fake_sleep):
        seen = []
        downloader = make_downloader(scripted_handler(
            [httpx.Response(503, text="unavailable") for _ in range(4)], seen,
        ), fake_sleep)

        with pytest.raises(TransientError) as exc_info:
            await downloader.fetch(UriMedia(URI + "&key=secret"))
        assert exc_info.value.status == 503
        assert "after 4 attempts" in str(exc_info.value)
        assert "secret" not in str(exc_info.value)
        assert len(seen) == 4

    @pytest.mark.asyncio
    async def test_empty_body_retried(self, fake_sleep):
        seen = []
        downloader = make_downloader(scripted_handler([
            httpx.Response(200, content=b""),
            httpx.Response(200, content=b"VIDEO"),
        ], seen), fake_sleep)

        assert await downloader.fetch(UriMedia(URI)) == b"VIDEO"
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, fake_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, content=b"VIDEO")

        downloader = make_downloader(handler, fake_sleep)
        assert await downloader.fetch(UriMedia(URI)) == b"VIDEO"
        assert len(calls) == 2


class TestFetchStream:

    @pytest.mark.asyncio
    async def test_inline_returned_as_is(self, fake_sleep):
        downloader = make_downloader(lambda r: httpx.Response(500), fake_sleep)
        assert await downloader.fetch(InlineMedia(b"abc")) == b"abc"

    @pytest.mark.asyncio
    async def test_empty_inline_is_transient(self, fake_sleep):
        downloader = make_downloader(lambda r: httpx.Response(500), fake_sleep)
        with pytest.raises(TransientError):
            await downloader.fetch(InlineMedia(b""))

    @pytest.mark.asyncio
    async def test_stream_chunks_joined(self, fake_sleep):
        async def source():
            yield b"ab"
            yield b"cd"

        downloader = make_downloader(lambda r: httpx.Response(500), fake_sleep)
        assert await downloader.fetch(StreamMedia(source)) == b"abcd"

    @pytest.mark.asyncio
    async def test_empty_stream_falls_back_to_uri(self, fake_sleep):
        opened = []

        async def source():
            opened.append(1)
            return
            yield  # pragma: no cover

        seen = []
        downloader = make_downloader(scripted_handler([
            httpx.Response(200, content=b"FROM-URI"),
        ], seen), fake_sleep)

        data = await downloader.fetch(StreamMedia(source, fallback=UriMedia(URI)))

        assert data == b"FROM-URI"
        assert len(opened) == 4
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_empty_stream_without_fallback_is_transient(self, fake_sleep):
        async def source():
            return
            yield  # pragma: no cover

        downloader = make_downloader(lambda r: httpx.Response(500), fake_sleep, max_attempts=2)
        with pytest.raises(TransientError):
            await downloader.fetch(StreamMedia(source))

    @pytest.mark.asyncio
    async def test_permanent_stream_error_falls_back_to_uri(self, fake_sleep):
        opened = []

        async def source():
            opened.append(1)
            raise PermanentError(403, "sdk download refused")
            yield  # pragma: no cover

        seen = []
        downloader = make_downloader(scripted_handler([
            httpx.Response(200, content=b"FROM-URI"),
        ], seen), fake_sleep)

        data = await downloader.fetch(StreamMedia(source, fallback=UriMedia(URI)))

        assert data == b"FROM-URI"
        assert len(opened) == 1
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_permanent_stream_error_without_fallback_propagates(self, fake_sleep):
        async def source():
            raise PermanentError(400, "bad file name")
            yield  # pragma: no cover

        downloader = make_downloader(lambda r: httpx.Response(500), fake_sleep)
        with pytest.raises(PermanentError):
            await downloader.fetch(StreamMedia(source))
