"""
RefMan Backend — Metadata Scraper Tests
=========================================

What:  Extraction and field mapping, plus fetch error handling.
How:   httpx.MockTransport stands in for the network; no real requests.
       conftest sets RETRY_MIN_WAIT=0 so retry tests stay fast.
"""

import httpx
import pytest

from refman.config import settings
from refman.exceptions import MetadataFetchError, ValidationError
from refman.services.metadata_service import MetadataService, extract_metadata, to_entry_fields

ARTICLE_HTML = """
<html lang="en">
  <head>
    <title>Fallback title</title>
    <meta property="og:title" content="Async IO in Python">
    <meta property="og:site_name" content="Real Python">
    <meta property="og:type" content="article">
    <meta property="og:image" content="/img/cover.png">
    <meta name="author" content="Brad Solomon">
    <meta name="description" content="A walkthrough of asyncio.">
    <meta name="keywords" content="python, asyncio, , concurrency">
    <meta property="article:published_time" content="2019-01-16">
    <link rel="canonical" href="/async-io-python/">
  </head>
  <body></body>
</html>
"""


def html_transport(html: str, status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text=html, headers={"Content-Type": "text/html"})
    return httpx.MockTransport(handler)


class TestExtraction:

    def test_extract_and_map(self):
        data = to_entry_fields(extract_metadata(ARTICLE_HTML, "https://realpython.com/x"))

        assert data == {
            "title": "Async IO in Python",
            "description": "A walkthrough of asyncio.",
            "author": ["Brad Solomon"],
            "publisher": "Real Python",
            "date": "2019-01-16",
            "entrysubtype": "article",
            "url": "https://realpython.com/async-io-python/",
            "image": "https://realpython.com/img/cover.png",
            "language": "en",
            "keywords": ["python", "asyncio", "concurrency"],
        }

    def test_fallbacks(self):
        html = "<html><head><title> Plain page </title></head></html>"

        data = to_entry_fields(extract_metadata(html, "https://www.example.org/page"))

        assert data == {
            "title": "Plain page",
            "publisher": "example.org",
            "url": "https://www.example.org/page",
        }


class TestScrape:

    @pytest.mark.asyncio
    async def test_scrape_with_field_filter(self):
        service = MetadataService(transport=html_transport(ARTICLE_HTML))

        data = await service.scrape("https://realpython.com/x", fields="title, author,missing")

        assert data == {"title": "Async IO in Python", "author": ["Brad Solomon"]}

    @pytest.mark.parametrize("url", [None, "", "ftp://example.org", "not a url", "/relative"])
    @pytest.mark.asyncio
    async def test_invalid_url(self, url):
        with pytest.raises(ValidationError):
            await MetadataService(transport=html_transport("")).scrape(url)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        service = MetadataService(transport=html_transport("gone", status=404))

        with pytest.raises(MetadataFetchError) as exc_info:
            await service.scrape("https://example.org/missing")
        assert exc_info.value.context["status"] == 404

    @pytest.mark.asyncio
    async def test_transport_errors_retried_then_reported(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            raise httpx.ConnectError("connection refused", request=request)

        service = MetadataService(transport=httpx.MockTransport(handler))

        with pytest.raises(MetadataFetchError):
            await service.scrape("https://unreachable.example")
        assert len(calls) == settings.retry_max_attempts

    @pytest.mark.asyncio
    async def test_recovers_after_transient_error(self):
        attempts = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, text=ARTICLE_HTML)

        service = MetadataService(transport=httpx.MockTransport(handler))

        data = await service.scrape("https://realpython.com/x", fields="publisher")

        assert data == {"publisher": "Real Python"}
        assert attempts["count"] == 2
