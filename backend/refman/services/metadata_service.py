"""
RefMan Backend — Metadata Scraper
===================================

What:  Fetches a web page and extracts bibliographic metadata for a new entry.
Why:   Lets a client pre-fill title/author/publisher/keywords from a URL
       instead of typing them.
How:   httpx.AsyncClient fetches the page (with tenacity retries on transport
       errors), BeautifulSoup reads Open Graph / Twitter / standard meta tags,
       and the result is reshaped into the entry vocabulary.
Who:   Called by GET /api/utils/metadata.

Field mapping (scraped → entry):
    type        → entrysubtype
    provider    → publisher       (og:site_name, falling back to the host name)
    published   → date
    author      → author          (wrapped in a list, entries keep author lists)
    keywords    → keywords        (meta keywords split on ",")
    title, description, url, image, language are kept as-is

Error Handling Chain:
    transport error → tenacity retries (exponential backoff with jitter)
    → retries exhausted → MetadataFetchError (502)
    HTTP 4xx/5xx from the remote page → MetadataFetchError (502), no retry
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from refman.config import settings
from refman.exceptions import MetadataFetchError, ValidationError

logger = logging.getLogger(__name__)


def validate_url(url: Optional[str]) -> str:
    """
    Raises:
        ValidationError: missing URL, or not an absolute http(s) URL
    """
    if not url:
        raise ValidationError(message='missing "url" query parameter', field="url")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(message=f"Invalid URL '{url}'", field="url")
    return url


def extract_metadata(html: str, page_url: str) -> Dict[str, Any]:
    """Raw metadata from a page, before mapping to entry fields."""
    soup = BeautifulSoup(html, "html.parser")

    def meta(*names: str) -> Optional[str]:
        for name in names:
            tag = soup.find("meta", attrs={"property": name}) or soup.find(
                "meta", attrs={"name": name}
            )
            if tag and tag.get("content"):
                return tag["content"].strip()
        return None

    title = meta("og:title", "twitter:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()

    canonical = meta("og:url")
    if not canonical:
        link = soup.find("link", rel="canonical")
        canonical = urljoin(page_url, link["href"]) if link and link.get("href") else page_url

    image = meta("og:image", "twitter:image")
    host = urlparse(page_url).hostname or ""

    keywords: List[str] = []
    raw_keywords = meta("keywords")
    if raw_keywords:
        keywords = [keyword.strip() for keyword in raw_keywords.split(",") if keyword.strip()]

    return {
        "title": title,
        "description": meta("og:description", "twitter:description", "description"),
        "author": meta("author", "article:author", "twitter:creator"),
        "provider": meta("og:site_name", "application-name") or host.removeprefix("www."),
        "published": meta("article:published_time", "datePublished", "date", "pubdate"),
        "type": meta("og:type"),
        "url": canonical,
        "image": urljoin(page_url, image) if image else None,
        "language": soup.html.get("lang") if soup.html else None,
        "keywords": keywords,
    }


def to_entry_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Rename scraped keys to entry keys and drop empty values."""
    data = dict(raw)
    data["entrysubtype"] = data.pop("type", None)
    data["publisher"] = data.pop("provider", None)
    data["date"] = data.pop("published", None)
    author = data.get("author")
    data["author"] = [author] if author else None
    return {key: value for key, value in data.items() if value not in (None, "", [])}


class MetadataService:
    """
    Page fetcher + metadata extractor.

    Args:
        transport: Optional httpx transport; tests pass httpx.MockTransport.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def scrape(self, url: Optional[str], fields: Optional[str] = None) -> Dict[str, Any]:
        """
        Scrape `url` and return entry-shaped metadata.

        Args:
            url:    absolute http(s) URL of the page
            fields: comma-separated subset of keys to return (all when omitted)
        """
        url = validate_url(url)
        html, final_url = await self._fetch(url)
        data = to_entry_fields(extract_metadata(html, final_url))

        if fields:
            requested = [name.strip() for name in fields.split(",") if name.strip()]
            data = {name: data[name] for name in requested if name in data}
        return data

    async def _fetch(self, url: str) -> Tuple[str, str]:
        try:
            return await self._fetch_with_retry(url)
        except httpx.HTTPStatusError as e:
            logger.warning("Metadata fetch of %s answered %d", url, e.response.status_code)
            raise MetadataFetchError(
                message=f"The page answered with HTTP {e.response.status_code}",
                context={"url": url, "status": e.response.status_code},
            )
        except httpx.HTTPError as e:
            logger.error("Metadata fetch of %s failed after retries: %s", url, str(e))
            raise MetadataFetchError(
                context={"url": url, "error_type": type(e).__name__},
            )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _fetch_with_retry(self, url: str) -> Tuple[str, str]:
        async with httpx.AsyncClient(
            transport=self.transport,
            timeout=settings.metadata_timeout,
            follow_redirects=True,
            headers={"User-Agent": settings.metadata_user_agent},
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.text, str(response.url)


metadata_service = MetadataService()


def get_metadata_service() -> MetadataService:
    return metadata_service
