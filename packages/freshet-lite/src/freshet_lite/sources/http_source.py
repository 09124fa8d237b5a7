"""MetadataSource that scrapes HTML pages over HTTP."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from freshet_core.errors import SourceFetchError
from freshet_core.sources.base import MetadataSource

logger = logging.getLogger(__name__)

_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# (selector, attribute, kind, priority); higher priority wins the primary slot
_IMAGE_SELECTORS = [
    ('meta[property="og:image"]', "content", "og:image", 10),
    ('meta[name="twitter:image"]', "content", "twitter:image", 9),
    ('meta[name="twitter:image:src"]', "content", "twitter:image:src", 8),
    ('link[rel="image_src"]', "href", "image_src", 7),
]

_FAVICON_RELS = ("icon", "shortcut icon", "apple-touch-icon", "apple-touch-icon-precomposed")


def _meta(soup: BeautifulSoup, *, name: str | None = None, prop: str | None = None) -> str | None:
    attrs = {"name": name} if name is not None else {"property": prop}
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    value = tag.get("content")
    return value.strip() if isinstance(value, str) and value.strip() else None


def _prefixed(soup: BeautifulSoup, attr: str, prefix: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for tag in soup.find_all("meta", attrs={attr: True}):
        key = tag.get(attr, "")
        content = tag.get("content")
        if key.startswith(prefix) and content:
            out[key[len(prefix):].replace(":", "_")] = content
    return out


def extract_metadata(html: str, url: str) -> dict[str, Any]:
    """Pull title, description, Open Graph, Twitter and JSON-LD data out of a page."""
    soup = BeautifulSoup(html, "html.parser")
    title_tag = soup.find("title")

    title = (
        _meta(soup, prop="og:title")
        or _meta(soup, name="twitter:title")
        or (title_tag.get_text(strip=True) if title_tag else None)
    )
    description = (
        _meta(soup, prop="og:description")
        or _meta(soup, name="twitter:description")
        or _meta(soup, name="description")
    )
    open_graph = _prefixed(soup, "property", "og:")
    keywords = _meta(soup, name="keywords")
    tags = [k.strip() for k in keywords.split(",") if k.strip()] if keywords else []

    json_ld: list[Any] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            json_ld.append(json.loads(script.get_text()))
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block", extra={"url": url})

    if open_graph.get("type"):
        content_type = open_graph["type"]
    elif soup.find("video") is not None:
        content_type = "video"
    elif soup.find("article") is not None:
        content_type = "article"
    else:
        content_type = "website"

    canonical = soup.find("link", attrs={"rel": "canonical"})
    metadata: dict[str, Any] = {
        "title": title,
        "description": description,
        "url": open_graph.get("url") or (canonical.get("href") if canonical else None) or url,
        "author": _meta(soup, name="author") or _meta(soup, prop="article:author"),
        "publishedDate": _meta(soup, prop="article:published_time"),
        "tags": tags,
        "contentType": content_type,
        "openGraph": open_graph,
        "twitter": _prefixed(soup, "name", "twitter:"),
        "structuredData": json_ld,
    }
    return metadata


def extract_images(html: str, url: str, max_images: int = 10) -> dict[str, Any]:
    """Pick a primary image, favicon, and gallery from page metadata."""
    soup = BeautifulSoup(html, "html.parser")

    sources: list[dict[str, Any]] = []
    for selector, attr, kind, priority in _IMAGE_SELECTORS:
        for tag in soup.select(selector):
            src = tag.get(attr)
            if src:
                sources.append({"url": urljoin(url, src), "type": kind, "priority": priority})
    sources.sort(key=lambda s: s["priority"], reverse=True)

    favicon = None
    for tag in soup.find_all("link", href=True):
        rel = " ".join(tag.get("rel", [])).lower()
        if rel in _FAVICON_RELS:
            favicon = urljoin(url, tag["href"])
            break

    gallery: list[str] = []
    for img in soup.find_all("img", src=True):
        src = urljoin(url, img["src"])
        if src not in gallery:
            gallery.append(src)
        if len(gallery) >= max_images:
            break

    return {
        "primary": sources[0]["url"] if sources else None,
        "favicon": favicon or urljoin(url, "/favicon.ico"),
        "gallery": gallery,
    }


class HttpMetadataSource(MetadataSource):
    """Fetches a page with httpx and parses it with BeautifulSoup.

    One request per call; wrap in ``RetryingSource`` for backoff.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "freshet/0.1 (+metadata refresh)",
        max_images: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_images = max_images
        self._transport = transport

    async def _get_html(self, url: str) -> str:
        headers = {"User-Agent": self.user_agent, "Accept": _ACCEPT}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                resp = await client.get(url, headers=headers)
                resp.raise_for_status()
        except httpx.TimeoutException as exc:
            raise SourceFetchError(url, "timeout", str(exc) or "request timed out") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise SourceFetchError(url, "http", f"HTTP {status}", status_code=status) from exc
        except httpx.HTTPError as exc:
            raise SourceFetchError(url, "network", str(exc) or type(exc).__name__) from exc

        content_type = resp.headers.get("content-type", "")
        if "html" not in content_type:
            raise SourceFetchError(url, "parse", f"response is not HTML ({content_type or 'no content type'})")
        return resp.text

    async def fetch_metadata(self, url: str) -> dict[str, Any]:
        metadata = extract_metadata(await self._get_html(url), url)
        if not metadata["title"] and not metadata["description"]:
            raise SourceFetchError(url, "parse", "page has no title or description")
        return metadata

    async def fetch_images(self, url: str) -> dict[str, Any]:
        return extract_images(await self._get_html(url), url, self.max_images)
