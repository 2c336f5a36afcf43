"""
Link preview: fetch a page and pull its title, description and image.

Any fetch or parse failure degrades to a domain-only preview rather than an
error, so the composer can always render something.
"""

from __future__ import annotations

from html.parser import HTMLParser
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx
import structlog
from fastapi import HTTPException

from communityx.core.config import get_settings
from communityx_shared.schemas.media import LinkPreviewResponse

log = structlog.get_logger()

USER_AGENT = "Mozilla/5.0 (compatible; CommunityX-LinkPreview/1.0)"
ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class _MetaParser(HTMLParser):
    """Collects <title> text and <meta property|name=... content=...> pairs."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.title = ""
        self.meta: dict[str, str] = {}
        self._in_title = False

    def handle_starttag(self, tag, attrs):
        if tag == "title":
            self._in_title = True
        elif tag == "meta":
            values = dict(attrs)
            key = values.get("property") or values.get("name")
            content = values.get("content")
            if key and content is not None:
                self.meta.setdefault(key.lower(), content.strip())

    def handle_endtag(self, tag):
        if tag == "title":
            self._in_title = False

    def handle_data(self, data):
        if self._in_title:
            self.title += data


def validate_url(url: Optional[str]) -> str:
    if not url:
        raise HTTPException(status_code=400, detail="URL parameter is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise HTTPException(status_code=400, detail="Invalid URL format")
    return url


def fallback_preview(url: str, domain: str) -> LinkPreviewResponse:
    return LinkPreviewResponse(title=domain, description="", image="", url=url, domain=domain)


def parse_preview(
    html: str, url: str, domain: str, base_url: Optional[str] = None
) -> LinkPreviewResponse:
    parser = _MetaParser()
    parser.feed(html)
    parser.close()

    meta = parser.meta
    title = meta.get("og:title") or parser.title.strip()
    description = meta.get("og:description") or meta.get("description") or ""
    image = meta.get("og:image") or meta.get("twitter:image") or ""
    if image:
        image = urljoin(base_url or url, image)

    return LinkPreviewResponse(
        title=title or domain,
        description=description,
        image=image,
        url=url,
        domain=domain,
    )


async def fetch_link_preview(
    url: Optional[str], client: Optional[httpx.AsyncClient] = None
) -> LinkPreviewResponse:
    url = validate_url(url)
    domain = urlparse(url).hostname or ""
    settings = get_settings()

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(
            timeout=settings.link_preview_timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": ACCEPT},
        )
    try:
        response = await client.get(url)
        response.raise_for_status()
        return parse_preview(response.text, url, domain, base_url=str(response.url))
    except httpx.HTTPError as exc:
        log.warning("link_preview.fetch_failed", url=url, error=str(exc))
        return fallback_preview(url, domain)
    finally:
        if owns_client:
            await client.aclose()
