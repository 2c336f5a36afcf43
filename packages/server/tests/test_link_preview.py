"""
Link preview tests.

Covers:
- URL validation
- Open Graph / meta / <title> extraction and relative image resolution
- Fallback to a domain-only preview on HTTP errors
- /api/link-preview endpoint
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi import HTTPException

from communityx.services import link_preview
from communityx_shared.schemas.media import LinkPreviewResponse

ARTICLE = """
<html>
  <head>
    <title>Fallback title</title>
    <meta property="og:title" content="  The Real Title ">
    <meta name="description" content="Plain description">
    <meta property="og:image" content="/images/cover.png">
  </head>
  <body><p>Body</p></body>
</html>
"""


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


class TestValidateUrl:
    @pytest.mark.parametrize("url", [None, ""])
    def test_missing(self, url):
        with pytest.raises(HTTPException) as exc_info:
            link_preview.validate_url(url)
        assert exc_info.value.detail == "URL parameter is required"

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/file", "http://"])
    def test_invalid(self, url):
        with pytest.raises(HTTPException) as exc_info:
            link_preview.validate_url(url)
        assert exc_info.value.detail == "Invalid URL format"

    def test_valid(self):
        assert link_preview.validate_url("https://example.com/a?b=c") == "https://example.com/a?b=c"


class TestParsePreview:
    def test_open_graph_wins(self):
        preview = link_preview.parse_preview(
            ARTICLE, "https://blog.example.com/post", "blog.example.com"
        )
        assert preview.title == "The Real Title"
        assert preview.description == "Plain description"
        assert preview.image == "https://blog.example.com/images/cover.png"
        assert preview.domain == "blog.example.com"

    def test_title_tag_and_twitter_image(self):
        html = (
            "<title>Only Title</title>"
            '<meta name="twitter:image" content="https://cdn.example.com/t.jpg">'
        )
        preview = link_preview.parse_preview(html, "https://example.com", "example.com")
        assert preview.title == "Only Title"
        assert preview.description == ""
        assert preview.image == "https://cdn.example.com/t.jpg"

    def test_empty_page_uses_domain(self):
        preview = link_preview.parse_preview("<html></html>", "https://example.com", "example.com")
        assert preview == LinkPreviewResponse(
            title="example.com", description="", image="", url="https://example.com", domain="example.com"
        )

    def test_image_resolved_against_final_url(self):
        html = '<meta property="og:image" content="cover.png">'
        preview = link_preview.parse_preview(
            html, "https://short.example/x", "short.example", base_url="https://long.example.com/a/b"
        )
        assert preview.image == "https://long.example.com/a/cover.png"


class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_parses_page(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=ARTICLE, headers={"content-type": "text/html"})

        async with _client(handler) as client:
            preview = await link_preview.fetch_link_preview("https://blog.example.com/post", client=client)

        assert preview.title == "The Real Title"
        assert preview.url == "https://blog.example.com/post"

    @pytest.mark.asyncio
    async def test_redirect_keeps_requested_url(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "short.example":
                return httpx.Response(301, headers={"location": "https://long.example.com/a/b"})
            return httpx.Response(200, text='<meta property="og:image" content="cover.png">')

        async with _client(handler) as client:
            preview = await link_preview.fetch_link_preview("https://short.example/x", client=client)

        assert preview.url == "https://short.example/x"
        assert preview.domain == "short.example"
        assert preview.image == "https://long.example.com/a/cover.png"

    @pytest.mark.asyncio
    async def test_http_error_falls_back(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        async with _client(handler) as client:
            preview = await link_preview.fetch_link_preview("https://down.example.com", client=client)

        assert preview.title == "down.example.com"
        assert preview.image == ""

    @pytest.mark.asyncio
    async def test_network_error_falls_back(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            preview = await link_preview.fetch_link_preview("https://gone.example.com", client=client)

        assert preview.title == "gone.example.com"


class TestLinkPreviewEndpoint:
    @pytest.mark.asyncio
    async def test_missing_url(self, client):
        resp = await client.get("/api/link-preview")
        assert resp.status_code == 400
        assert resp.json() == {"error": "URL parameter is required"}

    @pytest.mark.asyncio
    async def test_returns_preview(self, client):
        preview = LinkPreviewResponse(
            title="T", description="D", image="", url="https://example.com", domain="example.com"
        )
        with patch(
            "communityx.api.media.link_preview_service.fetch_link_preview",
            new=AsyncMock(return_value=preview),
        ) as fetch:
            resp = await client.get("/api/link-preview", params={"url": "https://example.com"})
        assert resp.status_code == 200
        assert resp.json()["title"] == "T"
        fetch.assert_awaited_once_with("https://example.com")
