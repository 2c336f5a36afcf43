"""HTML sanitization for user-authored post and comment bodies."""

from __future__ import annotations

import nh3

ALLOWED_TAGS = {
    "p", "br", "strong", "b", "em", "i", "u", "s", "blockquote", "code", "pre",
    "ul", "ol", "li", "h1", "h2", "h3", "h4", "a", "img", "hr", "span",
}

ALLOWED_ATTRIBUTES = {
    "a": {"href", "title", "target"},
    "img": {"src", "alt", "title", "width", "height"},
    "span": {"class"},
    "code": {"class"},
}


def sanitize_html(content: str | None) -> str:
    if not content:
        return ""
    return nh3.clean(
        content,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        url_schemes={"http", "https", "mailto"},
        link_rel="noopener noreferrer",
    )


def plain_text(content: str | None) -> str:
    """Strip all markup; used to decide whether a body is effectively empty."""
    if not content:
        return ""
    return nh3.clean(content, tags=set()).strip()
