"""Reduce raw product-page HTML to the parts worth sending to a model."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

EXCERPT_CHAR_BUDGET = 50_000

# Ordered by priority; earlier slices survive the character budget first.
SLICE_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(r"<[^>]*class=\"[^\"]*price[^\"]*\"[^>]*>[\s\S]{0,500}?</[^>]+>", re.I),
    re.compile(r"<(?:s|del|strike)\b[^>]*>[\s\S]{0,200}?</(?:s|del|strike)>", re.I),
    re.compile(r"<[^>]*class=\"[^\"]*product[^\"]*\"[^>]*>[\s\S]{0,1000}?</[^>]+>", re.I),
    re.compile(
        r"<script[^>]*type=[\"']application/(?:ld\+)?json[\"'][^>]*>[\s\S]{0,5000}?</script>",
        re.I,
    ),
    re.compile(r"<meta[^>]*property=[\"']og:(?:title|image|price[^\"']*)[\"'][^>]*>", re.I),
    re.compile(r"<h1[^>]*>[\s\S]{0,200}?</h1>", re.I),
    re.compile(r"<[^>]*itemprop=[\"'](?:price|name|image|highPrice)[\"'][^>]*>", re.I),
    re.compile(r"<[^>]*data-testid[^>]*>[\s\S]{0,500}?</[^>]+>", re.I),
    re.compile(r"<[^>]*data-test=[^>]*>[\s\S]{0,500}?</[^>]+>", re.I),
)

_META_IMAGE_PATTERNS = {
    "og:image": (
        re.compile(
            r"<meta[^>]*(?:property|name)=[\"']og:image[\"'][^>]*content=[\"']([^\"']+)[\"']",
            re.I,
        ),
        re.compile(
            r"<meta[^>]*content=[\"']([^\"']+)[\"'][^>]*(?:property|name)=[\"']og:image[\"']",
            re.I,
        ),
    ),
    "twitter:image": (
        re.compile(
            r"<meta[^>]*(?:property|name)=[\"']twitter:image[\"'][^>]*content=[\"']([^\"']+)[\"']",
            re.I,
        ),
        re.compile(
            r"<meta[^>]*content=[\"']([^\"']+)[\"'][^>]*(?:property|name)=[\"']twitter:image[\"']",
            re.I,
        ),
    ),
}


def collect_slices(html: str) -> List[str]:
    """Return every matching slice, in pattern priority order."""
    snippets: List[str] = []
    for pattern in SLICE_PATTERNS:
        snippets.extend(match.group(0) for match in pattern.finditer(html))
    return snippets


def build_excerpt(html: str, budget: int = EXCERPT_CHAR_BUDGET) -> str:
    """Concatenate the relevant slices up to ``budget`` characters.

    Falls back to the head of the raw document when nothing matches.
    """
    snippets = collect_slices(html)
    if not snippets:
        return html[:budget]
    return "\n".join(snippets)[:budget]


def find_meta_image(html: str) -> Tuple[Optional[str], Optional[str]]:
    """Pull an absolute og:image / twitter:image URL straight from the markup.

    Returns:
        Tuple of (image_url, source_tag), both None when no usable tag exists.
    """
    for source, patterns in _META_IMAGE_PATTERNS.items():
        for pattern in patterns:
            match = pattern.search(html)
            if match and match.group(1).startswith("http"):
                return match.group(1), source
    return None, None
