"""Utilities shared by extraction strategies."""

from __future__ import annotations

import codecs
import ipaddress
import json
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional
from urllib.parse import urljoin, urlparse


DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}

BLOCKED_HOSTS = {"localhost", "localhost.localdomain", "0.0.0.0"}

_PRICE_RE = re.compile(r"\d[\d,\.]*")


def to_decimal(price_text: Any) -> Optional[Decimal]:
    """Best effort conversion from price strings or numbers to Decimal."""
    if price_text is None or isinstance(price_text, bool):
        return None
    if isinstance(price_text, (int, float, Decimal)):
        try:
            value = Decimal(str(price_text))
        except InvalidOperation:
            return None
        return value if value.is_finite() else None

    match = _PRICE_RE.search(str(price_text))
    if not match:
        return None
    cleaned = match.group(0).rstrip(".,")

    comma_count = cleaned.count(",")
    dot_count = cleaned.count(".")

    if comma_count and dot_count:
        # Whichever separator comes last is the decimal one.
        if cleaned.rfind(",") > cleaned.rfind("."):
            normalized = cleaned.replace(".", "").replace(",", ".")
        else:
            normalized = cleaned.replace(",", "")
    elif comma_count:
        decimals_len = len(cleaned) - cleaned.rfind(",") - 1
        if comma_count == 1 and decimals_len != 3:
            normalized = cleaned.replace(",", ".")
        else:
            normalized = cleaned.replace(",", "")
    elif dot_count > 1:
        normalized = cleaned.replace(".", "")
    else:
        normalized = cleaned
    try:
        return Decimal(normalized)
    except (InvalidOperation, ValueError):
        return None


def compute_percent_off(
    original_price: Optional[Decimal], sale_price: Optional[Decimal]
) -> int:
    """Rounded discount percentage, or 0 when there is no valid price pair."""
    if original_price is None or sale_price is None:
        return 0
    if original_price <= 0 or original_price <= sale_price:
        return 0
    ratio = (original_price - sale_price) / original_price * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def declared_charset(headers: Mapping[str, str]) -> Optional[str]:
    """Charset named in the Content-Type header, if it is one Python knows."""
    content_type = headers.get("Content-Type") or ""
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        charset = value.strip().strip("\"'")
        if key.strip().lower() != "charset" or not charset:
            continue
        try:
            return codecs.lookup(charset).name
        except LookupError:
            return None
    return None


def normalize_whitespace(value: str) -> str:
    """Collapse repeated spaces and newlines."""
    return re.sub(r"\s+", " ", value).strip()


def normalize_hostname(url: str) -> str:
    """Lower-cased hostname without a leading ``www.``; the raw URL if unparsable."""
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        hostname = ""
    if not hostname:
        return url
    if hostname.startswith("www."):
        hostname = hostname[len("www."):]
    return hostname


def resolve_url(candidate: Optional[str], page_url: str) -> Optional[str]:
    """Make a (possibly relative) asset URL absolute against the page URL."""
    if not candidate:
        return None
    candidate = candidate.strip()
    if candidate.startswith(("http://", "https://", "data:")):
        return candidate
    try:
        resolved = urljoin(page_url, candidate)
    except ValueError:
        return None
    return resolved if resolved.startswith(("http://", "https://")) else None


def validate_url(url: str) -> None:
    """Reject non-http(s) URLs and private or loopback hosts.

    Raises:
        InvalidUrl: when the URL cannot be fetched safely.
    """
    from .models import InvalidUrl

    try:
        parsed = urlparse(url)
        hostname = (parsed.hostname or "").lower()
    except ValueError as exc:
        raise InvalidUrl(f"Invalid URL format: {url}") from exc

    if parsed.scheme not in ("http", "https"):
        raise InvalidUrl(f"Invalid URL protocol: {url}")
    if not hostname:
        raise InvalidUrl(f"Invalid URL format: {url}")
    if hostname in BLOCKED_HOSTS:
        raise InvalidUrl(f"Private URLs not allowed: {hostname}")

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return
    if address.is_private or address.is_loopback or address.is_link_local:
        raise InvalidUrl(f"Private URLs not allowed: {hostname}")
    mapped = getattr(address, "ipv4_mapped", None)
    if mapped is not None and (mapped.is_loopback or mapped.is_private):
        raise InvalidUrl(f"Private URLs not allowed: {hostname}")


def first_json_object(text: str) -> Optional[dict]:
    """Return the first well-formed JSON object embedded in free text."""
    if not text:
        return None
    cleaned = re.sub(r"```(?:json)?", "", text)
    decoder = json.JSONDecoder()
    position = cleaned.find("{")
    while position != -1:
        try:
            value, _ = decoder.raw_decode(cleaned, position)
        except json.JSONDecodeError:
            position = cleaned.find("{", position + 1)
            continue
        if isinstance(value, dict):
            return value
        position = cleaned.find("{", position + 1)
    return None
