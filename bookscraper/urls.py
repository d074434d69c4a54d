"""URL resolution, classification and filtering helpers."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, Optional, Pattern, Sequence
from urllib.parse import urljoin, urlparse

import tldextract

ALLOWED_SCHEMES = frozenset({"http", "https"})

# Links to these sites are never chapters.
SOCIAL_DOMAINS = frozenset(
    {
        "t.me",
        "telegram.me",
        "vk.com",
        "ok.ru",
        "youtube.com",
        "youtu.be",
        "instagram.com",
        "facebook.com",
        "fb.com",
        "twitter.com",
        "x.com",
        "wa.me",
        "whatsapp.com",
        "tiktok.com",
        "linkedin.com",
    }
)

# Offline extractor: uses the public suffix snapshot bundled with tldextract.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


class InvalidURLError(ValueError):
    """Raised when a seed URL cannot be used to start a run."""


def resolve(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve *href* against *base_url* and return an absolute http(s) URL.

    Relative, root-relative, protocol-relative, query-only and fragment-only
    hrefs are resolved against the full base URL. Returns ``None`` when the
    result is not a usable http(s) URL with a host.
    """
    if href is None:
        return None
    try:
        resolved = urljoin(base_url, href.strip())
        parsed = urlparse(resolved)
        # Accessing .port validates the netloc.
        parsed.port
    except ValueError:
        return None
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.hostname:
        return None
    return resolved


def host_of(url: str) -> str:
    """Return the lower-cased ``host[:port]`` of *url* (empty when invalid)."""
    try:
        parsed = urlparse(url)
        host = parsed.hostname or ""
        port = parsed.port
    except ValueError:
        return ""
    if host and port is not None:
        return f"{host}:{port}"
    return host


def is_same_site(url: str, base_host: str) -> bool:
    """Exact host match; subdomains are different sites."""
    host = host_of(url)
    return bool(host) and host == base_host.lower()


def extract_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for *url*.

    Raises:
        ValueError: If the URL has no scheme or host.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url!r}")
    return f"{parsed.scheme}://{parsed.netloc}"


def validate_url(url: Optional[str]) -> None:
    """Validate a seed URL.

    Raises:
        InvalidURLError: With a message suitable for the operator.
    """
    if not url:
        raise InvalidURLError("URL is required")
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        raise InvalidURLError("Invalid URL format") from exc
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        raise InvalidURLError("Invalid URL format")
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidURLError("URL must use http or https protocol")
    if not parsed.netloc:
        raise InvalidURLError("Invalid URL format")


@lru_cache(maxsize=256)
def _registrable_domain(host: str) -> str:
    extracted = _EXTRACT(host)
    if not extracted.domain or not extracted.suffix:
        return host
    return f"{extracted.domain}.{extracted.suffix}"


def is_social_link(url: str) -> bool:
    """True when *url* points at a social network or messenger."""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return False
    if not hostname:
        return False
    return _registrable_domain(hostname.lower()) in SOCIAL_DOMAINS


def glob_to_regex(pattern: str) -> Pattern[str]:
    """Compile a simple glob into an anchored regular expression.

    ``*`` matches anything except ``/``, ``**`` matches anything including
    ``/`` and ``?`` matches a single character other than ``/``.
    """
    parts: List[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(parts) + "$")


def filter_links(
    links: Iterable[str],
    skip_urls: Sequence[str] = (),
    url_pattern: Optional[str] = None,
) -> List[str]:
    """Apply the skip list and the optional glob inclusion pattern."""
    regex = glob_to_regex(url_pattern) if url_pattern else None
    kept: List[str] = []
    for link in links:
        if any(skip and skip in link for skip in skip_urls):
            continue
        if regex is not None and not regex.match(link):
            continue
        kept.append(link)
    return kept
