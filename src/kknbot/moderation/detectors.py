"""
Content detectors for the word filter and link control rules.

Pure functions over the message text; the moderation engine decides what to
do with their results.
"""

import re
from typing import Iterable, List, Pattern

# Scheme-prefixed URLs, www.-prefixed hosts and bare domain-shaped tokens
LINK_PATTERN: Pattern = re.compile(
    r"(https?://[^\s]+|www\.[^\s]+|[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,})",
    re.IGNORECASE,
)


def find_blacklisted_words(text: str, blacklist: Iterable[str]) -> List[str]:
    """Return every blacklist entry contained in ``text`` (case-insensitive substring match)."""
    lowered = text.lower()
    return sorted(word for word in blacklist if word and word.lower() in lowered)


def extract_links(text: str) -> List[str]:
    """Return all URL-like substrings of ``text`` in order of appearance."""
    return LINK_PATTERN.findall(text)


def is_whitelisted(link: str, whitelist: Iterable[str]) -> bool:
    """A link is allowed when any whitelist entry occurs in it."""
    lowered = link.lower()
    return any(domain and domain.lower() in lowered for domain in whitelist)


def find_disallowed_links(text: str, whitelist: Iterable[str]) -> List[str]:
    """Return the links in ``text`` that no whitelist entry allows."""
    allowed = list(whitelist)
    return [link for link in extract_links(text) if not is_whitelisted(link, allowed)]


def extract_domain(url: str) -> str:
    """Strip scheme, ``www.`` and path from a URL-like token."""
    url = url.lower()
    for prefix in ("https://", "http://"):
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    if url.startswith("www."):
        url = url[4:]
    return url.split("/")[0]
