"""
Normalisation of WhatsApp identifiers to canonical phone numbers.

The transport hands out the same person under several shapes:
``628123@s.whatsapp.net``, ``628123:12@s.whatsapp.net`` (multi-device),
``628123@c.us`` or an opaque linked identifier ``99887766@lid``. Every
identity comparison in the bot goes through :func:`normalize_to_phone` first
so that all of these compare equal.
"""

from __future__ import annotations

import re
from typing import Callable, Mapping

USER_SUFFIXES = ("@s.whatsapp.net", "@c.us")
LID_PATTERN = re.compile(r"(\d+)(?::\d+)?@lid")
DEVICE_SUFFIX_PATTERN = re.compile(r":\d+$")

Normalizer = Callable[[str], str]


def normalize_to_phone(
    raw_id: str,
    lid_mapping: Mapping[str, str] | None = None,
    country_code: str = "62",
) -> str:
    """Map any transport identifier to a bare phone number string.

    Args:
        raw_id: Identifier as delivered by the transport (or typed by a user).
        lid_mapping: Linked-identifier to phone table; unmapped LIDs are returned as-is.
        country_code: Prefix that replaces a leading ``0`` in local numbers.

    Returns:
        str: The canonical phone number, or an empty string for empty input.
    """
    value = str(raw_id or "").strip()
    if not value:
        return ""

    lid_match = LID_PATTERN.search(value)
    if lid_match:
        lid = lid_match.group(1)
        return str((lid_mapping or {}).get(lid, lid))

    for suffix in USER_SUFFIXES:
        if value.endswith(suffix):
            value = value[: -len(suffix)]
            break
    value = DEVICE_SUFFIX_PATTERN.sub("", value)

    # Numbers typed by admins in config or command arguments
    if value.startswith("@"):
        value = value[1:]
    if value.startswith("+"):
        value = value[1:]
    if value.isdigit() and value.startswith("0"):
        value = country_code + value[1:]
    return value


def to_jid(phone: str) -> str:
    """Return the user JID the transport expects for a normalised phone number."""
    return f"{phone}@s.whatsapp.net"


def make_normalizer(config) -> Normalizer:
    """Bind :func:`normalize_to_phone` to the live application configuration.

    The mapping is looked up on every call so that ``AppConfig.reload()``
    takes effect without rebuilding the components holding the normaliser.
    """

    def _normalize(raw_id: str) -> str:
        return normalize_to_phone(raw_id, config.lid_to_phone_mapping, config.country_code)

    return _normalize
