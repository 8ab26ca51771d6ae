"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import re
import time

UNSAFE_NAME_PATTERN = re.compile(r"[^A-Za-z0-9._-]")

# Only the entities feeds actually escape in links; a full HTML unescape
# would turn query parameters like ``&section=`` into ``§ion=``.
LINK_ENTITIES = (("&amp;", "&"), ("&lt;", "<"), ("&gt;", ">"), ("&quot;", '"'))


def safe_name(value: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with an underscore."""
    return UNSAFE_NAME_PATTERN.sub("_", value)


def timestamp_name(prefix: str = "story") -> str:
    return f"{prefix}_{int(time.time())}"


def unescape_link(link: str) -> str:
    """Feed links often arrive HTML-escaped (``&amp;`` between query params)."""
    for entity, char in LINK_ENTITIES:
        link = link.replace(entity, char)
    return link.strip()
