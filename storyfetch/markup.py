"""Tag-level HTML scanning and attribute rewriting.

This is deliberately not a DOM: it finds start tags with regular expressions
and edits attributes in place, so everything outside the touched attribute
is preserved byte for byte. Attribute names are matched case-insensitively,
values may be double-quoted, single-quoted or bare, and both ``<img ...>``
and ``<img ... />`` forms are recognised. A value with a stray or missing
quote does not match, which leaves the tag unchanged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

_ATTRIBUTE_TEMPLATE = (
    r"(?P<lead>[\s\"'/])(?P<name>{name})\s*=\s*"
    r"(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)'|(?P<bare>[^\s\"'=<>`]+))"
)
_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")
_BASE_HREF_PATTERN = re.compile(r"<base\b[^>]*>", re.I)
_RESOURCE_TAG_PATTERN = re.compile(r"<[A-Za-z][^>]*>")
_STYLE_BLOCK_PATTERN = re.compile(r"(<style\b[^>]*>)(.*?)(</style\s*>)", re.I | re.S)
_FONT_SIZE_PATTERN = re.compile(r"font-size\s*:\s*[^;\"'}]*;?\s*", re.I)
_WHITESPACE = re.compile(r"\s+")


@dataclass
class ElementMatch:
    """Raw text of one start tag and its offsets in the source document."""

    text: str
    start: int
    end: int


def _element_pattern(tag_name: str) -> re.Pattern[str]:
    return re.compile(rf"<\s*{re.escape(tag_name)}\b[^>]*>", re.I)


def _attribute_pattern(name: str) -> re.Pattern[str]:
    return re.compile(_ATTRIBUTE_TEMPLATE.format(name=re.escape(name)), re.I)


def find_elements(html: str, tag_name: str) -> Iterator[ElementMatch]:
    """Yield every start tag named ``tag_name`` in document order."""
    for match in _element_pattern(tag_name).finditer(html):
        yield ElementMatch(text=match.group(0), start=match.start(), end=match.end())


def replace_elements(html: str, tag_name: str, replacer) -> str:
    """Substitute each ``tag_name`` start tag with ``replacer(ElementMatch)``."""

    def _sub(match: re.Match) -> str:
        element = ElementMatch(text=match.group(0), start=match.start(), end=match.end())
        return replacer(element)

    return _element_pattern(tag_name).sub(_sub, html)


def get_attribute(tag: str, name: str) -> Optional[str]:
    match = _attribute_pattern(name).search(tag)
    if not match:
        return None
    for group in ("dq", "sq", "bare"):
        value = match.group(group)
        if value is not None:
            return value
    return None


def set_attribute(tag: str, name: str, value: str) -> str:
    """Replace the first ``name`` attribute, inserting it when absent."""
    match = _attribute_pattern(name).search(tag)
    if match:
        quote = "'" if match.group("sq") is not None else '"'
        replacement = f"{match.group('lead')}{match.group('name')}={quote}{value}{quote}"
        return tag[: match.start()] + replacement + tag[match.end() :]
    opening = re.match(r"<\s*[A-Za-z][\w:-]*", tag)
    if not opening:
        return tag
    return f'{tag[: opening.end()]} {name}="{value}"{tag[opening.end() :]}'


def remove_attribute(tag: str, name: str) -> str:
    """Drop the first ``name`` attribute together with its leading whitespace."""
    match = _attribute_pattern(name).search(tag)
    if not match:
        return tag
    lead = match.group("lead")
    keep = "" if lead.isspace() else lead
    return tag[: match.start()] + keep + tag[match.end() :]


def class_tokens(tag: str) -> List[str]:
    return (get_attribute(tag, "class") or "").split()


def has_scheme(value: str) -> bool:
    return bool(_SCHEME_PATTERN.match(value))


def _is_relative_target(value: str) -> bool:
    if not value or value[0] in "#?":
        return False
    return not has_scheme(value)


def absolutize_resource_urls(html: str, page_url: str) -> str:
    """Rewrite relative ``href``/``src`` values against the page (or ``<base>``)."""
    if not html or not page_url:
        return html

    base = page_url
    base_tag = _BASE_HREF_PATTERN.search(html)
    if base_tag:
        base_href = (get_attribute(base_tag.group(0), "href") or "").strip()
        if base_href:
            base = base_href if has_scheme(base_href) else urljoin(page_url, base_href)

    def _rewrite(match: re.Match) -> str:
        tag = match.group(0)
        if _BASE_HREF_PATTERN.match(tag):
            return tag
        for name in ("href", "src"):
            value = get_attribute(tag, name)
            if value is None:
                continue
            stripped = value.strip()
            if _is_relative_target(stripped):
                tag = set_attribute(tag, name, urljoin(base, stripped))
        return tag

    return _RESOURCE_TAG_PATTERN.sub(_rewrite, html)


def disable_font_size_declarations(html: str) -> str:
    """Drop CSS ``font-size`` declarations so the reader's own size applies."""
    if not html:
        return html

    def _style_attribute(match: re.Match) -> str:
        tag = match.group(0)
        style = get_attribute(tag, "style")
        if style is None or "font-size" not in style.lower():
            return tag
        cleaned = _FONT_SIZE_PATTERN.sub("", style).strip()
        if not cleaned:
            return remove_attribute(tag, "style")
        return set_attribute(tag, "style", cleaned)

    def _style_block(match: re.Match) -> str:
        return match.group(1) + _FONT_SIZE_PATTERN.sub("", match.group(2)) + match.group(3)

    html = _STYLE_BLOCK_PATTERN.sub(_style_block, html)
    return _RESOURCE_TAG_PATTERN.sub(_style_attribute, html)


def visible_text(html: str) -> str:
    """Text a reader would see, whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return _WHITESPACE.sub(" ", soup.get_text(" ")).strip()
