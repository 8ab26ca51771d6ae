"""Content-cleanup backends tried in order by the resolver.

Every backend implements the same five steps: build a request for the story
link, fetch it, look for a block/challenge page, extract the article HTML and
decide whether the result is meaningful enough to show. ``run`` strings the
steps together and raises a tagged :mod:`storyfetch.errors` exception at the
first step that fails, so the resolver only has to catch and move on.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from html import unescape
from typing import Any, Dict, Optional, Type
from urllib.parse import urlencode

from readability import Document
from readability.readability import Unparseable

from .config import SanitizerSpec
from .downloader import Downloader
from .errors import Blocked, EmptyContent, NotMeaningful, SanitizerMisconfigured
from .markup import visible_text
from .utils import unescape_link

logger = logging.getLogger("storyfetch")

MIN_MEANINGFUL_CHARS = 200
DEFAULT_FIVEFILTERS_BASE_URL = "https://ftr.fivefilters.net"
DIFFBOT_ARTICLE_ENDPOINT = "https://api.diffbot.com/v3/article"
DIFFBOT_PLACEHOLDER_TOKENS = {"your_diffbot_token", "token", "changeme"}

BLOCK_MARKERS = (
    "just a moment...",
    "cf-browser-verification",
    "cf-challenge",
    "attention required! | cloudflare",
    "access denied",
    "enable javascript and cookies to continue",
    "please verify you are a human",
    "captcha",
    "request blocked",
)
_XML_STRUCTURE = re.compile(r"<\?xml|<rss\b|<feed\b|<item\b|<channel\b", re.I)
_RSS_ITEM = re.compile(r"<item\b[^>]*>(.*?)</item\s*>", re.I | re.S)
_RSS_DESCRIPTION = re.compile(r"<description\b[^>]*>(.*?)</description\s*>", re.I | re.S)
_CDATA = re.compile(r"^<!\[CDATA\[(.*)\]\]>$", re.S)
_FIVEFILTERS_PROMO = re.compile(
    r"<p[^>]*>(?:(?!</p>).)*fivefilters\.org(?:(?!</p>).)*</p>\s*$", re.I | re.S
)


@dataclass
class SanitizerRequest:
    url: str
    kind: str = "text"


def content_is_meaningful(html: Optional[str], min_chars: int = MIN_MEANINGFUL_CHARS) -> bool:
    """At least ``min_chars`` characters of visible text."""
    if not html:
        return False
    return len(visible_text(html)) >= min_chars


def looks_blocked(content: str) -> bool:
    lowered = content[:20_000].lower()
    return any(marker in lowered for marker in BLOCK_MARKERS)


class SanitizerAdapter(ABC):
    """A backend that turns a story link into cleaned article HTML."""

    name = "base"
    min_chars = MIN_MEANINGFUL_CHARS

    def __init__(self, downloader: Downloader) -> None:
        self.downloader = downloader

    @abstractmethod
    def build_request(self, spec: SanitizerSpec, link: str) -> Optional[SanitizerRequest]:
        """Return None when the backend cannot handle this link/config."""

    def fetch(self, request: SanitizerRequest) -> Any:
        if request.kind == "json":
            return self.downloader.fetch_json(request.url)
        return self.downloader.fetch_text(request.url)

    def is_blocked(self, raw: Any) -> bool:
        return False

    @abstractmethod
    def extract(self, raw: Any) -> Optional[str]:
        ...

    def is_meaningful(self, html: Optional[str]) -> bool:
        return content_is_meaningful(html, self.min_chars)

    def run(self, spec: SanitizerSpec, link: str) -> str:
        request = self.build_request(spec, link)
        if request is None:
            raise SanitizerMisconfigured(f"{self.name} cannot handle this link", url=link)
        raw = self.fetch(request)
        if self.is_blocked(raw):
            raise Blocked(f"{self.name} returned a block page", url=link)
        html = self.extract(raw)
        if not html:
            raise EmptyContent(f"{self.name} extracted no content", url=link)
        if not self.is_meaningful(html):
            raise NotMeaningful(f"{self.name} content too short", url=link)
        return html


class FiveFiltersSanitizer(SanitizerAdapter):
    """Full-Text RSS, hosted or self-hosted."""

    name = "fivefilters"

    def build_request(self, spec: SanitizerSpec, link: str) -> Optional[SanitizerRequest]:
        if not link:
            return None
        base_url = (spec.base_url or DEFAULT_FIVEFILTERS_BASE_URL).rstrip("/")
        query = urlencode(
            {"url": unescape_link(link), "max": 1, "links": "preserve", "exc": 1}
        )
        return SanitizerRequest(url=f"{base_url}/makefulltextfeed.php?{query}")

    def is_blocked(self, raw: str) -> bool:
        if not _XML_STRUCTURE.search(raw):
            return True
        return looks_blocked(raw)

    def extract(self, raw: str) -> Optional[str]:
        item = _RSS_ITEM.search(raw)
        if not item:
            return None
        description = _RSS_DESCRIPTION.search(item.group(1))
        if not description:
            return None
        body = description.group(1).strip()
        cdata = _CDATA.match(body)
        html = cdata.group(1) if cdata else unescape(body)
        html = _FIVEFILTERS_PROMO.sub("", html.strip()).strip()
        return html or None


class DiffbotSanitizer(SanitizerAdapter):
    """Diffbot Article API; needs an account token."""

    name = "diffbot"

    def build_request(self, spec: SanitizerSpec, link: str) -> Optional[SanitizerRequest]:
        token = (spec.token or "").strip()
        if not token or token.lower() in DIFFBOT_PLACEHOLDER_TOKENS:
            logger.info("Diffbot sanitizer misconfigured; skipping")
            return None
        query = urlencode({"token": token, "url": unescape_link(link), "discussion": "false"})
        return SanitizerRequest(url=f"{DIFFBOT_ARTICLE_ENDPOINT}?{query}", kind="json")

    def is_blocked(self, raw: Any) -> bool:
        if not isinstance(raw, dict):
            return True
        if raw.get("error"):
            logger.info("Diffbot error %s: %s", raw.get("errorCode"), raw.get("error"))
            return True
        return False

    def extract(self, raw: Dict[str, Any]) -> Optional[str]:
        objects = raw.get("objects")
        if not isinstance(objects, list) or not objects:
            return None
        first = objects[0]
        if not isinstance(first, dict):
            return None
        html = first.get("html")
        return html if isinstance(html, str) and html.strip() else None


class WebtoonSanitizer(SanitizerAdapter):
    """Webtoon viewer pages are used as-is; the episode is its images."""

    name = "webtoon"
    link_prefix = "https://www.webtoons"

    def build_request(self, spec: SanitizerSpec, link: str) -> Optional[SanitizerRequest]:
        if not link.startswith(self.link_prefix):
            return None
        return SanitizerRequest(url=unescape_link(link))

    def extract(self, raw: str) -> Optional[str]:
        return raw

    def is_meaningful(self, html: Optional[str]) -> bool:
        return bool(html) and len(html) >= self.min_chars


class ReadabilitySanitizer(SanitizerAdapter):
    """Local extraction of the main article with readability."""

    name = "readability"

    def build_request(self, spec: SanitizerSpec, link: str) -> Optional[SanitizerRequest]:
        if not link:
            return None
        return SanitizerRequest(url=link)

    def is_blocked(self, raw: str) -> bool:
        return looks_blocked(raw)

    def extract(self, raw: str) -> Optional[str]:
        try:
            summary = Document(raw).summary(html_partial=True)
        except Unparseable as exc:
            logger.info("Readability could not parse page: %s", exc)
            return None
        return summary.strip() or None


class RawSanitizer(SanitizerAdapter):
    """Implicit last resort: the original page, untouched."""

    name = "raw"

    def build_request(self, spec: SanitizerSpec, link: str) -> Optional[SanitizerRequest]:
        return SanitizerRequest(url=link)

    def extract(self, raw: str) -> Optional[str]:
        return raw

    def is_meaningful(self, html: Optional[str]) -> bool:
        return bool(html and html.strip())


SANITIZERS: Dict[str, Type[SanitizerAdapter]] = {
    FiveFiltersSanitizer.name: FiveFiltersSanitizer,
    DiffbotSanitizer.name: DiffbotSanitizer,
    WebtoonSanitizer.name: WebtoonSanitizer,
    ReadabilitySanitizer.name: ReadabilitySanitizer,
}


def build_sanitizer(spec: SanitizerSpec, downloader: Downloader) -> Optional[SanitizerAdapter]:
    sanitizer_cls = SANITIZERS.get(spec.type)
    if sanitizer_cls is None:
        return None
    return sanitizer_cls(downloader)
