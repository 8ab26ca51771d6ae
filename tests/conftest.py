"""Shared fakes standing in for the network."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from storyfetch.downloader import Downloader
from storyfetch.errors import StoryFetchError, TransportFailure

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

Reply = Union[str, Any, StoryFetchError, Callable[[str], Any]]


class FakeDownloader(Downloader):
    """Serves canned image bodies and page replies, recording every request.

    ``images`` maps exact URLs to ``(body, headers)``; ``pages`` maps URL
    prefixes to a text/JSON reply, an error to raise, or a callable.
    """

    def __init__(
        self,
        images: Optional[Dict[str, Tuple[bytes, Mapping[str, str]]]] = None,
        pages: Optional[Dict[str, Reply]] = None,
    ) -> None:
        super().__init__(session=object())
        self.images = images or {}
        self.pages = pages or {}
        self.calls: List[Tuple[str, Path]] = []
        self.requested: List[str] = []

    def fetch(self, url: str, target_path: Path) -> Optional[Mapping[str, str]]:
        self.calls.append((url, Path(target_path)))
        if url not in self.images:
            return None
        body, headers = self.images[url]
        target_path = Path(target_path)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_bytes(body)
        return headers

    def _reply(self, url: str) -> Any:
        self.requested.append(url)
        for prefix, reply in self.pages.items():
            if url.startswith(prefix):
                if isinstance(reply, StoryFetchError):
                    raise reply
                if callable(reply):
                    return reply(url)
                return reply
        raise TransportFailure("connection refused", url=url)

    def fetch_text(self, url: str) -> str:
        return self._reply(url)

    def fetch_json(self, url: str) -> Any:
        return self._reply(url)


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        reason: str = "OK",
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.reason = reason
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, response: Union[FakeResponse, Exception]) -> None:
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def article_html(words: int = 80) -> str:
    text = " ".join(["lorem"] * words)
    return f"<article><p>{text}</p></article>"


def fivefilters_feed(description: str, cdata: bool = True) -> str:
    if cdata:
        body = f"<![CDATA[{description}]]>"
    else:
        body = description.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return (
        '<?xml version="1.0" encoding="UTF-8"?><rss version="2.0"><channel>'
        f"<title>Feed</title><item><title>Story</title><description>{body}</description>"
        "</item></channel></rss>"
    )
