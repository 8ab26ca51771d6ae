"""HTTP fetching for story pages, sanitizer APIs and image assets."""

from __future__ import annotations

import contextlib
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

import requests

from .config import NetworkConfig
from .errors import EmptyContent, TransportFailure
from .utils import unescape_link

logger = logging.getLogger("storyfetch")

WEBTOON_CDN_PATTERN = re.compile(r"^https://webtoon-phinf\.pstatic\.net")
WEBTOON_CACHE_BUSTER = re.compile(r"\?type=q90$")
WEBTOON_REFERER = "http://www.webtoons.com"
CHUNK_SIZE = 64 * 1024
CHARSET_PATTERN = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.I)


def _decode(body: bytes, content_type: str) -> str:
    """Decode with the declared charset, UTF-8 when none is declared."""
    match = CHARSET_PATTERN.search(content_type or "")
    encoding = match.group(1) if match else "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class Downloader:
    """Single-request GET helper sharing one ``requests.Session``."""

    def __init__(
        self,
        network: Optional[NetworkConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.network = network or NetworkConfig()
        self.session = session or requests.Session()

    def profile_for(self, url: str) -> str:
        if WEBTOON_CDN_PATTERN.match(url):
            return "webtoon"
        return "generic"

    def _prepare(self, url: str) -> Tuple[str, Dict[str, str]]:
        headers = {
            "Accept-Encoding": "identity",
            "User-Agent": self.network.user_agent,
        }
        if self.profile_for(url) == "webtoon":
            logger.debug("Using webtoon download profile for %s", url)
            url = WEBTOON_CACHE_BUSTER.sub("", url)
            headers["Referer"] = WEBTOON_REFERER
        return url, headers

    def _iter_body(self, response: requests.Response, url: str) -> Iterator[bytes]:
        """Stream the body, giving up once the total timeout has elapsed."""
        deadline = time.monotonic() + self.network.total_timeout
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise TransportFailure(
                    f"total timeout of {self.network.total_timeout}s exceeded", url=url
                )
            if chunk:
                yield chunk

    def _get(self, url: str) -> requests.Response:
        request_url, headers = self._prepare(url)
        try:
            response = self.session.get(
                request_url,
                headers=headers,
                timeout=self.network.block_timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            raise TransportFailure(str(exc), url=url) from exc
        if not 200 <= response.status_code < 300:
            response.close()
            raise TransportFailure(
                f"HTTP {response.status_code} {response.reason or ''}".strip(),
                url=url,
                status_code=response.status_code,
            )
        return response

    def _read(self, url: str) -> Tuple[bytes, Mapping[str, str]]:
        response = self._get(url)
        try:
            body = b"".join(self._iter_body(response, url))
        except requests.RequestException as exc:
            raise TransportFailure(str(exc), url=url) from exc
        finally:
            response.close()
        return body, response.headers

    def fetch(self, url: str, target_path: Path) -> Optional[Mapping[str, str]]:
        """Download ``url`` into ``target_path``; None on any soft failure."""
        try:
            body, headers = self._read(url)
        except TransportFailure as exc:
            logger.info("Image download failed %s: %s", url, exc)
            return None

        target_path = Path(target_path)
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_bytes(body)
        except OSError as exc:
            logger.warning("Unable to open image path for writing %s: %s", target_path, exc)
            with contextlib.suppress(OSError):
                target_path.unlink(missing_ok=True)
            return None
        return headers

    def fetch_text(self, url: str) -> str:
        """Fetch a page as text; raises the tagged transport/empty errors."""
        url = unescape_link(url)
        body, headers = self._read(url)
        if not body:
            raise EmptyContent("empty response body", url=url)
        text = _decode(body, headers.get("Content-Type", ""))
        if not text.strip():
            raise EmptyContent("blank response body", url=url)
        return text

    def fetch_json(self, url: str) -> Any:
        text = self.fetch_text(url)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportFailure(f"invalid JSON response: {exc}", url=url) from exc
