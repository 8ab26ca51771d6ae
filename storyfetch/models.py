"""Data models used throughout the resolution pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional

from .errors import StoryFetchError

_LINK_KEYS = ("permalink", "story_permalink", "original_url", "url", "href", "link")


@dataclass(frozen=True)
class StoryReference:
    """A story link plus the title shown above its content."""

    link: str
    title: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "StoryReference":
        """Normalize a feed story record that may spell its link several ways."""
        link = ""
        for key in _LINK_KEYS:
            candidate = record.get(key)
            if isinstance(candidate, str) and candidate:
                link = candidate
                break
        title = record.get("story_title") or record.get("title")
        if not isinstance(title, str) or not title:
            title = None
        return cls(link=link, title=title)


@dataclass
class FetchResult:
    """Chosen HTML before any asset rewriting."""

    html: str
    sanitized_successfully: bool
    source_url: str
    sanitizer: str


@dataclass
class AssetPaths:
    """Directory layout for one story's downloaded assets."""

    base_dir: Path
    base_name: str
    assets_root: Path
    images_dir: Path
    relative_prefix: str


@dataclass
class AssetRecord:
    """One unique image downloaded during a rewrite."""

    absolute_url: str
    local_path: Path
    relative_src: str


@dataclass
class AssetManifest:
    """Everything a rewrite downloaded, in document order."""

    downloads: List[AssetRecord] = field(default_factory=list)
    assets_root: Optional[Path] = None
    images_dir: Optional[Path] = None
    error: Optional[StoryFetchError] = None


@dataclass
class ImageTagMatch:
    """An ``<img>`` element and the attribute its source was read from."""

    text: str
    start: int
    end: int
    attribute: Optional[str] = None
    value: Optional[str] = None


@dataclass
class ResolveOutcome:
    """Result of resolving a link, with the failure tagged instead of raised."""

    html: Optional[str]
    sanitized_successfully: bool = False
    manifest: Optional[AssetManifest] = None
    error: Optional[StoryFetchError] = None
    source_url: Optional[str] = None
    sanitizer: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.html)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass
class StoryDocument:
    """Finished story HTML ready to be written or packaged by the caller."""

    html: str
    original_url: str
    title: Optional[str]
    sanitized_successfully: bool
    images_requested: bool
    manifest: Optional[AssetManifest] = None
    asset_paths: Optional[AssetPaths] = None
    sanitizer: Optional[str] = None
