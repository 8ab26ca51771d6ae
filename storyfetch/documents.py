"""Writing resolved stories to disk next to their downloaded assets."""

from __future__ import annotations

import html as html_std
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .assets import asset_scope
from .config import SanitizerSpec
from .errors import WriteFailure
from .markup import disable_font_size_declarations
from .models import StoryDocument, StoryReference
from .resolver import ContentResolver
from .utils import safe_name

logger = logging.getLogger("storyfetch")

MAX_TITLE_CHARS = 64


@dataclass
class SavedStory:
    """A story written to disk."""

    path: Path
    document: StoryDocument


def safe_filename_from_story(story: Optional[StoryReference], extension: str = "html") -> str:
    """``<title>_<unix time>.html`` with the title reduced to safe characters."""
    now = int(time.time())
    if story is None:
        return f"story_{now}.{extension}"
    title = safe_name(story.title or story.link or "story") or "story"
    return f"{title[:MAX_TITLE_CHARS]}_{now}.{extension}"


def build_unique_target_path(directory: Path, base_name: str, extension: str = "html") -> Path:
    """First free ``base.ext``, ``base_1.ext``, ``base_2.ext``... in ``directory``."""
    base_name = safe_name(base_name)
    candidate = directory / f"{base_name}.{extension}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{base_name}_{counter}.{extension}"
        counter += 1
    return candidate


def write_story_html(content: str, path: Path, title: Optional[str] = None) -> Path:
    """Wrap ``content`` in a minimal standalone page and write it."""
    if content:
        content = disable_font_size_declarations(content)
    parts = ['<html><head><meta charset="utf-8">']
    if title:
        parts.append(f"<title>{html_std.escape(title)}</title>")
    parts.append("</head><body>")
    parts.append(content or "")
    parts.append("</body></html>")
    try:
        path.write_text("".join(parts), encoding="utf-8")
    except OSError as exc:
        raise WriteFailure(str(exc)) from exc
    return path


def download_story_to_cache(
    story: StoryReference,
    chain: Iterable[SanitizerSpec],
    cache_dir: Path,
    resolver: Optional[ContentResolver] = None,
) -> SavedStory:
    """Resolve a story and save it as ``cache_dir/<name>.html`` plus assets.

    The asset directory shares the HTML file's base name so relative image
    paths in the saved page resolve. If writing the page fails the freshly
    downloaded assets are removed again.
    """
    resolver = resolver or ContentResolver()
    cache_dir.mkdir(parents=True, exist_ok=True)
    filename = safe_filename_from_story(story)
    target_path = build_unique_target_path(cache_dir, Path(filename).stem)
    base_name = target_path.stem

    with asset_scope(cache_dir, base_name) as asset_paths:
        document = resolver.fetch_story(
            story,
            chain,
            asset_base_dir=asset_paths.base_dir,
            asset_base_name=asset_paths.base_name,
        )
        write_story_html(document.html, target_path, document.title)
    logger.info("Saved story to %s", target_path)
    return SavedStory(path=target_path, document=document)
