"""Image downloading and ``<img>`` rewriting for offline story HTML."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import urljoin, urlsplit

from filetype import guess

from .assets import cleanup_assets, reset_asset_directories
from .downloader import Downloader
from .errors import DirectoryFailure, RenameFailure
from .markup import (
    ElementMatch,
    class_tokens,
    find_elements,
    get_attribute,
    has_scheme,
    replace_elements,
    set_attribute,
)
from .models import AssetManifest, AssetPaths, AssetRecord, ImageTagMatch

logger = logging.getLogger("storyfetch")

MIME_EXTENSIONS: Dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/svg+xml": "svg",
    "image/webp": "webp",
    "image/avif": "avif",
    "image/bmp": "bmp",
}
LAZY_SOURCE_ATTRIBUTES = ("data-url", "data-src", "data-original", "data-lazy-src")
WEBTOON_PAGE_PREFIX = "https://www.webtoons"
WEBTOON_PLACEHOLDER_CLASS = "_images"

_PIXEL_LENGTH = re.compile(r"^([\d.]+)\s*([a-z%]*)$", re.I)
_URL_EXTENSION = re.compile(r"^[a-z0-9]{1,5}$")


@dataclass
class RewriteContext:
    """Dedup map and id counter for a single rewrite call."""

    seen: Dict[str, str] = field(default_factory=dict)
    downloads: List[AssetRecord] = field(default_factory=list)
    next_id: int = 1

    def allocate_id(self) -> str:
        image_id = f"img{self.next_id:05d}"
        self.next_id += 1
        return image_id


def parse_pixel_length(value: Optional[str]) -> Optional[float]:
    """Parse ``"1"``, ``"1px"`` or ``" 0.5 px "``; any other unit gives None."""
    if not value or not value.strip():
        return None
    match = _PIXEL_LENGTH.match(value.strip())
    if not match:
        return None
    number, unit = match.groups()
    if unit and unit.lower() != "px":
        return None
    try:
        return float(number)
    except ValueError:
        return None


def parse_style_pixel_length(style: Optional[str], prop: str) -> Optional[float]:
    if not style:
        return None
    match = re.search(rf"(?:^|[;\s]){re.escape(prop)}\s*:\s*([^;]+)", style.lower())
    if not match:
        return None
    return parse_pixel_length(match.group(1))


def is_tracking_pixel(tag: str) -> bool:
    """True when both width and height resolve to at most one pixel."""
    style = get_attribute(tag, "style")
    width = parse_pixel_length(get_attribute(tag, "width"))
    if width is None:
        width = parse_style_pixel_length(style, "width")
    height = parse_pixel_length(get_attribute(tag, "height"))
    if height is None:
        height = parse_style_pixel_length(style, "height")
    return width is not None and width <= 1 and height is not None and height <= 1


def _skips_src(tag: str, page_url: Optional[str]) -> bool:
    """Webtoon viewer pages keep a placeholder in ``src`` on ``_images`` tags."""
    return bool(
        page_url
        and page_url.startswith(WEBTOON_PAGE_PREFIX)
        and WEBTOON_PLACEHOLDER_CLASS in class_tokens(tag)
    )


def select_source(tag: str, page_url: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(attribute, value)`` for the tag's image source, if any."""
    if not _skips_src(tag, page_url):
        value = get_attribute(tag, "src")
        if value:
            return "src", value
    for attribute in LAZY_SOURCE_ATTRIBUTES:
        value = get_attribute(tag, attribute)
        if value:
            return attribute, value
    return None, None


def resolve_image_url(src: Optional[str], base_url: Optional[str]) -> Optional[str]:
    if not src:
        return None
    src = src.strip()
    if not src or src.lower().startswith("data:"):
        return None
    if has_scheme(src):
        return src
    if not base_url:
        return None
    return urljoin(base_url, src)


def extension_from_url(url: str) -> Optional[str]:
    """Lower-cased suffix of the URL path, e.g. ``png`` for ``/a/pic.PNG?x=1``."""
    suffix = posixpath.splitext(urlsplit(url).path)[1].lstrip(".").lower()
    if suffix and _URL_EXTENSION.match(suffix):
        return suffix
    return None


def detect_image_format(path: Path) -> Optional[str]:
    """Sniff a downloaded file on disk; image extension or None."""
    try:
        kind = guess(str(path))
    except OSError:
        return None
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def _content_type(headers: Mapping[str, str]) -> str:
    for key, value in headers.items():
        if key.lower() == "content-type" and value:
            return value.split(";")[0].strip().lower()
    return ""


def _rename(image_path: Path, extension: str) -> Path:
    new_path = image_path.with_name(f"{image_path.name}.{extension}")
    try:
        image_path.rename(new_path)
    except OSError as exc:
        raise RenameFailure(str(exc)) from exc
    return new_path


def _resolve_extension(image_path: Path, headers: Mapping[str, str]) -> Path:
    """Append an extension to an extensionless download when it can be known."""
    extension = MIME_EXTENSIONS.get(_content_type(headers))
    if not extension:
        sniffed = detect_image_format(image_path)
        if sniffed in MIME_EXTENSIONS.values():
            extension = sniffed
    if not extension:
        return image_path
    try:
        return _rename(image_path, extension)
    except RenameFailure as exc:
        logger.warning("Failed to rename image %s: %s", image_path, exc)
        return image_path


def _point_at(tag: str, attribute: Optional[str], relative_src: str) -> str:
    updated = set_attribute(tag, "src", relative_src)
    if attribute and attribute != "src":
        updated = set_attribute(updated, attribute, relative_src)
    return updated


def scan_images(html: str, page_url: Optional[str] = None) -> List[ImageTagMatch]:
    """List every ``<img>`` element together with the source it would use."""
    matches: List[ImageTagMatch] = []
    for element in find_elements(html, "img"):
        attribute, value = select_source(element.text, page_url)
        matches.append(
            ImageTagMatch(
                text=element.text,
                start=element.start,
                end=element.end,
                attribute=attribute,
                value=value,
            )
        )
    return matches


def _process_tag(
    element: ElementMatch,
    page_url: Optional[str],
    asset_paths: AssetPaths,
    downloader: Downloader,
    context: RewriteContext,
) -> str:
    tag = element.text
    if is_tracking_pixel(tag):
        return ""

    attribute, original_src = select_source(tag, page_url)
    if not original_src:
        return tag

    absolute_src = resolve_image_url(original_src, page_url)
    if not absolute_src:
        return tag

    if absolute_src in context.seen:
        return _point_at(tag, attribute, context.seen[absolute_src])

    extension = extension_from_url(absolute_src)
    image_id = context.allocate_id()
    filename = f"{image_id}.{extension}" if extension else image_id
    image_path = asset_paths.images_dir / filename

    headers = downloader.fetch(absolute_src, image_path)
    if headers is None:
        return tag

    if not extension:
        image_path = _resolve_extension(image_path, headers)

    relative_src = f"{asset_paths.relative_prefix}/{image_path.name}"
    context.seen[absolute_src] = relative_src
    context.downloads.append(
        AssetRecord(absolute_url=absolute_src, local_path=image_path, relative_src=relative_src)
    )
    return _point_at(tag, attribute, relative_src)


def rewrite(
    html: str,
    page_url: Optional[str],
    asset_paths: Optional[AssetPaths],
    downloader: Optional[Downloader] = None,
) -> Tuple[str, AssetManifest]:
    """Download every referenced image and point the tags at the local copies."""
    if not html or asset_paths is None:
        return html, AssetManifest()

    if not reset_asset_directories(asset_paths):
        cleanup_assets(asset_paths.assets_root)
        error = DirectoryFailure(
            f"could not prepare {asset_paths.images_dir}", url=page_url
        )
        logger.warning("Failed to prepare asset directories for images: %s", error)
        return html, AssetManifest(error=error)

    downloader = downloader or Downloader()
    context = RewriteContext()
    rewritten = replace_elements(
        html,
        "img",
        lambda element: _process_tag(element, page_url, asset_paths, downloader, context),
    )
    logger.debug(
        "Downloaded %d image(s) into %s", len(context.downloads), asset_paths.images_dir
    )
    return rewritten, AssetManifest(
        downloads=context.downloads,
        assets_root=asset_paths.assets_root,
        images_dir=asset_paths.images_dir,
    )
