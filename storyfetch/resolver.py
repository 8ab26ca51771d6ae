"""Ordered sanitizer fallback and final story assembly."""

from __future__ import annotations

import html as html_std
import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from . import images
from .assets import prepare_asset_paths
from .config import FeatureFlags, ResolverConfig, SanitizerSpec, active_chain
from .downloader import Downloader
from .errors import MissingLink, StoryFetchError
from .markup import absolutize_resource_urls, disable_font_size_declarations
from .models import (
    AssetPaths,
    FetchResult,
    ResolveOutcome,
    StoryDocument,
    StoryReference,
)
from .sanitizers import RawSanitizer, build_sanitizer
from .utils import timestamp_name

logger = logging.getLogger("storyfetch")


class ContentResolver:
    """Try each sanitizer in priority order, falling back to the raw page."""

    def __init__(
        self,
        downloader: Optional[Downloader] = None,
        features: Optional[FeatureFlags] = None,
    ) -> None:
        self.downloader = downloader or Downloader()
        self.features = features or FeatureFlags()

    @classmethod
    def from_config(cls, config: ResolverConfig) -> "ContentResolver":
        return cls(Downloader(config.network), config.features)

    def _try_sanitizer(self, spec: SanitizerSpec, link: str) -> Optional[str]:
        sanitizer = build_sanitizer(spec, self.downloader)
        if sanitizer is None:
            logger.info("Unknown sanitizer type %s", spec.type)
            return None
        logger.debug("Trying sanitizer %s for %s", spec.type, link)
        try:
            return sanitizer.run(spec, link)
        except StoryFetchError as exc:
            logger.info("Sanitizer %s failed (%s): %s", spec.type, exc.kind, exc)
            return None

    def fetch_content(self, link: str, chain: Iterable[SanitizerSpec]) -> FetchResult:
        """Return the first usable HTML; raises the tagged error when none is."""
        if not link or not link.strip():
            raise MissingLink("story has no link")

        for spec in active_chain(chain):
            content = self._try_sanitizer(spec, link)
            if content:
                logger.info("Using %s content for %s", spec.type, link)
                return FetchResult(
                    html=content,
                    sanitized_successfully=True,
                    source_url=link,
                    sanitizer=spec.type,
                )

        raw = RawSanitizer(self.downloader)
        content = raw.run(SanitizerSpec(type=raw.name), link)
        logger.info("No sanitizer succeeded; using original page for %s", link)
        return FetchResult(
            html=content,
            sanitized_successfully=False,
            source_url=link,
            sanitizer=raw.name,
        )

    def resolve(
        self,
        link: str,
        chain: Iterable[SanitizerSpec],
        asset_paths: Optional[AssetPaths] = None,
    ) -> ResolveOutcome:
        """Resolve ``link``; failures come back tagged on the outcome."""
        try:
            result = self.fetch_content(link, chain)
        except StoryFetchError as exc:
            logger.warning("Failed to resolve %s: %s", link or "<missing>", exc)
            return ResolveOutcome(html=None, error=exc, source_url=link or None)

        outcome = ResolveOutcome(
            html=result.html,
            sanitized_successfully=result.sanitized_successfully,
            source_url=result.source_url,
            sanitizer=result.sanitizer,
        )
        if asset_paths is not None:
            self._rewrite_images(outcome, asset_paths)
        return outcome

    def _rewrite_images(self, outcome: ResolveOutcome, asset_paths: AssetPaths) -> None:
        rewritten, manifest = images.rewrite(
            outcome.html, outcome.source_url, asset_paths, self.downloader
        )
        outcome.html = rewritten
        outcome.manifest = manifest
        if manifest.error is not None:
            outcome.error = manifest.error

    def fetch_story(
        self,
        story: StoryReference,
        chain: Iterable[SanitizerSpec],
        asset_base_dir: Optional[Union[str, Path]] = None,
        asset_base_name: Optional[str] = None,
    ) -> StoryDocument:
        """Resolve a story and prepare it for offline viewing.

        Relative links are made absolute against the story link, inline font
        sizes are dropped and the title is prepended as a heading. Images are
        downloaded only when the feature flag for the sanitized/unsanitized
        case asks for it and an asset directory was given.

        Raises:
            StoryFetchError: when no content could be obtained at all.
        """
        result = self.fetch_content(story.link, chain)

        content = absolutize_resource_urls(result.html, story.link)
        content = disable_font_size_declarations(content)
        if story.title:
            content = f"<h3>{html_std.escape(story.title)}</h3>{content}"

        document = StoryDocument(
            html=content,
            original_url=story.link,
            title=story.title,
            sanitized_successfully=result.sanitized_successfully,
            images_requested=self.features.should_download_images(
                result.sanitized_successfully
            ),
            sanitizer=result.sanitizer,
        )
        if not document.images_requested or asset_base_dir is None:
            return document

        asset_paths = prepare_asset_paths(asset_base_dir, asset_base_name or timestamp_name())
        if asset_paths is None:
            logger.warning("Failed to prepare asset directories for images")
            return document
        rewritten, manifest = images.rewrite(
            document.html, story.link, asset_paths, self.downloader
        )
        document.html = rewritten
        document.manifest = manifest
        document.asset_paths = asset_paths
        return document


def resolve(
    link: str,
    chain: Iterable[SanitizerSpec],
    asset_paths: Optional[AssetPaths] = None,
    downloader: Optional[Downloader] = None,
) -> ResolveOutcome:
    return ContentResolver(downloader).resolve(link, chain, asset_paths)
