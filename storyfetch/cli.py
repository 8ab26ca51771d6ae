"""Command-line entry point for resolving stories to offline HTML."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Sequence

from .config import load_config
from .documents import SavedStory, download_story_to_cache
from .errors import StoryFetchError
from .models import StoryReference
from .resolver import ContentResolver

logger = logging.getLogger("storyfetch.cli")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Resolve story links through the configured sanitizers and save them "
            "as self-contained HTML with locally downloaded images."
        ),
    )
    parser.add_argument("urls", nargs="*", help="Story URLs to resolve")
    parser.add_argument(
        "--stories",
        type=Path,
        default=None,
        help="JSON file holding a list of feed story records to resolve",
    )
    parser.add_argument(
        "--output",
        default="output",
        type=Path,
        help="Directory where HTML files and their assets should be written",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON configuration with sanitizers and feature flags "
        "(defaults to $STORYFETCH_CONFIG)",
    )
    parser.add_argument(
        "--title",
        default=None,
        help="Title to use for the story heading (only with a single URL)",
    )
    images = parser.add_mutually_exclusive_group()
    images.add_argument(
        "--images",
        action="store_true",
        help="Download images even when the configuration leaves them off",
    )
    images.add_argument(
        "--no-images",
        action="store_true",
        help="Keep remote image references instead of downloading them",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args(list(sys.argv[1:] if argv is None else argv))
    if not args.urls and args.stories is None:
        parser.error("give at least one URL or --stories")
    if args.title and (len(args.urls) != 1 or args.stories is not None):
        parser.error("--title can only be used with a single URL")
    return args


def load_stories(path: Path) -> List[StoryReference]:
    """Read feed story records from a JSON list; non-object entries are skipped."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read stories from {path}: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError(f"Stories file {path} must contain a JSON list")
    return [StoryReference.from_record(record) for record in data if isinstance(record, dict)]


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        config = load_config(args.config)
        stories = [StoryReference(link=url, title=args.title) for url in args.urls]
        if args.stories is not None:
            stories.extend(load_stories(args.stories))
    except ValueError as exc:
        logger.error("%s", exc)
        return 2
    if args.images or args.no_images:
        config.features.download_images_when_sanitize_successful = args.images
        config.features.download_images_when_sanitize_unsuccessful = args.images

    resolver = ContentResolver.from_config(config)
    output_dir = Path(args.output).resolve()
    overall_start = time.perf_counter()
    saved: List[SavedStory] = []
    for story in stories:
        try:
            saved.append(download_story_to_cache(story, config.chain(), output_dir, resolver))
        except StoryFetchError as exc:
            logger.error("Failed to fetch %s (%s): %s", story.link or "<missing>", exc.kind, exc)
    total_elapsed = time.perf_counter() - overall_start

    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        total_elapsed,
        len(saved),
        len(stories),
        len(stories) - len(saved),
    )
    if args.verbose:
        for item in saved:
            document = item.document
            logger.debug(
                "%s -> %s (source: %s, images: %d)",
                document.original_url,
                item.path,
                document.sanitizer,
                len(document.manifest.downloads) if document.manifest else 0,
            )
    return 0 if len(saved) == len(stories) else 1


if __name__ == "__main__":
    sys.exit(main())
