"""Sanitizer chain orchestration and story assembly."""

from pathlib import Path

import pytest

from conftest import FakeDownloader, article_html, fivefilters_feed
from storyfetch.assets import prepare_asset_paths
from storyfetch.config import FeatureFlags, SanitizerSpec
from storyfetch.errors import (
    DirectoryFailure,
    EmptyContent,
    MissingLink,
    TransportFailure,
)
from storyfetch.models import StoryReference
from storyfetch.resolver import ContentResolver, resolve
from storyfetch.sanitizers import DEFAULT_FIVEFILTERS_BASE_URL

LINK = "https://example.com/story"
RAW_PAGE = "<html><body><p>raw page</p></body></html>"
DIFFBOT = "https://api.diffbot.com/"
IMAGES_ON = FeatureFlags(
    download_images_when_sanitize_successful=True,
    download_images_when_sanitize_unsuccessful=True,
)


def _chain(*entries: dict) -> list:
    return [SanitizerSpec.from_dict(entry) for entry in entries]


def test_falls_through_every_sanitizer_to_raw_page() -> None:
    downloader = FakeDownloader(
        pages={
            DEFAULT_FIVEFILTERS_BASE_URL: fivefilters_feed("<p>too short</p>"),
            LINK: RAW_PAGE,
        }
    )
    chain = _chain(
        {"type": "fivefilters", "order": 1, "active": True},
        {"type": "diffbot", "order": 2, "active": True, "token": "abc"},
        {"type": "webtoon", "order": 3, "active": False},
    )

    outcome = ContentResolver(downloader).resolve(LINK, chain)

    assert outcome.ok
    assert outcome.html == RAW_PAGE
    assert outcome.sanitized_successfully is False
    assert outcome.sanitizer == "raw"
    assert outcome.manifest is None
    assert [url.split("?")[0] for url in downloader.requested] == [
        DEFAULT_FIVEFILTERS_BASE_URL + "/makefulltextfeed.php",
        "https://api.diffbot.com/v3/article",
        LINK,
    ]


def test_first_success_wins() -> None:
    downloader = FakeDownloader(
        pages={
            DIFFBOT: {"objects": [{"html": article_html()}]},
            DEFAULT_FIVEFILTERS_BASE_URL: fivefilters_feed(article_html(100)),
        }
    )
    chain = _chain(
        {"type": "fivefilters", "order": 5},
        {"type": "diffbot", "order": 1, "token": "abc"},
    )

    outcome = ContentResolver(downloader).resolve(LINK, chain)

    assert outcome.html == article_html()
    assert outcome.sanitized_successfully is True
    assert outcome.sanitizer == "diffbot"
    assert len(downloader.requested) == 1


def test_equal_order_breaks_ties_by_type_name() -> None:
    downloader = FakeDownloader(pages={LINK: RAW_PAGE})
    chain = _chain(
        {"type": "webtoon", "order": 1},
        {"type": "readability", "order": 1},
        {"type": "fivefilters"},
    )

    ContentResolver(downloader).resolve(LINK, chain)

    assert downloader.requested[0] == LINK  # readability fetches the page itself
    assert downloader.requested[1].startswith(DEFAULT_FIVEFILTERS_BASE_URL)


def test_missing_link() -> None:
    downloader = FakeDownloader()

    outcome = ContentResolver(downloader).resolve("  ", _chain({"type": "fivefilters"}))

    assert isinstance(outcome.error, MissingLink)
    assert outcome.error.kind == "missing_link"
    assert outcome.html is None
    assert downloader.requested == []
    with pytest.raises(MissingLink):
        outcome.raise_for_error()


def test_everything_failing_surfaces_transport_error() -> None:
    outcome = ContentResolver(FakeDownloader()).resolve(LINK, [])

    assert isinstance(outcome.error, TransportFailure)
    assert not outcome.ok


def test_empty_raw_page_surfaces_empty_content() -> None:
    downloader = FakeDownloader(pages={LINK: EmptyContent("blank", url=LINK)})

    outcome = resolve(LINK, _chain({"type": "diffbot"}), downloader=downloader)

    assert isinstance(outcome.error, EmptyContent)
    assert outcome.error.kind == "empty_content"


def test_unknown_sanitizer_type_is_skipped() -> None:
    downloader = FakeDownloader(pages={LINK: RAW_PAGE})

    outcome = ContentResolver(downloader).resolve(LINK, _chain({"type": "mercury"}))

    assert outcome.html == RAW_PAGE
    assert downloader.requested == [LINK]


def test_resolve_rewrites_images_when_asset_paths_given(tmp_path: Path) -> None:
    page = '<p>hi</p><img src="/a.jpg">'
    downloader = FakeDownloader(
        images={"https://example.com/a.jpg": (b"jpeg", {})},
        pages={LINK: page},
    )
    paths = prepare_asset_paths(tmp_path, "s1")

    outcome = ContentResolver(downloader).resolve(LINK, [], asset_paths=paths)

    assert outcome.html == '<p>hi</p><img src="assets/s1/images/img00001.jpg">'
    assert [record.absolute_url for record in outcome.manifest.downloads] == [
        "https://example.com/a.jpg"
    ]


def test_resolve_reports_directory_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    page = '<img src="https://example.com/a.jpg">'
    downloader = FakeDownloader(pages={LINK: page})

    outcome = ContentResolver(downloader).resolve(
        LINK, [], asset_paths=prepare_asset_paths(blocker, "s1")
    )

    assert outcome.html == page
    assert isinstance(outcome.error, DirectoryFailure)


def test_fetch_story_finishes_html_and_downloads_images(tmp_path: Path) -> None:
    page = (
        '<p style="font-size: 20px">Body</p><a href="/next">next</a>'
        '<img src="img/a.png">'
    )
    downloader = FakeDownloader(
        images={"https://example.com/img/a.png": (b"png", {"Content-Type": "image/png"})},
        pages={LINK: page},
    )
    story = StoryReference(link=LINK, title="Cats & Dogs")

    document = ContentResolver(downloader, IMAGES_ON).fetch_story(
        story, [], asset_base_dir=tmp_path, asset_base_name="cats"
    )

    assert document.html == (
        '<h3>Cats &amp; Dogs</h3><p>Body</p>'
        '<a href="https://example.com/next">next</a>'
        '<img src="assets/cats/images/img00001.png">'
    )
    assert document.sanitized_successfully is False
    assert document.images_requested is True
    assert document.asset_paths.assets_root == tmp_path / "assets" / "cats"
    assert (tmp_path / "assets" / "cats" / "images" / "img00001.png").exists()


def test_fetch_story_respects_image_feature_flags(tmp_path: Path) -> None:
    downloader = FakeDownloader(
        images={"https://example.com/a.png": (b"png", {})},
        pages={LINK: '<img src="https://example.com/a.png">'},
    )
    features = FeatureFlags(download_images_when_sanitize_successful=True)

    document = ContentResolver(downloader, features).fetch_story(
        StoryReference(link=LINK), [], asset_base_dir=tmp_path
    )

    assert document.images_requested is False
    assert document.manifest is None
    assert document.html == '<img src="https://example.com/a.png">'
    assert downloader.calls == []
    assert not (tmp_path / "assets").exists()


def test_fetch_story_raises_when_nothing_resolves() -> None:
    with pytest.raises(TransportFailure):
        ContentResolver(FakeDownloader()).fetch_story(StoryReference(link=LINK), [])
