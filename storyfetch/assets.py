"""Creation, reset and removal of the per-story asset directory tree."""

from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from .models import AssetPaths
from .utils import safe_name, timestamp_name

logger = logging.getLogger("storyfetch")

PathLike = Union[str, Path]


def prepare_asset_paths(
    base_dir: Optional[PathLike], base_name: Optional[str] = None
) -> Optional[AssetPaths]:
    """Compute ``<base_dir>/assets/<name>/images`` without touching the disk."""
    if not base_dir:
        return None
    if not base_name:
        base_name = timestamp_name()
    base_name = safe_name(base_name)
    base = Path(base_dir)
    assets_root = base / "assets" / base_name
    return AssetPaths(
        base_dir=base,
        base_name=base_name,
        assets_root=assets_root,
        images_dir=assets_root / "images",
        relative_prefix=f"assets/{base_name}/images",
    )


def _wipe_directory_contents(path: Path) -> None:
    for entry in path.iterdir():
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as exc:
            logger.warning("Failed to remove %s: %s", entry, exc)


def reset_asset_directories(asset_paths: Optional[AssetPaths]) -> bool:
    """Empty ``assets_root`` and recreate ``images_dir``; False if that fails."""
    if asset_paths is None or not asset_paths.assets_root:
        return False
    if asset_paths.assets_root.is_dir():
        _wipe_directory_contents(asset_paths.assets_root)
    try:
        asset_paths.images_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("Failed to create directory %s: %s", asset_paths.images_dir, exc)
        return False
    return True


def cleanup_assets(assets_root: Optional[PathLike]) -> None:
    """Remove the whole assets tree. Best effort: failures are only logged."""
    if not assets_root:
        return
    root = Path(assets_root)
    if not root.exists():
        return
    try:
        shutil.rmtree(root)
    except OSError as exc:
        logger.debug("Unable to remove asset directory %s (may be fine): %s", root, exc)


@contextmanager
def asset_scope(
    base_dir: Optional[PathLike], base_name: Optional[str] = None
) -> Iterator[Optional[AssetPaths]]:
    """Yield prepared asset paths, removing the tree if the block raises."""
    asset_paths = prepare_asset_paths(base_dir, base_name)
    try:
        yield asset_paths
    except BaseException:
        if asset_paths is not None:
            cleanup_assets(asset_paths.assets_root)
        raise
