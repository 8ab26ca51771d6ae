"""Configuration objects and constants for story resolution."""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger("storyfetch")

CONFIG_ENV_VAR = "STORYFETCH_CONFIG"
DEFAULT_USER_AGENT = "storyfetch/0.1 (offline story reader)"
DEFAULT_BLOCK_TIMEOUT = 10.0
DEFAULT_TOTAL_TIMEOUT = 30.0


@dataclass
class SanitizerSpec:
    """One configured content-cleanup backend."""

    type: str
    order: float = math.inf
    active: bool = True
    token: Optional[str] = None
    base_url: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SanitizerSpec":
        order = data.get("order")
        if isinstance(order, bool) or not isinstance(order, (int, float)):
            order = math.inf
        known = {"type", "order", "active", "token", "base_url"}
        return cls(
            type=str(data.get("type") or "").strip().lower(),
            order=float(order),
            active=data.get("active") is not False,
            token=data.get("token") or None,
            base_url=data.get("base_url") or None,
            options={k: v for k, v in data.items() if k not in known},
        )


def active_chain(specs: Iterable[SanitizerSpec]) -> List[SanitizerSpec]:
    """Active sanitizers sorted by order, ties broken by type name."""
    ordered = [spec for spec in specs if spec.type and spec.active]
    ordered.sort(key=lambda spec: (spec.order, spec.type))
    return ordered


@dataclass
class FeatureFlags:
    """Switches that decide when images are fetched for offline viewing."""

    download_images_when_sanitize_successful: bool = False
    download_images_when_sanitize_unsuccessful: bool = False
    use_fivefilters_on_save_open: bool = False

    def should_download_images(self, sanitized_successfully: bool) -> bool:
        if sanitized_successfully:
            return self.download_images_when_sanitize_successful
        return self.download_images_when_sanitize_unsuccessful


@dataclass
class NetworkConfig:
    """Per-request timeouts and identification."""

    block_timeout: float = DEFAULT_BLOCK_TIMEOUT
    total_timeout: float = DEFAULT_TOTAL_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class ResolverConfig:
    """Top-level settings loaded from the JSON configuration file."""

    sanitizers: List[SanitizerSpec] = field(default_factory=list)
    features: FeatureFlags = field(default_factory=FeatureFlags)
    network: NetworkConfig = field(default_factory=NetworkConfig)

    def chain(self) -> List[SanitizerSpec]:
        """Return the sanitizer chain to try for a story."""
        chain = active_chain(self.sanitizers)
        if not chain and self.features.use_fivefilters_on_save_open:
            chain = [SanitizerSpec(type="fivefilters")]
        return chain

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResolverConfig":
        sanitizers = [
            SanitizerSpec.from_dict(entry)
            for entry in data.get("sanitizers") or []
            if isinstance(entry, Mapping)
        ]
        features_data = data.get("features") or {}
        features = FeatureFlags(
            **{
                key: value is True
                for key, value in features_data.items()
                if key in FeatureFlags.__dataclass_fields__
            }
        )
        network_data = data.get("network") or {}
        network = NetworkConfig(
            block_timeout=float(network_data.get("block_timeout", DEFAULT_BLOCK_TIMEOUT)),
            total_timeout=float(network_data.get("total_timeout", DEFAULT_TOTAL_TIMEOUT)),
            user_agent=str(network_data.get("user_agent") or DEFAULT_USER_AGENT),
        )
        return cls(sanitizers=sanitizers, features=features, network=network)


def load_config(path: Optional[Path] = None) -> ResolverConfig:
    """Load configuration from ``path`` or the ``STORYFETCH_CONFIG`` override."""
    if path is None:
        override = os.getenv(CONFIG_ENV_VAR)
        if not override:
            return ResolverConfig()
        path = Path(override).expanduser()
    if not path.exists():
        logger.warning("Config file %s does not exist; using defaults", path)
        return ResolverConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return ResolverConfig.from_dict(data)
