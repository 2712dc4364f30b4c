"""
agora.config — YAML Configuration Loader
=========================================

**Why this file exists:**
This module reads ``config.yaml`` for **soft** settings (page sizes,
cascade batching, notification delivery).  Secrets and database URLs stay
in the environment (``.env``) and are read where the engines are built.

Usage::

    from agora.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.default_page_size)     # 10
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AgoraConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so a missing file still yields a usable
    configuration for development and tests.
    """

    # Identity
    community_name: str = "Agora"

    # Listings
    default_page_size: int = 10
    max_page_size: int = 100
    mention_candidate_limit: int = 50
    max_mentions_per_item: int = 50

    # Cascading deletes
    cascade_batch_size: int = 500
    cascade_retry_attempts: int = 3

    # Notification fanout
    notification_workers: int = 4
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 5.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AgoraConfig:
    """Read *path* and return an :class:`AgoraConfig` instance.

    A missing file is not an error: the defaults are returned.  Unknown
    keys are ignored so older config files keep working.

    Raises
    ------
    ValueError
        If a numeric setting cannot be converted.
    """
    config_path = Path(path)
    if not config_path.exists():
        return AgoraConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = AgoraConfig()
    return AgoraConfig(
        community_name=raw.get("community_name", defaults.community_name),
        default_page_size=int(raw.get("default_page_size", defaults.default_page_size)),
        max_page_size=int(raw.get("max_page_size", defaults.max_page_size)),
        mention_candidate_limit=int(
            raw.get("mention_candidate_limit", defaults.mention_candidate_limit)
        ),
        max_mentions_per_item=int(
            raw.get("max_mentions_per_item", defaults.max_mentions_per_item)
        ),
        cascade_batch_size=int(raw.get("cascade_batch_size", defaults.cascade_batch_size)),
        cascade_retry_attempts=int(
            raw.get("cascade_retry_attempts", defaults.cascade_retry_attempts)
        ),
        notification_workers=int(
            raw.get("notification_workers", defaults.notification_workers)
        ),
        notification_webhook_url=raw.get("notification_webhook_url") or None,
        notification_timeout_seconds=float(
            raw.get("notification_timeout_seconds", defaults.notification_timeout_seconds)
        ),
    )


_active: AgoraConfig | None = None


def get_config() -> AgoraConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _active
    if _active is None:
        _active = load_config()
    return _active


def set_config(cfg: AgoraConfig) -> None:
    """Replace the process-wide configuration (used at startup and in tests)."""
    global _active
    _active = cfg
