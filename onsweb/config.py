"""
onsweb.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for **non-secret** deployment settings (community
identity, token lifetimes, URL expiries).  Credentials and service endpoints
stay in the environment (``.env``), see ``.env.example``.

Usage::

    from onsweb.config import load_config

    cfg = load_config()              # ./config.yaml, or $ONS_CONFIG_PATH
    print(cfg.community_name)
    print(cfg.access_token_minutes)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True, slots=True)
class OnsConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    community_name: str
    frontend_url: str

    # Token lifetimes
    access_token_minutes: int = 24 * 60
    refresh_token_days: int = 30
    remember_me_days: int = 30

    # Object storage
    signed_url_seconds: int = 3600


def default_config() -> OnsConfig:
    """Config used when no YAML file is present (dev and tests)."""
    return OnsConfig(
        community_name="ONS Community",
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
    )


def load_config(path: str | Path | None = None) -> OnsConfig:
    """Read *path* and return an :class:`OnsConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$ONS_CONFIG_PATH`` or ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    explicit = path is not None or "ONS_CONFIG_PATH" in os.environ
    config_path = Path(path or os.getenv("ONS_CONFIG_PATH", "config.yaml"))
    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        return default_config()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = default_config()
    return OnsConfig(
        community_name=raw["community_name"],
        frontend_url=str(
            os.getenv("FRONTEND_URL") or raw.get("frontend_url") or defaults.frontend_url
        ).rstrip("/"),
        access_token_minutes=int(
            raw.get("access_token_minutes", defaults.access_token_minutes)
        ),
        refresh_token_days=int(raw.get("refresh_token_days", defaults.refresh_token_days)),
        remember_me_days=int(raw.get("remember_me_days", defaults.remember_me_days)),
        signed_url_seconds=int(raw.get("signed_url_seconds", defaults.signed_url_seconds)),
    )
