"""
vibechecc.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **infrastructure-only** settings (app identity,
API port, CORS, notification switch).  Every economy tuning value (starter
balance, transfer amounts, dampen quota, protection thresholds, karma
deltas) lives in the ``settings`` database table and is read through
:class:`~vibechecc.engine.cache.ConfigCache`.

Secrets (``DATABASE_URL``, ``JWT_SECRET``) come from the environment and
are never read from this file.

Usage::

    from vibechecc.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_name)          # "vibechecc"
    print(cfg.api_port)          # 8000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure only.
# Economy tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class VibecheccConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str

    # API
    api_port: int

    # Optional
    cors_origins: tuple[str, ...] = field(default_factory=tuple)
    notifications_enabled: bool = True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> VibecheccConfig:
    """Read *path* and return a :class:`VibecheccConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    origins = raw.get("cors_origins") or []
    if isinstance(origins, str):
        origins = [o.strip() for o in origins.split(",") if o.strip()]

    return VibecheccConfig(
        app_name=raw["app_name"],
        api_port=int(raw["api_port"]),
        cors_origins=tuple(str(o).rstrip("/") for o in origins),
        notifications_enabled=bool(raw.get("notifications_enabled", True)),
    )
