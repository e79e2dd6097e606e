"""
vibechecc.services.notification_service — Fire-and-Forget Notifications
========================================================================

The economy tells rating authors when they were boosted or dampened, but
delivery belongs to another system.  Senders are registered here; by
default the only one writes a log line.  A failing sender is logged and
skipped, so a delivery problem never fails or rolls back a vote (votes
are already committed by the time :func:`notify` runs).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Sender = Callable[[str, str, dict[str, Any]], None]


def _log_sender(recipient: str, kind: str, payload: dict[str, Any]) -> None:
    logger.info("Notify %s: %s %s", recipient, kind, payload)


_senders: list[Sender] = [_log_sender]
_enabled = True


def register_sender(sender: Sender) -> None:
    """Add a delivery callable ``sender(recipient, kind, payload)``."""
    if sender not in _senders:
        _senders.append(sender)


def unregister_sender(sender: Sender) -> None:
    if sender in _senders:
        _senders.remove(sender)


def set_enabled(enabled: bool) -> None:
    """Globally switch notifications on or off (``notifications_enabled``)."""
    global _enabled
    _enabled = enabled


def notify(recipient: str, kind: str, payload: dict[str, Any]) -> None:
    """Hand one notification to every registered sender."""
    if not _enabled:
        return
    for sender in list(_senders):
        try:
            sender(recipient, kind, payload)
        except Exception:
            logger.exception("Notification sender %r failed for %s", sender, kind)
