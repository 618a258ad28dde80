"""Notification channel collaborator.

Notifications are fire-and-forget from the moderation engine's point of
view: :meth:`NotificationStore.notify` never raises, it logs.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Optional

from workvoice.moderation.models import NotificationType, to_iso, utcnow
from workvoice.moderation.storage import JsonCollection

logger = logging.getLogger(__name__)


class NotificationStore:
    """File-based inbox under ``<data_dir>/notifications/notifications.json``."""

    def __init__(self, base_dir: str | Path, *, lock_timeout: float = 5.0) -> None:
        self._notifications = JsonCollection(
            Path(base_dir) / "notifications.json", lock_timeout=lock_timeout
        )

    def send(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Store a notification; raises on storage failure."""
        note = {
            "id": uuid.uuid4().hex,
            "user_id": user_id,
            "type": NotificationType(type).value,
            "title": title,
            "message": message,
            "metadata": metadata or {},
            "read": False,
            "created_at": to_iso(utcnow()),
        }
        return self._notifications.append(note)

    def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[dict]:
        """Best-effort :meth:`send`: failures are logged and swallowed."""
        try:
            return self.send(user_id, type, title, message, metadata)
        except Exception:
            logger.warning("Notification to %s (%s) failed", user_id, type, exc_info=True)
            return None

    def for_user(self, user_id: str, unread_only: bool = False) -> list[dict]:
        notes = self._notifications.find(lambda d: d.get("user_id") == user_id)
        if unread_only:
            notes = [n for n in notes if not n.get("read")]
        notes.sort(key=lambda n: n.get("created_at", ""), reverse=True)
        return notes
