"""Append-only moderation audit trail.

Every workflow transition is recorded as one :class:`ModerationActivity`
line in a daily JSONL file under ``<data_dir>/moderation_activities/``.
Appending is best-effort: a failed write is logged and counted but never
blocks the moderation action that produced it.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Optional

from workvoice.moderation.models import (
    ANONYMOUS_REPORTER,
    ActivityType,
    ModerationActivity,
    parse_iso,
)

logger = logging.getLogger(__name__)


class AuditEmitter:
    """File-based JSONL audit emitter with chain-of-custody queries."""

    def __init__(self, base_dir: Path, *, alert_threshold: int = 3) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._alert_threshold = alert_threshold
        self._lock = threading.Lock()
        self.consecutive_failures = 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _log_file_for(self, created_at: str) -> Path:
        return self._base_dir / f"{parse_iso(created_at).strftime('%Y-%m-%d')}.jsonl"

    def _append(self, activity: ModerationActivity) -> None:
        line = json.dumps(activity.to_dict(), default=str) + "\n"
        with self._lock:
            with self._log_file_for(activity.created_at).open("a", encoding="utf-8") as fh:
                fh.write(line)

    def _read_all(self) -> list[ModerationActivity]:
        """Every record in append order (files are per day, lines in order)."""
        entries: list[ModerationActivity] = []
        for path in sorted(self._base_dir.glob("*.jsonl")):
            for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
                if not line.strip():
                    continue
                try:
                    entries.append(ModerationActivity.from_dict(json.loads(line)))
                except (json.JSONDecodeError, TypeError, ValueError):
                    logger.error("Skipping unreadable audit line %s:%d", path.name, lineno)
        return entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def emit(
        self,
        activity_type: ActivityType,
        *,
        actor_user_id: str,
        company_id: str = "",
        report_id: str = "",
        content_type: str = "",
        content_id: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[ModerationActivity]:
        """Append one record. Returns it, or None when the append failed."""
        activity = ModerationActivity(
            id=uuid.uuid4().hex,
            activity_type=activity_type,
            actor_user_id=actor_user_id,
            company_id=company_id,
            report_id=report_id,
            content_type=content_type,
            content_id=content_id,
            metadata=metadata or {},
        )
        try:
            self._append(activity)
        except Exception:
            self.consecutive_failures += 1
            logger.error(
                "Audit append failed for %s (report=%s)",
                activity.activity_type.value,
                report_id or "-",
                exc_info=True,
            )
            if self.consecutive_failures >= self._alert_threshold:
                logger.critical(
                    "Audit trail has failed %d times in a row; evidence chain is incomplete",
                    self.consecutive_failures,
                )
            return None
        self.consecutive_failures = 0
        return activity

    def trail(self, report_id: str) -> list[ModerationActivity]:
        """All records for *report_id*, oldest first (chain of custody)."""
        entries = [e for e in self._read_all() if e.report_id == report_id]
        # Stable sort keeps append order for identical timestamps.
        entries.sort(key=lambda e: e.created_at)
        return entries

    def activity_log(
        self,
        company_id: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[ModerationActivity]:
        """Recent activity, newest first."""
        entries = self._read_all()
        if company_id:
            entries = [e for e in entries if e.company_id == company_id]
        if user_id:
            entries = [
                e
                for e in entries
                if e.actor_user_id == user_id or e.metadata.get("target_user_id") == user_id
            ]
        entries.reverse()
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    def export(self, report_id: str, fmt: str = "json", *, redact_reporter: bool = False) -> str:
        """Export a report's trail as ``json`` or ``csv``.

        With *redact_reporter* the actor of ``report_created`` is replaced by
        the anonymous reporter placeholder.
        """
        entries = self.trail(report_id)
        if redact_reporter:
            for e in entries:
                if e.activity_type is ActivityType.report_created:
                    e.actor_user_id = ANONYMOUS_REPORTER
        if fmt == "csv":
            lines = ["id,created_at,activity_type,actor_user_id,company_id,content_type,content_id"]
            for e in entries:
                lines.append(
                    f"{e.id},{e.created_at},{e.activity_type.value},{e.actor_user_id},"
                    f"{e.company_id},{e.content_type},{e.content_id}"
                )
            return "\n".join(lines)
        if fmt != "json":
            raise ValueError(f"Unsupported export format: {fmt}")
        return json.dumps([e.to_dict() for e in entries], indent=2, default=str)
