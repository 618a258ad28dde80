"""Report store: intake, de-duplication and moderator-facing listings."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Callable, Optional

from workvoice.auth.models import Role
from workvoice.moderation.audit import AuditEmitter
from workvoice.moderation.errors import (
    DuplicateReport,
    ModerationError,
    NotFound,
    Unauthorized,
    ValidationError,
)
from workvoice.moderation.identity import IdentityGuard
from workvoice.moderation.models import (
    DEFAULT_RETENTION_YEARS,
    LEGAL_HOLD_REASONS,
    LEGAL_HOLD_RETENTION_YEARS,
    REASON_PRIORITY,
    ActivityType,
    ContentReport,
    ContentType,
    ModerationHistory,
    NotificationType,
    Priority,
    ReportDetail,
    ReportReason,
    ReportStatus,
    ReportSummary,
    to_iso,
    utcnow,
)
from workvoice.moderation.storage import JsonCollection

if TYPE_CHECKING:
    from workvoice.auth.store import UserStore
    from workvoice.content.store import ContentStore
    from workvoice.notifications.store import NotificationStore

logger = logging.getLogger(__name__)

HistoryProvider = Callable[[str, str], ModerationHistory]


def _parse_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field_name} '{value}' (expected one of: {allowed})") from None


class ReportStore:
    """Create and query :class:`ContentReport` records."""

    def __init__(
        self,
        reports: JsonCollection,
        content: "ContentStore",
        users: "UserStore",
        guard: IdentityGuard,
        notifier: "NotificationStore",
        audit: AuditEmitter,
        *,
        page_size: int = 100,
        admin_page_size: int = 200,
        history_provider: Optional[HistoryProvider] = None,
    ) -> None:
        self._reports = reports
        self._content = content
        self._users = users
        self._guard = guard
        self._notifier = notifier
        self._audit = audit
        self.page_size = page_size
        self.admin_page_size = admin_page_size
        self.history_provider = history_provider

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def create_report(
        self,
        content_type: str,
        content_id: str,
        reason: str,
        description: str,
        reporter_id: str,
        company_id: str,
    ) -> ContentReport:
        """File a report. One report per (content, reporter), ever."""
        content_type = _parse_enum(ContentType, content_type, "content type")
        reason = _parse_enum(ReportReason, reason, "reason")
        description = (description or "").strip()
        if reason is ReportReason.other and not description:
            raise ValidationError("A description is required when the reason is 'other'")

        content = self._content.get(content_type, content_id)
        if content is None:
            raise NotFound(content_type.value, content_id)
        if content.company_id != company_id:
            raise Unauthorized("Content belongs to a different company")

        legal_hold = reason in LEGAL_HOLD_REASONS
        report = ContentReport(
            id=uuid.uuid4().hex,
            content_type=content_type,
            content_id=content_id,
            reason=reason,
            description=description,
            reporter_id=reporter_id,
            company_id=company_id,
            content_preview=content.preview,
            priority=REASON_PRIORITY.get(reason, Priority.medium),
            legal_hold=legal_hold,
            retention_years=LEGAL_HOLD_RETENTION_YEARS if legal_hold else DEFAULT_RETENTION_YEARS,
        )
        if content.is_anonymous:
            report.content_author_token = self._guard.seal_author(content.author_id)
        else:
            report.content_author_id = content.author_id

        with self._reports.transaction() as rows:
            if any(
                r.get("content_id") == content_id and r.get("reporter_id") == reporter_id
                for r in rows
            ):
                raise DuplicateReport(content_id)
            rows.append(report.to_dict())

        logger.info("Report %s filed on %s %s", report.id, content_type.value, content_id)

        try:
            self._content.increment_report_count(content_type, content_id)
        except (ModerationError, OSError):
            # Derived counter; the report itself is durable.
            logger.warning("Could not bump report count on %s", content_id, exc_info=True)

        self._audit.emit(
            ActivityType.report_created,
            actor_user_id=reporter_id,
            company_id=company_id,
            report_id=report.id,
            content_type=content_type.value,
            content_id=content_id,
            metadata={"reason": reason.value, "description": description},
        )
        self._notify_admins(report)
        return report

    def _notify_admins(self, report: ContentReport) -> None:
        try:
            admins = self._users.list_users(
                company_id=report.company_id, roles=(Role.company_admin, Role.hr)
            )
        except (ModerationError, OSError):
            logger.warning("Could not look up admins for company %s", report.company_id, exc_info=True)
            return
        for admin in admins:
            self._notifier.notify(
                admin.id,
                NotificationType.content_reported,
                "New Content Report",
                f"A {report.content_type.value} has been reported and needs review.",
                {"report_id": report.id, "content_type": report.content_type.value},
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def sealed_report_ids(self) -> set[str]:
        """Ids of reports whose content author is sealed (anonymous content)."""
        return {r["id"] for r in self._reports.find(lambda d: bool(d.get("content_author_token")))}

    def load(self, report_id: str) -> ContentReport:
        """The raw report, including internal identity fields."""
        row = self._reports.get(report_id)
        if row is None:
            raise NotFound("report", report_id)
        return ContentReport.from_dict(row)

    def count_for_content(self, content_id: str) -> int:
        return len(self._reports.find(lambda d: d.get("content_id") == content_id))

    def get_report(self, report_id: str) -> ReportDetail:
        report = self.load(report_id)
        content = self._content.get(report.content_type, report.content_id)
        history = None
        # Anonymous authors keep their history out of the moderator's view.
        if report.content_author_id and self.history_provider is not None:
            history = self.history_provider(report.content_author_id, report.company_id)
        return ReportDetail(
            report=report,
            total_reports_for_content=self.count_for_content(report.content_id),
            content_author_name=self._guard.resolve_author(content),
            reporter_display_name=self._guard.resolve_reporter(report),
            author_history=history,
        )

    def list_reports(
        self, company_id: str, status: Optional[str] = None
    ) -> list[ReportSummary]:
        """A company's reports, newest first, capped at ``page_size``."""
        return self._list(
            lambda d: d.get("company_id") == company_id, status, self.page_size
        )

    def list_all_reports(self, status: Optional[str] = None) -> list[ReportSummary]:
        """Cross-tenant listing for super admins."""
        return self._list(lambda d: True, status, self.admin_page_size)

    def _list(self, predicate, status: Optional[str], limit: int) -> list[ReportSummary]:
        status_value = _parse_enum(ReportStatus, status, "status").value if status else None
        rows = self._reports.all()
        counts: dict[str, int] = {}
        for r in rows:
            counts[r.get("content_id", "")] = counts.get(r.get("content_id", ""), 0) + 1

        selected = [
            r
            for r in rows
            if predicate(r) and (status_value is None or r.get("status") == status_value)
        ]
        selected.sort(key=lambda d: d.get("created_at", ""), reverse=True)
        return [self._summarize(ContentReport.from_dict(r), counts) for r in selected[:limit]]

    def _summarize(self, report: ContentReport, counts: dict[str, int]) -> ReportSummary:
        content = self._content.get(report.content_type, report.content_id)
        return ReportSummary(
            id=report.id,
            content_type=report.content_type.value,
            content_id=report.content_id,
            reason=report.reason.value,
            description=report.description,
            status=report.status.value,
            company_id=report.company_id,
            content_preview=report.content_preview,
            content_author_name=self._guard.resolve_author(content),
            reporter_display_name=self._guard.resolve_reporter(report),
            priority=report.priority.value,
            legal_hold=report.legal_hold,
            action_taken=report.action_taken.value if report.action_taken else "",
            escalated=report.is_escalated,
            total_reports_for_content=counts.get(report.content_id, 0),
            created_at=report.created_at,
            updated_at=report.updated_at,
        )

    def stats(self, company_id: str) -> dict[str, int]:
        rows = self._reports.find(lambda d: d.get("company_id") == company_id)
        stats = {"total_reports": len(rows)}
        for status in ReportStatus:
            stats[f"{status.value}_reports"] = sum(1 for r in rows if r.get("status") == status.value)
        return stats

    # ------------------------------------------------------------------
    # Workflow writes
    # ------------------------------------------------------------------

    def transition(
        self,
        report_id: str,
        check: Callable[[ContentReport], None],
        **changes,
    ) -> ContentReport:
        """Atomically run *check* on the current report, then apply *changes*.

        *check* raises to veto the write; nothing is persisted in that case.
        """
        with self._reports.transaction() as rows:
            for row in rows:
                if row.get("id") != report_id:
                    continue
                check(ContentReport.from_dict(row))
                row.update(changes)
                row["updated_at"] = to_iso(utcnow())
                return ContentReport.from_dict(row)
        raise NotFound("report", report_id)
