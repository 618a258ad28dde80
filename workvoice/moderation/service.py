"""Composition root for the moderation engine.

:class:`ModerationService` wires every component from a
:class:`~workvoice.config.Settings` instance and is the single API used by
the REST layer, the CLI and the evidence assembler.

Storage layout under ``settings.data_dir``::

    reports.json
    strikes.json
    restrictions.json
    moderation_activities/<YYYY-MM-DD>.jsonl
    auth/users.json, auth/sessions.json
    content/posts.json, content/comments.json
    notifications/notifications.json
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from workvoice.auth.models import Role, User
from workvoice.auth.permissions import require_company_access, require_moderator
from workvoice.auth.store import UserStore
from workvoice.config import Settings
from workvoice.content.store import ContentStore
from workvoice.moderation.audit import AuditEmitter
from workvoice.moderation.identity import IdentityGuard
from workvoice.moderation.models import (
    ANONYMOUS_AUTHOR,
    ANONYMOUS_REPORTER,
    ActivityType,
    ContentReport,
    ModerationActivity,
    ModerationHistory,
    ReportDetail,
    ReportSummary,
    RestrictionStatus,
    UserRestriction,
)
from workvoice.moderation.reports import ReportStore
from workvoice.moderation.restrictions import RestrictionEnforcer
from workvoice.moderation.storage import JsonCollection
from workvoice.moderation.strikes import StrikeLedger
from workvoice.moderation.workflow import ModerationWorkflow
from workvoice.notifications.store import NotificationStore

logger = logging.getLogger(__name__)


class ModerationService:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        data_dir = self.settings.data_dir
        data_dir.mkdir(parents=True, exist_ok=True)

        def collection(name: str) -> JsonCollection:
            return JsonCollection(
                data_dir / name,
                lock_timeout=self.settings.store_lock_timeout,
                retry_backoff=self.settings.store_retry_backoff,
            )

        lock_timeout = self.settings.store_lock_timeout
        self.users = UserStore(data_dir / "auth", lock_timeout=lock_timeout)
        self.content = ContentStore(data_dir / "content", lock_timeout=lock_timeout)
        self.notifications = NotificationStore(data_dir / "notifications", lock_timeout=lock_timeout)

        self.guard = IdentityGuard(self.settings, self.users)
        self.audit = AuditEmitter(
            data_dir / "moderation_activities",
            alert_threshold=self.settings.audit_failure_alert_threshold,
        )

        strikes = collection("strikes.json")
        self.enforcer = RestrictionEnforcer(
            collection("restrictions.json"),
            strikes,
            self.users,
            self.notifications,
            self.audit,
            restriction_days=self.settings.restriction_days,
            suspension_days=self.settings.suspension_days,
        )
        self.ledger = StrikeLedger(strikes, self.enforcer, self.notifications, self.audit)
        self.reports = ReportStore(
            collection("reports.json"),
            self.content,
            self.users,
            self.guard,
            self.notifications,
            self.audit,
            page_size=self.settings.report_page_size,
            admin_page_size=self.settings.admin_report_page_size,
            history_provider=self.moderation_history,
        )
        self.workflow = ModerationWorkflow(
            self.reports,
            self.content,
            self.ledger,
            self.enforcer,
            self.guard,
            self.users,
            self.notifications,
            self.audit,
        )
        logger.debug("Moderation service ready (data_dir=%s)", data_dir)

    # ------------------------------------------------------------------
    # Reports
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
        return self.reports.create_report(
            content_type, content_id, reason, description, reporter_id, company_id
        )

    def get_report(self, report_id: str) -> ReportDetail:
        return self.reports.get_report(report_id)

    def list_reports(self, company_id: str, status: Optional[str] = None) -> list[ReportSummary]:
        return self.reports.list_reports(company_id, status)

    def list_all_reports(self, status: Optional[str] = None) -> list[ReportSummary]:
        return self.reports.list_all_reports(status)

    def review(
        self,
        report_id: str,
        action: str,
        actor: User,
        moderator_notes: str = "",
        violation_type: str = "",
        explanation: str = "",
    ) -> ContentReport:
        return self.workflow.review(
            report_id,
            action,
            actor,
            moderator_notes=moderator_notes,
            violation_type=violation_type,
            explanation=explanation,
        )

    def stats(self, company_id: str) -> dict[str, int]:
        stats = self.reports.stats(company_id)
        stats["total_strikes_issued"] = self.ledger.count_for_company(company_id)
        return stats

    # ------------------------------------------------------------------
    # Restrictions
    # ------------------------------------------------------------------

    def check_restrictions(
        self, user_id: str, company_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> RestrictionStatus:
        return self.enforcer.check_active(user_id, company_id, now)

    def ensure_can_post(
        self, user_id: str, company_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> None:
        self.enforcer.ensure_can_post(user_id, company_id, now)

    def lift_restriction(self, restriction_id: str, actor: User) -> UserRestriction:
        """Lift a restriction early. Moderators of the owning company only."""
        require_moderator(actor)
        restriction = self.enforcer.get(restriction_id)
        require_company_access(actor, restriction.company_id)
        return self.enforcer.lift(restriction_id, actor.id)

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def moderation_history(
        self, user_id: str, company_id: Optional[str] = None
    ) -> ModerationHistory:
        return ModerationHistory(
            user_id=user_id,
            strikes=self.ledger.strikes_for(user_id, company_id),
            active_restrictions=self.enforcer.check_active(user_id, company_id).restrictions,
        )

    def audit_trail(self, report_id: str) -> list[ModerationActivity]:
        self.reports.load(report_id)
        return self.audit.trail(report_id)

    def export_trail(
        self, report_id: str, fmt: str = "json", *, redact_reporter: bool = False
    ) -> str:
        self.reports.load(report_id)
        return self.audit.export(report_id, fmt, redact_reporter=redact_reporter)

    def activity_log(
        self,
        company_id: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ModerationActivity]:
        return self.audit.activity_log(
            company_id, user_id=user_id, limit=limit or self.settings.activity_page_size
        )

    def redact_for(
        self, activities: Iterable[ModerationActivity], viewer: User
    ) -> list[ModerationActivity]:
        """Copies of *activities* with the identities *viewer* may not see masked.

        Below super admin, the actor of ``report_created`` becomes the
        anonymous reporter, and the target of any strike or restriction
        tied to anonymous content becomes the anonymous author.
        """
        activities = list(activities)
        if viewer.role is Role.super_admin:
            return activities

        sealed_reports = self.reports.sealed_report_ids()
        sealed_strikes = self.ledger.strike_ids_for_reports(sealed_reports)
        sealed_restrictions = self.enforcer.restriction_ids_for_strikes(sealed_strikes)

        visible = []
        for a in activities:
            actor = a.actor_user_id
            metadata = dict(a.metadata)
            if a.activity_type is ActivityType.report_created:
                actor = ANONYMOUS_REPORTER
            sealed = (
                a.report_id in sealed_reports
                or metadata.get("strike_id") in sealed_strikes
                or metadata.get("restriction_id") in sealed_restrictions
            )
            if sealed and "target_user_id" in metadata:
                metadata["target_user_id"] = ANONYMOUS_AUTHOR
            visible.append(replace(a, actor_user_id=actor, metadata=metadata))
        return visible
