"""Moderation workflow engine.

A report moves ``pending -> under_review -> resolved | dismissed``.
Every review first acknowledges the report (``under_review``, reviewer,
timestamp, ``report_reviewed`` audit) and only then applies the chosen
action, so the audit trail always shows both steps. ``escalate`` keeps the
report under review and marks it for a super admin.

Transition table::

    action              from                    to            side effects
    dismiss             pending/under_review    dismissed     report_dismissed
    remove_content      pending/under_review    resolved      content removed
    remove_and_warn     pending/under_review    resolved      removed + next strike
    escalate            pending/under_review    under_review  super admins notified
    remove_and_suspend  pending/under_review    resolved      removed + strike 3 + 30d suspension

Closed reports reject every action with :class:`InvalidTransition`.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from workvoice.auth.models import Role, User
from workvoice.auth.permissions import require_company_access, require_moderator
from workvoice.moderation.audit import AuditEmitter
from workvoice.moderation.errors import InvalidTransition, ModerationError, NotFound, Unauthorized
from workvoice.moderation.identity import IdentityGuard
from workvoice.moderation.models import (
    ActivityType,
    ContentReport,
    ModerationAction,
    NotificationType,
    ReportStatus,
    StrikeContext,
    StrikeLevel,
    to_iso,
    utcnow,
)
from workvoice.moderation.reports import ReportStore
from workvoice.moderation.restrictions import RestrictionEnforcer
from workvoice.moderation.strikes import StrikeLedger

if TYPE_CHECKING:
    from workvoice.auth.store import UserStore
    from workvoice.content.store import ContentStore
    from workvoice.notifications.store import NotificationStore

logger = logging.getLogger(__name__)

ESCALATION_TARGET = "super_admin"

# report id -> [lock, number of reviews holding or waiting for it]
_review_locks: dict[str, list] = {}
_review_locks_guard = threading.Lock()


@contextmanager
def _reviewing(report_id: str) -> Iterator[None]:
    """Serialize reviews of one report inside this process."""
    with _review_locks_guard:
        entry = _review_locks.setdefault(report_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _review_locks_guard:
            entry[1] -= 1
            if not entry[1]:
                del _review_locks[report_id]


def _parse_action(action: str | ModerationAction) -> ModerationAction:
    try:
        return ModerationAction(action)
    except ValueError:
        raise InvalidTransition(f"Invalid action type: {action}") from None


class ModerationWorkflow:
    """Reviews reports and dispatches moderation actions."""

    def __init__(
        self,
        reports: ReportStore,
        content: "ContentStore",
        ledger: StrikeLedger,
        enforcer: RestrictionEnforcer,
        guard: IdentityGuard,
        users: "UserStore",
        notifier: "NotificationStore",
        audit: AuditEmitter,
    ) -> None:
        self._reports = reports
        self._content = content
        self._ledger = ledger
        self._enforcer = enforcer
        self._guard = guard
        self._users = users
        self._notifier = notifier
        self._audit = audit

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def review(
        self,
        report_id: str,
        action: str | ModerationAction,
        actor: User,
        *,
        moderator_notes: str = "",
        violation_type: str = "",
        explanation: str = "",
    ) -> ContentReport:
        """Acknowledge the report, then apply *action*. Returns the final report."""
        action = _parse_action(action)
        violation_type = violation_type.strip()
        explanation = explanation.strip()

        with _reviewing(report_id):
            report = self._reports.load(report_id)
            self._authorize(report, actor)

            def eligible(current: ContentReport) -> None:
                if not current.status.is_open:
                    raise InvalidTransition(
                        f"Report {report_id} is already {current.status.value}"
                    )
                if action is ModerationAction.escalate and current.is_escalated:
                    raise InvalidTransition(f"Report {report_id} is already escalated")
                if current.is_escalated and actor.role is not Role.super_admin:
                    raise Unauthorized("Escalated reports can only be actioned by a super admin")
                if action.requires_violation and not (violation_type and explanation):
                    raise InvalidTransition(
                        f"'{action.value}' requires a violation type and an explanation"
                    )

            report = self._reports.transition(
                report_id,
                eligible,
                status=ReportStatus.under_review.value,
                reviewed_by=actor.id,
                reviewed_at=to_iso(utcnow()),
                moderator_notes=moderator_notes,
            )
            self._emit(
                ActivityType.report_reviewed,
                report,
                actor,
                {"action_type": action.value, "moderator_notes": moderator_notes},
            )

            handler = {
                ModerationAction.dismiss: self._dismiss,
                ModerationAction.remove_content: self._remove_content,
                ModerationAction.remove_and_warn: self._remove_and_warn,
                ModerationAction.escalate: self._escalate,
                ModerationAction.remove_and_suspend: self._remove_and_suspend,
            }[action]
            final = handler(report, actor, moderator_notes, violation_type, explanation)

        logger.info(
            "Report %s reviewed by %s: %s -> %s",
            report_id,
            actor.id,
            action.value,
            final.status.value,
        )
        return final

    @staticmethod
    def _authorize(report: ContentReport, actor: User) -> None:
        require_moderator(actor)
        require_company_access(actor, report.company_id)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _dismiss(self, report, actor, notes, violation_type, explanation) -> ContentReport:
        final = self._finish(report, ReportStatus.dismissed, ModerationAction.dismiss)
        self._emit(ActivityType.report_dismissed, final, actor, {"notes": notes})
        return final

    def _remove_content(self, report, actor, notes, violation_type, explanation) -> ContentReport:
        self._take_down(report, actor, "Content policy violation")
        final = self._finish(report, ReportStatus.resolved, ModerationAction.remove_content)
        self._emit(
            ActivityType.content_removed, final, actor, {"issue_strike": False, "notes": notes}
        )
        return final

    def _remove_and_warn(self, report, actor, notes, violation_type, explanation) -> ContentReport:
        self._take_down(report, actor, violation_type)
        self._emit(
            ActivityType.content_removed,
            report,
            actor,
            {"issue_strike": True, "notes": notes, "violation_type": violation_type},
        )
        author_id = self._guard.enforcement_author_id(report)
        if not author_id:
            logger.warning("Report %s has no resolvable author; no strike issued", report.id)
        elif self._ledger.strike_for_report(report.id) is None:
            self._ledger.issue_strike(
                author_id,
                report.company_id,
                self._strike_context(report, actor, violation_type, explanation),
            )
        # The report closes only once the strike is durable.
        return self._finish(report, ReportStatus.resolved, ModerationAction.remove_and_warn)

    def _escalate(self, report, actor, notes, violation_type, explanation) -> ContentReport:
        final = self._reports.transition(
            report.id,
            self._expect_under_review,
            action_taken=ModerationAction.escalate.value,
            escalated_to=ESCALATION_TARGET,
            escalated_by=actor.id,
            escalated_at=to_iso(utcnow()),
        )
        self._notify_escalation(final)
        self._emit(ActivityType.report_escalated, final, actor, {"notes": notes})
        return final

    def _remove_and_suspend(
        self, report, actor, notes, violation_type, explanation
    ) -> ContentReport:
        self._take_down(report, actor, violation_type or "Severe violation")
        self._emit(
            ActivityType.content_removed,
            report,
            actor,
            {"issue_strike": True, "notes": notes, "violation_type": violation_type},
        )
        author_id = self._guard.enforcement_author_id(report)
        if not author_id:
            logger.warning("Report %s has no resolvable author; nobody suspended", report.id)
        elif self._ledger.strike_for_report(report.id) is None:
            strike = self._ledger.issue_strike_direct(
                author_id,
                report.company_id,
                StrikeLevel.THIRD,
                self._strike_context(report, actor, violation_type, explanation),
            )
            try:
                self._enforcer.suspend(
                    author_id,
                    report.company_id,
                    reason=violation_type,
                    actor_id=actor.id,
                    strike_id=strike.id,
                    report_id=report.id,
                    content_type=report.content_type.value,
                    content_id=report.content_id,
                )
            except (ModerationError, OSError):
                logger.error(
                    "Strike %s is recorded but the suspension was not applied; "
                    "it will be restored on the next restriction check",
                    strike.id,
                    exc_info=True,
                )
        return self._finish(report, ReportStatus.resolved, ModerationAction.remove_and_suspend)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _take_down(self, report: ContentReport, actor: User, reason: str) -> None:
        try:
            self._content.mark_removed(
                report.content_type, report.content_id, reason=reason, actor_id=actor.id
            )
        except NotFound:
            logger.warning(
                "%s %s no longer exists; treating it as removed",
                report.content_type.value,
                report.content_id,
            )

    @staticmethod
    def _expect_under_review(current: ContentReport) -> None:
        if current.status is not ReportStatus.under_review:
            raise InvalidTransition(f"Report {current.id} is no longer under review")

    def _finish(
        self, report: ContentReport, status: ReportStatus, action: ModerationAction
    ) -> ContentReport:
        return self._reports.transition(
            report.id,
            self._expect_under_review,
            status=status.value,
            action_taken=action.value,
        )

    @staticmethod
    def _strike_context(
        report: ContentReport, actor: User, violation_type: str, explanation: str
    ) -> StrikeContext:
        return StrikeContext(
            content_type=report.content_type.value,
            content_id=report.content_id,
            report_id=report.id,
            violation_type=violation_type,
            explanation=explanation,
            moderator_id=actor.id,
        )

    def _notify_escalation(self, report: ContentReport) -> None:
        try:
            super_admins = self._users.list_users(roles=(Role.super_admin,))
        except (ModerationError, OSError):
            logger.warning("Could not look up super admins for escalation", exc_info=True)
            return
        for admin in super_admins:
            self._notifier.notify(
                admin.id,
                NotificationType.content_reported,
                "Report Escalated",
                "A content report has been escalated and requires your review.",
                {"report_id": report.id, "escalated": True},
            )

    def _emit(self, activity_type: ActivityType, report: ContentReport, actor: User, metadata: dict):
        self._audit.emit(
            activity_type,
            actor_user_id=actor.id,
            company_id=report.company_id,
            report_id=report.id,
            content_type=report.content_type.value,
            content_id=report.content_id,
            metadata=metadata,
        )
