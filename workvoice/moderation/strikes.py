"""Strike ledger: escalating, append-only violation records.

A user's strike level inside a company is ``min(prior strikes + 1, 3)``.
Strikes are never edited, deleted or reset.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Optional

from workvoice.moderation.audit import AuditEmitter
from workvoice.moderation.errors import ModerationError
from workvoice.moderation.models import (
    STRIKE_POLICIES,
    ActivityType,
    NotificationType,
    StrikeContext,
    StrikeLevel,
    UserStrike,
)
from workvoice.moderation.restrictions import RestrictionEnforcer
from workvoice.moderation.storage import JsonCollection

if TYPE_CHECKING:
    from workvoice.notifications.store import NotificationStore

logger = logging.getLogger(__name__)


class StrikeLedger:
    def __init__(
        self,
        strikes: JsonCollection,
        enforcer: RestrictionEnforcer,
        notifier: "NotificationStore",
        audit: AuditEmitter,
    ) -> None:
        self._strikes = strikes
        self._enforcer = enforcer
        self._notifier = notifier
        self._audit = audit

    @staticmethod
    def _new_strike(user_id: str, company_id: str, level: int, context: StrikeContext) -> UserStrike:
        return UserStrike(
            id=uuid.uuid4().hex,
            user_id=user_id,
            company_id=company_id,
            strike_level=level,
            content_type=context.content_type,
            content_id=context.content_id,
            report_id=context.report_id,
            violation_type=context.violation_type,
            explanation=context.explanation,
            issued_by=context.moderator_id,
        )

    def issue_strike(self, user_id: str, company_id: str, context: StrikeContext) -> UserStrike:
        """Record the next strike and apply its restriction.

        Counting and appending happen in one transaction so two concurrent
        strikes cannot both land on the same level. Once the strike is
        durable, a failure to apply the restriction is logged rather than
        raised; ``RestrictionEnforcer.check_active`` restores it later.
        """
        with self._strikes.transaction() as rows:
            prior = sum(
                1 for r in rows if r.get("user_id") == user_id and r.get("company_id") == company_id
            )
            strike = self._new_strike(
                user_id, company_id, min(prior + 1, StrikeLevel.THIRD), context
            )
            rows.append(strike.to_dict())

        logger.info(
            "Issued strike %d to user %s in company %s (report %s)",
            strike.strike_level,
            user_id,
            company_id,
            context.report_id or "-",
        )
        policy = STRIKE_POLICIES[strike.strike_level]
        self._notifier.notify(
            user_id,
            NotificationType.strike_received,
            f"Strike {strike.strike_level} - {policy.label}",
            f"Your {context.content_type or 'content'} violated community guidelines: "
            f"{context.violation_type}. {policy.consequence}",
            {
                "strike_level": strike.strike_level,
                "violation_type": context.violation_type,
                "explanation": context.explanation,
                "content_type": context.content_type,
            },
        )
        self._audit.emit(
            ActivityType.strike_issued,
            actor_user_id=context.moderator_id,
            company_id=company_id,
            report_id=context.report_id,
            content_type=context.content_type,
            content_id=context.content_id,
            metadata={
                "target_user_id": user_id,
                "strike_id": strike.id,
                "strike_level": strike.strike_level,
                "violation_type": context.violation_type,
            },
        )

        try:
            self._enforcer.apply_for_strike_level(
                user_id,
                company_id,
                strike.strike_level,
                strike_id=strike.id,
                report_id=context.report_id,
                actor_id=context.moderator_id or "system",
            )
        except (ModerationError, OSError):
            logger.error(
                "Strike %s is recorded but its restriction was not applied; "
                "it will be restored on the next restriction check",
                strike.id,
                exc_info=True,
            )
        return strike

    def issue_strike_direct(
        self, user_id: str, company_id: str, level: int, context: StrikeContext
    ) -> UserStrike:
        """Write *level* verbatim, skipping the increment (severe violations)."""
        strike = self._new_strike(user_id, company_id, level, context)
        self._strikes.append(strike.to_dict())
        logger.info("Issued direct strike %d to user %s in company %s", level, user_id, company_id)
        return strike

    def strikes_for(self, user_id: str, company_id: Optional[str] = None) -> list[UserStrike]:
        """The user's strikes, newest first."""
        rows = self._strikes.find(
            lambda d: d.get("user_id") == user_id
            and (company_id is None or d.get("company_id") == company_id)
        )
        rows.sort(key=lambda d: d.get("issued_at", ""), reverse=True)
        return [UserStrike.from_dict(d) for d in rows]

    def strike_count(self, user_id: str, company_id: str) -> int:
        return len(self.strikes_for(user_id, company_id))

    def strike_ids_for_reports(self, report_ids: set[str]) -> set[str]:
        return {
            d["id"] for d in self._strikes.find(lambda d: d.get("report_id") in report_ids)
        }

    def strike_for_report(self, report_id: str) -> Optional[UserStrike]:
        """The strike already issued for *report_id*, if any."""
        rows = self._strikes.find(lambda d: d.get("report_id") == report_id)
        return UserStrike.from_dict(rows[0]) if rows else None

    def count_for_company(self, company_id: str) -> int:
        return len(self._strikes.find(lambda d: d.get("company_id") == company_id))
