"""Restriction enforcer: posting restrictions and account suspensions.

Restrictions are time-boxed records. Nothing sweeps them in the
background; :meth:`RestrictionEnforcer.check_active` deactivates expired
ones as a side effect of reading, so callers must check before letting a
user post.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from workvoice.moderation.audit import AuditEmitter
from workvoice.moderation.errors import InvalidTransition, NotFound, Unauthorized
from workvoice.moderation.models import (
    ActivityType,
    NotificationType,
    RestrictionStatus,
    RestrictionType,
    StrikeLevel,
    UserRestriction,
    UserStrike,
    parse_iso,
    to_iso,
    utcnow,
)
from workvoice.moderation.storage import JsonCollection

if TYPE_CHECKING:
    from workvoice.auth.store import UserStore
    from workvoice.notifications.store import NotificationStore

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class RestrictionEnforcer:
    """Applies, expires and lifts :class:`UserRestriction` records."""

    def __init__(
        self,
        restrictions: JsonCollection,
        strikes: JsonCollection,
        users: "UserStore",
        notifier: "NotificationStore",
        audit: AuditEmitter,
        *,
        restriction_days: int = 7,
        suspension_days: int = 30,
    ) -> None:
        self._restrictions = restrictions
        self._strikes = strikes
        self._users = users
        self._notifier = notifier
        self._audit = audit
        self.restriction_days = restriction_days
        self.suspension_days = suspension_days

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def apply_for_strike_level(
        self,
        user_id: str,
        company_id: str,
        level: int,
        *,
        strike_id: str = "",
        report_id: str = "",
        actor_id: str = SYSTEM_ACTOR,
        start: Optional[datetime] = None,
    ) -> Optional[UserRestriction]:
        """Apply the consequence of reaching *level*.

        Level 1 is a warning only (the strike notification itself); level 2
        restricts posting; level 3 suspends the account.
        """
        level = StrikeLevel(level)
        if level is StrikeLevel.FIRST:
            return None
        if level is StrikeLevel.SECOND:
            return self.restrict_posting(
                user_id,
                company_id,
                reason="Strike 2 - Temporary restriction",
                strike_id=strike_id,
                report_id=report_id,
                actor_id=actor_id,
                start=start,
            )
        return self.suspend(
            user_id,
            company_id,
            reason="Strike 3 - Account suspension",
            actor_id=actor_id,
            strike_id=strike_id,
            report_id=report_id,
            start=start,
        )

    def restrict_posting(
        self,
        user_id: str,
        company_id: str,
        *,
        reason: str,
        strike_id: str = "",
        report_id: str = "",
        actor_id: str = SYSTEM_ACTOR,
        start: Optional[datetime] = None,
    ) -> UserRestriction:
        start = start or utcnow()
        restriction = self._create(
            user_id,
            company_id,
            RestrictionType.posting,
            start=start,
            days=self.restriction_days,
            reason=reason,
            strike_id=strike_id,
        )
        self._notifier.notify(
            user_id,
            NotificationType.account_restricted,
            "Posting Restricted",
            f"You cannot post or comment for {self.restriction_days} days due to repeated violations.",
            {"restriction_end": restriction.ends_at},
        )
        self._audit.emit(
            ActivityType.user_restricted,
            actor_user_id=actor_id,
            company_id=company_id,
            report_id=report_id,
            metadata={
                "target_user_id": user_id,
                "restriction_id": restriction.id,
                "restriction_type": restriction.restriction_type.value,
                "duration_days": self.restriction_days,
                "ends_at": restriction.ends_at,
            },
        )
        return restriction

    def suspend(
        self,
        user_id: str,
        company_id: str,
        *,
        reason: str,
        actor_id: str,
        strike_id: str = "",
        report_id: str = "",
        content_type: str = "",
        content_id: str = "",
        start: Optional[datetime] = None,
    ) -> UserRestriction:
        """Suspend the account for ``suspension_days`` starting at *start*."""
        start = start or utcnow()
        restriction = self._create(
            user_id,
            company_id,
            RestrictionType.full_suspension,
            start=start,
            days=self.suspension_days,
            reason=reason,
            strike_id=strike_id,
        )
        user = self._users.set_suspension(
            user_id, until=restriction.ends_at, reason=reason, suspended_by=actor_id
        )
        if user is None:
            # The restriction record still blocks posting via check_active.
            logger.warning("Suspended user %s has no account record", user_id)
        self._notifier.notify(
            user_id,
            NotificationType.account_suspended,
            "Account Suspended",
            f"Your account has been suspended for {self.suspension_days} days: {reason}",
            {"suspension_end": restriction.ends_at},
        )
        self._audit.emit(
            ActivityType.user_suspended,
            actor_user_id=actor_id,
            company_id=company_id,
            report_id=report_id,
            content_type=content_type,
            content_id=content_id,
            metadata={
                "target_user_id": user_id,
                "restriction_id": restriction.id,
                "strike_id": strike_id,
                "duration_days": self.suspension_days,
                "suspended_until": restriction.ends_at,
                "reason": reason,
            },
        )
        return restriction

    def _create(
        self,
        user_id: str,
        company_id: str,
        restriction_type: RestrictionType,
        *,
        start: datetime,
        days: int,
        reason: str,
        strike_id: str,
    ) -> UserRestriction:
        restriction = UserRestriction(
            id=uuid.uuid4().hex,
            user_id=user_id,
            company_id=company_id,
            restriction_type=restriction_type,
            started_at=to_iso(start),
            ends_at=to_iso(start + timedelta(days=days)),
            reason=reason,
            strike_id=strike_id,
        )
        self._restrictions.append(restriction.to_dict())
        logger.info(
            "Applied %s restriction %s to user %s until %s",
            restriction_type.value,
            restriction.id,
            user_id,
            restriction.ends_at,
        )
        return restriction

    # ------------------------------------------------------------------
    # Checking
    # ------------------------------------------------------------------

    def check_active(
        self,
        user_id: str,
        company_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RestrictionStatus:
        """Return the user's live restrictions, expiring stale ones first."""
        now = now or utcnow()
        self._reconcile(user_id, company_id, now)

        active: list[UserRestriction] = []
        expired: list[UserRestriction] = []
        with self._restrictions.transaction() as rows:
            for row in rows:
                if row.get("user_id") != user_id or not row.get("is_active"):
                    continue
                if company_id is not None and row.get("company_id") != company_id:
                    continue
                restriction = UserRestriction.from_dict(row)
                if restriction.expired(now):
                    row["is_active"] = False
                    restriction.is_active = False
                    expired.append(restriction)
                else:
                    active.append(restriction)

        for restriction in expired:
            self._on_expired(restriction, active, now)

        return RestrictionStatus(is_restricted=bool(active), restrictions=active)

    def ensure_can_post(
        self, user_id: str, company_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> None:
        """Raise :class:`Unauthorized` while a posting block is in force."""
        status = self.check_active(user_id, company_id, now)
        blocking = [r for r in status.restrictions if r.blocks_posting]
        if blocking:
            until = max(r.ends_at for r in blocking)
            raise Unauthorized(f"Posting is restricted until {until}")

    def _on_expired(
        self, restriction: UserRestriction, still_active: list[UserRestriction], now: datetime
    ) -> None:
        logger.info("Restriction %s for user %s expired", restriction.id, restriction.user_id)
        self._audit.emit(
            ActivityType.restriction_expired,
            actor_user_id=SYSTEM_ACTOR,
            company_id=restriction.company_id,
            metadata={
                "target_user_id": restriction.user_id,
                "restriction_id": restriction.id,
                "restriction_type": restriction.restriction_type.value,
            },
        )
        if restriction.restriction_type is RestrictionType.full_suspension and not any(
            r.restriction_type is RestrictionType.full_suspension for r in still_active
        ):
            self._release_account(restriction.user_id, now)

    def _release_account(self, user_id: str, now: datetime) -> None:
        user = self._users.get_user(user_id)
        if user is None or not user.suspended_until:
            return
        if parse_iso(user.suspended_until) <= now:
            self._users.clear_suspension(user_id)

    def _reconcile(self, user_id: str, company_id: Optional[str], now: datetime) -> None:
        """Recreate restrictions lost between a durable strike and its effect."""
        linked = {
            row.get("strike_id")
            for row in self._restrictions.find(lambda d: d.get("user_id") == user_id)
            if row.get("strike_id")
        }
        for row in self._strikes.find(lambda d: d.get("user_id") == user_id):
            strike = UserStrike.from_dict(row)
            if company_id is not None and strike.company_id != company_id:
                continue
            if strike.strike_level < StrikeLevel.SECOND or strike.id in linked:
                continue
            days = (
                self.restriction_days
                if strike.strike_level == StrikeLevel.SECOND
                else self.suspension_days
            )
            issued = parse_iso(strike.issued_at)
            if issued + timedelta(days=days) <= now:
                continue
            logger.warning(
                "Strike %s (level %d) for user %s has no restriction; restoring it",
                strike.id,
                strike.strike_level,
                user_id,
            )
            self.apply_for_strike_level(
                user_id,
                strike.company_id,
                strike.strike_level,
                strike_id=strike.id,
                report_id=strike.report_id,
                actor_id=strike.issued_by or SYSTEM_ACTOR,
                start=issued,
            )

    # ------------------------------------------------------------------
    # Lifting / listing
    # ------------------------------------------------------------------

    def lift(self, restriction_id: str, actor_id: str) -> UserRestriction:
        """Deactivate a restriction before it ends. The record is kept."""
        with self._restrictions.transaction() as rows:
            for row in rows:
                if row.get("id") != restriction_id:
                    continue
                if not row.get("is_active"):
                    raise InvalidTransition(f"Restriction {restriction_id} is not active")
                row.update(is_active=False, lifted_by=actor_id, lifted_at=to_iso(utcnow()))
                restriction = UserRestriction.from_dict(row)
                break
            else:
                raise NotFound("restriction", restriction_id)

        if restriction.restriction_type is RestrictionType.full_suspension:
            self._users.clear_suspension(restriction.user_id)
        self._audit.emit(
            ActivityType.restriction_lifted,
            actor_user_id=actor_id,
            company_id=restriction.company_id,
            metadata={
                "target_user_id": restriction.user_id,
                "restriction_id": restriction.id,
                "restriction_type": restriction.restriction_type.value,
            },
        )
        return restriction

    def restriction_ids_for_strikes(self, strike_ids: set[str]) -> set[str]:
        return {
            d["id"]
            for d in self._restrictions.find(lambda d: d.get("strike_id") in strike_ids)
        }

    def get(self, restriction_id: str) -> UserRestriction:
        row = self._restrictions.get(restriction_id)
        if row is None:
            raise NotFound("restriction", restriction_id)
        return UserRestriction.from_dict(row)

    def history(self, user_id: str, company_id: Optional[str] = None) -> list[UserRestriction]:
        """Every restriction ever applied to the user, newest first."""
        rows = self._restrictions.find(
            lambda d: d.get("user_id") == user_id
            and (company_id is None or d.get("company_id") == company_id)
        )
        rows.sort(key=lambda d: d.get("started_at", ""), reverse=True)
        return [UserRestriction.from_dict(d) for d in rows]
