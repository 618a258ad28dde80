"""Data models for the Trust & Safety moderation engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Optional

ANONYMOUS_REPORTER = "Anonymous Reporter"
ANONYMOUS_AUTHOR = "Anonymous User"
UNKNOWN_AUTHOR = "Unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Serialize with fixed microsecond precision so lexical order is chronological."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ContentType(str, Enum):
    post = "post"
    comment = "comment"


class ReportReason(str, Enum):
    harassment = "harassment"
    inappropriate = "inappropriate"
    spam = "spam"
    false_info = "false_info"
    discrimination = "discrimination"
    violence = "violence"
    other = "other"


class ReportStatus(str, Enum):
    pending = "pending"
    under_review = "under_review"
    resolved = "resolved"
    dismissed = "dismissed"

    @property
    def is_open(self) -> bool:
        return self in (ReportStatus.pending, ReportStatus.under_review)


class ModerationAction(str, Enum):
    dismiss = "dismiss"
    remove_content = "remove_content"
    remove_and_warn = "remove_and_warn"
    escalate = "escalate"
    remove_and_suspend = "remove_and_suspend"

    @property
    def requires_violation(self) -> bool:
        """Actions that punish the author need a violation type and explanation."""
        return self in (ModerationAction.remove_and_warn, ModerationAction.remove_and_suspend)


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class StrikeLevel(IntEnum):
    FIRST = 1
    SECOND = 2
    THIRD = 3


class RestrictionType(str, Enum):
    posting = "posting"
    commenting = "commenting"
    full_suspension = "full_suspension"


class ActivityType(str, Enum):
    report_created = "report_created"
    report_reviewed = "report_reviewed"
    report_dismissed = "report_dismissed"
    content_removed = "content_removed"
    strike_issued = "strike_issued"
    report_escalated = "report_escalated"
    user_restricted = "user_restricted"
    user_suspended = "user_suspended"
    restriction_expired = "restriction_expired"
    restriction_lifted = "restriction_lifted"


class NotificationType(str, Enum):
    content_reported = "content_reported"
    strike_received = "strike_received"
    account_restricted = "account_restricted"
    account_suspended = "account_suspended"
    moderation = "moderation"


@dataclass(frozen=True)
class StrikePolicy:
    label: str
    consequence: str


STRIKE_POLICIES: dict[int, StrikePolicy] = {
    StrikeLevel.FIRST: StrikePolicy(
        label="Warning",
        consequence="This is a warning. Further violations will lead to restrictions.",
    ),
    StrikeLevel.SECOND: StrikePolicy(
        label="Temporary Restriction",
        consequence="You cannot post or comment for 7 days.",
    ),
    StrikeLevel.THIRD: StrikePolicy(
        label="Account Suspension",
        consequence="Your account is suspended for 30 days.",
    ),
}

REASON_PRIORITY: dict[ReportReason, Priority] = {
    ReportReason.violence: Priority.critical,
    ReportReason.harassment: Priority.high,
    ReportReason.discrimination: Priority.high,
    ReportReason.spam: Priority.low,
}

# Reports that may become legal evidence are retained longer.
LEGAL_HOLD_REASONS = frozenset(
    {ReportReason.harassment, ReportReason.discrimination, ReportReason.violence}
)
LEGAL_HOLD_RETENTION_YEARS = 7
DEFAULT_RETENTION_YEARS = 2


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class _Record:
    """Dict round-tripping shared by the persisted dataclasses."""

    @classmethod
    def from_dict(cls, d: dict[str, Any]):
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ContentReport(_Record):
    """A user-submitted flag against a post or comment."""

    id: str
    content_type: ContentType
    content_id: str
    reason: ReportReason
    reporter_id: str
    company_id: str
    description: str = ""
    status: ReportStatus = ReportStatus.pending
    content_author_id: str = ""
    content_author_token: str = ""  # set instead of the id for anonymous content
    content_preview: str = ""
    reviewed_by: str = ""
    reviewed_at: str = ""
    moderator_notes: str = ""
    action_taken: Optional[ModerationAction] = None
    escalated_to: str = ""
    escalated_by: str = ""
    escalated_at: str = ""
    priority: Priority = Priority.medium
    legal_hold: bool = False
    retention_years: int = DEFAULT_RETENTION_YEARS
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        self.content_type = ContentType(self.content_type)
        self.reason = ReportReason(self.reason)
        self.status = ReportStatus(self.status)
        self.priority = Priority(self.priority)
        if self.action_taken is not None:
            self.action_taken = ModerationAction(self.action_taken)
        if not self.created_at:
            self.created_at = to_iso(utcnow())
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def is_escalated(self) -> bool:
        return bool(self.escalated_to)


@dataclass
class UserStrike(_Record):
    """One recorded violation. Append-only."""

    id: str
    user_id: str
    company_id: str
    strike_level: int
    content_type: str = ""
    content_id: str = ""
    report_id: str = ""
    violation_type: str = ""
    explanation: str = ""
    issued_by: str = ""
    issued_at: str = ""

    def __post_init__(self) -> None:
        self.strike_level = int(StrikeLevel(self.strike_level))
        if not self.issued_at:
            self.issued_at = to_iso(utcnow())


@dataclass
class UserRestriction(_Record):
    """A time-boxed restriction. Never deleted; deactivated instead."""

    id: str
    user_id: str
    restriction_type: RestrictionType
    ends_at: str
    company_id: str = ""
    reason: str = ""
    is_active: bool = True
    started_at: str = ""
    strike_id: str = ""
    lifted_by: str = ""
    lifted_at: str = ""

    def __post_init__(self) -> None:
        self.restriction_type = RestrictionType(self.restriction_type)
        if not self.started_at:
            self.started_at = to_iso(utcnow())

    def expired(self, now: datetime) -> bool:
        return parse_iso(self.ends_at) <= now

    @property
    def blocks_posting(self) -> bool:
        return self.restriction_type in (RestrictionType.posting, RestrictionType.full_suspension)


@dataclass
class ModerationActivity(_Record):
    """One audit record. Immutable once appended."""

    id: str
    activity_type: ActivityType
    actor_user_id: str
    company_id: str = ""
    report_id: str = ""
    content_type: str = ""
    content_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    def __post_init__(self) -> None:
        self.activity_type = ActivityType(self.activity_type)
        if not self.created_at:
            self.created_at = to_iso(utcnow())


@dataclass
class StrikeContext:
    """What the strike is for; copied verbatim onto the strike record."""

    content_type: str = ""
    content_id: str = ""
    report_id: str = ""
    violation_type: str = ""
    explanation: str = ""
    moderator_id: str = ""


# ---------------------------------------------------------------------------
# Read-side views
# ---------------------------------------------------------------------------


@dataclass
class RestrictionStatus:
    is_restricted: bool
    restrictions: list[UserRestriction] = field(default_factory=list)


@dataclass
class ModerationHistory:
    user_id: str
    strikes: list[UserStrike] = field(default_factory=list)
    active_restrictions: list[UserRestriction] = field(default_factory=list)

    @property
    def current_strike_count(self) -> int:
        return len(self.strikes)


@dataclass
class ReportSummary:
    """Listing row shown to moderators. Carries no reporter identity."""

    id: str
    content_type: str
    content_id: str
    reason: str
    description: str
    status: str
    company_id: str
    content_preview: str
    content_author_name: str
    reporter_display_name: str
    priority: str
    legal_hold: bool
    action_taken: str
    escalated: bool
    total_reports_for_content: int
    created_at: str
    updated_at: str


@dataclass
class ReportDetail:
    """Full report with derived fields, as consumed by evidence assembly."""

    report: ContentReport
    total_reports_for_content: int
    content_author_name: str
    reporter_display_name: str = ANONYMOUS_REPORTER
    author_history: Optional[ModerationHistory] = None
