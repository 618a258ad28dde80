"""Pydantic models for API request/response serialization.

These models mirror the ``workvoice`` dataclasses and provide proper JSON
serialization for the FastAPI endpoints. Report responses never carry the
reporter's id or the sealed author token.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Auth models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Mirrors workvoice.auth.models.User."""

    id: str
    username: str
    email: str = ""
    display_name: str = ""
    role: str = "employee"
    company_id: str = ""
    status: str = "active"
    suspended_until: str = ""


class LoginRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


# ---------------------------------------------------------------------------
# Report models
# ---------------------------------------------------------------------------

ContentTypeLiteral = Literal["post", "comment"]
ReasonLiteral = Literal[
    "harassment",
    "inappropriate",
    "spam",
    "false_info",
    "discrimination",
    "violence",
    "other",
]
ActionLiteral = Literal[
    "dismiss", "remove_content", "remove_and_warn", "escalate", "remove_and_suspend"
]


class CreateReportRequest(BaseModel):
    content_type: ContentTypeLiteral
    content_id: str = Field(..., min_length=1)
    reason: ReasonLiteral
    description: str = Field("", max_length=2000)


class ReportCreatedResponse(BaseModel):
    id: str
    content_type: str
    content_id: str
    reason: str
    status: str
    priority: str
    created_at: str
    message: str = "Content reported successfully. Our moderation team will review it."


class ReportSummaryResponse(BaseModel):
    """Mirrors workvoice.moderation.models.ReportSummary."""

    id: str
    content_type: str
    content_id: str
    reason: str
    description: str = ""
    status: str
    company_id: str
    content_preview: str = ""
    content_author_name: str
    reporter_display_name: str
    priority: str
    legal_hold: bool = False
    action_taken: str = ""
    escalated: bool = False
    total_reports_for_content: int = 0
    created_at: str
    updated_at: str


class ReportResponse(BaseModel):
    """Moderator view of a ContentReport (identity fields removed)."""

    id: str
    content_type: str
    content_id: str
    reason: str
    description: str = ""
    status: str
    company_id: str
    content_preview: str = ""
    priority: str
    legal_hold: bool = False
    retention_years: int = 2
    reviewed_by: str = ""
    reviewed_at: str = ""
    moderator_notes: str = ""
    action_taken: str = ""
    escalated_to: str = ""
    escalated_by: str = ""
    escalated_at: str = ""
    created_at: str
    updated_at: str


class ReviewRequest(BaseModel):
    action: ActionLiteral
    moderator_notes: str = ""
    violation_type: str = ""
    explanation: str = ""


# ---------------------------------------------------------------------------
# Strike / restriction models
# ---------------------------------------------------------------------------


class StrikeResponse(BaseModel):
    """Mirrors workvoice.moderation.models.UserStrike."""

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
    issued_at: str


class RestrictionResponse(BaseModel):
    """Mirrors workvoice.moderation.models.UserRestriction."""

    id: str
    user_id: str
    company_id: str = ""
    restriction_type: str
    reason: str = ""
    is_active: bool
    started_at: str
    ends_at: str
    lifted_by: str = ""
    lifted_at: str = ""


class RestrictionStatusResponse(BaseModel):
    user_id: str
    is_restricted: bool
    restrictions: list[RestrictionResponse] = Field(default_factory=list)


class ModerationHistoryResponse(BaseModel):
    user_id: str
    current_strike_count: int
    strikes: list[StrikeResponse] = Field(default_factory=list)
    active_restrictions: list[RestrictionResponse] = Field(default_factory=list)


class ReportDetailResponse(BaseModel):
    report: ReportResponse
    total_reports_for_content: int
    content_author_name: str
    reporter_display_name: str
    author_history: Optional[ModerationHistoryResponse] = None


# ---------------------------------------------------------------------------
# Audit models
# ---------------------------------------------------------------------------


class ActivityResponse(BaseModel):
    """Mirrors workvoice.moderation.models.ModerationActivity."""

    id: str
    activity_type: str
    actor_user_id: str
    company_id: str = ""
    report_id: str = ""
    content_type: str = ""
    content_id: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str


class StatsResponse(BaseModel):
    total_reports: int = 0
    pending_reports: int = 0
    under_review_reports: int = 0
    resolved_reports: int = 0
    dismissed_reports: int = 0
    total_strikes_issued: int = 0
