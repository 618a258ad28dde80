"""Moderation router -- reports, review workflow, restrictions and audit."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import PlainTextResponse

from workvoice.auth.models import Role, User
from workvoice.auth.permissions import require_company_access, require_moderator
from workvoice.moderation.errors import ValidationError
from workvoice.moderation.models import (
    ContentReport,
    ModerationActivity,
    ModerationHistory,
    ReportSummary,
    UserRestriction,
    UserStrike,
)
from workvoice.moderation.service import ModerationService
from web.backend.app.middleware.auth import get_current_user, get_service
from web.backend.app.models.api import (
    ActivityResponse,
    CreateReportRequest,
    ModerationHistoryResponse,
    ReportCreatedResponse,
    ReportDetailResponse,
    ReportResponse,
    ReportSummaryResponse,
    RestrictionResponse,
    RestrictionStatusResponse,
    ReviewRequest,
    StatsResponse,
    StrikeResponse,
)

router = APIRouter(prefix="/api/moderation", tags=["moderation"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _report_response(r: ContentReport) -> ReportResponse:
    return ReportResponse(
        id=r.id,
        content_type=r.content_type.value,
        content_id=r.content_id,
        reason=r.reason.value,
        description=r.description,
        status=r.status.value,
        company_id=r.company_id,
        content_preview=r.content_preview,
        priority=r.priority.value,
        legal_hold=r.legal_hold,
        retention_years=r.retention_years,
        reviewed_by=r.reviewed_by,
        reviewed_at=r.reviewed_at,
        moderator_notes=r.moderator_notes,
        action_taken=r.action_taken.value if r.action_taken else "",
        escalated_to=r.escalated_to,
        escalated_by=r.escalated_by,
        escalated_at=r.escalated_at,
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _summary_response(s: ReportSummary) -> ReportSummaryResponse:
    return ReportSummaryResponse(**s.__dict__)


def _strike_response(s: UserStrike) -> StrikeResponse:
    return StrikeResponse(**s.to_dict())


def _restriction_response(r: UserRestriction) -> RestrictionResponse:
    return RestrictionResponse(
        id=r.id,
        user_id=r.user_id,
        company_id=r.company_id,
        restriction_type=r.restriction_type.value,
        reason=r.reason,
        is_active=r.is_active,
        started_at=r.started_at,
        ends_at=r.ends_at,
        lifted_by=r.lifted_by,
        lifted_at=r.lifted_at,
    )


def _history_response(h: ModerationHistory) -> ModerationHistoryResponse:
    return ModerationHistoryResponse(
        user_id=h.user_id,
        current_strike_count=h.current_strike_count,
        strikes=[_strike_response(s) for s in h.strikes],
        active_restrictions=[_restriction_response(r) for r in h.active_restrictions],
    )


def _activity_response(a: ModerationActivity) -> ActivityResponse:
    return ActivityResponse(
        id=a.id,
        activity_type=a.activity_type.value,
        actor_user_id=a.actor_user_id,
        company_id=a.company_id,
        report_id=a.report_id,
        content_type=a.content_type,
        content_id=a.content_id,
        metadata=a.metadata,
        created_at=a.created_at,
    )


def _scope_company(user: User, company_id: Optional[str]) -> Optional[str]:
    """Company filter for the caller: own company unless a super admin asks otherwise."""
    if user.role is Role.super_admin:
        return company_id
    if company_id:
        require_company_access(user, company_id)
    return user.company_id


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@router.post(
    "/reports",
    response_model=ReportCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report a post or comment",
)
async def create_report(
    body: CreateReportRequest,
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    report = service.create_report(
        body.content_type,
        body.content_id,
        body.reason,
        body.description,
        user.id,
        user.company_id,
    )
    return ReportCreatedResponse(
        id=report.id,
        content_type=report.content_type.value,
        content_id=report.content_id,
        reason=report.reason.value,
        status=report.status.value,
        priority=report.priority.value,
        created_at=report.created_at,
    )


@router.get(
    "/reports",
    response_model=list[ReportSummaryResponse],
    summary="List reports for moderation",
)
async def list_reports(
    status_filter: Optional[str] = Query(None, alias="status"),
    company_id: Optional[str] = None,
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    require_moderator(user)
    scope = _scope_company(user, company_id)
    if scope is None:
        rows = service.list_all_reports(status_filter)
    else:
        rows = service.list_reports(scope, status_filter)
    return [_summary_response(r) for r in rows]


@router.get(
    "/reports/{report_id}",
    response_model=ReportDetailResponse,
    summary="Get a report with context",
)
async def get_report(
    report_id: str,
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    require_moderator(user)
    detail = service.get_report(report_id)
    require_company_access(user, detail.report.company_id)
    return ReportDetailResponse(
        report=_report_response(detail.report),
        total_reports_for_content=detail.total_reports_for_content,
        content_author_name=detail.content_author_name,
        reporter_display_name=detail.reporter_display_name,
        author_history=_history_response(detail.author_history) if detail.author_history else None,
    )


@router.post(
    "/reports/{report_id}/review",
    response_model=ReportResponse,
    summary="Apply a moderation action",
)
async def review_report(
    report_id: str,
    body: ReviewRequest,
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    report = service.review(
        report_id,
        body.action,
        user,
        moderator_notes=body.moderator_notes,
        violation_type=body.violation_type,
        explanation=body.explanation,
    )
    return _report_response(report)


@router.get(
    "/reports/{report_id}/trail",
    summary="Chain-of-custody audit trail for a report",
)
async def report_trail(
    report_id: str,
    fmt: Literal["json", "csv"] = Query("json", alias="format"),
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    require_moderator(user)
    report = service.reports.load(report_id)
    require_company_access(user, report.company_id)
    if fmt == "csv":
        body = service.export_trail(
            report_id, "csv", redact_reporter=user.role is not Role.super_admin
        )
        return PlainTextResponse(body, media_type="text/csv")
    activities = service.redact_for(service.audit_trail(report_id), user)
    return [_activity_response(a) for a in activities]


# ---------------------------------------------------------------------------
# Users: restrictions and history
# ---------------------------------------------------------------------------


@router.get(
    "/users/{user_id}/restrictions",
    response_model=RestrictionStatusResponse,
    summary="Active restrictions (expired ones are cleared on read)",
)
async def user_restrictions(
    user_id: str,
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    if user_id == user.id:
        scope = None
    else:
        require_moderator(user)
        scope = _scope_company(user, None)
    result = service.check_restrictions(user_id, scope)
    return RestrictionStatusResponse(
        user_id=user_id,
        is_restricted=result.is_restricted,
        restrictions=[_restriction_response(r) for r in result.restrictions],
    )


@router.get(
    "/users/{user_id}/history",
    response_model=ModerationHistoryResponse,
    summary="A user's strikes and active restrictions",
)
async def user_history(
    user_id: str,
    company_id: Optional[str] = None,
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    if user_id != user.id:
        require_moderator(user)
    scope = _scope_company(user, company_id)
    return _history_response(service.moderation_history(user_id, scope))


@router.post(
    "/restrictions/{restriction_id}/lift",
    response_model=RestrictionResponse,
    summary="Lift a restriction early",
)
async def lift_restriction(
    restriction_id: str,
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    return _restriction_response(service.lift_restriction(restriction_id, user))


# ---------------------------------------------------------------------------
# Activity and stats
# ---------------------------------------------------------------------------


@router.get(
    "/activity",
    response_model=list[ActivityResponse],
    summary="Recent moderation activity, newest first",
)
async def activity_log(
    company_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    require_moderator(user)
    scope = _scope_company(user, company_id)
    activities = service.redact_for(service.activity_log(scope, limit=limit), user)
    return [_activity_response(a) for a in activities]


@router.get("/stats", response_model=StatsResponse, summary="Moderation counters")
async def moderation_stats(
    company_id: Optional[str] = None,
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    require_moderator(user)
    scope = _scope_company(user, company_id)
    if scope is None:
        raise ValidationError("company_id is required")
    return StatsResponse(**service.stats(scope))
