"""Tests for report intake, de-duplication and listings."""

import json
import tempfile
import threading
from dataclasses import asdict

import pytest

from builders import (
    OTHER_COMPANY,
    add_post,
    add_user,
    make_service,
    report_post,
    seed_company,
)
from workvoice.auth.models import Role
from workvoice.moderation.errors import (
    DuplicateReport,
    NotFound,
    Unauthorized,
    ValidationError,
)
from workvoice.moderation.models import (
    ANONYMOUS_AUTHOR,
    ANONYMOUS_REPORTER,
    ActivityType,
    ContentType,
    Priority,
    ReportStatus,
)


def test_create_report_starts_pending():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")

        report = report_post(service, "post-1")

        assert report.status is ReportStatus.pending
        assert report.content_type is ContentType.post
        assert report.content_author_id == "author"
        assert report.content_preview == "Thoughts on the new office layout"
        assert service.content.get("post", "post-1").report_count == 1
        assert [a.activity_type for a in service.audit_trail(report.id)] == [
            ActivityType.report_created
        ]


def test_create_report_notifies_company_moderators():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_user(service, "other-admin", Role.company_admin, OTHER_COMPANY)
        add_post(service, "post-1", "author")

        report = report_post(service, "post-1")

        for admin_id in ("admin", "hr"):
            notes = service.notifications.for_user(admin_id)
            assert len(notes) == 1
            assert notes[0]["metadata"]["report_id"] == report.id
        assert service.notifications.for_user("other-admin") == []
        assert service.notifications.for_user("author") == []


def test_duplicate_report_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")

        report_post(service, "post-1")
        with pytest.raises(DuplicateReport):
            report_post(service, "post-1", reason="spam")

        assert service.reports.count_for_content("post-1") == 1
        assert service.content.get("post", "post-1").report_count == 1


def test_duplicate_report_rejected_after_resolution():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        users = seed_company(service)
        add_post(service, "post-1", "author")

        report = report_post(service, "post-1")
        service.review(report.id, "dismiss", users["hr"])

        with pytest.raises(DuplicateReport):
            report_post(service, "post-1")


def test_concurrent_duplicate_reports_create_one():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")

        outcomes = []
        lock = threading.Lock()

        def attempt():
            try:
                report_post(service, "post-1")
                result = "created"
            except DuplicateReport:
                result = "duplicate"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("created") == 1
        assert outcomes.count("duplicate") == 7
        assert service.reports.count_for_content("post-1") == 1


def test_different_reporters_can_report_same_content():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_user(service, "reporter-8")
        add_post(service, "post-1", "author")

        report_post(service, "post-1", reporter_id="reporter-7")
        report_post(service, "post-1", reporter_id="reporter-8")

        assert service.reports.count_for_content("post-1") == 2
        assert service.content.get("post", "post-1").report_count == 2


def test_create_report_unknown_content():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)

        with pytest.raises(NotFound):
            report_post(service, "missing-post")


def test_create_report_cross_tenant_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")

        with pytest.raises(Unauthorized):
            report_post(service, "post-1", reporter_id="spy", company_id=OTHER_COMPANY)


def test_create_report_validation():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")

        with pytest.raises(ValidationError):
            report_post(service, "post-1", reason="other")
        with pytest.raises(ValidationError):
            report_post(service, "post-1", reason="rude")
        with pytest.raises(ValueError):
            service.create_report("video", "post-1", "spam", "", "reporter-7", "acme")

        # Nothing was stored by the failed attempts.
        assert service.reports.count_for_content("post-1") == 0
        report = report_post(service, "post-1", reason="other", description="Leaks salaries")
        assert report.description == "Leaks salaries"


def test_priority_and_legal_hold_follow_reason():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")
        add_post(service, "post-2", "author")
        add_post(service, "post-3", "author")

        violent = report_post(service, "post-1", reason="violence")
        spam = report_post(service, "post-2", reason="spam")
        false_info = report_post(service, "post-3", reason="false_info")

        assert violent.priority is Priority.critical
        assert violent.legal_hold is True
        assert violent.retention_years == 7
        assert spam.priority is Priority.low
        assert spam.legal_hold is False
        assert spam.retention_years == 2
        assert false_info.priority is Priority.medium


def test_listing_never_exposes_reporter():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")
        report_post(service, "post-1", description="Please look at this")

        rows = service.list_reports("acme")

        assert len(rows) == 1
        row = rows[0]
        assert row.reporter_display_name == ANONYMOUS_REPORTER
        assert row.content_author_name == "Alice Author"
        assert "reporter-7" not in json.dumps(asdict(row))
        assert all("reporter-7" not in json.dumps(asdict(r)) for r in service.list_all_reports())


def test_anonymous_author_is_sealed():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author", anonymous=True)

        report = report_post(service, "post-1")

        assert report.content_author_id == ""
        assert report.content_author_token
        assert "author" not in report.content_author_token
        assert service.guard.reveal_author(report.content_author_token) == "author"

        row = service.list_reports("acme")[0]
        assert row.content_author_name == ANONYMOUS_AUTHOR

        detail = service.get_report(report.id)
        assert detail.content_author_name == ANONYMOUS_AUTHOR
        assert detail.author_history is None


def test_get_report_includes_author_history():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_user(service, "reporter-8")
        add_post(service, "post-1", "author")
        report_post(service, "post-1")
        report = report_post(service, "post-1", reporter_id="reporter-8")

        detail = service.get_report(report.id)

        assert detail.report.id == report.id
        assert detail.total_reports_for_content == 2
        assert detail.reporter_display_name == ANONYMOUS_REPORTER
        assert detail.author_history is not None
        assert detail.author_history.user_id == "author"
        assert detail.author_history.current_strike_count == 0


def test_get_report_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        with pytest.raises(NotFound):
            service.get_report("nope")


def test_list_reports_newest_first_and_capped():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir, report_page_size=2)
        seed_company(service)
        add_post(service, "post-1", "author")
        for i in range(3):
            add_user(service, f"r{i}")
            report_post(service, "post-1", reporter_id=f"r{i}")

        rows = service.list_reports("acme")

        assert len(rows) == 2
        assert rows[0].created_at >= rows[1].created_at
        assert all(r.total_reports_for_content == 3 for r in rows)


def test_list_reports_is_scoped_and_filtered():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        users = seed_company(service)
        seed_company(service, OTHER_COMPANY)
        add_post(service, "post-1", "author")
        add_post(service, "post-2", "author")
        add_post(service, "g-post", "globex-author", company_id=OTHER_COMPANY)

        first = report_post(service, "post-1")
        report_post(service, "post-2")
        report_post(service, "g-post", reporter_id="globex-reporter-7", company_id=OTHER_COMPANY)
        service.review(first.id, "dismiss", users["hr"])

        assert {r.content_id for r in service.list_reports("acme")} == {"post-1", "post-2"}
        assert [r.id for r in service.list_reports("acme", "dismissed")] == [first.id]
        assert [r.content_id for r in service.list_reports("acme", "pending")] == ["post-2"]
        assert len(service.list_all_reports()) == 3
        with pytest.raises(ValidationError):
            service.list_reports("acme", "archived")


def test_stats_count_statuses_and_strikes():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        users = seed_company(service)
        add_post(service, "post-1", "author")
        add_post(service, "post-2", "author")
        add_post(service, "post-3", "author")

        a = report_post(service, "post-1")
        b = report_post(service, "post-2")
        report_post(service, "post-3")
        service.review(a.id, "dismiss", users["hr"])
        service.review(
            b.id,
            "remove_and_warn",
            users["hr"],
            violation_type="harassment",
            explanation="Targeted a coworker",
        )

        assert service.stats("acme") == {
            "total_reports": 3,
            "pending_reports": 1,
            "under_review_reports": 0,
            "resolved_reports": 1,
            "dismissed_reports": 1,
            "total_strikes_issued": 1,
        }


def test_notification_failure_does_not_fail_report(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")

        def broken(*args, **kwargs):
            raise OSError("notification store down")

        monkeypatch.setattr(service.notifications, "send", broken)
        report = report_post(service, "post-1")

        assert service.reports.load(report.id).status is ReportStatus.pending
        assert service.reports.count_for_content("post-1") == 1
        assert service.notifications.for_user("hr") == []
        assert [a.activity_type for a in service.audit_trail(report.id)] == [
            ActivityType.report_created
        ]
