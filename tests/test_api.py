"""Tests for the REST API."""

import tempfile

from fastapi.testclient import TestClient

from builders import OTHER_COMPANY, add_post, add_user, make_service, seed_company
from web.backend.app.main import app
from web.backend.app.middleware.auth import get_service
from workvoice.auth.models import Role


def _client(service) -> TestClient:
    app.dependency_overrides[get_service] = lambda: service
    return TestClient(app)


def _login(client, user_id):
    resp = client.post("/api/auth/login", json={"user_id": user_id})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def _report(client, headers, content_id="post-1", reason="harassment"):
    return client.post(
        "/api/moderation/reports",
        json={"content_type": "post", "content_id": content_id, "reason": reason},
        headers=headers,
    )


def test_health_and_root():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(make_service(tmpdir))
        try:
            assert client.get("/health").json() == {"status": "healthy"}
            assert client.get("/").json()["name"] == "WorkVoice Trust & Safety API"
        finally:
            app.dependency_overrides.clear()


def test_login_and_me():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        client = _client(service)
        try:
            headers = _login(client, "hr")
            me = client.get("/api/auth/me", headers=headers).json()
            assert me["id"] == "hr"
            assert me["role"] == "hr"

            assert client.get("/api/auth/me").status_code == 401
            assert client.post("/api/auth/login", json={"user_id": "nobody"}).status_code == 401

            client.post("/api/auth/logout", headers=headers)
            assert client.get("/api/auth/me", headers=headers).status_code == 401
        finally:
            app.dependency_overrides.clear()


def test_suspended_user_cannot_log_in():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        service.enforcer.suspend("author", "acme", reason="Threats", actor_id="admin")
        client = _client(service)
        try:
            resp = client.post("/api/auth/login", json={"user_id": "author"})
            assert resp.status_code == 403
        finally:
            app.dependency_overrides.clear()


def test_report_intake_errors_map_to_status_codes():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")
        client = _client(service)
        try:
            headers = _login(client, "reporter-7")

            created = _report(client, headers)
            assert created.status_code == 201
            assert created.json()["status"] == "pending"
            assert created.json()["priority"] == "high"

            duplicate = _report(client, headers)
            assert duplicate.status_code == 409
            assert duplicate.json()["error"] == "DuplicateReport"

            assert _report(client, headers, content_id="missing").status_code == 404
            assert _report(client, headers, reason="rude").status_code == 422
            other = client.post(
                "/api/moderation/reports",
                json={"content_type": "post", "content_id": "post-1", "reason": "other"},
                headers=_login(client, "admin"),
            )
            assert other.status_code == 422
        finally:
            app.dependency_overrides.clear()


def test_listing_hides_reporter_and_requires_moderator():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")
        client = _client(service)
        try:
            _report(client, _login(client, "reporter-7"))

            assert client.get(
                "/api/moderation/reports", headers=_login(client, "author")
            ).status_code == 403

            resp = client.get("/api/moderation/reports", headers=_login(client, "hr"))
            assert resp.status_code == 200
            [row] = resp.json()
            assert row["reporter_display_name"] == "Anonymous Reporter"
            assert row["content_author_name"] == "Alice Author"
            assert "reporter-7" not in resp.text

            detail = client.get(
                f"/api/moderation/reports/{row['id']}", headers=_login(client, "hr")
            )
            assert detail.status_code == 200
            assert "reporter-7" not in detail.text
            assert detail.json()["author_history"]["current_strike_count"] == 0
        finally:
            app.dependency_overrides.clear()


def test_review_flow_over_http():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")
        client = _client(service)
        try:
            report_id = _report(client, _login(client, "reporter-7")).json()["id"]
            hr = _login(client, "hr")
            body = {
                "action": "remove_and_warn",
                "violation_type": "harassment",
                "explanation": "Targeted a coworker",
            }

            resp = client.post(f"/api/moderation/reports/{report_id}/review", json=body, headers=hr)
            assert resp.status_code == 200
            assert resp.json()["status"] == "resolved"
            assert resp.json()["action_taken"] == "remove_and_warn"

            again = client.post(f"/api/moderation/reports/{report_id}/review", json=body, headers=hr)
            assert again.status_code == 409

            bad = client.post(
                f"/api/moderation/reports/{report_id}/review", json={"action": "ban"}, headers=hr
            )
            assert bad.status_code == 422

            trail = client.get(f"/api/moderation/reports/{report_id}/trail", headers=hr).json()
            assert [a["activity_type"] for a in trail] == [
                "report_created",
                "report_reviewed",
                "content_removed",
                "strike_issued",
            ]
            assert trail[0]["actor_user_id"] == "Anonymous Reporter"

            csv_resp = client.get(
                f"/api/moderation/reports/{report_id}/trail",
                params={"format": "csv"},
                headers=hr,
            )
            assert csv_resp.text.startswith("id,created_at,activity_type")
            assert "reporter-7" not in csv_resp.text

            history = client.get("/api/moderation/users/author/history", headers=hr).json()
            assert history["current_strike_count"] == 1
            assert history["strikes"][0]["strike_level"] == 1

            stats = client.get("/api/moderation/stats", headers=hr).json()
            assert stats["resolved_reports"] == 1
            assert stats["total_strikes_issued"] == 1
        finally:
            app.dependency_overrides.clear()


def test_cross_tenant_access_is_forbidden():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        seed_company(service, OTHER_COMPANY)
        add_post(service, "post-1", "author")
        client = _client(service)
        try:
            report_id = _report(client, _login(client, "reporter-7")).json()["id"]
            outsider = _login(client, "globex-hr")

            assert client.get(
                f"/api/moderation/reports/{report_id}", headers=outsider
            ).status_code == 403
            assert client.post(
                f"/api/moderation/reports/{report_id}/review",
                json={"action": "dismiss"},
                headers=outsider,
            ).status_code == 403
            assert client.get(
                "/api/moderation/reports", params={"company_id": "acme"}, headers=outsider
            ).status_code == 403
            assert client.get("/api/moderation/reports", headers=outsider).json() == []
        finally:
            app.dependency_overrides.clear()


def test_restrictions_and_lift_over_http():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_user(service, "root", Role.super_admin, company_id="")
        for i in range(2):
            add_post(service, f"post-{i}", "author")
            report = service.create_report("post", f"post-{i}", "spam", "", "reporter-7", "acme")
            service.review(
                report.id,
                "remove_and_warn",
                service.users.get_user("hr"),
                violation_type="spam",
                explanation="Repeated ads",
            )
        client = _client(service)
        try:
            own = client.get(
                "/api/moderation/users/author/restrictions", headers=_login(client, "author")
            ).json()
            assert own["is_restricted"] is True
            [restriction] = own["restrictions"]
            assert restriction["restriction_type"] == "posting"

            assert client.post(
                f"/api/moderation/restrictions/{restriction['id']}/lift",
                headers=_login(client, "reporter-7"),
            ).status_code == 403

            lifted = client.post(
                f"/api/moderation/restrictions/{restriction['id']}/lift",
                headers=_login(client, "root"),
            )
            assert lifted.status_code == 200
            assert lifted.json()["is_active"] is False
            assert lifted.json()["lifted_by"] == "root"

            activity = client.get(
                "/api/moderation/activity", params={"company_id": "acme"}, headers=_login(client, "root")
            ).json()
            assert activity[0]["activity_type"] == "restriction_lifted"
            assert any(a["actor_user_id"] == "reporter-7" for a in activity)
        finally:
            app.dependency_overrides.clear()


def test_anonymous_author_never_reaches_moderators():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_user(service, "root", Role.super_admin, company_id="")
        add_post(service, "post-1", "author", anonymous=True)
        add_post(service, "post-2", "author", anonymous=True)
        client = _client(service)
        try:
            reporter = _login(client, "reporter-7")
            hr = _login(client, "hr")
            body = {
                "action": "remove_and_warn",
                "violation_type": "harassment",
                "explanation": "Targeted a coworker",
            }
            report_ids = [
                _report(client, reporter, content_id=p).json()["id"] for p in ("post-1", "post-2")
            ]
            for report_id in report_ids:
                resp = client.post(
                    f"/api/moderation/reports/{report_id}/review", json=body, headers=hr
                )
                assert resp.status_code == 200

            [restriction] = service.check_restrictions("author", "acme").restrictions
            assert client.post(
                f"/api/moderation/restrictions/{restriction.id}/lift", headers=hr
            ).status_code == 200

            admin = _login(client, "admin")
            trail = client.get(
                f"/api/moderation/reports/{report_ids[1]}/trail", headers=admin
            ).json()
            activity = client.get("/api/moderation/activity", headers=admin).json()

            targets = [
                a["metadata"]["target_user_id"]
                for a in trail + activity
                if "target_user_id" in a["metadata"]
            ]
            assert {a["activity_type"] for a in activity} >= {
                "strike_issued",
                "user_restricted",
                "restriction_lifted",
            }
            assert targets
            assert set(targets) == {"Anonymous User"}

            root_activity = client.get(
                "/api/moderation/activity",
                params={"company_id": "acme"},
                headers=_login(client, "root"),
            ).json()
            assert {
                a["metadata"]["target_user_id"]
                for a in root_activity
                if "target_user_id" in a["metadata"]
            } == {"author"}
        finally:
            app.dependency_overrides.clear()


def test_session_stops_working_once_suspended():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        client = _client(service)
        try:
            headers = _login(client, "author")
            assert client.get("/api/auth/me", headers=headers).status_code == 200

            service.enforcer.suspend("author", "acme", reason="Threats", actor_id="admin")

            resp = client.get("/api/auth/me", headers=headers)
            assert resp.status_code == 403
            assert resp.json()["detail"] == "Account suspended"
        finally:
            app.dependency_overrides.clear()
