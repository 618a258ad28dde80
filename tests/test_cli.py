"""Tests for the workvoice CLI."""

import tempfile

from click.testing import CliRunner
from cryptography.fernet import Fernet

from builders import add_post, make_service, report_post, seed_company
from workvoice.cli import main


def test_keygen_prints_a_fernet_key():
    result = CliRunner().invoke(main, ["keygen"])

    assert result.exit_code == 0
    Fernet(result.output.strip().encode())


def test_reports_list_empty():
    with tempfile.TemporaryDirectory() as tmpdir:
        result = CliRunner().invoke(main, ["--data-dir", tmpdir, "reports", "list"])

        assert result.exit_code == 0
        assert "No reports found." in result.output


def test_review_and_inspect():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        add_post(service, "post-1", "author")
        report = report_post(service, "post-1")
        runner = CliRunner()

        listed = runner.invoke(main, ["--data-dir", tmpdir, "reports", "list", "--company", "acme"])
        assert listed.exit_code == 0
        assert "reporter-7" not in listed.output

        reviewed = runner.invoke(
            main,
            [
                "--data-dir", tmpdir, "review", report.id, "remove_and_warn",
                "--actor", "hr", "--violation", "harassment", "--explanation", "Targeted a coworker",
            ],
        )
        assert reviewed.exit_code == 0, reviewed.output
        assert "resolved" in reviewed.output

        again = runner.invoke(
            main, ["--data-dir", tmpdir, "review", report.id, "dismiss", "--actor", "hr"]
        )
        assert again.exit_code == 1
        assert "InvalidTransition" in again.output

        history = runner.invoke(main, ["--data-dir", tmpdir, "history", "author"])
        assert history.exit_code == 0
        assert "1 strike(s)" in history.output

        trail = runner.invoke(main, ["--data-dir", tmpdir, "trail", report.id, "--format", "csv"])
        assert trail.exit_code == 0
        assert trail.output.startswith("id,created_at,activity_type")
        assert "strike_issued" in trail.output


def test_review_with_unknown_actor():
    with tempfile.TemporaryDirectory() as tmpdir:
        result = CliRunner().invoke(
            main, ["--data-dir", tmpdir, "review", "r1", "dismiss", "--actor", "ghost"]
        )

        assert result.exit_code == 1
        assert "Unknown user" in result.output


def test_restrictions_and_stats():
    with tempfile.TemporaryDirectory() as tmpdir:
        service = make_service(tmpdir)
        seed_company(service)
        runner = CliRunner()

        clean = runner.invoke(main, ["--data-dir", tmpdir, "restrictions", "author"])
        assert clean.exit_code == 0
        assert "has no active restrictions" in clean.output

        stats = runner.invoke(main, ["--data-dir", tmpdir, "stats", "acme"])
        assert stats.exit_code == 0
        assert "total reports" in stats.output
