"""WorkVoice CLI: moderation console for Trust & Safety operators."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from workvoice import __version__

console = Console()

_STATUS_STYLE = {
    "pending": "yellow",
    "under_review": "cyan",
    "resolved": "green",
    "dismissed": "dim",
}


def _service(ctx: click.Context):
    """Build the moderation service lazily from the group options."""
    from workvoice.config import Settings
    from workvoice.moderation.service import ModerationService

    obj = ctx.find_root().obj
    if "service" not in obj:
        settings = Settings.from_yaml(obj["config"]) if obj["config"] else Settings()
        if obj["data_dir"]:
            settings = settings.model_copy(update={"data_dir": Path(obj["data_dir"])})
        obj["service"] = ModerationService(settings)
    return obj["service"]


def _fail(error: Exception) -> None:
    console.print(f"[red]{type(error).__name__}:[/] {error}")
    sys.exit(1)


def _actor(service, user_id: str):
    user = service.users.get_user(user_id)
    if user is None:
        console.print(f"[red]Unknown user:[/] {user_id}")
        sys.exit(1)
    return user


@click.group()
@click.version_option(version=__version__)
@click.option("--data-dir", type=click.Path(file_okay=False), default=None, help="Data directory")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, data_dir: str | None, config_path: str | None, verbose: bool):
    """WorkVoice: Trust & Safety moderation.

    Review reported posts and comments, inspect strikes and restrictions,
    and export the audit trail for a report.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj.update(data_dir=data_dir, config=config_path)


# ── Reports ──────────────────────────────────────────────────────────


@main.group()
def reports():
    """Browse content reports."""


@reports.command(name="list")
@click.option("--company", "company_id", default=None, help="Company ID (omit for all tenants)")
@click.option("--status", default=None,
              type=click.Choice(["pending", "under_review", "resolved", "dismissed"]))
@click.pass_context
def list_reports(ctx: click.Context, company_id: str | None, status: str | None):
    """List reports, newest first."""
    from workvoice.moderation.errors import ModerationError

    service = _service(ctx)
    try:
        rows = (
            service.list_reports(company_id, status)
            if company_id
            else service.list_all_reports(status)
        )
    except ModerationError as e:
        _fail(e)

    if not rows:
        console.print("[yellow]No reports found.[/]")
        return

    table = Table(title=f"Content Reports ({len(rows)})")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Reason", style="cyan")
    table.add_column("Priority")
    table.add_column("Status")
    table.add_column("Author")
    table.add_column("Reports", justify="right")
    table.add_column("Preview")

    for r in rows:
        style = _STATUS_STYLE.get(r.status, "")
        table.add_row(
            r.id[:12],
            r.content_type,
            r.reason,
            r.priority + (" [red]hold[/]" if r.legal_hold else ""),
            f"[{style}]{r.status}[/]" if style else r.status,
            r.content_author_name,
            str(r.total_reports_for_content),
            r.content_preview[:40],
        )

    console.print(table)


@reports.command(name="show")
@click.argument("report_id")
@click.pass_context
def show_report(ctx: click.Context, report_id: str):
    """Show one report with its author's moderation history."""
    from workvoice.moderation.errors import ModerationError

    service = _service(ctx)
    try:
        detail = service.get_report(report_id)
    except ModerationError as e:
        _fail(e)

    report = detail.report
    lines = [
        f"[bold]Content:[/] {report.content_type.value} {report.content_id}",
        f"[bold]Reason:[/] {report.reason.value}  [bold]Priority:[/] {report.priority.value}",
        f"[bold]Status:[/] {report.status.value}",
        f"[bold]Reported by:[/] {detail.reporter_display_name}",
        f"[bold]Author:[/] {detail.content_author_name}",
        f"[bold]Reports on this content:[/] {detail.total_reports_for_content}",
    ]
    if report.description:
        lines.append(f"[bold]Description:[/] {report.description}")
    if report.legal_hold:
        lines.append(f"[red]Legal hold[/] (retain {report.retention_years} years)")
    if report.is_escalated:
        lines.append(f"[magenta]Escalated to {report.escalated_to}[/]")
    if detail.author_history is not None:
        history = detail.author_history
        lines.append(
            f"[bold]Author strikes:[/] {history.current_strike_count}  "
            f"[bold]Active restrictions:[/] {len(history.active_restrictions)}"
        )
    console.print(Panel("\n".join(lines), title=f"Report {report.id}"))


# ── Review ───────────────────────────────────────────────────────────


@main.command()
@click.argument("report_id")
@click.argument("action", type=click.Choice(
    ["dismiss", "remove_content", "remove_and_warn", "escalate", "remove_and_suspend"]
))
@click.option("--actor", "actor_id", required=True, help="Moderator user ID")
@click.option("--notes", default="", help="Moderator notes")
@click.option("--violation", "violation_type", default="", help="Violation type (warn/suspend)")
@click.option("--explanation", default="", help="Explanation shown to the author")
@click.pass_context
def review(ctx: click.Context, report_id: str, action: str, actor_id: str,
           notes: str, violation_type: str, explanation: str):
    """Apply a moderation ACTION to a report."""
    from workvoice.moderation.errors import ModerationError

    service = _service(ctx)
    actor = _actor(service, actor_id)
    try:
        report = service.review(
            report_id,
            action,
            actor,
            moderator_notes=notes,
            violation_type=violation_type,
            explanation=explanation,
        )
    except ModerationError as e:
        _fail(e)

    console.print(
        f"[green]v[/] Report {report.id} is now [bold]{report.status.value}[/] ({action})"
    )


# ── Users ────────────────────────────────────────────────────────────


@main.command()
@click.argument("user_id")
@click.option("--company", "company_id", default=None, help="Restrict to one company")
@click.option("--lift", "lift_id", default=None, help="Lift this restriction ID")
@click.option("--actor", "actor_id", default=None, help="Moderator user ID (required with --lift)")
@click.pass_context
def restrictions(ctx: click.Context, user_id: str, company_id: str | None,
                 lift_id: str | None, actor_id: str | None):
    """Show a user's active restrictions (expired ones are cleared)."""
    from workvoice.moderation.errors import ModerationError

    service = _service(ctx)
    try:
        if lift_id:
            if not actor_id:
                raise click.UsageError("--actor is required with --lift")
            lifted = service.lift_restriction(lift_id, _actor(service, actor_id))
            console.print(f"[green]v[/] Lifted {lifted.restriction_type.value} restriction {lifted.id}")
        status = service.check_restrictions(user_id, company_id)
    except ModerationError as e:
        _fail(e)

    if not status.is_restricted:
        console.print(f"[green]User {user_id} has no active restrictions.[/]")
        return

    table = Table(title=f"Active restrictions for {user_id}")
    table.add_column("ID", style="dim")
    table.add_column("Type", style="red")
    table.add_column("Company")
    table.add_column("Ends")
    table.add_column("Reason")
    for r in status.restrictions:
        table.add_row(r.id[:12], r.restriction_type.value, r.company_id, r.ends_at, r.reason)
    console.print(table)


@main.command()
@click.argument("user_id")
@click.option("--company", "company_id", default=None, help="Restrict to one company")
@click.pass_context
def history(ctx: click.Context, user_id: str, company_id: str | None):
    """Show a user's strikes, newest first."""
    from workvoice.moderation.errors import ModerationError

    service = _service(ctx)
    try:
        hist = service.moderation_history(user_id, company_id)
    except ModerationError as e:
        _fail(e)

    console.print(
        f"\n[bold blue]{user_id}[/]: {hist.current_strike_count} strike(s), "
        f"{len(hist.active_restrictions)} active restriction(s)\n"
    )
    if not hist.strikes:
        return

    table = Table()
    table.add_column("Level", justify="right", style="red")
    table.add_column("Issued")
    table.add_column("Violation", style="cyan")
    table.add_column("Content")
    table.add_column("Report", style="dim")
    for s in hist.strikes:
        table.add_row(
            str(s.strike_level),
            s.issued_at,
            s.violation_type,
            f"{s.content_type} {s.content_id}".strip(),
            s.report_id[:12],
        )
    console.print(table)


# ── Audit ────────────────────────────────────────────────────────────


@main.command()
@click.argument("report_id")
@click.option("--format", "fmt", default="table", type=click.Choice(["table", "json", "csv"]))
@click.pass_context
def trail(ctx: click.Context, report_id: str, fmt: str):
    """Print the chain-of-custody trail for a report."""
    from workvoice.moderation.errors import ModerationError

    service = _service(ctx)
    try:
        if fmt != "table":
            click.echo(service.export_trail(report_id, fmt))
            return
        entries = service.audit_trail(report_id)
    except ModerationError as e:
        _fail(e)

    table = Table(title=f"Audit trail for {report_id}")
    table.add_column("When")
    table.add_column("Activity", style="cyan")
    table.add_column("Actor")
    table.add_column("Details", style="dim")
    for e in entries:
        details = ", ".join(f"{k}={v}" for k, v in e.metadata.items() if v not in ("", None))
        table.add_row(e.created_at, e.activity_type.value, e.actor_user_id, details[:60])
    console.print(table)


@main.command()
@click.argument("company_id")
@click.pass_context
def stats(ctx: click.Context, company_id: str):
    """Report and strike counts for a company."""
    service = _service(ctx)
    counts = service.stats(company_id)

    table = Table(title=f"Moderation stats for {company_id}")
    table.add_column("Metric")
    table.add_column("Count", justify="right", style="green")
    for key, value in counts.items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


@main.command()
def keygen():
    """Generate a Fernet key for WORKVOICE_ANONYMITY_KEY."""
    from cryptography.fernet import Fernet

    click.echo(Fernet.generate_key().decode())


if __name__ == "__main__":
    main()
