#!/usr/bin/env python3
"""Crew Alert Tuner - CLI Entry Point."""
import sys
import os
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()
logger = logging.getLogger("crewalerts.cli")

DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M"]


def _init_components(config_path=None, verbose=False):
    """Load config and configure logging."""
    from utils.logger import setup_logging
    from config import load_config

    config = load_config(config_path)
    level = "DEBUG" if verbose else config["logging"].get("level", "INFO")
    setup_logging(level, config["logging"].get("file"))
    return {"config": config}


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="crew-alerts")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Crew Alert Tuner - analyze alert history and tune alert rule thresholds."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        try:
            ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
        except (OSError, ValueError) as e:
            console.print(f"[red]Invalid configuration:[/red] {e}")
            raise SystemExit(1)
    return ctx.obj["_components"]


def _to_utc(value):
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ──────────────────────────────────────────────────────
# TUNING
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--no-write", is_flag=True, help="Print suggestions without writing the report")
@click.pass_context
def analyze(ctx, no_write):
    """Analyze alert history and write suggested rule changes."""
    from alerts.rules_manager import RulesManager
    from alerts.analyzer import PredictiveAnalyzer, run_with_deadline
    from alerts.report import write_report
    from models.database import Database
    from utils.formatters import format_rule

    c = _get_components(ctx)
    config = c["config"]

    try:
        rules = RulesManager(config["rules"]["path"])
        with Database(config["database"]["path"]) as db:
            analyzer = PredictiveAnalyzer(rules, db, config)
            improvements = run_with_deadline(analyzer, config["analyzer"]["timeout_seconds"])
        if not no_write:
            write_report(config["report"]["path"], improvements)
    except Exception as e:
        logger.error(f"Failed to run predictive analysis: {e}", exc_info=True)
        raise SystemExit(1)

    if not improvements:
        console.print("\n[green]All alert rules are performing within optimal parameters. "
                      "No changes suggested.[/green]")
        return

    table = Table(title="Auto-Optimization Suggestions", show_header=True)
    table.add_column("Rule", style="bold")
    table.add_column("Reason")
    table.add_column("Current", style="dim")
    table.add_column("Suggested", style="green")
    for imp in improvements:
        current = format_rule(imp.old_rule.threshold, imp.old_rule.timeout_hours) if imp.old_rule else "N/A"
        table.add_row(imp.key, imp.reason, current,
                      format_rule(imp.new_rule.threshold, imp.new_rule.timeout_hours))
    console.print(table)

    if no_write:
        console.print("\n[dim]Report not written (--no-write).[/dim]")
    else:
        console.print(f"\n{len(improvements)} suggestion(s) written to {config['report']['path']}.")
        console.print("Run [bold]python main.py apply[/bold] to update the rule table.")


@cli.command()
@click.pass_context
def apply(ctx):
    """Apply the suggested optimizations report to the alert rule table."""
    from alerts.patcher import RulePatcher
    from models.enums import PatchStatus
    from utils.formatters import format_number

    c = _get_components(ctx)
    config = c["config"]

    console.print("Applying suggested optimizations to alert rules...")
    try:
        result = RulePatcher(config["rules"]["path"]).apply_report_file(config["report"]["path"])
    except Exception as e:
        logger.error(f"Failed to apply optimizations: {e}", exc_info=True)
        raise SystemExit(1)

    if not result.report_found:
        console.print("[dim]No optimization report file found. Skipping application.[/dim]")
        return
    if not result.outcomes:
        console.print("[green]No optimizations to apply.[/green]")
        return

    styles = {
        PatchStatus.UPDATED: "green",
        PatchStatus.UNCHANGED: "dim",
        PatchStatus.NOT_FOUND: "yellow",
        PatchStatus.FIELD_MISSING: "yellow",
        PatchStatus.INVALID: "red",
    }
    table = Table(title="Rule Patch Results", show_header=True)
    table.add_column("Rule")
    table.add_column("Field")
    table.add_column("Old")
    table.add_column("New")
    table.add_column("Status")
    for o in result.outcomes:
        style = styles.get(o.status, "")
        table.add_row(o.key, o.field or "-", format_number(o.old_value), format_number(o.new_value),
                      f"[{style}]{o.status.value}[/{style}]" + (f" {o.message}" if o.message else ""))
    console.print(table)

    if result.written:
        console.print(f"[green]Applied {len(result.updated)} change(s) to {config['rules']['path']}.[/green]")
    else:
        console.print("[dim]No applicable changes were made to the rules file.[/dim]")


@cli.command()
@click.pass_context
def rules(ctx):
    """List all configured alert rules."""
    from alerts.rules_manager import RulesManager
    from utils.formatters import format_number, format_hours

    c = _get_components(ctx)
    try:
        rm = RulesManager(c["config"]["rules"]["path"])
    except Exception as e:
        logger.error(f"Failed to load alert rules: {e}")
        raise SystemExit(1)

    table = Table(title="Alert Rules", show_header=True)
    table.add_column("Key", style="dim")
    table.add_column("Threshold")
    table.add_column("Timeout")
    table.add_column("Description")
    for r in rm.get_all_rules():
        table.add_row(r.key, format_number(r.threshold), format_hours(r.timeout_hours), r.description)
    console.print(table)


# ──────────────────────────────────────────────────────
# HISTORY
# ──────────────────────────────────────────────────────
@cli.group()
def history():
    """Alert history used by the analyzer."""
    pass


@history.command("record")
@click.option("--key", "rule_key", required=True, help="Rule key, e.g. PENDING_REQUESTS")
@click.option("--triggered-at", type=click.DateTime(formats=DATETIME_FORMATS), default=None,
              help="When the alert fired (UTC, default: now)")
@click.option("--resolved-at", type=click.DateTime(formats=DATETIME_FORMATS), default=None,
              help="When the alert was resolved (UTC)")
@click.option("--note", default="", help="Free-text note")
@click.pass_context
def history_record(ctx, rule_key, triggered_at, resolved_at, note):
    """Record an alert occurrence."""
    from alerts.rules_manager import RulesManager
    from models.database import Database

    c = _get_components(ctx)
    config = c["config"]

    if RulesManager(config["rules"]["path"]).get_rule(rule_key) is None:
        console.print(f"[yellow]Warning:[/yellow] {rule_key} is not in the rule table")

    try:
        with Database(config["database"]["path"]) as db:
            alert_id = db.record_alert(rule_key, _to_utc(triggered_at), _to_utc(resolved_at), note)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--resolved-at")
    console.print(f"[green]Recorded alert #{alert_id}[/green] for {rule_key}")


@history.command("resolve")
@click.argument("alert_id", type=int)
@click.option("--at", "resolved_at", type=click.DateTime(formats=DATETIME_FORMATS), default=None,
              help="Resolution time (UTC, default: now)")
@click.pass_context
def history_resolve(ctx, alert_id, resolved_at):
    """Mark an alert as resolved."""
    from models.database import Database

    c = _get_components(ctx)
    try:
        with Database(c["config"]["database"]["path"]) as db:
            resolved = db.resolve_alert(alert_id, _to_utc(resolved_at))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--at")
    if not resolved:
        console.print(f"[red]Alert #{alert_id} not found or already resolved[/red]")
        raise SystemExit(1)
    console.print(f"[green]Alert #{alert_id} resolved[/green]")


@history.command("show")
@click.option("--days", default=90, type=int, help="Days to look back")
@click.option("--key", "rule_key", default=None, help="Only this rule key")
@click.pass_context
def history_show(ctx, days, rule_key):
    """Show recorded alerts."""
    from models.database import Database
    from utils.formatters import format_timestamp, format_number

    c = _get_components(ctx)
    since = datetime.now(timezone.utc) - timedelta(days=days)
    with Database(c["config"]["database"]["path"]) as db:
        events = db.get_alert_history(since=since, rule_key=rule_key)

    if not events:
        console.print("[dim]No alerts in history[/dim]")
        return

    table = Table(title=f"Alert History (last {days}d)", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Rule")
    table.add_column("Triggered")
    table.add_column("Resolved")
    table.add_column("Hours")
    for e in events[-100:]:
        hours = e.resolution_hours
        table.add_row(str(e.id), e.rule_key, format_timestamp(e.triggered_at),
                      format_timestamp(e.resolved_at),
                      format_number(round(hours, 1)) if hours is not None else "open")
    console.print(table)


# ──────────────────────────────────────────────────────
# SERVICE
# ──────────────────────────────────────────────────────
@cli.group()
def service():
    """Manage the nightly tuning job (crontab)."""
    pass


@service.command("install")
@click.option("--hour", default=None, type=click.IntRange(0, 23), help="Hour to run (default from config)")
@click.option("--minute", default=None, type=click.IntRange(0, 59), help="Minute to run (default from config)")
@click.pass_context
def service_install(ctx, hour, minute):
    """Install the nightly analyze + apply crontab entry."""
    from service.cron import CronManager, LOG_FILE

    c = _get_components(ctx)
    svc = c["config"].get("service", {})
    hour = svc.get("hour", 2) if hour is None else hour
    minute = svc.get("minute", 0) if minute is None else minute

    manager = CronManager(os.path.dirname(os.path.abspath(__file__)))
    status = manager.install(hour=hour, minute=minute)
    if status.startswith("error"):
        console.print(f"  [red]nightly:[/red] {status}")
        raise SystemExit(1)
    console.print(f"  [green]nightly:[/green] {status}")
    console.print(f"\n  Runs daily at {hour:02d}:{minute:02d}")
    console.print(f"  Logs: {LOG_FILE}")
    console.print("\n  Run [dim]python main.py service status[/dim] to verify.\n")


@service.command("uninstall")
@click.pass_context
def service_uninstall(ctx):
    """Remove the nightly crontab entry."""
    from service.cron import CronManager

    manager = CronManager(os.path.dirname(os.path.abspath(__file__)))
    status = manager.uninstall()
    if status == "removed":
        console.print("  [green]nightly:[/green] removed")
    elif status == "not installed":
        console.print("  [dim]nightly:[/dim] not installed")
    else:
        console.print(f"  [red]nightly:[/red] {status}")
        raise SystemExit(1)


@service.command("status")
@click.pass_context
def service_status(ctx):
    """Check whether the nightly job is installed."""
    from service.cron import CronManager

    manager = CronManager(os.path.dirname(os.path.abspath(__file__)))
    info = manager.status()
    if info["installed"]:
        console.print(f"  nightly: [green]installed[/green]\n    [dim]{info['entry']}[/dim]")
    else:
        console.print("  nightly: [dim]not installed[/dim]")
    if info.get("error"):
        console.print(f"    [red]{info['error']}[/red]")
    if info.get("last_log_line"):
        console.print(f"    last log: [dim]{info['last_log_line']}[/dim]")


@service.command("logs")
@click.option("--lines", default=50, type=int, help="Number of lines to show")
@click.pass_context
def service_logs(ctx, lines):
    """Show recent nightly log output."""
    from service.cron import CronManager

    manager = CronManager(os.path.dirname(os.path.abspath(__file__)))
    console.print(manager.get_logs(lines=lines))


@service.command("run-nightly")
@click.pass_context
def service_run_nightly(ctx):
    """Analyze then apply (called by cron, not for manual use)."""
    from service.cron import rotate_logs

    _get_components(ctx)
    rotate_logs()
    logger.info(f"=== Nightly tuning started at {datetime.now().isoformat()} ===")
    ctx.invoke(analyze)
    ctx.invoke(apply)
    logger.info("=== Nightly tuning completed ===")


if __name__ == "__main__":
    cli()
