#!/usr/bin/env python3
"""SLA Alert Monitor - CLI Entry Point."""
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__
from models.enums import MonitoringType

console = Console()

TYPE_CHOICE = click.Choice([t.value for t in MonitoringType])
STATUS_STYLES = {"excelente": "green", "atencao": "yellow", "critico": "bold red"}
TREND_ICONS = {"up": "[green]▲[/green]", "down": "[red]▼[/red]", "stable": "[dim]—[/dim]"}


def build_components(config, interactive=False):
    """Wire database, stores, persister and evaluation engines from config."""
    from models.database import Database
    from alerts.settings_store import AlertSettingsStore
    from alerts.thresholds import ThresholdResolver
    from alerts.persister import AlertPersister
    from alerts.engine import EvaluationCycle
    from alerts.channels import ConsoleChannel, FileChannel
    from monitor.history import DatabaseHistoryProvider
    from monitor.monitor import SLAMonitor
    from monitor.backfill import BackfillOrchestrator
    from monitor.importer import ReadingImporter

    db = Database(config["database"]["path"])
    db.connect()

    alerts_cfg = config["alerts"]
    channels = [FileChannel(alerts_cfg.get("log_path", "data/alerts.jsonl"))]
    if interactive:
        channels.append(ConsoleChannel())

    settings_store = AlertSettingsStore(db)
    thresholds = ThresholdResolver(db, config)
    persister = AlertPersister(
        db, channels,
        max_retries=alerts_cfg.get("persist_max_retries", 3),
        retry_delay=alerts_cfg.get("persist_retry_delay", 0.5),
    )
    provider = DatabaseHistoryProvider(db)
    strategy = alerts_cfg.get("trend_strategy", "two_point")
    cycle = EvaluationCycle(provider, settings_store, persister, thresholds,
                            trend_strategy=strategy,
                            history_limit=config["monitor"].get("history_limit", 30))

    return {
        "config": config, "db": db, "settings_store": settings_store,
        "thresholds": thresholds, "persister": persister, "provider": provider,
        "cycle": cycle, "monitor": SLAMonitor(cycle, config),
        "backfill": BackfillOrchestrator(provider, settings_store, persister, thresholds,
                                         trend_strategy=strategy),
        "importer": ReadingImporter(db),
    }


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config["logging"].get("level", "INFO"),
                  config["logging"].get("file"))
    return build_components(config, interactive=sys.stdout.isatty())


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="slamonitor")
@click.pass_context
def cli(ctx, config_path, verbose):
    """SLA Alert Monitor - limit, anomaly and trend alerts for monitoring and SLA metrics."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _print_statuses(monitoring_type, statuses):
    table = Table(title=f"{monitoring_type} ({len(statuses)} items)", show_header=True)
    table.add_column("Item")
    table.add_column("Atual", justify="right")
    table.add_column("Var.", justify="right")
    table.add_column("Trend")
    table.add_column("Meta", justify="right")
    table.add_column("Status")
    table.add_column("Active alerts")
    table.add_column("Changes", style="dim")
    from utils.formatters import format_percentual, format_pct
    for s in statuses:
        d = s.to_dict()
        style = STATUS_STYLES.get(d["status"], "")
        changes = [f"+{t}" for t in d["created"]] + [f"✓{t}" for t in d["resolved"]]
        if d["errors"]:
            changes.append("[red]error[/red]")
        meta = f"{d['meta_atencao']:g}" + ("*" if d["custom_threshold"] else "")
        table.add_row(
            d["identificador_item"], format_percentual(d["percentual"]),
            format_pct(d["variation"], with_color=True), TREND_ICONS[d["trend"]], meta,
            f"[{style}]{d['status']}[/{style}]" if style else d["status"],
            ", ".join(d["active_alerts"]) or "-", " ".join(changes),
        )
    console.print(table)


# ──────────────────────────────────────────────────────
# SETUP
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def setup(ctx):
    """First-time setup: initialize DB and persist default alert settings."""
    c = _get_components(ctx)
    console.print("[bold]SLA Alert Monitor - Setup[/bold]\n")
    console.print(f"[green]✓[/green] Database initialized at {c['config']['database']['path']}")

    for mt, settings in c["settings_store"].get_all().items():
        if c["db"].get_alert_settings(mt) is None:
            if c["settings_store"].save(settings):
                console.print(f"[green]✓[/green] Default alert settings stored for {mt}")
            else:
                console.print(f"[red]✗[/red] Could not store settings for {mt}")
        else:
            console.print(f"[dim]•[/dim] Settings for {mt} already present")

    console.print(f"\nReadings stored: {c['db'].get_reading_count()}")
    console.print("Run [bold]python main.py monitor run[/bold] to start the evaluation loop.\n")


# ──────────────────────────────────────────────────────
# MONITOR
# ──────────────────────────────────────────────────────
@cli.group()
def monitor():
    """Evaluation loop, manual refresh and backfill."""
    pass


@monitor.command("refresh")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, default=None, help="Only this monitoring type")
@click.option("--quiet", is_flag=True, help="No output, just evaluate")
@click.pass_context
def monitor_refresh(ctx, monitoring_type, quiet):
    """Run one evaluation cycle now."""
    from monitor.history import HistoryFetchError
    c = _get_components(ctx)
    try:
        results = c["monitor"].refresh([monitoring_type] if monitoring_type else None)
    except HistoryFetchError as e:
        console.print(f"[red]Could not load history:[/red] {e}")
        sys.exit(1)
    if quiet:
        return
    for mt, statuses in results.items():
        _print_statuses(mt, statuses)


@monitor.command("run")
@click.option("--interval", default=None, type=int, help="Seconds between cycles (default: config)")
@click.pass_context
def monitor_run(ctx, interval):
    """Run the live evaluation loop until interrupted."""
    from monitor.scheduler import MonitorScheduler
    c = _get_components(ctx)
    interval = interval or c["config"]["monitor"]["poll_interval"]
    scheduler = MonitorScheduler(c["monitor"], interval_seconds=interval)

    def report(results):
        created = sum(len(s.created) for statuses in results.values() for s in statuses)
        console.print(f"[dim]{datetime.now(timezone.utc):%H:%M:%S}[/dim] cycle done, {created} new alert(s)")

    scheduler.on_refresh(report)
    scheduler.start()
    console.print(f"Evaluating every {interval}s. Press Ctrl+C to stop.")
    try:
        while scheduler.running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        c["db"].close()


@monitor.command("backfill")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, default=None, help="Only this monitoring type")
@click.pass_context
def monitor_backfill(ctx, monitoring_type):
    """Reconstruct current alert state from stored history."""
    c = _get_components(ctx)
    console.print("[bold]Starting alerts backfill...[/bold]")
    result = c["backfill"].run([monitoring_type] if monitoring_type else None)
    console.print(f"[green]✓[/green] {result.items_processed} items processed, "
                  f"{result.total_created} alerts created")
    for alert_type, count in sorted(result.alerts_created.items()):
        console.print(f"  {alert_type}: {count}")
    for err in result.errors:
        console.print(f"  [yellow]![/yellow] {err}")


@monitor.command("status")
@click.pass_context
def monitor_status(ctx):
    """Show stored readings and active alerts per monitoring type."""
    c = _get_components(ctx)
    table = Table(title="Monitoring Status", show_header=True)
    table.add_column("Type")
    table.add_column("Items", justify="right")
    table.add_column("Readings", justify="right")
    table.add_column("Active alerts", justify="right")
    for t in MonitoringType:
        table.add_row(
            t.value, str(len(c["db"].list_items(t.value))),
            str(c["db"].get_reading_count(t.value)),
            str(len(c["persister"].get_active_alerts(t.value))),
        )
    console.print(table)


# ──────────────────────────────────────────────────────
# READINGS
# ──────────────────────────────────────────────────────
@cli.group()
def readings():
    """Reading history management."""
    pass


@readings.command("add")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, required=True)
@click.option("--item", required=True, help="Company, queue or project name")
@click.option("--value", required=True, type=float, help="Percentage reading")
@click.option("--timestamp", default=None, help="ISO-8601 timestamp (default: now)")
@click.pass_context
def readings_add(ctx, monitoring_type, item, value, timestamp):
    """Record a single reading."""
    from utils.formatters import format_timestamp
    c = _get_components(ctx)
    try:
        record = c["importer"].parse_row({
            "tipo_monitoramento": monitoring_type,
            "identificador_item": item,
            "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
            "value": str(value),
        })
    except ValueError as e:
        raise click.BadParameter(str(e))
    c["db"].save_readings([record])
    console.print(f"[green]✓[/green] [{monitoring_type}] {item}: {value:.2f}% at {format_timestamp(record['timestamp'])}")


@readings.command("import")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def readings_import(ctx, csv_path):
    """Import readings from a CSV file."""
    c = _get_components(ctx)
    result = c["importer"].import_csv(csv_path)
    console.print(f"[green]✓[/green] {result.readings_saved} readings imported "
                  f"({result.skipped} skipped of {result.rows_read})")
    for err in result.errors[:20]:
        console.print(f"  [yellow]![/yellow] {err}")


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert management."""
    pass


@alerts.command("list")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, default=None)
@click.option("--active", "active_only", is_flag=True, help="Only active (untreated) alerts")
@click.option("--limit", default=50, type=int)
@click.pass_context
def alerts_list(ctx, monitoring_type, active_only, limit):
    """Show alerts, newest first."""
    from utils.formatters import time_ago
    c = _get_components(ctx)
    rows = c["persister"].list_alerts(monitoring_type, active_only, limit)
    if not rows:
        console.print("[dim]No alerts[/dim]")
        return
    table = Table(title="Alerts", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Detected", style="dim")
    table.add_column("Type")
    table.add_column("Item")
    table.add_column("Alert")
    table.add_column("Severity")
    table.add_column("%", justify="right")
    table.add_column("Treated")
    for a in rows:
        treated = f"[green]✓[/green] {a.comentario_tratamento or ''}"[:50] if a.tratado else "[red]open[/red]"
        table.add_row(str(a.id), time_ago(a.detected_at), a.tipo_monitoramento,
                      a.identificador_item, a.alert_type, a.severity,
                      f"{a.percentual_atual:.2f}", treated)
    console.print(table)


@alerts.command("summary")
@click.pass_context
def alerts_summary(ctx):
    """Active, critical and treated-today counts."""
    c = _get_components(ctx)
    s = c["persister"].alert_summary()
    console.print(f"Active: [bold]{s['active']}[/bold]  Critical: [bold red]{s['critical']}[/bold red]  "
                  f"Treated today: [green]{s['treated_today']}[/green]  "
                  f"Avg. resolution: {s['avg_resolution_minutes']} min")
    for alert_type, count in s["by_type"].items():
        console.print(f"  {alert_type}: {count}")


@alerts.command("treat")
@click.argument("alert_id", type=int)
@click.option("--comment", required=True, help="Treatment comment")
@click.option("--by", "treated_by", default=None, help="Who treated the alert")
@click.pass_context
def alerts_treat(ctx, alert_id, comment, treated_by):
    """Mark an active alert as treated."""
    c = _get_components(ctx)
    try:
        alert = c["persister"].treat_alert(alert_id, comment, treated_by)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--comment")
    except LookupError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Alert {alert.id} ({alert.alert_type}, {alert.identificador_item}) treated")


# ──────────────────────────────────────────────────────
# SETTINGS
# ──────────────────────────────────────────────────────
@cli.group()
def settings():
    """Per monitoring-type alert settings."""
    pass


@settings.command("show")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, default=None)
@click.pass_context
def settings_show(ctx, monitoring_type):
    """Show effective alert settings."""
    c = _get_components(ctx)
    all_settings = c["settings_store"].get_all()
    types = [monitoring_type] if monitoring_type else list(all_settings)
    table = Table(title="Alert Settings", show_header=True)
    table.add_column("Setting")
    for mt in types:
        table.add_column(mt)
    for field_name in all_settings[types[0]].to_dict():
        if field_name == "tipo_monitoramento":
            continue
        table.add_row(field_name, *[str(getattr(all_settings[mt], field_name)) for mt in types])
    console.print(table)


@settings.command("set")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, required=True)
@click.option("--anomaly/--no-anomaly", "anomaly_enabled", default=None)
@click.option("--window", "anomaly_moving_avg_days", type=int, default=None, help="Moving average window")
@click.option("--multiplier", "anomaly_stddev_multiplier", type=float, default=None, help="Std-dev multiplier")
@click.option("--trend/--no-trend", "trend_enabled", default=None)
@click.option("--trend-periods", "trend_consecutive_periods", type=int, default=None)
@click.option("--auto-resolve/--no-auto-resolve", "auto_resolve_enabled", default=None)
@click.option("--auto-resolve-readings", "auto_resolve_consecutive_readings", type=int, default=None)
@click.pass_context
def settings_set(ctx, monitoring_type, **changes):
    """Update alert settings for a monitoring type."""
    c = _get_components(ctx)
    try:
        saved = c["settings_store"].update(monitoring_type, **changes)
    except ValueError as e:
        raise click.BadParameter(str(e))
    if saved is None:
        console.print("[red]Could not save settings[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Settings saved for {monitoring_type}")


# ──────────────────────────────────────────────────────
# THRESHOLDS
# ──────────────────────────────────────────────────────
@cli.group()
def thresholds():
    """Per-item attention/excellent threshold overrides."""
    pass


@thresholds.command("show")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, default=None)
@click.pass_context
def thresholds_show(ctx, monitoring_type):
    """List defaults and item overrides."""
    c = _get_components(ctx)
    table = Table(title="Thresholds", show_header=True)
    table.add_column("Type")
    table.add_column("Item")
    table.add_column("Excelente", justify="right")
    table.add_column("Atenção", justify="right")
    types = [monitoring_type] if monitoring_type else [t.value for t in MonitoringType]
    for mt in types:
        d = c["thresholds"].default_for(mt)
        table.add_row(mt, "[dim](default)[/dim]", f"{d.meta_excelente:g}", f"{d.meta_atencao:g}")
    for row in c["db"].list_item_thresholds(monitoring_type):
        table.add_row(row["tipo_monitoramento"], row["identificador_item"],
                      f"{row['meta_excelente']:g}", f"{row['meta_atencao']:g}")
    console.print(table)


@thresholds.command("set")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, required=True)
@click.option("--item", required=True)
@click.option("--excelente", "meta_excelente", type=float, required=True)
@click.option("--atencao", "meta_atencao", type=float, required=True)
@click.pass_context
def thresholds_set(ctx, monitoring_type, item, meta_excelente, meta_atencao):
    """Set an item-specific threshold override."""
    c = _get_components(ctx)
    try:
        c["thresholds"].set_override(monitoring_type, item, meta_excelente, meta_atencao)
    except ValueError as e:
        raise click.BadParameter(str(e))
    console.print(f"[green]✓[/green] [{monitoring_type}] {item}: atenção {meta_atencao:g}, excelente {meta_excelente:g}")


@thresholds.command("clear")
@click.option("--type", "monitoring_type", type=TYPE_CHOICE, required=True)
@click.option("--item", required=True)
@click.pass_context
def thresholds_clear(ctx, monitoring_type, item):
    """Remove an item override so the type default applies."""
    c = _get_components(ctx)
    if c["thresholds"].clear_override(monitoring_type, item):
        console.print(f"[green]✓[/green] Override removed for {item}")
    else:
        console.print(f"[dim]No override for {item}[/dim]")


# ──────────────────────────────────────────────────────
# WEB
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--host", default=None, type=str, help="Host to bind to")
@click.option("--no-scheduler", is_flag=True, help="Do not run the evaluation loop in the background")
@click.pass_context
def web(ctx, port, host, no_scheduler):
    """Serve the alert JSON API."""
    from web.app import create_app
    from monitor.scheduler import MonitorScheduler
    c = _get_components(ctx)
    web_cfg = c["config"].get("web", {})
    scheduler = None
    if not no_scheduler:
        scheduler = MonitorScheduler(c["monitor"], interval_seconds=c["config"]["monitor"]["poll_interval"])
        scheduler.start()
    app = create_app(c["config"], c, scheduler=scheduler)
    try:
        app.run(host=host or web_cfg.get("host", "127.0.0.1"), port=port or web_cfg.get("port", 5000))
    finally:
        if scheduler:
            scheduler.stop()


if __name__ == "__main__":
    cli()
