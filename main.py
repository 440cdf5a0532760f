#!/usr/bin/env python3
"""Drawdown Guardian - CLI Entry Point."""
import sys
import json
import os
import signal
import tempfile
import time
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table
from rich.markup import escape

from __version__ import __version__

console = Console()


def build_dispatcher(config, console_output=True):
    """Assemble the notification dispatcher once, from config."""
    from alerts.channels import ConsoleChannel, ExpoPushChannel, FileChannel, NotificationDispatcher

    notif = config.get("notifications", {})
    dispatcher = NotificationDispatcher()

    if console_output and notif.get("console", True):
        dispatcher.add(ConsoleChannel(console=console))

    file_cfg = notif.get("file", {})
    if file_cfg.get("enabled", True):
        log_path = file_cfg.get("path", "data/notifications.jsonl")
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        dispatcher.add(FileChannel(log_path=log_path))

    expo_cfg = notif.get("expo", {})
    if expo_cfg.get("enabled", True):
        from notifications.expo_push import ExpoPushClient
        dispatcher.add(ExpoPushChannel(
            ExpoPushClient(access_token=expo_cfg.get("access_token")),
            types=expo_cfg.get("types"),
        ))

    tg_cfg = notif.get("telegram", {})
    if tg_cfg.get("enabled") and tg_cfg.get("bot_token") and tg_cfg.get("chat_id"):
        from notifications.telegram_bot import TelegramBot
        from alerts.telegram_channel import TelegramChannel
        dispatcher.add(TelegramChannel(
            TelegramBot(tg_cfg["bot_token"], tg_cfg["chat_id"]),
            types=tg_cfg.get("types"),
        ))

    return dispatcher


def build_cycle(config, db, market_data, dispatcher, clock=None, sleep=None):
    """Wire the engines around ``db`` into a MonitoringCycle."""
    from alerts.engine import DrawdownAlertEngine
    from alerts.ladders import LadderBook
    from alerts.levels import LevelEngine
    from models.assets import Asset
    from monitor.cycle import MonitoringCycle
    from monitor.peak_store import PeakStore
    from notifications.devices import DeviceRegistry

    alerts_cfg = config["alerts"]
    peak_store = PeakStore(db, default_threshold_pct=alerts_cfg.get("default_threshold_pct", 15.0))
    alert_engine = DrawdownAlertEngine(
        db,
        variation_threshold=alerts_cfg.get("variation_threshold_pct", 1.0),
        reset_on_recovery=alerts_cfg.get("reset_on_recovery", False),
    )
    level_engine = LevelEngine(
        db,
        LadderBook(config["ladders"]),
        reminder_interval=timedelta(minutes=config["levels"].get("reminder_interval_minutes", 60)),
    )
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    if sleep is not None:
        kwargs["sleep"] = sleep
    return MonitoringCycle(
        assets=[Asset.from_dict(a) for a in config["assets"]],
        market_data=market_data,
        db=db,
        peak_store=peak_store,
        alert_engine=alert_engine,
        level_engine=level_engine,
        dispatcher=dispatcher,
        devices=DeviceRegistry(db),
        inter_asset_delay=config["monitor"].get("inter_asset_delay", 1.0),
        **kwargs,
    )


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import Database
    from monitor.api import PriceRegistry

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    market_data = PriceRegistry(config)
    dispatcher = build_dispatcher(config, console_output=sys.stdout.isatty())
    cycle = build_cycle(config, db, market_data, dispatcher)

    return {
        "config": config, "db": db, "market_data": market_data, "dispatcher": dispatcher,
        "cycle": cycle, "peak_store": cycle.peak_store, "alert_engine": cycle.alert_engine,
        "level_engine": cycle.level_engine, "devices": cycle.devices,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="guardian")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Drawdown Guardian - portfolio drawdown alerts and staged investment levels."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


@contextmanager
def _user_errors():
    """Report store and validation errors as CLI errors instead of tracebacks."""
    from monitor.errors import GuardianError
    try:
        yield
    except (GuardianError, ValueError) as e:
        raise click.ClickException(str(e))


def _configured_asset(c, symbol):
    from models.assets import Asset
    for a in c["config"]["assets"]:
        if str(a["symbol"]).upper() == symbol.upper():
            return Asset.from_dict(a)
    return None


def _print_summary(summary):
    table = Table(title="Monitoring Cycle", show_header=True)
    table.add_column("Asset")
    table.add_column("Price", justify="right")
    table.add_column("Peak", justify="right")
    table.add_column("Drawdown", justify="right")
    table.add_column("Alert")
    table.add_column("Levels")
    table.add_column("Status")
    from utils.formatters import format_pct, format_price
    for o in summary.outcomes:
        if o.skipped:
            status = "[dim]skipped[/dim]"
        elif o.ok:
            status = "[green]✓[/green]" + (" [bold]new peak[/bold]" if o.peak_updated else "")
        else:
            status = f"[red]✗[/red] {escape(o.error[:50])}"
        levels = ", ".join(f"{s.level:g}%" for s in o.newly_available)
        if o.reminders:
            levels += (" | " if levels else "") + "reminder: " + ", ".join(f"{s.level:g}%" for s in o.reminders)
        table.add_row(
            o.symbol,
            format_price(o.price),
            format_price(o.peak_price),
            format_pct(o.drawdown_pct, with_color=True) if o.drawdown_pct is not None else "N/A",
            o.alert.kind.value if o.alert else "",
            levels,
            status,
        )
    console.print(table)
    console.print(f"[bold]{summary.succeeded}/{summary.total}[/bold] assets updated, "
                  f"{summary.failed} failed, {summary.skipped} skipped")


# ──────────────────────────────────────────────────────
# RUN / WATCH
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output summary as JSON")
@click.pass_context
def run(ctx, as_json):
    """Run one monitoring cycle over all configured assets."""
    c = _get_components(ctx)
    summary = c["cycle"].run_once()
    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        _print_summary(summary)
        console.print(c["alert_engine"].format_alert_summary(summary.alerts), markup=False)
    if summary.total and summary.succeeded == 0 and summary.failed:
        ctx.exit(1)


@cli.command()
@click.option("--interval", default=None, type=int, help="Seconds between cycles")
@click.pass_context
def watch(ctx, interval):
    """Run monitoring cycles on a schedule until interrupted."""
    c = _get_components(ctx)
    from monitor.scheduler import MonitorScheduler

    interval = interval or c["config"]["monitor"]["check_interval"]
    if interval < 60:
        raise click.BadParameter("interval must be >= 60 seconds", param_hint="--interval")
    scheduler = MonitorScheduler(c["cycle"], interval_seconds=interval)
    scheduler.on_cycle(lambda s: console.print(
        f"[dim]{s.finished_at:%H:%M:%S}[/dim] {s.succeeded}/{s.total} ok, "
        f"{len(s.alerts)} alert(s)"))

    stopping = {"flag": False}

    def _handle(signum, frame):
        stopping["flag"] = True

    signal.signal(signal.SIGTERM, _handle)
    console.print(f"[bold]Watching {len(c['cycle'].assets)} assets every {interval}s[/bold] (Ctrl+C to stop)")
    scheduler.start()
    try:
        while not stopping["flag"]:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        if not scheduler.stop():
            console.print("[dim]Waiting for the current asset to finish...[/dim]")
            scheduler.stop(timeout=None)
        c["db"].close()


# ──────────────────────────────────────────────────────
# STATUS
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def status(ctx):
    """Show peaks, last prices and drawdowns from the store (no fetching)."""
    c = _get_components(ctx)
    from monitor.drawdown import compute_drawdown
    from utils.formatters import format_pct, format_price, time_ago

    peaks = c["peak_store"].list_peaks()
    if not peaks:
        console.print("[dim]No assets provisioned.[/dim] Run: python main.py assets init")
        return

    table = Table(title="Portfolio Drawdowns", show_header=True)
    table.add_column("Asset")
    table.add_column("Class")
    table.add_column("Last", justify="right")
    table.add_column("Peak", justify="right")
    table.add_column("Drawdown", justify="right")
    table.add_column("Threshold", justify="right")
    table.add_column("Updated", style="dim")
    table.add_column("Active")
    for p in peaks:
        last = c["db"].get_latest_price(p.symbol)
        price = last["price"] if last else None
        dd = compute_drawdown(price, p.peak_price) if price is not None else None
        table.add_row(
            f"{p.symbol} [dim]{p.name}[/dim]", p.asset_class.value,
            format_price(price), format_price(p.peak_price),
            format_pct(dd, with_color=True) if dd is not None else "N/A",
            f"-{p.alert_threshold_pct:g}%",
            last["observed_at"][:16] if last else time_ago(p.peak_observed_at),
            "[green]✓[/green]" if p.active else "[red]✗[/red]",
        )
    console.print(table)


# ──────────────────────────────────────────────────────
# ASSETS
# ──────────────────────────────────────────────────────
@cli.group()
def assets():
    """Provision and manage monitored assets."""
    pass


@assets.command("init")
@click.pass_context
def assets_init(ctx):
    """Provision every configured asset at its current price."""
    from monitor.errors import FetchFailure
    c = _get_components(ctx)
    for a in c["cycle"].assets:
        if c["peak_store"].get_peak(a.symbol):
            console.print(f"[dim]-[/dim] {a.symbol} already provisioned")
            continue
        try:
            quote = c["market_data"].fetch_price(a)
        except FetchFailure as e:
            console.print(f"[red]✗[/red] {a.symbol}: {e}")
            continue
        c["peak_store"].provision(a, quote.price, quote.as_of)
        console.print(f"[green]✓[/green] {a.symbol} provisioned at {quote.price:,.4f}")


@assets.command("add")
@click.argument("symbol")
@click.option("--price", type=float, default=None, help="Start/peak price (default: fetch current)")
@click.option("--name", default=None)
@click.option("--class", "asset_class", type=click.Choice(["ETF", "CRYPTO"], case_sensitive=False), default=None)
@click.option("--threshold", type=float, default=None, help="Alert threshold percent")
@click.pass_context
def assets_add(ctx, symbol, price, name, asset_class, threshold):
    """Provision one asset's peak record."""
    from models.assets import Asset
    c = _get_components(ctx)
    asset = _configured_asset(c, symbol)
    if asset is None:
        if asset_class is None:
            raise click.UsageError(f"{symbol} is not configured; pass --class")
        asset = Asset.from_dict({"symbol": symbol, "name": name, "class": asset_class})
    with _user_errors():
        if price is None:
            price = c["market_data"].fetch_price(asset).price
        peak = c["peak_store"].provision(asset, price, threshold_pct=threshold)
    console.print(f"[green]✓[/green] {peak.symbol}: peak {peak.peak_price:,.4f}, "
                  f"threshold -{peak.alert_threshold_pct:g}%")


@assets.command("list")
@click.pass_context
def assets_list(ctx):
    """List provisioned assets."""
    c = _get_components(ctx)
    table = Table(title="Assets", show_header=True)
    for col in ("Symbol", "Name", "Class", "Start", "Peak", "Peak At", "Threshold", "Active"):
        table.add_column(col)
    for p in c["peak_store"].list_peaks():
        table.add_row(p.symbol, p.name, p.asset_class.value, f"{p.start_price:,.4f}",
                      f"{p.peak_price:,.4f}", p.peak_observed_at.strftime("%Y-%m-%d %H:%M"),
                      f"-{p.alert_threshold_pct:g}%",
                      "[green]✓[/green]" if p.active else "[red]✗[/red]")
    console.print(table)


@assets.command("check")
@click.pass_context
def assets_check(ctx):
    """Check that every configured asset's price source responds."""
    c = _get_components(ctx)
    checks = c["market_data"].health_check(c["cycle"].assets)
    for symbol, info in checks.items():
        if info["reachable"]:
            console.print(f"[green]✓[/green] {symbol}: {info['price']:,.4f} ({info['latency_ms']}ms)")
        else:
            console.print(f"[red]✗[/red] {symbol}: {info['error']}")
    if checks and not any(i["reachable"] for i in checks.values()):
        ctx.exit(1)


@assets.command("activate")
@click.argument("symbol")
@click.pass_context
def assets_activate(ctx, symbol):
    with _user_errors():
        _get_components(ctx)["peak_store"].set_active(symbol.upper(), True)
    console.print(f"{symbol.upper()} activated")


@assets.command("deactivate")
@click.argument("symbol")
@click.pass_context
def assets_deactivate(ctx, symbol):
    with _user_errors():
        _get_components(ctx)["peak_store"].set_active(symbol.upper(), False)
    console.print(f"{symbol.upper()} deactivated")


@assets.command("threshold")
@click.argument("symbol")
@click.argument("percent", type=float)
@click.pass_context
def assets_threshold(ctx, symbol, percent):
    """Set the alert threshold (positive percent, e.g. 15)."""
    with _user_errors():
        _get_components(ctx)["peak_store"].set_threshold(symbol.upper(), percent)
    console.print(f"{symbol.upper()} threshold set to -{percent:g}%")


@assets.command("reset-peak")
@click.argument("symbol")
@click.option("--price", type=float, default=None, help="New peak (default: fetch current)")
@click.confirmation_option(prompt="Reset the peak? Levels for the old peak stop applying.")
@click.pass_context
def assets_reset_peak(ctx, symbol, price):
    c = _get_components(ctx)
    symbol = symbol.upper()
    if price is None:
        asset = _configured_asset(c, symbol)
        if asset is None:
            raise click.UsageError(f"{symbol} is not configured; pass --price")
        with _user_errors():
            price = c["market_data"].fetch_price(asset).price
    with _user_errors():
        peak = c["peak_store"].reset_peak(symbol, price)
    console.print(f"{symbol} peak reset to {peak.peak_price:,.4f}")


# ──────────────────────────────────────────────────────
# ALERTS / LEVELS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Drawdown alert history."""
    pass


@alerts.command("history")
@click.option("--symbol", default=None)
@click.option("--limit", default=25, type=int)
@click.pass_context
def alerts_history(ctx, symbol, limit):
    """Show past drawdown alerts."""
    c = _get_components(ctx)
    recent = c["db"].get_recent_alerts(limit=limit, symbol=symbol.upper() if symbol else None)
    if not recent:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title="Drawdown Alerts", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Asset")
    table.add_column("Kind")
    table.add_column("Drawdown", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Peak", justify="right")
    table.add_column("Sent")
    for a in recent:
        table.add_row(a.triggered_at.strftime("%Y-%m-%d %H:%M"), a.symbol, a.kind.value,
                      f"{a.drawdown_pct:.2f}%", f"{a.current_price:,.4f}", f"{a.peak_price:,.4f}",
                      "✓" if a.notified else "✗")
    console.print(table)


@cli.group()
def levels():
    """Staged investment levels."""
    pass


@levels.command("list")
@click.option("--symbol", default=None)
@click.option("--all", "show_all", is_flag=True, help="Include levels of superseded peaks")
@click.pass_context
def levels_list(ctx, symbol, show_all):
    """Show level states (current peaks only unless --all)."""
    c = _get_components(ctx)
    peaks = {p.symbol: p.peak_price for p in c["peak_store"].list_peaks()}
    rows = c["db"].get_all_level_states(symbol.upper() if symbol else None)
    if not show_all:
        rows = [r for r in rows if peaks.get(r.symbol) == r.peak_price]
    if not rows:
        console.print("[dim]No levels reached[/dim]")
        return
    table = Table(title="Drawdown Levels", show_header=True)
    for col in ("Asset", "Level", "Buffer", "Peak", "Since", "Used"):
        table.add_column(col)
    for r in rows:
        table.add_row(r.symbol, f"{r.level:g}%", f"{r.percentage:g}%", f"{r.peak_price:,.4f}",
                      r.created_at.strftime("%Y-%m-%d %H:%M"),
                      "[green]✓[/green]" if r.used else "[yellow]pending[/yellow]")
    console.print(table)


@levels.command("use")
@click.argument("symbol")
@click.argument("level", type=float)
@click.pass_context
def levels_use(ctx, symbol, level):
    """Mark LEVEL (e.g. -10) as invested for SYMBOL's current peak."""
    c = _get_components(ctx)
    peak = c["peak_store"].get_peak(symbol.upper())
    if peak is None:
        raise click.UsageError(f"{symbol.upper()} is not provisioned")
    try:
        step = c["level_engine"].mark_used(peak.symbol, peak.asset_class, -abs(level), peak.peak_price)
    except ValueError as e:
        raise click.UsageError(str(e))
    console.print(f"[green]✓[/green] {peak.symbol} {step.level:g}% marked used")


# ──────────────────────────────────────────────────────
# DEVICES / NOTIFY
# ──────────────────────────────────────────────────────
@cli.group()
def devices():
    """Push notification device tokens."""
    pass


@devices.command("add")
@click.argument("token")
@click.option("--platform", default=None, type=click.Choice(["ios", "android"]))
@click.pass_context
def devices_add(ctx, token, platform):
    with _user_errors():
        _get_components(ctx)["devices"].register(token, platform)
    console.print("[green]✓[/green] Device registered")


@devices.command("list")
@click.pass_context
def devices_list(ctx):
    rows = _get_components(ctx)["devices"].list()
    if not rows:
        console.print("[dim]No device tokens registered[/dim]")
        return
    table = Table(title="Devices", show_header=True)
    for col in ("Token", "Platform", "Active", "Created"):
        table.add_column(col)
    for r in rows:
        table.add_row(escape(r["token"]), r["platform"] or "?", "✓" if r["active"] else "✗", r["created_at"][:16])
    console.print(table)


@devices.command("remove")
@click.argument("token")
@click.pass_context
def devices_remove(ctx, token):
    if _get_components(ctx)["devices"].unregister(token):
        console.print("Device removed")
    else:
        console.print("[yellow]Token not found[/yellow]")


@cli.group()
def notify():
    """Notification delivery."""
    pass


@notify.command("test")
@click.pass_context
def notify_test(ctx):
    """Send a test notification through every configured channel."""
    from alerts.messages import delivery_check_message
    c = _get_components(ctx)
    title, body, data = delivery_check_message()
    if c["dispatcher"].notify(c["devices"].recipients(), title, body, data):
        console.print("[green]Test notification delivered[/green]")
    else:
        console.print("[red]Some channels failed. Check logs.[/red]")
        ctx.exit(1)


# ──────────────────────────────────────────────────────
# SIMULATE
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("prices", nargs=-1, type=float, required=True)
@click.option("--symbol", default="XYZ")
@click.option("--class", "asset_class", type=click.Choice(["ETF", "CRYPTO"], case_sensitive=False), default="ETF")
@click.option("--peak", type=float, default=None, help="Starting peak (default: first price)")
@click.option("--threshold", type=float, default=None, help="Alert threshold percent")
@click.option("--step-minutes", default=5, type=int, help="Simulated minutes between observations")
@click.pass_context
def simulate(ctx, prices, symbol, asset_class, peak, threshold, step_minutes):
    """Replay PRICES for one asset through the pipeline against a scratch store."""
    from config import load_config
    from models.database import Database
    from models.assets import Asset
    from models.enums import AssetClass
    from monitor.api.replay import ReplayClock, ReplayProvider
    from utils.logger import setup_logging

    config = load_config(ctx.obj.get("config_path"))
    setup_logging("DEBUG" if ctx.obj.get("verbose") else "WARNING")
    asset = Asset(symbol=symbol.upper(), name=symbol.upper(), asset_class=AssetClass(asset_class.upper()))
    config = dict(config, assets=[{"symbol": asset.symbol, "name": asset.name, "class": asset.asset_class.value}])

    from alerts.channels import ConsoleChannel, NotificationDispatcher
    clock = ReplayClock()
    provider = ReplayProvider({asset.symbol: list(prices)}, clock=clock)
    dispatcher = NotificationDispatcher([ConsoleChannel(console=console)])

    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    try:
        with Database(db_path) as db:
            cycle = build_cycle(config, db, provider, dispatcher, clock=clock, sleep=lambda s: None)
            cycle.peak_store.provision(asset, peak if peak is not None else prices[0], clock(),
                                       threshold_pct=threshold)
            for price in prices:
                outcome = cycle.process_asset(asset, recipients=[])
                if not outcome.ok:
                    console.print(f"{clock():%H:%M} price {price:,.4f} failed: {outcome.error}", markup=False)
                else:
                    alert = outcome.alert.kind.value if outcome.alert else "-"
                    new = ", ".join(f"{s.level:g}%" for s in outcome.newly_available) or "-"
                    remind = ", ".join(f"{s.level:g}%" for s in outcome.reminders) or "-"
                    console.print(f"{clock():%H:%M} price {price:,.4f} peak {outcome.peak_price:,.4f} "
                                  f"dd {outcome.drawdown_pct:.2f}% alert {alert} new {new} remind {remind}",
                                  markup=False)
                clock.advance(step_minutes)
    finally:
        for suffix in ("", "-wal", "-shm"):
            if os.path.exists(db_path + suffix):
                os.unlink(db_path + suffix)


if __name__ == "__main__":
    cli()
