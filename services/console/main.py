# services/console/main.py
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from app.settings import settings
from core.exceptions import AcquisitionError, EvaluationError, NotificationError
from core.models import DetectionSettings
from infrastructure.external.transport import get_transport_client
from infrastructure.messaging.event_bus import get_record_bus
from services.detection.orchestrator import DetectionOrchestrator, Submission
from services.settings.store import SettingsNotifier, SettingsStore
from services.views import AnalyticsView, HistoryView, RiskAdvisorView
from shared.config.logging_config import configure_logging, logger as app_logger

logger = logging.getLogger(__name__)

console = Console()


# -----------------------------
# detect
# -----------------------------
async def run_detect(args: argparse.Namespace) -> int:
    transport = get_transport_client()
    bus = get_record_bus()
    orchestrator = DetectionOrchestrator(transport=transport, bus=bus)

    # Keep a history view mounted so the run shows up like it would on screen
    history = HistoryView(transport=transport, bus=bus)
    await history.mount()

    submissions: List[Submission] = []
    try:
        for path in args.paths:
            submissions.append(await orchestrator.submit_path(path))
    finally:
        history.unmount()

    table = Table(title="Detection results")
    table.add_column("File")
    table.add_column("State")
    table.add_column("Record id")
    table.add_column("Objects", justify="right")
    table.add_column("Avg conf.", justify="right")
    table.add_column("Error", style="red")

    for submission in submissions:
        labels = ", ".join(d.label for d in submission.detections)
        table.add_row(
            submission.image.filename,
            submission.state.value,
            submission.record_id or "-",
            f"{len(submission.detections)} {labels}".strip(),
            f"{submission.display_avg_confidence * 100:.1f}%",
            Text(str(submission.error or "")),
        )
    console.print(table)
    console.print(f"History now holds {len(history)} records")

    return 0 if all(s.is_confirmed for s in submissions) else 1


# -----------------------------
# analytics
# -----------------------------
async def run_analytics(args: argparse.Namespace) -> int:
    view = AnalyticsView(months=args.months)
    async with view:
        summary = view.summary()

    if view.stale:
        console.print("[yellow]Backend unavailable, analytics may be empty[/yellow]")

    overview = Table(title="Overview")
    overview.add_column("Metric")
    overview.add_column("Value", justify="right")
    overview.add_row("Images", str(summary.record_count))
    overview.add_row("Total detections", str(summary.total_detections))
    overview.add_row("Average accuracy", f"{summary.avg_accuracy}%")
    overview.add_row("Safety score", f"{summary.safety_score}%")
    response = f"{summary.response_time_ms}ms" if summary.response_time_ms is not None else "-"
    overview.add_row("Response time", response)
    console.print(overview)

    monthly = Table(title="Monthly volume")
    monthly.add_column("Month")
    monthly.add_column("Detections", justify="right")
    monthly.add_column("Accuracy", justify="right")
    for bucket in summary.monthly:
        monthly.add_row(f"{bucket.label} {bucket.year}", str(bucket.detections), f"{bucket.accuracy:.2f}")
    console.print(monthly)

    distribution = Table(title="Equipment distribution")
    distribution.add_column("Equipment")
    distribution.add_column("Count", justify="right")
    for item in summary.distribution:
        distribution.add_row(f"[{item.color}]{item.name}[/]", str(item.value))
    console.print(distribution)

    hourly = Table(title="Hourly activity")
    hourly.add_column("Hour")
    hourly.add_column("Detections", justify="right")
    for bucket in summary.hourly:
        if bucket.detections or args.all_hours:
            hourly.add_row(bucket.label, str(bucket.detections))
    console.print(hourly)
    return 0


# -----------------------------
# history
# -----------------------------
async def run_history(args: argparse.Namespace) -> int:
    view = HistoryView()
    async with view:
        records = view.snapshot()
        if args.export is not None:
            path = view.export_csv(args.export or None)
            console.print(f"Exported {len(records)} records to [bold]{path}[/bold]")

    table = Table(title="Detection history")
    table.add_column("Id")
    table.add_column("File")
    table.add_column("Created")
    table.add_column("Objects", justify="right")
    table.add_column("Avg conf.", justify="right")

    for record in records[:args.limit]:
        created = record.created_at.strftime('%Y-%m-%d %H:%M') if record.created_at else "-"
        confidence = f"{record.avg_confidence * 100:.0f}%" if record.avg_confidence is not None else "-"
        table.add_row(record.id or "-", record.display_name, created, str(record.detection_count), confidence)
    console.print(table)
    return 0


# -----------------------------
# risk
# -----------------------------
async def run_risk(args: argparse.Namespace) -> int:
    view = RiskAdvisorView()
    async with view:
        try:
            if args.id:
                view.select(args.id)
            assessment = await view.evaluate()
        except KeyError as e:
            console.print(f"{e}", style="red", markup=False)
            return 1
        except EvaluationError as e:
            console.print(f"Risk evaluation failed: {e}", style="red", markup=False)
            return 1

    console.print(f"[bold]{view.selected.display_name}[/bold]: "
                  f"{assessment.category.value.upper()} (score {assessment.score})")
    if assessment.explanation:
        console.print(assessment.explanation)

    if assessment.actions:
        table = Table(title="Recommended actions")
        table.add_column("Action")
        table.add_column("Details")
        for action in assessment.actions:
            table.add_row(action.title, action.description)
        console.print(table)
    return 0


# -----------------------------
# settings
# -----------------------------
async def run_settings(args: argparse.Namespace) -> int:
    store = SettingsStore()
    current = await store.load()

    if args.reset:
        current = store.reset_defaults()

    updates = {}
    if args.threshold is not None:
        updates['detection_threshold'] = args.threshold
    if args.max_objects is not None:
        updates['max_objects'] = args.max_objects
    if args.notify_email is not None:
        updates['notify_email'] = args.notify_email

    toggles = {label: True for label in args.enable or []}
    toggles.update({label: False for label in args.disable or []})
    if toggles:
        updates['objects'] = [
            o.model_copy(update={'enabled': toggles.get(o.label, o.enabled)}) for o in current.objects
        ]

    if updates or args.reset:
        try:
            current = DetectionSettings.model_validate({**current.model_dump(), **updates})
        except ValueError as e:
            console.print(f"Invalid settings: {e}", style="red", markup=False)
            return 1
        saved = await store.save(current)
        status = "saved" if saved else "[yellow]saved locally only[/yellow]"
        console.print(f"Settings {status}")

    table = Table(title=f"Settings ({store.source})")
    table.add_column("Object")
    table.add_column("Enabled")
    table.add_column("Count", justify="right")
    for obj in current.objects:
        table.add_row(obj.label, "yes" if obj.enabled else "no", str(obj.count))
    console.print(table)
    console.print(f"Threshold {current.detection_threshold}  max objects {current.max_objects}  "
                  f"notify {current.notify_email or '-'}")
    console.print(f"Detecting: {', '.join(current.enabled_labels()) or 'nothing'}")
    return 0


async def run_notify(args: argparse.Namespace) -> int:
    notifier = SettingsNotifier()
    try:
        await notifier.send(args.name, args.email, message=args.message or "", attachment=args.attachment)
    except (ValueError, AcquisitionError, NotificationError) as e:
        console.print(f"Email not sent: {e}", style="red", markup=False)
        return 1
    console.print(f"Email sent to {args.email}")
    return 0


COMMANDS = {
    'detect': run_detect,
    'analytics': run_analytics,
    'history': run_history,
    'risk': run_risk,
    'settings': run_settings,
    'notify': run_notify,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='safety-detect', description='Safety equipment detection client')
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Override the configured logging level'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    detect = subparsers.add_parser('detect', help='Upload images and run detection')
    detect.add_argument('paths', nargs='+', type=Path)

    analytics = subparsers.add_parser('analytics', help='Show detection analytics')
    analytics.add_argument('--months', type=int, default=settings.analytics_months)
    analytics.add_argument('--all-hours', action='store_true', help='Also list hours without detections')

    history = subparsers.add_parser('history', help='List stored detections')
    history.add_argument('--limit', type=int, default=20)
    history.add_argument('--export', nargs='?', const='', default=None, metavar='PATH',
                         help='Export the history as CSV')

    risk = subparsers.add_parser('risk', help='Evaluate the risk of a stored image')
    risk.add_argument('--id', help='Record id (newest record when omitted)')

    settings_parser = subparsers.add_parser('settings', help='Show or change detection settings')
    settings_parser.add_argument('--threshold', type=float)
    settings_parser.add_argument('--max-objects', type=int)
    settings_parser.add_argument('--notify-email')
    settings_parser.add_argument('--enable', nargs='+', metavar='LABEL')
    settings_parser.add_argument('--disable', nargs='+', metavar='LABEL')
    settings_parser.add_argument('--reset', action='store_true', help='Restore defaults before applying changes')

    notify = subparsers.add_parser('notify', help='Send the settings alert email')
    notify.add_argument('--name', required=True)
    notify.add_argument('--email', required=True)
    notify.add_argument('--message')
    notify.add_argument('--attachment', type=Path)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    configure_logging(
        log_level=args.log_level or settings.log_level,
        log_format=settings.log_format,
        log_file_path=settings.log_file_path,
        log_max_size=settings.log_max_size,
        log_backup_count=settings.log_backup_count,
    )

    app_logger.info("command_started", command=args.command, app=settings.app_name, version=settings.app_version)

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except KeyboardInterrupt:
        logger.info("🛑 Stopped by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
