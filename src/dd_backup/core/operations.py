"""Run orchestration: destinations in order, devices in order."""

import logging
from datetime import date
from typing import Optional

from .. import __util__
from ..config import Config
from .devices import DeviceResolver
from .executor import BackupExecutor
from .mount import FsckError, MountError, MountManager, UnmountError
from .planning import BackupPlan, DestinationPlan, build_plan, validate_config
from .report import Outcome, PairResult, RunReport

logger = logging.getLogger(__name__)


def _fail_destination(
    report: RunReport, plan: DestinationPlan, executor: BackupExecutor, reason: str
) -> None:
    report.record_destination_error(plan.destination.uuid, reason, aborted=True)
    for pair in plan.pairs:
        # Absent devices stay skipped, they never depended on the destination
        if pair.skipped:
            report.record(executor.run(pair))
            continue
        report.record(
            PairResult(
                outcome=Outcome.FAILED,
                serial=pair.device.serial,
                uuid=pair.destination.uuid,
                reason=f"destination not available: {reason}",
                source=pair.device_path,
            )
        )


def _backup_destination(
    plan: DestinationPlan,
    mountpath,
    runner,
    executor: BackupExecutor,
    report: RunReport,
    dry_run: bool,
) -> None:
    destination = plan.destination
    logger.info(__util__.log_heading(f"Destination {destination.uuid}"))

    if not plan.resolved:
        for pair in plan.pairs:
            report.record(executor.run(pair))
        return

    manager = MountManager(mountpath, runner, dry_run=dry_run)
    try:
        manager.acquire(plan)
    except (FsckError, MountError) as e:
        _fail_destination(report, plan, executor, str(e))
        return

    mounted = not dry_run or destination.skip_mount
    try:
        for pair in plan.pairs:
            report.record(executor.run(pair, mounted=mounted, fsavail=plan.fsavail))
    finally:
        try:
            manager.release()
        except UnmountError as e:
            report.record_destination_error(destination.uuid, str(e))


def execute_plan(
    plan: BackupPlan,
    runner,
    dry_run: bool = False,
    today: Optional[date] = None,
) -> RunReport:
    """Execute a backup plan sequentially and return the run report."""
    report = RunReport(dry_run=dry_run)
    executor = BackupExecutor(runner, dry_run=dry_run, today=today)

    for dest_plan in plan.destinations:
        _backup_destination(
            dest_plan, plan.mountpath, runner, executor, report, dry_run
        )

    return report.finish()


def run_backups(
    config: Config,
    runner,
    resolver: Optional[DeviceResolver] = None,
    dry_run: bool = False,
    today: Optional[date] = None,
) -> RunReport:
    """Validate, plan and execute all configured backups.

    Args:
        config: Loaded configuration, passed down explicitly
        runner: CommandRunner used for every external command
        resolver: Device lookup, defaults to a fresh lsblk run
        dry_run: Report intended actions without mutating anything
        today: Date embedded in the image names (defaults to today)

    Raises:
        ConfigValidationError: Before any device is touched
        DeviceResolutionError: If lsblk cannot be used
    """
    validate_config(config)
    if resolver is None:
        resolver = DeviceResolver.from_lsblk(runner)
    plan = build_plan(config, resolver)
    logger.info(
        "Planned %d device(s) on %d destination(s)",
        len(plan.pairs),
        len(plan.destinations),
    )
    return execute_plan(plan, runner, dry_run=dry_run, today=today)
