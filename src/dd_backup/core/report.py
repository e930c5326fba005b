"""Per-pair outcomes and the run summary."""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .. import __util__

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """Result of one (destination, device) pair."""

    COMPLETED = "completed"
    DRY_RUN = "dry-run"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class PairResult:
    """Tagged result of a pair, threaded back to the RunReport."""

    outcome: Outcome
    serial: str
    uuid: str
    reason: str = ""
    source: Optional[str] = None
    target: Optional[Path] = None
    size_bytes: Optional[int] = None
    deleted: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class RunReport:
    """Aggregates pair results and destination level errors of one run."""

    dry_run: bool = False
    started_at: float = field(default_factory=time.time)
    completed_at: float = 0.0
    results: list[PairResult] = field(default_factory=list)
    destination_errors: list[tuple[str, str]] = field(default_factory=list)
    aborted_destinations: list[str] = field(default_factory=list)

    def record(self, result: PairResult) -> PairResult:
        """Add a result and report it."""
        self.results.append(result)
        ident = f"(serial {result.serial}, uuid {result.uuid})"
        if result.outcome is Outcome.COMPLETED:
            logger.info("Backup completed %s -> %s", ident, result.target)
        elif result.outcome is Outcome.DRY_RUN:
            logger.info(
                "Would back up %s to %s (%s) %s",
                result.source,
                result.target,
                __util__.format_size(result.size_bytes),
                ident,
            )
        elif result.outcome is Outcome.SKIPPED:
            logger.warning("Skipped %s: %s", ident, result.reason)
        else:
            logger.error("Backup failed %s: %s", ident, result.reason)
        for error in result.errors:
            logger.error("%s %s", ident, error)
        return result

    def record_destination_error(
        self, uuid: str, message: str, aborted: bool = False
    ) -> None:
        """Report an error that aborted or affected a whole destination."""
        self.destination_errors.append((uuid, message))
        if aborted:
            self.aborted_destinations.append(uuid)
        logger.error("Destination %s: %s", uuid, message)

    def _count(self, *outcomes: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome in outcomes)

    @property
    def completed(self) -> int:
        return self._count(Outcome.COMPLETED, Outcome.DRY_RUN)

    @property
    def skipped(self) -> int:
        return self._count(Outcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(Outcome.FAILED)

    @property
    def duration(self) -> float:
        if self.completed_at:
            return self.completed_at - self.started_at
        return time.time() - self.started_at

    def finish(self) -> "RunReport":
        self.completed_at = time.time()
        return self

    def summary_table(self) -> Table:
        title = "Backup summary (dry run)" if self.dry_run else "Backup summary"
        table = Table(title=title)
        table.add_column("Serial")
        table.add_column("UUID")
        table.add_column("Result")
        table.add_column("Details")

        styles = {
            Outcome.COMPLETED: "green",
            Outcome.DRY_RUN: "cyan",
            Outcome.SKIPPED: "yellow",
            Outcome.FAILED: "red",
        }
        for r in self.results:
            details = r.reason or (str(r.target) if r.target else "")
            if r.deleted:
                details += f" (rotated out {len(r.deleted)})"
            table.add_row(
                Text(r.serial),
                Text(r.uuid),
                Text(r.outcome.value, style=styles[r.outcome]),
                Text(details),
            )
        return table

    def print_summary(self, console: Console) -> None:
        console.print(self.summary_table())
        console.print(
            f"{self.completed} completed, {self.skipped} skipped, "
            f"{self.failed} failed in {self.duration:.1f}s"
        )
        for uuid, message in self.destination_errors:
            console.print(Text.assemble((f"Destination {uuid}: ", "red"), message))
