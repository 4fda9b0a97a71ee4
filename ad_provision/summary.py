"""
Run outcome aggregation.

Collects the outcome of every record and produces the immutable summary that
drives the final log lines, the notification email and the JSON report.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ad_provision.models import RecordOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunSummary:
    processed: int
    skipped: int
    errored: int
    outcomes: Tuple[RecordOutcome, ...] = ()
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def runtime_seconds(self) -> float:
        if not self.started_at or not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def has_errors(self) -> bool:
        return self.errored > 0

    def problem_outcomes(self) -> List[RecordOutcome]:
        """Outcomes that were skipped or errored, in input order."""
        return [outcome for outcome in self.outcomes if outcome.reason is not None]

    def as_dict(self) -> Dict[str, Any]:
        return {
            'processed': self.processed,
            'skipped': self.skipped,
            'errored': self.errored,
            'total': self.total,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'runtime_seconds': self.runtime_seconds,
            'outcomes': [outcome.as_dict() for outcome in self.outcomes],
        }


class RunAggregator:
    """
    Counts per-record outcomes.

    Every outcome lands in exactly one of processed/skipped: processed when
    the account was (re)created, skipped otherwise. Outcomes whose reason is
    an error also increment errored, so a record whose account was created
    but whose group additions partly failed counts as processed and errored.
    """

    def __init__(self):
        self.processed = 0
        self.skipped = 0
        self.errored = 0
        self.outcomes: List[RecordOutcome] = []
        self.started_at = datetime.now()

    def record(self, outcome: RecordOutcome) -> None:
        if outcome.provisioned:
            self.processed += 1
        else:
            self.skipped += 1
        if outcome.is_error:
            self.errored += 1
        self.outcomes.append(outcome)

    def summary(self) -> RunSummary:
        return RunSummary(
            processed=self.processed,
            skipped=self.skipped,
            errored=self.errored,
            outcomes=tuple(self.outcomes),
            started_at=self.started_at,
            finished_at=datetime.now(),
        )


def log_summary(summary: RunSummary) -> None:
    """Log final run statistics."""
    runtime_str = f"{summary.runtime_seconds:.2f} seconds"
    if summary.runtime_seconds > 60:
        minutes = int(summary.runtime_seconds // 60)
        seconds = summary.runtime_seconds % 60
        runtime_str = f"{minutes}m {seconds:.1f}s"

    logger.info("=== Provisioning Summary ===")
    logger.info(f"Total runtime: {runtime_str}")
    logger.info(f"Records: {summary.total}")
    logger.info(f"Processed: {summary.processed}")
    logger.info(f"Skipped: {summary.skipped}")
    logger.info(f"Errors: {summary.errored}")
    for outcome in summary.problem_outcomes():
        logger.info(f"  {outcome.account or '<unnamed>'}: {outcome.classification.value} "
                    f"({outcome.reason.code}) {outcome.detail}".rstrip())
