"""
Periodic reconciliation of call records and signaling entries.

Two independent passes, both safe to re-run at any interval:

1. stale ringing: calls still ringing after RINGING_TIMEOUT_SECONDS become
   missed (one atomic write for the set), then their signaling entries are
   deleted best-effort.
2. aged terminal: calls that ended more than SIGNALING_RETENTION_SECONDS ago
   (at most AGED_CLEANUP_LIMIT per run) get their signaling entries deleted.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from django.utils import timezone

from .constants import AGED_CLEANUP_LIMIT, RINGING_TIMEOUT_SECONDS, SIGNALING_RETENTION_SECONDS
from .stores import CallStore, SignalingStore

logger = logging.getLogger("callserver")


@dataclass
class CleanupResult:
    cleared: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


@dataclass
class SweepSummary:
    missed: List[str] = field(default_factory=list)
    stale_cleanup: CleanupResult = field(default_factory=CleanupResult)
    aged_cleanup: CleanupResult = field(default_factory=CleanupResult)
    errors: List[str] = field(default_factory=list)

    def as_dict(self):
        return {
            "missedCount": len(self.missed),
            "signalingCleared": len(self.stale_cleanup.cleared) + len(self.aged_cleanup.cleared),
            "signalingFailed": len(self.stale_cleanup.failed) + len(self.aged_cleanup.failed),
            "agedChecked": len(self.aged_cleanup.cleared) + len(self.aged_cleanup.failed),
            "errors": self.errors,
        }


class LifecycleSweeper:
    def __init__(
        self,
        calls: CallStore,
        signaling: SignalingStore,
        clock: Callable[[], datetime] = timezone.now,
        ringing_timeout: int = RINGING_TIMEOUT_SECONDS,
        retention: int = SIGNALING_RETENTION_SECONDS,
        aged_limit: int = AGED_CLEANUP_LIMIT,
    ):
        self.calls = calls
        self.signaling = signaling
        self.clock = clock
        self.ringing_timeout = ringing_timeout
        self.retention = retention
        self.aged_limit = aged_limit

    def _purge_signaling(self, call_ids: List[str]) -> CleanupResult:
        result = CleanupResult()
        for call_id in call_ids:
            try:
                self.signaling.delete(call_id)
            except Exception as e:
                logger.error(f"[SWEEP] Error cleaning signaling for {call_id}: {e}")
                result.failed[call_id] = str(e)
            else:
                result.cleared.append(call_id)
        return result

    def sweep_stale_ringing(self, now: datetime):
        cutoff = now - timedelta(seconds=self.ringing_timeout)
        candidates = self.calls.find_stale_ringing(cutoff)
        if not candidates:
            return [], CleanupResult()
        missed = self.calls.mark_missed(candidates, now)
        if missed:
            logger.info(f"[SWEEP] Marked {len(missed)} calls as missed")
        return missed, self._purge_signaling(missed)

    def sweep_aged_terminal(self, now: datetime) -> CleanupResult:
        cutoff = now - timedelta(seconds=self.retention)
        return self._purge_signaling(self.calls.find_aged_terminal(cutoff, self.aged_limit))

    def sweep(self) -> SweepSummary:
        now = self.clock()
        summary = SweepSummary()
        try:
            summary.missed, summary.stale_cleanup = self.sweep_stale_ringing(now)
        except Exception as e:
            logger.exception("[SWEEP] Stale ringing pass failed")
            summary.errors.append(f"stale_ringing: {e}")
        try:
            summary.aged_cleanup = self.sweep_aged_terminal(now)
        except Exception as e:
            logger.exception("[SWEEP] Aged terminal pass failed")
            summary.errors.append(f"aged_terminal: {e}")
        return summary


def sweep_stale_calls(sweeper: LifecycleSweeper) -> SweepSummary:
    """Run one sweep. Never raises; failures are logged and reported in the summary."""
    try:
        summary = sweeper.sweep()
    except Exception as e:
        logger.exception("[SWEEP] Error in cleanup")
        return SweepSummary(errors=[str(e)])
    logger.info(f"[SWEEP] Stale calls cleanup completed: {summary.as_dict()}")
    return summary
