"""Reconciliation DTOs (Pydantic v2)."""

from __future__ import annotations

from pydantic import BaseModel


class SweepReport(BaseModel):
    """Counters of one sweeper run.

    ``outbox_failed`` and ``errors`` are not corrections: they count
    work the sweeper attempted and could not finish.
    """

    stuck_queued: int = 0
    stuck_processing: int = 0
    dead_lettered: int = 0
    backfilled: int = 0
    status_fixed: int = 0
    outbox_replayed: int = 0
    outbox_failed: int = 0
    windows_pruned: int = 0
    errors: int = 0

    @property
    def total_corrections(self) -> int:
        return (
            self.stuck_queued
            + self.stuck_processing
            + self.dead_lettered
            + self.backfilled
            + self.status_fixed
            + self.outbox_replayed
        )
