"""
Snapshot Controller - one-way lock of a results period

A period starts UNLOCKED. Taking a snapshot moves it to LOCKED and stamps
snapshot_at; there is no way back. Once locked, row and meta writes are
rejected with LockedPeriodError.

Being in the past does NOT lock a period - `is_past` is only a display hint.
"""

import enum
from datetime import date
from typing import TYPE_CHECKING, Optional, Tuple

from vb100.core.exceptions import LockedPeriodError
from vb100.core.logging_config import logger

if TYPE_CHECKING:
    from vb100.services.result_store import PeriodMeta, ResultStore


class PeriodState(str, enum.Enum):
    """Lock state of a results period"""
    UNLOCKED = "unlocked"
    LOCKED = "locked"


def is_past(year: int, month: int, today: Optional[date] = None) -> bool:
    """True when (year, month) is before the current calendar month"""
    today = today or date.today()
    return (year, month) < (today.year, today.month)


def ensure_writable(meta) -> None:
    """Raise LockedPeriodError if the period behind `meta` is locked"""
    if meta is not None and meta.locked:
        snapshot_at = meta.snapshot_at.isoformat() if meta.snapshot_at else None
        raise LockedPeriodError(meta.year, meta.month, snapshot_at)


class SnapshotController:
    """Lock/snapshot workflow on top of a ResultStore"""

    def __init__(self, store: "ResultStore"):
        self.store = store

    async def state(self, year: int, month: int) -> PeriodState:
        view = await self.store.get_period(year, month)
        return PeriodState.LOCKED if view.meta.locked else PeriodState.UNLOCKED

    async def take_snapshot(self, year: int, month: int) -> Tuple["PeriodMeta", bool]:
        """
        Lock the period.

        Idempotent: a second call returns the already-locked meta with the
        original snapshot_at and transitioned=False.
        """
        meta, transitioned = await self.store.lock_period(year, month)
        if transitioned:
            logger.log_period_event(year, month, "snapshot taken", snapshot_at=meta.snapshot_at)
        else:
            logger.debug(f"Snapshot for {year}-{month:02d} already taken at {meta.snapshot_at}")
        return meta, transitioned

    def ensure_writable(self, meta: "PeriodMeta") -> None:
        ensure_writable(meta)
