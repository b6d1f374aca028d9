"""
Result Store - persistence for monthly results (results_meta / results_rows)

Reads never write: a period with nothing stored comes back as unpersisted
defaults. The first write to a period (row upsert, meta patch, snapshot)
materializes the meta record.

Writes follow one pattern so a snapshot can never interleave with them:

    1. INSERT ... ON CONFLICT DO NOTHING the default meta record
    2. SELECT the meta FOR UPDATE and reject if locked
    3. write, commit

On PostgreSQL step 2 takes a row lock that lock_period's UPDATE waits on.
SQLite ignores FOR UPDATE, but step 1 already holds the database write lock.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vb100.core.config import settings
from vb100.core.database import insert_ignore
from vb100.core.exceptions import InvalidPeriodError, ValidationError, VB100Error, TransientStoreError
from vb100.core.logging_config import logger
from vb100.models.result import ResultPeriodMeta, ResultRow, period_key, row_key
from vb100.schemas.result import FLAG_ROW_FIELDS, MetaPatch, RowFields, normalize_product_id
from vb100.services.snapshot import ensure_writable


@dataclass
class PeriodMeta:
    """Period settings and lock state, with defaults filled in"""
    year: int
    month: int
    test_set_name: str
    clean_sample_size: int
    certification_set: Optional[int] = None
    preview: Optional[int] = None
    locked: bool = False
    snapshot_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    persisted: bool = False

    @classmethod
    def defaults(cls, year: int, month: int) -> "PeriodMeta":
        return cls(
            year=year,
            month=month,
            test_set_name=settings.DEFAULT_TEST_SET_NAME,
            clean_sample_size=settings.DEFAULT_CLEAN_SAMPLE_SIZE,
        )

    @classmethod
    def from_record(cls, record: ResultPeriodMeta) -> "PeriodMeta":
        # NULL settings fall back to the configured defaults
        return cls(
            year=record.year,
            month=record.month,
            test_set_name=record.test_set_name if record.test_set_name is not None else settings.DEFAULT_TEST_SET_NAME,
            clean_sample_size=record.clean_sample_size if record.clean_sample_size is not None else settings.DEFAULT_CLEAN_SAMPLE_SIZE,
            certification_set=record.certification_set,
            preview=record.preview,
            locked=bool(record.locked),
            snapshot_at=record.snapshot_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
            persisted=True,
        )


@dataclass
class PeriodView:
    """Everything stored for one period"""
    meta: PeriodMeta
    rows: List[ResultRow] = field(default_factory=list)


def _validate_fields(model: type, fields: Any) -> Dict[str, Any]:
    """Validate a partial update and return only the keys that were sent (snake_case)"""
    if isinstance(fields, BaseModel):
        fields = fields.model_dump(exclude_unset=True)
    if not isinstance(fields, Mapping):
        raise ValidationError("Fields must be an object")
    try:
        parsed = model.model_validate(dict(fields))
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"{loc}: {first.get('msg')}" if loc else first.get("msg"), field=loc or None) from e
    return parsed.model_dump(exclude_unset=True)


class ResultStore:
    """
    Service for reading and writing monthly results.

    One instance per AsyncSession (i.e. per request). Every write commits
    its own transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Validation ====================

    @staticmethod
    def validate_period(year: Any, month: Any) -> None:
        """Year must be 4 digits and month 1..12"""
        if isinstance(year, bool) or isinstance(month, bool):
            raise InvalidPeriodError(year, month)
        if not isinstance(year, int) or not isinstance(month, int):
            raise InvalidPeriodError(year, month)
        if not (1000 <= year <= 9999) or not (1 <= month <= 12):
            raise InvalidPeriodError(year, month)

    @staticmethod
    def normalize_product_id(product_id: Any) -> str:
        try:
            return normalize_product_id(product_id)
        except ValueError as e:
            raise ValidationError(str(e), field="productId") from e

    # ==================== Reads ====================

    async def get_meta(self, year: int, month: int) -> PeriodMeta:
        """Stored meta, or unpersisted defaults. Never writes."""
        self.validate_period(year, month)
        record = await self._run(self._select_meta(year, month), "get_meta")
        return PeriodMeta.from_record(record) if record else PeriodMeta.defaults(year, month)

    async def get_period(self, year: int, month: int, product_id: Optional[str] = None) -> PeriodView:
        """
        Meta and rows for one period.

        Args:
            year: 4-digit year
            month: 1..12
            product_id: Optional filter on a single product

        Returns:
            PeriodView - defaults with no rows if nothing is stored yet
        """
        meta = await self.get_meta(year, month)
        rows = await self.list_rows(year, month, product_id=product_id)
        return PeriodView(meta=meta, rows=rows)

    async def list_rows(self, year: int, month: int, product_id: Optional[str] = None) -> List[ResultRow]:
        self.validate_period(year, month)
        query = (
            select(ResultRow)
            .where(ResultRow.year == year, ResultRow.month == month)
            .order_by(ResultRow.product_id)
            .execution_options(populate_existing=True)
        )
        # a blank filter means no filter
        if product_id is not None and str(product_id).strip():
            query = query.where(ResultRow.product_id == self.normalize_product_id(product_id))

        async def _list():
            result = await self.db.execute(query)
            return list(result.scalars().all())

        return await self._run(_list(), "list_rows")

    async def get_row(self, year: int, month: int, product_id: str) -> Optional[ResultRow]:
        self.validate_period(year, month)
        pid = self.normalize_product_id(product_id)
        return await self._run(self._select_row(year, month, pid), "get_row")

    # ==================== Writes ====================

    async def upsert_row(self, year: int, month: int, product_id: str, fields: Any) -> ResultRow:
        """
        Create the row if absent, then merge the given fields into it.

        Keys not present in `fields` are left untouched. Numeric fields sent
        as None or "" are cleared (NULL), never zeroed.

        Raises:
            LockedPeriodError: period has been snapshotted; nothing is written
            ValidationError: bad period, product id or field value
            TransientStoreError: database failure
        """
        self.validate_period(year, month)
        pid = self.normalize_product_id(product_id)
        if isinstance(fields, BaseModel):
            fields = fields.model_dump(exclude_unset=True)
        if isinstance(fields, Mapping):
            # the product id travels in the body too; it is not a mergeable field
            fields = {k: v for k, v in fields.items() if k not in ("productId", "product_id")}
        changes = _validate_fields(RowFields, fields if fields is not None else {})
        for flag in FLAG_ROW_FIELDS:
            if flag in changes and changes[flag] is None:
                changes[flag] = False

        key = row_key(year, month, pid)
        start = time.time()

        async def _write():
            await self._writable_meta(year, month)
            await self.db.execute(insert_ignore(self.db, ResultRow.__table__, {
                "id": key,
                "year": year,
                "month": month,
                "product_id": pid,
                "private_flag": False,
                "inv_res_flag": False,
            }))
            if changes:
                await self.db.execute(
                    update(ResultRow)
                    .where(ResultRow.id == key)
                    .values(**changes, updated_at=datetime.now(timezone.utc))
                )
            await self.db.commit()

        await self._run_write(_write(), "upsert_row")
        logger.log_db_query("upsert", ResultRow.__tablename__, (time.time() - start) * 1000, rows_affected=1)
        logger.log_period_event(year, month, "row saved", product_id=pid, fields=sorted(changes))

        return await self.get_row(year, month, pid)

    async def patch_meta(self, year: int, month: int, fields: Any) -> PeriodMeta:
        """
        Merge test set name, clean sample size, certification set and preview
        sizes into the period meta. Lock state is never changed here.

        Raises:
            LockedPeriodError: period has been snapshotted
            ValidationError: unknown key or bad value
        """
        self.validate_period(year, month)
        changes = _validate_fields(MetaPatch, fields if fields is not None else {})
        key = period_key(year, month)

        async def _write():
            await self._writable_meta(year, month)
            if changes:
                await self.db.execute(
                    update(ResultPeriodMeta)
                    .where(ResultPeriodMeta.id == key)
                    .values(**changes, updated_at=datetime.now(timezone.utc))
                )
            await self.db.commit()

        await self._run_write(_write(), "patch_meta")
        logger.log_period_event(year, month, "meta patched", fields=sorted(changes))

        return await self.get_meta(year, month)

    async def lock_period(self, year: int, month: int) -> Tuple[PeriodMeta, bool]:
        """
        Lock the period, stamping snapshot_at exactly once.

        The conditional UPDATE (locked = false) is what makes this safe under
        concurrency: of any number of callers only one sees rowcount == 1.

        Returns:
            (meta, transitioned) - transitioned is True only for the caller
            that performed the lock
        """
        self.validate_period(year, month)
        key = period_key(year, month)
        now = datetime.now(timezone.utc)

        async def _lock() -> bool:
            await self.db.execute(insert_ignore(self.db, ResultPeriodMeta.__table__, self._default_meta_values(year, month)))
            result = await self.db.execute(
                update(ResultPeriodMeta)
                .where(ResultPeriodMeta.id == key, ResultPeriodMeta.locked.is_(False))
                .values(locked=True, snapshot_at=now, updated_at=now)
            )
            await self.db.commit()
            return result.rowcount == 1

        transitioned = await self._run_write(_lock(), "lock_period")
        return await self.get_meta(year, month), transitioned

    # ==================== Internals ====================

    @staticmethod
    def _default_meta_values(year: int, month: int) -> Dict[str, Any]:
        return {
            "id": period_key(year, month),
            "year": year,
            "month": month,
            "test_set_name": settings.DEFAULT_TEST_SET_NAME,
            "clean_sample_size": settings.DEFAULT_CLEAN_SAMPLE_SIZE,
            "locked": False,
        }

    async def _select_meta(self, year: int, month: int, for_update: bool = False) -> Optional[ResultPeriodMeta]:
        query = (
            select(ResultPeriodMeta)
            .where(ResultPeriodMeta.id == period_key(year, month))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _select_row(self, year: int, month: int, pid: str) -> Optional[ResultRow]:
        result = await self.db.execute(
            select(ResultRow)
            .where(ResultRow.id == row_key(year, month, pid))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _writable_meta(self, year: int, month: int) -> ResultPeriodMeta:
        """Materialize the meta record, lock it for this transaction, reject if locked"""
        await self.db.execute(insert_ignore(self.db, ResultPeriodMeta.__table__, self._default_meta_values(year, month)))
        meta = await self._select_meta(year, month, for_update=True)
        ensure_writable(meta)
        return meta

    async def _run(self, awaitable, operation: str):
        try:
            return await awaitable
        except SQLAlchemyError as e:
            logger.log_error_with_context(e, context=f"ResultStore.{operation}")
            raise TransientStoreError(f"Result store unavailable during {operation}") from e

    async def _run_write(self, awaitable, operation: str):
        try:
            return await awaitable
        except VB100Error:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.log_error_with_context(e, context=f"ResultStore.{operation}")
            raise TransientStoreError(f"Result store unavailable during {operation}") from e
        except Exception:
            await self.db.rollback()
            raise
