"""
Monthly Results API
Period data, row autosave, period settings, snapshot lock and grading thresholds
"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vb100.core.database import get_db
from vb100.models.result import ResultRow
from vb100.schemas.result import (
    MetaPatch,
    MetaResponse,
    PeriodResponse,
    RowResponse,
    RowUpsert,
    ThresholdsResponse,
)
from vb100.services.grading import GradeThresholds, compute_thresholds, grade_for
from vb100.services.result_store import PeriodMeta, ResultStore
from vb100.services.snapshot import SnapshotController, is_past

router = APIRouter(prefix="/results", tags=["Results"])


# ==================== Response builders ====================

def thresholds_response(clean_sample_size: int, thresholds: GradeThresholds) -> ThresholdsResponse:
    return ThresholdsResponse(
        clean_sample_size=clean_sample_size,
        a_plus=thresholds.ap,
        a=thresholds.a,
        b=thresholds.b,
        c=thresholds.c,
        d=thresholds.d,
    )


def meta_response(meta: PeriodMeta) -> MetaResponse:
    thresholds = compute_thresholds(meta.clean_sample_size)
    return MetaResponse(
        year=meta.year,
        month=meta.month,
        test_set_name=meta.test_set_name,
        clean_sample_size=meta.clean_sample_size,
        certification_set=meta.certification_set,
        preview=meta.preview,
        locked=meta.locked,
        snapshot_at=meta.snapshot_at,
        is_past=is_past(meta.year, meta.month),
        thresholds=thresholds_response(meta.clean_sample_size, thresholds),
        created_at=meta.created_at,
        updated_at=meta.updated_at,
    )


def row_response(row: ResultRow, thresholds: GradeThresholds) -> RowResponse:
    return RowResponse(
        product_id=row.product_id,
        product_name=row.product_name,
        vm_name=row.vm_name,
        stage=row.stage,
        original=row.original,
        cert_miss=row.cert_miss,
        fps=row.fps,
        cfn_preview=row.cfn_preview,
        cfn_final=row.cfn_final,
        private_flag=bool(row.private_flag),
        inv_res_flag=bool(row.inv_res_flag),
        grade=grade_for(row.cert_miss, thresholds),
        updated_at=row.updated_at,
    )


# ==================== Grading ====================
# Declared before /{year}/{month} so "grading" is not parsed as a year

@router.get("/grading/thresholds", response_model=ThresholdsResponse)
async def get_thresholds(
    clean_sample_size: float = Query(..., alias="cleanSampleSize"),
):
    """Grade cut-points for a clean sample size"""
    thresholds = compute_thresholds(clean_sample_size)
    return thresholds_response(int(math.floor(clean_sample_size)), thresholds)


# ==================== Periods ====================

@router.get("/{year}/{month}", response_model=PeriodResponse)
async def get_period(
    year: int,
    month: int,
    product_id: Optional[str] = Query(None, alias="productId"),
    db: AsyncSession = Depends(get_db),
):
    """
    Meta and rows of a period.

    A period that was never written comes back with default settings and
    no rows; nothing is persisted by this call.
    """
    view = await ResultStore(db).get_period(year, month, product_id=product_id)
    thresholds = compute_thresholds(view.meta.clean_sample_size)
    return PeriodResponse(
        meta=meta_response(view.meta),
        rows=[row_response(row, thresholds) for row in view.rows],
    )


@router.put("/{year}/{month}/row", response_model=RowResponse)
async def upsert_row(
    year: int,
    month: int,
    body: RowUpsert,
    db: AsyncSession = Depends(get_db),
):
    """Create or merge one product row. Only the fields sent are changed. 423 once locked."""
    store = ResultStore(db)
    row = await store.upsert_row(year, month, body.product_id, body)
    meta = await store.get_meta(year, month)
    return row_response(row, compute_thresholds(meta.clean_sample_size))


@router.patch("/{year}/{month}/meta", response_model=MetaResponse)
async def patch_meta(
    year: int,
    month: int,
    body: MetaPatch,
    db: AsyncSession = Depends(get_db),
):
    """Update period settings. 423 once locked."""
    meta = await ResultStore(db).patch_meta(year, month, body)
    return meta_response(meta)


@router.post("/{year}/{month}/snapshot", response_model=MetaResponse)
async def take_snapshot(
    year: int,
    month: int,
    db: AsyncSession = Depends(get_db),
):
    """Lock the period. Calling again returns the original snapshot time."""
    meta, _ = await SnapshotController(ResultStore(db)).take_snapshot(year, month)
    return meta_response(meta)
