"""
Results Models - Monthly VB100 test results
Used for: per-period configuration, snapshot lock, and per-product result rows
"""

from sqlalchemy import Column, String, DateTime, Integer, Boolean, Index, UniqueConstraint
from sqlalchemy.sql import func

from vb100.core.database import Base


def period_key(year: int, month: int) -> str:
    """Primary key of a period meta record, e.g. '2025-6'"""
    return f"{year}-{month}"


def row_key(year: int, month: int, product_id: str) -> str:
    """Primary key of a result row, e.g. '2025-6-P1'"""
    return f"{year}-{month}-{product_id}"


class ResultPeriodMeta(Base):
    """
    One record per (year, month).

    Once `locked` is set the period's rows and settings are frozen; the
    lock is one-way and `snapshot_at` records when it happened.
    """
    __tablename__ = "results_meta"

    __table_args__ = (
        UniqueConstraint('year', 'month', name='uq_results_meta_period'),
    )

    id = Column(String(16), primary_key=True)  # 'YYYY-M'
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)

    # Settings
    test_set_name = Column(String(255), nullable=True)
    clean_sample_size = Column(Integer, nullable=True)
    certification_set = Column(Integer, nullable=True)
    preview = Column(Integer, nullable=True)

    # Snapshot lock
    locked = Column(Boolean, nullable=False, default=False)
    snapshot_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ResultPeriodMeta {self.id}{' locked' if self.locked else ''}>"


class ResultRow(Base):
    """Result row for one product in one period"""
    __tablename__ = "results_rows"

    __table_args__ = (
        UniqueConstraint('year', 'month', 'product_id', name='uq_results_rows_period_product'),
        Index('ix_results_rows_period', 'year', 'month'),
    )

    id = Column(String(300), primary_key=True)  # 'YYYY-M-PRODUCTID'
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    product_id = Column(String(255), nullable=False)  # upper-cased

    # Descriptive
    product_name = Column(String(255), nullable=True)
    vm_name = Column(String(255), nullable=True)
    stage = Column(String(255), nullable=True)
    original = Column(String(255), nullable=True)

    # Measurements (NULL = not yet measured)
    cert_miss = Column(Integer, nullable=True)
    fps = Column(Integer, nullable=True)
    cfn_preview = Column(Integer, nullable=True)
    cfn_final = Column(Integer, nullable=True)

    # Highlighting markers
    private_flag = Column(Boolean, nullable=False, default=False)
    inv_res_flag = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ResultRow {self.id}>"
