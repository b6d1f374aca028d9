# Re-export all models for convenient imports
from vb100.models.result import ResultPeriodMeta, ResultRow, period_key, row_key

__all__ = [
    "ResultPeriodMeta",
    "ResultRow",
    "period_key",
    "row_key",
]
