# Pydantic schemas
from vb100.schemas.result import (
    RowFields,
    RowUpsert,
    MetaPatch,
    MetaResponse,
    RowResponse,
    PeriodResponse,
    ThresholdsResponse,
)

__all__ = [
    "RowFields",
    "RowUpsert",
    "MetaPatch",
    "MetaResponse",
    "RowResponse",
    "PeriodResponse",
    "ThresholdsResponse",
]
