from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional
from datetime import datetime, timezone


NUMERIC_ROW_FIELDS = ("cert_miss", "fps", "cfn_preview", "cfn_final")
FLAG_ROW_FIELDS = ("private_flag", "inv_res_flag")

# counts and sizes are stored in INTEGER columns
MAX_COUNT = 2**31 - 1


def coerce_count(v: Any) -> Optional[int]:
    """
    Normalize a measurement value.

    "" and None mean "not measured" and become None - never 0.
    Numeric strings are accepted since the UI sends raw input text.
    """
    if v is None:
        return None
    if isinstance(v, bool):
        raise ValueError("must be a non-negative integer")
    if isinstance(v, str):
        v = v.strip()
        if v == "":
            return None
        if not v.isdigit():
            raise ValueError("must be a non-negative integer")
        v = int(v)
    if isinstance(v, float):
        if not v.is_integer():
            raise ValueError("must be a non-negative integer")
        v = int(v)
    if isinstance(v, int):
        if v < 0:
            raise ValueError("must be a non-negative integer")
        if v > MAX_COUNT:
            raise ValueError(f"must be at most {MAX_COUNT}")
        return v
    raise ValueError("must be a non-negative integer")


def normalize_product_id(v: Any) -> str:
    """Product ids are matched case-insensitively; stored upper-cased"""
    if not isinstance(v, str):
        raise ValueError("productId must be a string")
    pid = v.strip().upper()
    if not pid:
        raise ValueError("productId is required")
    if len(pid) > 255:
        raise ValueError("productId is too long")
    return pid


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class CamelModel(BaseModel):
    """JSON uses camelCase keys; Python code uses snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== Requests ====================

class RowFields(CamelModel):
    """Partial row update - only the keys actually sent are applied"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    product_name: Optional[str] = Field(None, max_length=255)
    vm_name: Optional[str] = Field(None, max_length=255)
    stage: Optional[str] = Field(None, max_length=255)
    original: Optional[str] = Field(None, max_length=255)

    cert_miss: Optional[int] = None
    fps: Optional[int] = None
    cfn_preview: Optional[int] = None
    cfn_final: Optional[int] = None

    private_flag: Optional[bool] = None
    inv_res_flag: Optional[bool] = None

    @field_validator(*NUMERIC_ROW_FIELDS, mode="before")
    @classmethod
    def _normalize_counts(cls, v: Any) -> Optional[int]:
        return coerce_count(v)


class RowUpsert(RowFields):
    """Body of PUT /results/{year}/{month}/row"""
    product_id: str

    @field_validator("product_id", mode="before")
    @classmethod
    def _normalize_product_id(cls, v: Any) -> str:
        return normalize_product_id(v)


class MetaPatch(CamelModel):
    """Body of PATCH /results/{year}/{month}/meta - lock state is not patchable"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    test_set_name: Optional[str] = Field(None, max_length=255)
    clean_sample_size: Optional[int] = Field(None, ge=0, le=MAX_COUNT)
    certification_set: Optional[int] = Field(None, ge=0, le=MAX_COUNT)
    preview: Optional[int] = Field(None, ge=0, le=MAX_COUNT)


# ==================== Responses ====================

class ThresholdsResponse(CamelModel):
    clean_sample_size: int
    a_plus: int
    a: int
    b: int
    c: int
    d: int


class MetaResponse(CamelModel):
    year: int
    month: int
    test_set_name: str
    clean_sample_size: int
    certification_set: Optional[int] = None
    preview: Optional[int] = None
    locked: bool = False
    snapshot_at: Optional[datetime] = None
    is_past: bool = False
    thresholds: ThresholdsResponse
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("snapshot_at", "created_at", "updated_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class RowResponse(CamelModel):
    product_id: str
    product_name: Optional[str] = None
    vm_name: Optional[str] = None
    stage: Optional[str] = None
    original: Optional[str] = None
    cert_miss: Optional[int] = None
    fps: Optional[int] = None
    cfn_preview: Optional[int] = None
    cfn_final: Optional[int] = None
    private_flag: bool = False
    inv_res_flag: bool = False
    grade: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    @field_validator("updated_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class PeriodResponse(CamelModel):
    meta: MetaResponse
    rows: List[RowResponse]
