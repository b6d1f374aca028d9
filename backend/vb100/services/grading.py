"""
Grading Calculator - VB100 grade bands from the clean sample size

Cut-points are the number of false positives / misses a product may have
and still earn a grade, derived from the fraction of the clean set it must
get right:

    A+  99.5%     A  97%     B  90%     C  85%     D  75%     else F

Pure functions only; safe to call from request handlers, the CLI and tests.
"""

import math
from typing import NamedTuple, Optional, Union

from vb100.core.exceptions import ValidationError
from vb100.schemas.result import MAX_COUNT


# Fraction of the clean sample that must be handled correctly for each band
BAND_FRACTIONS = (
    ("A+", 0.995),
    ("A", 0.97),
    ("B", 0.90),
    ("C", 0.85),
    ("D", 0.75),
)

FAIL_GRADE = "F"


class GradeThresholds(NamedTuple):
    """Upper (inclusive) count limits for each grade band"""
    ap: int
    a: int
    b: int
    c: int
    d: int

    def as_labels(self) -> dict:
        """Map of band label to cut-point, e.g. {'A+': 500, ...}"""
        return dict(zip((label for label, _ in BAND_FRACTIONS), self))


def _round_half_up(value: float) -> int:
    # Math.round semantics: .5 always rounds up
    return int(math.floor(value + 0.5))


def compute_thresholds(clean_sample_size: Union[int, float]) -> GradeThresholds:
    """
    Compute the five grade cut-points for a clean sample size.

    Args:
        clean_sample_size: Number of clean (non-malicious) samples, >= 0

    Returns:
        GradeThresholds(ap, a, b, c, d)

    Raises:
        ValidationError: if the size is negative or not a finite number

    Small sizes may produce equal neighbouring cut-points; that is left as is.
    """
    if isinstance(clean_sample_size, bool) or not isinstance(clean_sample_size, (int, float)):
        raise ValidationError("cleanSampleSize must be a number", field="cleanSampleSize")
    # checked before isfinite, which overflows on ints beyond float range
    if clean_sample_size > MAX_COUNT:
        raise ValidationError(f"cleanSampleSize must be at most {MAX_COUNT}", field="cleanSampleSize")
    if not math.isfinite(clean_sample_size) or clean_sample_size < 0:
        raise ValidationError("cleanSampleSize must be a non-negative number", field="cleanSampleSize")

    t = math.floor(clean_sample_size)
    return GradeThresholds(*(_round_half_up(t - t * fraction) for _, fraction in BAND_FRACTIONS))


def grade_for(count: Optional[int], thresholds: GradeThresholds) -> Optional[str]:
    """
    Grade label for a false-positive / miss count.

    Returns None when the count has not been measured yet.
    """
    if count is None:
        return None
    for (label, _), limit in zip(BAND_FRACTIONS, thresholds):
        if count <= limit:
            return label
    return FAIL_GRADE
