from vb100.services.grading import GradeThresholds, compute_thresholds, grade_for
from vb100.services.result_store import ResultStore, PeriodMeta, PeriodView
from vb100.services.snapshot import SnapshotController, PeriodState, is_past

__all__ = [
    # Grading
    "GradeThresholds",
    "compute_thresholds",
    "grade_for",
    # Persistence
    "ResultStore",
    "PeriodMeta",
    "PeriodView",
    # Lock workflow
    "SnapshotController",
    "PeriodState",
    "is_past",
]
