"""Parent/child job trees with completion callbacks."""

from pushtask.batch.job import PARENT_ID_META, BatchJob
from pushtask.batch.middleware import BatchServerMiddleware
from pushtask.batch.progress import TERMINAL_STATUSES, BatchProgress, BatchStatus

__all__ = [
    "PARENT_ID_META",
    "TERMINAL_STATUSES",
    "BatchJob",
    "BatchProgress",
    "BatchServerMiddleware",
    "BatchStatus",
]
