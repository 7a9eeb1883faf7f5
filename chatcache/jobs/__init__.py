"""Background jobs."""

from chatcache.jobs.reconciliation import (
    JobState,
    ReconciliationJob,
    ReconciliationReport,
)

__all__ = ["JobState", "ReconciliationJob", "ReconciliationReport"]
