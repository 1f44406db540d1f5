"""Badge automation package.

Holds the bucket computation and badge diffing used by every reconciliation
cycle, plus the nightly job that shifts each tenant's time window.
"""

from .engine import ReconciliationResult, compute_member_buckets, diff_badges
from .jobs import evict_expired_posts, run_job
from .runtime import TimeWindowScheduler

__all__ = [
  "ReconciliationResult",
  "TimeWindowScheduler",
  "compute_member_buckets",
  "diff_badges",
  "evict_expired_posts",
  "run_job",
]
