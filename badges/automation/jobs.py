import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set

from ..models import MemberId, Post, TenantState

_base_logger = logging.getLogger("uvicorn.error")
log = _base_logger.getChild("badges.automation.jobs")


def run_job(name: str, worker: Callable[[], None]) -> bool:
  log.debug("Running badge job '%s'", name)
  try:
    worker()
  except Exception:
    log.exception("Badge automation job '%s' failed", name)
    return False
  log.debug("Finished badge job '%s'", name)
  return True


def evict_expired_posts(
  state: TenantState,
  max_window_days: int,
  now: Optional[datetime] = None,
) -> Set[MemberId]:
  """Drop posts that fell out of the largest tracked window.

  Walks the log oldest-first and stops at the first post still inside the
  window. Returns the creators of the evicted posts.
  """
  now = now or datetime.now(timezone.utc)
  max_age = timedelta(days=max_window_days)
  evicted: List[Post] = []
  for post in state.posts:
    if now - post.published_at < max_age:
      break
    evicted.append(post)

  affected: Set[MemberId] = set()
  for post in evicted:
    state.posts.remove(post.id)
    if post.created_by_id:
      affected.add(post.created_by_id)

  if evicted:
    log.info("Evicted %d expired posts affecting %d members", len(evicted), len(affected))
  return affected
