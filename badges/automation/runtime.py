import logging
import threading
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..models import TenantId

_base_logger = logging.getLogger("uvicorn.error")
log = _base_logger.getChild("badges.automation.runtime")

# nightly, 00:00 UTC
SWEEP_HOUR = 0
SWEEP_MINUTE = 0


def _job_id(tenant_id: TenantId) -> str:
  return f"time-window-{tenant_id}"


class TimeWindowScheduler:
  """Owns one daily time-window job per tenant."""

  def __init__(self, scheduler: Optional[BackgroundScheduler] = None):
    self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")
    self._lock = threading.Lock()

  def _ensure_started(self):
    if not self._scheduler.running:
      self._scheduler.start()
      log.info("Time window scheduler started.")

  def start(self, tenant_id: TenantId, callback: Callable[[], None]):
    with self._lock:
      self._ensure_started()
      trigger = CronTrigger(hour=SWEEP_HOUR, minute=SWEEP_MINUTE, timezone="UTC")
      self._scheduler.add_job(
        callback,
        trigger,
        id=_job_id(tenant_id),
        max_instances=1,
        coalesce=True,
        replace_existing=True,
      )
    log.info("Time window shifting job created for network %s", tenant_id)

  def stop(self, tenant_id: TenantId) -> bool:
    with self._lock:
      job = self._scheduler.get_job(_job_id(tenant_id))
      if not job:
        log.info("Time window shifting job not found for network %s", tenant_id)
        return False
      job.remove()
    log.info("Time window shifting job deleted for network %s", tenant_id)
    return True

  def is_running(self, tenant_id: TenantId) -> bool:
    return self._scheduler.get_job(_job_id(tenant_id)) is not None

  def next_run_time(self, tenant_id: TenantId):
    job = self._scheduler.get_job(_job_id(tenant_id))
    return job.next_run_time if job else None

  def shutdown(self):
    with self._lock:
      if not self._scheduler.running:
        return
      try:
        self._scheduler.shutdown(wait=False)
        log.info("Time window scheduler stopped.")
      except Exception:
        log.exception("Failed to stop time window scheduler")
