import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .automation.engine import ReconciliationResult
from .models import BadgeId, MemberId, TenantId

log = logging.getLogger("uvicorn.error").getChild("badges.sync")

ASSIGN = "assign"
REVOKE = "revoke"


@dataclass(frozen=True)
class SyncOperation:
    action: str
    badge_id: BadgeId
    member_id: MemberId


FailureHandler = Callable[[TenantId, List[SyncOperation]], None]

_STOP = object()


class _TenantWorker:
    """
    Applies one tenant's badge operations in order, one remote call at a time,
    pausing ``delay`` seconds between calls.
    """
    def __init__(self, tenant_id: TenantId, client, delay: float, maxsize: int, on_failed: Callable[[SyncOperation], None]):
        self.tenant_id = tenant_id
        self.client = client
        self.delay = delay
        self.on_failed = on_failed
        self.queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self._stopping = threading.Event()
        self.thread = threading.Thread(target=self._loop, name=f"badge-sync-{tenant_id}", daemon=True)

    def start(self) -> None:
        self.thread.start()

    def stop(self, timeout: float) -> None:
        self._stopping.set()
        # the tenant is gone; whatever is still queued is discarded
        while True:
            try:
                self.queue.get_nowait()
                self.queue.task_done()
            except queue.Empty:
                break
        try:
            self.queue.put_nowait(_STOP)
        except queue.Full:
            pass
        self.thread.join(timeout)

    def _loop(self) -> None:
        while not self._stopping.is_set():
            item = self.queue.get()
            try:
                if item is _STOP:
                    return
                self._apply(item)
            finally:
                self.queue.task_done()
            if self._stopping.wait(self.delay):
                return

    def _apply(self, op: SyncOperation) -> None:
        try:
            if op.action == ASSIGN:
                self.client.assign_badge(op.member_id, op.badge_id)
            else:
                self.client.revoke_badge(op.member_id, op.badge_id)
            log.info("Applied %s of badge %s for member %s (network=%s)", op.action, op.badge_id, op.member_id, self.tenant_id)
        except Exception:
            log.exception("Failed to %s badge %s for member %s (network=%s)", op.action, op.badge_id, op.member_id, self.tenant_id)
            if not self._stopping.is_set():
                self.on_failed(op)


class BadgeSync:
    """Pushes assign/revoke operations to the platform through per-tenant queues.

    ``submit`` never waits: an operation that does not fit in the tenant's
    queue is handed back to the caller. Operations whose remote call fails are
    passed to ``on_failed`` so the caller can mark them as not applied.
    """

    def __init__(
        self,
        client_factory: Callable[[TenantId], object],
        delay: float = 1.0,
        queue_size: int = 1000,
        on_failed: Optional[FailureHandler] = None,
    ):
        self.client_factory = client_factory
        self.delay = delay
        self.queue_size = queue_size
        self.on_failed = on_failed
        self._workers: Dict[TenantId, _TenantWorker] = {}
        self._lock = threading.Lock()

    def _worker(self, tenant_id: TenantId) -> _TenantWorker:
        with self._lock:
            worker = self._workers.get(tenant_id)
            if worker is None:
                worker = _TenantWorker(
                    tenant_id,
                    self.client_factory(tenant_id),
                    self.delay,
                    self.queue_size,
                    lambda op: self._failed(tenant_id, op),
                )
                worker.start()
                self._workers[tenant_id] = worker
            return worker

    def _failed(self, tenant_id: TenantId, op: SyncOperation) -> None:
        if self.on_failed is None:
            return
        try:
            self.on_failed(tenant_id, [op])
        except Exception:
            log.exception("Failure handler raised for %s (network=%s)", op, tenant_id)

    def submit(self, tenant_id: TenantId, op: SyncOperation) -> bool:
        """Queue one operation; returns False when the tenant's queue is full."""
        try:
            self._worker(tenant_id).queue.put_nowait(op)
            return True
        except queue.Full:
            log.warning("Badge sync queue full for network %s; dropped %s", tenant_id, op)
            return False

    def submit_result(self, tenant_id: TenantId, result: ReconciliationResult) -> List[SyncOperation]:
        """Queue revokes, then assigns. Returns the operations that were dropped."""
        dropped: List[SyncOperation] = []
        ops = [SyncOperation(REVOKE, b, m) for b, members in result.revoke.items() for m in members]
        ops += [SyncOperation(ASSIGN, b, m) for b, members in result.assign.items() for m in members]
        for op in ops:
            if not self.submit(tenant_id, op):
                dropped.append(op)
        return dropped

    def pending(self, tenant_id: TenantId) -> int:
        worker = self._workers.get(tenant_id)
        return worker.queue.qsize() if worker else 0

    def join(self, tenant_id: TenantId) -> None:
        worker = self._workers.get(tenant_id)
        if worker:
            worker.queue.join()

    def stop(self, tenant_id: TenantId, timeout: Optional[float] = None) -> None:
        with self._lock:
            worker = self._workers.pop(tenant_id, None)
        if worker:
            worker.stop(timeout if timeout is not None else self.delay + 1)

    def shutdown(self) -> None:
        for tenant_id in list(self._workers):
            self.stop(tenant_id)
