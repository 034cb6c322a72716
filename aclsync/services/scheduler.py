"""
Reconciliation scheduler.

Holds a work queue of managed ACL ids and drives the observe/create/update/
delete operations for each of them. The queue guarantees that an id is never
processed by two workers at once; failed passes are retried with per-item
exponential backoff, and every stored ACL is re-queued on a fixed interval so
out-of-band changes on the cluster are noticed.
"""
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Dict, Hashable, List, Optional

from fastapi import Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from aclsync.core.config import Settings, get_settings
from aclsync.core.errors import ExternalCreateError, ReconcileError
from aclsync.models.access_control_list import AccessControlListResource
from aclsync.services import acl_service
from aclsync.services.acl_external import AccessControlListExternal
from aclsync.services.connector import Connector
from aclsync.services.event_service import EventReason, EventType, record_event
from aclsync.utils.acl.acl_models import (
    ManagedAccessControlList,
    creating,
    deleting,
    reconcile_error,
    reconcile_success,
)

logger = logging.getLogger(__name__)


class WorkQueue:
    """
    FIFO of item ids with de-duplication.

    An item added while queued is collapsed into the queued entry. An item
    added while being processed is queued again once ``done`` is called for
    it, never handed to a second worker in the meantime.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._queue: deque = deque()
        self._dirty = set()
        self._processing = set()
        self._timers: List[threading.Timer] = []
        self._shutting_down = False

    def add(self, item: Hashable) -> None:
        with self._cond:
            if self._shutting_down or item in self._dirty:
                return
            self._dirty.add(item)
            if item in self._processing:
                return
            self._queue.append(item)
            self._cond.notify()

    def add_after(self, item: Hashable, delay: float) -> None:
        """Add ``item`` once ``delay`` seconds have passed."""
        if delay <= 0:
            self.add(item)
            return
        with self._cond:
            if self._shutting_down:
                return
            self._timers = [t for t in self._timers if t.is_alive()]
            timer = threading.Timer(delay, self.add, args=(item,))
            timer.daemon = True
            self._timers.append(timer)
            timer.start()

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """Next item to process, or None on shutdown or timeout."""
        with self._cond:
            if not self._queue and not self._shutting_down:
                self._cond.wait(timeout)
            if not self._queue or self._shutting_down:
                return None
            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            return item

    def done(self, item: Hashable) -> None:
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            for timer in self._timers:
                timer.cancel()
            self._timers = []
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)


class ExponentialBackoff:
    """Per-item exponential delay: base, 2*base, 4*base, ... capped at max."""

    def __init__(self, base: float, maximum: float):
        self.base = base
        self.maximum = maximum
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        """Delay before retrying ``item``; each call counts one more failure."""
        with self._lock:
            failures = self._failures.get(item, 0)
            self._failures[item] = failures + 1
        return min(self.base * (2 ** failures), self.maximum)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)

    def failures(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation pass."""
    error: Optional[str] = None
    requeue_after: Optional[float] = None


class Scheduler:
    """Drives reconciliation of stored managed ACLs."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        connector: Connector,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.connector = connector
        self.settings = settings or get_settings()
        self.queue = WorkQueue()
        self.backoff = ExponentialBackoff(
            self.settings.RECONCILE_BACKOFF_BASE_SECONDS,
            self.settings.RECONCILE_BACKOFF_MAX_SECONDS,
        )
        self._item_locks: Dict[int, threading.Lock] = {}
        self._item_locks_guard = threading.Lock()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

    # Work queue

    def enqueue(self, resource_id: int) -> None:
        self.queue.add(resource_id)

    def resync(self) -> int:
        """Queue every stored managed ACL. Returns how many were queued."""
        db = self.session_factory()
        try:
            ids = [row.id for row in db.query(AccessControlListResource.id).all()]
        finally:
            db.close()
        for resource_id in ids:
            self.queue.add(resource_id)
        return len(ids)

    def process_next(self, timeout: Optional[float] = None) -> bool:
        """
        Take one id off the queue and reconcile it.

        Returns:
            False if nothing was processed (timeout or shutdown)
        """
        resource_id = self.queue.get(timeout)
        if resource_id is None:
            return False
        try:
            try:
                result = self.reconcile(resource_id)
            except Exception as e:
                logger.error(f"Unexpected error reconciling acl id={resource_id}: {e}", exc_info=True)
                result = ReconcileResult(error=str(e))

            if result.error:
                delay = self.backoff.when(resource_id)
                logger.debug(f"Requeue acl id={resource_id} in {delay:.1f}s after error")
                self.queue.add_after(resource_id, delay)
            else:
                self.backoff.forget(resource_id)
                if result.requeue_after is not None:
                    self.queue.add_after(resource_id, result.requeue_after)
        finally:
            self.queue.done(resource_id)
        return True

    # Reconciliation

    def _lock_for(self, resource_id: int) -> threading.Lock:
        with self._item_locks_guard:
            return self._item_locks.setdefault(resource_id, threading.Lock())

    def _forget_lock(self, resource_id: int) -> None:
        with self._item_locks_guard:
            self._item_locks.pop(resource_id, None)

    def reconcile(self, resource_id: int) -> ReconcileResult:
        """Run one reconciliation pass for a stored managed ACL."""
        with self._lock_for(resource_id):
            db = self.session_factory()
            try:
                resource = acl_service.get_resource(db, resource_id)
                if resource is None:
                    logger.debug(f"acl id={resource_id} no longer exists, nothing to reconcile")
                    self._forget_lock(resource_id)
                    return ReconcileResult()
                return self._reconcile_resource(db, resource)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    def _reconcile_resource(self, db: Session, resource: AccessControlListResource) -> ReconcileResult:
        mg = acl_service.to_managed(resource)

        try:
            gateway = self.connector.connect()
        except ReconcileError as e:
            return self._fail(db, resource, mg, EventReason.CANNOT_CONNECT, e)

        external = AccessControlListExternal(gateway)

        try:
            observation = external.observe(mg)
        except ReconcileError as e:
            return self._fail(db, resource, mg, EventReason.CANNOT_OBSERVE, e)

        if resource.deletion_requested:
            if not observation.resource_exists:
                logger.info(f"Finalized deletion of acl {resource.name} (id={resource.id})")
                resource_id = resource.id
                db.delete(resource)
                db.commit()
                self._forget_lock(resource_id)
                return ReconcileResult()

            mg.set_conditions(deleting())
            try:
                external.delete(mg)
            except ReconcileError as e:
                return self._fail(db, resource, mg, EventReason.CANNOT_DELETE, e)
            record_event(db, resource.id, EventType.NORMAL, EventReason.DELETED, "Successfully requested deletion of external resource")
            mg.set_conditions(reconcile_success())
            self._save(db, resource, mg)
            # Observe again to confirm the rule is gone before finalizing
            return ReconcileResult(requeue_after=self.settings.RECONCILE_CREATE_REQUEUE_SECONDS)

        if not observation.resource_exists:
            mg.set_conditions(creating())
            try:
                creation = external.create(mg)
            except ExternalCreateError as e:
                if e.creation.external_name_assigned:
                    logger.info(f"Bound external name to acl {resource.name} despite failed create")
                return self._fail(db, resource, mg, EventReason.CANNOT_CREATE, e)
            except ReconcileError as e:
                return self._fail(db, resource, mg, EventReason.CANNOT_CREATE, e)
            if creation.external_name_assigned:
                logger.info(f"Bound external name to acl {resource.name}")
            record_event(db, resource.id, EventType.NORMAL, EventReason.CREATED, "Successfully requested creation of external resource")
            mg.set_conditions(reconcile_success())
            self._save(db, resource, mg)
            return ReconcileResult(requeue_after=self.settings.RECONCILE_CREATE_REQUEUE_SECONDS)

        if not observation.resource_up_to_date:
            try:
                external.update(mg)
            except ReconcileError as e:
                return self._fail(db, resource, mg, EventReason.CANNOT_UPDATE, e)

        mg.set_conditions(reconcile_success())
        self._save(db, resource, mg)
        return ReconcileResult()

    def _save(self, db: Session, resource: AccessControlListResource, mg: ManagedAccessControlList) -> None:
        acl_service.apply_managed(resource, mg)
        resource.last_reconciled_at = datetime.now(timezone.utc)
        db.commit()

    def _fail(
        self,
        db: Session,
        resource: AccessControlListResource,
        mg: ManagedAccessControlList,
        reason: str,
        err: ReconcileError,
    ) -> ReconcileResult:
        mg.set_conditions(reconcile_error(err))
        record_event(db, resource.id, EventType.WARNING, reason, str(err))
        self._save(db, resource, mg)
        return ReconcileResult(error=str(err))

    # Lifecycle

    def _worker(self) -> None:
        while not self._stop_event.is_set():
            self.process_next(timeout=1.0)

    def _resync_loop(self) -> None:
        while not self._stop_event.wait(self.settings.RECONCILE_POLL_INTERVAL_SECONDS):
            try:
                queued = self.resync()
                logger.debug(f"Periodic resync queued {queued} acls")
            except Exception as e:
                logger.error(f"Periodic resync failed: {e}", exc_info=True)

    def start(self) -> None:
        """Queue all stored ACLs and start the worker and resync threads."""
        if self._threads:
            return
        self._stop_event.clear()
        self.resync()
        for i in range(self.settings.RECONCILE_WORKERS):
            thread = threading.Thread(target=self._worker, name=f"reconcile-worker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        resync_thread = threading.Thread(target=self._resync_loop, name="reconcile-resync", daemon=True)
        resync_thread.start()
        self._threads.append(resync_thread)
        logger.info(f"Started reconciliation with {self.settings.RECONCILE_WORKERS} workers")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop all threads and release the admin gateway session."""
        self._stop_event.set()
        self.queue.shutdown()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        # A shut down queue rejects adds; start() works on a fresh one
        self.queue = WorkQueue()
        self.connector.disconnect()
        logger.info("Stopped reconciliation")


def get_scheduler(request: Request) -> Scheduler:
    """Dependency for the application's scheduler."""
    return request.app.state.scheduler
