"""
Tests for the work queue, backoff and reconciliation passes.
"""
from aclsync.core.errors import CredentialsError, RemoteUnavailable
from aclsync.models.access_control_list import AccessControlListResource
from aclsync.models.reconcile_event import ReconcileEvent
from aclsync.services import acl_service
from aclsync.services.connector import Connector
from aclsync.services.event_service import EventReason
from aclsync.services.scheduler import ExponentialBackoff, Scheduler, WorkQueue
from aclsync.utils.acl import codec
from conftest import TestingSessionLocal


def store_acl(params, name="alice-read-orders"):
    db = TestingSessionLocal()
    try:
        resource = AccessControlListResource(name=name, deletion_requested=False)
        acl_service.apply_parameters(resource, params)
        db.add(resource)
        db.commit()
        return resource.id
    finally:
        db.close()


def load_acl(resource_id):
    db = TestingSessionLocal()
    try:
        return db.query(AccessControlListResource).filter(AccessControlListResource.id == resource_id).first()
    finally:
        db.close()


def event_reasons(resource_id):
    db = TestingSessionLocal()
    try:
        events = (
            db.query(ReconcileEvent)
            .filter(ReconcileEvent.resource_id == resource_id)
            .order_by(ReconcileEvent.id)
            .all()
        )
        return [e.reason for e in events]
    finally:
        db.close()


# Work queue

def test_queue_collapses_duplicate_adds():
    queue = WorkQueue()
    queue.add(1)
    queue.add(1)
    queue.add(2)

    assert len(queue) == 2
    assert queue.get(timeout=0) == 1
    assert queue.get(timeout=0) == 2
    assert queue.get(timeout=0) is None


def test_queue_never_hands_out_item_being_processed():
    queue = WorkQueue()
    queue.add(1)
    assert queue.get(timeout=0) == 1

    queue.add(1)

    assert queue.get(timeout=0) is None
    queue.done(1)
    assert queue.get(timeout=0) == 1


def test_queue_rejects_adds_after_shutdown():
    queue = WorkQueue()
    queue.shutdown()
    queue.add(1)

    assert queue.get(timeout=0) is None


# Backoff

def test_backoff_doubles_up_to_maximum_and_resets():
    backoff = ExponentialBackoff(base=1, maximum=5)

    delays = [backoff.when("a") for _ in range(5)]

    assert delays == [1, 2, 4, 5, 5]
    assert backoff.when("b") == 1
    backoff.forget("a")
    assert backoff.failures("a") == 0
    assert backoff.when("a") == 1


# Reconciliation passes

def test_pass_creates_then_marks_available(scheduler, gateway, alice_read_orders):
    resource_id = store_acl(alice_read_orders)

    result = scheduler.reconcile(resource_id)

    assert result.error is None
    assert result.requeue_after == 5
    resource = load_acl(resource_id)
    assert resource.external_name == codec.encode(codec.generate(alice_read_orders))
    assert resource.ready_status is False
    assert resource.ready_reason == "Creating"
    assert resource.synced_status is True
    assert gateway.call_names() == ["create"]
    assert event_reasons(resource_id) == [EventReason.CREATED]

    result = scheduler.reconcile(resource_id)

    assert result.error is None
    assert result.requeue_after is None
    resource = load_acl(resource_id)
    assert resource.ready_status is True
    assert resource.ready_reason == "Available"
    assert resource.synced_reason == "ReconcileSuccess"
    assert resource.last_reconciled_at is not None
    assert gateway.call_names() == ["create", "list"]


def test_pass_reports_drift_without_remediation(scheduler, gateway, alice_read_orders):
    resource_id = store_acl(alice_read_orders)
    scheduler.reconcile(resource_id)
    token = load_acl(resource_id).external_name

    db = TestingSessionLocal()
    resource = db.get(AccessControlListResource, resource_id)
    resource.operation = "Write"
    db.commit()
    db.close()

    result = scheduler.reconcile(resource_id)

    assert "operation: expected Read, actual Write" in result.error
    resource = load_acl(resource_id)
    assert resource.synced_status is False
    assert resource.synced_reason == "ReconcileError"
    assert "operation" in resource.synced_message
    assert resource.external_name == token
    assert gateway.call_names() == ["create"]
    assert event_reasons(resource_id)[-1] == EventReason.CANNOT_OBSERVE


def test_pass_recreates_rule_deleted_out_of_band(scheduler, gateway, alice_read_orders):
    resource_id = store_acl(alice_read_orders)
    scheduler.reconcile(resource_id)
    token = load_acl(resource_id).external_name
    gateway.rules.clear()

    result = scheduler.reconcile(resource_id)

    assert result.error is None
    assert len(gateway.rules) == 1
    assert load_acl(resource_id).external_name == token
    assert gateway.call_names() == ["create", "list", "create"]


def test_failed_create_persists_token(scheduler, gateway, alice_read_orders):
    resource_id = store_acl(alice_read_orders)
    gateway.fail_with = RemoteUnavailable("broker down")

    result = scheduler.reconcile(resource_id)

    assert "broker down" in result.error
    resource = load_acl(resource_id)
    assert resource.external_name is not None
    assert resource.synced_status is False
    assert event_reasons(resource_id) == [EventReason.CANNOT_CREATE]

    gateway.fail_with = None
    scheduler.reconcile(resource_id)

    assert len(gateway.rules) == 1
    assert load_acl(resource_id).external_name == resource.external_name


def test_deletion_deletes_rule_then_finalizes(scheduler, gateway, alice_read_orders):
    resource_id = store_acl(alice_read_orders)
    scheduler.reconcile(resource_id)

    db = TestingSessionLocal()
    db.get(AccessControlListResource, resource_id).deletion_requested = True
    db.commit()
    db.close()

    result = scheduler.reconcile(resource_id)

    assert result.error is None
    assert gateway.rules == set()
    resource = load_acl(resource_id)
    assert resource.ready_reason == "Deleting"
    assert event_reasons(resource_id)[-1] == EventReason.DELETED

    scheduler.reconcile(resource_id)

    assert load_acl(resource_id) is None
    assert gateway.call_names() == ["create", "list", "delete", "list"]
    assert event_reasons(resource_id) == []
    assert resource_id not in scheduler._item_locks


def test_deletion_of_never_created_acl_finalizes_without_gateway_calls(scheduler, gateway, alice_read_orders):
    resource_id = store_acl(alice_read_orders)
    db = TestingSessionLocal()
    db.get(AccessControlListResource, resource_id).deletion_requested = True
    db.commit()
    db.close()

    result = scheduler.reconcile(resource_id)

    assert result.error is None
    assert load_acl(resource_id) is None
    assert gateway.calls == []
    assert resource_id not in scheduler._item_locks


def test_pass_on_missing_resource_is_a_no_op(scheduler, gateway):
    result = scheduler.reconcile(999999)

    assert result.error is None
    assert gateway.calls == []


def test_connect_failure_is_recorded(test_settings, alice_read_orders):
    def refuse(credentials, settings):
        raise CredentialsError("no credentials")

    scheduler = Scheduler(TestingSessionLocal, Connector(test_settings, new_gateway_fn=refuse), test_settings)
    resource_id = store_acl(alice_read_orders)

    result = scheduler.reconcile(resource_id)

    assert result.error == "no credentials"
    assert event_reasons(resource_id) == [EventReason.CANNOT_CONNECT]
    assert load_acl(resource_id).synced_status is False


def test_process_next_backs_off_on_error_and_resets_on_success(scheduler, gateway, alice_read_orders):
    resource_id = store_acl(alice_read_orders)
    gateway.fail_with = RemoteUnavailable("broker down")
    scheduled = []
    scheduler.queue.add_after = lambda item, delay: scheduled.append((item, delay))

    scheduler.enqueue(resource_id)
    assert scheduler.process_next(timeout=0) is True
    scheduler.enqueue(resource_id)
    scheduler.process_next(timeout=0)

    assert scheduled == [(resource_id, 1), (resource_id, 2)]
    assert scheduler.backoff.failures(resource_id) == 2

    gateway.fail_with = None
    scheduler.enqueue(resource_id)
    scheduler.process_next(timeout=0)

    assert scheduler.backoff.failures(resource_id) == 0
    assert scheduled[-1] == (resource_id, 5)


def test_process_next_returns_false_when_queue_is_empty(scheduler):
    assert scheduler.process_next(timeout=0) is False


def test_resync_queues_every_stored_acl(scheduler, alice_read_orders):
    first = store_acl(alice_read_orders, name="first")
    second = store_acl(alice_read_orders.model_copy(update={"resource_name": "payments"}), name="second")

    assert scheduler.resync() == 2
    assert {scheduler.queue.get(timeout=0), scheduler.queue.get(timeout=0)} == {first, second}


def test_stop_releases_gateway_once(scheduler, gateway, alice_read_orders):
    resource_id = store_acl(alice_read_orders)
    scheduler.reconcile(resource_id)

    scheduler.stop(timeout=1)
    scheduler.stop(timeout=1)

    assert gateway.close_count == 1
