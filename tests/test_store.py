"""
Tests for the SQLite task and bucket stores.
"""
import pytest

from bucketboard.errors import StoreError
from bucketboard.schema import TaskPriority, TaskStatus
from bucketboard.store import BucketStore, TaskStore

from conftest import make_bucket, make_task


@pytest.fixture
def stores(db_path):
    buckets = BucketStore(db_path)
    tasks = TaskStore(db_path)
    buckets.create(make_bucket("one", 0, limit=1, is_one_thing=True))
    buckets.create(make_bucket("backlog", 1))
    return tasks, buckets


def test_bucket_create_and_list(stores):
    """Test buckets round-trip through SQLite with limit and flags intact"""
    _, buckets = stores
    listed = buckets.list("u1")
    assert [b.id for b in listed] == ["one", "backlog"]
    assert listed[0].limit == 1
    assert listed[0].is_one_thing
    assert listed[1].limit is None
    assert buckets.list("someone-else") == []


def test_task_create_and_get(stores):
    """Test a task keeps its fields after a store round-trip"""
    tasks, _ = stores
    task = make_task("t1", "backlog", 0)
    task.tags = ["home", "quick"]
    task.priority = TaskPriority.HIGH
    tasks.create(task)

    stored = tasks.get("t1")
    assert stored.title == "T1"
    assert stored.tags == ["home", "quick"]
    assert stored.priority == TaskPriority.HIGH
    assert stored.status == TaskStatus.NOT_STARTED
    assert tasks.get("missing") is None


def test_patch_many_writes_batch(stores):
    """Test a batch of partial updates lands together"""
    tasks, _ = stores
    tasks.create(make_task("t1", "backlog", 0))
    tasks.create(make_task("t2", "backlog", 1))

    updated = tasks.patch_many([
        {"id": "t1", "order_in_bucket": 1},
        {"id": "t2", "order_in_bucket": 0, "bucket_id": "one"},
    ])
    assert [(t.id, t.bucket_id, t.order_in_bucket) for t in updated] == [
        ("t1", "backlog", 1),
        ("t2", "one", 0),
    ]


def test_patch_many_is_all_or_nothing(stores):
    """Test one bad partial rolls back the whole batch"""
    tasks, _ = stores
    tasks.create(make_task("t1", "backlog", 0))

    with pytest.raises(StoreError):
        tasks.patch_many([
            {"id": "t1", "order_in_bucket": 5},
            {"id": "ghost", "order_in_bucket": 0},
        ])
    assert tasks.get("t1").order_in_bucket == 0


def test_patch_many_deletes_in_same_transaction(stores):
    """Test a failed batch also rolls back the deletes it carried"""
    tasks, _ = stores
    tasks.create(make_task("t1", "backlog", 0))
    tasks.create(make_task("t2", "backlog", 1))

    with pytest.raises(StoreError):
        tasks.patch_many([{"id": "ghost", "order_in_bucket": 0}], delete_ids=["t1"])
    assert tasks.get("t1") is not None

    updated = tasks.patch_many([{"id": "t2", "order_in_bucket": 0}], delete_ids=["t1"])
    assert tasks.get("t1") is None
    assert updated[0].order_in_bucket == 0


def test_patch_rejects_unknown_field(stores):
    tasks, _ = stores
    tasks.create(make_task("t1", "backlog", 0))
    with pytest.raises(StoreError):
        tasks.patch("t1", {"colour": "red"})


def test_bucket_patch_limit_and_order(stores):
    """Test limit 0 is stored as no limit and order maps to its column"""
    _, buckets = stores
    assert buckets.patch("backlog", {"limit": 5}).limit == 5
    assert buckets.patch("backlog", {"limit": 0}).limit is None
    assert buckets.patch("backlog", {"order": 3}).order == 3


def test_task_needs_existing_bucket(stores):
    """Test the foreign key keeps tasks pointing at real buckets"""
    tasks, _ = stores
    with pytest.raises(StoreError):
        tasks.create(make_task("t1", "nowhere", 0))


def test_delete(stores):
    tasks, buckets = stores
    tasks.create(make_task("t1", "backlog", 0))
    tasks.delete("t1")
    assert tasks.get("t1") is None
    buckets.delete("one")
    assert [b.id for b in buckets.list("u1")] == ["backlog"]
