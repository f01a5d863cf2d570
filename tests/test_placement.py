"""
Tests for capacity rules, hydration and the placement resolver.
"""
import pytest

from bucketboard.capacity import available_space, has_capacity, is_full
from bucketboard.errors import CapacityError, ErrorKind
from bucketboard.hydration import active_tasks, find_task, hydrate
from bucketboard.placement import find_target_bucket_with_capacity, plural
from bucketboard.schema import Capacity, normalize_limit

from conftest import make_board, make_bucket, make_task


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Capacity Tests
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_unlimited_bucket_always_has_capacity():
    """Test a bucket without a limit takes any batch"""
    bucket = make_board({"one": [], "backlog": [f"t{i}" for i in range(50)]})[1]
    assert has_capacity(bucket, 1000)
    assert available_space(bucket) is None
    assert not is_full(bucket)


def test_limited_bucket_capacity():
    """Test room_for counts the current tasks plus the incoming batch"""
    bucket = make_board({"one": [], "today": ["a", "b"], "backlog": []}, {"today": 3})[1]
    assert has_capacity(bucket, 1)
    assert not has_capacity(bucket, 2)
    assert available_space(bucket) == 1


def test_full_bucket():
    """Test a bucket at its limit reports no room and zero space"""
    bucket = make_board({"one": ["a"], "backlog": []})[0]
    assert is_full(bucket)
    assert available_space(bucket) == 0


def test_zero_limit_means_unlimited():
    """Test stored limits of 0 / None / "" are all treated as no limit"""
    assert normalize_limit(0) is None
    assert normalize_limit(None) is None
    assert normalize_limit("") is None
    assert normalize_limit("4") == 4
    assert make_bucket("b", 1, limit=0).capacity.is_unlimited


def test_negative_limit_rejected():
    """Test negative limits never become a Capacity"""
    with pytest.raises(ValueError):
        normalize_limit(-1)
    with pytest.raises(ValueError):
        Capacity(0)
    assert Capacity.bounded(2).room_for(1, 1)
    assert Capacity.unlimited().available(99) is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Hydration Tests
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_hydrate_sorts_buckets_and_tasks():
    """Test buckets come back by order and tasks by order_in_bucket"""
    buckets = [make_bucket("backlog", 2), make_bucket("one", 0, limit=1, is_one_thing=True), make_bucket("today", 1)]
    tasks = [make_task("t2", "today", 1), make_task("t1", "today", 0), make_task("x", "backlog", 0)]

    hydrated = hydrate(buckets, tasks)
    assert [b.id for b in hydrated] == ["one", "today", "backlog"]
    assert [t.id for t in hydrated[1].tasks] == ["t1", "t2"]
    assert hydrated[0].tasks == []


def test_hydrate_does_not_mutate_inputs():
    """Test hydration returns copies"""
    bucket = make_bucket("today", 1)
    hydrate([bucket], [make_task("t1", "today", 0)])
    assert bucket.tasks == []


def test_hydrate_breaks_ties_by_id():
    """Test duplicate order values resolve deterministically"""
    tasks = [make_task("b", "today", 0), make_task("a", "today", 0)]
    hydrated = hydrate([make_bucket("today", 0)], tasks)
    assert [t.id for t in hydrated[0].tasks] == ["a", "b"]


def test_hydrate_excludes_completed_tasks():
    """Test completed tasks don't occupy slots when excluded"""
    tasks = [make_task("a", "today", 0), make_task("done", "today", 1, completed=True)]
    assert len(hydrate([make_bucket("today", 0)], tasks)[0].tasks) == 2
    assert [t.id for t in hydrate([make_bucket("today", 0)], tasks, include_completed=False)[0].tasks] == ["a"]
    assert [t.id for t in active_tasks(tasks)] == ["a"]


def test_hydrate_ignores_orphan_tasks():
    """Test tasks pointing at unknown buckets are dropped from the view"""
    hydrated = hydrate([make_bucket("today", 0)], [make_task("lost", "gone", 0)])
    assert hydrated[0].tasks == []
    assert find_task(hydrated, "lost") is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Placement Resolver Tests
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_preferred_bucket_with_room_wins():
    """Test the preferred bucket is used when it has space"""
    buckets = make_board({"one": [], "today": [], "backlog": []}, {"today": 3})
    placement = find_target_bucket_with_capacity(1, buckets, preferred_bucket_id="backlog")
    assert placement.ok
    assert placement.bucket_id == "backlog"
    assert placement.order_in_bucket == 0
    assert not placement.relocated


def test_full_preferred_bucket_falls_back_in_order():
    """Test a full preferred bucket falls back to the first bucket with room"""
    buckets = make_board({"one": ["a"], "today": ["b", "c"], "backlog": ["d"]}, {"today": 2})
    placement = find_target_bucket_with_capacity(1, buckets, preferred_bucket_id="today")
    assert placement.ok
    assert placement.bucket_id == "backlog"
    assert placement.order_in_bucket == 1
    assert placement.relocated


def test_no_preference_picks_first_with_room():
    """Test ascending bucket order decides without a preference"""
    buckets = make_board({"one": [], "today": [], "backlog": []}, {"today": 3})
    placement = find_target_bucket_with_capacity(1, buckets)
    assert placement.bucket_id == "one"
    assert not placement.relocated


def test_batch_needs_room_for_all_tasks():
    """Test a batch only lands where every task fits"""
    buckets = make_board({"one": [], "today": ["a"], "week": [], "backlog": []}, {"today": 3, "week": 2})
    placement = find_target_bucket_with_capacity(3, buckets)
    assert placement.bucket_id == "backlog"


def test_excluded_buckets_never_chosen():
    """Test excluded ids are skipped even when preferred"""
    buckets = make_board({"one": [], "today": [], "backlog": []}, {"today": 3})
    placement = find_target_bucket_with_capacity(
        1, buckets, preferred_bucket_id="one", exclude_bucket_ids=["one", "today"]
    )
    assert placement.bucket_id == "backlog"


def test_unknown_preferred_bucket_falls_back():
    """Test a preferred id that doesn't exist behaves like a full one"""
    buckets = make_board({"one": [], "backlog": []})
    placement = find_target_bucket_with_capacity(1, buckets, preferred_bucket_id="nope")
    assert placement.ok
    assert placement.bucket_id == "one"


def test_exhausted_default_message():
    """Test the default failure when nothing has room"""
    buckets = make_board({"one": ["a"], "backlog": []})
    placement = find_target_bucket_with_capacity(2, buckets, exclude_bucket_ids=["backlog"])
    assert not placement.ok
    assert placement.kind == ErrorKind.CAPACITY
    assert placement.bucket_id is None
    assert placement.message == (
        "Cannot place 2 tasks - all buckets are at capacity. Please free up space first."
    )
    with pytest.raises(CapacityError):
        placement.raise_for_error()


def test_exhausted_custom_message():
    """Test a caller-supplied failure message is used verbatim"""
    placement = find_target_bucket_with_capacity(1, [], error_message="No room")
    assert not placement
    assert placement.message == "No room"


def test_plural():
    assert plural(1) == "1 task"
    assert plural(3) == "3 tasks"
