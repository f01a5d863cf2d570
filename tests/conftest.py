"""Shared test fixtures for bucket board tests."""

import sys
import tempfile
from pathlib import Path

import pytest

# Ensure the package is importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from bucketboard.board import TaskBoard
from bucketboard.config import Config
from bucketboard.hydration import hydrate
from bucketboard.schema import Bucket, Task, TaskStatus
from bucketboard.store import BucketStore, TaskStore


def make_bucket(bucket_id, order, limit=None, is_one_thing=False, name=None):
    return Bucket(
        id=bucket_id,
        name=name or bucket_id.title(),
        order=order,
        limit=limit,
        is_one_thing=is_one_thing,
        user_id="u1",
    )


def make_task(task_id, bucket_id, order, completed=False):
    return Task(
        id=task_id,
        title=task_id.upper(),
        bucket_id=bucket_id,
        order_in_bucket=order,
        status=TaskStatus.COMPLETED if completed else TaskStatus.NOT_STARTED,
        user_id="u1",
    )


def make_board(layout, limits=None):
    """
    Hydrated buckets from {"bucket_id": ["task", ...]}.

    The first bucket is "The ONE Thing" (limit 1); `limits` maps the
    others to their limits, missing ones are unlimited.
    """
    limits = limits or {}
    buckets, tasks = [], []
    for order, (bucket_id, task_ids) in enumerate(layout.items()):
        if order == 0:
            buckets.append(make_bucket(bucket_id, 0, limit=1, is_one_thing=True))
        else:
            buckets.append(make_bucket(bucket_id, order, limit=limits.get(bucket_id)))
        tasks.extend(make_task(t, bucket_id, i) for i, t in enumerate(task_ids))
    return hydrate(buckets, tasks)


def layout_of(buckets):
    """{"bucket_id": ["task", ...]} view of hydrated buckets."""
    return {b.id: [t.id for t in b.tasks] for b in buckets}


@pytest.fixture
def db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        path = tmp.name
    try:
        yield path
    finally:
        for suffix in ("", "-wal", "-shm"):
            Path(path + suffix).unlink(missing_ok=True)


@pytest.fixture
def cfg(db_path):
    return Config(db_path=db_path)


@pytest.fixture
def board(cfg):
    """Seeded board: The ONE Thing(1), Today(3), This Week(7), Backlog(unlimited)."""
    board = TaskBoard(TaskStore(cfg.db_path), BucketStore(cfg.db_path), owner_id="u1")
    board.ensure_default_buckets(cfg)
    return board
