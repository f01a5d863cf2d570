"""
Hydration: join flat task records onto their buckets.

The hydrated list is the only view the rules, the resolver and the engine
read. Recompute it whenever either input changes; nothing is cached here.
"""
from dataclasses import replace
from typing import Iterable, List
from .schema import Bucket, Task


def active_tasks(tasks: Iterable[Task]) -> List[Task]:
    """Tasks that still occupy a slot in their bucket (not completed)."""
    return [t for t in tasks if not t.is_completed]


def hydrate(
    buckets: Iterable[Bucket],
    tasks: Iterable[Task],
    include_completed: bool = True,
) -> List[Bucket]:
    """
    Return copies of `buckets` with `tasks` filled in.

    Each bucket gets the tasks whose bucket_id matches, sorted by
    order_in_bucket; the bucket list is sorted by order. Ids break ties so
    the result never depends on input iteration order.

    Args:
        buckets: Bucket records (their own `tasks` is ignored)
        tasks: Flat task records
        include_completed: False to keep only active tasks
    """
    tasks = list(tasks)
    if not include_completed:
        tasks = active_tasks(tasks)

    by_bucket = {}
    for task in tasks:
        by_bucket.setdefault(task.bucket_id, []).append(task)

    hydrated = [
        replace(
            bucket,
            tasks=sorted(by_bucket.get(bucket.id, []), key=lambda t: (t.order_in_bucket, t.id)),
        )
        for bucket in buckets
    ]
    hydrated.sort(key=lambda b: (b.order, b.id))
    return hydrated


def find_bucket(buckets: Iterable[Bucket], bucket_id: str):
    """Bucket with the given id, or None."""
    for bucket in buckets:
        if bucket.id == bucket_id:
            return bucket
    return None


def find_task(buckets: Iterable[Bucket], task_id: str):
    """(bucket, index, task) for a task in a hydrated list, or None."""
    for bucket in buckets:
        for index, task in enumerate(bucket.tasks):
            if task.id == task_id:
                return bucket, index, task
    return None
