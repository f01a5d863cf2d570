"""
Capacity rules.

Every count here is the length of the bucket's hydrated task list, so
callers must pass buckets that went through hydration.hydrate().
"""
from typing import Optional
from .schema import Bucket


def has_capacity(bucket: Bucket, incoming_count: int) -> bool:
    """True if the bucket can take `incoming_count` more tasks."""
    return bucket.capacity.room_for(len(bucket.tasks), incoming_count)


def available_space(bucket: Bucket) -> Optional[int]:
    """Free slots left in the bucket, or None when it has no limit."""
    return bucket.capacity.available(len(bucket.tasks))


def is_full(bucket: Bucket) -> bool:
    return not has_capacity(bucket, 1)
