"""
Placement resolver: decide where a batch of tasks should land.

Algorithm:
  1. A preferred bucket that is not excluded, exists and has room wins.
  2. Otherwise the first non-excluded bucket (ascending order) with room.
  3. Otherwise a failed Placement of kind CAPACITY.

Nothing is mutated; the engine turns a Placement into patches.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional
from .capacity import has_capacity
from .errors import ErrorKind, Outcome
from .schema import Bucket

logger = logging.getLogger(__name__)


def plural(count: int, word: str = "task") -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"


@dataclass(frozen=True)
class Placement(Outcome):
    """Where the tasks go: bucket id, first free order index, whether we fell back."""
    bucket_id: Optional[str] = None
    order_in_bucket: int = 0
    relocated: bool = False
    target_bucket: Optional[Bucket] = None

    @classmethod
    def into(cls, bucket: Bucket, relocated: bool = False) -> "Placement":
        return cls(
            bucket_id=bucket.id,
            order_in_bucket=len(bucket.tasks),
            relocated=relocated,
            target_bucket=bucket,
        )

    @classmethod
    def exhausted(cls, message: str) -> "Placement":
        return cls(ok=False, message=message, kind=ErrorKind.CAPACITY)


def find_target_bucket_with_capacity(
    task_count: int,
    all_buckets: Iterable[Bucket],
    preferred_bucket_id: Optional[str] = None,
    exclude_bucket_ids: Optional[Iterable[str]] = None,
    error_message: Optional[str] = None,
) -> Placement:
    """
    Find a bucket with room for `task_count` more tasks.

    Args:
        task_count: Number of tasks that need space
        all_buckets: Hydrated buckets
        preferred_bucket_id: Bucket to try first
        exclude_bucket_ids: Buckets never considered (e.g. the one being deleted)
        error_message: Message for the failure result instead of the default

    Returns:
        Placement; check `.ok` before reading `bucket_id`.
    """
    buckets: List[Bucket] = list(all_buckets)
    excluded = set(exclude_bucket_ids or [])

    if preferred_bucket_id is not None and preferred_bucket_id not in excluded:
        preferred = next((b for b in buckets if b.id == preferred_bucket_id), None)
        if preferred is not None and has_capacity(preferred, task_count):
            return Placement.into(preferred)

    candidates = sorted(
        (b for b in buckets if b.id not in excluded),
        key=lambda b: (b.order, b.id),
    )
    for bucket in candidates:
        if has_capacity(bucket, task_count):
            relocated = preferred_bucket_id is not None and preferred_bucket_id != bucket.id
            if relocated:
                logger.info(
                    f"Bucket {preferred_bucket_id} has no room for {plural(task_count)}, "
                    f"placing in {bucket.id}"
                )
            return Placement.into(bucket, relocated=relocated)

    message = error_message or (
        f"Cannot place {plural(task_count)} - all buckets are at capacity. "
        f"Please free up space first."
    )
    logger.error(message)
    return Placement.exhausted(message)
