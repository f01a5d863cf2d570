"""
Bucket validation rules.

Rules:
  - "The ONE Thing" bucket can't be deleted, must keep a limit of 1 and
    stays at position 0.
  - At least one bucket must have no limit.
  - A limit can't be lowered below the number of tasks already in the bucket.

Every check returns a ValidationResult; ordinary rule violations are
never raised. Buckets passed in must be hydrated.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional
from .capacity import available_space
from .errors import ErrorKind, Outcome
from .placement import find_target_bucket_with_capacity, plural
from .schema import Bucket, MoveDirection, normalize_limit

ONE_THING_LABEL = '"The ONE Thing"'


@dataclass(frozen=True)
class ValidationResult(Outcome):
    """Success marker (optionally naming a target bucket) or failure with reason."""
    target_bucket_id: Optional[str] = None

    @classmethod
    def success(cls, target_bucket_id: Optional[str] = None) -> "ValidationResult":
        return cls(target_bucket_id=target_bucket_id)

    @classmethod
    def reject(cls, message: str, kind: ErrorKind = ErrorKind.VALIDATION) -> "ValidationResult":
        return cls(ok=False, message=message, kind=kind)


def _not_found() -> ValidationResult:
    return ValidationResult.reject("Bucket not found", kind=ErrorKind.NOT_FOUND)


def _find(buckets: List[Bucket], bucket_id: str) -> Optional[Bucket]:
    return next((b for b in buckets if b.id == bucket_id), None)


def can_delete_bucket(bucket_id: str, all_buckets: Iterable[Bucket]) -> ValidationResult:
    """Check the ONE Thing and last-unlimited-bucket rules for a delete."""
    buckets = list(all_buckets)
    bucket = _find(buckets, bucket_id)
    if bucket is None:
        return _not_found()

    if bucket.is_one_thing:
        return ValidationResult.reject(f"Cannot delete {ONE_THING_LABEL} bucket")

    if bucket.capacity.is_unlimited:
        unlimited = [b for b in buckets if b.capacity.is_unlimited]
        if len(unlimited) == 1:
            return ValidationResult.reject(
                "Cannot delete this bucket. At least one bucket must have no limit."
            )

    return ValidationResult.success()


def can_update_bucket_limit(
    bucket_id: str,
    new_limit: Optional[int],
    all_buckets: Iterable[Bucket],
) -> ValidationResult:
    """
    Check a limit change.

    `new_limit` of None (or 0) removes the limit. The bucket's current task
    count is checked here too, so a limit can never be set below it.
    """
    buckets = list(all_buckets)
    bucket = _find(buckets, bucket_id)
    if bucket is None:
        return _not_found()

    try:
        new_limit = normalize_limit(new_limit)
    except (TypeError, ValueError):
        return ValidationResult.reject("Bucket limit must be a positive integer")

    if bucket.is_one_thing and new_limit != 1:
        return ValidationResult.reject("The ONE Thing bucket must have a limit of 1")

    if bucket.capacity.is_unlimited and new_limit is not None:
        others = [b for b in buckets if b.id != bucket_id and b.capacity.is_unlimited]
        if not others:
            return ValidationResult.reject(
                "Cannot set a limit on this bucket. At least one bucket must have no limit."
            )

    if new_limit is not None and new_limit < len(bucket.tasks):
        count = len(bucket.tasks)
        excess = count - new_limit
        return ValidationResult.reject(
            f"Cannot set limit to {new_limit}. This bucket has {count} tasks. "
            f"Please move {plural(excess)} first."
        )

    return ValidationResult.success()


def can_delete_bucket_with_relocation(
    bucket_id: str,
    all_buckets: Iterable[Bucket],
) -> ValidationResult:
    """
    Check a delete and find the single bucket that will take its tasks.

    On success `target_bucket_id` is None for an empty bucket, otherwise the
    bucket that has room for all of the deleted bucket's tasks at once.
    """
    buckets = list(all_buckets)
    result = can_delete_bucket(bucket_id, buckets)
    if not result.ok:
        return result

    bucket = _find(buckets, bucket_id)
    task_count = len(bucket.tasks)
    if task_count == 0:
        return ValidationResult.success()

    placement = find_target_bucket_with_capacity(
        task_count,
        buckets,
        exclude_bucket_ids=[bucket_id],
        error_message=(
            f'Cannot delete bucket "{bucket.name}". '
            f"No other bucket has space for {plural(task_count)}."
        ),
    )
    if not placement.ok:
        return ValidationResult.reject(placement.message, kind=ErrorKind.CAPACITY)
    return ValidationResult.success(target_bucket_id=placement.bucket_id)


def find_first_bucket_with_space(
    source_bucket_id: str,
    task_count: int,
    all_buckets: Iterable[Bucket],
) -> Optional[Bucket]:
    """First bucket by order (source excluded) with room for `task_count` tasks."""
    if task_count <= 0:
        return None
    candidates = sorted(
        (b for b in all_buckets if b.id != source_bucket_id),
        key=lambda b: (b.order, b.id),
    )
    for bucket in candidates:
        space = available_space(bucket)
        if space is None or space >= task_count:
            return bucket
    return None


def can_move_bucket(
    bucket_id: str,
    direction: MoveDirection,
    all_buckets: Iterable[Bucket],
) -> ValidationResult:
    """
    Check nudging a bucket one slot up or down.

    Success names the neighbour it swaps places with in `target_bucket_id`.
    """
    ordered = sorted(all_buckets, key=lambda b: (b.order, b.id))
    index = next((i for i, b in enumerate(ordered) if b.id == bucket_id), None)
    if index is None:
        return _not_found()

    if index == 0 or ordered[index].is_one_thing:
        return ValidationResult.reject(f"Cannot move {ONE_THING_LABEL} bucket")

    target_index = index - 1 if direction == MoveDirection.UP else index + 1
    if target_index >= len(ordered):
        return ValidationResult.reject("Bucket is already at the bottom")

    if target_index == 0 or ordered[target_index].is_one_thing:
        return ValidationResult.reject(f"Cannot move buckets past {ONE_THING_LABEL} bucket")

    return ValidationResult.success(target_bucket_id=ordered[target_index].id)


def can_create_bucket(name: str, limit: Optional[int]) -> ValidationResult:
    """New buckets need a name and a positive limit (or none)."""
    if not name or not name.strip():
        return ValidationResult.reject("Bucket name is required")
    try:
        normalize_limit(limit)
    except (TypeError, ValueError):
        return ValidationResult.reject("Bucket limit must be a positive integer")
    return ValidationResult.success()


def find_invariant_violations(buckets: Iterable[Bucket]) -> List[str]:
    """
    Audit a hydrated (active tasks only) snapshot.

    Returns a list of human-readable problems; empty means the board is sound.
    """
    buckets = list(buckets)
    if not buckets:
        return []
    problems: List[str] = []

    one_things = [b for b in buckets if b.is_one_thing]
    if len(one_things) != 1:
        problems.append(f"Expected exactly one {ONE_THING_LABEL} bucket, found {len(one_things)}")
    for bucket in one_things:
        if bucket.limit != 1:
            problems.append(f"{ONE_THING_LABEL} bucket {bucket.id} must have a limit of 1")
        if bucket.order != 0:
            problems.append(f"{ONE_THING_LABEL} bucket {bucket.id} must be at position 0")

    if not any(b.capacity.is_unlimited for b in buckets):
        problems.append("At least one bucket must have no limit")

    orders = sorted(b.order for b in buckets)
    if orders != list(range(len(buckets))):
        problems.append(f"Bucket order is not dense: {orders}")

    for bucket in buckets:
        task_orders = sorted(t.order_in_bucket for t in bucket.tasks)
        if task_orders != list(range(len(bucket.tasks))):
            problems.append(f"Task order in bucket {bucket.id} is not dense: {task_orders}")
        if not bucket.capacity.room_for(len(bucket.tasks), 0):
            problems.append(
                f"Bucket {bucket.id} holds {len(bucket.tasks)} tasks but its limit is {bucket.limit}"
            )

    return problems
