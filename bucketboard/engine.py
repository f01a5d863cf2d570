"""
Reordering and relocation engine.

Turns "move this task there" into the complete list of order-index patches
that keeps every bucket's order_in_bucket sequence dense and zero-based:

  reorder_within_bucket  - drag inside one bucket
  move_between_buckets   - drag into another bucket (optionally onto a task)
  bulk_relocate          - move a batch into a resolved target bucket
  plan_bucket_deletion   - validate a delete and relocate its tasks
  plan_bucket_move       - nudge a bucket up or down
  plan_task_creation     - placement for a new (or duplicated) task
  plan_task_deletion     - delete a task and close its gap
  plan_task_completion   - complete / reopen a task

Every function is pure. A Plan is either complete or rejected; a rejected
Plan never carries patches, so nothing is ever half-applied.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple
from .capacity import has_capacity
from .errors import ErrorKind, Outcome
from .hydration import find_bucket, find_task
from .placement import Placement, find_target_bucket_with_capacity
from .schema import Bucket, BucketPatch, MoveDirection, Task, TaskPatch, TaskStatus, utc_now
from .validation import can_delete_bucket_with_relocation, can_move_bucket


@dataclass(frozen=True)
class Plan(Outcome):
    """Patches to write as one batch, or the reason nothing will be written."""
    task_patches: Tuple[TaskPatch, ...] = ()
    bucket_patches: Tuple[BucketPatch, ...] = ()
    placement: Optional[Placement] = None
    delete_bucket_id: Optional[str] = None
    delete_task_id: Optional[str] = None

    @classmethod
    def of(
        cls,
        task_patches: Iterable[TaskPatch] = (),
        bucket_patches: Iterable[BucketPatch] = (),
        **kwargs,
    ) -> "Plan":
        return cls(task_patches=tuple(task_patches), bucket_patches=tuple(bucket_patches), **kwargs)

    @classmethod
    def rejected(cls, outcome: Outcome) -> "Plan":
        return cls(ok=False, message=outcome.message, kind=outcome.kind)

    @classmethod
    def reject(cls, message: str, kind: ErrorKind = ErrorKind.VALIDATION) -> "Plan":
        return cls(ok=False, message=message, kind=kind)

    @property
    def is_empty(self) -> bool:
        return not (
            self.task_patches or self.bucket_patches or self.delete_bucket_id or self.delete_task_id
        )


def array_move(items: Sequence, old_index: int, new_index: int) -> list:
    """Single-element list move; everything in between shifts by one slot."""
    moved = list(items)
    moved.insert(new_index, moved.pop(old_index))
    return moved


def renumber(tasks: Iterable[Task], bucket_id: Optional[str] = None) -> List[TaskPatch]:
    """Dense 0..n-1 order for `tasks` as given, optionally re-homing them."""
    return [
        TaskPatch(task_id=task.id, order_in_bucket=index, bucket_id=bucket_id)
        for index, task in enumerate(tasks)
    ]


def resequence_bucket(bucket: Bucket, exclude_task_ids: Iterable[str] = ()) -> List[TaskPatch]:
    """Close the gaps left in a hydrated bucket once some tasks leave it."""
    excluded = set(exclude_task_ids)
    return renumber(t for t in bucket.tasks if t.id not in excluded)


def _task_not_found(task_id: str) -> Plan:
    return Plan.reject(f"Task {task_id} not found", kind=ErrorKind.NOT_FOUND)


def reorder_within_bucket(
    buckets: Iterable[Bucket],
    active_task_id: str,
    over_task_id: str,
) -> Plan:
    """
    Move `active_task_id` to the slot held by `over_task_id` in the same bucket.

    Only that bucket's tasks are patched. Dropping a task onto itself yields
    patches that leave every order unchanged.
    """
    buckets = list(buckets)
    active = find_task(buckets, active_task_id)
    if active is None:
        return _task_not_found(active_task_id)
    over = find_task(buckets, over_task_id)
    if over is None:
        return _task_not_found(over_task_id)

    bucket, old_index, _ = active
    over_bucket, new_index, _ = over
    if bucket.id != over_bucket.id:
        return Plan.reject(
            f"Task {over_task_id} is not in bucket {bucket.id}; move it between buckets instead"
        )

    return Plan.of(renumber(array_move(bucket.tasks, old_index, new_index)))


def move_between_buckets(
    buckets: Iterable[Bucket],
    dragged_task_id: str,
    target_bucket_id: str,
    target_task_id: Optional[str] = None,
) -> Plan:
    """
    Move a task into another bucket, at `target_task_id`'s slot or at the end.

    The target bucket is renumbered with the new bucket id, then the source
    bucket's remaining tasks are renumbered; both go out as one batch.
    """
    buckets = list(buckets)
    located = find_task(buckets, dragged_task_id)
    if located is None:
        return _task_not_found(dragged_task_id)
    source, _, dragged = located

    target = find_bucket(buckets, target_bucket_id)
    if target is None:
        return Plan.reject("Bucket not found", kind=ErrorKind.NOT_FOUND)

    if source.id == target.id:
        if target_task_id is None:
            return Plan.of()
        return reorder_within_bucket(buckets, dragged_task_id, target_task_id)

    if not has_capacity(target, 1):
        return Plan.reject(
            f'Cannot move: Bucket "{target.name}" is at capacity', kind=ErrorKind.CAPACITY
        )

    working = [t for t in target.tasks if t.id != dragged.id] + [dragged]
    target_index = len(working) - 1
    if target_task_id is not None:
        found = next((i for i, t in enumerate(working) if t.id == target_task_id), None)
        if found is not None:
            target_index = found

    reordered = array_move(working, len(working) - 1, target_index)
    target_patches = renumber(reordered, bucket_id=target.id)
    source_patches = resequence_bucket(source, exclude_task_ids=[dragged.id])

    return Plan.of(
        target_patches + source_patches,
        placement=Placement.into(target),
    )


def bulk_relocate(tasks: Iterable[Task], target_bucket_id: str, start_order: int) -> List[TaskPatch]:
    """Append `tasks`, in the given order, after the target's current tasks."""
    return [
        TaskPatch(task_id=task.id, order_in_bucket=start_order + index, bucket_id=target_bucket_id)
        for index, task in enumerate(tasks)
    ]


def plan_bucket_deletion(
    bucket_id: str,
    buckets: Iterable[Bucket],
    completed_tasks: Iterable[Task] = (),
) -> Plan:
    """
    Validate deleting a bucket and relocate everything in it.

    Active tasks all go to the single bucket the resolver picks. Completed
    tasks that still point at the bucket are re-pointed too (at the same
    target, or the first unlimited bucket left when the bucket had no active
    tasks) so they have somewhere to return to when reopened. The buckets
    after it close ranks so bucket order stays dense.
    """
    buckets = list(buckets)
    result = can_delete_bucket_with_relocation(bucket_id, buckets)
    if not result.ok:
        return Plan.rejected(result)

    bucket = find_bucket(buckets, bucket_id)
    patches: List[TaskPatch] = []
    placement = None
    home_id = result.target_bucket_id

    if home_id is not None:
        target = find_bucket(buckets, home_id)
        placement = Placement.into(target)
        patches.extend(bulk_relocate(bucket.tasks, target.id, len(target.tasks)))
    else:
        home = next(
            (b for b in buckets if b.id != bucket_id and b.capacity.is_unlimited), None
        )
        home_id = home.id if home is not None else None

    if home_id is not None:
        patches.extend(
            TaskPatch(task_id=t.id, order_in_bucket=t.order_in_bucket, bucket_id=home_id)
            for t in completed_tasks
            if t.bucket_id == bucket_id and t.is_completed
        )

    remaining = sorted(
        (b for b in buckets if b.id != bucket_id), key=lambda b: (b.order, b.id)
    )
    bucket_patches = [
        BucketPatch(bucket_id=b.id, order=index)
        for index, b in enumerate(remaining)
        if b.order != index
    ]

    return Plan.of(
        patches,
        bucket_patches,
        placement=placement,
        delete_bucket_id=bucket_id,
    )


def plan_bucket_move(bucket_id: str, direction: MoveDirection, buckets: Iterable[Bucket]) -> Plan:
    """Swap `order` with the neighbouring bucket."""
    buckets = list(buckets)
    result = can_move_bucket(bucket_id, direction, buckets)
    if not result.ok:
        return Plan.rejected(result)

    bucket = find_bucket(buckets, bucket_id)
    neighbour = find_bucket(buckets, result.target_bucket_id)
    return Plan.of(
        bucket_patches=[
            BucketPatch(bucket_id=bucket.id, order=neighbour.order),
            BucketPatch(bucket_id=neighbour.id, order=bucket.order),
        ]
    )


def plan_task_creation(
    buckets: Iterable[Bucket],
    preferred_bucket_id: Optional[str] = None,
    error_message: Optional[str] = None,
    completed: bool = False,
) -> Placement:
    """
    Where one new task goes: the preferred bucket if it has room, else the first that does.

    A task created already completed takes no slot, so it stays in the
    preferred bucket whatever its load (the first unlimited bucket when none
    is given).
    """
    buckets = list(buckets)
    if not completed:
        return find_target_bucket_with_capacity(
            1, buckets, preferred_bucket_id=preferred_bucket_id, error_message=error_message
        )

    if preferred_bucket_id is not None:
        home = find_bucket(buckets, preferred_bucket_id)
    else:
        home = next((b for b in buckets if b.capacity.is_unlimited), None)
    if home is None:
        return Placement(ok=False, message="Bucket not found", kind=ErrorKind.NOT_FOUND)
    return Placement.into(home)


def plan_task_deletion(buckets: Iterable[Bucket], tasks: Iterable[Task], task_id: str) -> Plan:
    """
    Delete a task and close the gap it leaves.

    The delete and the renumbering of its bucket go out as one batch.
    Completed tasks hold no slot, so deleting one renumbers nothing.
    """
    task = next((t for t in tasks if t.id == task_id), None)
    if task is None:
        return _task_not_found(task_id)

    patches: List[TaskPatch] = []
    if not task.is_completed:
        bucket = find_bucket(buckets, task.bucket_id)
        if bucket is not None:
            patches = resequence_bucket(bucket, exclude_task_ids=[task.id])
    return Plan.of(patches, delete_task_id=task.id)


def plan_task_completion(
    buckets: Iterable[Bucket],
    tasks: Iterable[Task],
    task_id: str,
    completed: bool,
    now: Optional[datetime] = None,
) -> Plan:
    """
    Complete or reopen a task.

    Completing takes the task out of its bucket's ordering and closes the gap.
    Reopening sends it back to its last bucket, or the first bucket with room
    if that one is full (placement.relocated tells which).

    Args:
        buckets: Hydrated buckets, active tasks only
        tasks: Flat task list including completed tasks
    """
    buckets = list(buckets)
    task = next((t for t in tasks if t.id == task_id), None)
    if task is None:
        return _task_not_found(task_id)
    if task.is_completed == completed:
        return Plan.of()

    if completed:
        patches = [
            TaskPatch(
                task_id=task.id,
                order_in_bucket=task.order_in_bucket,
                status=TaskStatus.COMPLETED,
                completed_at=now or utc_now(),
            )
        ]
        bucket = find_bucket(buckets, task.bucket_id)
        if bucket is not None:
            patches.extend(resequence_bucket(bucket, exclude_task_ids=[task.id]))
        return Plan.of(patches)

    placement = find_target_bucket_with_capacity(
        1,
        buckets,
        preferred_bucket_id=task.bucket_id,
        error_message=f'Cannot reopen "{task.title}" - all buckets are at capacity. Please free up space first.',
    )
    if not placement.ok:
        return Plan.rejected(placement)

    patch = bulk_relocate([task], placement.bucket_id, placement.order_in_bucket)[0]
    patch = replace(patch, status=TaskStatus.NOT_STARTED, clear_completed_at=True)
    return Plan.of([patch], placement=placement)
