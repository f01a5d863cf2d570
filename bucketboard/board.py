"""
Task board service: the layer UI intents talk to.

Every operation reads a fresh snapshot from the stores, asks the rules /
resolver / engine for a plan, and only writes once the plan is complete:

  task patches + task delete → TaskStore.patch_many (one transaction)
  bucket delete              → BucketStore.delete
  bucket patches             → BucketStore.patch_many (one transaction)

Rejected plans raise a BoardError before anything is written. Subscribers
are notified after a successful write.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from .config import Config
from .engine import (
    Plan,
    move_between_buckets,
    plan_bucket_deletion,
    plan_bucket_move,
    plan_task_completion,
    plan_task_creation,
    plan_task_deletion,
    reorder_within_bucket,
)
from .errors import BoardRuleError, NotFoundError, Outcome
from .hydration import find_bucket, find_task, hydrate
from .schema import (
    Bucket,
    BucketPatch,
    MoveDirection,
    Task,
    TaskPriority,
    TaskStatus,
    make_id,
    normalize_limit,
    utc_now,
)
from .store import BucketStore, TaskStore
from .validation import (
    can_create_bucket,
    can_update_bucket_limit,
    find_invariant_violations,
)

logger = logging.getLogger(__name__)

# Fields update_task() may change directly; bucket and order go through the engine
EDITABLE_TASK_FIELDS = {"title", "description", "priority", "due_date", "tags", "status"}


class TaskBoard:
    """Routes board intents through the rules and engine to the stores."""

    def __init__(self, task_store, bucket_store, owner_id: str):
        """
        Args:
            task_store: list/get/create/patch/patch_many/delete over Task records
            bucket_store: the same over Bucket records
            owner_id: Whose board this is
        """
        self.task_store = task_store
        self.bucket_store = bucket_store
        self.owner_id = owner_id
        self.subscribers: Dict[str, list] = {}  # event_type -> list of callbacks

    @classmethod
    def from_config(cls, cfg: Config, owner_id: str) -> "TaskBoard":
        """Board backed by the SQLite stores at cfg.db_path."""
        return cls(TaskStore(cfg.db_path), BucketStore(cfg.db_path), owner_id)

    # ──────────────────────────────────────────
    # Events
    # ──────────────────────────────────────────

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers."""
        for callback in self.subscribers.get(event_type, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")

    # ──────────────────────────────────────────
    # Snapshot + apply
    # ──────────────────────────────────────────

    def snapshot(self) -> Tuple[List[Bucket], List[Task]]:
        """(hydrated buckets with active tasks, every task of the owner)."""
        tasks = self.task_store.list(self.owner_id)
        buckets = hydrate(self.bucket_store.list(self.owner_id), tasks, include_completed=False)
        return buckets, tasks

    def buckets(self) -> List[Bucket]:
        return self.snapshot()[0]

    def check_invariants(self) -> List[str]:
        """Problems with the stored board, empty when sound."""
        return find_invariant_violations(self.buckets())

    def _check(self, outcome: Outcome, action: str) -> None:
        if not outcome.ok:
            logger.warning(f"Rejected {action}: {outcome.message}")
            outcome.raise_for_error()

    def _apply(self, plan: Plan, action: str) -> Plan:
        """Write a complete plan; a rejected plan raises before any write."""
        self._check(plan, action)
        if plan.task_patches or plan.delete_task_id:
            self.task_store.patch_many(
                [p.to_dict() for p in plan.task_patches],
                delete_ids=[plan.delete_task_id] if plan.delete_task_id else (),
            )
        if plan.delete_bucket_id:
            self.bucket_store.delete(plan.delete_bucket_id)
        if plan.bucket_patches:
            self.bucket_store.patch_many([p.to_dict() for p in plan.bucket_patches])
        if not plan.is_empty:
            logger.info(
                f"{action}: {len(plan.task_patches)} task patches, "
                f"{len(plan.bucket_patches)} bucket patches"
            )
        return plan

    def _parse_status(self, value: Any) -> TaskStatus:
        """Caller-supplied status; unknown values are rejected, not defaulted."""
        if isinstance(value, TaskStatus):
            return value
        try:
            return TaskStatus(value)
        except ValueError:
            raise BoardRuleError(f"Unknown status: {value!r}") from None

    def _get_task(self, tasks: Iterable[Task], task_id: str) -> Task:
        task = next((t for t in tasks if t.id == task_id), None)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    # ──────────────────────────────────────────
    # Tasks
    # ──────────────────────────────────────────

    def create_task(
        self,
        title: str,
        bucket_id: Optional[str] = None,
        description: Optional[str] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date=None,
        tags: Optional[list] = None,
        status: TaskStatus = TaskStatus.NOT_STARTED,
    ) -> Task:
        """
        Append a new task to `bucket_id` (or the first bucket with room).

        Raises CapacityError when no bucket can take it. A task created as
        completed takes no slot and stays in `bucket_id`.
        """
        if not title or not title.strip():
            raise BoardRuleError("Task title is required")
        status = self._parse_status(status)
        buckets, _ = self.snapshot()
        placement = plan_task_creation(
            buckets, bucket_id, completed=status == TaskStatus.COMPLETED
        )
        self._check(placement, "create task")

        now = utc_now()
        task = Task(
            id=make_id("task"),
            title=title.strip(),
            description=description,
            status=status,
            priority=priority,
            due_date=due_date,
            tags=list(tags or []),
            bucket_id=placement.bucket_id,
            order_in_bucket=placement.order_in_bucket,
            user_id=self.owner_id,
            completed_at=now if status == TaskStatus.COMPLETED else None,
            created_at=now,
            updated_at=now,
        )
        created = self.task_store.create(task)
        logger.info(f"Created task {created.id} in bucket {created.bucket_id}")
        self._emit("task_created", task=created, relocated=placement.relocated)
        return created

    def duplicate_task(self, task_id: str) -> Task:
        """Copy a task into its own bucket, or the first bucket with room."""
        _, tasks = self.snapshot()
        original = self._get_task(tasks, task_id)
        return self.create_task(
            title=f"{original.title} (copy)",
            bucket_id=original.bucket_id,
            description=original.description,
            priority=original.priority,
            due_date=original.due_date,
            tags=list(original.tags),
            status=TaskStatus.NOT_STARTED if original.is_completed else original.status,
        )

    def update_task(self, task_id: str, **changes: Any) -> Task:
        """
        Edit a task's own fields.

        Moving between buckets and reordering go through move_task /
        reorder_task; completing and reopening through set_task_completed.
        """
        unknown = set(changes) - EDITABLE_TASK_FIELDS
        if unknown:
            raise BoardRuleError(f"Cannot update {', '.join(sorted(unknown))} directly")

        status = changes.pop("status", None)
        if status is not None:
            status = self._parse_status(status)

        _, tasks = self.snapshot()
        task = self._get_task(tasks, task_id)
        if "title" in changes:
            if not (changes["title"] or "").strip():
                raise BoardRuleError("Task title is required")
            changes["title"] = changes["title"].strip()

        if status is not None:
            if (status == TaskStatus.COMPLETED) != task.is_completed:
                self.set_task_completed(task_id, status == TaskStatus.COMPLETED)
            if status != TaskStatus.COMPLETED:
                changes["status"] = status

        if changes:
            self.task_store.patch(task_id, changes)
        updated = self.task_store.get(task_id)
        self._emit("task_updated", task=updated)
        return updated

    def delete_task(self, task_id: str) -> None:
        """Delete a task and close the gap it leaves in its bucket."""
        buckets, tasks = self.snapshot()
        task = self._get_task(tasks, task_id)
        self._apply(plan_task_deletion(buckets, tasks, task_id), f"delete task {task_id}")
        self._emit("task_deleted", task_id=task_id, bucket_id=task.bucket_id)

    def reorder_task(self, active_task_id: str, over_task_id: str) -> Plan:
        """Drag `active_task_id` onto `over_task_id` inside one bucket."""
        buckets, _ = self.snapshot()
        plan = reorder_within_bucket(buckets, active_task_id, over_task_id)
        self._apply(plan, f"reorder task {active_task_id}")
        self._emit("tasks_reordered", task_id=active_task_id, plan=plan)
        return plan

    def move_task(
        self,
        task_id: str,
        target_bucket_id: str,
        target_task_id: Optional[str] = None,
    ) -> Plan:
        """Move a task into another bucket, onto `target_task_id` or at the end."""
        buckets, _ = self.snapshot()
        plan = move_between_buckets(buckets, task_id, target_bucket_id, target_task_id)
        self._apply(plan, f"move task {task_id} to {target_bucket_id}")
        self._emit("task_moved", task_id=task_id, bucket_id=target_bucket_id, plan=plan)
        return plan

    def drop_task(
        self,
        dragged_task_id: str,
        over_task_id: Optional[str] = None,
        over_bucket_id: Optional[str] = None,
    ) -> Plan:
        """
        Handle a drag & drop gesture.

        Dropped on a task: reorder when both share a bucket, otherwise move
        into that task's slot. Dropped on a bucket: move to its end.
        """
        buckets, _ = self.snapshot()
        dragged = find_task(buckets, dragged_task_id)
        if dragged is None:
            raise NotFoundError(f"Task {dragged_task_id} not found")
        source = dragged[0]

        if over_task_id is not None:
            over = find_task(buckets, over_task_id)
            if over is None:
                raise NotFoundError(f"Task {over_task_id} not found")
            if over[0].id == source.id:
                return self.reorder_task(dragged_task_id, over_task_id)
            return self.move_task(dragged_task_id, over[0].id, over_task_id)

        if over_bucket_id is not None and over_bucket_id != source.id:
            return self.move_task(dragged_task_id, over_bucket_id)
        return Plan.of()

    def set_task_completed(self, task_id: str, completed: bool = True) -> Plan:
        """Complete a task (freeing its slot) or reopen it into a bucket with room."""
        buckets, tasks = self.snapshot()
        plan = plan_task_completion(buckets, tasks, task_id, completed)
        self._apply(plan, f"{'complete' if completed else 'reopen'} task {task_id}")
        if not plan.is_empty:
            if completed:
                self._emit("task_completed", task_id=task_id)
            else:
                self._emit(
                    "task_reopened",
                    task_id=task_id,
                    bucket_id=plan.placement.bucket_id,
                    relocated=plan.placement.relocated,
                )
        return plan

    def toggle_task_completion(self, task_id: str) -> Plan:
        _, tasks = self.snapshot()
        task = self._get_task(tasks, task_id)
        return self.set_task_completed(task_id, not task.is_completed)

    # ──────────────────────────────────────────
    # Buckets
    # ──────────────────────────────────────────

    def create_bucket(self, name: str, limit: Optional[int] = None) -> Bucket:
        """Append a new bucket after the existing ones."""
        self._check(can_create_bucket(name, limit), "create bucket")
        buckets = self.buckets()
        now = utc_now()
        bucket = self.bucket_store.create(Bucket(
            id=make_id("bucket"),
            name=name.strip(),
            limit=limit,
            order=len(buckets),
            user_id=self.owner_id,
            created_at=now,
            updated_at=now,
        ))
        logger.info(f"Created bucket {bucket.id} ({bucket.name})")
        self._emit("bucket_created", bucket=bucket)
        return bucket

    def ensure_default_buckets(self, cfg: Config) -> List[Bucket]:
        """
        Seed an empty board: "The ONE Thing" first, then cfg.default_buckets.

        Leaves an existing board untouched.
        """
        existing = self.buckets()
        if existing:
            return existing

        now = utc_now()
        planned = [Bucket(
            id=make_id("bucket"),
            name=cfg.one_thing_name,
            limit=1,
            order=0,
            is_one_thing=True,
            user_id=self.owner_id,
            created_at=now,
            updated_at=now,
        )]
        for entry in cfg.default_buckets:
            planned.append(Bucket(
                id=make_id("bucket"),
                name=entry["name"],
                limit=entry.get("limit"),
                order=len(planned),
                user_id=self.owner_id,
                created_at=now,
                updated_at=now,
            ))

        problems = find_invariant_violations(planned)
        if problems:
            raise BoardRuleError(f"Invalid default buckets: {'; '.join(problems)}")

        created = [self.bucket_store.create(b) for b in planned]
        logger.info(f"Seeded {len(created)} buckets for {self.owner_id}")
        return created

    def rename_bucket(self, bucket_id: str, name: str) -> Bucket:
        if not name or not name.strip():
            raise BoardRuleError("Bucket name is required")
        if find_bucket(self.buckets(), bucket_id) is None:
            raise NotFoundError("Bucket not found")
        bucket = self.bucket_store.patch(bucket_id, BucketPatch(bucket_id, name=name.strip()).to_dict())
        self._emit("bucket_updated", bucket=bucket)
        return bucket

    def update_bucket_limit(self, bucket_id: str, new_limit: Optional[int]) -> Bucket:
        """Set (or with None, remove) a bucket's limit."""
        buckets = self.buckets()
        self._check(
            can_update_bucket_limit(bucket_id, new_limit, buckets),
            f"limit change on {bucket_id}",
        )
        limit = normalize_limit(new_limit)
        patch = BucketPatch(bucket_id, limit=limit, clear_limit=limit is None)
        bucket = self.bucket_store.patch(bucket_id, patch.to_dict())
        logger.info(f"Bucket {bucket_id} limit set to {bucket.limit}")
        self._emit("bucket_updated", bucket=bucket)
        return bucket

    def delete_bucket(self, bucket_id: str) -> Plan:
        """Relocate a bucket's tasks into one bucket with room, then delete it."""
        buckets, tasks = self.snapshot()
        completed = [t for t in tasks if t.is_completed]
        plan = plan_bucket_deletion(bucket_id, buckets, completed_tasks=completed)
        self._apply(plan, f"delete bucket {bucket_id}")
        self._emit(
            "bucket_deleted",
            bucket_id=bucket_id,
            target_bucket_id=plan.placement.bucket_id if plan.placement else None,
        )
        return plan

    def move_bucket(self, bucket_id: str, direction: MoveDirection) -> Plan:
        """Swap a bucket with its neighbour above or below."""
        if not isinstance(direction, MoveDirection):
            direction = MoveDirection(direction)
        plan = plan_bucket_move(bucket_id, direction, self.buckets())
        self._apply(plan, f"move bucket {bucket_id} {direction.value}")
        self._emit("buckets_reordered", bucket_id=bucket_id, direction=direction)
        return plan
