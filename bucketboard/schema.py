"""
Task and bucket schema.

Board layout:
  The ONE Thing (limit 1) → capacity-limited buckets → at least one unlimited bucket

Buckets are ordered by a dense zero-based `order` per owner; tasks are ordered
inside their bucket by a dense zero-based `order_in_bucket`. A bucket's
`tasks` list is never stored: hydration.hydrate() fills it from the flat
task list.
"""
import time
import uuid
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_id(prefix: str) -> str:
    """Generate a sortable unique record ID (ms-precision timestamp + random hex)."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"{prefix}-{ts}-{rand}"


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if isinstance(value, datetime) else value


class TaskStatus(Enum):
    """Task progress states."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"

    @classmethod
    def from_str(cls, value: str) -> "TaskStatus":
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[value.upper().replace("-", "_")]
        except KeyError:
            return cls.NOT_STARTED


class TaskPriority(Enum):
    """Task priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_str(cls, value: str) -> "TaskPriority":
        try:
            return cls[value.upper()]
        except KeyError:
            return cls.MEDIUM


class MoveDirection(Enum):
    """Direction a bucket is nudged in the bucket list."""
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class Capacity:
    """
    How many tasks a bucket may hold.

    Either unlimited (limit is None) or bounded by a positive integer.
    Build one with Capacity.unlimited() / Capacity.bounded(n).
    """
    limit: Optional[int] = None

    def __post_init__(self):
        if self.limit is not None and (isinstance(self.limit, bool) or self.limit < 1):
            raise ValueError(f"Bucket limit must be a positive integer, got {self.limit!r}")

    @classmethod
    def unlimited(cls) -> "Capacity":
        return cls(None)

    @classmethod
    def bounded(cls, limit: int) -> "Capacity":
        return cls(int(limit))

    @property
    def is_unlimited(self) -> bool:
        return self.limit is None

    def room_for(self, current_count: int, incoming_count: int) -> bool:
        """True if `incoming_count` more tasks fit on top of `current_count`."""
        if self.limit is None:
            return True
        return current_count + incoming_count <= self.limit

    def available(self, current_count: int) -> Optional[int]:
        """Free slots, or None when unbounded."""
        if self.limit is None:
            return None
        return max(self.limit - current_count, 0)


def normalize_limit(limit: Any) -> Optional[int]:
    """Stored limits of 0 / None / "" all mean 'no limit'."""
    if limit is None or limit == "":
        return None
    limit = int(limit)
    if limit == 0:
        return None
    if limit < 0:
        raise ValueError(f"Bucket limit must be a positive integer, got {limit}")
    return limit


@dataclass
class Task:
    """A single task living in one bucket."""

    id: str
    title: str
    bucket_id: str
    order_in_bucket: int = 0

    description: Optional[str] = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)

    user_id: str = ""
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "due_date": _format_dt(self.due_date),
            "tags": list(self.tags),
            "bucket_id": self.bucket_id,
            "order_in_bucket": self.order_in_bucket,
            "user_id": self.user_id,
            "completed_at": _format_dt(self.completed_at),
            "created_at": _format_dt(self.created_at),
            "updated_at": _format_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        status = data.get("status") or TaskStatus.NOT_STARTED.value
        priority = data.get("priority") or TaskPriority.MEDIUM.value
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            description=data.get("description"),
            status=status if isinstance(status, TaskStatus) else TaskStatus.from_str(status),
            priority=priority if isinstance(priority, TaskPriority) else TaskPriority.from_str(priority),
            due_date=_parse_dt(data.get("due_date")),
            tags=list(data.get("tags") or []),
            bucket_id=data.get("bucket_id", ""),
            order_in_bucket=int(data.get("order_in_bucket", 0)),
            user_id=data.get("user_id", ""),
            completed_at=_parse_dt(data.get("completed_at")),
            created_at=_parse_dt(data.get("created_at")) or utc_now(),
            updated_at=_parse_dt(data.get("updated_at")) or utc_now(),
        )


@dataclass
class Bucket:
    """An ordered, optionally capacity-limited group of tasks."""

    id: str
    name: str
    order: int = 0
    limit: Optional[int] = None
    is_one_thing: bool = False

    user_id: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    # Derived view, filled by hydration.hydrate()
    tasks: List[Task] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self):
        self.limit = normalize_limit(self.limit)

    @property
    def capacity(self) -> Capacity:
        return Capacity(self.limit)

    @property
    def task_count(self) -> int:
        return len(self.tasks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "limit": self.limit,
            "order": self.order,
            "is_one_thing": self.is_one_thing,
            "user_id": self.user_id,
            "created_at": _format_dt(self.created_at),
            "updated_at": _format_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bucket":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            limit=data.get("limit"),
            order=int(data.get("order", 0)),
            is_one_thing=bool(data.get("is_one_thing", False)),
            user_id=data.get("user_id", ""),
            created_at=_parse_dt(data.get("created_at")) or utc_now(),
            updated_at=_parse_dt(data.get("updated_at")) or utc_now(),
        )


@dataclass(frozen=True)
class TaskPatch:
    """One task update produced by the engine."""
    task_id: str
    order_in_bucket: int
    bucket_id: Optional[str] = None
    status: Optional[TaskStatus] = None
    completed_at: Optional[datetime] = None
    clear_completed_at: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Partial record for TaskStore.patch_many()."""
        data: Dict[str, Any] = {"id": self.task_id, "order_in_bucket": self.order_in_bucket}
        if self.bucket_id is not None:
            data["bucket_id"] = self.bucket_id
        if self.status is not None:
            data["status"] = self.status.value
        if self.completed_at is not None:
            data["completed_at"] = self.completed_at.isoformat()
        elif self.clear_completed_at:
            data["completed_at"] = None
        return data

    def apply(self, task: Task) -> Task:
        """Return a copy of `task` with this patch applied."""
        changes: Dict[str, Any] = {"order_in_bucket": self.order_in_bucket}
        if self.bucket_id is not None:
            changes["bucket_id"] = self.bucket_id
        if self.status is not None:
            changes["status"] = self.status
        if self.completed_at is not None:
            changes["completed_at"] = self.completed_at
        elif self.clear_completed_at:
            changes["completed_at"] = None
        return replace(task, **changes)


@dataclass(frozen=True)
class BucketPatch:
    """One bucket update (reorder, rename or limit change)."""
    bucket_id: str
    order: Optional[int] = None
    name: Optional[str] = None
    limit: Optional[int] = None
    clear_limit: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Partial record for BucketStore.patch_many()."""
        data: Dict[str, Any] = {"id": self.bucket_id}
        if self.order is not None:
            data["order"] = self.order
        if self.name is not None:
            data["name"] = self.name
        if self.limit is not None:
            data["limit"] = self.limit
        elif self.clear_limit:
            data["limit"] = None
        return data

    def apply(self, bucket: Bucket) -> Bucket:
        changes: Dict[str, Any] = {}
        if self.order is not None:
            changes["order"] = self.order
        if self.name is not None:
            changes["name"] = self.name
        if self.limit is not None:
            changes["limit"] = self.limit
        elif self.clear_limit:
            changes["limit"] = None
        return replace(bucket, **changes)
