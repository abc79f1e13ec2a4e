"""
Record types and status vocabularies.

Statuses are persisted as text but validated against closed enums at the
write boundary. Both enums subclass str, so `record.status == "pending"`
holds for a pending record.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

from taskstore.core.errors import ValidationError

__all__ = [
    "TaskRunStatus",
    "StackRunStatus",
    "PENDING_WORK_STATUSES",
    "SUSPENDED_STATUSES",
    "TERMINAL_STATUSES",
    "STACK_RUN_TRANSITIONS",
    "TaskRun",
    "StackRun",
    "StackRunNode",
    "TaskFunction",
    "KeystoreEntry",
    "InitReport",
    "ShutdownReport",
    "coerce_status",
    "parse_status",
]

logger = logging.getLogger(__name__)


class TaskRunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StackRunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUSPENDED = "suspended"
    SUSPENDED_WAITING_CHILD = "suspended_waiting_child"
    COMPLETED = "completed"
    FAILED = "failed"


PENDING_WORK_STATUSES = (StackRunStatus.PENDING, StackRunStatus.SUSPENDED_WAITING_CHILD)

SUSPENDED_STATUSES: FrozenSet[StackRunStatus] = frozenset({
    StackRunStatus.SUSPENDED,
    StackRunStatus.SUSPENDED_WAITING_CHILD,
})

TERMINAL_STATUSES: FrozenSet[StackRunStatus] = frozenset({
    StackRunStatus.COMPLETED,
    StackRunStatus.FAILED,
})

# Allowed status changes for a stack run. Terminal states have no exits.
STACK_RUN_TRANSITIONS: Dict[StackRunStatus, FrozenSet[StackRunStatus]] = {
    StackRunStatus.PENDING: frozenset({
        StackRunStatus.RUNNING,
        StackRunStatus.COMPLETED,
        StackRunStatus.FAILED,
    }),
    StackRunStatus.RUNNING: frozenset({
        StackRunStatus.SUSPENDED,
        StackRunStatus.SUSPENDED_WAITING_CHILD,
        StackRunStatus.COMPLETED,
        StackRunStatus.FAILED,
    }),
    StackRunStatus.SUSPENDED: frozenset({
        StackRunStatus.RUNNING,
        StackRunStatus.COMPLETED,
        StackRunStatus.FAILED,
    }),
    StackRunStatus.SUSPENDED_WAITING_CHILD: frozenset({
        StackRunStatus.RUNNING,
        StackRunStatus.COMPLETED,
        StackRunStatus.FAILED,
    }),
    StackRunStatus.COMPLETED: frozenset(),
    StackRunStatus.FAILED: frozenset(),
}


def parse_status(enum_cls, value: Any):
    """Validate a caller-supplied status; unknown values raise ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(f"Unknown status {value!r} (expected one of: {allowed})") from None


def coerce_status(enum_cls, value: str) -> Union[Enum, str]:
    """Map a stored status to the enum, keeping unknown legacy text as-is."""
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Stored status %r is not a known %s", value, enum_cls.__name__)
        return value


@dataclass
class TaskRun:
    """One top-level invocation of a named task."""
    id: int
    task_identifier: str
    status: Union[TaskRunStatus, str]
    input: Any = None
    result: Any = None
    error: Any = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class StackRun:
    """One frame of a task run's persisted call stack."""
    id: int
    task_run_id: int
    operation: str
    status: Union[StackRunStatus, str]
    parent_stack_run_id: Optional[int] = None
    input: Any = None
    result: Any = None
    error: Any = None
    suspended_at: Optional[str] = None
    resume_payload: Any = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent_stack_run_id is None

    @property
    def is_suspended(self) -> bool:
        return self.status in SUSPENDED_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class StackRunNode:
    """A stack run together with its child frames."""
    stack_run: StackRun
    children: List["StackRunNode"] = field(default_factory=list)

    def walk(self):
        """Yield every stack run in this subtree, depth-first, parents first."""
        yield self.stack_run
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict:
        data = self.stack_run.to_dict()
        data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass
class TaskFunction:
    """Stored runnable code under a stable identifier."""
    id: int
    identifier: str
    code: str
    metadata: Any = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class KeystoreEntry:
    key: str
    value: Any
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class InitReport:
    """Outcome of TaskStore.init(). `degraded` means stored data was discarded."""
    location: str
    loaded_from_disk: bool = False
    degraded: bool = False
    warnings: List[str] = field(default_factory=list)


@dataclass
class ShutdownReport:
    """Outcome of TaskStore.close()."""
    location: str
    checkpointed: bool = False
    already_closed: bool = False
    warnings: List[str] = field(default_factory=list)


def _plain(data: dict) -> dict:
    # asdict keeps enum members; JSON/YAML output wants their text
    status = data.get("status")
    if isinstance(status, Enum):
        data["status"] = status.value
    return data
