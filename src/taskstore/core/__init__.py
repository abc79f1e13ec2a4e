"""
Core persistence engine.

- store: TaskStore, the async facade used by schedulers
- engine: process-wide SQLite bootstrap and working-copy I/O
- task_runs / stack_runs / task_functions / keystore: per-table operations
- models: record types and status vocabularies
- errors: exception hierarchy
"""

from taskstore.core.errors import (
    HierarchyError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    PayloadDecodeError,
    StoreClosedError,
    TaskStoreError,
    UninitializedStoreError,
    ValidationError,
)
from taskstore.core.models import (
    StackRun,
    StackRunNode,
    StackRunStatus,
    TaskFunction,
    TaskRun,
    TaskRunStatus,
)
from taskstore.core.store import TaskStore

__all__ = [
    "TaskStore",
    "TaskRun",
    "StackRun",
    "StackRunNode",
    "TaskFunction",
    "TaskRunStatus",
    "StackRunStatus",
    "TaskStoreError",
    "UninitializedStoreError",
    "StoreClosedError",
    "ValidationError",
    "InvalidTransitionError",
    "HierarchyError",
    "InvalidArgumentError",
    "NotFoundError",
    "PayloadDecodeError",
]
