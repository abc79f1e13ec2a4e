"""
taskstore - Persistence layer for a stack-based task execution framework.

This package provides:
- Task runs: top-level task invocations and their outcome
- Stack runs: persisted, suspendable call-stack frames and the pending-work query
- Task functions: runnable code stored under a stable identifier
- Keystore: generic settings
- An embedded SQLite working copy checkpointed to a single file
"""

__version__ = "0.1.0"

from .core import (
    HierarchyError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    PayloadDecodeError,
    StackRun,
    StackRunNode,
    StackRunStatus,
    StoreClosedError,
    TaskFunction,
    TaskRun,
    TaskRunStatus,
    TaskStore,
    TaskStoreError,
    UninitializedStoreError,
    ValidationError,
)
from .utils.config import MEMORY

__all__ = [
    "__version__",
    "MEMORY",
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
