"""
Exception hierarchy for the store.

Every error derives from TaskStoreError and from the closest builtin, so
callers that catch ValueError/KeyError/RuntimeError keep working.
"""

__all__ = [
    "TaskStoreError",
    "EngineError",
    "UninitializedStoreError",
    "StoreClosedError",
    "ValidationError",
    "InvalidTransitionError",
    "HierarchyError",
    "InvalidArgumentError",
    "NotFoundError",
    "PayloadDecodeError",
    "CheckpointError",
]


class TaskStoreError(Exception):
    """Base class for store errors."""


class EngineError(TaskStoreError, RuntimeError):
    """The SQLite engine lacks a capability the store needs."""


class UninitializedStoreError(TaskStoreError, RuntimeError):
    """A data operation was called before init() completed."""


class StoreClosedError(UninitializedStoreError):
    """A data operation was called after close()."""


class ValidationError(TaskStoreError, ValueError):
    """A record or field set violates the data model."""


class InvalidTransitionError(ValidationError):
    """A stack run status change is not allowed from its current status."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot transition stack run from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class HierarchyError(ValidationError):
    """A stack run parent chain is inconsistent (wrong task run or cyclic)."""


class InvalidArgumentError(TaskStoreError, ValueError):
    """An identifier has the wrong type or format."""


class NotFoundError(TaskStoreError, KeyError):
    """A write targeted a record that does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class PayloadDecodeError(TaskStoreError, ValueError):
    """A structured payload column could not be encoded or decoded."""


class CheckpointError(TaskStoreError, OSError):
    """Writing the working copy to disk failed."""
