"""
Stack run hierarchy - persisted, resumable call-stack frames.

Frames are stored flat: every frame carries its task_run_id and an optional
parent pointer, so the scheduler's "what can run next" lookup is a single
indexed scan instead of a tree walk.

Write-boundary rules:
- task_run_id must name an existing task run.
- A parent must exist, belong to the same task run, and have an acyclic
  ancestor chain.
- task_run_id and parent_stack_run_id are fixed at creation.
- Status changes follow STACK_RUN_TRANSITIONS. Entering a suspended state
  starts a new suspension cycle: suspended_at is stamped and the previous
  cycle's resume_payload is cleared, unless the caller supplies either.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from taskstore.core.errors import (
    HierarchyError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from taskstore.core.filters import build_where, check_fields, normalize_id, normalize_optional_id
from taskstore.core.models import (
    PENDING_WORK_STATUSES,
    STACK_RUN_TRANSITIONS,
    SUSPENDED_STATUSES,
    TERMINAL_STATUSES,
    StackRun,
    StackRunNode,
    StackRunStatus,
    coerce_status,
    parse_status,
)
from taskstore.core.task_runs import task_run_exists
from taskstore.utils.serialization import decode_payload, encode_payload, utc_now

__all__ = [
    "create_stack_run",
    "get_stack_run",
    "update_stack_run",
    "query_stack_runs",
    "get_pending_stack_runs",
    "get_child_stack_runs",
    "get_stack_run_ancestry",
    "get_stack_tree",
]

logger = logging.getLogger(__name__)

PAYLOAD_FIELDS = ("input", "result", "error", "resume_payload")
IMMUTABLE_FIELDS = ("id", "task_run_id", "parent_stack_run_id", "created_at", "updated_at")
UPDATABLE_FIELDS = ("operation", "status", "suspended_at") + PAYLOAD_FIELDS
QUERYABLE_FIELDS = (
    "id", "task_run_id", "parent_stack_run_id", "operation", "status",
    "suspended_at", "created_at", "updated_at",
)
ID_FIELDS = ("id", "task_run_id", "parent_stack_run_id")


def _row_to_stack_run(row: sqlite3.Row) -> StackRun:
    return StackRun(
        id=row["id"],
        task_run_id=row["task_run_id"],
        parent_stack_run_id=row["parent_stack_run_id"],
        operation=row["operation"],
        status=coerce_status(StackRunStatus, row["status"]),
        input=decode_payload(row["input"], "stack_runs.input"),
        result=decode_payload(row["result"], "stack_runs.result"),
        error=decode_payload(row["error"], "stack_runs.error"),
        suspended_at=row["suspended_at"],
        resume_payload=decode_payload(row["resume_payload"], "stack_runs.resume_payload"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _require_operation(operation: Any) -> str:
    if not isinstance(operation, str) or not operation.strip():
        raise ValidationError("operation is required and must be a non-empty string")
    return operation


def _timestamp(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return value.isoformat(timespec="milliseconds")
    raise ValidationError(f"suspended_at must be an ISO8601 string or datetime, got {value!r}")


def _check_ancestry(conn: sqlite3.Connection, parent_id: int, task_run_id: int) -> None:
    """
    Walk from `parent_id` to its root, checking that every frame exists,
    belongs to `task_run_id`, and that no frame is visited twice.
    """
    visited = set()
    current: Optional[int] = parent_id
    while current is not None:
        if current in visited:
            raise HierarchyError(f"Stack run {parent_id} has a cyclic ancestor chain (revisits {current})")
        visited.add(current)

        row = conn.execute(
            "SELECT task_run_id, parent_stack_run_id FROM stack_runs WHERE id = ?",
            (current,)
        ).fetchone()
        if row is None:
            if current == parent_id:
                raise ValidationError(f"Parent stack run {parent_id} does not exist")
            raise HierarchyError(f"Stack run {parent_id} has a dangling ancestor {current}")
        if row["task_run_id"] != task_run_id:
            raise HierarchyError(
                f"Stack run {current} belongs to task run {row['task_run_id']}, "
                f"not task run {task_run_id}"
            )
        current = row["parent_stack_run_id"]


def create_stack_run(
    conn: sqlite3.Connection,
    task_run_id: Any,
    operation: str,
    parent_stack_run_id: Any = None,
    status: Any = StackRunStatus.PENDING,
    input: Any = None,
    result: Any = None,
    error: Any = None,
) -> StackRun:
    """
    Insert a new frame under a task run, optionally below a parent frame.

    Raises:
        ValidationError: Missing operation, unknown status, or a task run /
            parent that does not exist
        HierarchyError: Parent belongs to another task run, or its ancestor
            chain is corrupt
    """
    task_run_id = normalize_id(task_run_id, "task_run_id")
    parent_stack_run_id = normalize_optional_id(parent_stack_run_id, "parent_stack_run_id")
    operation = _require_operation(operation)
    status = parse_status(StackRunStatus, status)

    if not task_run_exists(conn, task_run_id):
        raise ValidationError(f"Task run {task_run_id} does not exist")
    if parent_stack_run_id is not None:
        _check_ancestry(conn, parent_stack_run_id, task_run_id)

    now = utc_now()
    suspended_at = now if status in SUSPENDED_STATUSES else None

    with conn:
        cur = conn.execute(
            """
            INSERT INTO stack_runs
            (task_run_id, parent_stack_run_id, operation, status, input, result, error,
             suspended_at, resume_payload, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
            """,
            (task_run_id, parent_stack_run_id, operation, status.value,
             encode_payload(input), encode_payload(result), encode_payload(error),
             suspended_at, now, now)
        )
    stack_run_id = cur.lastrowid
    logger.debug("Created stack run %s (task run %s, parent %s, %s, %s)",
                 stack_run_id, task_run_id, parent_stack_run_id, operation, status.value)
    return get_stack_run(conn, stack_run_id)


def get_stack_run(conn: sqlite3.Connection, stack_run_id: Any) -> Optional[StackRun]:
    """Fetch a stack run by id, or None if it does not exist."""
    stack_run_id = normalize_id(stack_run_id, "stack run id")
    row = conn.execute("SELECT * FROM stack_runs WHERE id = ?", (stack_run_id,)).fetchone()
    if row is None:
        return None
    return _row_to_stack_run(row)


def update_stack_run(conn: sqlite3.Connection, stack_run_id: Any, changes: Mapping[str, Any]) -> StackRun:
    """
    Apply a partial update, validating any status change.

    Raises:
        NotFoundError: If no stack run has this id
        ValidationError: For unknown or immutable fields, or an unknown status
        InvalidTransitionError: If the status change is not allowed
    """
    stack_run_id = normalize_id(stack_run_id, "stack run id")
    immutable = sorted(set(changes) & set(IMMUTABLE_FIELDS))
    if immutable:
        raise ValidationError(f"Stack run field(s) cannot be changed after creation: {', '.join(immutable)}")
    check_fields(changes.keys(), UPDATABLE_FIELDS, "updatable stack run")

    current = get_stack_run(conn, stack_run_id)
    if current is None:
        raise NotFoundError(f"Stack run {stack_run_id} does not exist")

    fields: Dict[str, Any] = dict(changes)

    if "status" in fields:
        new_status = parse_status(StackRunStatus, fields["status"])
        fields["status"] = new_status
        old_status = current.status
        if not isinstance(old_status, StackRunStatus):
            logger.warning("Stack run %s has unrecognized status %r; transition to %s not validated",
                           stack_run_id, old_status, new_status.value)
        elif new_status != old_status:
            if old_status in TERMINAL_STATUSES or new_status not in STACK_RUN_TRANSITIONS[old_status]:
                raise InvalidTransitionError(old_status.value, new_status.value)
            if new_status in SUSPENDED_STATUSES and old_status not in SUSPENDED_STATUSES:
                fields.setdefault("suspended_at", utc_now())
                fields.setdefault("resume_payload", None)

    assignments = []
    values: List[Any] = []
    for column, value in fields.items():
        if column == "operation":
            value = _require_operation(value)
        elif column == "status":
            value = value.value
        elif column == "suspended_at":
            value = _timestamp(value)
        elif column in PAYLOAD_FIELDS:
            value = encode_payload(value)
        assignments.append(f"{column} = ?")
        values.append(value)

    assignments.append("updated_at = ?")
    values.append(utc_now())

    with conn:
        conn.execute(
            f"UPDATE stack_runs SET {', '.join(assignments)} WHERE id = ?",
            (*values, stack_run_id)
        )

    if "status" in fields and fields["status"] != current.status:
        logger.debug("Stack run %s: %s -> %s", stack_run_id,
                     getattr(current.status, "value", current.status), fields["status"].value)
        if fields["status"] in TERMINAL_STATUSES:
            logger.info("Stack run %s finished (%s)", stack_run_id, fields["status"].value)
    return get_stack_run(conn, stack_run_id)


def _filter_value(column: str, value: Any) -> Any:
    if column == "status":
        return parse_status(StackRunStatus, value)
    if column in ID_FIELDS:
        return normalize_id(value, column)
    return value


def _normalize_criteria(criteria: Mapping[str, Any]) -> Dict[str, Any]:
    check_fields(criteria.keys(), QUERYABLE_FIELDS, "stack run filter")
    normalized: Dict[str, Any] = {}
    for column, value in criteria.items():
        if value is None:
            normalized[column] = None
        elif isinstance(value, (list, tuple, set, frozenset)):
            normalized[column] = [_filter_value(column, v) for v in value]
        else:
            normalized[column] = _filter_value(column, value)
    return normalized


def query_stack_runs(conn: sqlite3.Connection, criteria: Mapping[str, Any]) -> List[StackRun]:
    """
    Stack runs matching every criterion, in insertion order.

    A sequence value matches any of its members; None matches NULL.
    """
    where, params = build_where(_normalize_criteria(criteria))
    rows = conn.execute(f"SELECT * FROM stack_runs{where} ORDER BY id", params).fetchall()
    return [_row_to_stack_run(row) for row in rows]


def get_pending_stack_runs(conn: sqlite3.Connection, limit: Optional[int] = None) -> List[StackRun]:
    """
    Frames the scheduler can act on next: pending or waiting on a child,
    oldest first.
    """
    statuses = [s.value for s in PENDING_WORK_STATUSES]
    sql = f"""
        SELECT * FROM stack_runs
        WHERE status IN ({', '.join('?' for _ in statuses)})
        ORDER BY created_at ASC, id ASC
    """
    params: List[Any] = list(statuses)
    if limit is not None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError(f"limit must be a positive integer, got {limit!r}")
        sql += " LIMIT ?"
        params.append(limit)
    rows = conn.execute(sql, params).fetchall()
    return [_row_to_stack_run(row) for row in rows]


def get_child_stack_runs(conn: sqlite3.Connection, parent_id: Any) -> List[StackRun]:
    """Direct children of a frame, in creation order."""
    return query_stack_runs(conn, {"parent_stack_run_id": normalize_id(parent_id, "parent id")})


def get_stack_run_ancestry(conn: sqlite3.Connection, stack_run_id: Any) -> Optional[List[StackRun]]:
    """
    Ancestors of a frame, nearest first (parent, grandparent, ..., root).

    Returns:
        The ancestor list (empty for a root frame), or None if the frame
        does not exist

    Raises:
        HierarchyError: If the chain is cyclic or dangling
    """
    frame = get_stack_run(conn, stack_run_id)
    if frame is None:
        return None

    ancestors: List[StackRun] = []
    visited = {frame.id}
    parent_id = frame.parent_stack_run_id
    while parent_id is not None:
        if parent_id in visited:
            raise HierarchyError(f"Stack run {frame.id} has a cyclic ancestor chain (revisits {parent_id})")
        visited.add(parent_id)
        parent = get_stack_run(conn, parent_id)
        if parent is None:
            raise HierarchyError(f"Stack run {frame.id} has a dangling ancestor {parent_id}")
        ancestors.append(parent)
        parent_id = parent.parent_stack_run_id
    return ancestors


def get_stack_tree(conn: sqlite3.Connection, task_run_id: Any) -> List[StackRunNode]:
    """
    All frames of a task run as a forest of StackRunNode, roots in creation
    order, children in creation order.

    Raises:
        HierarchyError: If some frames cannot be reached from a root
    """
    task_run_id = normalize_id(task_run_id, "task_run_id")
    frames = query_stack_runs(conn, {"task_run_id": task_run_id})
    nodes = {frame.id: StackRunNode(frame) for frame in frames}

    roots: List[StackRunNode] = []
    for frame in frames:
        node = nodes[frame.id]
        parent = nodes.get(frame.parent_stack_run_id) if frame.parent_stack_run_id is not None else None
        if parent is None:
            if frame.parent_stack_run_id is not None:
                logger.warning("Stack run %s points at parent %s outside task run %s; treating as root",
                               frame.id, frame.parent_stack_run_id, task_run_id)
            roots.append(node)
        else:
            parent.children.append(node)

    reached = sum(1 for root in roots for _ in root.walk())
    if reached != len(nodes):
        raise HierarchyError(
            f"Task run {task_run_id} has {len(nodes) - reached} stack run(s) in a parent cycle"
        )
    return roots
