"""
Identifier validation and filter-clause construction shared by the tables.

Filter values:
    scalar    -> column = ?
    None      -> column IS NULL
    sequence  -> column IN (?, ...)   (an empty sequence matches nothing)

Column names are checked against a per-table whitelist before they reach SQL.
"""

from enum import Enum
from typing import Any, Collection, List, Mapping, Tuple

from taskstore.core.errors import InvalidArgumentError, ValidationError

__all__ = ["normalize_id", "normalize_optional_id", "build_where", "check_fields"]

_SEQUENCE_TYPES = (list, tuple, set, frozenset)

# Largest value SQLite stores in an INTEGER column
MAX_ID = 2**63 - 1


def normalize_id(value: Any, name: str = "id") -> int:
    """
    Validate a record identifier.

    Positive integers and strings of ASCII digits are accepted, up to the
    SQLite INTEGER maximum. Anything else (bools, floats, arbitrary text)
    is structurally invalid.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            value = int(text)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    if not 1 <= value <= MAX_ID:
        raise InvalidArgumentError(f"{name} must be between 1 and {MAX_ID}, got {value!r}")
    return value


def normalize_optional_id(value: Any, name: str) -> Any:
    return None if value is None else normalize_id(value, name)


def check_fields(fields: Collection[str], allowed: Collection[str], what: str) -> None:
    unknown = sorted(set(fields) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Unknown {what} field(s): {', '.join(unknown)} "
            f"(allowed: {', '.join(sorted(allowed))})"
        )


def _scalar(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (dict,) + _SEQUENCE_TYPES):
        raise ValidationError(f"Filter values must be scalars, got {type(value).__name__}")
    return value


def build_where(criteria: Mapping[str, Any]) -> Tuple[str, List[Any]]:
    """
    Build a WHERE clause ANDing every criterion.

    Returns:
        (clause, params) where clause is "" for empty criteria.
    """
    conditions: List[str] = []
    params: List[Any] = []

    for column, value in criteria.items():
        if value is None:
            conditions.append(f"{column} IS NULL")
        elif isinstance(value, _SEQUENCE_TYPES):
            values = [_scalar(v) for v in value]
            if not values:
                conditions.append("0 = 1")
            else:
                conditions.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(values)
        else:
            conditions.append(f"{column} = ?")
            params.append(_scalar(value))

    if not conditions:
        return "", params
    return " WHERE " + " AND ".join(conditions), params
