"""Metadata predicate evaluation.

Filter grammar, evaluated against an item's metadata dict:

- ``{"$and": [f, ...]}``: every sub-filter matches (an empty list matches).
- ``{"$or": [f, ...]}``: at least one sub-filter matches (an empty list never matches).
- ``{"field": scalar}``: strict equality.
- ``{"field": {"$op": operand, ...}}``: every operator holds. Operators are
  ``$eq``, ``$ne``, ``$gt``, ``$gte``, ``$lt``, ``$lte``, ``$in`` and ``$nin``.

A missing or null metadata value never matches a field predicate.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

MetadataFilter = Mapping[str, Any]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equal(a: Any, b: Any) -> bool:
    """Equality that never crosses value kinds (True != 1, "1" != 1)."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def _contains(values: Any, value: Any) -> bool:
    if not isinstance(values, (list, tuple, set, frozenset)):
        return False
    return any(strict_equal(value, v) for v in values)


def _compare(value: Any, operand: Any, op: str) -> bool:
    if not _is_number(value) or not _is_number(operand):
        return False
    if op == "$gt":
        return value > operand
    if op == "$gte":
        return value >= operand
    if op == "$lt":
        return value < operand
    return value <= operand


def match_value(value: Any, op_filter: Mapping[str, Any]) -> bool:
    """Evaluate an operator object against a single metadata value."""
    if value is None:
        return False

    for op, operand in op_filter.items():
        if op == "$eq":
            ok = strict_equal(value, operand)
        elif op == "$ne":
            ok = not strict_equal(value, operand)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = _compare(value, operand, op)
        elif op == "$in":
            ok = not isinstance(value, bool) and _contains(operand, value)
        elif op == "$nin":
            ok = not isinstance(value, bool) and not _contains(operand, value)
        else:
            ok = strict_equal(value, operand)
        if not ok:
            return False
    return True


def matches(metadata: Mapping[str, Any], filter: Optional[MetadataFilter]) -> bool:
    """Return True if `metadata` satisfies `filter`. No filter matches everything."""
    if not filter:
        return True

    for key, expected in filter.items():
        if key == "$and":
            if not all(matches(metadata, f) for f in expected):
                return False
        elif key == "$or":
            if not any(matches(metadata, f) for f in expected):
                return False
        else:
            if expected is None:
                return False
            value = metadata.get(key)
            if isinstance(expected, Mapping):
                if not match_value(value, expected):
                    return False
            elif value is None or not strict_equal(value, expected):
                return False
    return True
