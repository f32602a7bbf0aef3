"""
Condition matcher.

A condition tree maps a dotted property path to either a literal (equality) or an
operator object with exactly one key:

    {"plan": {"in": ["premium", "enterprise"]}, "email": {"endsWith": "@acme.com"}, "beta": True}

Paths resolve against the context's user_properties. Every top-level entry must hold.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Result of resolving a path that does not exist. Distinct from an explicit null.
MISSING = _Missing()


class ConditionError(ValueError):
    pass


class Operator(str, Enum):
    EQ = "eq"
    NE = "ne"
    IN = "in"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


def resolve_path(properties: Any, path: str) -> Any:
    current = properties
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            idx = int(part)
            if idx >= len(current):
                return MISSING
            current = current[idx]
        else:
            return MISSING
    return current


def strict_equals(left: Any, right: Any) -> bool:
    if left is MISSING or right is MISSING:
        return left is right
    # bool is an int subclass; True must not equal 1
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


def _to_number(value: Any) -> float:
    if value is MISSING:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, list):
        value = _as_text(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if "_" in text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _as_text(operand: Any) -> str:
    if isinstance(operand, str):
        return operand
    if operand is None:
        return "null"
    if isinstance(operand, bool):
        return "true" if operand else "false"
    if isinstance(operand, float) and operand.is_integer():
        return str(int(operand))
    if isinstance(operand, list):
        # [1, [2, null]] -> "1,2,"
        return ",".join("" if item is None else _as_text(item) for item in operand)
    if isinstance(operand, Mapping):
        return "[object Object]"
    return str(operand)


def _in(value: Any, operand: Any) -> bool:
    if not isinstance(operand, list):
        return False
    return any(strict_equals(value, item) for item in operand)


_OPERATIONS: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.EQ: strict_equals,
    Operator.NE: lambda value, operand: not strict_equals(value, operand),
    Operator.IN: _in,
    Operator.CONTAINS: lambda value, operand: isinstance(value, str) and _as_text(operand) in value,
    Operator.STARTS_WITH: lambda value, operand: isinstance(value, str) and value.startswith(_as_text(operand)),
    Operator.ENDS_WITH: lambda value, operand: isinstance(value, str) and value.endswith(_as_text(operand)),
    Operator.GT: lambda value, operand: _to_number(value) > _to_number(operand),
    Operator.GTE: lambda value, operand: _to_number(value) >= _to_number(operand),
    Operator.LT: lambda value, operand: _to_number(value) < _to_number(operand),
    Operator.LTE: lambda value, operand: _to_number(value) <= _to_number(operand),
}


@dataclass(frozen=True)
class Predicate:
    path: str
    operator: Operator
    operand: Any

    def test(self, properties: Mapping[str, Any]) -> bool:
        return _OPERATIONS[self.operator](resolve_path(properties, self.path), self.operand)


def _parse_predicate(path: str, node: Any) -> Predicate:
    if isinstance(node, Mapping):
        if len(node) != 1:
            raise ConditionError(f"{path}: operator object must have exactly one key, got {len(node)}")
        ((name, operand),) = node.items()
        try:
            operator = Operator(name)
        except ValueError:
            raise ConditionError(f"{path}: unknown operator {name!r}") from None
        if operator is Operator.IN and not isinstance(operand, list):
            raise ConditionError(f"{path}: 'in' expects a list")
        return Predicate(path=path, operator=operator, operand=operand)

    if isinstance(node, list):
        raise ConditionError(f"{path}: a list is not a literal; use {{'in': [...]}}")

    return Predicate(path=path, operator=Operator.EQ, operand=node)


def parse_conditions(raw: Any) -> tuple[Predicate, ...]:
    """
    Raises ConditionError on anything that is not a well-formed condition tree.
    """
    if not isinstance(raw, Mapping):
        raise ConditionError("conditions must be an object")

    predicates = []
    for path, node in raw.items():
        if not isinstance(path, str) or not path.strip():
            raise ConditionError("condition paths must be non-empty strings")
        predicates.append(_parse_predicate(path, node))
    return tuple(predicates)


def matches(conditions: Any, properties: Mapping[str, Any] | None) -> bool:
    """
    True when every predicate holds. None => no constraint.
    Malformed trees and evaluation failures fail closed.
    """
    if conditions is None:
        return True
    try:
        predicates = parse_conditions(conditions)
        return all(p.test(properties or {}) for p in predicates)
    except Exception:
        logger.warning("Condition evaluation failed; treating as not met", exc_info=True)
        return False
