"""Condition evaluators, one per condition variant.

Thresholds are parsed as numbers at evaluation time; a threshold that is not
numeric makes the condition false rather than raising.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from scanexport.core.errors import ConditionEvaluationError
from scanexport.core.models import ExportItem
from scanexport.rules.models import (
    Condition,
    CountOperator,
    DataCountCondition,
    DataTypeCondition,
    DataTypeOperator,
    ProductCondition,
    ProductOperator,
    Schedule,
    ScheduleKind,
    TimeCondition,
    TimeOperator,
)


def to_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or ``None`` when it is not numeric."""

    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_int(value: Any) -> Optional[int]:
    number = to_number(value)
    return int(number) if number is not None else None


def weekday_index(moment: datetime) -> int:
    """Weekday numbered Sunday = 0 through Saturday = 6."""

    return (moment.weekday() + 1) % 7


def field_value(item: Any, field: Optional[str]) -> Any:
    if not field:
        return item
    if isinstance(item, Mapping):
        return item.get(field)
    return getattr(item, field, None)


def has_product(item: Any) -> bool:
    if isinstance(item, Mapping):
        return bool(item.get("product"))
    return bool(getattr(item, "product", None))


def evaluate_count(condition: DataCountCondition, data: Sequence[Any], now: datetime) -> bool:
    expected = to_number(condition.value)
    if expected is None:
        return False
    actual = len(data)
    operator = condition.operator
    if operator is CountOperator.GREATER_THAN:
        return actual > expected
    if operator is CountOperator.LESS_THAN:
        return actual < expected
    if operator is CountOperator.EQUALS:
        return actual == expected
    if operator is CountOperator.GREATER_THAN_EQUALS:
        return actual >= expected
    return actual <= expected


def check_schedule(schedule: Schedule, now: datetime) -> bool:
    expected = to_int(schedule.value)
    if expected is None:
        return False
    if schedule.kind is ScheduleKind.HOURLY:
        return now.minute == 0
    if schedule.kind is ScheduleKind.DAILY:
        return now.hour == expected
    return weekday_index(now) == expected


def evaluate_time(condition: TimeCondition, data: Sequence[Any], now: datetime) -> bool:
    if condition.operator is TimeOperator.SCHEDULED:
        if not isinstance(condition.value, Schedule):
            return False
        return check_schedule(condition.value, now)
    expected = to_int(condition.value)
    if expected is None:
        return False
    if condition.operator is TimeOperator.TIME_OF_DAY:
        return now.hour == expected
    return weekday_index(now) == expected


def _meets_percentage(matching: int, total: int, threshold: Any) -> bool:
    expected = to_number(threshold)
    if expected is None:
        return False
    return (matching / total) * 100 >= expected


def evaluate_data_type(condition: DataTypeCondition, data: Sequence[Any], now: datetime) -> bool:
    if not data:
        return False
    matching = 0
    for item in data:
        value = field_value(item, condition.field)
        if value is not None and value == condition.value:
            matching += 1

    if condition.operator is DataTypeOperator.CONTAINS:
        return matching > 0
    if condition.operator is DataTypeOperator.ALL:
        return matching == len(data)
    threshold = condition.value if condition.threshold is None else condition.threshold
    return _meets_percentage(matching, len(data), threshold)


def evaluate_product(condition: ProductCondition, data: Sequence[Any], now: datetime) -> bool:
    if not data:
        return False
    with_product = sum(1 for item in data if has_product(item))

    if condition.operator is ProductOperator.HAS_PRODUCT:
        return with_product > 0
    if condition.operator is ProductOperator.ALL_HAVE_PRODUCTS:
        return with_product == len(data)
    return _meets_percentage(with_product, len(data), condition.value)


EVALUATORS: Dict[type, Callable[[Any, Sequence[Any], datetime], bool]] = {
    DataCountCondition: evaluate_count,
    TimeCondition: evaluate_time,
    DataTypeCondition: evaluate_data_type,
    ProductCondition: evaluate_product,
}


def evaluate_condition(condition: Condition, data: Sequence[ExportItem | Mapping[str, Any]], now: datetime) -> bool:
    """Dispatch ``condition`` to its evaluator.

    Any failure inside an evaluator surfaces as ``ConditionEvaluationError``.
    """

    evaluator = EVALUATORS.get(type(condition))
    if evaluator is None:
        raise ConditionEvaluationError(f"Unknown condition type: {type(condition).__name__}")
    try:
        return bool(evaluator(condition, data, now))
    except Exception as exc:
        raise ConditionEvaluationError(f"Failed to evaluate {condition.type.value} condition: {exc}") from exc
