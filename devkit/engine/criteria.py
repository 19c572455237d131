"""
devkit.engine.criteria — Criteria Evaluator
============================================

Operator-registry implementation for badge criterion evaluation.
Each :class:`Operator` maps to a pure handler that receives the current
metric value and the criterion's tagged target (:class:`Scalar` or
:class:`Range`).

This module is pure calculation — no database I/O.  Malformed criteria are
a catalog bug, never a runtime fault: evaluation reports "not met" instead
of raising.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from devkit.database.models import Metric, Operator
from devkit.errors import InvalidCriterionShape

# Map Metric → MetricSnapshot / UserStats field
METRIC_FIELDS: dict[str, str] = {
    Metric.TEMPLATES_CREATED: "templates_created",
    Metric.COPIES_RECEIVED: "copies_received",
    Metric.COMMANDS_GENERATED: "commands_generated",
    Metric.LIKES_RECEIVED: "likes_received",
    Metric.TOTAL_VIEWS: "total_views",
}


# ---------------------------------------------------------------------------
# Tagged target
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Scalar:
    value: float


@dataclass(frozen=True, slots=True)
class Range:
    low: float
    high: float

    @property
    def ascending(self) -> bool:
        return self.low <= self.high


Target = Scalar | Range


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _parse_target(raw: Any) -> Target | None:
    if _is_number(raw):
        return Scalar(raw)
    if isinstance(raw, (list, tuple)) and len(raw) == 2 and all(map(_is_number, raw)):
        return Range(raw[0], raw[1])
    return None


# ---------------------------------------------------------------------------
# Criterion
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Criterion:
    """metric + operator + tagged target.

    ``target`` is ``None`` when the stored value could not be read as either
    shape; such a criterion never matches.
    """

    metric: str
    operator: str
    target: Target | None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> Criterion:
        """Lenient parse of a stored ``badges.criteria`` value.  Never raises."""
        if not isinstance(raw, Mapping):
            raw = {}
        return cls(
            metric=str(raw.get("metric", "")),
            operator=str(raw.get("operator", "")),
            target=_parse_target(raw.get("target")),
        )

    @classmethod
    def parse(cls, raw: Mapping[str, Any] | None) -> Criterion:
        """Strict parse used when a catalog entry is created or edited.

        Raises
        ------
        InvalidCriterionShape
            Unknown metric/operator, or a target that doesn't match the
            operator (``between`` needs an ascending ``[low, high]`` pair,
            every other operator a single number >= 0).
        """
        if not isinstance(raw, Mapping):
            raise InvalidCriterionShape("Criterion must be an object")

        metric = raw.get("metric")
        if not isinstance(metric, str) or metric not in METRIC_FIELDS:
            raise InvalidCriterionShape(
                f"Unknown metric {metric!r}",
                details={"allowed": sorted(str(m) for m in METRIC_FIELDS)},
            )
        operator = raw.get("operator")
        if not isinstance(operator, str) or operator not in OPERATOR_HANDLERS:
            raise InvalidCriterionShape(
                f"Unknown operator {operator!r}",
                details={"allowed": sorted(str(o) for o in OPERATOR_HANDLERS)},
            )

        target = _parse_target(raw.get("target"))
        if operator == Operator.BETWEEN:
            if not isinstance(target, Range) or not target.ascending:
                raise InvalidCriterionShape(
                    "Between must have two ascending values [low, high]"
                )
        elif not isinstance(target, Scalar) or target.value < 0:
            raise InvalidCriterionShape(
                f"Operator {operator!r} requires a single number >= 0"
            )
        return cls(metric=str(metric), operator=str(operator), target=target)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.target, Range):
            target: Any = [self.target.low, self.target.high]
        elif isinstance(self.target, Scalar):
            target = self.target.value
        else:
            target = None
        return {"metric": self.metric, "operator": self.operator, "target": target}


# ---------------------------------------------------------------------------
# Snapshot & result
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MetricSnapshot:
    """A user's cumulative counters at evaluation time.  Read-only."""

    templates_created: int = 0
    copies_received: int = 0
    commands_generated: int = 0
    likes_received: int = 0
    total_views: int = 0

    def value_of(self, metric: str) -> int | None:
        """Counter for *metric*, or ``None`` if the metric isn't supported."""
        field_name = METRIC_FIELDS.get(metric)
        if field_name is None:
            return None
        return getattr(self, field_name)


@dataclass(frozen=True, slots=True)
class Evaluation:
    met: bool
    current_value: float
    target_value: float
    progress_percentage: int


# ---------------------------------------------------------------------------
# Operator handlers — pure functions (current, target) → bool
# ---------------------------------------------------------------------------
def _gte(current: float, target: Target | None) -> bool:
    return isinstance(target, Scalar) and current >= target.value


def _lte(current: float, target: Target | None) -> bool:
    return isinstance(target, Scalar) and current <= target.value


def _eq(current: float, target: Target | None) -> bool:
    return isinstance(target, Scalar) and current == target.value


def _between(current: float, target: Target | None) -> bool:
    if not isinstance(target, Range) or not target.ascending:
        return False
    return target.low <= current <= target.high


OPERATOR_HANDLERS: dict[str, Callable[[float, Target | None], bool]] = {
    Operator.GTE: _gte,
    Operator.LTE: _lte,
    Operator.EQ: _eq,
    Operator.BETWEEN: _between,
}


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------
def progress_target(target: Target | None) -> float:
    """The value progress is measured against (range high for ``between``)."""
    if isinstance(target, Range):
        return target.high
    if isinstance(target, Scalar):
        return target.value
    return 0


def progress_percentage(current: float, target_value: float, *, met: bool) -> int:
    """``clamp(round(current / target * 100), 0, 100)``, rounding halves up.

    A non-positive target has no meaningful ratio: 100 if met, else 0.
    """
    if target_value <= 0:
        return 100 if met else 0
    pct = math.floor(current / target_value * 100 + 0.5)
    return max(0, min(100, pct))


# ---------------------------------------------------------------------------
# Main evaluation function
# ---------------------------------------------------------------------------
def evaluate(
    criterion: Criterion,
    snapshot: MetricSnapshot,
    *,
    already_earned: bool = False,
) -> Evaluation:
    """Check *criterion* against *snapshot*.

    Parameters
    ----------
    criterion : Parsed criterion (see :meth:`Criterion.from_dict`).
    snapshot : The user's counters.
    already_earned : When True, progress is reported as a fixed 100.

    Returns
    -------
    Evaluation with ``met``, the metric's current value, the progress target
    and a 0–100 progress percentage (independent of ``met``).
    """
    target_value = progress_target(criterion.target)
    current = snapshot.value_of(criterion.metric)
    if current is None:
        return Evaluation(
            met=False,
            current_value=0,
            target_value=target_value,
            progress_percentage=100 if already_earned else 0,
        )

    handler = OPERATOR_HANDLERS.get(criterion.operator)
    met = handler(current, criterion.target) if handler is not None else False

    if already_earned:
        pct = 100
    else:
        pct = progress_percentage(current, target_value, met=met)
    return Evaluation(
        met=met,
        current_value=current,
        target_value=target_value,
        progress_percentage=pct,
    )
