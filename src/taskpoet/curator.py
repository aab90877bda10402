"""
Urgency scoring.

A curator holds a registry of named rules. Each rule looks at a task and the
present moment and returns (coefficient, multiplier, unit); the task's weight
is the sum of coefficient * multiplier over all rules.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .models import EffortImpact, Task, local_now

Rule = Callable[[Task, datetime], Tuple[float, int, str]]

_SECONDS_PER_DAY = 86400.0

_EFFORT_COEFFICIENTS = {
    EffortImpact.HIGH: 3.0,
    EffortImpact.MEDIUM: 2.0,
    EffortImpact.LOW: 1.0,
}


def _effort(task: Task, now: datetime) -> Tuple[float, int, str]:
    coefficient = _EFFORT_COEFFICIENTS.get(task.effort_impact)
    if coefficient is None:
        return 0.0, 0, ""
    return coefficient, 1, str(int(task.effort_impact))


def _children(task: Task, now: datetime) -> Tuple[float, int, str]:
    if task.children:
        return 1.0, 1, "has children"
    return 0.0, 0, ""


def _next(task: Task, now: datetime) -> Tuple[float, int, str]:
    if "next" in task.tags:
        return 15.0, 1, "has next tag"
    return 0.0, 0, ""


def _due(task: Task, now: datetime) -> Tuple[float, int, str]:
    if task.due is None:
        return 0.0, 0, ""
    # whole days, truncated toward zero
    lateness = int((now - task.due).total_seconds() / _SECONDS_PER_DAY)
    if lateness >= 7:
        return 1.0, 1, "maxed out lateness at 1 week overdue"
    if lateness >= -14:
        return ((lateness + 14.0) * 0.8 / 21.0) + 0.2, 1, "approaching"
    return 0.2, 1, "due in over 2 weeks"


def _age(task: Task, now: datetime) -> Tuple[float, int, str]:
    days = (now - task.added).total_seconds() / _SECONDS_PER_DAY
    if days < 1:
        return 0.0, 0, "super new"
    return 1 / days, 1, f"days ({int(days)})"


DEFAULT_WEIGHTS: Dict[str, Rule] = {
    "effort": _effort,
    "children": _children,
    "next": _next,
    "due": _due,
    "age": _age,
}


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class WeightDescription:
    """How a single rule contributed to a task's weight."""

    name: str
    coefficient: float
    multiplier: int
    unit: str


# PUBLIC_INTERFACE
class Curator:
    """
    Decides how urgent a task is.

    Args:
        weights: rule registry; defaults to DEFAULT_WEIGHTS.
        clock: callable returning the present moment; defaults to local now.
    """

    def __init__(
        self,
        weights: Optional[Dict[str, Rule]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.weights: Dict[str, Rule] = dict(DEFAULT_WEIGHTS if weights is None else weights)
        self._clock = clock or local_now

    # PUBLIC_INTERFACE
    def weigh(self, task: Task) -> float:
        """Return the urgency of a task."""
        weight, _ = self.weigh_and_describe(task)
        return weight

    # PUBLIC_INTERFACE
    def weigh_and_describe(self, task: Task) -> Tuple[float, List[WeightDescription]]:
        """
        Return the urgency of a task together with the contributing rules.

        Only rules with a non-zero multiplier are described, ordered by name.
        """
        now = self._clock()
        total = 0.0
        described: List[WeightDescription] = []
        for name in sorted(self.weights):
            coefficient, multiplier, unit = self.weights[name](task, now)
            total += coefficient * multiplier
            if multiplier != 0:
                described.append(WeightDescription(name, coefficient, multiplier, unit))
        return total, described
