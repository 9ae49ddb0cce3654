"""
threshold_rules.py – Pure, stateless threshold classification.

``classify()`` takes a numeric reading and the ``ThresholdPolicy`` that applies
to it and returns either a ``Violation`` or ``None``.  It has no I/O and can
be tested completely offline.

Rule set
--------
Checked in priority order; the first rule that matches wins:

1. **critical / high** – ``critical_max`` is set and ``value > critical_max``.
2. **critical / low**  – ``critical_min`` is set and ``value < critical_min``.
3. **warning / high**  – ``warning_max`` is set and ``value > warning_max``.
4. **warning / low**   – ``warning_min`` is set and ``value < warning_min``.

A reading sitting exactly on a bound is within range.  Because critical rules
run first, a reading above ``critical_max`` never yields a warning, even
though it is also above ``warning_max``.
"""

from dataclasses import dataclass
from typing import Literal

from flockwatch.common.models import ThresholdPolicy

Severity = Literal["warning", "critical"]
Direction = Literal["high", "low"]


@dataclass(frozen=True)
class Violation:
    """Outcome of a failed threshold check."""

    severity: Severity
    direction: Direction
    bound: float

    @property
    def label(self) -> str:
        """``critically high``, ``critically low``, ``high`` or ``low``."""
        if self.severity == "critical":
            return f"critically {self.direction}"
        return self.direction


def classify(value: float, policy: ThresholdPolicy) -> Violation | None:
    """
    Apply the rule set to a single reading.

    Parameters
    ----------
    value:
        The numeric reading.
    policy:
        The policy resolved for the reading's event type and the house's bird age.

    Returns
    -------
    Violation | None
        The first violated rule, or ``None`` if the reading is within range.
    """
    if policy.critical_max is not None and value > policy.critical_max:
        return Violation("critical", "high", policy.critical_max)
    if policy.critical_min is not None and value < policy.critical_min:
        return Violation("critical", "low", policy.critical_min)
    if policy.warning_max is not None and value > policy.warning_max:
        return Violation("warning", "high", policy.warning_max)
    if policy.warning_min is not None and value < policy.warning_min:
        return Violation("warning", "low", policy.warning_min)
    return None


def format_number(number: float) -> str:
    """Render ``95.0`` as ``95`` and ``95.5`` as ``95.5``."""
    if float(number).is_integer():
        return str(int(number))
    return str(number)


def describe(value: float, violation: Violation, policy: ThresholdPolicy) -> str:
    """
    Build the human-readable alert message, e.g.
    ``"Temperature is high: 95°C (threshold: 90°C)"``.
    """
    unit = policy.unit or ""
    return (
        f"{policy.display_name} is {violation.label}: "
        f"{format_number(value)}{unit} "
        f"(threshold: {format_number(violation.bound)}{unit})"
    )
