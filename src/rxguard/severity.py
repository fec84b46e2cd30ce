"""Severity ordering and check-status roll-up.

Weights exist only to order findings. They are never summed or averaged:
a single severe finding outweighs any number of mild ones.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, TypeVar

from rxguard.models import CheckStatus, Severity

_WEIGHTS: dict[Severity, int] = {
    Severity.CONTRAINDICATED: 5,
    Severity.SEVERE: 4,
    Severity.MODERATE: 3,
    Severity.MILD: 2,
    Severity.UNKNOWN: 1,
}

_CRITICAL = frozenset({Severity.CONTRAINDICATED, Severity.SEVERE})


class HasSeverity(Protocol):
    @property
    def severity(self) -> Severity: ...


S = TypeVar("S", bound=HasSeverity)


def weight(severity: Severity | str | None) -> int:
    """Return the sort weight of a severity; 0 for anything unrecognized."""
    try:
        return _WEIGHTS[Severity(severity)]
    except ValueError:
        return 0


def sort_by_severity(items: Iterable[S]) -> list[S]:
    """Sort findings highest risk first. Ties keep their input order."""
    return sorted(items, key=lambda item: weight(item.severity), reverse=True)


def is_critical(severity: Severity) -> bool:
    return severity in _CRITICAL


def is_warning(severity: Severity) -> bool:
    return severity is Severity.MODERATE


def determine_check_status(findings: Iterable[HasSeverity]) -> CheckStatus:
    """Classify a check by its single worst finding."""
    severities = {f.severity for f in findings}
    if severities & _CRITICAL:
        return CheckStatus.CRITICAL
    if Severity.MODERATE in severities:
        return CheckStatus.WARNINGS
    return CheckStatus.PASSED
