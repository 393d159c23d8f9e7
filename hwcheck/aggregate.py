from __future__ import annotations

from typing import Iterable

from hwcheck.models import CheckResult, Severity


def aggregate(results: Iterable[CheckResult]) -> CheckResult:
    """Fold results in order: highest severity, all issues, AND-ed flags."""
    total = CheckResult()
    for result in results:
        total.merge(result)
    return total


def exit_code(result: CheckResult) -> int:
    return 1 if result.severity >= Severity.ERROR else 0
