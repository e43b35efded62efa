# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for Balancete Check.

Trial balances are monthly. This module defines a Period value object
(year + month) and helpers to select the months that can be validated:
only trial balances whose parametrization has been started or completed
("parametrizando" / "parametrizado") are eligible, "pendente" ones are not.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from .mapping import STATUS_DONE, STATUS_IN_PROGRESS

ELIGIBLE_STATUSES = (STATUS_DONE, STATUS_IN_PROGRESS)


@dataclass(frozen=True, order=True)
class Period:
    """One month of one fiscal year."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month: {self.month!r} (expected 1-12).")

    @property
    def label(self) -> str:
        """Display label, e.g. '03/2024'."""
        return f"{self.month:02d}/{self.year}"

    @property
    def key(self) -> str:
        """Sortable key, e.g. '2024-03'."""
        return f"{self.year}-{self.month:02d}"


def months_of_year(year: int) -> list[Period]:
    return [Period(year, m) for m in range(1, 13)]


def eligible_months(
    statuses_by_month: Iterable[tuple[int, str]],
    eligible_statuses: Iterable[str] = ELIGIBLE_STATUSES,
) -> list[int]:
    """Return the sorted distinct months whose status is eligible.

    Args:
        statuses_by_month: (month, status) pairs, one per trial balance.
        eligible_statuses: Statuses that allow validation.

    Example:
        >>> eligible_months([(1, "pendente"), (4, "parametrizado")])
        [4]
    """
    allowed = set(eligible_statuses)
    return sorted(
        {int(month) for month, status in statuses_by_month if status in allowed}
    )
