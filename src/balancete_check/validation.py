# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Consistency checks on a parametrized trial balance.

Two independent checks are run for every validated month:

1. Hierarchy check (validate_hierarchy)
   For every mother account (node with at least one direct child), the
   parametrized value of the node must equal the signed sum of its direct
   children's parametrized values, within the tolerance. Leaves are never
   checked: they have no children to compare against.

2. Balance equation check (validate_balance_equation)
   The double-entry identity for the month:

       Assets - Liabilities  ==  Revenues - Costs & Expenses

   computed on the unsigned aggregates of the roots '1', '2', '3' and '4'.

A difference exactly equal to the tolerance is consistent; anything above
is inconsistent. The default tolerance is one cent (0.01) and can be
changed through the configuration.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal, Optional

from .engine import ValueCalculator

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = Decimal("0.01")

CONSISTENT = "consistent"
INCONSISTENT = "inconsistent"

FindingStatus = Literal["consistent", "inconsistent"]

ASSETS_ROOT = "1"
LIABILITIES_ROOT = "2"
REVENUES_ROOT = "3"
COSTS_AND_EXPENSES_ROOT = "4"

BALANCE_ROOTS = (ASSETS_ROOT, LIABILITIES_ROOT, REVENUES_ROOT, COSTS_AND_EXPENSES_ROOT)


@dataclass(frozen=True)
class ValidationFinding:
    """Result of the hierarchy check for one mother account and month."""

    company_id: str
    code: str
    name: str
    level: int
    year: int
    month: int
    parametrized_value: Decimal
    calculated_value: Decimal
    absolute_difference: Decimal
    status: FindingStatus

    @property
    def is_consistent(self) -> bool:
        return self.status == CONSISTENT


@dataclass(frozen=True)
class BalanceEquationFinding:
    """Result of the balance equation check for one month.

    ``missing_roots`` lists the root codes absent from the chart of
    accounts. Their value is reported as 0 but the finding is never
    consistent, since the equation could not really be checked.
    """

    company_id: str
    year: int
    month: int
    assets: Decimal
    liabilities: Decimal
    revenues: Decimal
    costs_and_expenses: Decimal
    patrimonial_delta: Decimal
    result_delta: Decimal
    difference: Decimal
    is_consistent: bool
    missing_roots: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ConfigurationIssue:
    """A configuration gap detected while validating a month."""

    kind: str
    code: str
    message: str
    year: Optional[int] = None
    month: Optional[int] = None


def within_tolerance(difference: Decimal, tolerance: Decimal) -> bool:
    return abs(difference) <= tolerance


def validate_hierarchy(
    calculator: ValueCalculator,
    company_id: str,
    year: int,
    month: int,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> list[ValidationFinding]:
    """Check parent-equals-sum-of-children for every mother account.

    Nodes are visited from the deepest level up to level 1, and by code
    within a level. Each calculated value only reads leaf data, so the
    visiting order does not change the results, only their order.

    Returns:
        One finding per mother account; leaves produce none.
    """
    chart = calculator.chart
    findings: list[ValidationFinding] = []

    for level in range(chart.max_level, 0, -1):
        for node in chart.nodes_at_level(level):
            if not chart.has_children(node.code):
                continue

            valuation = calculator.valuation(node)
            calculated = valuation.calculated_value
            difference = abs(valuation.parametrized_value - calculated)
            status: FindingStatus = (
                CONSISTENT if within_tolerance(difference, tolerance) else INCONSISTENT
            )
            findings.append(
                ValidationFinding(
                    company_id=company_id,
                    code=node.code,
                    name=node.name,
                    level=level,
                    year=year,
                    month=month,
                    parametrized_value=valuation.parametrized_value,
                    calculated_value=calculated,
                    absolute_difference=difference,
                    status=status,
                )
            )

    inconsistent = sum(1 for f in findings if f.status == INCONSISTENT)
    if inconsistent:
        logger.info(
            "Company %s %02d/%d: %d of %d mother accounts inconsistent.",
            company_id,
            month,
            year,
            inconsistent,
            len(findings),
        )
    return findings


def validate_balance_equation(
    calculator: ValueCalculator,
    company_id: str,
    year: int,
    month: int,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> tuple[BalanceEquationFinding, list[ConfigurationIssue]]:
    """Check Assets - Liabilities == Revenues - Costs & Expenses for a month.

    Returns:
        The finding, and one ConfigurationIssue per root missing from the
        chart of accounts.
    """
    chart = calculator.chart
    values: dict[str, Decimal] = {}
    missing: list[str] = []
    issues: list[ConfigurationIssue] = []

    for root in BALANCE_ROOTS:
        node = chart.get(root)
        if node is None:
            missing.append(root)
            values[root] = Decimal("0")
            message = (
                f"Root account {root!r} is missing from the chart of accounts; "
                "the balance equation cannot be verified."
            )
            logger.warning("Company %s %02d/%d: %s", company_id, month, year, message)
            issues.append(
                ConfigurationIssue(
                    kind="missing_root",
                    code=root,
                    message=message,
                    year=year,
                    month=month,
                )
            )
        else:
            values[root] = calculator.unsigned_aggregate(node)

    assets = values[ASSETS_ROOT]
    liabilities = values[LIABILITIES_ROOT]
    revenues = values[REVENUES_ROOT]
    costs = values[COSTS_AND_EXPENSES_ROOT]

    patrimonial_delta = assets - liabilities
    result_delta = revenues - costs
    difference = abs(patrimonial_delta - result_delta)

    finding = BalanceEquationFinding(
        company_id=company_id,
        year=year,
        month=month,
        assets=assets,
        liabilities=liabilities,
        revenues=revenues,
        costs_and_expenses=costs,
        patrimonial_delta=patrimonial_delta,
        result_delta=result_delta,
        difference=difference,
        is_consistent=not missing and within_tolerance(difference, tolerance),
        missing_roots=tuple(missing),
    )
    return finding, issues
