# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Core valuation engine for Balancete Check.

This module turns one month of a company's trial balance into values on
the standard chart of accounts. It provides the money-math used by both
validators (validation.py) and by the statement views (views.py).

Two values are computed per chart node
--------------------------------------
1. Parametrized value
   The raw aggregate of the node is the sum of the closing balances of the
   trial-balance codes linked to it (sign as imported). The nature resolver
   (nature.py) classifies the node as debit or credit; credit nodes report
   the aggregate with its sign flipped:

       parametrized = -raw   if nature == 'credit'
       parametrized =  raw   otherwise

2. Calculated value
   For a node with children ("conta mãe"), the sum of the parametrized
   values of its *direct* children only. Grandchildren are never added
   directly: they are already represented by their own parent.

The balance-equation check uses a third, distinct convention: the unsigned
magnitude abs(raw) of the four roots (Assets '1', Liabilities '2',
Revenues '3', Costs & Expenses '4'). The same node can therefore report a
different value depending on which validator asked for it.

Numeric semantics
-----------------
All amounts are ``decimal.Decimal``. Sums are exact; no rounding happens
before comparisons against the tolerance.

The calculator is bound to one (company, month) slice of data: it never
sees another month's trial-balance lines.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .accounts import ChartNode, ChartOfAccounts, DataIntegrityError
from .io import TrialBalanceLine
from .mapping import ParametrizationMap
from .nature import Nature, apply_sign, resolve_nature


@dataclass(frozen=True)
class NodeValuation:
    """
    Values of one chart node for one company and month.

    Attributes
    ----------
    code :
        Chart node code.
    raw_aggregate :
        Sum of mapped closing balances, sign as imported.
    nature :
        'debit' or 'credit', as resolved for this aggregate.
    parametrized_value :
        Signed value of the node from its own links.
    calculated_value :
        Signed sum of the direct children's parametrized values, or None
        when the node has no children.
    """

    code: str
    raw_aggregate: Decimal
    nature: Nature
    parametrized_value: Decimal
    calculated_value: Optional[Decimal]


@dataclass(frozen=True)
class ChildContribution:
    """Contribution of one direct child to its mother's calculated value."""

    code: str
    name: str
    nature: Nature
    parametrized_value: Decimal


def index_lines(lines: Iterable[TrialBalanceLine]) -> dict[str, TrialBalanceLine]:
    """Index one month of trial-balance lines by account code.

    Raises:
        DataIntegrityError: if the same code appears twice, or if lines of
            several companies or months are mixed.
    """
    by_code: dict[str, TrialBalanceLine] = {}
    slice_key = None
    for line in lines:
        key = (line.company_id, line.year, line.month)
        if slice_key is None:
            slice_key = key
        elif key != slice_key:
            raise DataIntegrityError(
                f"Trial balance lines from different periods mixed: "
                f"{slice_key} and {key}."
            )
        if line.code in by_code:
            raise DataIntegrityError(
                f"Trial balance code {line.code!r} appears twice for "
                f"company {line.company_id!r} in {line.month:02d}/{line.year}."
            )
        by_code[line.code] = line
    return by_code


class ValueCalculator:
    """Compute node values for one company and one month.

    Args:
        chart: Chart of accounts (shared, read-only).
        parametrization: Parametrization map of the company (shared,
            read-only).
        lines: Trial-balance lines of the month being validated.
    """

    def __init__(
        self,
        chart: ChartOfAccounts,
        parametrization: ParametrizationMap,
        lines: Iterable[TrialBalanceLine],
    ):
        self.chart = chart
        self.parametrization = parametrization
        self.lines_by_code = index_lines(lines)

    def raw_aggregate(self, node: ChartNode) -> Decimal:
        return self.parametrization.raw_aggregate(node.code, self.lines_by_code)

    def nature(self, node: ChartNode) -> Nature:
        return resolve_nature(node, self.raw_aggregate(node))

    def parametrized_value(self, node: ChartNode) -> Decimal:
        """Signed value of a node from its directly linked trial-balance codes."""
        raw = self.raw_aggregate(node)
        return apply_sign(raw, resolve_nature(node, raw))

    def calculated_value(self, node: ChartNode) -> Decimal:
        """Signed sum of the direct children's parametrized values.

        Returns 0 for a node without children; use
        ``chart.has_children(code)`` to tell a leaf from a mother account
        whose children had no activity.
        """
        total = Decimal("0")
        for child in self.chart.children_of(node.code):
            total += self.parametrized_value(child)
        return total

    def unsigned_aggregate(self, node: ChartNode) -> Decimal:
        """Magnitude of the raw aggregate, used by the balance equation."""
        return abs(self.raw_aggregate(node))

    def child_contributions(self, node: ChartNode) -> list[ChildContribution]:
        """Per-child detail of ``calculated_value`` (for reconciliation)."""
        out: list[ChildContribution] = []
        for child in self.chart.children_of(node.code):
            raw = self.raw_aggregate(child)
            nature = resolve_nature(child, raw)
            out.append(
                ChildContribution(
                    code=child.code,
                    name=child.name,
                    nature=nature,
                    parametrized_value=apply_sign(raw, nature),
                )
            )
        return out

    def valuation(self, node: ChartNode) -> NodeValuation:
        raw = self.raw_aggregate(node)
        nature = resolve_nature(node, raw)
        calculated: Optional[Decimal] = None
        if self.chart.has_children(node.code):
            calculated = self.calculated_value(node)
        return NodeValuation(
            code=node.code,
            raw_aggregate=raw,
            nature=nature,
            parametrized_value=apply_sign(raw, nature),
            calculated_value=calculated,
        )
