# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for Balancete Check.

This module turns validation results and valuations into pandas DataFrames
ready for display (``DataFrame.to_string``) or CSV export. It contains no
accounting logic of its own: values come from engine.ValueCalculator and
validation results from multi_periods.ValidationRun.

The main views are:

- findings:        one row per mother account and month (hierarchy check),
- balance:         one row per month (balance equation check),
- issues:          configuration gaps found while validating,
- statement:       the parametrized balancete of one month, in chart order,
- breakdown:       a mother account against each child's contribution.

Amounts are kept as ``Decimal`` and quantized to cents for display only.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

import pandas as pd

from .engine import ValueCalculator
from .multi_periods import ValidationRun
from .validation import BalanceEquationFinding, ConfigurationIssue, ValidationFinding

CENT = Decimal("0.01")

FINDING_COLUMNS = [
    "period",
    "code",
    "name",
    "level",
    "parametrized_value",
    "calculated_value",
    "difference",
    "status",
]

BALANCE_COLUMNS = [
    "period",
    "assets",
    "liabilities",
    "revenues",
    "costs_and_expenses",
    "patrimonial_delta",
    "result_delta",
    "difference",
    "status",
    "missing_roots",
]

ISSUE_COLUMNS = ["period", "kind", "code", "message"]

STATEMENT_COLUMNS = ["display_order", "code", "level", "name", "nature", "amount"]

BREAKDOWN_COLUMNS = ["code", "name", "nature", "amount"]


@dataclass(frozen=True)
class RunSummary:
    """
    Headline numbers of a validation run.

    Attributes
    ----------
    nodes_analysed:
        Number of hierarchy findings (mother accounts times months).
    inconsistent_nodes:
        Hierarchy findings above the tolerance.
    months_analysed:
        Number of validated months.
    inconsistent_months:
        Months whose balance equation does not hold.
    """

    nodes_analysed: int
    inconsistent_nodes: int
    months_analysed: int
    inconsistent_months: int

    @property
    def is_fully_consistent(self) -> bool:
        """True only when nothing at all was flagged over the whole range."""
        return self.inconsistent_nodes == 0 and self.inconsistent_months == 0


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT)


def _period_label(year: int, month: int) -> str:
    return f"{month:02d}/{year}"


def _renumber_display_order(
    df: pd.DataFrame, start: int = 10, step: int = 10
) -> pd.DataFrame:
    """Reassign display_order to be strictly sequential: start, start+step, ...
    Preserves the current order of the lines (as it appears in df).
    """
    df = df.copy()
    df = df.reset_index(drop=True)
    df["display_order"] = [start + i * step for i in range(len(df))]
    return df


def findings_to_dataframe(findings: Iterable[ValidationFinding]) -> pd.DataFrame:
    """
    Convert hierarchy findings into a DataFrame.

    Rows keep the order of the findings (month by month, deepest level
    first). ``status`` holds "consistent" or "inconsistent".
    """
    rows = [
        {
            "period": _period_label(f.year, f.month),
            "code": f.code,
            "name": f.name,
            "level": f.level,
            "parametrized_value": _cents(f.parametrized_value),
            "calculated_value": _cents(f.calculated_value),
            "difference": _cents(f.absolute_difference),
            "status": f.status,
        }
        for f in findings
    ]
    return pd.DataFrame(rows, columns=FINDING_COLUMNS)


def balance_findings_to_dataframe(
    findings: Iterable[BalanceEquationFinding],
) -> pd.DataFrame:
    """Convert balance equation findings into a DataFrame, one row per month."""
    rows = [
        {
            "period": _period_label(b.year, b.month),
            "assets": _cents(b.assets),
            "liabilities": _cents(b.liabilities),
            "revenues": _cents(b.revenues),
            "costs_and_expenses": _cents(b.costs_and_expenses),
            "patrimonial_delta": _cents(b.patrimonial_delta),
            "result_delta": _cents(b.result_delta),
            "difference": _cents(b.difference),
            "status": "consistent" if b.is_consistent else "inconsistent",
            "missing_roots": ", ".join(b.missing_roots),
        }
        for b in findings
    ]
    return pd.DataFrame(rows, columns=BALANCE_COLUMNS)


def issues_to_dataframe(issues: Iterable[ConfigurationIssue]) -> pd.DataFrame:
    rows = [
        {
            "period": (
                _period_label(i.year, i.month)
                if i.year is not None and i.month is not None
                else ""
            ),
            "kind": i.kind,
            "code": i.code,
            "message": i.message,
        }
        for i in issues
    ]
    return pd.DataFrame(rows, columns=ISSUE_COLUMNS)


def build_balancete_statement(calculator: ValueCalculator) -> pd.DataFrame:
    """Return the parametrized balancete of the calculator's month.

    Every chart node whose signed parametrized value is non-zero is listed,
    in chart order (by code). Nodes without links, or whose links sum to
    zero, are left out to keep the statement readable.

    Columns: display_order, code, level, name, nature, amount.
    """
    rows: list[dict[str, object]] = []
    for node in calculator.chart:
        valuation = calculator.valuation(node)
        if valuation.parametrized_value == 0:
            continue
        rows.append(
            {
                "code": node.code,
                "level": node.level,
                "name": node.name,
                "nature": valuation.nature,
                "amount": _cents(valuation.parametrized_value),
            }
        )

    if not rows:
        return pd.DataFrame(columns=STATEMENT_COLUMNS)

    # Chart iteration is already in code order.
    df = _renumber_display_order(pd.DataFrame(rows))
    return df[STATEMENT_COLUMNS]


def build_inconsistency_breakdown(
    calculator: ValueCalculator, code: str
) -> pd.DataFrame:
    """Explain the hierarchy check of one mother account.

    The first row is the mother account itself (its parametrized value),
    followed by one row per direct child with its signed contribution, then
    a "calculated" row (sum of the children) and a "difference" row.

    Raises:
        KeyError: if ``code`` is not in the chart of accounts.
    """
    node = calculator.chart[code]
    valuation = calculator.valuation(node)

    rows: list[dict[str, object]] = [
        {
            "code": node.code,
            "name": node.name,
            "nature": valuation.nature,
            "amount": _cents(valuation.parametrized_value),
        }
    ]
    for child in calculator.child_contributions(node):
        rows.append(
            {
                "code": child.code,
                "name": child.name,
                "nature": child.nature,
                "amount": _cents(child.parametrized_value),
            }
        )

    calculated = valuation.calculated_value or Decimal("0")
    rows.append(
        {"code": "", "name": "calculated", "nature": "", "amount": _cents(calculated)}
    )
    rows.append(
        {
            "code": "",
            "name": "difference",
            "nature": "",
            "amount": _cents(abs(valuation.parametrized_value - calculated)),
        }
    )
    return pd.DataFrame(rows, columns=BREAKDOWN_COLUMNS)


def summarize_run(run: ValidationRun) -> RunSummary:
    return RunSummary(
        nodes_analysed=len(run.findings),
        inconsistent_nodes=sum(1 for f in run.findings if not f.is_consistent),
        months_analysed=len(run.periods),
        inconsistent_months=sum(
            1 for b in run.balance_findings if not b.is_consistent
        ),
    )
