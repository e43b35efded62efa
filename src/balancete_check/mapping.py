# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Parametrization utilities for Balancete Check.

A parametrization ("parametrização") tells, for one company, which raw
trial-balance codes feed each node of the standard chart of accounts.
One chart node may receive several trial-balance codes; a trial-balance
code feeds at most one chart node, otherwise its balance would be counted
twice.

This module exposes:
- ParametrizationLink: one (company, chart node, trial-balance code) link.
- ParametrizationMap: the links of one company, indexed both ways, with
  helpers to compute the raw contribution of a node for a given month.
- load_parametrization_links: CSV loader.
- coverage_status: parametrization progress of one monthly trial balance
  ("pendente" / "parametrizando" / "parametrizado").
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import pandas as pd

from .accounts import ChartOfAccounts, DataIntegrityError, code_sort_key
from .io import TrialBalanceLine

logger = logging.getLogger(__name__)

STATUS_PENDING = "pendente"
STATUS_IN_PROGRESS = "parametrizando"
STATUS_DONE = "parametrizado"

TRIAL_BALANCE_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_DONE)


@dataclass(frozen=True)
class ParametrizationLink:
    """Link between a trial-balance code and a chart of accounts node.

    Attributes:
        company_id: Company identifier (CNPJ in the source system).
        chart_code: Code of the target node in the standard chart.
        trial_balance_code: Account code as it appears in the company's
            trial balance.
        trial_balance_name: Account name in the trial balance (display only).
    """

    company_id: str
    chart_code: str
    trial_balance_code: str
    trial_balance_name: str = ""


class ParametrizationMap:
    """All parametrization links of one company.

    Raises:
        DataIntegrityError: if a link belongs to another company, or if a
            trial-balance code is linked to two different chart nodes.
    """

    def __init__(self, company_id: str, links: Iterable[ParametrizationLink]):
        self.company_id = company_id
        self._node_by_code: dict[str, str] = {}
        self._codes_by_node: dict[str, list[str]] = {}

        for link in links:
            if link.company_id != company_id:
                raise DataIntegrityError(
                    f"Parametrization link for company {link.company_id!r} "
                    f"passed to the map of company {company_id!r}."
                )
            code = link.trial_balance_code
            current = self._node_by_code.get(code)
            if current is not None:
                if current == link.chart_code:
                    logger.debug(
                        "Duplicate link %s -> %s ignored for company %s.",
                        code,
                        link.chart_code,
                        company_id,
                    )
                    continue
                raise DataIntegrityError(
                    f"Trial balance code {code!r} of company {company_id!r} is "
                    f"linked to both {current!r} and {link.chart_code!r}."
                )
            self._node_by_code[code] = link.chart_code
            self._codes_by_node.setdefault(link.chart_code, []).append(code)

    def __len__(self) -> int:
        return len(self._node_by_code)

    def codes_for(self, chart_code: str) -> list[str]:
        """Trial-balance codes linked to a chart node (may be empty)."""
        return list(self._codes_by_node.get(chart_code, []))

    def node_for(self, trial_balance_code: str) -> Optional[str]:
        """Chart node fed by a trial-balance code, or None if unmapped."""
        return self._node_by_code.get(trial_balance_code)

    def is_parametrized(self, chart_code: str) -> bool:
        return chart_code in self._codes_by_node

    def chart_codes(self) -> list[str]:
        """Chart codes that receive at least one link, ordered by code."""
        return sorted(self._codes_by_node, key=code_sort_key)

    def raw_aggregate(
        self, chart_code: str, lines_by_code: Mapping[str, TrialBalanceLine]
    ) -> Decimal:
        """Sum of the closing balances linked to a chart node for one month.

        A linked code missing from the month's trial balance contributes 0:
        the account simply had no balance that month.
        """
        total = Decimal("0")
        for code in self._codes_by_node.get(chart_code, []):
            line = lines_by_code.get(code)
            if line is not None:
                total += line.closing_balance
        return total

    def unknown_chart_codes(self, chart: ChartOfAccounts) -> list[str]:
        """Chart codes referenced by links but absent from the catalog."""
        return sorted(
            (code for code in self._codes_by_node if code not in chart),
            key=code_sort_key,
        )

    def check_against(self, chart: ChartOfAccounts) -> None:
        """Raise if a link targets a chart code absent from the catalog.

        Such a link can never be validated against its parent, so it is
        reported to the caller instead of being skipped.
        """
        unknown = self.unknown_chart_codes(chart)
        if unknown:
            raise DataIntegrityError(
                f"Parametrization of company {self.company_id!r} references "
                "chart codes missing from the chart of accounts: "
                + ", ".join(unknown)
            )


def coverage_status(mapped_lines: int, total_lines: int) -> str:
    """Parametrization status of a monthly trial balance.

    - no line mapped (or an empty trial balance) → 'pendente'
    - some lines mapped                          → 'parametrizando'
    - every line mapped                          → 'parametrizado'
    """
    if total_lines <= 0 or mapped_lines <= 0:
        return STATUS_PENDING
    if mapped_lines < total_lines:
        return STATUS_IN_PROGRESS
    return STATUS_DONE


def load_parametrization_links(
    path: str, company_id: Optional[str] = None
) -> list[ParametrizationLink]:
    """Load parametrization links from CSV.

    Expected columns (case-insensitive, Portuguese aliases accepted):
        company_id         ('empresa_cnpj', 'cnpj') -- optional if
                           `company_id` is given
        chart_code         ('plano_conta_codigo', 'chart_account')
        trial_balance_code ('conta_balancete_codigo')
        trial_balance_name ('conta_balancete_nome') -- optional

    Args:
        path: Path to the CSV file.
        company_id: Company to assign to every link. When the file has a
            company column, only rows of this company are kept.

    Raises:
        ValueError: if required columns are missing.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip().lower() for c in df.columns]

    aliases = {
        "empresa_cnpj": "company_id",
        "cnpj": "company_id",
        "plano_conta_codigo": "chart_code",
        "chart_account": "chart_code",
        "conta_balancete_codigo": "trial_balance_code",
        "conta_balancete_nome": "trial_balance_name",
    }
    df = df.rename(columns={k: v for k, v in aliases.items() if v not in df.columns})

    required = {"chart_code", "trial_balance_code"}
    if company_id is None:
        required.add("company_id")
    missing = required.difference(df.columns)
    if missing:
        raise ValueError(
            "Parametrization file is missing required column(s): "
            + ", ".join(sorted(missing))
        )

    if "company_id" in df.columns and company_id is not None:
        df = df[df["company_id"].str.strip() == company_id]

    links: list[ParametrizationLink] = []
    for _, row in df.iterrows():
        links.append(
            ParametrizationLink(
                company_id=(
                    company_id
                    if company_id is not None
                    else str(row["company_id"]).strip()
                ),
                chart_code=str(row["chart_code"]).strip(),
                trial_balance_code=str(row["trial_balance_code"]).strip(),
                trial_balance_name=str(row.get("trial_balance_name", "")).strip(),
            )
        )
    return links
