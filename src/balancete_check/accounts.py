# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Chart of accounts utilities for Balancete Check.

This module contains the standard chart of accounts ("plano de contas")
used as the target of every parametrization. The chart is a flat catalog
of nodes identified by dot-separated codes ('1', '1.1', '1.1.3.2'); the
hierarchy is never stored explicitly, it is derived from the codes
themselves:

- the level of a node is its number of dot segments,
- the parent of a node is its code with the last segment stripped,
- a direct child of 'X' is any code 'X.<segment>' (exactly one level deeper).

Responsibilities:
- Represent chart nodes (ChartNode) and their business type.
- Provide pure hierarchy helpers (parent_code, is_direct_child_of, ...).
- Index a list of nodes by code (ChartOfAccounts) and enforce the catalog
  invariants (unique codes, every non-root parent present).
- Load the chart of accounts from CSV.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Optional

import pandas as pd


class DataIntegrityError(ValueError):
    """Raised when catalog, mapping or trial-balance data cannot be validated.

    Examples: a parametrization link pointing to a chart code that does not
    exist, a trial-balance code linked to two chart nodes, or a chart node
    whose parent is missing from the catalog.
    """


# Business types understood by the nature resolver.
ASSET = "asset"
LIABILITY = "liability"
EQUITY = "equity"
REVENUE = "revenue"
EXPENSE = "expense"
COST = "cost"

BUSINESS_TYPES = (ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE, COST)

# Portuguese labels found in the standard catalog ("tipo" column).
_BUSINESS_TYPE_ALIASES = {
    "ativo": ASSET,
    "passivo": LIABILITY,
    "patrimonio_liquido": EQUITY,
    "patrimônio líquido": EQUITY,
    "patrimonio liquido": EQUITY,
    "pl": EQUITY,
    "receita": REVENUE,
    "receitas": REVENUE,
    "despesa": EXPENSE,
    "despesas": EXPENSE,
    "custo": COST,
    "custos": COST,
}


def normalize_business_type(value: object) -> str:
    """Return the canonical business type for a raw catalog value.

    English names are returned as-is, Portuguese aliases are translated.
    Unknown values are returned lowercased and stripped, so that the nature
    resolver can still report them.
    """
    raw = "" if value is None else str(value).strip().lower()
    if raw in BUSINESS_TYPES:
        return raw
    return _BUSINESS_TYPE_ALIASES.get(raw, raw)


# ---------------------------------------------------------------------------
# Pure hierarchy helpers
# ---------------------------------------------------------------------------


def code_level(code: str) -> int:
    """Number of dot segments in a chart code ('4.1.2' -> 3)."""
    return len(str(code).split("."))


def parent_code(code: str) -> Optional[str]:
    """Return the parent code ('4.1.2' -> '4.1'), or None for a root code."""
    s = str(code)
    if "." not in s:
        return None
    return s.rsplit(".", 1)[0]


def is_direct_child_of(child: str, parent: str) -> bool:
    """True if `child` is exactly one level below `parent`.

    '4.1.2' is a direct child of '4.1' but not of '4'.
    """
    return parent_code(child) == str(parent)


def is_under(code: str, root: str) -> bool:
    """True if `code` equals `root` or is one of its descendants.

    The check is segment-aware: '30.1' is not under '3'.
    """
    s = str(code)
    return s == root or s.startswith(root + ".")


def code_sort_key(code: str) -> tuple:
    """Sort key ordering codes by numeric segments ('1.9' before '1.10').

    Non-numeric segments sort after numeric ones, alphabetically.
    """
    key = []
    for segment in str(code).split("."):
        if segment.isdigit():
            key.append((0, int(segment), ""))
        else:
            key.append((1, 0, segment))
    return tuple(key)


# ---------------------------------------------------------------------------
# Chart nodes and catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChartNode:
    """One node of the standard chart of accounts.

    Attributes:
        code: Dot-separated hierarchical code (e.g. '2.3.3').
        name: Human-readable account name.
        business_type: One of BUSINESS_TYPES (unknown values are kept).
        group: Optional grouping label from the catalog.
    """

    code: str
    name: str
    business_type: str
    group: str = ""

    @property
    def level(self) -> int:
        return code_level(self.code)

    @property
    def parent_code(self) -> Optional[str]:
        return parent_code(self.code)


class ChartOfAccounts:
    """Read-only index of chart nodes keyed by code.

    The catalog is small and static for the duration of a validation run,
    so children are derived once at construction time from the codes.

    Raises:
        DataIntegrityError: if a code is duplicated or if a non-root code
            has no parent in the catalog.
    """

    def __init__(self, nodes: Iterable[ChartNode]):
        by_code: dict[str, ChartNode] = {}
        for node in nodes:
            if node.code in by_code:
                raise DataIntegrityError(
                    f"Duplicate chart of accounts code: {node.code!r}."
                )
            by_code[node.code] = node

        orphans = sorted(
            (
                code
                for code in by_code
                if parent_code(code) is not None and parent_code(code) not in by_code
            ),
            key=code_sort_key,
        )
        if orphans:
            raise DataIntegrityError(
                "Chart of accounts codes without a parent in the catalog: "
                + ", ".join(orphans)
            )

        self._by_code = {
            code: by_code[code] for code in sorted(by_code, key=code_sort_key)
        }
        self._children: dict[str, list[ChartNode]] = {}
        for node in self._by_code.values():
            parent = node.parent_code
            if parent is not None:
                self._children.setdefault(parent, []).append(node)

    def __len__(self) -> int:
        return len(self._by_code)

    def __iter__(self) -> Iterator[ChartNode]:
        return iter(self._by_code.values())

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def get(self, code: str) -> Optional[ChartNode]:
        return self._by_code.get(code)

    def __getitem__(self, code: str) -> ChartNode:
        return self._by_code[code]

    def children_of(self, code: str) -> list[ChartNode]:
        """Direct children of a node, ordered by code (never grandchildren)."""
        return list(self._children.get(code, []))

    def has_children(self, code: str) -> bool:
        return bool(self._children.get(code))

    def mother_nodes(self) -> list[ChartNode]:
        """Nodes with at least one direct child, ordered by code."""
        return [n for n in self._by_code.values() if n.code in self._children]

    def nodes_at_level(self, level: int) -> list[ChartNode]:
        return [n for n in self._by_code.values() if n.level == level]

    @property
    def max_level(self) -> int:
        return max((n.level for n in self._by_code.values()), default=0)


def load_chart_of_accounts(path: str) -> list[ChartNode]:
    """Load the standard chart of accounts from CSV.

    Expected structure
    ------------------
    The CSV must contain at least:
        - one column with the account code: 'code', 'codigo' or 'account'
        - one column with the account name: 'name', 'nome' or 'label'
        - one column with the business type: 'business_type', 'tipo' or 'type'
    and may contain an optional 'group' / 'grupo' column.

    Column names are matched case-insensitively and trimmed. Codes are read
    as strings so that '1.10' is not turned into a float.

    Args:
        path: Path to the CSV file containing the chart of accounts.

    Returns:
        A list of ChartNode, in file order.

    Raises:
        ValueError: if a required column cannot be found.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    col_map = {str(c).strip().lower(): c for c in df.columns}

    def _find(candidates: list[str], label: str) -> Optional[str]:
        for cand in candidates:
            if cand in col_map:
                return col_map[cand]
        if label:
            raise ValueError(
                f"Could not find a {label} column in chart of accounts file. "
                f"Expected one of: {', '.join(repr(c) for c in candidates)}."
            )
        return None

    code_col = _find(["code", "codigo", "account"], "code")
    name_col = _find(["name", "nome", "label"], "name")
    type_col = _find(["business_type", "tipo", "type"], "business type")
    group_col = _find(["group", "grupo"], "")

    nodes: list[ChartNode] = []
    for _, row in df.iterrows():
        code = str(row[code_col]).strip()
        if not code:
            continue
        nodes.append(
            ChartNode(
                code=code,
                name=str(row[name_col]).strip(),
                business_type=normalize_business_type(row[type_col]),
                group=str(row[group_col]).strip() if group_col else "",
            )
        )
    return nodes
