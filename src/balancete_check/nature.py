# Balancete Check - Parametrization consistency engine for accounting offices
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Debit/credit nature resolution for chart nodes.

The nature ("natureza") of a chart node decides the sign applied to the raw
aggregate of its mapped trial-balance lines: credit nodes are reported with
the sign flipped, debit nodes as imported.

Rules are kept in an explicit, ordered table (NATURE_RULES). The first rule
whose predicate matches wins. Ordering matters: '3.1.2' (deductions from
gross revenue) also lives under the revenue root '3', and '2.3.3' (retained
earnings) also lives under the equity root '2.3'.

    #  rule                       match                                nature
    1  retained_earnings_positive code == '2.3.3' and aggregate >= 0   credit
    2  retained_earnings_negative code == '2.3.3'                      debit
    3  revenue_deductions         code == '3.1.2'                      debit
    4  revenue_root               code under '3'                       credit
    5  equity_root                code under '2.3'                     credit
    6  contra_asset               asset named '(-)'/Deprecia/Amortiza  credit
    7  asset                      business type asset                  debit
    8  liability                  business type liability              credit
    9  revenue                    business type revenue                credit
   10  expense                    business type expense                debit
   11  cost                       business type cost                   debit
    -  (default)                                                       debit

The resolver is a pure function of (node, raw aggregate): the iteration
order of the catalog has no influence on the result.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Optional

from .accounts import ASSET, COST, EXPENSE, LIABILITY, REVENUE, ChartNode, is_under

logger = logging.getLogger(__name__)

Nature = Literal["debit", "credit"]

DEBIT: Nature = "debit"
CREDIT: Nature = "credit"

RETAINED_EARNINGS_CODE = "2.3.3"
REVENUE_DEDUCTIONS_CODE = "3.1.2"
REVENUE_ROOT = "3"
EQUITY_ROOT = "2.3"

# Substrings of the account name that flag a contra-asset
# (accumulated depreciation / amortization).
CONTRA_ASSET_MARKERS = ("(-)", "deprecia", "amortiza")


@dataclass(frozen=True)
class NatureRule:
    """One entry of the nature rule table.

    Attributes:
        name: Identifier of the rule, used in logs and tests.
        applies: Predicate on (node, raw aggregate).
        nature: Nature returned when the predicate matches.
    """

    name: str
    applies: Callable[[ChartNode, Decimal], bool]
    nature: Nature


def is_contra_asset(node: ChartNode) -> bool:
    """True if the node name marks it as a reduction of an asset."""
    name = node.name.lower()
    return any(marker in name for marker in CONTRA_ASSET_MARKERS)


NATURE_RULES: tuple[NatureRule, ...] = (
    NatureRule(
        "retained_earnings_positive",
        lambda n, raw: n.code == RETAINED_EARNINGS_CODE and raw >= 0,
        CREDIT,
    ),
    NatureRule(
        "retained_earnings_negative",
        lambda n, raw: n.code == RETAINED_EARNINGS_CODE,
        DEBIT,
    ),
    NatureRule(
        "revenue_deductions",
        lambda n, raw: n.code == REVENUE_DEDUCTIONS_CODE,
        DEBIT,
    ),
    NatureRule("revenue_root", lambda n, raw: is_under(n.code, REVENUE_ROOT), CREDIT),
    NatureRule("equity_root", lambda n, raw: is_under(n.code, EQUITY_ROOT), CREDIT),
    NatureRule(
        "contra_asset",
        lambda n, raw: n.business_type == ASSET and is_contra_asset(n),
        CREDIT,
    ),
    NatureRule("asset", lambda n, raw: n.business_type == ASSET, DEBIT),
    NatureRule("liability", lambda n, raw: n.business_type == LIABILITY, CREDIT),
    NatureRule("revenue", lambda n, raw: n.business_type == REVENUE, CREDIT),
    NatureRule("expense", lambda n, raw: n.business_type == EXPENSE, DEBIT),
    NatureRule("cost", lambda n, raw: n.business_type == COST, DEBIT),
)


def matching_rule(node: ChartNode, raw_aggregate: Decimal) -> Optional[NatureRule]:
    """Return the first rule of NATURE_RULES that applies, or None."""
    for rule in NATURE_RULES:
        if rule.applies(node, raw_aggregate):
            return rule
    return None


def resolve_nature(node: ChartNode, raw_aggregate: Decimal = Decimal("0")) -> Nature:
    """Resolve the debit/credit nature of a chart node.

    Args:
        node: Chart node to classify.
        raw_aggregate: Sum of the mapped closing balances, sign as imported.
            Only the retained earnings node depends on it.

    Returns:
        'debit' or 'credit'. Nodes matched by no rule fall back to 'debit'
        and a warning is logged, since this usually reveals a catalog entry
        with an unexpected business type.
    """
    rule = matching_rule(node, raw_aggregate)
    if rule is not None:
        return rule.nature

    logger.warning(
        "No nature rule for chart node %s (%s) with business type %r; "
        "defaulting to debit.",
        node.code,
        node.name,
        node.business_type,
    )
    return DEBIT


def apply_sign(raw_aggregate: Decimal, nature: Nature) -> Decimal:
    """Signed value of a raw aggregate: credit flips the sign."""
    if nature == CREDIT:
        # Subtract from zero instead of negating to avoid Decimal('-0').
        return Decimal(0) - raw_aggregate
    return raw_aggregate
