from decimal import Decimal

import pytest

from balancete_check.accounts import (
    ASSET,
    EXPENSE,
    REVENUE,
    ChartNode,
    ChartOfAccounts,
    DataIntegrityError,
)
from balancete_check.engine import ValueCalculator, index_lines
from balancete_check.io import TrialBalanceLine
from balancete_check.mapping import ParametrizationLink, ParametrizationMap
from balancete_check.nature import CREDIT, DEBIT

COMPANY = "12345678000199"


def _line(code: str, closing: str, month: int = 1) -> TrialBalanceLine:
    return TrialBalanceLine(
        company_id=COMPANY,
        year=2024,
        month=month,
        code=code,
        name=f"Conta {code}",
        opening_balance=Decimal("0"),
        closing_balance=Decimal(closing),
    )


def _calculator(nodes, links, lines) -> ValueCalculator:
    chart = ChartOfAccounts(nodes)
    pmap = ParametrizationMap(
        COMPANY, [ParametrizationLink(COMPANY, c, t) for c, t in links]
    )
    return ValueCalculator(chart, pmap, lines)


def test_parametrized_value_applies_nature_sign():
    calc = _calculator(
        [ChartNode("3", "RECEITAS", REVENUE), ChartNode("4", "DESPESAS", EXPENSE)],
        [("3", "301"), ("4", "401")],
        [_line("301", "1000"), _line("401", "400")],
    )

    assert calc.raw_aggregate(calc.chart["3"]) == Decimal("1000")
    assert calc.nature(calc.chart["3"]) == CREDIT
    assert calc.parametrized_value(calc.chart["3"]) == Decimal("-1000")
    assert calc.nature(calc.chart["4"]) == DEBIT
    assert calc.parametrized_value(calc.chart["4"]) == Decimal("400")


def test_calculated_value_sums_direct_children_only():
    """Grandchildren are represented by their own parent, never added twice."""
    calc = _calculator(
        [
            ChartNode("1", "ATIVO", ASSET),
            ChartNode("1.1", "CIRCULANTE", ASSET),
            ChartNode("1.1.1", "Caixa", ASSET),
            ChartNode("1.1.2", "Bancos", ASSET),
            ChartNode("1.2", "NAO CIRCULANTE", ASSET),
        ],
        [("1.1", "110"), ("1.1.1", "111"), ("1.1.2", "112"), ("1.2", "120")],
        [
            _line("110", "300"),
            _line("111", "100"),
            _line("112", "200"),
            _line("120", "50"),
        ],
    )

    assert calc.calculated_value(calc.chart["1.1"]) == Decimal("300")
    # 1.1 (300) + 1.2 (50); 1.1.1 and 1.1.2 are not added again.
    assert calc.calculated_value(calc.chart["1"]) == Decimal("350")
    assert calc.calculated_value(calc.chart["1.1.1"]) == Decimal("0")


def test_valuation_of_leaf_has_no_calculated_value():
    calc = _calculator(
        [ChartNode("1", "ATIVO", ASSET), ChartNode("1.1", "Caixa", ASSET)],
        [("1.1", "101")],
        [_line("101", "10")],
    )

    leaf = calc.valuation(calc.chart["1.1"])
    mother = calc.valuation(calc.chart["1"])

    assert leaf.calculated_value is None
    assert leaf.parametrized_value == Decimal("10")
    assert mother.calculated_value == Decimal("10")
    assert mother.parametrized_value == Decimal("0")


def test_unsigned_aggregate_ignores_nature():
    calc = _calculator(
        [ChartNode("3", "RECEITAS", REVENUE)],
        [("3", "301")],
        [_line("301", "-2000")],
    )
    assert calc.unsigned_aggregate(calc.chart["3"]) == Decimal("2000")


def test_child_contributions_detail_calculated_value():
    calc = _calculator(
        [
            ChartNode("3", "RECEITAS", REVENUE),
            ChartNode("3.1", "Vendas", REVENUE),
            ChartNode("3.2", "Financeiras", REVENUE),
        ],
        [("3.1", "311"), ("3.2", "321")],
        [_line("311", "700"), _line("321", "30")],
    )

    contributions = calc.child_contributions(calc.chart["3"])

    assert [(c.code, c.nature, c.parametrized_value) for c in contributions] == [
        ("3.1", CREDIT, Decimal("-700")),
        ("3.2", CREDIT, Decimal("-30")),
    ]
    assert sum(c.parametrized_value for c in contributions) == calc.calculated_value(
        calc.chart["3"]
    )


def test_index_lines_rejects_duplicate_codes():
    with pytest.raises(DataIntegrityError):
        index_lines([_line("101", "1"), _line("101", "2")])


def test_index_lines_rejects_mixed_months():
    with pytest.raises(DataIntegrityError):
        index_lines([_line("101", "1", month=1), _line("102", "2", month=2)])
