from decimal import Decimal

from balancete_check.accounts import ASSET, REVENUE, ChartNode, ChartOfAccounts
from balancete_check.engine import ValueCalculator
from balancete_check.io import TrialBalanceLine
from balancete_check.mapping import ParametrizationLink, ParametrizationMap
from balancete_check.multi_periods import ValidationRun
from balancete_check.periods import Period
from balancete_check.validation import (
    ConfigurationIssue,
    validate_balance_equation,
    validate_hierarchy,
)
from balancete_check.views import (
    STATEMENT_COLUMNS,
    balance_findings_to_dataframe,
    build_balancete_statement,
    build_inconsistency_breakdown,
    findings_to_dataframe,
    issues_to_dataframe,
    summarize_run,
)

COMPANY = "12345678000199"


def _calculator() -> ValueCalculator:
    chart = ChartOfAccounts(
        [
            ChartNode("1", "ATIVO", ASSET),
            ChartNode("1.1", "Caixa", ASSET),
            ChartNode("1.2", "Bancos", ASSET),
            ChartNode("1.10", "Aplicações", ASSET),
            ChartNode("3", "RECEITAS", REVENUE),
        ]
    )
    links = [("1", "100"), ("1.1", "101"), ("1.10", "110"), ("3", "300")]
    pmap = ParametrizationMap(
        COMPANY, [ParametrizationLink(COMPANY, c, t) for c, t in links]
    )
    lines = [
        TrialBalanceLine(COMPANY, 2024, 2, code, code, Decimal("0"), Decimal(v))
        for code, v in [("100", "150"), ("101", "100"), ("110", "49.5"), ("300", "80")]
    ]
    return ValueCalculator(chart, pmap, lines)


def test_statement_lists_non_zero_nodes_in_chart_order():
    df = build_balancete_statement(_calculator())

    assert list(df.columns) == STATEMENT_COLUMNS
    # 1.2 has no link and is left out; 1.10 sorts after 1.2 numerically.
    assert df["code"].tolist() == ["1", "1.1", "1.10", "3"]
    assert df["display_order"].tolist() == [10, 20, 30, 40]
    assert df.loc[df["code"] == "3", "amount"].iloc[0] == Decimal("-80.00")
    assert df.loc[df["code"] == "3", "nature"].iloc[0] == "credit"


def test_statement_of_empty_month_has_columns():
    calc = _calculator()
    empty = ValueCalculator(calc.chart, calc.parametrization, [])

    df = build_balancete_statement(empty)

    assert df.empty
    assert list(df.columns) == STATEMENT_COLUMNS


def test_breakdown_explains_the_difference():
    df = build_inconsistency_breakdown(_calculator(), "1")

    assert df["code"].tolist() == ["1", "1.1", "1.2", "1.10", "", ""]
    assert df["name"].tolist()[-2:] == ["calculated", "difference"]
    assert df["amount"].tolist() == [
        Decimal("150.00"),
        Decimal("100.00"),
        Decimal("0.00"),
        Decimal("49.50"),
        Decimal("149.50"),
        Decimal("0.50"),
    ]


def test_findings_and_summary():
    calc = _calculator()
    findings = validate_hierarchy(calc, COMPANY, 2024, 2)
    balance, issues = validate_balance_equation(calc, COMPANY, 2024, 2)
    run = ValidationRun(
        company_id=COMPANY,
        periods=(Period(2024, 2),),
        findings=tuple(findings),
        balance_findings=(balance,),
        issues=tuple(issues),
    )

    df = findings_to_dataframe(run.findings)
    assert df.loc[0, "period"] == "02/2024"
    assert df.loc[0, "status"] == "inconsistent"
    assert df.loc[0, "difference"] == Decimal("0.50")

    balance_df = balance_findings_to_dataframe(run.balance_findings)
    assert balance_df.loc[0, "missing_roots"] == "2, 4"
    assert balance_df.loc[0, "status"] == "inconsistent"

    issues_df = issues_to_dataframe(run.issues)
    assert issues_df["code"].tolist() == ["2", "4"]

    summary = summarize_run(run)
    assert summary.months_analysed == 1
    assert summary.nodes_analysed == 1
    assert summary.inconsistent_nodes == 1
    assert summary.inconsistent_months == 1
    assert not summary.is_fully_consistent


def test_empty_run_is_fully_consistent():
    summary = summarize_run(ValidationRun(company_id=COMPANY))
    assert summary.is_fully_consistent
    assert summary.months_analysed == 0


def test_issue_without_period():
    df = issues_to_dataframe([ConfigurationIssue("missing_root", "1", "msg")])
    assert df.loc[0, "period"] == ""
