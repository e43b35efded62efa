from decimal import Decimal

import pandas as pd
import pytest

from balancete_check.accounts import (
    ASSET,
    LIABILITY,
    REVENUE,
    ChartNode,
    DataIntegrityError,
)
from balancete_check.db import (
    DatabaseConfig,
    DatabaseSource,
    delete_trial_balance,
    import_parametrization_links,
    import_trial_balance,
    init_database,
    list_trial_balances,
    list_unmapped_lines,
    load_chart_of_accounts,
    load_eligible_months,
    load_parametrization_links,
    load_trial_balance_lines,
    refresh_trial_balance_status,
    replace_chart_of_accounts,
    save_parametrization,
    set_trial_balance_status,
)
from balancete_check.mapping import ParametrizationLink
from balancete_check.multi_periods import run_validation

COMPANY = "12345678000199"

CHART = [
    ChartNode("1", "ATIVO", ASSET),
    ChartNode("1.1", "Caixa", ASSET),
    ChartNode("1.2", "Bancos", ASSET),
    ChartNode("2", "PASSIVO", LIABILITY),
    ChartNode("3", "RECEITAS", REVENUE),
]


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    """Helper to build a DatabaseConfig pointing to a temporary SQLite file."""
    db_path = tmp_path / "db" / "test_db.sqlite"
    return DatabaseConfig(engine="sqlite", path=db_path)


def _trial_balance(*rows) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "code": code,
                "name": f"Conta {code}",
                "opening_balance": Decimal("0"),
                "closing_balance": Decimal(closing),
            }
            for code, closing in rows
        ]
    )


def _status(cfg, month: int) -> str:
    df = list_trial_balances(cfg, COMPANY)
    return df.loc[df["month"] == month, "status"].iloc[0]


def test_init_database_creates_file_and_schema(tmp_path):
    """init_database should create the SQLite file (and its directory)."""
    cfg = make_tmp_db_cfg(tmp_path)

    assert not cfg.path.exists()
    init_database(cfg)
    assert cfg.path.exists()

    # Idempotent
    init_database(cfg)
    assert list_trial_balances(cfg).empty


def test_unsupported_engine_is_rejected(tmp_path):
    cfg = DatabaseConfig(engine="postgres", path=tmp_path / "x.sqlite")
    with pytest.raises(ValueError, match="postgres"):
        init_database(cfg)


def test_replace_chart_of_accounts_round_trip(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    assert replace_chart_of_accounts(cfg, reversed(CHART)) == len(CHART)
    nodes = load_chart_of_accounts(cfg)
    assert [n.code for n in nodes] == ["1", "1.1", "1.2", "2", "3"]
    assert nodes[1] == ChartNode("1.1", "Caixa", ASSET)

    replace_chart_of_accounts(cfg, CHART[:1])
    assert [n.code for n in load_chart_of_accounts(cfg)] == ["1"]


def test_amounts_are_stored_as_cents_and_read_back_exactly(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    import_trial_balance(
        cfg,
        _trial_balance(("101", "1234.56"), ("201", "-0.10")),
        company_id=COMPANY,
        year=2024,
        month=3,
    )

    lines = load_trial_balance_lines(cfg, COMPANY, 2024, 3)
    by_code = {line.code: line for line in lines}
    assert by_code["101"].closing_balance == Decimal("1234.56")
    assert by_code["201"].closing_balance == Decimal("-0.1")
    assert by_code["101"].month == 3
    assert load_trial_balance_lines(cfg, COMPANY, 2024, 4) == []


def test_status_follows_parametrization_coverage(tmp_path):
    """pendente -> parametrizando -> parametrizado as links are saved."""
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)

    result = import_trial_balance(
        cfg,
        _trial_balance(("101", "10"), ("102", "20")),
        company_id=COMPANY,
        company_name="Padaria Exemplo",
        year=2024,
        month=1,
        source_label="jan.csv",
    )
    assert result.status == "pendente"
    assert result.lines_imported == 2
    assert not result.replaced

    save_parametrization(cfg, COMPANY, "1.1", [("101", "Caixa")])
    assert _status(cfg, 1) == "parametrizando"

    save_parametrization(cfg, COMPANY, "1.2", [("102", "Banco")])
    assert _status(cfg, 1) == "parametrizado"

    row = list_trial_balances(cfg, COMPANY).iloc[0]
    assert (row["total_lines"], row["mapped_lines"]) == (2, 2)
    assert row["company_name"] == "Padaria Exemplo"


def test_save_parametrization_replaces_node_links(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)

    save_parametrization(cfg, COMPANY, "1.1", [("101", "Caixa"), ("102", "Caixa 2")])
    save_parametrization(cfg, COMPANY, "1.1", [("103", "Caixa 3")])

    links = load_parametrization_links(cfg, COMPANY)
    assert [(link.chart_code, link.trial_balance_code) for link in links] == [
        ("1.1", "103")
    ]


def test_save_parametrization_rejects_code_of_another_node(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)
    save_parametrization(cfg, COMPANY, "1.1", [("101", "Caixa")])

    with pytest.raises(ValueError, match="already linked"):
        save_parametrization(cfg, COMPANY, "1.2", [("101", "Caixa")])

    # Another company may use the same trial balance code.
    save_parametrization(cfg, "99999999000100", "1.2", [("101", "Caixa")])


def test_save_parametrization_rejects_unknown_chart_code(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)

    with pytest.raises(ValueError, match="7.7"):
        save_parametrization(cfg, COMPANY, "7.7", [("101", "Caixa")])


def test_import_parametrization_links_groups_by_node(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)

    count = import_parametrization_links(
        cfg,
        [
            ParametrizationLink(COMPANY, "1.1", "101", "Caixa"),
            ParametrizationLink(COMPANY, "1.1", "102", "Caixa 2"),
            ParametrizationLink(COMPANY, "3", "301", "Vendas"),
        ],
    )

    assert count == 3
    assert len(load_parametrization_links(cfg, COMPANY)) == 3


def test_reimport_replaces_lines_of_the_month(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)
    save_parametrization(cfg, COMPANY, "1.1", [("101", "Caixa")])

    import_trial_balance(
        cfg, _trial_balance(("101", "10")), company_id=COMPANY, year=2024, month=1
    )
    assert _status(cfg, 1) == "parametrizado"

    result = import_trial_balance(
        cfg,
        _trial_balance(("101", "15"), ("999", "5")),
        company_id=COMPANY,
        year=2024,
        month=1,
    )

    assert result.replaced
    assert result.status == "parametrizando"
    assert len(list_trial_balances(cfg)) == 1
    lines = load_trial_balance_lines(cfg, COMPANY, 2024, 1)
    assert {line.code for line in lines} == {"101", "999"}


def test_import_trial_balance_rejects_invalid_month(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    with pytest.raises(ValueError, match="month"):
        import_trial_balance(
            cfg, _trial_balance(("101", "1")), company_id=COMPANY, year=2024, month=13
        )


def test_set_trial_balance_status_and_eligible_months(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    for month in (1, 2, 3):
        import_trial_balance(
            cfg,
            _trial_balance(("101", "1")),
            company_id=COMPANY,
            year=2024,
            month=month,
        )

    assert load_eligible_months(cfg, COMPANY, 2024) == []

    set_trial_balance_status(cfg, COMPANY, 2024, 3, "parametrizado")
    set_trial_balance_status(cfg, COMPANY, 2024, 1, "parametrizando")
    assert load_eligible_months(cfg, COMPANY, 2024) == [1, 3]
    assert load_eligible_months(cfg, COMPANY, 2024, ["parametrizado"]) == [3]

    with pytest.raises(ValueError, match="Invalid trial balance status"):
        set_trial_balance_status(cfg, COMPANY, 2024, 1, "done")
    with pytest.raises(ValueError, match="No trial balance"):
        set_trial_balance_status(cfg, COMPANY, 2024, 7, "parametrizado")

    # Forced statuses are recomputed from coverage on refresh.
    refresh_trial_balance_status(cfg, COMPANY)
    assert load_eligible_months(cfg, COMPANY, 2024) == []


def test_database_source_feeds_run_validation(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)
    save_parametrization(cfg, COMPANY, "1", [("100", "Ativo")])
    save_parametrization(cfg, COMPANY, "1.1", [("101", "Caixa")])
    save_parametrization(cfg, COMPANY, "1.2", [("102", "Bancos")])

    import_trial_balance(
        cfg,
        _trial_balance(("100", "300.00"), ("101", "100.00"), ("102", "200.01")),
        company_id=COMPANY,
        year=2024,
        month=5,
    )

    run = run_validation(DatabaseSource(cfg), COMPANY, 2024)

    [finding] = run.findings
    assert finding.code == "1"
    assert finding.calculated_value == Decimal("300.01")
    assert finding.absolute_difference == Decimal("0.01")
    assert finding.is_consistent


def test_import_parametrization_links_is_all_or_nothing(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)
    save_parametrization(cfg, COMPANY, "3", [("301", "Vendas")])

    with pytest.raises(DataIntegrityError, match="100"):
        import_parametrization_links(
            cfg,
            [
                ParametrizationLink(COMPANY, "1.1", "100", "Caixa"),
                ParametrizationLink(COMPANY, "1.2", "100", "Caixa"),
            ],
        )
    # The first group was not written, and earlier links are untouched.
    links = load_parametrization_links(cfg, COMPANY)
    assert [(link.chart_code, link.trial_balance_code) for link in links] == [
        ("3", "301")
    ]


def test_import_parametrization_links_rolls_back_on_unknown_chart_code(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)

    with pytest.raises(DataIntegrityError, match="7.7"):
        import_parametrization_links(
            cfg,
            [
                ParametrizationLink(COMPANY, "1.1", "101", "Caixa"),
                ParametrizationLink(COMPANY, "7.7", "102", "Outra"),
            ],
        )
    assert load_parametrization_links(cfg, COMPANY) == []


def test_import_parametrization_links_checks_stored_links(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)
    save_parametrization(cfg, COMPANY, "1.1", [("101", "Caixa")])

    # 1.1 is not replaced by this batch, so 101 cannot move to 1.2.
    with pytest.raises(DataIntegrityError, match="already linked"):
        import_parametrization_links(
            cfg, [ParametrizationLink(COMPANY, "1.2", "101", "Caixa")]
        )

    # Replacing both nodes in one batch lets the code move.
    count = import_parametrization_links(
        cfg,
        [
            ParametrizationLink(COMPANY, "1.1", "102", "Caixa"),
            ParametrizationLink(COMPANY, "1.2", "101", "Bancos"),
        ],
    )
    assert count == 2
    links = load_parametrization_links(cfg, COMPANY)
    assert [(link.chart_code, link.trial_balance_code) for link in links] == [
        ("1.1", "102"),
        ("1.2", "101"),
    ]


def test_delete_trial_balance_removes_month_and_lines(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)
    save_parametrization(cfg, COMPANY, "1.1", [("101", "Caixa")])
    for month in (1, 2):
        import_trial_balance(
            cfg,
            _trial_balance(("101", "10"), ("102", "20")),
            company_id=COMPANY,
            year=2024,
            month=month,
        )
    set_trial_balance_status(cfg, COMPANY, 2024, 1, "parametrizado")

    assert delete_trial_balance(cfg, COMPANY, 2024, 1) == 2

    assert load_trial_balance_lines(cfg, COMPANY, 2024, 1) == []
    assert list(list_trial_balances(cfg, COMPANY)["month"]) == [2]
    assert load_eligible_months(cfg, COMPANY, 2024) == [2]
    # Links survive the deletion.
    assert len(load_parametrization_links(cfg, COMPANY)) == 1
    with pytest.raises(ValueError, match="No trial balance"):
        delete_trial_balance(cfg, COMPANY, 2024, 1)


def test_list_unmapped_lines_and_coverage(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    replace_chart_of_accounts(cfg, CHART)
    save_parametrization(cfg, COMPANY, "1.1", [("101", "Caixa")])
    import_trial_balance(
        cfg,
        _trial_balance(("101", "10"), ("102", "20.50"), ("201", "-5")),
        company_id=COMPANY,
        year=2024,
        month=1,
    )

    unmapped = list_unmapped_lines(cfg, COMPANY, 2024, 1)

    assert list(unmapped.columns) == ["code", "name", "closing_balance"]
    assert list(unmapped["code"]) == ["102", "201"]
    assert unmapped.loc[0, "closing_balance"] == Decimal("20.5")
    assert list_trial_balances(cfg, COMPANY).loc[0, "coverage_pct"] == 33.3

    save_parametrization(cfg, COMPANY, "1.2", [("102", "Bancos")])
    save_parametrization(cfg, COMPANY, "2", [("201", "Fornecedores")])
    assert list_unmapped_lines(cfg, COMPANY, 2024, 1).empty
    assert list_trial_balances(cfg, COMPANY).loc[0, "coverage_pct"] == 100.0

    with pytest.raises(ValueError, match="No trial balance"):
        list_unmapped_lines(cfg, COMPANY, 2024, 2)


def test_readers_do_not_create_a_missing_database(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    with pytest.raises(FileNotFoundError, match="init"):
        load_chart_of_accounts(cfg)
    with pytest.raises(FileNotFoundError):
        DatabaseSource(cfg).get_trial_balance_lines(COMPANY, 2024, 1)
    with pytest.raises(FileNotFoundError):
        list_trial_balances(cfg)

    assert not cfg.path.exists()
    assert not cfg.path.parent.exists()
