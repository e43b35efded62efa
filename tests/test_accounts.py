import pytest

from balancete_check.accounts import (
    ASSET,
    EQUITY,
    LIABILITY,
    ChartNode,
    ChartOfAccounts,
    DataIntegrityError,
    code_level,
    code_sort_key,
    is_direct_child_of,
    is_under,
    load_chart_of_accounts,
    normalize_business_type,
    parent_code,
)


def _chart(*codes: str) -> ChartOfAccounts:
    return ChartOfAccounts(ChartNode(c, f"Account {c}", ASSET) for c in codes)


def test_hierarchy_helpers_follow_dot_segments():
    assert code_level("1") == 1
    assert code_level("1.1.3.2") == 4
    assert parent_code("4.1.2") == "4.1"
    assert parent_code("4") is None

    assert is_direct_child_of("4.1.2", "4.1")
    assert not is_direct_child_of("4.1.2", "4")
    assert not is_direct_child_of("4.1", "4.1")


def test_is_under_is_segment_aware():
    """'30.1' must not be considered under the root '3'."""
    assert is_under("3", "3")
    assert is_under("3.1.2", "3")
    assert not is_under("30.1", "3")
    assert not is_under("2.30", "2.3")


def test_code_sort_key_orders_numerically():
    codes = ["1.10", "1.2", "1", "1.9", "2"]
    assert sorted(codes, key=code_sort_key) == ["1", "1.2", "1.9", "1.10", "2"]


def test_normalize_business_type_accepts_portuguese_labels():
    assert normalize_business_type("Ativo") == ASSET
    assert normalize_business_type("passivo") == LIABILITY
    assert normalize_business_type(" patrimonio_liquido ") == EQUITY
    assert normalize_business_type("asset") == ASSET
    # Unknown values are kept (lowercased) so that they can be reported.
    assert normalize_business_type("Compensação") == "compensação"


def test_chart_children_are_direct_only():
    chart = _chart("1", "1.1", "1.1.1", "1.1.2", "1.2", "2")

    assert [n.code for n in chart.children_of("1")] == ["1.1", "1.2"]
    assert [n.code for n in chart.children_of("1.1")] == ["1.1.1", "1.1.2"]
    assert chart.children_of("1.1.1") == []

    assert chart.has_children("1")
    assert not chart.has_children("2")
    assert [n.code for n in chart.mother_nodes()] == ["1", "1.1"]
    assert chart.max_level == 3
    assert [n.code for n in chart.nodes_at_level(2)] == ["1.1", "1.2"]


def test_chart_iterates_in_code_order():
    chart = _chart("2", "1.10", "1", "1.2")
    assert [n.code for n in chart] == ["1", "1.2", "1.10", "2"]
    assert "1.2" in chart
    assert chart.get("9") is None
    assert chart["1.10"].level == 2


def test_chart_rejects_duplicate_codes():
    with pytest.raises(DataIntegrityError):
        _chart("1", "1.1", "1.1")


def test_chart_rejects_orphan_codes():
    with pytest.raises(DataIntegrityError) as excinfo:
        _chart("1", "1.1.1")
    assert "1.1.1" in str(excinfo.value)


def test_load_chart_of_accounts_from_portuguese_csv(tmp_path):
    csv_path = tmp_path / "plano.csv"
    csv_path.write_text(
        "codigo,nome,tipo,grupo\n"
        "1,ATIVO,ativo,Ativo\n"
        "1.10,Outros,ativo,Ativo\n"
        "2.3,PATRIMONIO LIQUIDO,patrimonio_liquido,PL\n",
        encoding="utf-8",
    )

    nodes = load_chart_of_accounts(str(csv_path))

    assert [n.code for n in nodes] == ["1", "1.10", "2.3"]
    assert nodes[1].business_type == ASSET
    assert nodes[2].business_type == EQUITY
    assert nodes[2].group == "PL"


def test_load_chart_of_accounts_missing_type_column(tmp_path):
    csv_path = tmp_path / "plano.csv"
    csv_path.write_text("code,name\n1,ATIVO\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_chart_of_accounts(str(csv_path))
