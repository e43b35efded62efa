import pytest

from balancete_check.periods import Period, eligible_months, months_of_year


def test_period_labels_and_ordering():
    p = Period(2024, 3)
    assert p.label == "03/2024"
    assert p.key == "2024-03"
    assert sorted([Period(2024, 2), Period(2023, 12), Period(2024, 1)]) == [
        Period(2023, 12),
        Period(2024, 1),
        Period(2024, 2),
    ]


def test_period_rejects_invalid_month():
    with pytest.raises(ValueError):
        Period(2024, 0)
    with pytest.raises(ValueError):
        Period(2024, 13)


def test_months_of_year():
    months = months_of_year(2024)
    assert len(months) == 12
    assert months[0] == Period(2024, 1)
    assert months[-1] == Period(2024, 12)


def test_only_started_or_completed_parametrizations_are_eligible():
    statuses = [
        (1, "pendente"),
        (2, "pendente"),
        (3, "pendente"),
        (4, "parametrizado"),
        (6, "parametrizando"),
    ]
    assert eligible_months(statuses) == [4, 6]
    assert eligible_months(statuses, ["parametrizado"]) == [4]
    assert eligible_months([]) == []
