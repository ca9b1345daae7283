from decimal import Decimal

from finance_tracker.schemas import MONTHS
from finance_tracker.services.aggregation import (
    income_column_totals,
    income_row_total,
    savings_progress,
    summarize_months,
    to_decimal,
)


def test_to_decimal_treats_garbage_as_zero() -> None:
    assert to_decimal("12.5") == Decimal("12.5")
    assert to_decimal(" 7 ") == Decimal("7")
    assert to_decimal(3) == Decimal("3")
    assert to_decimal("") == Decimal("0")
    assert to_decimal("abc") == Decimal("0")
    assert to_decimal(None) == Decimal("0")
    assert to_decimal(True) == Decimal("0")
    assert to_decimal("NaN") == Decimal("0")
    assert to_decimal({"nested": 1}) == Decimal("0")


def test_income_row_total_sums_every_column() -> None:
    row = {"month": "Jan", "data": {"CLT": "1500", "iFood": "246", "Auxílio": "120", "Other": "x"}}
    assert income_row_total(row) == Decimal("1866")
    assert income_row_total({"month": "Jan", "data": None}) == Decimal("0")


def test_summary_has_twelve_months_in_calendar_order() -> None:
    result = summarize_months([], [], [])
    assert [m.month for m in result.months] == MONTHS
    assert all(m.balance == 0 for m in result.months)
    assert result.annual.balance == 0


def test_summary_totals_per_month_and_year() -> None:
    incomes = [
        {"month": "Jan", "data": {"CLT": "1000", "App": "200"}},
        {"month": "Jan", "data": {"CLT": "300"}},
        {"month": "Fev", "data": {"CLT": "1000"}},
    ]
    fixed = [
        {"month": "Jan", "amount": Decimal("600")},
        {"month": "Fev", "amount": Decimal("600")},
    ]
    variable = [
        {"month": "Jan", "amount": Decimal("150.25")},
        {"month": "Xyz", "amount": Decimal("999")},
    ]

    result = summarize_months(incomes, fixed, variable)
    jan, fev = result.months[0], result.months[1]

    assert jan.income_total == Decimal("1500")
    assert jan.expense_total == Decimal("750.25")
    assert jan.balance == Decimal("749.75")
    assert fev.balance == Decimal("400")
    assert result.annual.income_total == Decimal("2500")
    assert result.annual.variable_total == Decimal("150.25")
    assert result.annual.balance == Decimal("1149.75")


def test_income_column_totals_only_counts_known_columns() -> None:
    incomes = [
        {"month": "Mar", "data": {"CLT": "1000", "iFood": "246", "Bonus": "50"}},
        {"month": "Mar", "data": {"CLT": "500"}},
        {"month": "Abr", "data": {"CLT": "9999"}},
    ]
    columns, total = income_column_totals(incomes, ["CLT", "App", "iFood"], "Mar")
    assert columns == {"CLT": Decimal("1500"), "App": Decimal("0"), "iFood": Decimal("246")}
    assert total == Decimal("1746")


def test_savings_progress() -> None:
    assert savings_progress(Decimal("1000"), Decimal("250")) == Decimal("25.00")
    assert savings_progress(Decimal("300"), Decimal("100")) == Decimal("33.33")
    assert savings_progress(Decimal("100"), Decimal("150")) == Decimal("150.00")
    assert savings_progress(Decimal("0"), Decimal("50")) == Decimal("0")


def test_out_of_range_magnitudes_count_as_zero() -> None:
    assert to_decimal("1e1000000") == Decimal("0")
    assert to_decimal(Decimal("9e999999")) == Decimal("0")
    assert to_decimal(10**40) == Decimal("0")
    assert to_decimal("999999999999.99") == Decimal("999999999999.99")


def test_summary_survives_legacy_huge_income_values() -> None:
    incomes = [
        {"month": "Jan", "data": {"CLT": "1e1000000", "App": "200"}},
        {"month": "Jan", "data": {"CLT": "9e999999"}},
    ]
    result = summarize_months(incomes, [], [])
    assert result.months[0].income_total == Decimal("200")

    columns, total = income_column_totals(incomes, ["CLT", "App"], "Jan")
    assert columns == {"CLT": Decimal("0"), "App": Decimal("200")}
    assert total == Decimal("200")
