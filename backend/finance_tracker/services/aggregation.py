"""Dashboard arithmetic over snapshots of the record collections.

Everything here is pure: rows go in as plain mappings (as returned by the
persistence layer) and ``Decimal`` figures come out. Leaves that do not
parse as a number count as zero instead of raising, so a single malformed
legacy row can never take the dashboard down.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ..schemas import MONEY_MAX_ADJUSTED, MONTHS

ZERO = Decimal("0")
CENT = Decimal("0.01")


def _in_range(value: Decimal) -> Decimal:
    # magnitudes beyond the money columns count as zero
    if not value.is_finite() or value.adjusted() > MONEY_MAX_ADJUSTED:
        return ZERO
    return value


def to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return _in_range(value)
    if isinstance(value, int):
        return _in_range(Decimal(value))
    if isinstance(value, float):
        value = repr(value)
    if not isinstance(value, str):
        return ZERO
    text = value.strip()
    if not text:
        return ZERO
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return ZERO
    return _in_range(parsed)


def income_row_total(row: Mapping[str, Any]) -> Decimal:
    data = row.get("data") or {}
    if not isinstance(data, Mapping):
        return ZERO
    return sum((to_decimal(v) for v in data.values()), ZERO)


@dataclass
class MonthTotals:
    month: str
    income_total: Decimal = ZERO
    fixed_total: Decimal = ZERO
    variable_total: Decimal = ZERO

    @property
    def expense_total(self) -> Decimal:
        return self.fixed_total + self.variable_total

    @property
    def balance(self) -> Decimal:
        return self.income_total - self.expense_total


@dataclass
class AnnualTotals:
    income_total: Decimal = ZERO
    fixed_total: Decimal = ZERO
    variable_total: Decimal = ZERO
    expense_total: Decimal = ZERO
    balance: Decimal = ZERO


@dataclass
class Summary:
    months: list[MonthTotals] = field(default_factory=list)
    annual: AnnualTotals = field(default_factory=AnnualTotals)


def summarize_months(
    incomes: Iterable[Mapping[str, Any]],
    fixed_expenses: Iterable[Mapping[str, Any]],
    variable_expenses: Iterable[Mapping[str, Any]],
    months: Sequence[str] = MONTHS,
) -> Summary:
    by_month = {m: MonthTotals(month=m) for m in months}

    for row in incomes:
        totals = by_month.get(row.get("month"))
        if totals is not None:
            totals.income_total += income_row_total(row)
    for row in fixed_expenses:
        totals = by_month.get(row.get("month"))
        if totals is not None:
            totals.fixed_total += to_decimal(row.get("amount"))
    for row in variable_expenses:
        totals = by_month.get(row.get("month"))
        if totals is not None:
            totals.variable_total += to_decimal(row.get("amount"))

    ordered = [by_month[m] for m in months]
    annual = AnnualTotals()
    for totals in ordered:
        annual.income_total += totals.income_total
        annual.fixed_total += totals.fixed_total
        annual.variable_total += totals.variable_total
        annual.expense_total += totals.expense_total
        annual.balance += totals.balance
    return Summary(months=ordered, annual=annual)


def income_column_totals(
    incomes: Iterable[Mapping[str, Any]],
    columns: Sequence[str],
    month: str,
) -> tuple[dict[str, Decimal], Decimal]:
    """Per-column subtotals of one month's incomes.

    Only the recognised ``columns`` are summed; keys outside that list are
    ignored and absent keys count as zero.
    """
    subtotals = {col: ZERO for col in columns}
    for row in incomes:
        if row.get("month") != month:
            continue
        data = row.get("data") or {}
        if not isinstance(data, Mapping):
            continue
        for col in columns:
            subtotals[col] += to_decimal(data.get(col))
    return subtotals, sum(subtotals.values(), ZERO)


def savings_progress(goal: Any, saved: Any) -> Decimal:
    # percent of the goal; values above 100 are kept
    goal_value = to_decimal(goal)
    if goal_value <= 0:
        return ZERO
    return (to_decimal(saved) / goal_value * 100).quantize(CENT, rounding=ROUND_HALF_UP)
