from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

ZERO = Decimal("0")


@dataclass
class TravelComparison:
    total_manual: Decimal
    total_package_extras: Decimal
    total_package_final: Decimal
    difference: Decimal
    is_package_cheaper: bool
    days: int


def trip_days(start: date | None, end: date | None) -> int:
    if start is None or end is None:
        return 1
    return max(1, (end - start).days + 1)


def compare_travel_costs(
    package_cost: Decimal,
    package_extras: Iterable[Decimal],
    manual_costs: Iterable[Decimal],
    start: date | None = None,
    end: date | None = None,
) -> TravelComparison:
    """Agency package (plus extras not covered by it) against booking everything by hand.

    A negative ``difference`` means the package is the cheaper option.
    """
    extras = sum(package_extras, ZERO)
    manual = sum(manual_costs, ZERO)
    package_final = Decimal(package_cost) + extras
    difference = package_final - manual
    return TravelComparison(
        total_manual=manual,
        total_package_extras=extras,
        total_package_final=package_final,
        difference=difference,
        is_package_cheaper=difference < 0,
        days=trip_days(start, end),
    )
