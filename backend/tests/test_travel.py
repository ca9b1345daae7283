from datetime import date
from decimal import Decimal

from finance_tracker.services.travel import compare_travel_costs, trip_days


def test_trip_days_counts_both_ends() -> None:
    assert trip_days(date(2026, 7, 1), date(2026, 7, 10)) == 10
    assert trip_days(date(2026, 7, 10), date(2026, 7, 1)) == 1
    assert trip_days(None, date(2026, 7, 1)) == 1


def test_package_cheaper_when_difference_negative() -> None:
    result = compare_travel_costs(
        Decimal("3000"),
        [Decimal("200")],
        [Decimal("1800"), Decimal("1500"), Decimal("400")],
    )
    assert result.total_package_final == Decimal("3200")
    assert result.total_manual == Decimal("3700")
    assert result.difference == Decimal("-500")
    assert result.is_package_cheaper is True


def test_travel_compare_endpoint(client) -> None:
    payload = {
        "packageCost": "2500",
        "packageExtras": [{"title": "Passeios", "value": "300"}],
        "manualCosts": [{"title": "Voo", "value": "1200"}, {"title": "Hotel", "value": "900"}],
        "startDate": "2026-12-20",
        "endDate": "2026-12-27",
    }
    res = client.post("/api/travel/compare", json=payload)
    assert res.status_code == 200
    body = res.json()
    assert body["totalPackageFinal"] == "2800"
    assert body["totalManual"] == "2100"
    assert body["difference"] == "700"
    assert body["isPackageCheaper"] is False
    assert body["days"] == 8
