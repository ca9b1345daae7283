def test_unknown_month_returns_400(client) -> None:
    res = client.post("/api/variable-expenses", json={"month": "January", "description": "x", "amount": "1"})
    assert res.status_code == 400
    assert res.json()["field"] == "month"


def test_negative_amount_returns_400(client) -> None:
    res = client.post("/api/fixed-expenses", json={"month": "Jan", "name": "Aluguel", "amount": "-5"})
    assert res.status_code == 400
    assert res.json()["field"] == "amount"


def test_too_many_decimal_places_returns_400(client) -> None:
    res = client.post("/api/fixed-expenses", json={"month": "Jan", "name": "Aluguel", "amount": "1.001"})
    assert res.status_code == 400


def test_missing_required_field_returns_400(client) -> None:
    res = client.post("/api/variable-expenses", json={"month": "Jan", "amount": "10"})
    assert res.status_code == 400
    assert res.json()["field"] == "description"


def test_blank_name_returns_400(client) -> None:
    res = client.post("/api/fixed-expenses", json={"month": "Jan", "name": "", "amount": "10"})
    assert res.status_code == 400
    assert res.json()["field"] == "name"


def test_non_numeric_path_id_returns_400(client) -> None:
    res = client.put("/api/fixed-expenses/abc", json={"amount": "10"})
    assert res.status_code == 400
    assert res.json()["field"] == "expense_id"


def test_failed_validation_does_not_write(client) -> None:
    client.post("/api/fixed-expenses", json={"month": "Jan", "name": "Aluguel", "amount": "-5"})
    assert client.get("/api/fixed-expenses").json() == []


def test_unknown_route_returns_message(client) -> None:
    res = client.get("/api/nothing-here")
    assert res.status_code == 404
    assert res.json()["message"] == "Not Found"
