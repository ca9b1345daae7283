def test_variable_expense_crud(client) -> None:
    res = client.post("/api/variable-expenses", json={"month": "Set", "description": "Cinema", "amount": "45.5"})
    assert res.status_code == 201
    row = res.json()
    assert row["isSynced"] is False
    assert row["amount"] == "45.5"

    res = client.put(f"/api/variable-expenses/{row['id']}", json={"amount": "50"})
    assert res.status_code == 200
    assert res.json()["description"] == "Cinema"
    assert res.json()["amount"] == "50"

    assert client.delete(f"/api/variable-expenses/{row['id']}").status_code == 204
    assert client.delete(f"/api/variable-expenses/{row['id']}").status_code == 404


def test_update_does_not_touch_sync_flag(client) -> None:
    row = client.post("/api/variable-expenses", json={"month": "Set", "description": "Cinema", "amount": "45"}).json()

    res = client.put(f"/api/variable-expenses/{row['id']}", json={"isSynced": True})
    assert res.status_code == 200
    assert res.json()["isSynced"] is False


def test_summary_reflects_expenses(client) -> None:
    client.post("/api/incomes", json={"month": "Jan", "data": {"CLT": "2000"}})
    client.post("/api/fixed-expenses", json={"month": "Jan", "name": "Aluguel", "amount": "600"})
    client.post("/api/variable-expenses", json={"month": "Jan", "description": "Mercado", "amount": "150.25"})

    res = client.get("/api/summary")
    assert res.status_code == 200
    body = res.json()
    assert len(body["months"]) == 12
    jan = body["months"][0]
    assert jan["month"] == "Jan"
    assert jan["expenseTotal"] == "750.25"
    assert jan["balance"] == "1249.75"
    assert body["annual"]["balance"] == "1249.75"
