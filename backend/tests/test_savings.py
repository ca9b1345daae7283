def test_savings_goal_progress(client) -> None:
    res = client.post("/api/savings-goals", json={"month": "Jan", "goal": "1000", "saved": "250"})
    assert res.status_code == 201
    body = res.json()
    assert body["progress"] == "25.00"

    res = client.put(f"/api/savings-goals/{body['id']}", json={"saved": "1200"})
    assert res.status_code == 200
    assert res.json()["goal"] == "1000"
    assert res.json()["progress"] == "120.00"


def test_zero_goal_has_zero_progress(client) -> None:
    body = client.post("/api/savings-goals", json={"month": "Fev"}).json()
    assert body["goal"] == "0"
    assert body["progress"] == "0"


def test_one_goal_per_month(client) -> None:
    assert client.post("/api/savings-goals", json={"month": "Mar"}).status_code == 201
    res = client.post("/api/savings-goals", json={"month": "Mar"})
    assert res.status_code == 400
    assert res.json()["field"] == "month"


def test_goals_are_listed_in_calendar_order(client) -> None:
    for month in ("Dez", "Jan", "Jun"):
        client.post("/api/savings-goals", json={"month": month})
    months = [row["month"] for row in client.get("/api/savings-goals").json()]
    assert months == ["Jan", "Jun", "Dez"]


def test_savings_goals_have_no_delete(client) -> None:
    goal_id = client.post("/api/savings-goals", json={"month": "Abr"}).json()["id"]
    assert client.delete(f"/api/savings-goals/{goal_id}").status_code == 405


def test_negative_saved_is_rejected(client) -> None:
    res = client.post("/api/savings-goals", json={"month": "Mai", "saved": "-1"})
    assert res.status_code == 400
    assert res.json()["field"] == "saved"
