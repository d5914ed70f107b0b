from datetime import datetime

import pytest

import utils.record_store as store
from app import create_app


@pytest.fixture
def sent(data_dir):
    return []


@pytest.fixture
def client(data_dir, sent):
    app = create_app({"TESTING": True, "START_SCHEDULER": False, "INVOICE_DISPATCH": sent.append})
    yield app.test_client()
    app.extensions["station"].feed.stop()


def test_catalog_search(client):
    res = client.get("/catalog/search?q=visa").get_json()
    assert [p["id"] for p in res["results"]] == ["svc-visa"]
    assert client.get("/catalog/search?q=").get_json()["results"] == []


def test_sale_flow_with_clamped_discount(client, sent):
    client.post("/sale/search", json={"term": "vis"})
    form = client.post("/sale/select", json={"product_id": "svc-visa"}).get_json()["form"]
    assert form["unit_price"] == "500.00"

    client.post("/sale/quantity", json={"quantity": 2})
    form = client.post("/sale/discount", json={"discount": "1200"}).get_json()["form"]
    assert form["discount"] == "1000.00"
    assert form["final_price"] == "0.00"

    client.post("/sale/details", json={"phone_number": "+911234567890", "payment_method": "online"})
    res = client.post("/sale/submit", json={})
    body = res.get_json()
    assert res.status_code == 200
    assert body["sale"]["discount"] == 1000.0
    assert body["form"]["selected"] is None
    assert len(sent) == 1 and sent[0].phone_number == "+911234567890"
    assert len(store.read_collection(store.SALES)) == 1


def test_submit_without_product(client):
    res = client.post("/sale/submit", json={})
    assert res.status_code == 400
    assert res.get_json()["ok"] is False


def test_select_unknown_product(client):
    assert client.post("/sale/select", json={"product_id": "nope"}).status_code == 404


def test_bad_payment_method(client):
    assert client.post("/sale/details", json={"payment_method": "card"}).status_code == 400


def test_dashboard_reflects_new_sales(client):
    now = datetime.now().replace(microsecond=0).isoformat()
    for final, method in [(200.0, "cash"), (300.0, "online"), (150.0, "cash")]:
        store.append(store.SALES, {"name": "Visa Service", "quantity": 1, "unitPrice": final,
                                   "totalPriceCalculated": final, "finalPriceCharged": final,
                                   "discount": 0, "paymentMethod": method, "soldAt": now})

    summary = client.get("/dashboard/summary").get_json()["summary"]
    assert summary["title"] == "Today's Sales"
    assert summary["stats"]["total_money_collected"] == 650.0
    assert summary["stats"]["total_cash_sales"] == 350.0
    assert summary["stats"]["cash_transactions"] == 2
    assert summary["report"][0]["total_quantity"] == 3

    client.post("/dashboard/filter", json={"mode": "month"})
    summary = client.get("/dashboard/summary").get_json()["summary"]
    assert summary["count"] == 0
    assert client.get("/sales").get_json()["sales"] == []

    client.post("/dashboard/filter/reset", json={})
    assert len(client.get("/sales").get_json()["sales"]) == 3


def test_dashboard_keeps_undated_sales(client):
    store.append(store.SALES, {"name": "Visa Service", "quantity": 1, "finalPriceCharged": 500,
                               "paymentMethod": "cash", "soldAt": datetime.now().isoformat()})
    store.append(store.SALES, {"name": "Air Ticket Booking", "quantity": 2, "finalPriceCharged": 250,
                               "paymentMethod": "online"})

    client.post("/dashboard/filter", json={"mode": "all"})
    res = client.get("/dashboard/summary")
    assert res.status_code == 200
    summary = res.get_json()["summary"]
    assert summary["count"] == 2
    assert summary["stats"]["total_quantity_sold"] == 3
    sales = client.get("/sales").get_json()["sales"]
    assert sorted(s["name"] for s in sales) == ["Air Ticket Booking", "Visa Service"]

    client.post("/dashboard/filter", json={"mode": "today"})
    assert client.get("/dashboard/summary").get_json()["summary"]["count"] == 1


def test_filter_and_sort_validation(client):
    assert client.post("/dashboard/filter", json={"mode": "decade"}).status_code == 400
    client.post("/dashboard/filter", json={"mode": "day", "value": "not-a-date"})
    assert client.get("/dashboard/summary").status_code == 400
    assert client.post("/dashboard/sort", json={"key": "name"}).status_code == 400
    sort = client.post("/dashboard/sort", json={"key": "total_quantity"}).get_json()["sort"]
    assert sort == {"key": "total_quantity", "direction": "ascending"}


def test_day_options(client):
    assert client.get("/dashboard/days?year=2026&month=2").get_json()["days"][-1] == 28
    assert client.get("/dashboard/days?year=2026").status_code == 400


def test_config_update_keeps_unknown_keys_out(client):
    body = client.post("/config", json={"currency": "Rs ", "tick": 1}).get_json()
    assert body["changed"] == {"currency": "Rs "}
    assert store.read_config()["currency"] == "Rs "


def test_pages_render(client):
    assert b"Sales Filters" in client.get("/").data
    assert b"Product Entry" in client.get("/sale").data
