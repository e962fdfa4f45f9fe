"""Example HTTP surface, exercised with RequestFactory over an in-memory ledger."""

import json

import pytest

from code_ledger import LockAcquireTimeout, OrderLine, StorageError


@pytest.fixture
def views(django_db, ledger, monkeypatch):
    from example.shop import views

    monkeypatch.setattr(views, "get_ledger", lambda: ledger)
    return views


@pytest.fixture
def rf(django_db):
    from django.test import RequestFactory

    return RequestFactory()


def _body(response) -> dict:
    return json.loads(response.content)


def test_upload_then_stats(views, rf):
    response = views.upload_codes(rf.post("/products/p1/codes/", data="A\nB\nA\n", content_type="text/plain"), "p1")

    assert response.status_code == 201
    assert _body(response) == {"ok": True, "productId": "p1", "insertedCount": 2, "duplicateCount": 1}

    stats = _body(views.product_stats(rf.get("/products/p1/stats/"), "p1"))
    assert (stats["available"], stats["sold"], stats["total"]) == (2, 0, 2)


def test_strict_upload_conflict(views, rf, ledger):
    ledger.insert_codes("p1", ["A"])

    response = views.upload_codes(
        rf.post("/products/p1/codes/?strict=1", data="A\nB", content_type="text/plain"), "p1"
    )

    assert response.status_code == 409
    assert _body(response)["duplicates"] == ["A"]


def test_checkout_success_and_stockout(views, rf, ledger):
    ledger.insert_codes("p1", ["A1", "A2"])
    payload = {"orderId": "o1", "lines": [{"productId": "p1", "quantity": 2}]}

    ok = views.checkout(rf.post("/orders/", data=json.dumps(payload), content_type="application/json"))

    assert ok.status_code == 201
    assert _body(ok)["deliveryCodes"] == {"p1": ["A1", "A2"]}

    payload["orderId"] = "o2"
    stockout = views.checkout(rf.post("/orders/", data=json.dumps(payload), content_type="application/json"))

    assert stockout.status_code == 409
    body = _body(stockout)
    assert body["detail"] == "item unavailable in requested quantity"
    assert body["productId"] == "p1"


def test_checkout_rejects_malformed_requests(views, rf):
    bad_json = views.checkout(rf.post("/orders/", data="{", content_type="application/json"))
    bad_qty = views.checkout(
        rf.post(
            "/orders/",
            data=json.dumps({"orderId": "o1", "lines": [{"productId": "p1", "quantity": 0}]}),
            content_type="application/json",
        )
    )

    assert bad_json.status_code == 400
    assert bad_qty.status_code == 400
    assert _body(bad_qty)["code"] == "invalid_request"


def test_void_order(views, rf, ledger):
    ledger.insert_codes("p1", ["A1"])
    ledger.place_order("o1", [OrderLine("p1", 1)])

    response = views.void_order(rf.post("/orders/o1/void/"), "o1")

    assert response.status_code == 200
    assert _body(response)["status"] == "voided"
    assert ledger.get_stats("p1").available == 1


def test_export_download(views, rf, ledger):
    ledger.insert_codes("p1", ["A1", "A2"])
    ledger.allocate("p1", 1, "o1")

    response = views.export_codes(rf.get("/products/p1/codes.txt"), "p1")

    assert response.status_code == 200
    assert response["Content-Type"].startswith("text/plain")
    assert 'filename="p1.txt"' in response["Content-Disposition"]
    assert response.content.decode() == "Non-sold:\nA2\n\nSold:\nA1"


def test_all_stats_lists_every_product(views, rf):
    body = _body(views.all_stats(rf.get("/stats/")))

    assert {entry["productId"] for entry in body["products"]} == {"p1", "p2", "empty"}


def test_busy_pool_maps_to_409(views, rf, ledger, monkeypatch):
    def busy(*args, **kwargs):
        raise LockAcquireTimeout("pool busy")

    monkeypatch.setattr(ledger, "allocate", busy)
    monkeypatch.setattr(ledger, "place_order", busy)
    payload = {"orderId": "o1", "lines": [{"productId": "p1", "quantity": 1}]}

    response = views.checkout(rf.post("/orders/", data=json.dumps(payload), content_type="application/json"))

    assert response.status_code == 409
    assert _body(response) == {"ok": False, "detail": "busy, try again", "code": "lock_acquire_timeout"}


def test_storage_failure_maps_to_503(views, rf, ledger, monkeypatch):
    def down(*args, **kwargs):
        raise StorageError("db down")

    monkeypatch.setattr(ledger, "get_stats", down)

    response = views.product_stats(rf.get("/products/p1/stats/"), "p1")

    assert response.status_code == 503


def test_unknown_product_is_400(views, rf):
    response = views.product_stats(rf.get("/products/nope/stats/"), "nope")

    assert response.status_code == 400


def test_wrong_method_rejected(views, rf):
    assert views.checkout(rf.get("/orders/")).status_code == 405


@pytest.mark.parametrize(
    "lines",
    [["p1"], {"productId": "p1", "quantity": 1}, [{"productId": "p1", "quantity": 1}, 3], "p1"],
)
def test_checkout_rejects_lines_that_are_not_objects(views, rf, ledger, lines):
    ledger.insert_codes("p1", ["A1"])
    payload = {"orderId": "o1", "lines": lines}

    response = views.checkout(rf.post("/orders/", data=json.dumps(payload), content_type="application/json"))

    assert response.status_code == 400
    assert _body(response)["code"] == "invalid_request"
    assert ledger.get_stats("p1").available == 1
