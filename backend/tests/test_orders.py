"""
Order lifecycle tests.

Verifies:
- Create snapshots prices, sums option prices into the line subtotal and
  moves stock atomically (insufficient stock leaves nothing behind)
- open -> in_progress -> served is the only operational path
- Cancel returns stock; paid/cancelled orders are frozen
- Manual payment computes change; QRIS requests are idempotent
- Midtrans notifications are signature-checked and reconcile the order
"""

import uuid

import pytest

from conftest import login, signed_notification
from poskasir.extensions import db
from poskasir.models import ActivityLog, Order, OrderItem, Product, ProductOption, StockHistory


@pytest.fixture
def large(db_session, coffee):
    option = ProductOption(product_id=coffee.id, name="Large", additional_price=5000)
    db_session.add(option)
    db_session.commit()
    return option


@pytest.fixture
def order(client, cashier_user, coffee, large):
    """Two large coffees: (15000 + 5000) x 2 = 40000."""
    login(client, cashier_user)
    resp = client.post("/api/v1/orders", json={
        "type": "dine_in",
        "items": [{
            "product_id": str(coffee.id),
            "quantity": 2,
            "options": [{"product_option_id": str(large.id)}],
        }],
    })
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock


class TestCreateOrder:

    def test_totals_snapshot_and_stock(self, db_session, order, coffee, large, cashier_user):
        assert order["status"] == "open"
        assert order["type"] == "dine_in"
        assert order["user_id"] == str(cashier_user.id)
        assert order["gross_total"] == 40000.0
        assert order["net_total"] == 40000.0

        (item,) = order["items"]
        assert item["quantity"] == 2
        assert item["price_at_sale"] == 15000.0
        assert item["subtotal"] == 40000.0
        assert item["options"] == [{"product_option_id": str(large.id), "price_at_sale": 5000.0}]

        assert _stock(db_session, coffee.id) == 8
        row = db_session.query(StockHistory).filter_by(product_id=coffee.id).one()
        assert row.change_type == "sale"
        assert row.change_amount == -2
        assert str(row.reference_id) == order["id"]
        assert row.note == "Order Created"

    def test_price_change_does_not_touch_existing_order(self, client, db_session, order, coffee):
        coffee.price = 99999
        db_session.commit()
        resp = client.get(f"/api/v1/orders/{order['id']}")
        assert resp.get_json()["data"]["items"][0]["price_at_sale"] == 15000.0
        assert resp.get_json()["data"]["net_total"] == 40000.0

    def test_insufficient_stock_leaves_nothing(self, client, db_session, cashier_user, coffee):
        login(client, cashier_user)
        resp = client.post("/api/v1/orders", json={
            "type": "takeaway",
            "items": [{"product_id": str(coffee.id), "quantity": 11}],
        })
        assert resp.status_code == 409
        assert "Insufficient stock" in resp.get_json()["message"]
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0
        assert db_session.query(StockHistory).count() == 0
        assert _stock(db_session, coffee.id) == 10

    def test_same_product_on_two_lines_counts_together(self, client, db_session, cashier_user, coffee):
        login(client, cashier_user)
        resp = client.post("/api/v1/orders", json={
            "type": "takeaway",
            "items": [
                {"product_id": str(coffee.id), "quantity": 6},
                {"product_id": str(coffee.id), "quantity": 5},
            ],
        })
        assert resp.status_code == 409
        assert _stock(db_session, coffee.id) == 10

    def test_unknown_product_is_404(self, client, db_session, cashier_user):
        login(client, cashier_user)
        resp = client.post("/api/v1/orders", json={
            "type": "takeaway",
            "items": [{"product_id": str(uuid.uuid4()), "quantity": 1}],
        })
        assert resp.status_code == 404
        assert db_session.query(Order).count() == 0

    def test_option_of_other_product_rejected(self, client, db_session, cashier_user, coffee):
        tea = Product(name="Tea", price=5000, stock=5)
        db_session.add(tea)
        db_session.commit()
        foreign = ProductOption(product_id=tea.id, name="Lemon", additional_price=2000)
        db_session.add(foreign)
        db_session.commit()
        login(client, cashier_user)

        resp = client.post("/api/v1/orders", json={
            "type": "takeaway",
            "items": [{
                "product_id": str(coffee.id),
                "quantity": 1,
                "options": [{"product_option_id": str(foreign.id)}],
            }],
        })
        assert resp.status_code == 400
        assert _stock(db_session, coffee.id) == 10

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "delivery", "items": [{"product_id": "00000000-0000-0000-0000-000000000000", "quantity": 1}]},
            {"type": "takeaway", "items": []},
            {"type": "takeaway", "items": [{"product_id": "nope", "quantity": 1}]},
            {"type": "takeaway", "items": [{"product_id": "00000000-0000-0000-0000-000000000000", "quantity": 0}]},
        ],
    )
    def test_validation(self, client, cashier_user, payload):
        login(client, cashier_user)
        assert client.post("/api/v1/orders", json=payload).status_code == 400

    def test_create_is_logged(self, db_session, order, cashier_user):
        entry = db_session.query(ActivityLog).filter_by(entity_type="ORDER", action_type="CREATE").one()
        assert entry.entity_id == order["id"]
        assert entry.user_id == cashier_user.id


class TestListAndGet:

    def test_list_filters(self, client, order):
        resp = client.get("/api/v1/orders?status=open")
        data = resp.get_json()["data"]
        assert [o["id"] for o in data["orders"]] == [order["id"]]
        assert data["pagination"]["total_data"] == 1

        assert client.get("/api/v1/orders?status=paid").get_json()["data"]["orders"] == []
        assert client.get("/api/v1/orders?status=lost").status_code == 400

    @pytest.mark.parametrize("order_id", [str(uuid.uuid4()), "not-an-order"])
    def test_unknown_order_is_404(self, client, cashier_user, order_id):
        login(client, cashier_user)
        resp = client.get(f"/api/v1/orders/{order_id}")
        assert resp.status_code == 404
        assert resp.get_json() == {"message": "Order not found", "error": "not_found"}

    def test_requires_auth(self, client, db_session):
        assert client.get("/api/v1/orders").status_code == 401


class TestUpdateItems:

    def test_replacing_lines_moves_the_difference(self, client, db_session, order, coffee):
        resp = client.put(f"/api/v1/orders/{order['id']}/items", json={
            "items": [{"product_id": str(coffee.id), "quantity": 5}],
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["net_total"] == 75000.0
        assert len(data["items"]) == 1
        assert _stock(db_session, coffee.id) == 5

        last = db_session.query(StockHistory).order_by(StockHistory.id.desc()).first()
        assert (last.change_type, last.change_amount, last.note) == ("sale", -3, "Order Updated")

    def test_fewer_items_return_stock(self, client, db_session, order, coffee):
        client.put(f"/api/v1/orders/{order['id']}/items", json={
            "items": [{"product_id": str(coffee.id), "quantity": 1}],
        })
        assert _stock(db_session, coffee.id) == 9
        last = db_session.query(StockHistory).order_by(StockHistory.id.desc()).first()
        assert (last.change_type, last.change_amount) == ("return", 1)

    def test_served_order_cannot_change_items(self, client, order, coffee):
        client.post(f"/api/v1/orders/{order['id']}/update-status", json={"status": "in_progress"})
        client.post(f"/api/v1/orders/{order['id']}/update-status", json={"status": "served"})
        resp = client.put(f"/api/v1/orders/{order['id']}/items", json={
            "items": [{"product_id": str(coffee.id), "quantity": 1}],
        })
        assert resp.status_code == 409


class TestOperationalStatus:

    def test_forward_path(self, client, order):
        for status in ("in_progress", "served"):
            resp = client.post(f"/api/v1/orders/{order['id']}/update-status", json={"status": status})
            assert resp.status_code == 200
            assert resp.get_json()["data"]["status"] == status

    @pytest.mark.parametrize("status", ["served", "open", "paid", "cancelled"])
    def test_invalid_transition_from_open(self, client, order, status):
        resp = client.post(f"/api/v1/orders/{order['id']}/update-status", json={"status": status})
        assert resp.status_code == 409

    def test_cannot_go_back(self, client, order):
        client.post(f"/api/v1/orders/{order['id']}/update-status", json={"status": "in_progress"})
        resp = client.post(f"/api/v1/orders/{order['id']}/update-status", json={"status": "open"})
        assert resp.status_code == 409

    def test_unknown_status(self, client, order):
        resp = client.post(f"/api/v1/orders/{order['id']}/update-status", json={"status": "lost"})
        assert resp.status_code == 400


class TestCancel:

    def test_cancel_returns_stock(self, client, db_session, order, coffee, reference_data):
        reason_id = reference_data["reasons"]["Stok Habis"]
        resp = client.post(f"/api/v1/orders/{order['id']}/cancel", json={
            "cancellation_reason_id": reason_id,
            "cancellation_notes": "  out of beans  ",
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "cancelled"
        assert data["cancellation_reason_id"] == reason_id
        assert data["cancellation_notes"] == "out of beans"
        assert _stock(db_session, coffee.id) == 10

        last = db_session.query(StockHistory).order_by(StockHistory.id.desc()).first()
        assert (last.change_type, last.change_amount, last.note) == ("return", 2, "Order Cancelled")

        again = client.post(f"/api/v1/orders/{order['id']}/cancel", json={"cancellation_reason_id": reason_id})
        assert again.status_code == 409
        assert _stock(db_session, coffee.id) == 10

    def test_unknown_reason(self, client, db_session, order, coffee):
        resp = client.post(f"/api/v1/orders/{order['id']}/cancel", json={"cancellation_reason_id": 987654})
        assert resp.status_code == 400
        assert _stock(db_session, coffee.id) == 8

    def test_missing_reason(self, client, order):
        assert client.post(f"/api/v1/orders/{order['id']}/cancel", json={}).status_code == 400


class TestManualPayment:

    def test_cash_payment_computes_change(self, client, db_session, order, reference_data):
        cash_id = reference_data["payment_methods"]["Cash"]
        resp = client.post(f"/api/v1/orders/{order['id']}/pay/manual", json={
            "payment_method_id": cash_id,
            "cash_received": 50000,
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "paid"
        assert data["payment_method_id"] == cash_id
        assert data["cash_received"] == 50000.0
        assert data["change_due"] == 10000.0

        entry = db_session.query(ActivityLog).filter_by(action_type="PROCESS_PAYMENT").one()
        assert entry.details["payment_method"] == "Cash"

    def test_paid_order_is_frozen(self, client, order, coffee, reference_data):
        cash_id = reference_data["payment_methods"]["Cash"]
        client.post(f"/api/v1/orders/{order['id']}/pay/manual", json={"payment_method_id": cash_id})

        again = client.post(f"/api/v1/orders/{order['id']}/pay/manual", json={"payment_method_id": cash_id})
        assert again.status_code == 409
        cancel = client.post(f"/api/v1/orders/{order['id']}/cancel", json={
            "cancellation_reason_id": reference_data["reasons"]["Lainnya"],
        })
        assert cancel.status_code == 409
        items = client.put(f"/api/v1/orders/{order['id']}/items", json={
            "items": [{"product_id": str(coffee.id), "quantity": 1}],
        })
        assert items.status_code == 409

    def test_cash_below_total(self, client, order, reference_data):
        resp = client.post(f"/api/v1/orders/{order['id']}/pay/manual", json={
            "payment_method_id": reference_data["payment_methods"]["Cash"],
            "cash_received": 39999,
        })
        assert resp.status_code == 400

    def test_unknown_method(self, client, order):
        resp = client.post(f"/api/v1/orders/{order['id']}/pay/manual", json={"payment_method_id": 987654})
        assert resp.status_code == 400


class TestMidtrans:

    def test_qris_charge_is_idempotent(self, client, db_session, gateway, order):
        first = client.post(f"/api/v1/orders/{order['id']}/pay/midtrans")
        assert first.status_code == 200
        data = first.get_json()["data"]
        assert data["order_id"] == order["id"]
        assert data["transaction_id"] == f"trx-{order['id']}"
        assert data["gross_amount"] == "40000.00"
        assert data["qr_string"]
        assert data["actions"][0]["name"] == "generate-qr-code"

        second = client.post(f"/api/v1/orders/{order['id']}/pay/midtrans")
        assert second.get_json()["data"] == data
        assert gateway.charges == [(order["id"], 40000)]

    def test_cancel_during_charge_is_not_recorded(self, app, client, db_session, gateway, monkeypatch, order):
        real_charge = gateway.charge_qris

        def _cancelled_meanwhile(order_id, gross_amount):
            # The order is cancelled from another request while the gateway answers
            with app.app_context():
                row = db.session.get(Order, uuid.UUID(order_id))
                row.status = "cancelled"
                db.session.commit()
            return real_charge(order_id, gross_amount)

        monkeypatch.setattr(gateway, "charge_qris", _cancelled_meanwhile)
        resp = client.post(f"/api/v1/orders/{order['id']}/pay/midtrans")
        assert resp.status_code == 409

        db_session.expire_all()
        row = db_session.get(Order, uuid.UUID(order["id"]))
        assert row.status == "cancelled"
        assert row.payment_gateway_reference is None
        assert db_session.query(ActivityLog).filter_by(action_type="PROCESS_PAYMENT").count() == 0

    def test_gateway_not_configured(self, client, app, order):
        app.extensions["payment_gateway"] = None
        resp = client.post(f"/api/v1/orders/{order['id']}/pay/midtrans")
        assert resp.status_code == 502
        assert resp.get_json()["message"] == "Payment gateway request failed"

    def test_settlement_marks_paid(self, client, db_session, order, reference_data):
        resp = client.post("/api/v1/orders/webhook/midtrans", json=signed_notification(order["id"], "settlement"))
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"order_id": order["id"], "status": "paid", "result": "paid"}

        db_session.expire_all()
        row = db_session.get(Order, uuid.UUID(order["id"]))
        assert row.status == "paid"
        assert row.payment_method_id == reference_data["payment_methods"]["QRIS Dinamis"]
        assert row.payment_gateway_reference == f"trx-{order['id']}"

        entry = db_session.query(ActivityLog).filter_by(action_type="PROCESS_PAYMENT").one()
        assert entry.user_id is None

    def test_expire_cancels_and_restocks(self, client, db_session, order, coffee):
        resp = client.post("/api/v1/orders/webhook/midtrans", json=signed_notification(order["id"], "expire"))
        assert resp.get_json()["data"]["result"] == "cancelled"
        assert _stock(db_session, coffee.id) == 10

    def test_final_order_is_ignored(self, client, db_session, order, coffee):
        client.post("/api/v1/orders/webhook/midtrans", json=signed_notification(order["id"], "settlement"))
        resp = client.post("/api/v1/orders/webhook/midtrans", json=signed_notification(order["id"], "expire"))
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"order_id": order["id"], "status": "paid", "result": "ignored"}
        assert _stock(db_session, coffee.id) == 8

    def test_pending_is_ignored(self, client, order):
        resp = client.post("/api/v1/orders/webhook/midtrans", json=signed_notification(order["id"], "pending"))
        assert resp.get_json()["data"]["result"] == "ignored"
        assert resp.get_json()["data"]["status"] == "open"

    def test_bad_signature(self, client, db_session, order):
        body = signed_notification(order["id"], "settlement", key="someone-elses-key")
        resp = client.post("/api/v1/orders/webhook/midtrans", json=body)
        assert resp.status_code == 403
        db_session.expire_all()
        assert db_session.get(Order, uuid.UUID(order["id"])).status == "open"

    def test_tampered_amount(self, client, order):
        body = signed_notification(order["id"], "settlement")
        body["gross_amount"] = "1.00"
        assert client.post("/api/v1/orders/webhook/midtrans", json=body).status_code == 403

    def test_unknown_order(self, client, db_session):
        body = signed_notification(str(uuid.uuid4()), "settlement")
        assert client.post("/api/v1/orders/webhook/midtrans", json=body).status_code == 404


class TestInvoiceData:

    def test_unpaid_receipt_on_default_paper(self, client, order):
        resp = client.get(f"/api/v1/orders/{order['id']}/print-data")
        assert resp.status_code == 200, resp.get_json()
        data = resp.get_json()["data"]
        assert data["cashier"] == "cashier"
        assert data["paid"] is False
        assert data["payment_method"] is None
        assert data["line_width"] == 32
        assert data["filename"] == f"invoice_{order['id']}.txt"

        lines = data["lines"]
        assert lines[0] == "POS Kasir".center(32).rstrip()
        assert lines[2] == f"Order #{order['id'][-4:]}"
        assert lines[3] == "Cashier: cashier"
        assert lines[5:8] == ["Coffee", "2x Rp 15.000" + " " * 11 + "Rp 40.000", "   + Large"]
        assert "TOTAL" + " " * 18 + "Rp 40.000" in lines
        assert "UNPAID" in lines
        assert all(len(line) <= 32 for line in lines)

    def test_paid_receipt_on_wide_paper(self, client, db_session, order, admin_user, cashier_user, reference_data):
        login(client, admin_user)
        client.put("/api/v1/settings/printer", json={
            "connection": "socket://10.0.0.5:9100",
            "paper_width": "80mm",
            "auto_print": False,
            "print_method": "BE",
        })
        login(client, cashier_user)
        client.post(f"/api/v1/orders/{order['id']}/pay/manual", json={
            "payment_method_id": reference_data["payment_methods"]["Cash"],
            "cash_received": 50000,
        })

        data = client.get(f"/api/v1/orders/{order['id']}/print-data").get_json()["data"]
        assert data["paid"] is True
        assert data["payment_method"] == "Cash"
        assert data["line_width"] == 48
        assert "-" * 48 in data["lines"]
        assert "Payment: Cash" in data["lines"]
        assert "Change" + " " * 33 + "Rp 10.000" in data["lines"]
        assert "UNPAID" not in data["lines"]

    def test_unknown_order(self, client, cashier_user):
        login(client, cashier_user)
        assert client.get(f"/api/v1/orders/{uuid.uuid4()}/print-data").status_code == 404
