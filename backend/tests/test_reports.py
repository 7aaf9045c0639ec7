"""
Reporting tests.

Fixture day: one paid order (2 x Coffee = 30000, cost 16000), one cancelled
order and one open order. Only the paid order counts as sales.
"""

import pytest

from conftest import login
from poskasir.time_utils import utcnow


@pytest.fixture
def today():
    return utcnow().date().isoformat()


@pytest.fixture
def sales(client, cashier_user, manager_user, coffee, reference_data):
    login(client, cashier_user)

    def _order(quantity):
        resp = client.post("/api/v1/orders", json={
            "type": "takeaway",
            "items": [{"product_id": str(coffee.id), "quantity": quantity}],
        })
        assert resp.status_code == 201
        return resp.get_json()["data"]["id"]

    paid = _order(2)
    client.post(f"/api/v1/orders/{paid}/pay/manual", json={
        "payment_method_id": reference_data["payment_methods"]["Cash"],
        "cash_received": 50000,
    })
    cancelled = _order(1)
    client.post(f"/api/v1/orders/{cancelled}/cancel", json={
        "cancellation_reason_id": reference_data["reasons"]["Stok Habis"],
    })
    _order(1)

    login(client, manager_user)
    return reference_data


def _get(client, path):
    resp = client.get(path)
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


class TestReports:

    def test_dashboard_without_range(self, client, sales):
        data = _get(client, "/api/v1/reports/dashboard-summary")
        assert data == {
            "total_sales": 30000.0,
            "total_orders": 1,
            "unique_cashier": 1,
            "total_products": 1,
        }

    def test_dashboard_outside_range_is_empty(self, client, sales):
        data = _get(client, "/api/v1/reports/dashboard-summary?start_date=2020-01-01&end_date=2020-01-31")
        assert data["total_sales"] == 0.0
        assert data["total_orders"] == 0
        assert data["total_products"] == 1

    def test_sales_per_day(self, client, sales, today):
        data = _get(client, f"/api/v1/reports/sales?start_date={today}&end_date={today}")
        assert data == [{"date": today, "order_count": 1, "total_sales": 30000.0}]

    def test_product_performance(self, client, sales, coffee, today):
        data = _get(client, f"/api/v1/reports/products?start_date={today}&end_date={today}")
        assert data == [{
            "product_id": str(coffee.id),
            "product_name": "Coffee",
            "total_quantity": 2,
            "total_revenue": 30000.0,
        }]

    def test_payment_methods(self, client, sales, today):
        data = _get(client, f"/api/v1/reports/payment-methods?start_date={today}&end_date={today}")
        assert data == [{
            "payment_method_id": sales["payment_methods"]["Cash"],
            "payment_method_name": "Cash",
            "order_count": 1,
            "total_sales": 30000.0,
        }]

    def test_cashier_performance(self, client, sales, cashier_user, today):
        data = _get(client, f"/api/v1/reports/cashier-performance?start_date={today}&end_date={today}")
        assert data == [{
            "user_id": str(cashier_user.id),
            "username": "cashier",
            "order_count": 1,
            "total_sales": 30000.0,
        }]

    def test_cancellations(self, client, sales, today):
        data = _get(client, f"/api/v1/reports/cancellations?start_date={today}&end_date={today}")
        assert data == [{
            "reason_id": sales["reasons"]["Stok Habis"],
            "reason": "Stok Habis",
            "cancelled_orders": 1,
        }]

    def test_profit_summary(self, client, sales, today):
        data = _get(client, f"/api/v1/reports/profit-summary?start_date={today}&end_date={today}")
        assert data == [{
            "date": today,
            "total_revenue": 30000.0,
            "total_cogs": 16000.0,
            "gross_profit": 14000.0,
        }]

    def test_product_profit_uses_cost_snapshot(self, client, db_session, sales, coffee, today):
        # Later cost changes do not rewrite history
        coffee.cost_price = 12000
        db_session.commit()
        data = _get(client, f"/api/v1/reports/profit-products?start_date={today}&end_date={today}")
        assert data == [{
            "product_id": str(coffee.id),
            "product_name": "Coffee",
            "total_sold": 2,
            "total_revenue": 30000.0,
            "total_cogs": 16000.0,
            "gross_profit": 14000.0,
        }]

    def test_past_range_is_empty(self, client, sales):
        assert _get(client, "/api/v1/reports/sales?start_date=2020-01-01&end_date=2020-01-31") == []


class TestReportValidation:

    @pytest.mark.parametrize(
        "query",
        ["", "start_date=2026-01-01", "start_date=2026-01-31&end_date=2026-01-01", "start_date=01-01-2026&end_date=2026-01-31"],
    )
    def test_bad_range(self, client, manager_user, query):
        login(client, manager_user)
        resp = client.get(f"/api/v1/reports/sales?{query}")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation_error"

    def test_cashier_forbidden(self, client, cashier_user):
        login(client, cashier_user)
        assert client.get("/api/v1/reports/dashboard-summary").status_code == 403

    def test_requires_auth(self, client, db_session):
        assert client.get("/api/v1/reports/dashboard-summary").status_code == 401
