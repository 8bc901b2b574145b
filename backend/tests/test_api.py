# Overview: Pytest coverage for the HTTP API, error mapping and tenant isolation.

"""
API Tests

Every route requires a store bearer token; the token's store is the only
tenant a request can see or touch.
"""

from conftest import auth_headers

from store_manager.models import Customer, Order, Payment
from store_manager.services import ledger_service
from store_manager.services.errors import PersistenceFailure


class TestAuthentication:

    def test_missing_token(self, client, db_session):
        response = client.get('/api/customers')
        assert response.status_code == 401

    def test_invalid_token(self, client, db_session):
        response = client.get('/api/customers', headers=auth_headers("bogus"))
        assert response.status_code == 401

    def test_health_is_public(self, client, db_session):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_logout_revokes_token(self, client, token_a):
        assert client.post('/api/store/logout', headers=auth_headers(token_a)).status_code == 200
        assert client.get('/api/store', headers=auth_headers(token_a)).status_code == 401


class TestLedgerRoutes:

    def test_payment_and_debt_flow(self, client, token_a, customer_a, db_session):
        headers = auth_headers(token_a)

        response = client.post('/api/payments', headers=headers, json={
            "customer_id": customer_a.id, "amount_cents": 10000, "payment_method": "cash",
        })
        assert response.status_code == 201
        assert response.json["balance_cents"] == 10000
        payment_id = response.json["payment"]["id"]

        response = client.post('/api/payments/debt', headers=headers, json={
            "customer_id": customer_a.id, "amount_cents": 4000,
        })
        assert response.status_code == 201
        assert response.json["balance_cents"] == 6000
        assert response.json["transaction"]["type"] == "withdrawal"

        response = client.post(f'/api/payments/{payment_id}/reverse', headers=headers, json={"reason": "bounced"})
        assert response.status_code == 201
        assert response.json["balance_cents"] == -4000

        response = client.post(f'/api/payments/{payment_id}/reverse', headers=headers)
        assert response.status_code == 409
        assert response.json["code"] == "ENTRY_ALREADY_REVERSED"

        response = client.get(f'/api/payments/{payment_id}', headers=headers)
        assert response.json["is_reversed"] is True

        response = client.get(f'/api/customers/{customer_a.id}/statement', headers=headers)
        assert response.json["balance_cents"] == -4000
        assert response.json["in_sync"] is True

    def test_invalid_amount_is_400(self, client, token_a, customer_a, db_session):
        response = client.post('/api/payments', headers=auth_headers(token_a), json={
            "customer_id": customer_a.id, "amount_cents": -5,
        })
        assert response.status_code == 400
        assert response.json["code"] == "INVALID_AMOUNT"
        assert db_session.query(Payment).count() == 0

    def test_unicode_digit_amount_is_400(self, client, token_a, customer_a, db_session):
        response = client.post('/api/payments', headers=auth_headers(token_a), json={
            "customer_id": customer_a.id, "amount_cents": "²",
        })
        assert response.status_code == 400
        assert response.json["code"] == "INVALID_AMOUNT"
        assert db_session.query(Payment).count() == 0

    def test_non_string_method_is_400(self, client, token_a, customer_a, db_session):
        response = client.post('/api/payments', headers=auth_headers(token_a), json={
            "customer_id": customer_a.id, "amount_cents": 100, "payment_method": 5,
        })
        assert response.status_code == 400
        assert response.json["code"] == "VALIDATION_ERROR"
        assert db_session.query(Payment).count() == 0

    def test_adjust_route(self, client, token_a, customer_a):
        headers = auth_headers(token_a)
        created = client.post('/api/payments', headers=headers, json={
            "customer_id": customer_a.id, "amount_cents": 5000,
        }).json

        response = client.post(f'/api/payments/{created["payment"]["id"]}/adjust', headers=headers, json={
            "amount_cents": 4500,
        })
        assert response.status_code == 201
        assert response.json["balance_cents"] == 4500
        assert len(response.json["related"]) == 2

    def test_persistence_failure_is_503(self, client, token_a, customer_a, monkeypatch):
        def failing(*args, **kwargs):
            raise PersistenceFailure("database is locked")

        monkeypatch.setattr(ledger_service, "record_payment", failing)

        response = client.post('/api/payments', headers=auth_headers(token_a), json={
            "customer_id": customer_a.id, "amount_cents": 100,
        })
        assert response.status_code == 503
        assert response.json["retryable"] is True

    def test_list_filters_by_customer(self, client, token_a, customer_a, db_session, store_a):
        other = Customer(store_id=store_a.id, name="Other", balance_cents=0)
        db_session.add(other)
        db_session.commit()
        ledger_service.record_payment(store_a.id, customer_a.id, 100)
        ledger_service.record_payment(store_a.id, other.id, 200)

        response = client.get(f'/api/payments?customer_id={customer_a.id}', headers=auth_headers(token_a))
        assert [p["amount_cents"] for p in response.json["items"]] == [100]


class TestCheckoutRoutes:

    def test_checkout(self, client, token_a, customer_a, product_a):
        response = client.post('/api/orders', headers=auth_headers(token_a), json={
            "customer_id": customer_a.id,
            "items": [{"product_id": product_a.id, "quantity": 4}],
            "amount_paid_cents": 6000,
        })
        assert response.status_code == 201
        body = response.json
        assert body["order"]["total_amount_cents"] == 10000
        assert body["order"]["order_number"] == "ORD-000001"
        assert len(body["order"]["items"]) == 1
        assert body["payment"]["payment"]["amount_cents"] == 6000
        assert body["debt"]["payment"]["amount_cents"] == -4000
        assert body["balance_cents"] == 2000

    def test_empty_order_is_400(self, client, token_a, customer_a, db_session):
        response = client.post('/api/orders', headers=auth_headers(token_a), json={
            "customer_id": customer_a.id, "items": [],
        })
        assert response.status_code == 400
        assert response.json["code"] == "EMPTY_ORDER"
        assert db_session.query(Order).count() == 0

    def test_unicode_digit_quantity_is_400(self, client, token_a, customer_a, db_session):
        response = client.post('/api/orders', headers=auth_headers(token_a), json={
            "customer_id": customer_a.id,
            "items": [{"product_name": "Tea", "quantity": "²", "unit_price_cents": 500}],
        })
        assert response.status_code == 400
        assert db_session.query(Order).count() == 0

    def test_partial_checkout_is_500_with_reconciliation(self, client, token_a, customer_a, monkeypatch):
        def failing(*args, **kwargs):
            raise PersistenceFailure("down")

        monkeypatch.setattr(ledger_service, "record_debt", failing)
        monkeypatch.setattr(ledger_service, "reverse_entry", failing)

        response = client.post('/api/orders', headers=auth_headers(token_a), json={
            "customer_id": customer_a.id,
            "items": [{"product_name": "Chair", "quantity": 1, "unit_price_cents": 10000}],
            "amount_paid_cents": 6000,
        })
        assert response.status_code == 500
        assert response.json["code"] == "PARTIAL_CHECKOUT"
        assert response.json["reconciliation"]["completed_steps"] == ["create_order", "record_payment"]

    def test_pos_and_order_status(self, client, token_a):
        headers = auth_headers(token_a)
        response = client.post('/api/orders/pos', headers=headers, json={
            "items": [{"product_name": "Coffee", "quantity": 2, "unit_price_cents": 1200}],
        })
        assert response.status_code == 201
        assert response.json["order"]["status"] == "completed"

        order_id = response.json["order"]["id"]
        response = client.post(f'/api/orders/{order_id}/status', headers=headers, json={"status": "cancelled"})
        assert response.status_code == 200
        assert response.json["order"]["status"] == "cancelled"

        response = client.get('/api/orders?status=cancelled', headers=headers)
        assert response.json["count"] == 1


class TestCrudRoutes:

    def test_customer_crud(self, client, token_a):
        headers = auth_headers(token_a)
        response = client.post('/api/customers', headers=headers, json={"name": "Yael", "phone": "054"})
        assert response.status_code == 201
        customer_id = response.json["customer"]["id"]

        response = client.patch(f'/api/customers/{customer_id}', headers=headers, json={"balance_cents": 5})
        assert response.status_code == 400

        response = client.patch(f'/api/customers/{customer_id}', headers=headers, json={"email": "y@example.com"})
        assert response.json["customer"]["email"] == "y@example.com"

        assert client.delete(f'/api/customers/{customer_id}', headers=headers).status_code == 204
        assert client.get(f'/api/customers/{customer_id}', headers=headers).status_code == 404

    def test_product_crud(self, client, token_a):
        headers = auth_headers(token_a)
        response = client.post('/api/products', headers=headers, json={"name": "Tea", "price_cents": 800, "stock_quantity": 30})
        assert response.status_code == 201
        product_id = response.json["product"]["id"]

        response = client.patch(f'/api/products/{product_id}', headers=headers, json={"price_cents": 900})
        assert response.json["product"]["price_cents"] == 900

        response = client.get('/api/products?search=tea', headers=headers)
        assert response.json["count"] == 1

    def test_invoice_routes(self, client, token_a, customer_a):
        headers = auth_headers(token_a)
        response = client.post('/api/invoices', headers=headers, json={
            "customer_id": customer_a.id,
            "total_amount_cents": 3000,
            "paid_amount_cents": 1000,
            "due_date": "2026-11-30",
        })
        assert response.status_code == 201
        invoice = response.json["invoice"]
        assert invoice["paid_amount_cents"] == 1000
        assert invoice["due_date"] == "2026-11-30"

        response = client.post('/api/payments', headers=headers, json={
            "customer_id": customer_a.id, "invoice_id": invoice["id"], "amount_cents": 2000,
        })
        assert response.status_code == 201

        response = client.get(f'/api/invoices/{invoice["id"]}', headers=headers)
        assert response.json["invoice"]["status"] == "paid"
        assert len(response.json["payments"]) == 2

        response = client.patch(f'/api/invoices/{invoice["id"]}', headers=headers, json={"due_date": "soon"})
        assert response.status_code == 400

    def test_transactions_and_notifications(self, client, token_a):
        headers = auth_headers(token_a)
        response = client.post('/api/transactions', headers=headers, json={
            "type": "expense", "amount_cents": 2500, "description": "Cleaning supplies",
        })
        assert response.status_code == 201

        response = client.post('/api/transactions', headers=headers, json={"type": "gift", "amount_cents": 1})
        assert response.status_code == 400

        response = client.get('/api/transactions?type=expense', headers=headers)
        assert response.json["count"] == 1

        response = client.get('/api/notifications', headers=headers)
        assert response.json["unread_count"] == 1
        notification_id = response.json["items"][0]["id"]

        response = client.post(f'/api/notifications/{notification_id}/read', headers=headers)
        assert response.json["notification"]["is_read"] is True
        assert client.get('/api/notifications/unread-count', headers=headers).json["unread_count"] == 0

    def test_analytics_and_ledger_routes(self, client, token_a, customer_a):
        headers = auth_headers(token_a)
        client.post('/api/payments/debt', headers=headers, json={"customer_id": customer_a.id, "amount_cents": 700})

        summary = client.get('/api/analytics/summary', headers=headers).json
        assert summary["receivables_cents"] == 700

        assert client.get('/api/analytics/revenue?months=3', headers=headers).status_code == 200
        assert client.get('/api/analytics/daily-sales?date=bad', headers=headers).status_code == 400

        verify = client.get('/api/ledger/verify', headers=headers).json
        assert verify["in_sync"] is True


class TestTenantIsolation:

    def test_customer_of_other_store_is_404(self, client, token_a, customer_b):
        response = client.get(f'/api/customers/{customer_b.id}', headers=auth_headers(token_a))
        assert response.status_code == 404

    def test_cannot_post_to_other_store_customer(self, client, token_a, customer_b, db_session):
        response = client.post('/api/payments', headers=auth_headers(token_a), json={
            "customer_id": customer_b.id, "amount_cents": 100,
        })
        assert response.status_code == 404
        assert response.json["code"] == "CUSTOMER_NOT_FOUND"
        assert db_session.query(Payment).count() == 0

    def test_lists_only_own_store(self, client, token_a, token_b, customer_a, customer_b):
        items_a = client.get('/api/customers', headers=auth_headers(token_a)).json["items"]
        items_b = client.get('/api/customers', headers=auth_headers(token_b)).json["items"]

        assert [c["id"] for c in items_a] == [customer_a.id]
        assert [c["id"] for c in items_b] == [customer_b.id]

    def test_cannot_reverse_other_store_payment(self, client, token_a, store_b, customer_b):
        foreign = ledger_service.record_payment(store_b.id, customer_b.id, 100)
        response = client.post(f'/api/payments/{foreign.payment.id}/reverse', headers=auth_headers(token_a))
        assert response.status_code == 404
