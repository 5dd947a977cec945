"""
HTTP API tests: authentication, seller scoping, CRUD routes, the sale
lifecycle and the error-to-status mapping.
"""

import hashlib
import hmac

from recargas.models import App, Sale, SecurityEvent


PASSWORD = "Senha12345"


def _create_sale(client, headers, customer_id, app_id, quantity=1, price_cents=1000):
    return client.post("/api/sales", headers=headers, json={
        "customer_id": customer_id,
        "items": [{"app_id": app_id, "quantity": quantity, "price_cents": price_cents}],
    })


class TestAuthRoutes:
    def test_register_login_me_logout(self, client, db_session):
        response = client.post("/api/auth/register", json={
            "name": "Loja Nova", "email": "nova@example.com", "password": PASSWORD,
        })
        assert response.status_code == 201
        assert response.get_json()["seller"]["email"] == "nova@example.com"

        response = client.post("/api/auth/login", json={"email": "nova@example.com", "password": PASSWORD})
        assert response.status_code == 200
        token = response.get_json()["token"]
        headers = {"Authorization": f"Bearer {token}"}

        response = client.get("/api/auth/me", headers=headers)
        assert response.status_code == 200
        assert response.get_json()["seller"]["name"] == "Loja Nova"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_register_weak_password(self, client, db_session):
        response = client.post("/api/auth/register", json={
            "name": "Loja", "email": "fraca@example.com", "password": "abc",
        })
        assert response.status_code == 400

    def test_register_duplicate_email(self, client, seller_a):
        response = client.post("/api/auth/register", json={
            "name": "Loja", "email": "loja_a@example.com", "password": PASSWORD,
        })
        assert response.status_code == 409

    def test_login_wrong_password(self, client, seller_a):
        response = client.post("/api/auth/login", json={"email": "loja_a@example.com", "password": "Errada123"})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid email or password"

    def test_missing_or_bad_token(self, client, db_session):
        assert client.get("/api/customers").status_code == 401
        response = client.get("/api/customers", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_update_integrations(self, client, seller_b, auth_headers):
        response = client.put("/api/auth/integrations", headers=auth_headers(seller_b), json={
            "whatsapp_secret": "s", "whatsapp_account": "a", "mercadopago_token": "t",
            "mercadopago_webhook": "whsec",
        })
        body = response.get_json()["seller"]
        assert response.status_code == 200
        assert body["whatsapp_configured"] is True
        assert body["mercadopago_configured"] is True
        assert body["webhook_signature_configured"] is True
        assert "mercadopago_token" not in body
        assert "mercadopago_webhook" not in body


class TestCustomerRoutes:
    def test_crud(self, client, seller_a, auth_headers):
        headers = auth_headers(seller_a)

        response = client.post("/api/customers", headers=headers, json={"name": "Ana", "phone": "11911112222"})
        assert response.status_code == 201
        customer_id = response.get_json()["customer"]["id"]

        response = client.put(f"/api/customers/{customer_id}", headers=headers, json={"email": "ana@example.com"})
        assert response.status_code == 200
        assert response.get_json()["customer"]["email"] == "ana@example.com"

        response = client.get("/api/customers", headers=headers)
        assert [c["name"] for c in response.get_json()["items"]] == ["Ana"]

        assert client.delete(f"/api/customers/{customer_id}", headers=headers).status_code == 200
        assert client.get(f"/api/customers/{customer_id}", headers=headers).status_code == 404

    def test_name_required(self, client, seller_a, auth_headers):
        response = client.post("/api/customers", headers=auth_headers(seller_a), json={"phone": "1"})
        assert response.status_code == 400

    def test_unknown_field_rejected(self, client, seller_a, auth_headers):
        response = client.post("/api/customers", headers=auth_headers(seller_a), json={
            "name": "Ana", "seller_id": 999,
        })
        assert response.status_code == 400

    def test_foreign_customer_is_404_and_logged(self, client, db_session, seller_b, customer_a, auth_headers):
        response = client.get(f"/api/customers/{customer_a.id}", headers=auth_headers(seller_b))

        assert response.status_code == 404
        event = db_session.query(SecurityEvent).filter_by(event_type="CROSS_SELLER_ACCESS_DENIED").one()
        assert event.resource == f"/api/customers/{customer_a.id}"
        assert event.action == "GET"

    def test_customer_with_sales_cannot_be_deleted(self, client, seller_a, customer_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a)
        _create_sale(client, headers, customer_a.id, app_row.id)

        assert client.delete(f"/api/customers/{customer_a.id}", headers=headers).status_code == 409


class TestAppRoutes:
    def test_create_and_update_app(self, client, seller_a, auth_headers):
        headers = auth_headers(seller_a)

        response = client.post("/api/apps", headers=headers, json={"name": "Netflix", "price_cents": 3990})
        assert response.status_code == 201
        app_body = response.get_json()["app"]
        assert app_body["codes_available"] == 0

        response = client.put(f"/api/apps/{app_body['id']}", headers=headers, json={"price_cents": 4490})
        assert response.get_json()["app"]["price_cents"] == 4490

    def test_codes_available_not_writable(self, client, seller_a, auth_headers):
        response = client.post("/api/apps", headers=auth_headers(seller_a), json={
            "name": "Netflix", "price_cents": 100, "codes_available": 50,
        })
        assert response.status_code == 400

    def test_negative_price_rejected(self, client, seller_a, auth_headers):
        response = client.post("/api/apps", headers=auth_headers(seller_a), json={"name": "X", "price_cents": -1})
        assert response.status_code == 400

    def test_add_codes_buckets_and_progress(self, client, seller_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a, codes=["OLD-1"])

        response = client.post(f"/api/apps/{app_row.id}/codes", headers=headers, json={
            "codes": ["N1", "N2", "N1", "OLD-1", "N3"],
        })

        body = response.get_json()
        assert response.status_code == 201
        assert body["valid_codes"] == ["N1", "N2", "N3"]
        assert body["duplicates"] == ["N1"]
        assert body["system_duplicates"] == ["OLD-1"]
        assert [c["code"] for c in body["codes"]] == ["N1", "N2", "N3"]
        assert body["app"]["codes_available"] == 4
        assert body["progress"] == [66, 100]

    def test_add_codes_from_text(self, client, seller_a, make_app, auth_headers):
        app_row = make_app(seller_a)
        response = client.post(f"/api/apps/{app_row.id}/codes", headers=auth_headers(seller_a), json={
            "text": "T1\nT2\n\nT3",
        })
        assert response.get_json()["valid_codes"] == ["T1", "T2", "T3"]

    def test_add_codes_requires_payload(self, client, seller_a, make_app, auth_headers):
        app_row = make_app(seller_a)
        response = client.post(f"/api/apps/{app_row.id}/codes", headers=auth_headers(seller_a), json={})
        assert response.status_code == 400

    def test_list_codes_used_filter(self, client, seller_a, customer_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a, codes=["U1", "U2"])
        sale_id = _create_sale(client, headers, customer_a.id, app_row.id).get_json()["sale"]["id"]
        client.post(f"/api/sales/{sale_id}/confirm", headers=headers)

        used = client.get(f"/api/apps/{app_row.id}/codes?used=true", headers=headers).get_json()["items"]
        unused = client.get("/api/codes?used=false", headers=headers).get_json()["items"]

        assert [c["code"] for c in used] == ["U1"]
        assert [c["code"] for c in unused] == ["U2"]
        assert client.get("/api/codes?used=maybe", headers=headers).status_code == 400

    def test_delete_app_referenced_by_sale(self, client, seller_a, customer_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a, codes=["D1"])
        _create_sale(client, headers, customer_a.id, app_row.id)

        assert client.delete(f"/api/apps/{app_row.id}", headers=headers).status_code == 409

    def test_delete_unsold_app_removes_codes(self, client, seller_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a, codes=["D1", "D2"])

        assert client.delete(f"/api/apps/{app_row.id}", headers=headers).status_code == 200
        assert client.get("/api/codes", headers=headers).get_json()["items"] == []


class TestSaleRoutes:
    def test_sale_lifecycle(self, client, seller_a, customer_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a, name="Game Pass", codes=["GP-1", "GP-2"])

        response = _create_sale(client, headers, customer_a.id, app_row.id, quantity=2)
        assert response.status_code == 201
        sale = response.get_json()["sale"]
        assert sale["status"] == "pending"
        assert sale["total_price_cents"] == 2000
        assert sale["items"][0]["line_total_cents"] == 2000

        response = client.post(f"/api/sales/{sale['id']}/confirm", headers=headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["sale"]["status"] == "confirmed"
        assert sorted(body["sale"]["items"][0]["codes"]) == ["GP-1", "GP-2"]
        assert [(a["id"], a["codes_available"]) for a in body["apps"]] == [(app_row.id, 0)]

        response = client.post(f"/api/sales/{sale['id']}/confirm", headers=headers)
        assert response.status_code == 409

        response = client.post(f"/api/sales/{sale['id']}/resend-codes", headers=headers)
        assert response.status_code == 200
        assert response.get_json()["delivered"] is True

    def test_confirm_insufficient_inventory(self, client, seller_a, customer_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a, codes=["GP-1", "GP-2"])
        sale_id = _create_sale(client, headers, customer_a.id, app_row.id, quantity=3).get_json()["sale"]["id"]

        response = client.post(f"/api/sales/{sale_id}/confirm", headers=headers)

        assert response.status_code == 409
        assert response.get_json()["details"] == {"app_id": app_row.id, "requested": 3, "available": 2}
        sale = client.get(f"/api/sales/{sale_id}", headers=headers).get_json()["sale"]
        assert sale["status"] == "pending"

    def test_resend_without_codes(self, client, seller_a, customer_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a)
        sale_id = _create_sale(client, headers, customer_a.id, app_row.id).get_json()["sale"]["id"]

        assert client.post(f"/api/sales/{sale_id}/resend-codes", headers=headers).status_code == 409

    def test_invalid_items(self, client, seller_a, customer_a, auth_headers):
        response = client.post("/api/sales", headers=auth_headers(seller_a), json={
            "customer_id": customer_a.id, "items": [{"app_id": 1, "quantity": 1.5, "price_cents": 100}],
        })
        assert response.status_code == 400

    def test_customer_id_required(self, client, seller_a, auth_headers):
        response = client.post("/api/sales", headers=auth_headers(seller_a), json={"items": []})
        assert response.status_code == 400

    def test_cross_seller_sale_access(self, client, seller_a, seller_b, customer_a, make_app, auth_headers):
        app_row = make_app(seller_a, codes=["X1"])
        sale_id = _create_sale(client, auth_headers(seller_a), customer_a.id, app_row.id).get_json()["sale"]["id"]
        headers_b = auth_headers(seller_b)

        assert client.get(f"/api/sales/{sale_id}", headers=headers_b).status_code == 404
        assert client.post(f"/api/sales/{sale_id}/confirm", headers=headers_b).status_code == 404
        assert client.delete(f"/api/sales/{sale_id}", headers=headers_b).status_code == 404
        assert client.get("/api/sales", headers=headers_b).get_json()["items"] == []

    def test_update_and_cancel(self, client, seller_a, customer_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a)
        sale_id = _create_sale(client, headers, customer_a.id, app_row.id).get_json()["sale"]["id"]

        response = client.put(f"/api/sales/{sale_id}", headers=headers, json={"total_price_cents": 900})
        assert response.get_json()["sale"]["total_price_cents"] == 900

        response = client.put(f"/api/sales/{sale_id}", headers=headers, json={"status": "confirmed"})
        assert response.status_code == 409

        response = client.post(f"/api/sales/{sale_id}/cancel", headers=headers)
        assert response.get_json()["sale"]["status"] == "cancelled"

        listed = client.get("/api/sales?status=cancelled", headers=headers).get_json()
        assert listed["count"] == 1

    def test_delete_sale(self, client, seller_a, customer_a, make_app, auth_headers):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a)
        sale_id = _create_sale(client, headers, customer_a.id, app_row.id).get_json()["sale"]["id"]

        response = client.delete(f"/api/sales/{sale_id}", headers=headers)

        assert response.get_json() == {"deleted": True, "id": sale_id}
        assert client.get(f"/api/sales/{sale_id}", headers=headers).status_code == 404

    def test_pix_charge(self, client, seller_a, customer_a, make_app, auth_headers, mercadopago):
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a)
        sale_id = _create_sale(client, headers, customer_a.id, app_row.id).get_json()["sale"]["id"]

        response = client.post(f"/api/sales/{sale_id}/pix", headers=headers)

        assert response.status_code == 201
        body = response.get_json()
        assert body["payment"]["payment_id"] == "123456789"
        assert body["sale"]["payment_status"] == "pending"

    def test_pix_provider_failure_is_502(self, client, seller_a, customer_a, make_app, auth_headers, mercadopago):
        mercadopago.status_code = 401
        mercadopago.body = {"message": "invalid access token"}
        headers = auth_headers(seller_a)
        app_row = make_app(seller_a)
        sale_id = _create_sale(client, headers, customer_a.id, app_row.id).get_json()["sale"]["id"]

        response = client.post(f"/api/sales/{sale_id}/pix", headers=headers)

        assert response.status_code == 502
        assert response.get_json()["error"] == "invalid access token"


def _sign(secret, data_id, request_id, ts="1704908010"):
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    digest = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"ts={ts},v1={digest}"


class TestWebhookRoute:
    def _sale_with_payment(self, client, headers, customer, app_row, payment_id):
        return client.post("/api/sales", headers=headers, json={
            "customer_id": customer.id,
            "items": [{"app_id": app_row.id, "quantity": 1, "price_cents": 100}],
            "payment_id": payment_id,
        }).get_json()["sale"]["id"]

    def test_approved_webhook_confirms_sale(self, client, db_session, seller_a, customer_a, make_app, auth_headers, mercadopago):
        app_row = make_app(seller_a, codes=["W1"])
        sale_id = self._sale_with_payment(client, auth_headers(seller_a), customer_a, app_row, "mp-1")
        mercadopago.status_code = 200
        mercadopago.body = {"id": "mp-1", "status": "approved"}

        response = client.post(f"/api/payments/webhook/{seller_a.id}", json={
            "action": "payment.updated", "data": {"id": "mp-1", "status": "approved"},
        })

        assert response.status_code == 200
        assert response.get_json() == {"updated": 1}
        db_session.expire_all()
        assert db_session.get(Sale, sale_id).status == "confirmed"
        assert db_session.get(App, app_row.id).codes_available == 0

    def test_unpaid_approval_does_not_release_codes(self, client, db_session, seller_a, customer_a, make_app, auth_headers, mercadopago):
        app_row = make_app(seller_a, codes=["W1"])
        sale_id = self._sale_with_payment(client, auth_headers(seller_a), customer_a, app_row, "mp-2")
        mercadopago.status_code = 200
        mercadopago.body = {"id": "mp-2", "status": "pending"}

        response = client.post(f"/api/payments/webhook/{seller_a.id}", json={
            "action": "payment.updated", "data": {"id": "mp-2", "status": "approved"},
        })

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(Sale, sale_id).status == "pending"
        assert db_session.get(App, app_row.id).codes_available == 1

    def test_provider_lookup_failure_is_502(self, client, db_session, seller_a, customer_a, make_app, auth_headers, mercadopago):
        app_row = make_app(seller_a, codes=["W1"])
        sale_id = self._sale_with_payment(client, auth_headers(seller_a), customer_a, app_row, "mp-3")
        mercadopago.status_code = 500
        mercadopago.body = {"message": "internal error"}

        response = client.post(f"/api/payments/webhook/{seller_a.id}", json={
            "action": "payment.updated", "data": {"id": "mp-3", "status": "approved"},
        })

        assert response.status_code == 502
        db_session.expire_all()
        assert db_session.get(Sale, sale_id).status == "pending"

    def test_signed_webhook_accepted(self, client, db_session, seller_a, customer_a, make_app, auth_headers, mercadopago):
        seller_a.mercadopago_webhook = "whsec-a"
        db_session.commit()
        app_row = make_app(seller_a, codes=["W1"])
        sale_id = self._sale_with_payment(client, auth_headers(seller_a), customer_a, app_row, "mp-4")
        mercadopago.status_code = 200
        mercadopago.body = {"id": "mp-4", "status": "approved"}

        response = client.post(
            f"/api/payments/webhook/{seller_a.id}?data.id=mp-4",
            json={"action": "payment.updated", "data": {"id": "mp-4", "status": "approved"}},
            headers={"x-signature": _sign("whsec-a", "mp-4", "req-4"), "x-request-id": "req-4"},
        )

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(Sale, sale_id).status == "confirmed"

    def test_bad_signature_rejected(self, client, db_session, seller_a, customer_a, make_app, auth_headers, mercadopago):
        seller_a.mercadopago_webhook = "whsec-a"
        db_session.commit()
        app_row = make_app(seller_a, codes=["W1"])
        sale_id = self._sale_with_payment(client, auth_headers(seller_a), customer_a, app_row, "mp-5")
        mercadopago.requests.clear()

        for headers in ({}, {"x-signature": _sign("wrong-secret", "mp-5", "req-5"), "x-request-id": "req-5"}):
            response = client.post(
                f"/api/payments/webhook/{seller_a.id}",
                json={"action": "payment.updated", "data": {"id": "mp-5", "status": "approved"}},
                headers=headers,
            )
            assert response.status_code == 401

        assert mercadopago.requests == []
        db_session.expire_all()
        assert db_session.get(Sale, sale_id).status == "pending"
        events = db_session.query(SecurityEvent).filter_by(event_type="WEBHOOK_SIGNATURE_INVALID").all()
        assert len(events) == 2
        assert events[0].seller_id == seller_a.id

    def test_unknown_seller(self, client, db_session):
        response = client.post("/api/payments/webhook/9999", json={
            "action": "payment.updated", "data": {"id": "1", "status": "approved"},
        })
        assert response.status_code == 404

    def test_malformed_payload_acknowledged(self, client, seller_a):
        response = client.post(f"/api/payments/webhook/{seller_a.id}", data="not json")
        assert response.status_code == 200
        assert response.get_json() == {"updated": 0}


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["database"] == "ok"

    def test_cors_for_allowed_origin(self, client, db_session):
        response = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

        response = client.get("/api/health", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in response.headers
