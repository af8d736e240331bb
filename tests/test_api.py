import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from stockroom.errors import EmailDeliveryError, ValidationError
from stockroom.models.user import PasswordResetCode
from stockroom.services import auth_service, email_service

API = "/api/v1"


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _register_product(client, name="Widget", **extra):
    body = {"name": name, "category": "tools", "initial_quantity": 10, "initial_unit_cost": 5.0, **extra}
    resp = client.post(f"{API}/products", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuth:
    def test_requires_login(self, anon_client):
        assert anon_client.get(f"{API}/products").status_code == 401

    def test_register_login_and_me(self, anon_client):
        resp = anon_client.post(f"{API}/auth/register", json={"email": "A@Example.com", "password": "secret123"})
        assert resp.status_code == 201
        assert resp.json()["user"]["email"] == "a@example.com"
        anon_client.post(f"{API}/auth/logout")
        anon_client.cookies.clear()

        assert anon_client.post(f"{API}/auth/login", json={"email": "a@example.com", "password": "nope"}).status_code == 401
        resp = anon_client.post(f"{API}/auth/login", json={"email": "a@example.com", "password": "secret123"})
        assert resp.status_code == 200
        token = resp.json()["token"]

        anon_client.cookies.clear()
        me = anon_client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "a@example.com"

    def test_duplicate_account(self, client):
        resp = client.post(f"{API}/auth/register", json={"email": "shop@example.com", "password": "secret123"})
        assert resp.status_code == 409

    def test_short_password(self, anon_client):
        resp = anon_client.post(f"{API}/auth/register", json={"email": "b@example.com", "password": "123"})
        assert resp.status_code == 422

    def test_change_password(self, client):
        assert client.post(f"{API}/auth/change-password", json={"password": "abc"}).status_code == 422
        assert client.post(f"{API}/auth/change-password", json={"password": "newsecret"}).status_code == 200
        client.cookies.clear()
        creds = {"email": "shop@example.com", "password": "secret123"}
        assert client.post(f"{API}/auth/login", json=creds).status_code == 401
        creds["password"] = "newsecret"
        assert client.post(f"{API}/auth/login", json=creds).status_code == 200


class TestPasswordReset:
    URL = f"{API}/auth/password-reset/code"

    @pytest.fixture
    def sent(self, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service, "send_reset_code", lambda email, code, ttl=None: sent.append((email, code)))
        return sent

    def test_wrong_method(self, anon_client):
        resp = anon_client.get(self.URL)
        assert resp.status_code == 405
        assert "error" in resp.json()

    def test_missing_email(self, anon_client, sent):
        resp = anon_client.post(self.URL, json={})
        assert resp.status_code == 400
        assert "error" in resp.json()
        assert sent == []

    @pytest.mark.parametrize("email", [12345, ["shop@example.com"], "   "])
    def test_email_must_be_a_string(self, anon_client, sent, email):
        resp = anon_client.post(self.URL, json={"email": email})
        assert resp.status_code == 400
        assert "error" in resp.json()
        assert sent == []

    def test_non_string_email_rejected_by_service(self, db, sent):
        with pytest.raises(ValidationError):
            auth_service.issue_reset_code(db, 12345)

    def test_delivery_runs_off_the_event_loop(self, anon_client, monkeypatch):
        loop_running = []

        def record(email, code, ttl=None):
            try:
                asyncio.get_running_loop()
                loop_running.append(True)
            except RuntimeError:
                loop_running.append(False)

        monkeypatch.setattr(email_service, "send_reset_code", record)
        assert anon_client.post(self.URL, json={"email": "shop@example.com"}).status_code == 200
        assert loop_running == [False]

    def test_code_is_stored_and_sent(self, anon_client, db, sent):
        before = _utcnow()
        resp = anon_client.post(self.URL, json={"email": "Shop@example.com"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        email, code = sent[0]
        assert email == "shop@example.com"
        assert len(code) == 6 and 100000 <= int(code) <= 999999
        entry = db.get(PasswordResetCode, "shop@example.com")
        assert entry.code == code
        assert before + timedelta(minutes=4) < entry.expires_at <= _utcnow() + timedelta(minutes=5)

    def test_new_request_replaces_pending_code(self, anon_client, db, sent):
        anon_client.post(self.URL, json={"email": "shop@example.com"})
        anon_client.post(self.URL, json={"email": "shop@example.com"})
        db.expire_all()
        assert db.query(PasswordResetCode).count() == 1
        assert db.get(PasswordResetCode, "shop@example.com").code == sent[-1][1]

    def test_delivery_failure(self, anon_client, monkeypatch):
        def fail(email, code, ttl=None):
            raise EmailDeliveryError("smtp down")

        monkeypatch.setattr(email_service, "send_reset_code", fail)
        resp = anon_client.post(self.URL, json={"email": "shop@example.com"})
        assert resp.status_code == 500
        assert "error" in resp.json()

    def test_unconfigured_delivery_fails(self, anon_client):
        resp = anon_client.post(self.URL, json={"email": "shop@example.com"})
        assert resp.status_code == 500

    def test_confirm_sets_new_password(self, client, sent):
        client.post(self.URL, json={"email": "shop@example.com"})
        code = sent[0][1]
        bad = client.post(
            f"{API}/auth/password-reset/confirm",
            json={"email": "shop@example.com", "code": "000000", "new_password": "newsecret"},
        )
        assert bad.status_code == 422
        ok = client.post(
            f"{API}/auth/password-reset/confirm",
            json={"email": "shop@example.com", "code": code, "new_password": "newsecret"},
        )
        assert ok.status_code == 200
        login = client.post(f"{API}/auth/login", json={"email": "shop@example.com", "password": "newsecret"})
        assert login.status_code == 200
        # codes are single use
        again = client.post(
            f"{API}/auth/password-reset/confirm",
            json={"email": "shop@example.com", "code": code, "new_password": "other123"},
        )
        assert again.status_code == 422

    def test_expired_code(self, client, db, sent):
        client.post(self.URL, json={"email": "shop@example.com"})
        entry = db.get(PasswordResetCode, "shop@example.com")
        entry.expires_at = _utcnow() - timedelta(seconds=1)
        db.commit()
        resp = client.post(
            f"{API}/auth/password-reset/confirm",
            json={"email": "shop@example.com", "code": sent[0][1], "new_password": "newsecret"},
        )
        assert resp.status_code == 422
        assert "expired" in resp.json()["detail"]


class TestProductsApi:
    def test_register_and_read(self, client):
        product = _register_product(client, barcode="789")
        assert product["quantity"] == 10
        assert product["cost"] == 5.0
        assert product["category"] == "Tools"
        assert product["stock_level"] == "OK"

        assert client.get(f"{API}/products/{product['id']}").json()["name"] == "Widget"
        assert client.get(f"{API}/products/barcode/789").json()["id"] == product["id"]
        assert client.get(f"{API}/products/barcode/000").status_code == 404
        assert client.get(f"{API}/products/missing").status_code == 404

    def test_duplicate_name(self, client):
        _register_product(client, "Widget")
        resp = client.post(f"{API}/products", json={"name": "widget"})
        assert resp.status_code == 409
        assert len(client.get(f"{API}/products").json()) == 1

    def test_negative_initial_quantity_rejected(self, client):
        resp = client.post(f"{API}/products", json={"name": "Widget", "initial_quantity": -1})
        assert resp.status_code == 422

    def test_patch_ignores_ledger_fields(self, client):
        product = _register_product(client)
        resp = client.patch(f"{API}/products/{product['id']}", json={"min_stock": 12, "quantity": 999, "cost": 0})
        assert resp.status_code == 200
        body = resp.json()
        assert body["min_stock"] == 12
        assert body["quantity"] == 10
        assert body["cost"] == 5.0
        assert body["stock_level"] == "LOW_STOCK"

    def test_assign_barcode(self, client):
        product = _register_product(client)
        resp = client.put(f"{API}/products/{product['id']}/barcode", json={"barcode": "4006381333931"})
        assert resp.json()["barcode"] == "4006381333931"

    def test_alerts(self, client):
        _register_product(client, "Full")
        low = _register_product(client, "Low")
        client.patch(f"{API}/products/{low['id']}", json={"min_stock": 10})
        client.post(f"{API}/products", json={"name": "Empty"})
        alerts = client.get(f"{API}/products/alerts").json()
        assert [p["name"] for p in alerts["out_of_stock"]] == ["Empty"]
        assert [p["name"] for p in alerts["low_stock"]] == ["Low"]

    def test_delete_policy(self, client):
        product = _register_product(client)
        assert client.delete(f"{API}/products/{product['id']}").status_code == 409
        resp = client.delete(f"{API}/products/{product['id']}", params={"purge_history": True})
        assert resp.json() == {"id": product["id"], "movements_deleted": 1}
        assert client.get(f"{API}/products/{product['id']}").status_code == 404

    def test_products_are_private(self, client):
        product = _register_product(client)
        client.cookies.clear()
        client.post(f"{API}/auth/register", json={"email": "other@example.com", "password": "secret123"})
        assert client.get(f"{API}/products/{product['id']}").status_code == 404
        assert client.get(f"{API}/products").json() == []


class TestMovementsApi:
    def test_add_then_oversized_remove(self, client):
        product = _register_product(client)
        resp = client.post(
            f"{API}/movements/add",
            json={"product_id": product["id"], "quantity": 5, "unit_cost": 8.0, "date": "2024-01-10"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["product"]["quantity"] == 15
        assert body["product"]["cost"] == pytest.approx(6.0)
        assert body["product"]["unit_price"] == 8.0
        assert body["movement"]["type"] == "add"
        assert body["movement"]["date"] == "2024-01-10"

        resp = client.post(
            f"{API}/movements/remove",
            json={"product_id": product["id"], "quantity": 20, "date": "2024-01-11"},
        )
        assert resp.status_code == 400
        assert "at most 15" in resp.json()["detail"]

        current = client.get(f"{API}/products/{product['id']}").json()
        assert current["quantity"] == 15
        assert current["cost"] == pytest.approx(6.0)

    def test_remove(self, client):
        product = _register_product(client)
        resp = client.post(
            f"{API}/movements/remove",
            json={"product_id": product["id"], "quantity": 4, "date": "2024-01-11"},
        )
        assert resp.status_code == 201
        assert resp.json()["product"]["quantity"] == 6
        assert resp.json()["movement"]["cost"] == 5.0

    @pytest.mark.parametrize(
        "body",
        [
            {"quantity": 0, "unit_cost": 1.0, "date": "2024-01-10"},
            {"quantity": 1, "unit_cost": -1.0, "date": "2024-01-10"},
            {"quantity": 1, "unit_cost": 1.0, "date": "2024-13-10"},
        ],
    )
    def test_invalid_add(self, client, body):
        product = _register_product(client)
        resp = client.post(f"{API}/movements/add", json={"product_id": product["id"], **body})
        assert resp.status_code == 422

    def test_unknown_product(self, client):
        resp = client.post(
            f"{API}/movements/add",
            json={"product_id": "missing", "quantity": 1, "unit_cost": 1.0, "date": "2024-01-10"},
        )
        assert resp.status_code == 404

    def test_listing_and_history(self, client):
        product = _register_product(client)
        for day in ("2024-01-05", "2024-02-05"):
            client.post(
                f"{API}/movements/add",
                json={"product_id": product["id"], "quantity": 1, "unit_cost": 2.0, "date": day},
            )
        january = client.get(f"{API}/movements", params={"year": 2024, "month": 1}).json()
        assert [m["date"] for m in january] == ["2024-01-05"]
        assert len(client.get(f"{API}/movements").json()) == 3
        assert client.get(f"{API}/movements", params={"month": 1}).status_code == 422
        year_2024 = client.get(f"{API}/movements", params={"year": 2024}).json()
        assert [m["date"] for m in year_2024] == ["2024-01-05", "2024-02-05"]
        for year in (0, 10000):
            assert client.get(f"{API}/movements", params={"year": year}).status_code == 422
            assert client.get(f"{API}/movements", params={"year": year, "month": 1}).status_code == 422

        history = client.get(f"{API}/products/{product['id']}/movements").json()
        assert [m["quantity"] for m in history] == [10, 1, 1]
        check = client.get(f"{API}/products/{product['id']}/reconcile").json()
        assert check["consistent"] is True
        assert check["replayed_quantity"] == 12


class TestCategoriesApi:
    def test_lifecycle(self, client):
        created = client.post(f"{API}/categories", json={"name": "tools"})
        assert created.status_code == 201
        assert created.json()["name"] == "Tools"
        assert client.post(f"{API}/categories", json={"name": "TOOLS"}).status_code == 409

        product = _register_product(client)
        category_id = created.json()["id"]
        assert client.delete(f"{API}/categories/{category_id}").status_code == 409

        client.patch(f"{API}/products/{product['id']}", json={"category": "Other"})
        assert client.delete(f"{API}/categories/{category_id}").status_code == 204
        assert client.get(f"{API}/categories").json() == []


class TestReportsApi:
    def test_monthly_and_inventory(self, client):
        product = _register_product(client)
        client.post(
            f"{API}/movements/add",
            json={"product_id": product["id"], "quantity": 5, "unit_cost": 8.0, "date": "2024-01-10"},
        )
        report = client.get(f"{API}/reports/monthly", params={"year": 2024, "month": 1}).json()
        assert report["summary"]["added_quantity"] == 5
        assert len(report["daily"]) == 31
        assert client.get(f"{API}/reports/monthly", params={"year": 2024, "month": 13}).status_code == 422

        inventory = client.get(f"{API}/reports/inventory").json()
        assert inventory["total_units_in_stock"] == 15
        assert inventory["total_inventory_value"] == pytest.approx(90.0)

    def test_health(self, anon_client):
        assert anon_client.get("/health").json() == {"status": "ok"}
