"""
End-to-end tests over HTTP through the FastAPI app.
"""

import json
import time
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocketDisconnect

from restaurant_orders.core.security import CredentialVerifier
from restaurant_orders.services.realtime import location_channel, user_channel


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def burger_payload(catalog, quantity=2):
    return {
        "location_id": catalog.main,
        "items": [
            {
                "menu_item_id": catalog.burger,
                "quantity": quantity,
                "customizations": [{"customization_id": catalog.cheese, "quantity": 1}],
            }
        ],
    }


# ============================================================================
# Root & health
# ============================================================================


class TestRoot:

    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["health"] == "/health"

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "operational"
        assert body["database"] == "healthy"
        assert body["realtime"] == "local: healthy"
        assert body["connections"] == 0


# ============================================================================
# Auth
# ============================================================================


class TestAuth:

    async def test_register_login_profile(self, client):
        response = await client.post(
            "/api/auth/register",
            json={"email": "New@Example.com", "password": "secret123", "first_name": "New"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["user"]["email"] == "new@example.com"
        assert body["user"]["role"] == "CUSTOMER"
        assert body["user"]["loyalty_points"] == 0

        login = await client.post(
            "/api/auth/login", json={"email": "new@example.com", "password": "secret123"}
        )
        assert login.status_code == 200

        profile = await client.get("/api/auth/profile", headers=bearer(login.json()["token"]))
        assert profile.status_code == 200
        assert profile.json()["user"]["first_name"] == "New"

    async def test_duplicate_email(self, client):
        payload = {"email": "customer@example.com", "password": "secret123"}

        response = await client.post("/api/auth/register", json=payload)

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    async def test_staff_registration_requires_admin(self, client, users, token_for):
        payload = {"email": "cook@example.com", "password": "secret123", "role": "KITCHEN"}

        anonymous = await client.post("/api/auth/register", json=payload)
        assert anonymous.status_code == 403

        as_customer = await client.post(
            "/api/auth/register", json=payload, headers=bearer(token_for(users.customer))
        )
        assert as_customer.status_code == 403

        as_admin = await client.post(
            "/api/auth/register", json=payload, headers=bearer(token_for(users.admin))
        )
        assert as_admin.status_code == 201
        assert as_admin.json()["user"]["role"] == "KITCHEN"

    async def test_wrong_password(self, client):
        response = await client.post(
            "/api/auth/login", json={"email": "customer@example.com", "password": "nope"}
        )

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "unauthenticated",
            "code": "InvalidCredentials",
            "detail": "Invalid email or password",
        }

    async def test_missing_and_invalid_tokens(self, client):
        missing = await client.get("/api/auth/profile")
        invalid = await client.get("/api/auth/profile", headers=bearer("garbage"))

        assert missing.status_code == 401
        assert invalid.status_code == 401

    async def test_role_change_is_admin_only(self, client, users, token_for):
        path = f"/api/auth/users/{users.waiter.user_id}/role"

        denied = await client.patch(path, json={"role": "KITCHEN"}, headers=bearer(token_for(users.kitchen)))
        assert denied.status_code == 403

        allowed = await client.patch(path, json={"role": "KITCHEN"}, headers=bearer(token_for(users.admin)))
        assert allowed.status_code == 200
        assert allowed.json()["user"]["role"] == "KITCHEN"

        missing = await client.patch(
            "/api/auth/users/9999/role", json={"role": "KITCHEN"}, headers=bearer(token_for(users.admin))
        )
        assert missing.status_code == 404


# ============================================================================
# Orders
# ============================================================================


class TestOrders:

    async def test_full_lifecycle(self, client, catalog, users, token_for):
        customer = bearer(token_for(users.customer))

        created = await client.post("/api/orders", json=burger_payload(catalog), headers=customer)
        assert created.status_code == 201
        order = created.json()["order"]
        assert order["status"] == "PENDING"
        assert Decimal(order["total"]) == Decimal("24.00")
        assert order["lines"][0]["customizations"][0]["customization"]["name"] == "Cheese"

        fetched = await client.get(f"/api/orders/{order['id']}", headers=customer)
        assert fetched.status_code == 200
        assert fetched.json()["order"]["id"] == order["id"]

        cancelled = await client.patch(f"/api/orders/{order['id']}/cancel", headers=customer)
        assert cancelled.status_code == 200
        assert cancelled.json()["order"]["status"] == "CANCELLED"

        again = await client.patch(f"/api/orders/{order['id']}/cancel", headers=customer)
        assert again.status_code == 409
        assert again.json()["error"] == "conflict"

    async def test_location_mismatch_creates_nothing(self, client, catalog, users, token_for):
        payload = burger_payload(catalog)
        payload["location_id"] = catalog.harbor
        customer = bearer(token_for(users.customer))

        response = await client.post("/api/orders", json=payload, headers=customer)

        assert response.status_code == 400
        assert response.json()["error"] == "validation"
        listing = await client.get("/api/orders", headers=bearer(token_for(users.admin)))
        assert listing.json()["pagination"]["total"] == 0

    async def test_client_prices_are_ignored(self, client, catalog, users, token_for):
        payload = burger_payload(catalog, quantity=1)
        payload["items"][0]["price"] = "0.01"
        payload["total"] = "0.01"

        response = await client.post("/api/orders", json=payload, headers=bearer(token_for(users.customer)))

        assert response.status_code == 201
        assert Decimal(response.json()["order"]["total"]) == Decimal("12.00")

    async def test_malformed_cart(self, client, catalog, users, token_for):
        customer = bearer(token_for(users.customer))

        empty = await client.post(
            "/api/orders", json={"location_id": catalog.main, "items": []}, headers=customer
        )
        zero = await client.post("/api/orders", json=burger_payload(catalog, quantity=0), headers=customer)

        for response in (empty, zero):
            assert response.status_code == 400
            assert response.json()["error"] == "validation"
            assert response.json()["code"] == "ValidationFailure"

    async def test_unknown_item_and_location(self, client, catalog, users, token_for):
        customer = bearer(token_for(users.customer))
        unknown_item = {"location_id": catalog.main, "items": [{"menu_item_id": 9999, "quantity": 1}]}
        unknown_location = burger_payload(catalog)
        unknown_location["location_id"] = 9999

        for payload, code in ((unknown_item, "ItemNotFound"), (unknown_location, "LocationNotFound")):
            response = await client.post("/api/orders", json=payload, headers=customer)
            assert response.status_code == 404
            assert response.json()["error"] == "not_found"
            assert response.json()["code"] == code

    async def test_orders_require_authentication(self, client, catalog):
        response = await client.post("/api/orders", json=burger_payload(catalog))
        assert response.status_code == 401

    async def test_status_updates_are_role_gated(self, client, catalog, users, token_for):
        created = await client.post(
            "/api/orders", json=burger_payload(catalog), headers=bearer(token_for(users.customer))
        )
        order_id = created.json()["order"]["id"]
        path = f"/api/orders/{order_id}/status"

        as_customer = await client.patch(
            path, json={"status": "COMPLETED"}, headers=bearer(token_for(users.customer))
        )
        assert as_customer.status_code == 403
        assert as_customer.json()["error"] == "forbidden"

        as_kitchen = await client.patch(
            path, json={"status": "IN_PROGRESS"}, headers=bearer(token_for(users.kitchen))
        )
        assert as_kitchen.status_code == 200
        assert as_kitchen.json()["order"]["status"] == "IN_PROGRESS"

        too_late = await client.patch(
            f"/api/orders/{order_id}/cancel", headers=bearer(token_for(users.customer))
        )
        assert too_late.status_code == 409

    async def test_invalid_status_value(self, client, catalog, users, token_for):
        response = await client.patch(
            "/api/orders/1/status", json={"status": "SHIPPED"}, headers=bearer(token_for(users.kitchen))
        )
        assert response.status_code == 400

    async def test_customers_cannot_see_other_orders(self, client, catalog, users, token_for):
        created = await client.post(
            "/api/orders", json=burger_payload(catalog), headers=bearer(token_for(users.customer))
        )
        order_id = created.json()["order"]["id"]
        other = bearer(token_for(users.other_customer))

        fetched = await client.get(f"/api/orders/{order_id}", headers=other)
        listing = await client.get("/api/orders", headers=other)
        cancel = await client.patch(f"/api/orders/{order_id}/cancel", headers=other)

        assert fetched.status_code == 404
        assert listing.json()["orders"] == []
        assert cancel.status_code == 403

    async def test_listing_pagination(self, client, catalog, users, token_for):
        customer = bearer(token_for(users.customer))
        for _ in range(3):
            await client.post("/api/orders", json=burger_payload(catalog, quantity=1), headers=customer)

        response = await client.get("/api/orders?page=2&limit=2", headers=customer)

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
        assert len(body["orders"]) == 1

    async def test_creation_reaches_live_subscribers(self, client, catalog, users, token_for, distributor, drain):
        kitchen = distributor.connect(users.kitchen)
        distributor.join(kitchen, f"location_{catalog.main}")
        owner = distributor.connect(users.customer)

        response = await client.post(
            "/api/orders", json=burger_payload(catalog), headers=bearer(token_for(users.customer))
        )

        order_id = response.json()["order"]["id"]
        assert [(m["event"], m["data"]["id"]) for m in drain(kitchen)] == [("newOrder", order_id)]
        assert [(m["event"], m["data"]["id"]) for m in drain(owner)] == [("orderCreated", order_id)]

    async def test_store_outage_is_reported_as_unavailable(self, client, catalog, users, token_for, monkeypatch):
        created = await client.post(
            "/api/orders", json=burger_payload(catalog), headers=bearer(token_for(users.customer))
        )
        order_id = created.json()["order"]["id"]

        def unreachable(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(AsyncSession, "execute", unreachable)
        response = await client.patch(
            f"/api/orders/{order_id}/status",
            json={"status": "IN_PROGRESS"},
            headers=bearer(token_for(users.kitchen)),
        )

        assert response.status_code == 503
        assert response.json()["error"] == "server_fault"
        assert response.json()["code"] == "PersistenceFailure"


# ============================================================================
# Realtime socket
# ============================================================================


def wait_until(predicate):
    for _ in range(200):
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestRealtimeSocket:

    @pytest.mark.parametrize("kind", ["missing", "garbage", "expired"])
    def test_rejects_bad_tokens_with_policy_violation(self, socket_app, verifier, kind):
        tokens = {
            "missing": None,
            "garbage": "not.a.token",
            "expired": CredentialVerifier(verifier.secret, expires_in=timedelta(seconds=-5)).issue(
                socket_app.customer.user_id, socket_app.customer.email, socket_app.customer.role
            ),
        }
        path = "/ws" if tokens[kind] is None else f"/ws?token={tokens[kind]}"

        with pytest.raises(WebSocketDisconnect) as rejected:
            with socket_app.http.websocket_connect(path):
                pass

        assert rejected.value.code == 1008
        assert socket_app.distributor.connection_count == 0

    def test_bearer_header_and_personal_events(self, socket_app):
        token = socket_app.token_for(socket_app.customer)
        headers = {"Authorization": f"Bearer {token}"}

        with socket_app.http.websocket_connect("/ws", headers=headers) as ws:
            assert socket_app.distributor.members(user_channel(socket_app.customer.user_id))

            created = socket_app.http.post(
                "/api/orders",
                json={"location_id": socket_app.location, "items": [{"menu_item_id": socket_app.burger, "quantity": 1}]},
                headers=headers,
            )
            pushed = ws.receive_json()

        assert created.status_code == 201
        assert pushed["event"] == "orderCreated"
        assert pushed["data"]["id"] == created.json()["order"]["id"]
        assert Decimal(pushed["data"]["total"]) == Decimal("10.00")

    def test_status_update_over_socket_is_persisted(self, socket_app):
        customer = {"Authorization": f"Bearer {socket_app.token_for(socket_app.customer)}"}
        created = socket_app.http.post(
            "/api/orders",
            json={"location_id": socket_app.location, "items": [{"menu_item_id": socket_app.burger, "quantity": 1}]},
            headers=customer,
        )
        order_id = created.json()["order"]["id"]

        with socket_app.http.websocket_connect(f"/ws?token={socket_app.token_for(socket_app.kitchen)}") as ws:
            ws.send_json({"action": "joinLocation", "location_id": socket_app.location})
            ws.send_json({"action": "updateOrderStatus", "order_id": order_id, "status": "IN_PROGRESS"})
            pushed = ws.receive_json()

        assert pushed["event"] == "orderStatusUpdated"
        assert pushed["data"]["status"] == "IN_PROGRESS"
        fetched = socket_app.http.get(f"/api/orders/{order_id}", headers=customer)
        assert fetched.json()["order"]["status"] == "IN_PROGRESS"

    def test_customer_status_update_is_refused(self, socket_app):
        with socket_app.http.websocket_connect(f"/ws?token={socket_app.token_for(socket_app.customer)}") as ws:
            ws.send_json({"action": "updateOrderStatus", "order_id": 1, "status": "COMPLETED"})
            pushed = ws.receive_json()

        assert pushed == {"event": "error", "data": {"error": "forbidden", "detail": "Insufficient permissions"}}

    def test_binary_frames_are_dispatched(self, socket_app):
        with socket_app.http.websocket_connect(f"/ws?token={socket_app.token_for(socket_app.kitchen)}") as ws:
            ws.send_bytes(b"\xff\xfe{")
            malformed = ws.receive_json()
            ws.send_bytes(json.dumps({"action": "joinLocation", "location_id": socket_app.location}).encode())
            ws.send_text("not json")
            ws.receive_json()

            assert malformed["data"]["error"] == "validation"
            assert socket_app.distributor.members(location_channel(socket_app.location))

    def test_disconnect_tears_down_memberships(self, socket_app):
        channel = location_channel(socket_app.location)

        with socket_app.http.websocket_connect(f"/ws?token={socket_app.token_for(socket_app.kitchen)}") as ws:
            ws.send_json({"action": "joinLocation", "location_id": socket_app.location})
            ws.send_text("not json")
            ws.receive_json()
            assert len(socket_app.distributor.members(channel)) == 1

        assert wait_until(lambda: socket_app.distributor.connection_count == 0)
        assert socket_app.distributor.members(channel) == set()
        assert socket_app.distributor.members(user_channel(socket_app.kitchen.user_id)) == set()
