"""
HTTP tests for the delivery API: real FastAPI app, in-memory repositories.
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.core.auth.token_service import TokenClaims, get_token_service
from src.infra.logistics_api import ExternalApiError
from src.services.delivery_service.admin_service import AdminService
from src.services.delivery_service.app import app
from src.services.delivery_service.dependencies import get_admin_service, get_delivery_service

APP_MODULE = "src.services.delivery_service.app"


@pytest.fixture
def client(delivery_service, admin_repository, token_service, background):
    admin_service = AdminService(admin_repository, token_service)
    app.dependency_overrides[get_delivery_service] = lambda: delivery_service
    app.dependency_overrides[get_admin_service] = lambda: admin_service
    app.dependency_overrides[get_token_service] = lambda: token_service

    with patch.multiple(
        APP_MODULE,
        setup_logging=MagicMock(),
        init_db=AsyncMock(),
        init_redis=AsyncMock(),
        init_event_bus=AsyncMock(),
        get_logistics_api=MagicMock(),
        drain_background_tasks=AsyncMock(),
        close_logistics_api=AsyncMock(),
        close_event_bus=AsyncMock(),
        close_redis=AsyncMock(),
        close_db=AsyncMock(),
    ):
        with TestClient(app) as test_client:
            yield test_client
            test_client.portal.call(background.drain, 5.0)

    app.dependency_overrides.clear()


def auth(token: str) -> dict:
    return {"x-access-token": token}


@pytest.fixture
def driver_token(client) -> str:
    response = client.post("/api/v1/login", json={"driverCode": "D1", "vehicleCode": "V1"})
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture
def synced_token(client, driver_token, mock_gateway, sheet_stop_a, sheet_stop_b) -> str:
    mock_gateway.get_routing_sheet.return_value = [sheet_stop_a, sheet_stop_b]
    response = client.get("/api/v1/routing-sheet", headers=auth(driver_token))
    assert response.status_code == 200
    return driver_token


@pytest.fixture
def admin_token(client, admin_repository) -> str:
    admin_repository.add("root", "secret", claims={"routes": True})
    response = client.post("/api/v1/admin/login", json={"login": "root", "password": "secret"})
    return response.json()["access_token"]


def at(lat: float = 50.45, lon: float = 30.52) -> dict:
    return {"lat": lat, "lon": lon}


class TestLogin:

    def test_anonymous_token_without_codes(self, client, token_service):
        response = client.post("/api/v1/login", json={})

        body = response.json()
        assert body["status"] == "OK"
        assert token_service.verify_token(body["access_token"]).anonymous_user

    def test_driver_login_opens_shift(self, client, token_service, shift_repository):
        response = client.post("/api/v1/login", json={"driverCode": "D1", "vehicleCode": "V1"})

        claims = token_service.verify_token(response.json()["access_token"])
        assert claims.is_driver
        shift = list(shift_repository.shifts.values())[0]
        assert claims.subject_id == str(shift.id)
        assert shift.driver_name == "Ivan"

    def test_unknown_driver(self, client, mock_gateway):
        mock_gateway.get_driver_by_code.return_value = None

        response = client.post("/api/v1/login", json={"driverCode": "D404", "vehicleCode": "V1"})

        assert response.status_code == 404
        assert response.json() == {"error": "DRIVER_NOT_FOUND"}


class TestAuthGuards:

    def test_missing_token(self, client):
        response = client.get("/api/v1/routing-sheet")

        assert response.status_code == 401
        assert response.json() == {"error": "NOT_AUTHORIZED"}

    def test_anonymous_token_is_not_a_driver(self, client):
        anonymous = client.post("/api/v1/login", json={}).json()["access_token"]

        assert client.get("/api/v1/routing-sheet", headers=auth(anonymous)).status_code == 401

    def test_bearer_header_accepted(self, client, driver_token, mock_gateway):
        response = client.get("/api/v1/vehicle/V1", headers={"Authorization": f"Bearer {driver_token}"})

        assert response.status_code == 200
        assert response.json()["data"]["plate"] == "AA1234BB"

    def test_shift_from_token_must_exist(self, client, token_service):
        token = token_service.generate_access_token(TokenClaims.for_driver_shift(str(uuid4()), "D1", "V1"))

        response = client.put("/api/v1/route", json={"id": "A", "status": "in-progress", **at()}, headers=auth(token))

        assert response.status_code == 401
        assert response.json()["desc"] == "DRIVER_SHIFT_NOT_FOUND"


class TestRoutingSheet:

    def test_sync_returns_routes(self, client, driver_token, mock_gateway, sheet_stop_a, sheet_stop_b):
        mock_gateway.get_routing_sheet.return_value = [sheet_stop_a, sheet_stop_b]

        response = client.get("/api/v1/routing-sheet", headers=auth(driver_token))

        data = response.json()["data"]
        assert [route["id"] for route in data] == ["A", "B"]
        assert data[0]["status"] == "pending"
        assert data[0]["custName"] == "Shop A"
        mock_gateway.get_routing_sheet.assert_awaited_with("D1", "V1")

    def test_no_sheet(self, client, driver_token):
        response = client.get("/api/v1/routing-sheet", headers=auth(driver_token))

        assert response.status_code == 404
        assert response.json()["error"] == "NO_ROUTING_SHEET"


class TestRouteTransitions:

    def test_update_status(self, client, synced_token):
        response = client.put(
            "/api/v1/route", json={"id": "A", "status": "in-progress", **at()}, headers=auth(synced_token)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "in-progress"
        assert data["location"] == at()

    def test_final_status_rejected_on_update(self, client, synced_token):
        response = client.put(
            "/api/v1/route", json={"id": "A", "status": "completed", **at()}, headers=auth(synced_token)
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "BAD_PARAMETERS"
        assert body["errors"][0]["param"] == "status"
        assert body["errors"][0]["location"] == "body"

    def test_coordinates_validated(self, client, synced_token):
        response = client.put(
            "/api/v1/route", json={"id": "A", "status": "in-progress", "lat": 91, "lon": 0}, headers=auth(synced_token)
        )

        assert response.status_code == 400
        assert [error["param"] for error in response.json()["errors"]] == ["lat"]

    def test_unknown_route(self, client, synced_token):
        response = client.put(
            "/api/v1/route/reject", json={"id": "Z", "reason": "closed", **at()}, headers=auth(synced_token)
        )

        assert response.status_code == 400
        assert response.json() == {"error": "ROUTE_NOT_FOUND"}

    def test_complete_then_closed(self, client, synced_token, mock_gateway, background):
        payload = {"id": "A", "signature": "sig-data", "images": ["img-1"], **at()}

        first = client.put("/api/v1/route/complete", json=payload, headers=auth(synced_token))
        client.portal.call(background.drain, 5.0)
        second = client.put("/api/v1/route/complete", json=payload, headers=auth(synced_token))

        data = first.json()["data"]
        assert data["status"] == "completed"
        assert data["recipientSignature"] == "sig-data"
        assert data["images"] == ["img-1"]
        assert data["completeDate"] is not None
        mock_gateway.unload_labels.assert_awaited_once_with("D1", "V1", "A", "DOC-A")

        assert second.status_code == 409
        assert second.json()["error"] == "ROUTE_ALREADY_CLOSED"

    def test_reject_and_history(self, client, synced_token):
        client.put("/api/v1/route", json={"id": "B", "status": "in-progress", **at()}, headers=auth(synced_token))
        client.put(
            "/api/v1/route/reject", json={"id": "B", "reason": "shop closed", **at()}, headers=auth(synced_token)
        )

        response = client.get("/api/v1/route/B/history", headers=auth(synced_token))

        history = response.json()["data"]
        assert [entry["status"] for entry in history] == ["rejected", "in-progress"]
        assert history[0]["externalRouteId"] == "B"


class TestPassthroughs:

    def test_entry_header_ok(self, client, driver_token, mock_gateway):
        response = client.post("/api/v1/create-delivery-entry-header", headers=auth(driver_token))

        assert response.json() == {"status": "OK", "data": "1"}
        mock_gateway.create_delivery_entry_header.assert_awaited_once_with("D1", "V1")

    def test_unexpected_upstream_value(self, client, driver_token, mock_gateway):
        mock_gateway.close_routing_sheet.return_value = "0"

        response = client.post(
            "/api/v1/close-routing-sheet", json={"routingSheetCode": "RS-1"}, headers=auth(driver_token)
        )

        assert response.status_code == 503
        assert response.json() == {"error": "UNKNOWN_RESPONSE", "desc": "0"}

    def test_upstream_failure_is_sanitized(self, client, driver_token, mock_gateway):
        mock_gateway.close_delivery_entry_header.side_effect = ExternalApiError(
            "Unexpected response from /delivery-entry-header/close", upstream_status=500
        )

        with patch(f"{APP_MODULE}.log_error", new_callable=AsyncMock):
            response = client.post("/api/v1/close-delivery-entry-header", headers=auth(driver_token))

        assert response.status_code == 503
        assert response.json() == {
            "error": "EXTERNAL_API_ERROR",
            "desc": {"message": "Unexpected response from /delivery-entry-header/close", "status": 500},
        }

    def test_move_place_records_scan(self, client, driver_token, label_repository):
        response = client.post(
            "/api/v1/move-place", json={"movePlaceType": 1, "labelCode": "LBL-1"}, headers=auth(driver_token)
        )

        assert response.status_code == 200
        assert label_repository.scans[0].label_code == "LBL-1"

    def test_move_place_unknown_type(self, client, driver_token):
        response = client.post(
            "/api/v1/move-place", json={"movePlaceType": 9, "labelCode": "LBL-1"}, headers=auth(driver_token)
        )

        assert response.status_code == 400

    def test_clear_moved_places(self, client, driver_token, mock_gateway):
        response = client.post(
            "/api/v1/clear-moved-places", json={"routingSheetCode": "RS-1"}, headers=auth(driver_token)
        )

        assert response.json() == {"status": "OK", "data": "2"}
        mock_gateway.clear_moved_places.assert_awaited_once_with("D1", "V1", "RS-1")

    def test_clear_moved_places_unexpected_answer(self, client, driver_token, mock_gateway):
        mock_gateway.clear_moved_places.return_value = "1"

        response = client.post(
            "/api/v1/clear-moved-places", json={"routingSheetCode": "RS-1"}, headers=auth(driver_token)
        )

        assert response.status_code == 503
        assert response.json() == {"error": "UNKNOWN_RESPONSE", "desc": "1"}

    def test_clear_moved_places_requires_sheet_code(self, client, driver_token, mock_gateway):
        response = client.post("/api/v1/clear-moved-places", json={}, headers=auth(driver_token))

        assert response.status_code == 400
        assert response.json()["error"] == "BAD_PARAMETERS"
        mock_gateway.clear_moved_places.assert_not_awaited()

    def test_way_bill(self, client, driver_token, mock_gateway):
        printed = client.post("/api/v1/delivery/print", headers=auth(driver_token))
        opened = client.post("/api/v1/check-opened-way-bill", headers=auth(driver_token))

        assert printed.json() == {"status": "OK", "data": {"wayBillNo": "WB-1"}}
        assert opened.json() == {"status": "OK", "data": True}
        mock_gateway.create_way_bill.assert_awaited_once_with("D1", "V1")

    def test_way_bill_requires_token(self, client, mock_gateway):
        response = client.post("/api/v1/delivery/print")

        assert response.status_code == 401
        mock_gateway.create_way_bill.assert_not_awaited()

    def test_clear_label_data(self, client, driver_token, mock_gateway):
        client.post("/api/v1/move-place", json={"movePlaceType": 1, "labelCode": "LBL-1"}, headers=auth(driver_token))
        mock_gateway.check_loaded_places.return_value = [{"generalDeliveryCode": "GD-7"}]
        client.post("/api/v1/check-loaded-places", headers=auth(driver_token))

        response = client.delete("/api/v1/delivery/label/GD-7", headers=auth(driver_token))

        assert response.json() == {"status": "OK", "data": "1"}
        mock_gateway.clear_test_label_data.assert_awaited_once_with("LBL-1")

    def test_clear_label_data_unknown_code(self, client, driver_token, mock_gateway):
        response = client.delete("/api/v1/delivery/label/GD-404", headers=auth(driver_token))

        assert response.status_code == 400
        assert response.json() == {"error": "LABEL_NOT_FOUND"}
        mock_gateway.clear_test_label_data.assert_not_awaited()


class TestBulkRequest:

    def test_items_run_in_order(self, client, synced_token):
        items = [
            {"method": "PUT", "url": "/route", "data": {"id": "A", "status": "in-progress", **at()}},
            {"method": "PUT", "url": "/api/v1/route/reject", "data": {"id": "A", "reason": "closed", **at()}},
            {"method": "GET", "url": "/routing-sheet"},
            {"method": "PUT", "url": "/route", "data": {"id": "Z", "status": "in-progress", **at()}},
        ]

        response = client.post("/api/v1/bulk-request", json=items, headers=auth(synced_token))

        results = response.json()["data"]
        assert results[0]["data"]["status"] == "in-progress"
        assert results[1]["data"]["status"] == "rejected"
        assert results[2]["error"] == "BAD_PARAMETERS"
        assert results[3] == {"error": "ROUTE_NOT_FOUND"}


class TestAdminApi:

    def test_login_and_refresh(self, client, admin_repository, token_service):
        admin_repository.add("root", "secret", claims={"routes": True})

        login = client.post("/api/v1/admin/login", json={"login": "root", "password": "secret"}).json()
        refreshed = client.post("/api/v1/refresh-token", json={"refresh_token": login["refresh_token"]})

        assert login["claims"] == {"routes": True}
        assert token_service.verify_token(refreshed.json()["access_token"]).is_admin

    def test_wrong_password(self, client, admin_repository):
        admin_repository.add("root", "secret")

        response = client.post("/api/v1/admin/login", json={"login": "root", "password": "nope"})

        assert response.status_code == 401
        assert response.json() == {"error": "NOT_AUTHORIZED", "desc": "BAD_CREDENTIALS"}

    def test_unknown_login_looks_like_wrong_password(self, client, admin_repository):
        admin_repository.add("root", "secret")

        unknown = client.post("/api/v1/admin/login", json={"login": "ghost", "password": "secret"})
        wrong = client.post("/api/v1/admin/login", json={"login": "root", "password": "nope"})

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    def test_driver_token_cannot_query_routes(self, client, synced_token):
        assert client.get("/api/v1/admin/routes", headers=auth(synced_token)).status_code == 401

    def test_query_routes(self, client, synced_token, admin_token):
        routes = client.get("/api/v1/admin/routes", params={"driverCode": "D1"}, headers=auth(admin_token))
        count = client.get("/api/v1/admin/routes", params={"count": "true"}, headers=auth(admin_token))
        none = client.get(
            "/api/v1/admin/routes", params={"status": "completed"}, headers=auth(admin_token)
        )

        assert len(routes.json()["data"]) == 2
        assert count.json()["data"] == 2
        assert none.json()["data"] == []

    def test_delete_route(self, client, synced_token, admin_token):
        route_id = client.get("/api/v1/admin/routes", headers=auth(admin_token)).json()["data"][0]["_id"]

        deleted = client.delete(f"/api/v1/admin/routes/{route_id}", headers=auth(admin_token))
        history = client.get(f"/api/v1/admin/routes/{route_id}/history", headers=auth(admin_token))

        assert deleted.json() == {"status": "OK", "data": None}
        assert history.status_code == 404

    def test_driver_shifts_count(self, client, driver_token, admin_token):
        response = client.get("/api/v1/admin/driver-shifts", params={"count": "true"}, headers=auth(admin_token))

        assert response.json()["data"] == 1

    def test_admin_crud(self, client, admin_token):
        created = client.post(
            "/api/v1/admin", json={"login": "Ops", "password": "secret1", "name": "Ops"}, headers=auth(admin_token)
        )
        admin_id = created.json()["data"]["_id"]
        duplicate = client.post(
            "/api/v1/admin", json={"login": "ops", "password": "secret1"}, headers=auth(admin_token)
        )
        listed = client.get("/api/v1/admins", headers=auth(admin_token))
        removed = client.delete(f"/api/v1/admin/{admin_id}", headers=auth(admin_token))
        missing = client.get(f"/api/v1/admin/{admin_id}", headers=auth(admin_token))

        assert created.json()["data"]["login"] == "ops"
        assert duplicate.status_code == 409
        assert len(listed.json()["data"]) == 2
        assert removed.status_code == 200
        assert missing.status_code == 404
        assert missing.json() == {"error": "USER_NOT_FOUND"}

    def test_short_password(self, client, admin_token):
        response = client.post("/api/v1/admin", json={"login": "x", "password": "123"}, headers=auth(admin_token))

        assert response.status_code == 400


class TestHealth:

    def dependency(self, healthy: bool) -> MagicMock:
        mock = MagicMock()
        mock.is_connected = healthy
        mock.health_check = AsyncMock(return_value=healthy)
        return mock

    def test_healthy(self, client):
        with patch(f"{APP_MODULE}.get_db", return_value=self.dependency(True)), \
             patch(f"{APP_MODULE}.get_redis", return_value=self.dependency(False)), \
             patch(f"{APP_MODULE}.get_event_bus", return_value=self.dependency(True)), \
             patch(f"{APP_MODULE}.get_logistics_api", return_value=self.dependency(False)):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["dependencies"] == {
            "postgres": "ok",
            "redis": "down",
            "rabbitmq": "ok",
            "logistics_api": "down",
        }

    def test_postgres_down(self, client):
        with patch(f"{APP_MODULE}.get_db", return_value=self.dependency(False)), \
             patch(f"{APP_MODULE}.get_redis", return_value=self.dependency(True)), \
             patch(f"{APP_MODULE}.get_event_bus", return_value=self.dependency(True)), \
             patch(f"{APP_MODULE}.get_logistics_api", return_value=self.dependency(True)):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["dependencies"]["logistics_api"] == "ok"
