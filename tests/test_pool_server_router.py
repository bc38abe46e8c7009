"""
Tests for the /pool-servers HTTP routes.

The app lifespan (scheduler start) is not run; job registration failures
are logged by the router and do not affect responses.
"""
import pytest
from fastapi.testclient import TestClient

from dependencies import get_db
from main import app
from models.network_pool import NetworkPool
from models.pool_server import NetworkPoolServer
from nbapi.models import RemoteNetwork
from routers.pool_servers.sync_engine import _lock_for, _refresh_locks
from routers.pool_servers.sync_pools import sync_pools

PAYLOAD = {
    "name": "netbox-prod",
    "service_url": "https://netbox.example.com/",
    "service_username": "admin",
    "service_password": "s3cret",
    "inventory_existing": True,
}


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestPoolServerCrud:
    def test_create_and_fetch(self, client, db_session):
        response = client.post("/pool-servers/", json=PAYLOAD)

        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "netbox-prod"
        assert body["inventory_existing"] is True
        assert "service_password" not in body
        assert "encrypted_service_password" not in body

        stored = db_session.query(NetworkPoolServer).one()
        assert stored.encrypted_service_password != "s3cret"
        assert stored.get_service_password() == "s3cret"

        fetched = client.get(f"/pool-servers/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["service_url"] == "https://netbox.example.com/"

    def test_duplicate_name_rejected(self, client):
        client.post("/pool-servers/", json=PAYLOAD)
        response = client.post("/pool-servers/", json=PAYLOAD)
        assert response.status_code == 400

    def test_missing_field_is_422(self, client):
        response = client.post("/pool-servers/", json={"name": "x"})
        assert response.status_code == 422
        assert response.json()["error"] == "Validation error"

    def test_unknown_id_is_404(self, client):
        response = client.get("/pool-servers/404")
        assert response.status_code == 404
        assert response.json() == {"error": "Pool server not found"}

    def test_update_keeps_password_when_blank(self, client, db_session):
        created = client.post("/pool-servers/", json=PAYLOAD).json()

        response = client.put(f"/pool-servers/{created['id']}",
                              json={"service_throttle_rate": 200, "service_password": ""})

        assert response.status_code == 200
        assert response.json()["service_throttle_rate"] == 200
        stored = db_session.query(NetworkPoolServer).one()
        assert stored.get_service_password() == "s3cret"

    def test_update_blank_url_is_validation_error(self, client):
        created = client.post("/pool-servers/", json=PAYLOAD).json()

        response = client.put(f"/pool-servers/{created['id']}", json={"service_url": ""})

        assert response.status_code == 400
        assert response.json()["details"] == {"service_url": "NetBox API URL is required"}

    def test_delete_cascades_pools(self, client, db_session, pool_server):
        sync_pools(db_session, pool_server, [
            RemoteNetwork(id=1, display_name="lan", start_address="10.0.0.1/24", end_address="10.0.0.9/24",
                          size=9, family=4),
        ])

        server_id = pool_server.id
        _lock_for(server_id)

        response = client.delete(f"/pool-servers/{server_id}")

        assert response.status_code == 200
        assert db_session.query(NetworkPool).count() == 0
        assert server_id not in _refresh_locks
        assert client.get(f"/pool-servers/{server_id}").status_code == 404


class TestPoolRoutes:
    def test_pool_types(self, client):
        codes = [t["code"] for t in client.get("/pool-servers/pool-types").json()]
        assert codes == ["netbox", "netboxipv6"]

    def test_list_pools_with_ranges(self, client, db_session, pool_server):
        sync_pools(db_session, pool_server, [
            RemoteNetwork(id=1, display_name="lan", start_address="10.0.0.1/24", end_address="10.0.0.9/24",
                          size=9, family=4),
        ])

        pools = client.get(f"/pool-servers/{pool_server.id}/pools").json()

        assert [p["external_id"] for p in pools] == ["1"]
        assert pools[0]["ranges"][0]["start_address"] == "10.0.0.1"

    def test_invalid_address_is_400(self, client, db_session, pool_server):
        sync_pools(db_session, pool_server, [
            RemoteNetwork(id=1, display_name="lan", start_address="10.0.0.1/24", end_address="10.0.0.9/24",
                          size=9, family=4),
        ])
        pool = db_session.query(NetworkPool).one()

        response = client.post(f"/pool-servers/{pool_server.id}/pools/{pool.id}/ips",
                               json={"hostname": "web01", "ip_address": "not-an-ip"})

        assert response.status_code == 400
        assert "not-an-ip" in response.json()["error"]

    def test_unknown_pool_is_404(self, client, pool_server):
        response = client.post(f"/pool-servers/{pool_server.id}/pools/999/ips", json={"hostname": "web01"})
        assert response.status_code == 404


class TestVerifyRoute:
    def test_missing_fields_reported(self, client):
        response = client.post("/pool-servers/verify", json={"name": "nb"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert set(body["errors"]) == {"service_url", "service_username", "service_password"}


class TestStatus:
    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
