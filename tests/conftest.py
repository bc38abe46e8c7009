"""
Shared fixtures: an in-memory database, a stored pool server, and a fake
NetBox served through httpx.MockTransport.
"""
import ipaddress
import json
import os
import re
from unittest.mock import AsyncMock

from cryptography.fernet import Fernet

os.environ.setdefault("FERNET_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from clients.netbox_client_deps import create_netbox_client
from database import Base
from models.pool_server import NetworkPoolServer
from nbapi.client import NetBoxClient

TOKEN = "0123456789abcdef"
NETBOX_URL = "https://netbox.test/"


def make_range(range_id, start, end, size, family=4, display=None):
    return {
        "id": range_id,
        "display": display or f"{start}-{end}",
        "start_address": start,
        "end_address": end,
        "size": size,
        "family": {"value": family, "label": f"IPv{family}"},
    }


def make_address(address_id, address, status="active", dns_name=""):
    return {
        "id": address_id,
        "address": address,
        "status": {"value": status, "label": status.title()} if status else None,
        "dns_name": dns_name,
    }


class FakeNetBox:
    """Minimal NetBox REST API over in-memory lists"""

    def __init__(self, ranges=None, addresses=None):
        self.ranges = list(ranges or [])
        self.addresses = list(addresses or [])
        self.requests = []
        self.auth_fails = False
        self.fail_ranges_at_offset = None
        self.fail_addresses = False
        self.next_id = 1000

    # ----- inspection -----

    def calls(self, method, path_suffix):
        return [r for r in self.requests if r[0] == method and r[1].endswith(path_suffix)]

    @property
    def data_calls(self):
        """Requests other than login/logout"""
        return [r for r in self.requests if "/tokens/provision/" not in r[1] and not r[1].endswith("/logout")]

    # ----- transport -----

    def transport(self):
        return httpx.MockTransport(self.handler)

    def client_factory(self, pool_server):
        return create_netbox_client(pool_server, transport=self.transport())

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = dict(request.url.params)
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, params, body))

        if path.endswith("/api/users/tokens/provision/"):
            if self.auth_fails:
                return httpx.Response(403, json={"detail": "Invalid credentials"})
            return httpx.Response(201, json={"id": 1, "key": TOKEN})

        if path.endswith("/logout"):
            return httpx.Response(200, text="")

        if request.headers.get("Authorization") != f"Token {TOKEN}":
            return httpx.Response(403, json={"detail": "Authentication credentials were not provided."})

        available = re.search(r"/api/ipam/ip-ranges/(\d+)/available-ips/$", path)
        if available and request.method == "POST":
            return self._allocate_from_range(int(available.group(1)), body)

        if path.endswith("/api/ipam/ip-ranges/") and request.method == "GET":
            if self.fail_ranges_at_offset is not None and int(params.get("offset", 0)) == self.fail_ranges_at_offset:
                return httpx.Response(500, text="Internal Server Error")
            return self._page(request, self.ranges, params)

        if path.endswith("/api/ipam/ip-addresses/"):
            if request.method == "GET":
                if self.fail_addresses:
                    return httpx.Response(503, text="Service Unavailable")
                if "address" in params:
                    found = [a for a in self.addresses if a["address"].split("/")[0] == params["address"]]
                    return httpx.Response(200, json={"count": len(found), "next": None, "results": found})
                return self._page(request, self.addresses, params)
            if request.method == "POST":
                record = self._new_address(body["address"], body)
                return httpx.Response(201, json=record)

        single = re.search(r"/api/ipam/ip-addresses/(\d+)/$", path)
        if single and request.method == "PUT":
            for record in self.addresses:
                if record["id"] == int(single.group(1)):
                    record["address"] = body["address"]
                    record["status"] = {"value": body["status"], "label": body["status"].title()}
                    record["dns_name"] = body.get("dns_name", "")
                    return httpx.Response(200, json=record)

        return httpx.Response(404, json={"detail": "Not found."})

    # ----- helpers -----

    def _page(self, request, items, params):
        limit = int(params.get("limit", 50))
        offset = int(params.get("offset", 0))
        results = items[offset:offset + limit]
        next_url = None
        if offset + limit < len(items):
            next_url = str(request.url.copy_merge_params({"offset": str(offset + limit)}))
        return httpx.Response(200, json={"count": len(items), "next": next_url, "previous": None,
                                         "results": results})

    def _new_address(self, address, body):
        self.next_id += 1
        record = make_address(self.next_id, address, body.get("status"), body.get("dns_name", ""))
        self.addresses.append(record)
        return record

    def _allocate_from_range(self, range_id, body):
        ip_range = next((r for r in self.ranges if r["id"] == range_id), None)
        if ip_range is None:
            return httpx.Response(404, json={"detail": "Not found."})
        prefix = ip_range["start_address"].split("/")[1]
        start = ipaddress.ip_address(ip_range["start_address"].split("/")[0])
        end = ipaddress.ip_address(ip_range["end_address"].split("/")[0])
        used = {a["address"].split("/")[0] for a in self.addresses}
        candidate = start
        while str(candidate) in used:
            candidate += 1
        if candidate > end:
            return httpx.Response(409, json={"detail": "No available IPs"})
        record = self._new_address(f"{candidate}/{prefix}", body)
        return httpx.Response(201, json=[record])


# ========== Fixtures ==========

@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def pool_server(db_session):
    server = NetworkPoolServer(
        name="netbox-lab",
        service_url=NETBOX_URL,
        service_username="admin",
        ignore_ssl=True,
        inventory_existing=False,
        enabled=True,
    )
    server.set_service_password("s3cret")
    db_session.add(server)
    db_session.commit()
    db_session.refresh(server)
    return server


@pytest.fixture
def netbox():
    return FakeNetBox()


@pytest.fixture
def reachable(monkeypatch):
    """NetBox host answers the TCP probe"""
    probe = AsyncMock(return_value=True)
    monkeypatch.setattr(NetBoxClient, "check_connectivity", probe)
    return probe


@pytest.fixture
def unreachable(monkeypatch):
    probe = AsyncMock(return_value=False)
    monkeypatch.setattr(NetBoxClient, "check_connectivity", probe)
    return probe
