"""
Tests for the pool server refresh cycle and settings verification.
"""
from unittest.mock import AsyncMock, patch

import pytest

from models.network_pool import NetworkPool, NetworkPoolIp
from models.pool_server import PoolServerStatus
from routers.pool_servers.sync_engine import (
    PoolServerSyncEngine,
    StatusMessage,
    VerifyMessage,
    run_scheduled_refresh,
    verify_pool_server,
)

from conftest import FakeNetBox, make_address, make_range


@pytest.fixture
def netbox():
    return FakeNetBox(
        ranges=[
            make_range(1, "10.0.0.1/24", "10.0.0.100/24", 100, display="lan"),
            make_range(2, "2001:db8::1/64", "2001:db8::ff/64", 255, family=6, display="lan6"),
        ],
        addresses=[
            make_address(10, "10.0.0.5/24", "reserved", "printer.example.com"),
            make_address(11, "10.0.0.6/24", "deprecated"),
        ],
    )


async def refresh(db, pool_server, netbox):
    async with PoolServerSyncEngine(pool_server.id, db=db, client_factory=netbox.client_factory) as engine:
        return await engine.refresh()


class TestRefresh:
    @pytest.mark.asyncio
    async def test_success_mirrors_pools(self, db_session, pool_server, netbox, reachable):
        result = await refresh(db_session, pool_server, netbox)

        assert result.status == PoolServerStatus.OK
        assert result.pools_added == 2
        db_session.refresh(pool_server)
        assert pool_server.status == PoolServerStatus.OK
        assert pool_server.status_date is not None
        assert pool_server.last_sync_at is not None
        assert db_session.query(NetworkPool).count() == 2
        assert db_session.query(NetworkPoolIp).count() == 0
        assert len(netbox.calls("GET", "/logout")) == 1

    @pytest.mark.asyncio
    async def test_inventory_existing_mirrors_addresses(self, db_session, pool_server, netbox, reachable):
        pool_server.inventory_existing = True
        db_session.commit()

        result = await refresh(db_session, pool_server, netbox)

        assert result.addresses_added == 2
        types = {ip.ip_address: ip.ip_type for ip in db_session.query(NetworkPoolIp).all()}
        assert types == {"10.0.0.5": "reserved", "10.0.0.6": "unmanaged"}

    @pytest.mark.asyncio
    async def test_second_cycle_changes_nothing(self, db_session, pool_server, netbox, reachable):
        pool_server.inventory_existing = True
        db_session.commit()
        await refresh(db_session, pool_server, netbox)

        result = await refresh(db_session, pool_server, netbox)

        assert (result.pools_added, result.pools_updated, result.pools_removed) == (0, 0, 0)
        assert (result.addresses_added, result.addresses_updated, result.addresses_removed) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_unreachable_host(self, db_session, pool_server, netbox, unreachable):
        result = await refresh(db_session, pool_server, netbox)

        assert (result.status, result.message) == (PoolServerStatus.ERROR, StatusMessage.NOT_REACHABLE)
        assert netbox.requests == []
        db_session.refresh(pool_server)
        assert pool_server.status_message == StatusMessage.NOT_REACHABLE

    @pytest.mark.asyncio
    async def test_login_failure(self, db_session, pool_server, netbox, reachable):
        netbox.auth_fails = True

        result = await refresh(db_session, pool_server, netbox)

        assert (result.status, result.message) == (PoolServerStatus.ERROR, StatusMessage.AUTH_FAILED)
        assert netbox.data_calls == []
        assert netbox.calls("GET", "/logout") == []

    @pytest.mark.asyncio
    async def test_test_call_failure_still_logs_out_once(self, db_session, pool_server, netbox, reachable):
        netbox.fail_ranges_at_offset = 0

        result = await refresh(db_session, pool_server, netbox)

        assert (result.status, result.message) == (PoolServerStatus.ERROR, StatusMessage.CALL_FAILED)
        assert len(netbox.calls("GET", "/logout")) == 1
        assert db_session.query(NetworkPool).count() == 0

    @pytest.mark.asyncio
    async def test_test_call_fetches_a_single_page(self, db_session, pool_server, reachable):
        netbox = FakeNetBox(ranges=[make_range(i, f"10.{i}.0.1/24", f"10.{i}.0.9/24", 9) for i in range(1, 151)])

        await refresh(db_session, pool_server, netbox)

        # one test page, then the full listing (two pages of 100)
        assert len(netbox.calls("GET", "/ip-ranges/")) == 3
        assert db_session.query(NetworkPool).count() == 150

    @pytest.mark.asyncio
    async def test_partial_listing_is_reconciled(self, db_session, pool_server, reachable):
        netbox = FakeNetBox(ranges=[make_range(i, f"10.{i}.0.1/24", f"10.{i}.0.9/24", 9) for i in range(1, 151)])
        await refresh(db_session, pool_server, netbox)

        # the one-page test call succeeds, the second page of the full listing fails
        netbox.fail_ranges_at_offset = 100

        result = await refresh(db_session, pool_server, netbox)

        assert result.status == PoolServerStatus.OK
        assert "incomplete" in result.warnings[0]
        assert result.pools_removed == 50
        assert {p.external_id for p in db_session.query(NetworkPool).all()} == {str(i) for i in range(1, 101)}

    @pytest.mark.asyncio
    async def test_partial_listing_creates_fetched_pools(self, db_session, pool_server, reachable):
        netbox = FakeNetBox(ranges=[make_range(i, f"10.{i}.0.1/24", f"10.{i}.0.9/24", 9) for i in range(1, 151)])
        netbox.fail_ranges_at_offset = 100

        result = await refresh(db_session, pool_server, netbox)

        assert result.pools_added == 100
        assert db_session.query(NetworkPool).count() == 100
        db_session.refresh(pool_server)
        assert pool_server.status == PoolServerStatus.OK
        assert "HTTP 500" in pool_server.status_message

    @pytest.mark.asyncio
    async def test_failed_address_listing_leaves_ips_untouched(self, db_session, pool_server, netbox, reachable):
        pool_server.inventory_existing = True
        db_session.commit()
        await refresh(db_session, pool_server, netbox)
        netbox.fail_addresses = True

        result = await refresh(db_session, pool_server, netbox)

        assert result.status == PoolServerStatus.OK
        assert "nothing synced" in result.warnings[0]
        assert result.addresses_removed == 0
        assert db_session.query(NetworkPoolIp).count() == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_recorded_and_logged_out(self, db_session, pool_server, netbox, reachable):
        with patch("routers.pool_servers.sync_engine.sync_pools", side_effect=RuntimeError("disk full")):
            result = await refresh(db_session, pool_server, netbox)

        assert result.status == PoolServerStatus.ERROR
        assert "disk full" in result.errors
        assert len(netbox.calls("GET", "/logout")) == 1

    @pytest.mark.asyncio
    async def test_missing_credentials_escalate(self, db_session, pool_server, netbox, reachable):
        pool_server.service_username = ""
        db_session.commit()

        with pytest.raises(ValueError):
            await refresh(db_session, pool_server, netbox)

        assert netbox.requests == []

    @pytest.mark.asyncio
    async def test_unknown_pool_server(self, db_session):
        with pytest.raises(ValueError):
            async with PoolServerSyncEngine(999, db=db_session):
                pass


class TestScheduledRefresh:
    @pytest.mark.asyncio
    async def test_disabled_pool_server_is_skipped(self, db_session, pool_server):
        pool_server.enabled = False
        db_session.commit()

        with patch("routers.pool_servers.sync_engine.SessionLocal", return_value=db_session), \
                patch.object(PoolServerSyncEngine, "refresh", AsyncMock()) as engine_refresh:
            result = await run_scheduled_refresh(pool_server.id)

        assert result == {"skipped": True, "reason": "pool_server_disabled"}
        engine_refresh.assert_not_awaited()


class TestVerify:
    @pytest.mark.asyncio
    async def test_reports_every_missing_field(self):
        errors = await verify_pool_server({})

        assert errors == {
            "name": VerifyMessage.NAME_REQUIRED,
            "service_url": VerifyMessage.URL_REQUIRED,
            "service_username": VerifyMessage.USERNAME_REQUIRED,
            "service_password": VerifyMessage.PASSWORD_REQUIRED,
        }

    @pytest.mark.asyncio
    async def test_valid_settings(self, netbox, reachable):
        errors = await verify_pool_server(self._settings(), client_factory=self._factory(netbox))

        assert errors == {}
        assert len(netbox.calls("GET", "/ip-ranges/")) == 1
        assert len(netbox.calls("GET", "/logout")) == 1

    @pytest.mark.asyncio
    async def test_unreachable(self, netbox, unreachable):
        errors = await verify_pool_server(self._settings(), client_factory=self._factory(netbox))
        assert errors == {"connection": VerifyMessage.NOT_REACHABLE}

    @pytest.mark.asyncio
    async def test_bad_credentials(self, netbox, reachable):
        netbox.auth_fails = True
        errors = await verify_pool_server(self._settings(), client_factory=self._factory(netbox))
        assert errors == {"connection": VerifyMessage.AUTH_FAILED}

    @pytest.mark.asyncio
    async def test_failed_call(self, netbox, reachable):
        netbox.fail_ranges_at_offset = 0
        errors = await verify_pool_server(self._settings(), client_factory=self._factory(netbox))
        assert errors == {"connection": VerifyMessage.CALL_FAILED}
        assert len(netbox.calls("GET", "/logout")) == 1

    @staticmethod
    def _settings():
        return {"name": "nb", "service_url": "https://netbox.test/", "service_username": "admin",
                "service_password": "pw"}

    @staticmethod
    def _factory(netbox):
        from nbapi.client import NetBoxClient

        def factory(**kwargs):
            return NetBoxClient(transport=netbox.transport(), **kwargs)
        return factory
