"""Tests for the reachability monitor and how the orchestrator reacts to it."""

import asyncio
from dataclasses import replace

from invoice_sync.errors import ApiError, ErrorType, RemoteUnavailable
from invoice_sync.models.common import Resource
from invoice_sync.sync.connectivity import (
    LOST_MESSAGE,
    RESTORED_MESSAGE,
    ConnectivityMonitor,
    is_network_failure,
)

from factories import customer_row


class TestMonitor:
    def test_only_transitions_are_announced(self, backend, notifier):
        monitor = ConnectivityMonitor(backend, notifier, interval=0)
        seen = []
        monitor.add_listener(seen.append)

        async def scenario():
            backend.reachable = False
            await monitor.check()
            await monitor.check()
            backend.reachable = True
            await monitor.check()
            await monitor.check()

        asyncio.run(scenario())

        assert [n.message for n in notifier.notifications] == [LOST_MESSAGE, RESTORED_MESSAGE]
        assert seen == [False, True]
        assert backend.pings == 4

    def test_only_network_failures_count(self, backend, notifier):
        monitor = ConnectivityMonitor(backend, notifier, interval=0)

        duplicate = monitor.report_failure(ApiError("duplicate", ErrorType.DUPLICATE))
        network = monitor.report_failure(RemoteUnavailable("refused"))

        assert duplicate is False
        assert network is True
        assert monitor.online is False

    def test_is_network_failure(self):
        assert is_network_failure(RemoteUnavailable("timeout"))
        assert not is_network_failure(ApiError("denied", ErrorType.PERMISSION))
        assert not is_network_failure(ValueError("boom"))

    def test_periodic_checks_run_until_stopped(self, backend, notifier):
        monitor = ConnectivityMonitor(backend, notifier, interval=0.01)

        async def scenario():
            monitor.start()
            await asyncio.sleep(0.06)
            monitor.stop()
            pings = backend.pings
            await asyncio.sleep(0.03)
            return pings

        pings = asyncio.run(scenario())

        assert pings >= 2
        assert backend.pings == pings

    def test_stop_forgets_an_outage(self, backend, notifier):
        monitor = ConnectivityMonitor(backend, notifier, interval=0)
        monitor.report(False)

        monitor.stop()

        assert monitor.online is True
        assert len(notifier.notifications) == 1


class TestOrchestrator:
    def test_status_reports_lost_connection(self, backend, make_orchestrator, session):
        async def scenario():
            orchestrator = make_orchestrator(session)
            orchestrator.start()
            await orchestrator.wait_idle()
            backend.reachable = False
            await orchestrator.connectivity.check()
            status = orchestrator.status()
            await orchestrator.close()
            return status

        status = asyncio.run(scenario())

        assert status["online"] is False
        assert status["connected"] is False
        assert status["user_id"] is not None

    def test_start_while_unreachable_uses_snapshots(
        self, backend, make_orchestrator, session, notifier
    ):
        backend.reachable = False

        async def scenario():
            orchestrator = make_orchestrator(session)
            orchestrator.start()
            await orchestrator.wait_idle()
            loading = orchestrator.is_loading
            connected = orchestrator.connectivity.online
            calls = backend.total_calls()
            await orchestrator.load_all()
            again = backend.total_calls() - calls
            await orchestrator.close()
            return loading, connected, again

        loading, connected, again = asyncio.run(scenario())

        assert loading is False
        assert connected is False
        assert again == 0
        assert [n.message for n in notifier.errors] == [LOST_MESSAGE]

    def test_reconnect_loads_missed_resources(
        self, backend, make_orchestrator, session, notifier
    ):
        backend.tables["customers"]["c-1"] = customer_row("c-1")
        backend.reachable = False

        async def scenario():
            orchestrator = make_orchestrator(session)
            orchestrator.start()
            await orchestrator.wait_idle()
            before = orchestrator.loaded.customers
            backend.reachable = True
            await orchestrator.connectivity.check()
            await orchestrator.wait_idle()
            after = [c.id for c in orchestrator.value(Resource.CUSTOMERS)]
            loaded = orchestrator.loaded.customers
            await orchestrator.close()
            return before, after, loaded

        before, after, loaded = asyncio.run(scenario())

        assert before is False
        assert after == ["c-1"]
        assert loaded is True
        assert notifier.notifications[1].message == RESTORED_MESSAGE

    def test_monitor_pings_while_signed_in(self, backend, make_orchestrator, session, settings):
        async def scenario():
            orchestrator = make_orchestrator(
                session, settings=replace(settings, connectivity_interval=0.01)
            )
            orchestrator.start()
            await asyncio.sleep(0.05)
            await orchestrator.sign_out()
            pings = backend.pings
            await asyncio.sleep(0.03)
            await orchestrator.close()
            return pings

        pings = asyncio.run(scenario())

        assert pings >= 1
        assert backend.pings == pings
