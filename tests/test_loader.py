"""Tests for ResourceLoader: cache hits, fallbacks, empty results and stale loads."""

import asyncio
import dataclasses
import json

from invoice_sync import formatters
from invoice_sync.errors import RemoteUnavailable
from invoice_sync.models.common import LoadedResources, Resource, ResourceState, Session
from invoice_sync.models.entities import CompanyInfo
from invoice_sync.services.remote_backend_demo import DemoRemoteBackend
from invoice_sync.services.remote_data_source import RemoteDataSource
from invoice_sync.settings import EmptyResultPolicy
from invoice_sync.sync.connectivity import LOST_MESSAGE, RESTORED_MESSAGE, ConnectivityMonitor
from invoice_sync.sync.loader import COMPANY_INFO, CUSTOMERS, DOCUMENTS, ResourceLoader

from factories import OTHER_USER_ID, USER_ID, customer, customer_row, document


def build_loader(
    spec, store, backend, notifier, session=None, policy=EmptyResultPolicy.KEEP, connectivity=None
):
    source = RemoteDataSource(backend, session.user_id if session else None)
    slot = store.slot(spec.resource.value, spec.initial, spec.decode, spec.encode)
    loader = ResourceLoader(spec, slot, source, LoadedResources(), notifier, policy, connectivity)
    loader.session = session
    return loader


def gated_fetch(results):
    """Fetch function returning results[i] for the i-th call once gates[i] is set."""
    gates = [asyncio.Event() for _ in results]
    calls = []

    async def fetch(source):
        index = len(calls)
        calls.append(index)
        await gates[index].wait()
        return results[index]

    return fetch, gates, calls


class TestCacheHit:
    def test_second_unforced_load_is_free(self, store, notifier, session):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        loader = build_loader(CUSTOMERS, store, backend, notifier, session)

        async def scenario():
            first = await loader.load()
            second = await loader.load()
            return first, second

        first, second = asyncio.run(scenario())

        assert first == second
        assert backend.total_calls("customers") == 1

    def test_forced_load_always_fetches(self, store, notifier, session):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        loader = build_loader(CUSTOMERS, store, backend, notifier, session)

        async def scenario():
            await loader.load()
            await loader.load(force=True)
            await loader.load(force=True)

        asyncio.run(scenario())

        assert backend.total_calls("customers") == 3

    def test_loaded_but_empty_memory_fetches_again(self, store, notifier, session):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        loader = build_loader(CUSTOMERS, store, backend, notifier, session)

        async def scenario():
            await loader.load()
            loader.value = []
            await loader.load()

        asyncio.run(scenario())

        assert backend.total_calls("customers") == 2

    def test_singleton_without_length(self, store, notifier, session):
        backend = DemoRemoteBackend(
            seed={"company_info": [{"id": "ci", "user_id": USER_ID, "name": "Demo S.A."}]}
        )
        loader = build_loader(COMPANY_INFO, store, backend, notifier, session)

        async def scenario():
            await loader.load()
            return await loader.load()

        result = asyncio.run(scenario())

        assert result == CompanyInfo(id="ci", name="Demo S.A.")
        assert backend.total_calls("company_info") == 1


class TestOffline:
    def test_no_session_never_touches_remote(self, store, notifier):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        store.slot("customers", CUSTOMERS.initial, CUSTOMERS.decode, CUSTOMERS.encode).write(
            [customer("c-9")]
        )
        loader = build_loader(CUSTOMERS, store, backend, notifier)

        result = asyncio.run(loader.load(force=True))

        assert result == [customer("c-9")]
        assert backend.total_calls() == 0
        assert loader.loaded is False

    def test_session_without_valid_user_uses_snapshot(self, store, notifier):
        backend = DemoRemoteBackend()
        loader = build_loader(CUSTOMERS, store, backend, notifier, Session("not-a-uuid"))
        loader.slot.write([customer()])

        assert asyncio.run(loader.load()) == [customer()]
        assert backend.total_calls() == 0
        assert notifier.notifications == []


class TestRemoteResults:
    def test_remote_result_replaces_snapshot(self, storage, store, notifier, session):
        d1 = document("d-1", "COT-001", created_at="2024-04-12T09:00:00+00:00")
        d2 = document("d-2", "COT-002", created_at="2024-04-01T09:00:00+00:00")
        backend = DemoRemoteBackend(
            seed={
                "documents": [
                    formatters.document_to_wire(d, user_id=USER_ID) for d in (d1, d2)
                ]
            }
        )
        loader = build_loader(DOCUMENTS, store, backend, notifier, session)
        loader.slot.write([d1], owner=USER_ID)
        loader.hydrate()

        result = asyncio.run(loader.load())

        assert result == [d1, d2]
        assert loader.flags.documents is True
        assert loader.state == ResourceState.LOADED
        stored = json.loads(storage.get("documents"))
        assert [d["id"] for d in stored["data"]] == ["d-1", "d-2"]
        assert stored["owner"] == USER_ID

    def test_empty_result_keeps_snapshot(self, storage, store, notifier, session):
        loader = build_loader(CUSTOMERS, store, DemoRemoteBackend(), notifier, session)
        loader.slot.write([customer()], owner=USER_ID)
        before = storage.get("customers")

        result = asyncio.run(loader.load())

        assert result == [customer()]
        assert storage.get("customers") == before
        assert loader.loaded is False

    def test_authoritative_empty_result_clears(self, storage, store, notifier, session):
        loader = build_loader(
            CUSTOMERS,
            store,
            DemoRemoteBackend(),
            notifier,
            session,
            policy=EmptyResultPolicy.AUTHORITATIVE,
        )
        loader.slot.write([customer()], owner=USER_ID)

        result = asyncio.run(loader.load())

        assert result == []
        assert json.loads(storage.get("customers"))["data"] == []
        assert loader.loaded is True

    def test_failure_falls_back_and_notifies_once(self, store, notifier, session):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        backend.fail_next("customers", RemoteUnavailable("connection refused"))
        loader = build_loader(CUSTOMERS, store, backend, notifier, session)
        loader.slot.write([customer()], owner=USER_ID)

        result = asyncio.run(loader.load())

        assert result == [customer()]
        assert loader.loaded is False
        assert len(notifier.errors) == 1
        assert "customers" in notifier.errors[0].message

    def test_failure_after_success_keeps_loaded_flag(self, store, notifier, session):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        loader = build_loader(CUSTOMERS, store, backend, notifier, session)

        async def scenario():
            await loader.load()
            backend.fail_next("customers", RemoteUnavailable("timeout"))
            return await loader.load(force=True)

        result = asyncio.run(scenario())

        assert [c.id for c in result] == ["c-1"]
        assert loader.loaded is True

    def test_foreign_rows_are_dropped(self, store, notifier, session):
        backend = DemoRemoteBackend(
            seed={"customers": [customer_row("c-1"), customer_row("c-2", OTHER_USER_ID)]}
        )
        loader = build_loader(CUSTOMERS, store, backend, notifier, session)

        result = asyncio.run(loader.load())

        assert [c.id for c in result] == ["c-1"]


class TestOrdering:
    def test_stale_result_is_discarded(self, store, notifier, session):
        fetch, gates, calls = gated_fetch([[customer("old")], [customer("new")]])
        spec = dataclasses.replace(CUSTOMERS, fetch=fetch)
        loader = build_loader(spec, store, DemoRemoteBackend(), notifier, session)

        async def scenario():
            slow = asyncio.create_task(loader.load(force=True))
            await asyncio.sleep(0.01)
            fast = asyncio.create_task(loader.load(force=True))
            await asyncio.sleep(0.01)
            gates[1].set()
            await fast
            gates[0].set()
            return await slow

        result = asyncio.run(scenario())

        assert calls == [0, 1]
        assert result == [customer("new")]
        assert loader.value == [customer("new")]
        assert loader.slot.read() == [customer("new")]

    def test_concurrent_unforced_loads_share_one_fetch(self, store, notifier, session):
        fetch, gates, calls = gated_fetch([[customer()]])
        spec = dataclasses.replace(CUSTOMERS, fetch=fetch)
        loader = build_loader(spec, store, DemoRemoteBackend(), notifier, session)

        async def scenario():
            first = asyncio.create_task(loader.load())
            second = asyncio.create_task(loader.load())
            await asyncio.sleep(0.01)
            assert loader.busy
            gates[0].set()
            return await asyncio.gather(first, second)

        results = asyncio.run(scenario())

        assert calls == [0]
        assert results == [[customer()], [customer()]]
        assert not loader.busy

    def test_reset_discards_inflight_result(self, store, notifier, session):
        fetch, gates, calls = gated_fetch([[customer()]])
        spec = dataclasses.replace(CUSTOMERS, fetch=fetch)
        loader = build_loader(spec, store, DemoRemoteBackend(), notifier, session)

        async def scenario():
            pending = asyncio.create_task(loader.load())
            await asyncio.sleep(0.01)
            loader.reset()
            gates[0].set()
            return await pending

        assert asyncio.run(scenario()) == []
        assert loader.loaded is False
        assert loader.slot.read() == []


class TestSnapshots:
    def test_foreign_snapshot_is_hidden_from_signed_in_user(self, store, notifier, session):
        loader = build_loader(CUSTOMERS, store, DemoRemoteBackend(), notifier, session)
        loader.slot.write([customer()], owner=OTHER_USER_ID)

        assert loader.hydrate() == []

    def test_set_writes_through(self, store, notifier, session):
        loader = build_loader(CUSTOMERS, store, DemoRemoteBackend(), notifier, session)

        loader.set([customer()])

        assert loader.value == [customer()]
        assert loader.slot.read() == [customer()]
        assert loader.slot.owner == USER_ID

    def test_external_change_is_adopted(self, storage, store, notifier):
        loader = build_loader(CUSTOMERS, store, DemoRemoteBackend(), notifier)
        loader.hydrate()
        raw = json.dumps({"owner": None, "data": [customer("c-7").to_dict()]})
        storage.write_external("customers", raw)

        store.poll()

        assert loader.value == [customer("c-7")]

    def test_external_change_from_other_user_is_ignored(self, storage, store, notifier, session):
        loader = build_loader(CUSTOMERS, store, DemoRemoteBackend(), notifier, session)
        loader.hydrate()
        raw = json.dumps({"owner": OTHER_USER_ID, "data": [customer("c-7").to_dict()]})
        storage.write_external("customers", raw)

        store.poll()

        assert loader.value == []

    def test_as_tuple(self, store, notifier):
        loader = build_loader(CUSTOMERS, store, DemoRemoteBackend(), notifier)
        value, load, setter = loader.as_tuple()
        assert value == []
        assert load == loader.load
        assert setter == loader.set


class TestUnreadableSnapshots:
    def test_corrupt_snapshot_notifies_once(self, storage, store, notifier):
        storage.set("customers", "{not json")
        loader = build_loader(CUSTOMERS, store, DemoRemoteBackend(), notifier)

        first = loader.hydrate()
        loader.hydrate()
        asyncio.run(loader.load())

        assert first == []
        assert [n.message for n in notifier.errors] == ["Saved customers could not be read"]
        assert notifier.errors[0].resource == Resource.CUSTOMERS

    def test_snapshot_corrupted_again_is_reported_again(self, storage, store, notifier):
        storage.set("customers", "{not json")
        loader = build_loader(CUSTOMERS, store, DemoRemoteBackend(), notifier)

        loader.hydrate()
        loader.set([customer()])
        loader.hydrate()
        storage.set("customers", "[{")
        loader.hydrate()

        assert len(notifier.errors) == 2


class TestConnectivity:
    def test_unreachable_store_serves_the_snapshot(self, store, notifier, session):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        monitor = ConnectivityMonitor(backend, notifier, interval=0)
        loader = build_loader(CUSTOMERS, store, backend, notifier, session, connectivity=monitor)
        loader.slot.write([customer("c-9")], owner=USER_ID)
        monitor.report(False)

        result = asyncio.run(loader.load())

        assert result == [customer("c-9")]
        assert backend.total_calls("customers") == 0

    def test_network_failure_is_announced_once(self, store, notifier, session):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        backend.fail_next("customers", RemoteUnavailable("connection refused"))
        backend.fail_next("customers", RemoteUnavailable("connection refused"))
        monitor = ConnectivityMonitor(backend, notifier, interval=0)
        loader = build_loader(CUSTOMERS, store, backend, notifier, session, connectivity=monitor)

        async def scenario():
            await loader.load(force=True)
            await loader.load(force=True)

        asyncio.run(scenario())

        assert monitor.online is False
        assert [n.message for n in notifier.errors] == [LOST_MESSAGE]

    def test_successful_load_restores_connectivity(self, store, notifier, session):
        backend = DemoRemoteBackend(seed={"customers": [customer_row("c-1")]})
        monitor = ConnectivityMonitor(backend, notifier, interval=0)
        loader = build_loader(CUSTOMERS, store, backend, notifier, session, connectivity=monitor)
        monitor.report(False)

        result = asyncio.run(loader.load(force=True))

        assert [c.id for c in result] == ["c-1"]
        assert monitor.online is True
        assert notifier.notifications[-1].message == RESTORED_MESSAGE
