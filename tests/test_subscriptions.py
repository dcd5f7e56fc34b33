"""Tests for push-channel handling: coalescing, patches, teardown and retry."""

import asyncio
from dataclasses import replace

from invoice_sync.errors import SubscriptionError
from invoice_sync.models.common import Resource, Session

from factories import OTHER_USER_ID, USER_ID, customer_row, payment_method_row


def selects(backend, table):
    return backend.calls[f"select:{table}"]


async def started(orchestrator):
    orchestrator.start()
    await orchestrator.wait_idle()
    return orchestrator


def test_burst_of_events_costs_one_reload(backend, make_orchestrator, session):
    backend.tables["customers"]["c-1"] = customer_row("c-1")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        before = selects(backend, "customers")
        for _ in range(5):
            backend.emit("customers", "UPDATE", new=customer_row("c-1"))
            await asyncio.sleep(0.005)
        await asyncio.sleep(0.15)
        await orchestrator.wait_idle()
        after = selects(backend, "customers")
        await orchestrator.close()
        return after - before

    assert asyncio.run(scenario()) == 1


def test_spaced_events_reload_each_time(backend, make_orchestrator, session):
    backend.tables["customers"]["c-1"] = customer_row("c-1")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        before = selects(backend, "customers")
        for _ in range(3):
            backend.emit("customers", "UPDATE", new=customer_row("c-1"))
            await asyncio.sleep(0.12)
            await orchestrator.wait_idle()
        after = selects(backend, "customers")
        await orchestrator.close()
        return after - before

    assert asyncio.run(scenario()) == 3


def test_document_insert_triggers_reload_not_patch(backend, make_orchestrator, session):
    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        before = selects(backend, "documents")
        backend.emit("documents", "INSERT", new={"id": "d-9", "user_id": USER_ID})
        await asyncio.sleep(0.01)
        patched = list(orchestrator.value(Resource.DOCUMENTS))
        await asyncio.sleep(0.1)
        await orchestrator.wait_idle()
        after = selects(backend, "documents")
        await orchestrator.close()
        return patched, after - before

    patched, reloads = asyncio.run(scenario())

    assert patched == []
    assert reloads == 1


def test_payment_method_insert_and_delete_patch_in_place(backend, make_orchestrator, session):
    backend.tables["payment_methods"]["pm-1"] = payment_method_row("pm-1")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        before = selects(backend, "payment_methods")

        await backend.insert("payment_methods", payment_method_row("pm-2", bank="Banistmo"))
        await asyncio.sleep(0.01)
        after_insert = [m.id for m in orchestrator.value(Resource.PAYMENT_METHODS)]

        await backend.delete("payment_methods", "pm-1")
        await asyncio.sleep(0.01)
        after_delete = [m.id for m in orchestrator.value(Resource.PAYMENT_METHODS)]

        await asyncio.sleep(0.05)
        reloads = selects(backend, "payment_methods") - before
        snapshot = [m.id for m in orchestrator.loaders[Resource.PAYMENT_METHODS].slot.read()]
        await orchestrator.close()
        return after_insert, after_delete, reloads, snapshot

    after_insert, after_delete, reloads, snapshot = asyncio.run(scenario())

    assert after_insert == ["pm-1", "pm-2"]
    assert after_delete == ["pm-2"]
    assert reloads == 0
    assert snapshot == ["pm-2"]


def test_duplicate_payment_method_insert_is_ignored(backend, make_orchestrator, session):
    backend.tables["payment_methods"]["pm-1"] = payment_method_row("pm-1")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        backend.emit("payment_methods", "INSERT", new=payment_method_row("pm-1"))
        await asyncio.sleep(0.01)
        ids = [m.id for m in orchestrator.value(Resource.PAYMENT_METHODS)]
        await orchestrator.close()
        return ids

    assert asyncio.run(scenario()) == ["pm-1"]


def test_payment_method_update_reloads(backend, make_orchestrator, session):
    backend.tables["payment_methods"]["pm-1"] = payment_method_row("pm-1")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        before = selects(backend, "payment_methods")
        await backend.update("payment_methods", "pm-1", {"name": "Renamed"})
        await asyncio.sleep(0.08)
        await orchestrator.wait_idle()
        reloads = selects(backend, "payment_methods") - before
        await orchestrator.close()
        return reloads

    assert asyncio.run(scenario()) == 1


def test_sign_out_closes_every_channel(backend, make_orchestrator, session):
    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        opened = len(backend.open_channels)
        await orchestrator.sign_out()
        before = backend.total_calls()
        backend.emit("customers", "UPDATE", new=customer_row("c-1"))
        await asyncio.sleep(0.1)
        after = backend.total_calls()
        channels = len(backend.open_channels)
        await orchestrator.close()
        return opened, channels, after - before

    opened, channels, calls = asyncio.run(scenario())

    assert opened == len(Resource)
    assert channels == 0
    assert calls == 0


def test_sign_in_as_other_user_replaces_channels(backend, make_orchestrator, session):
    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        await orchestrator.sign_in(Session(OTHER_USER_ID))
        await orchestrator.wait_idle()
        filters = {handle.filter for handle in backend.open_channels}
        count = len(backend.open_channels)
        await orchestrator.close()
        return filters, count

    filters, count = asyncio.run(scenario())

    assert filters == {f"user_id=eq.{OTHER_USER_ID}"}
    assert count == len(Resource)


def test_events_for_other_users_are_not_delivered(backend, make_orchestrator, session):
    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        before = backend.total_calls()
        delivered = backend.emit(
            "customers", "UPDATE", new=customer_row("c-1", user_id=OTHER_USER_ID)
        )
        await asyncio.sleep(0.1)
        after = backend.total_calls()
        await orchestrator.close()
        return delivered, after - before

    assert asyncio.run(scenario()) == (0, 0)


def test_failed_subscription_is_retried(backend, make_orchestrator, session):
    backend.fail_subscriptions = SubscriptionError("socket refused")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        during_outage = len(orchestrator.subscriptions.channels)
        backend.fail_subscriptions = None
        await asyncio.sleep(0.1)
        recovered = len(orchestrator.subscriptions.channels)
        await orchestrator.close()
        return during_outage, recovered

    during_outage, recovered = asyncio.run(scenario())

    assert during_outage == 0
    assert recovered == len(Resource)


def test_dropped_channel_reconnects_and_reloads(backend, make_orchestrator, session):
    backend.tables["customers"]["c-1"] = customer_row("c-1")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        before = selects(backend, "customers")
        backend.drop_channels("customers")
        await asyncio.sleep(0)
        dropped = Resource.CUSTOMERS not in orchestrator.subscriptions.channels
        await asyncio.sleep(0.15)
        await orchestrator.wait_idle()
        reopened = Resource.CUSTOMERS in orchestrator.subscriptions.channels
        reloads = selects(backend, "customers") - before
        await orchestrator.close()
        return dropped, reopened, reloads

    assert asyncio.run(scenario()) == (True, True, 1)


def test_drop_is_retried_when_release_fails(backend, make_orchestrator, session):
    release = backend.unsubscribe

    def failing_release(handle):
        raise SubscriptionError("socket already gone")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        backend.drop_channels("customers")
        backend.unsubscribe = failing_release
        await asyncio.sleep(0)
        dropped = Resource.CUSTOMERS not in orchestrator.subscriptions.channels
        backend.unsubscribe = release
        await asyncio.sleep(0.15)
        await orchestrator.wait_idle()
        reopened = Resource.CUSTOMERS in orchestrator.subscriptions.channels
        await orchestrator.close()
        return dropped, reopened

    assert asyncio.run(scenario()) == (True, True)


def test_patch_during_load_fetches_again(backend, make_orchestrator, session):
    backend.tables["payment_methods"]["pm-1"] = payment_method_row("pm-1")

    async def scenario():
        orchestrator = await started(make_orchestrator(session))
        loader = orchestrator.loaders[Resource.PAYMENT_METHODS]
        before = selects(backend, "payment_methods")
        gate = asyncio.Event()
        fetch = loader.spec.fetch

        async def slow_fetch(source):
            await gate.wait()
            return await fetch(source)

        loader.spec = replace(loader.spec, fetch=slow_fetch)
        pending = asyncio.create_task(loader.load(force=True))
        await asyncio.sleep(0.01)
        await backend.insert("payment_methods", payment_method_row("pm-2", bank="Banistmo"))
        await asyncio.sleep(0.01)
        patched = sorted(m.id for m in loader.value)
        gate.set()
        await pending
        await asyncio.sleep(0.05)
        await orchestrator.wait_idle()
        ids = sorted(m.id for m in loader.value)
        reloads = selects(backend, "payment_methods") - before
        await orchestrator.close()
        return patched, ids, reloads

    patched, ids, reloads = asyncio.run(scenario())

    assert patched == ["pm-1", "pm-2"]
    assert ids == ["pm-1", "pm-2"]
    assert reloads == 2
