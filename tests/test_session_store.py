import asyncio

import pytest

from lime_quiz.core.services.session_store import InMemorySessionStore, join_path, split_path


def test_write_read_and_remove_subtree():
    async def run():
        store = InMemorySessionStore()
        await store.write("sessions/1234", {"pin": "1234", "students": {"Mai": {"totalScore": 0}}})

        assert await store.read_once("sessions/1234/pin") == "1234"
        assert await store.exists("sessions/1234/students/Mai")

        await store.remove("sessions/1234")
        assert await store.read_once("sessions/1234") is None
        assert await store.read_once("sessions") is None

    asyncio.run(run())


def test_none_values_and_empty_maps_are_not_stored():
    async def run():
        store = InMemorySessionStore()
        await store.write("a", {"keep": 1, "drop": None, "empty": {}})
        assert await store.read_once("a") == {"keep": 1}

        await store.write("b", {})
        assert await store.exists("b") is False

    asyncio.run(run())


def test_read_returns_a_copy():
    async def run():
        store = InMemorySessionStore()
        await store.write("a", {"items": {"x": 1}})
        snapshot = await store.read_once("a")
        snapshot["items"]["x"] = 99
        assert await store.read_once("a/items/x") == 1

    asyncio.run(run())


def test_update_writes_several_children():
    async def run():
        store = InMemorySessionStore()
        await store.write("s", {"index": 0, "start": 10})
        await store.update("s", {"index": 1, "start": 20})
        assert await store.read_once("s") == {"index": 1, "start": 20}

    asyncio.run(run())


def test_forbidden_characters_in_keys_are_rejected():
    with pytest.raises(ValueError):
        split_path("sessions/12.34")
    with pytest.raises(ValueError):
        asyncio.run(InMemorySessionStore().write("x", {"bad#key": 1}))


def test_join_path_skips_empty_parts():
    assert join_path("sessions", "", "/1234/") == "sessions/1234"


def test_increment_is_atomic_under_concurrency():
    async def run():
        store = InMemorySessionStore()
        await asyncio.gather(*(store.increment("counter", 2) for _ in range(50)))
        assert await store.read_once("counter") == 100

    asyncio.run(run())


def test_create_if_absent_only_succeeds_once():
    async def run():
        store = InMemorySessionStore()
        assert await store.create_if_absent("sessions/1000", {"pin": "1000"}) is True
        assert await store.create_if_absent("sessions/1000", {"pin": "other"}) is False
        assert await store.read_once("sessions/1000/pin") == "1000"

    asyncio.run(run())


def test_transaction_returning_none_aborts():
    async def run():
        store = InMemorySessionStore()
        await store.write("x", 5)
        result = await store.transaction("x", lambda current: None)
        assert result.committed is False
        assert result.value == 5

    asyncio.run(run())


def test_advance_if_matches_compares_index():
    async def run():
        store = InMemorySessionStore()
        await store.write("s", {"currentQuestionIndex": 0, "currentQuestionStartTime": 1})
        assert await store.advance_if_matches("s", 0, 50) is True
        assert await store.advance_if_matches("s", 0, 60) is False
        assert await store.read_once("s") == {"currentQuestionIndex": 1, "currentQuestionStartTime": 50}
        assert await store.advance_if_matches("missing", 0, 60) is False

    asyncio.run(run())


def test_generated_keys_are_unique_and_ordered():
    store = InMemorySessionStore(clock=lambda: 1000.0)
    keys = [store.generate_key() for _ in range(20)]
    assert len(set(keys)) == 20
    assert [key[:16] for key in keys] == sorted(key[:16] for key in keys)


def test_append_creates_child_under_generated_key():
    async def run():
        store = InMemorySessionStore()
        first = await store.append("questionSets", {"name": "A"})
        second = await store.append("questionSets", {"name": "B"})
        stored = await store.read_once("questionSets")
        assert sorted(stored) == [first, second]
        assert stored[first]["name"] == "A"

    asyncio.run(run())


def test_subscription_delivers_current_value_then_changes():
    async def run():
        store = InMemorySessionStore()
        await store.write("sessions/1234", {"currentQuestionIndex": 0})
        subscription = store.subscribe("sessions/1234")

        assert await subscription.next() == {"currentQuestionIndex": 0}

        await store.write("sessions/1234/students/Mai", {"name": "Mai"})
        assert (await subscription.next())["students"] == {"Mai": {"name": "Mai"}}

        await store.remove("sessions")
        assert await subscription.next() is None

        subscription.cancel()
        assert store.subscription_count == 0
        with pytest.raises(StopAsyncIteration):
            await subscription.next()

    asyncio.run(run())


def test_subscription_conflates_to_latest_snapshot():
    async def run():
        store = InMemorySessionStore()
        subscription = store.subscribe("counter")
        for _ in range(5):
            await store.increment("counter", 1)
        assert await subscription.next() == 5
        subscription.cancel()

    asyncio.run(run())


def test_unrelated_paths_do_not_notify():
    async def run():
        store = InMemorySessionStore()
        subscription = store.subscribe("sessions/1111")
        await subscription.next()
        await store.write("sessions/2222", {"pin": "2222"})
        assert subscription.latest is None
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(subscription.next(), timeout=0.05)
        subscription.cancel()

    asyncio.run(run())


def test_start_runs_callback_until_cancelled():
    async def run():
        store = InMemorySessionStore()
        seen = []
        subscription = store.subscribe("value")
        task = subscription.start(seen.append)

        await asyncio.sleep(0.01)
        await store.write("value", 1)
        await asyncio.sleep(0.01)
        await store.write("value", 2)
        await asyncio.sleep(0.01)

        subscription.cancel()
        await asyncio.gather(task, return_exceptions=True)
        assert seen == [None, 1, 2]
        assert task.done()

    asyncio.run(run())
