"""Tests for the migration event registry."""
import asyncio

import pytest

from clm_migrator.utils import events
from clm_migrator.utils.events import MigrationEvents


class TestMigrationEvents:
    def test_unknown_event_is_rejected(self):
        bus = MigrationEvents()
        with pytest.raises(ValueError, match="file_completed"):
            bus.subscribe("file_completed", print)

    def test_subscribe_is_idempotent(self):
        bus = MigrationEvents()
        bus.subscribe(events.FINISH, print)
        bus.subscribe(events.FINISH, print)
        assert bus.listeners(events.FINISH) == [print]

        bus.unsubscribe(events.FINISH, print)
        bus.unsubscribe(events.FINISH, print)
        assert bus.listeners(events.FINISH) == []

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self):
        bus = MigrationEvents()
        seen = []

        async def on_async(path):
            seen.append(("async", path))

        bus.subscribe(events.FOLDER_START, lambda path: seen.append(("sync", path)))
        bus.subscribe(events.FOLDER_START, on_async)

        await bus.publish(events.FOLDER_START, "/Accounts/1")

        assert seen == [("sync", "/Accounts/1"), ("async", "/Accounts/1")]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_the_others(self):
        bus = MigrationEvents()
        seen = []

        def broken(result):
            raise RuntimeError("display crashed")

        bus.subscribe(events.FILE_COMPLETE, broken)
        bus.subscribe(events.FILE_COMPLETE, seen.append)

        await bus.publish(events.FILE_COMPLETE, "a.pdf")

        assert seen == ["a.pdf"]

    @pytest.mark.asyncio
    async def test_concurrent_publishers_are_not_serialised(self):
        bus = MigrationEvents()
        both_inside = asyncio.Event()
        inside = []
        timed_out = []

        async def slow_listener(name):
            inside.append(name)
            if len(inside) == 2:
                both_inside.set()
            try:
                await asyncio.wait_for(both_inside.wait(), 1.0)
            except asyncio.TimeoutError:
                timed_out.append(name)

        bus.subscribe(events.FILE_COMPLETE, slow_listener)

        await asyncio.gather(
            bus.publish(events.FILE_COMPLETE, "a.pdf"),
            bus.publish(events.FILE_COMPLETE, "b.pdf"),
        )

        assert sorted(inside) == ["a.pdf", "b.pdf"]
        assert timed_out == []

    @pytest.mark.asyncio
    async def test_listener_unsubscribing_mid_publish(self):
        bus = MigrationEvents()
        seen = []

        def once(report):
            seen.append("once")
            bus.unsubscribe(events.FINISH, once)

        bus.subscribe(events.FINISH, once)
        bus.subscribe(events.FINISH, lambda report: seen.append("always"))

        await bus.publish(events.FINISH, None)
        await bus.publish(events.FINISH, None)

        assert seen == ["once", "always", "always"]
