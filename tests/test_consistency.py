import asyncio
from datetime import date

import pytest

from conftest import make_template, weekly_template
from rota.errors import StoreError
from rota.series.consistency import SeriesConsistencyMaintainer
from rota.series.working_set import WorkingSetCache


def run(coro):
    return asyncio.run(coro)


def seed_series(store, series_id, days):
    async def scenario():
        return [
            await store.create_shift(weekly_template(start_date=date(2024, 1, d), end_date=date(2024, 1, d), series_id=series_id))
            for d in days
        ]

    return run(scenario())


def test_reconcile_leaves_multi_member_series_alone(store):
    seed_series(store, "ser", (1, 8))
    assert run(SeriesConsistencyMaintainer(store).reconcile("ser")) is None
    assert len(run(store.get_shifts_by_series("ser"))) == 2


def test_reconcile_detaches_last_member(store, caplog):
    (only,) = seed_series(store, "ser", (1,))
    cache = WorkingSetCache(store)
    cache.put(run(store.get_shift(only)))

    with caplog.at_level("INFO"):
        detached = run(SeriesConsistencyMaintainer(store, cache).reconcile("ser"))

    assert detached.id == only
    stored = run(store.get_shift(only))
    assert stored.series_id is None
    assert stored.is_recurring is False
    assert stored.recurrence_pattern is None
    assert cache.get(only).series_id is None
    assert "series.consistency.detached_last_member" in caplog.text


def test_reconcile_empty_series_is_noop(store):
    assert run(SeriesConsistencyMaintainer(store).reconcile("gone")) is None


def test_detach_missing_shift(store):
    ghost = weekly_template(series_id="ser").with_id("ghost")
    with pytest.raises(StoreError):
        run(SeriesConsistencyMaintainer(store).detach(ghost))


def test_sweep_repairs_lone_members_and_orphaned_flags(store):
    seed_series(store, "pair", (1, 8))
    (lone,) = seed_series(store, "lone", (3,))

    async def add_orphan():
        return await store.create_shift(make_template(recurrence_end_date=date(2024, 2, 1), is_recurring=True))

    orphan = run(add_orphan())

    repaired = run(SeriesConsistencyMaintainer(store).sweep())

    assert {s.id for s in repaired} == {lone, orphan}
    assert len(run(store.get_shifts_by_series("pair"))) == 2
    assert all(
        not s.is_recurring and s.recurrence_end_date is None
        for s in run(store.get_all_shifts())
        if s.series_id is None
    )
