import asyncio
from dataclasses import replace
from datetime import date

from conftest import make_template, weekly_template
from rota.ports.shifts import DateRange
from rota.series.working_set import WorkingSetCache


def run(coro):
    return asyncio.run(coro)


def seed(store, *templates):
    async def scenario():
        return [await store.create_shift(t) for t in templates]

    return run(scenario())


def test_load_pulls_in_series_members_outside_window(store):
    seed(
        store,
        weekly_template(series_id="ser"),
        weekly_template(start_date=date(2024, 1, 22), end_date=date(2024, 1, 22), series_id="ser"),
        make_template(start_date=date(2024, 1, 22), end_date=date(2024, 1, 22)),
    )
    cache = WorkingSetCache(store)
    loaded = run(cache.load(DateRange(date(2024, 1, 1), date(2024, 1, 7))))

    assert [s.start_date for s in loaded] == [date(2024, 1, 1), date(2024, 1, 22)]
    assert {s.series_id for s in loaded} == {"ser"}
    assert cache.window == DateRange(date(2024, 1, 1), date(2024, 1, 7))


def test_load_replaces_previous_contents(store):
    seed(store, make_template(), make_template(start_date=date(2024, 3, 1), end_date=date(2024, 3, 1)))
    cache = WorkingSetCache(store)
    run(cache.load(DateRange(date(2024, 1, 1), date(2024, 1, 31))))
    run(cache.load(DateRange(date(2024, 3, 1), date(2024, 3, 31))))
    assert [s.start_date for s in cache.all()] == [date(2024, 3, 1)]


def test_local_queries(store):
    seed(
        store,
        make_template(),
        make_template(assignee_id="dr-kim", location_id="clinic-b", start_date=date(2024, 1, 5), end_date=date(2024, 1, 6)),
    )
    cache = WorkingSetCache(store)
    run(cache.load(DateRange(date(2024, 1, 1), date(2024, 1, 31))))

    assert len(cache) == 2
    assert [s.location_id for s in cache.by_location("clinic-a")] == ["clinic-a"]


def test_invalidate_and_reload(store):
    (shift_id,) = seed(store, make_template())
    cache = WorkingSetCache(store)
    run(cache.load(DateRange(date(2024, 1, 1), date(2024, 1, 31))))

    cache.invalidate()
    assert cache.stale
    assert cache.get(shift_id) is None

    run(cache.reload())
    assert not cache.stale
    assert cache.get(shift_id) is not None


def test_reload_without_window_empties_cache(store):
    cache = WorkingSetCache(store)
    cache.put(make_template().with_id("x"))
    assert run(cache.reload()) == []
    assert len(cache) == 0


def test_mirroring_helpers():
    cache = WorkingSetCache(store=None)
    a = make_template().with_id("a")
    cache.sync(a)
    assert cache.get("a") is None

    cache.put(a)
    cache.sync(replace(a, notes="synced"))
    assert cache.get("a").notes == "synced"

    members = [weekly_template(series_id="ser").with_id(i) for i in ("m1", "m2")]
    for m in members:
        cache.put(m)
    cache.replace_series("ser", members[1:])
    assert [s.id for s in cache.series_members("ser")] == ["m2"]

    cache.discard("a")
    cache.discard("a")
    assert cache.get("a") is None
