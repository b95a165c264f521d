import numpy as np
import pytest

from ecoflux.accumulators import AccumulatorBank
from ecoflux.collector import DailyCollector
from ecoflux.descriptors import DescriptorTable
from ecoflux.errors import WiringError
from ecoflux.keys import DomainObject
from ecoflux.rollup import FinalizedStore, PeriodFinalizer
from ecoflux.schema import OutputSetup, SiteFeatures
from ecoflux.timeline import Clock, Period

from conftest import RampSource, drive


def test_weekly_sum_of_constant_precipitation(make_engine) -> None:
    engine = make_engine(
        [{"key": "PRECIP", "summary": "SUM", "periods": ["WK"]}],
        fn=lambda name, year, doy: 4.0,
    )
    drive(engine)
    frame = engine.sinks[0].to_frame("PRECIP", Period.WEEK)
    assert len(frame) == 53
    first = frame.iloc[0]
    assert (first["Year"], first["Week"]) == (2001, 1)
    assert first["ppt"] == pytest.approx(28.0)
    # week 53 of a common year holds only day 365
    assert frame.iloc[-1]["Week"] == 53
    assert frame.iloc[-1]["ppt"] == pytest.approx(4.0)


def test_weekly_average_of_daily_precipitation(make_engine) -> None:
    engine = make_engine(
        [{"key": "PRECIP", "summary": "AVG", "periods": ["WK"]}],
    )
    drive(engine)
    frame = engine.sinks[0].to_frame("PRECIP", Period.WEEK)
    assert frame["snow_fall"].iloc[0] == pytest.approx(4.0)
    assert frame["snow_fall"].iloc[1] == pytest.approx(11.0)


def test_week_row_is_emitted_on_first_day_of_next_week(make_engine) -> None:
    engine = make_engine([{"key": "PRECIP", "summary": "SUM", "periods": ["WK"]}])
    engine.begin_iteration(0)
    engine.on_new_year(2001)
    for doy in range(1, 8):
        assert engine.on_new_day(doy) == {}
    assert engine.on_new_day(8) == {Period.WEEK: 1}
    row = engine.sinks[0].array("PRECIP", Period.WEEK)[0]
    assert row[:2].tolist() == [2001, 1]
    assert row[2] == pytest.approx(sum(range(1, 8)))


def test_final_value_of_layered_key(make_engine) -> None:
    engine = make_engine(
        [{"key": "SWCBULK", "summary": "FIN", "periods": ["MO"]}],
        fn=lambda name, year, doy: 12.5 if doy == 120 else float(doy),
    )
    drive(engine)
    frame = engine.sinks[0].to_frame("SWCBULK", Period.MONTH)
    assert frame["Month"].tolist() == list(range(1, 13))
    april = frame.iloc[3]
    assert april["Month"] == 4
    assert april[["Lyr_1", "Lyr_2", "Lyr_3"]].tolist() == [12.5, 12.5, 12.5]
    assert frame.iloc[0]["Lyr_1"] == 31.0
    assert frame.iloc[11]["Lyr_1"] == 365.0


def test_partial_week_is_flushed_with_elapsed_day_divisor(make_engine) -> None:
    engine = make_engine(
        [{"key": "TEMP", "summary": "AVG", "periods": ["WK", "YR"]}],
        end_doy=17,
    )
    drive(engine)
    weeks = engine.sinks[0].to_frame("TEMP", Period.WEEK)
    assert weeks["Week"].tolist() == [1, 2, 3]
    assert weeks["avg_C"].tolist() == pytest.approx([4.0, 11.0, 16.0])
    year = engine.sinks[0].to_frame("TEMP", Period.YEAR)
    assert year["Year"].tolist() == [2001]
    assert year["avg_C"].iloc[0] == pytest.approx(9.0)


def test_values_outside_the_window_are_not_collected(make_engine) -> None:
    source = RampSource(["TEMP"])
    engine = make_engine(
        [{"key": "TEMP", "summary": "AVG", "periods": ["DY", "WK"], "first_doy": 100, "last_doy": 200}],
        source=source,
    )
    drive(engine)
    pulled = sorted({doy for _, _, doy in source.calls})
    assert pulled == list(range(100, 201))

    days = engine.sinks[0].to_frame("TEMP", Period.DAY)
    assert days["Day"].iloc[0] == 100
    assert days["Day"].iloc[-1] == 200
    assert len(days) == 101

    weeks = engine.sinks[0].to_frame("TEMP", Period.WEEK)
    assert weeks["Week"].tolist() == list(range(15, 30))
    assert weeks["max_C"].iloc[-1] == pytest.approx((197 + 198 + 199 + 200) / 4)


def _components(keys, **clock_kwargs):
    clock = Clock(2001, 2001, **clock_kwargs)
    table = DescriptorTable(OutputSetup(keys=keys), SiteFeatures(), clock)
    bank = AccumulatorBank(table)
    store = FinalizedStore()
    finalizer = PeriodFinalizer(table, bank, store)
    source = RampSource([row["key"] for row in keys])
    collector = DailyCollector(table, bank, source, clock)
    return clock, table, bank, store, finalizer, collector


def test_finalize_twice_is_a_no_op() -> None:
    clock, _, bank, store, finalizer, collector = _components(
        [{"key": "PRECIP", "summary": "SUM", "periods": ["MO"]}]
    )
    clock.new_year(2001)
    for doy in (1, 2, 3):
        clock.new_day(doy)
        collector.collect_today()
    assert finalizer.finalize(DomainObject.WEATHER, Period.MONTH) == 1
    first = store.get("PRECIP", Period.MONTH).copy()
    np.testing.assert_allclose(first, 6.0)
    assert bank.get(DomainObject.WEATHER, Period.MONTH).is_zero()
    assert finalizer.finalize(DomainObject.WEATHER, Period.MONTH) == 0
    np.testing.assert_array_equal(store.get("PRECIP", Period.MONTH), first)


def test_day_and_unknown_pairs_are_wiring_errors() -> None:
    _, _, _, _, finalizer, _ = _components([{"key": "PRECIP", "summary": "SUM", "periods": ["DY", "MO"]}])
    with pytest.raises(WiringError):
        finalizer.finalize(DomainObject.WEATHER, Period.DAY)
    with pytest.raises(WiringError):
        finalizer.finalize(DomainObject.SOIL_WATER, Period.MONTH)
    with pytest.raises(WiringError):
        finalizer.finalize(DomainObject.WEATHER, Period.YEAR)


def test_collecting_the_same_day_twice_is_rejected() -> None:
    clock, _, _, _, _, collector = _components([{"key": "PRECIP", "summary": "SUM", "periods": ["DY"]}])
    clock.new_year(2001)
    clock.new_day(1)
    collector.collect_today()
    with pytest.raises(WiringError, match="already collected"):
        collector.collect_today()


def test_source_with_wrong_field_count_is_rejected() -> None:
    clock, table, bank, _, _, _ = _components([{"key": "PRECIP", "summary": "SUM", "periods": ["DY"]}])

    class ShortSource:
        def values_today(self, domain, year, doy):
            return {"PRECIP": [1.0, 2.0]}

    collector = DailyCollector(table, bank, ShortSource(), clock)
    clock.new_year(2001)
    clock.new_day(1)
    with pytest.raises(WiringError, match="expected 5"):
        collector.collect_today()


def test_missing_key_in_source_is_rejected() -> None:
    clock, table, bank, _, _, _ = _components([{"key": "PRECIP", "summary": "SUM", "periods": ["DY"]}])

    class EmptySource:
        def values_today(self, domain, year, doy):
            return {}

    collector = DailyCollector(table, bank, EmptySource(), clock)
    clock.new_year(2001)
    clock.new_day(1)
    with pytest.raises(WiringError, match="no value for PRECIP"):
        collector.collect_today()


def test_new_year_without_flush_is_rejected(make_engine) -> None:
    keys = [{"key": "PRECIP", "summary": "SUM", "periods": ["MO", "YR"]}]
    engine = make_engine(keys, end_year=2002, fn=lambda name, year, doy: 1.0)
    engine.begin_iteration(0)
    engine.on_new_year(2001)
    for doy in range(engine.clock.first_doy, engine.clock.last_doy + 1):
        engine.on_new_day(doy)
    with pytest.raises(WiringError, match="on_run_flush"):
        engine.on_new_year(2002)

    engine = make_engine(keys, end_year=2002, fn=lambda name, year, doy: 1.0)
    drive(engine)
    years = engine.sinks[0].to_frame("PRECIP", Period.YEAR)
    assert years["Year"].tolist() == [2001, 2002]
    assert years["ppt"].tolist() == pytest.approx([365.0, 365.0])


def test_windowed_key_leaves_its_slot_empty_outside_the_window() -> None:
    clock, _, bank, _, _, collector = _components(
        [
            {"key": "TEMP", "summary": "AVG", "periods": ["WK"], "first_doy": 100, "last_doy": 200},
            {"key": "PRECIP", "summary": "SUM", "periods": ["WK"]},
        ]
    )
    weekly = bank.get(DomainObject.WEATHER, Period.WEEK)
    assert weekly.slot("TEMP").days == 0
    assert not weekly.slot("TEMP").total.any()

    clock.new_year(2001)
    clock.new_day(50)
    collector.collect_today()
    assert weekly.slot("TEMP").days == 0
    assert not weekly.slot("TEMP").total.any()
    assert weekly.slot("PRECIP").days == 1

    clock.new_day(150)
    collector.collect_today()
    assert weekly.slot("TEMP").days == 1
    np.testing.assert_allclose(weekly.slot("TEMP").total, 150.0)
    assert weekly.slot("PRECIP").days == 2
