from pathlib import Path

import numpy as np
import pandas as pd
import pyarrow.parquet as pq
import pytest

from ecoflux.errors import SinkError, WiringError
from ecoflux.io.iteration import IterationSummarySink, RunningStat
from ecoflux.io.outarray import ArraySink
from ecoflux.io.parquet import ParquetSink
from ecoflux.io.sinks import TextSink
from ecoflux.timeline import Period

from conftest import drive


def test_text_sink_writes_grouped_period_files(make_engine, tmp_path: Path) -> None:
    sink = TextSink()
    engine = make_engine(
        [
            {"key": "TEMP", "summary": "AVG", "periods": ["DY", "YR"]},
            {"key": "SWCBULK", "summary": "FIN", "periods": ["YR"]},
        ],
        sinks=[sink],
        end_doy=10,
    )
    drive(engine)
    engine.close()

    outdir = tmp_path / "out"
    assert sorted(path.name for path in outdir.iterdir()) == [
        "ecoflux_regular_day.csv",
        "ecoflux_regular_year.csv",
        "ecoflux_soil_year.csv",
    ]
    day = pd.read_csv(outdir / "ecoflux_regular_day.csv")
    assert list(day.columns[:3]) == ["Year", "Day", "TEMP_max_C"]
    assert day["Day"].tolist() == list(range(1, 11))
    assert day["TEMP_avg_C"].iloc[4] == pytest.approx(5.0)

    soil = pd.read_csv(outdir / "ecoflux_soil_year.csv")
    assert list(soil.columns) == ["Year", "SWCBULK_Lyr_1", "SWCBULK_Lyr_2", "SWCBULK_Lyr_3"]
    assert soil.iloc[0].tolist() == [2001, 10.0, 10.0, 10.0]

    text = (outdir / "ecoflux_regular_year.csv").read_text().splitlines()
    assert text[1].startswith("2001,5.500000,")


def test_text_sink_marks_unreported_keys_as_na(make_engine, tmp_path: Path) -> None:
    sink = TextSink()
    engine = make_engine(
        [
            {"key": "TEMP", "summary": "AVG", "periods": ["DY"], "first_doy": 3},
            {"key": "PRECIP", "summary": "SUM", "periods": ["DY"]},
        ],
        sinks=[sink],
        end_doy=4,
    )
    drive(engine)
    engine.close()
    lines = (tmp_path / "out" / "ecoflux_regular_day.csv").read_text().splitlines()
    assert lines[1].split(",")[2:4] == ["NA", "NA"]
    assert lines[3].split(",")[2] == "3.000000"


def test_text_sink_per_iteration_files(make_engine, tmp_path: Path) -> None:
    sink = TextSink(store_all_iterations=True)
    engine = make_engine(
        [{"key": "PRECIP", "summary": "SUM", "periods": ["YR"]}],
        sinks=[sink],
        end_doy=3,
        iterations=2,
    )
    drive(engine, 0)
    drive(engine, 1)
    engine.close()
    names = sorted(path.name for path in (tmp_path / "out").iterdir())
    assert names == ["ecoflux_regular_year_i1.csv", "ecoflux_regular_year_i2.csv"]


def test_sink_lifecycle_misuse() -> None:
    sink = ArraySink()
    with pytest.raises(SinkError):
        sink.begin_iteration(0)
    with pytest.raises(SinkError):
        sink.end_row()
    with pytest.raises(SinkError):
        sink.append_fields("TEMP", [1.0])


def test_array_sink_rejects_rows_out_of_calendar_order(make_engine) -> None:
    engine = make_engine([{"key": "TEMP", "summary": "AVG", "periods": ["MO"]}], end_doy=40)
    sink = engine.sinks[0]
    sink.begin_iteration(0)
    sink.begin_row(Period.MONTH, 2001, 2)
    sink.end_row()
    with pytest.raises(WiringError, match="calendar"):
        sink.begin_row(Period.MONTH, 2001, 2)


def test_array_sink_overflow_is_a_wiring_error(make_engine) -> None:
    engine = make_engine([{"key": "TEMP", "summary": "AVG", "periods": ["YR"]}], end_doy=5)
    sink = engine.sinks[0]
    sink.begin_iteration(0)
    sink.begin_row(Period.YEAR, 2001, 0)
    sink.end_row()
    with pytest.raises(WiringError, match="buffer holds 1"):
        sink.begin_row(Period.YEAR, 2002, 0)


def test_array_sink_exports_frame_and_table(make_engine) -> None:
    engine = make_engine([{"key": "PRECIP", "summary": "SUM", "periods": ["WK"]}], end_doy=14)
    drive(engine)
    sink = engine.sinks[0]
    frame = sink.to_frame("PRECIP", Period.WEEK)
    assert frame["Week"].dtype == np.int64
    assert frame["ppt"].tolist() == [28.0, 77.0]
    table = sink.to_table("PRECIP", Period.WEEK)
    assert table.column_names == ["Year", "Week", "ppt", "rain", "snow_fall", "snowmelt", "snowloss"]
    assert sink.summary() == {"rows": {"WK": 2}}
    with pytest.raises(SinkError):
        sink.array("TEMP", Period.WEEK)


def test_parquet_sink_merges_chunks(make_engine, tmp_path: Path) -> None:
    sink = ParquetSink(flush_rows=3)
    engine = make_engine(
        [{"key": "SOILINFILT", "summary": "SUM", "periods": ["DY"]}],
        sinks=[sink],
        end_doy=10,
    )
    drive(engine)
    assert len(sink.chunks[Period.DAY]) == 3
    engine.close()

    merged = tmp_path / "out" / "ecoflux_day.parquet"
    table = pq.read_table(merged)
    assert table.num_rows == 10
    assert table.column_names == ["iteration", "Year", "Day", "SOILINFILT_soil_inf"]
    assert table.column("SOILINFILT_soil_inf").to_pylist() == [float(doy) for doy in range(1, 11)]
    assert set(table.column("iteration").to_pylist()) == {1}
    assert not any((tmp_path / "out" / "chunks").glob("*.parquet"))


def test_running_stat_matches_numpy() -> None:
    samples = np.array([[1.0, 4.0], [2.0, 8.0], [6.0, 3.0], [5.0, 5.0]])
    stat = RunningStat()
    for row in samples:
        stat.update(row)
    np.testing.assert_allclose(stat.mean, samples.mean(axis=0))
    np.testing.assert_allclose(stat.sd, samples.std(axis=0, ddof=1))

    single = RunningStat()
    single.update(np.array([3.0]))
    assert single.sd.tolist() == [0.0]


def test_iteration_summary_mean_and_sd(make_engine, tmp_path: Path) -> None:
    holder = {"iteration": 0}
    sink = IterationSummarySink()
    engine = make_engine(
        [{"key": "PRECIP", "summary": "SUM", "periods": ["YR"]}],
        sinks=[sink],
        end_doy=10,
        iterations=3,
        fn=lambda name, year, doy: float(doy) * (holder["iteration"] + 1),
    )
    for iteration in range(3):
        holder["iteration"] = iteration
        drive(engine, iteration)
    frame = sink.frame(Period.YEAR)
    assert frame["PRECIP_ppt_Mean"].tolist() == pytest.approx([110.0])
    assert frame["PRECIP_ppt_SD"].tolist() == pytest.approx([55.0])

    written = pd.read_csv(tmp_path / "out" / "ecoflux_agg_year.csv")
    assert written["PRECIP_ppt_Mean"].iloc[0] == pytest.approx(110.0)
    assert sink.summary()["runs"] == 3


def test_iteration_summary_rejects_mismatched_rows(make_engine) -> None:
    sink = IterationSummarySink()
    engine = make_engine(
        [{"key": "TEMP", "summary": "AVG", "periods": ["DY"]}],
        sinks=[sink],
        end_doy=3,
        iterations=2,
    )
    drive(engine, 0)
    sink.begin_iteration(1)
    sink.begin_row(Period.DAY, 2001, 1)
    sink.end_row()
    with pytest.raises(WiringError, match="differ"):
        sink.end_iteration()
