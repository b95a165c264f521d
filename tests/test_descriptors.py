import pytest

from ecoflux.descriptors import DescriptorTable
from ecoflux.errors import ConfigurationError
from ecoflux.keys import DomainObject, SummaryType
from ecoflux.schema import OutputSetup, SiteFeatures
from ecoflux.timeline import Clock, Period
from ecoflux.warnings import ConfigurationWarning


def _table(keys, site=None, clock=None, timestep=None) -> DescriptorTable:
    setup = OutputSetup(keys=keys, timestep=timestep)
    return DescriptorTable(setup, site or SiteFeatures(), clock)


def test_fin_on_scalar_key_is_demoted_to_avg() -> None:
    with pytest.warns(ConfigurationWarning, match="TEMP"):
        table = _table([{"key": "TEMP", "summary": "FIN", "periods": ["MO"]}])
    assert table.summary_type_of("TEMP") is SummaryType.AVG
    assert table.is_active("TEMP")
    assert len(table.notices) == 1


def test_fin_on_layered_key_is_kept() -> None:
    table = _table([{"key": "SWCBULK", "summary": "fin", "periods": "MO YR"}])
    assert table.summary_type_of("SWCBULK") is SummaryType.FIN
    assert table.periods_of("SWCBULK") == (Period.MONTH, Period.YEAR)
    assert table.notices == []


def test_deep_drainage_key_disabled_without_feature() -> None:
    with pytest.warns(ConfigurationWarning, match="deep_drainage"):
        table = _table([{"key": "DEEPSWC", "summary": "SUM", "periods": ["YR"]}])
    assert not table.is_active("DEEPSWC")
    assert table.active_keys() == []

    enabled = _table(
        [{"key": "DEEPSWC", "summary": "SUM", "periods": ["YR"]}],
        site=SiteFeatures(deep_drainage=True),
    )
    assert enabled.is_active("DEEPSWC")


def test_legacy_marker_is_disabled_with_warning() -> None:
    with pytest.warns(ConfigurationWarning, match="unimplemented"):
        table = _table(
            [
                {"key": "ALLH2O", "summary": "AVG", "periods": ["DY"]},
                {"key": "PET", "summary": "SUM", "periods": ["DY"]},
            ]
        )
    assert table.active_keys() == ["PET"]


def test_unknown_key_is_fatal() -> None:
    with pytest.raises(ConfigurationError, match="NOPE"):
        _table([{"key": "NOPE", "summary": "AVG", "periods": ["DY"]}])


def test_missing_periods_is_fatal() -> None:
    with pytest.raises(ConfigurationError, match="no output periods"):
        _table([{"key": "TEMP", "summary": "AVG"}])


def test_off_key_is_silently_inactive() -> None:
    table = _table([{"key": "TEMP", "summary": "OFF", "periods": ["DY"]}])
    assert not table.is_active("TEMP")
    assert table.summary_type_of("TEMP") is SummaryType.OFF
    assert table.periods_of("TEMP") == ()
    assert table.notices == []


def test_global_timestep_overrides_rows() -> None:
    table = _table(
        [
            {"key": "TEMP", "summary": "AVG", "periods": ["DY"]},
            {"key": "PRECIP", "summary": "SUM", "periods": ["YR"]},
        ],
        timestep=["WK", "MO"],
    )
    assert table.periods_of("TEMP") == (Period.WEEK, Period.MONTH)
    assert table.periods_of("PRECIP") == (Period.WEEK, Period.MONTH)
    assert table.periods_in_use() == (Period.WEEK, Period.MONTH)


def test_establishment_is_forced_to_yearly_sum() -> None:
    table = _table(
        [{"key": "ESTABL", "summary": "AVG", "periods": ["DY"], "first_doy": 50, "last_doy": 60}],
        site=SiteFeatures(n_estab_species=2),
    )
    assert table.summary_type_of("ESTABL") is SummaryType.SUM
    assert table.periods_of("ESTABL") == (Period.YEAR,)
    assert table.valid_window_of("ESTABL", 2001) == (1, 365)
    assert table.columns_of("ESTABL") == ["species_1", "species_2"]


def test_layered_columns_follow_site() -> None:
    site = SiteFeatures(n_layers=3, n_evap_layers=2)
    table = _table(
        [
            {"key": "LYRDRAIN", "summary": "SUM", "periods": ["DY"]},
            {"key": "EVAPSOIL", "summary": "SUM", "periods": ["DY"]},
            {"key": "TRANSP", "summary": "SUM", "periods": ["DY"]},
        ],
        site=site,
    )
    assert table.columns_of("LYRDRAIN") == ["Lyr_1", "Lyr_2"]
    assert table.ncol_of("EVAPSOIL") == 2
    assert table.ncol_of("TRANSP") == 5 * 3
    assert table.columns_of("TRANSP")[:4] == ["total_Lyr_1", "total_Lyr_2", "total_Lyr_3", "tree_Lyr_1"]
    assert [entry.name for entry in table.keys_for(DomainObject.SOIL_WATER)] == ["LYRDRAIN", "EVAPSOIL", "TRANSP"]


def test_window_is_clamped_to_simulated_days() -> None:
    clock = Clock(2000, 2001, start_doy=120, end_doy=150)
    table = _table(
        [{"key": "TEMP", "summary": "AVG", "periods": ["DY"], "first_doy": 100, "last_doy": 200}],
        clock=clock,
    )
    assert table.valid_window_of("TEMP", 2000) == (120, 200)
    assert table.valid_window_of("TEMP", 2001) == (100, 150)

    table.new_year(*clock.bounds(2001))
    entry = table.descriptor("TEMP")
    assert (entry.first_doy, entry.last_doy) == (100, 150)
    assert not entry.in_window(151)
    table.new_year(1, 366)
    assert (entry.first_doy, entry.last_doy) == (100, 200)
