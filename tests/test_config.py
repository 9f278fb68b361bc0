import json

import pytest

from wavefield.config import (
    PRESETS,
    Band,
    WavefieldConfig,
    config_from_dict,
    get_preset,
    load_config,
    merge_config_with_options,
    parse_band,
    validate_config,
)
from wavefield.errors import ConfigurationError, InvalidBandError


def test_default_config_is_single_band():
    config = WavefieldConfig()
    assert config.bands == (Band(12.0, 15.0),)
    assert not config.stacked
    assert config.grid_resolution == (700, 300)
    assert config.smoothing_kernel_size == 11
    assert config.channel_count == 32
    validate_config(config, sample_rate=1000.0)


def test_stacked_preset():
    config = get_preset("stacked")
    assert config.stacked
    assert [b.label for b in config.bands] == ["4-8 Hz", "12-15 Hz", "30-45 Hz"]
    assert config.colormaps == ("Blues", "Greens", "Reds")
    assert config.display_gain == 2.0
    validate_config(config, sample_rate=1000.0)


def test_unknown_preset():
    with pytest.raises(ConfigurationError, match="Unknown preset"):
        get_preset("quad")


def test_load_config_preset_with_override(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"preset": "stacked", "display_gain": 3.0, "lut_size": 64}))

    config = load_config(path)

    assert config.bands == PRESETS["stacked"].bands
    assert config.display_gain == 3.0
    assert config.lut_size == 64


def test_load_config_bands_as_pairs(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"bands": [[8, 12]], "grid_resolution": [70, 30]}))

    config = load_config(path)

    assert config.bands == (Band(8.0, 12.0),)
    assert config.grid_resolution == (70, 30)


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(tmp_path / "nope.json")


def test_load_config_bad_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{bands: ")
    with pytest.raises(ConfigurationError, match="Invalid JSON"):
        load_config(path)


def test_load_config_rejects_non_object(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2]")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_unknown_option_rejected():
    with pytest.raises(ConfigurationError, match="Unknown config options"):
        config_from_dict({"kernel": 5})


@pytest.mark.parametrize(
    "options",
    [
        {"smoothing_kernel_size": 10},
        {"smoothing_kernel_size": 0},
        {"grid_resolution": [1, 300]},
        {"interpolation": "nearest"},
        {"epsilon": 0.0},
        {"filter_order": 0},
        {"bands": []},
        {"bands": [[1, 2], [3, 4]]},  # multi-band without colormaps
        {"bands": [[1, 2], [3, 4]], "colormaps": ["Blues", "NotAColormap"]},
    ],
)
def test_invalid_options(options):
    with pytest.raises(ConfigurationError):
        config_from_dict(options)


def test_band_validation_against_nyquist():
    Band(12.0, 15.0).validate(1000.0)
    with pytest.raises(InvalidBandError) as info:
        Band(300.0, 600.0).validate(1000.0)
    assert info.value.nyquist == 500.0
    with pytest.raises(InvalidBandError):
        Band(15.0, 12.0).validate()
    with pytest.raises(InvalidBandError):
        Band(0.0, 12.0).validate()


def test_invalid_band_is_configuration_error():
    with pytest.raises(ConfigurationError):
        validate_config(WavefieldConfig(bands=(Band(12.0, 700.0),)), sample_rate=1000.0)


def test_merge_ignores_none():
    base = WavefieldConfig()
    assert merge_config_with_options(base, bands=None, interpolation=None) is base

    merged = merge_config_with_options(base, interpolation="cubic")
    assert merged.interpolation == "cubic"
    assert merged.bands == base.bands


@pytest.mark.parametrize("text", ["12-15", "12:15", "12,15", "12.0-15.0"])
def test_parse_band(text):
    assert parse_band(text) == Band(12.0, 15.0)


@pytest.mark.parametrize("text", ["12", "a-b", "15-12"])
def test_parse_band_rejects(text):
    with pytest.raises(ConfigurationError):
        parse_band(text)


def test_to_dict_round_trips_through_config_from_dict():
    config = get_preset("stacked")
    assert config_from_dict(config.to_dict()) == config
