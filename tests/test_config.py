from __future__ import annotations

from pathlib import Path

import pytest

from mapvid.core.config import Settings
from plugins.incidence.colors import bands_from_config


def test_spec_values_then_env_overrides() -> None:
    settings = Settings.from_mapping(
        {"data_dir": "cache", "render_workers": 2},
        env={"MAPVID_RENDER_WORKERS": "6", "MAPVID_LOCK_MAX_WAIT": "30"},
    )
    assert settings.data_dir == Path("cache")
    assert settings.render_workers == 6
    assert settings.lock_max_wait == 30.0
    assert settings.poll_max_interval is None


def test_structured_env_values_are_parsed() -> None:
    settings = Settings.from_mapping({}, env={
        "MAPVID_HEADLINES": '{"districts": "Landkreise", "states": "Länder"}',
        "MAPVID_COLOR_BANDS": "[{max: 50, color: '#00FF00', label: low}, {color: '#FF0000', label: high}]",
    })
    assert settings.headlines == {"districts": "Landkreise", "states": "Länder"}
    bands = bands_from_config(settings.color_bands)
    assert [b.color for b in bands] == ["#00FF00", "#FF0000"]


@pytest.mark.parametrize("var, raw", [
    ("MAPVID_HEADLINES", "just a string"),
    ("MAPVID_COLOR_BANDS", "{max: 5}"),
    ("MAPVID_COLOR_BANDS", "[unclosed"),
])
def test_malformed_structured_env_values_are_rejected(var, raw) -> None:
    with pytest.raises(ValueError, match=var):
        Settings.from_mapping({}, env={var: raw})


def test_unknown_settings_are_rejected() -> None:
    with pytest.raises(KeyError, match="colour"):
        Settings.from_mapping({"colour": "red"}, env={})
