from pathlib import Path

import pytest

from servicemaster_config import (
    COLOR_NAMES,
    DEFAULT_SCHEMES,
    ColorSchemeStore,
    get_config_path,
    load,
    load_active_name,
)
from servicemaster_core import ConfigError

SCHEME = """
  - name: {name}
    black: [0, 0, 0]
    white: [255, 255, 255]
    green: [0, 200, 0]
    yellow: [200, 200, 0]
    red: {red}
    magenta: [200, 0, 200]
    cyan: [0, 200, 200]
    blue: [0, 0, 200]
"""


def write_config(tmp_path, schemes, active="Dark"):
    path = tmp_path / "servicemaster.yaml"
    body = "".join(SCHEME.format(name=name, red=red) for name, red in schemes)
    path.write_text(f"actual_colorscheme: {active}\ncolorschemes:\n{body}")
    return str(path)


def test_load_reads_all_schemes(tmp_path):
    path = write_config(tmp_path, [("Dark", "[200, 0, 0]"), ("Light", "[255, 0, 0]")], active="Light")
    schemes = load(path)
    assert [s.name for s in schemes] == ["Dark", "Light"]
    assert schemes[1].rgb("red") == (255, 0, 0)
    assert load_active_name(path) == "Light"


@pytest.mark.parametrize("red,message", [
    ("[200, 0]", "length"),
    ("[200, 0, 256]", "0-255"),
    ("[200, 0, -1]", "0-255"),
    ("[200, yes, 0]", "integer"),
    ("[200, 0.5, 0]", "integer"),
    ("null", "Missing 'red'"),
])
def test_invalid_color_is_rejected(tmp_path, red, message):
    path = write_config(tmp_path, [("Dark", red)])
    with pytest.raises(ConfigError, match=message):
        load(path)


def test_missing_colorschemes_list(tmp_path):
    path = tmp_path / "servicemaster.yaml"
    path.write_text("actual_colorscheme: Dark\n")
    with pytest.raises(ConfigError, match="colorschemes"):
        load(str(path))


def test_duplicate_names_are_rejected(tmp_path):
    path = write_config(tmp_path, [("Dark", "[1, 2, 3]"), ("Dark", "[4, 5, 6]")])
    with pytest.raises(ConfigError, match="Duplicate"):
        load(path)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "servicemaster.yaml"
    path.write_text("colorschemes: [\n")
    with pytest.raises(ConfigError, match="YAML"):
        load(str(path))


def test_missing_active_name(tmp_path):
    path = tmp_path / "servicemaster.yaml"
    path.write_text("colorschemes: []\n")
    with pytest.raises(ConfigError, match="actual_colorscheme"):
        load_active_name(str(path))


def test_store_falls_back_to_builtin_schemes(tmp_path):
    store = ColorSchemeStore.from_config(str(tmp_path / "missing.yaml"))
    assert store.names() == [s["name"] for s in DEFAULT_SCHEMES]
    assert store.active_index == 0


def test_store_uses_actual_colorscheme(tmp_path):
    path = write_config(tmp_path, [("Dark", "[1, 2, 3]"), ("Light", "[4, 5, 6]")], active="Light")
    assert ColorSchemeStore.from_config(path).active.name == "Light"


def test_store_prefers_command_line_name(tmp_path):
    path = write_config(tmp_path, [("Dark", "[1, 2, 3]"), ("Light", "[4, 5, 6]")], active="Light")
    assert ColorSchemeStore.from_config(path, "Dark").active.name == "Dark"


def test_unknown_name_keeps_first_scheme(tmp_path):
    path = write_config(tmp_path, [("Dark", "[1, 2, 3]"), ("Light", "[4, 5, 6]")])
    assert ColorSchemeStore.from_config(path, "Nope").active.name == "Dark"


def test_empty_store_is_an_error():
    with pytest.raises(ConfigError):
        ColorSchemeStore([])


def test_shipped_config_matches_builtin_schemes():
    path = Path(__file__).resolve().parents[1] / "servicemaster.yaml"
    schemes = load(str(path))
    assert [s.name for s in schemes] == [s["name"] for s in DEFAULT_SCHEMES]
    for scheme, table in zip(schemes, DEFAULT_SCHEMES):
        for color in COLOR_NAMES:
            assert list(scheme.rgb(color)) == table[color]
    assert load_active_name(str(path)) == "Default"


def test_config_path_precedence(monkeypatch):
    monkeypatch.setenv("SERVICEMASTER_CONFIG", "/tmp/env.yaml")
    assert get_config_path("/tmp/cli.yaml") == "/tmp/cli.yaml"
    assert get_config_path() == "/tmp/env.yaml"
    monkeypatch.delenv("SERVICEMASTER_CONFIG")
    assert get_config_path() == "/etc/servicemaster/servicemaster.yaml"
