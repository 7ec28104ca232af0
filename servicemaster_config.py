#!/usr/bin/env python3

import os
import logging

import yaml

from servicemaster_core import ConfigError, _

logger = logging.getLogger(__name__)

CONFIG_FILE = "/etc/servicemaster/servicemaster.yaml"

COLOR_NAMES = ["black", "white", "green", "yellow", "red", "magenta", "cyan", "blue"]

# Used when no configuration file exists. servicemaster.yaml ships the same set.
DEFAULT_SCHEMES = [
    {
        "name": "Default",
        "black": [0, 0, 0], "white": [229, 229, 229], "green": [0, 205, 0], "yellow": [205, 205, 0],
        "red": [205, 0, 0], "magenta": [205, 0, 205], "cyan": [0, 205, 205], "blue": [0, 0, 238],
    },
    {
        "name": "Nord",
        "black": [46, 52, 64], "white": [236, 239, 244], "green": [163, 190, 140], "yellow": [235, 203, 139],
        "red": [191, 97, 106], "magenta": [180, 142, 173], "cyan": [136, 192, 208], "blue": [94, 129, 172],
    },
    {
        "name": "Dracula",
        "black": [40, 42, 54], "white": [248, 248, 242], "green": [80, 250, 123], "yellow": [241, 250, 140],
        "red": [255, 85, 85], "magenta": [255, 121, 198], "cyan": [139, 233, 253], "blue": [98, 114, 164],
    },
    {
        "name": "Gruvbox",
        "black": [40, 40, 40], "white": [235, 219, 178], "green": [152, 151, 26], "yellow": [215, 153, 33],
        "red": [204, 36, 29], "magenta": [177, 98, 134], "cyan": [104, 157, 106], "blue": [69, 133, 136],
    },
    {
        "name": "Solarized Light",
        "black": [253, 246, 227], "white": [88, 110, 117], "green": [133, 153, 0], "yellow": [181, 137, 0],
        "red": [220, 50, 47], "magenta": [211, 54, 130], "cyan": [42, 161, 152], "blue": [38, 139, 210],
    },
    {
        "name": "Monochrome",
        "black": [0, 0, 0], "white": [255, 255, 255], "green": [190, 190, 190], "yellow": [210, 210, 210],
        "red": [150, 150, 150], "magenta": [170, 170, 170], "cyan": [200, 200, 200], "blue": [90, 90, 90],
    },
]


def get_config_path(cli_path=None):
    return cli_path or os.environ.get("SERVICEMASTER_CONFIG") or CONFIG_FILE


# -------------------------
# ColorScheme
# -------------------------

class ColorScheme:
    """A named set of the eight base colors as 0-255 RGB triples."""

    def __init__(self, name, colors):
        self.name = name
        self.colors = dict(colors)

    def rgb(self, color_name):
        return tuple(self.colors[color_name])

    def __repr__(self):
        return f"ColorScheme({self.name!r})"

    @staticmethod
    def _parse_rgb(value, color_name, scheme_name):
        if value is None:
            raise ConfigError(_("Missing '{}' in scheme '{}'").format(color_name, scheme_name))
        if not isinstance(value, (list, tuple)) or len(value) != 3:
            raise ConfigError(_("Invalid RGB array length for '{}' in scheme '{}'").format(color_name, scheme_name))
        rgb = []
        for channel in value:
            # bool is an int subclass, YAML "yes" must not pass as 1
            if isinstance(channel, bool) or not isinstance(channel, int):
                raise ConfigError(_("Failed to parse integer for '{}' in scheme '{}'").format(color_name, scheme_name))
            if channel < 0 or channel > 255:
                raise ConfigError(_("Invalid RGB value {} (0-255 allowed) for '{}' in scheme '{}'").format(
                    channel, color_name, scheme_name))
            rgb.append(channel)
        return rgb

    @classmethod
    def from_dict(cls, table):
        if not isinstance(table, dict):
            raise ConfigError(_("Invalid scheme: Not a table"))
        name = table.get("name")
        if not name or not isinstance(name, str):
            raise ConfigError(_("Missing 'name' in scheme"))
        colors = {}
        for color_name in COLOR_NAMES:
            colors[color_name] = cls._parse_rgb(table.get(color_name), color_name, name)
        return cls(name, colors)


# -------------------------
# ColorScheme Store
# -------------------------

class ColorSchemeStore:
    """Ordered list of schemes plus the index of the active one."""

    def __init__(self, schemes, active_index=0):
        if not schemes:
            raise ConfigError(_("No colorschemes defined"))
        self.schemes = list(schemes)
        self.active_index = active_index if 0 <= active_index < len(self.schemes) else 0

    def __len__(self):
        return len(self.schemes)

    @property
    def active(self):
        return self.schemes[self.active_index]

    def names(self):
        return [s.name for s in self.schemes]

    def index_of(self, name):
        for idx, scheme in enumerate(self.schemes):
            if scheme.name == name:
                return idx
        return None

    @classmethod
    def defaults(cls):
        return cls([ColorScheme.from_dict(table) for table in DEFAULT_SCHEMES])

    @classmethod
    def from_config(cls, path, preferred_name=None):
        """
        Load schemes from path. A missing file yields the built-in schemes.
        The active scheme is preferred_name when given, otherwise the file's
        actual_colorscheme. Unknown names fall back to the first scheme.
        """
        if not os.path.exists(path):
            logger.info("config %s not found, using built-in colorschemes", path)
            store = cls.defaults()
        else:
            store = cls(load(path))
            if preferred_name is None:
                preferred_name = load_active_name(path)
        if preferred_name:
            idx = store.index_of(preferred_name)
            if idx is None:
                logger.warning("unknown colorscheme %r, using %r", preferred_name, store.schemes[0].name)
            else:
                store.active_index = idx
        return store


# -------------------------
# File loading
# -------------------------

def _read_yaml(path):
    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(_("Error opening file {}: {}").format(path, e))
    except yaml.YAMLError as e:
        raise ConfigError(_("YAML parse error in {}: {}").format(path, e))


def load(path):
    """Return the list of ColorScheme objects defined in path."""
    root = _read_yaml(path)
    if not isinstance(root, dict) or not isinstance(root.get("colorschemes"), list):
        raise ConfigError(_("Root 'colorschemes' array not found"))
    schemes = []
    names = set()
    for idx, table in enumerate(root["colorschemes"]):
        try:
            scheme = ColorScheme.from_dict(table)
        except ConfigError as e:
            raise ConfigError(_("Aborting due to error in scheme {}: {}").format(idx, e))
        if scheme.name in names:
            raise ConfigError(_("Duplicate colorscheme name '{}'").format(scheme.name))
        names.add(scheme.name)
        schemes.append(scheme)
    if not schemes:
        raise ConfigError(_("No colorschemes defined"))
    return schemes


def load_active_name(path):
    """Return the actual_colorscheme entry of path."""
    root = _read_yaml(path)
    name = root.get("actual_colorscheme") if isinstance(root, dict) else None
    if name is None:
        raise ConfigError(_("Missing 'actual_colorscheme' in file"))
    if not isinstance(name, str):
        raise ConfigError(_("Failed to parse 'actual_colorscheme'"))
    return name
