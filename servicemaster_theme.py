#!/usr/bin/env python3

import curses
import logging

from servicemaster_core import UnsupportedTerminalError, _
from servicemaster_config import COLOR_NAMES

logger = logging.getLogger(__name__)

COLOR_REGISTERS = {
    "black": curses.COLOR_BLACK,
    "red": curses.COLOR_RED,
    "green": curses.COLOR_GREEN,
    "yellow": curses.COLOR_YELLOW,
    "blue": curses.COLOR_BLUE,
    "magenta": curses.COLOR_MAGENTA,
    "cyan": curses.COLOR_CYAN,
    "white": curses.COLOR_WHITE,
}

# Semantic pair name -> (pair number, foreground, background)
STYLE_PAIRS = {
    "normal": (1, "white", "black"),
    "info": (2, "cyan", "black"),
    "error": (3, "red", "black"),
    "accent": (4, "green", "black"),
    "warning": (5, "yellow", "black"),
    "blue": (6, "blue", "black"),
    "magenta": (7, "magenta", "black"),
    "highlight": (8, "white", "blue"),
    "functions": (9, "white", "red"),
    "categories": (10, "black", "green"),
    "alert": (11, "red", "yellow"),
    "header_highlight": (12, "red", "blue"),
    "modal_error": (13, "red", "black"),
}

PAIR_NUMBERS = {name: entry[0] for name, entry in STYLE_PAIRS.items()}

# Themes whose palette breaks the default contrast get their own pairs.
# Matched on the exact theme name.
THEME_PAIR_OVERRIDES = {
    "Monochrome": {
        "highlight": ("black", "white"),
        "functions": ("black", "white"),
        "categories": ("white", "black"),
        "header_highlight": ("black", "white"),
    },
    "Solarized Light": {
        "highlight": ("black", "blue"),
        "functions": ("black", "red"),
        "header_highlight": ("black", "red"),
    },
}


def scale_channel(channel):
    """0-255 channel to the 0-1000 range curses uses for init_color."""
    return int(round(channel * 1000 / 255))


class ThemeManager:
    """Owns the active colorscheme and pushes it into the terminal."""

    def __init__(self, store, state, canvas):
        self.store = store
        self.state = state
        self.canvas = canvas
        self.state.theme_index = store.active_index

    @property
    def active_scheme(self):
        return self.store.schemes[self.state.theme_index]

    @property
    def active_name(self):
        return self.active_scheme.name

    def set_active(self, index):
        if not 0 <= index < len(self.store):
            return False
        self.state.theme_index = index
        self.store.active_index = index
        return True

    def cycle(self, delta):
        """Step to the neighbouring scheme. Does nothing past either end."""
        if not self.set_active(self.state.theme_index + delta):
            return False
        self.apply()
        return True

    @staticmethod
    def pair_colors(pair_name, scheme_name):
        _number, fg, bg = STYLE_PAIRS[pair_name]
        override = THEME_PAIR_OVERRIDES.get(scheme_name, {}).get(pair_name)
        if override:
            fg, bg = override
        return fg, bg

    def apply(self, scheme=None):
        scheme = scheme or self.active_scheme
        if not self.canvas.can_change_color():
            raise UnsupportedTerminalError(
                _("Your terminal does not support changing colors. "
                  "Try a terminal with 256-color support (TERM=xterm-256color)."))
        for color_name in COLOR_NAMES:
            r, g, b = scheme.rgb(color_name)
            self.canvas.define_color(COLOR_REGISTERS[color_name],
                                     scale_channel(r), scale_channel(g), scale_channel(b))
        for pair_name, (number, _fg, _bg) in STYLE_PAIRS.items():
            fg, bg = self.pair_colors(pair_name, scheme.name)
            self.canvas.define_pair(number, COLOR_REGISTERS[fg], COLOR_REGISTERS[bg])
        logger.debug("applied colorscheme %s", scheme.name)
