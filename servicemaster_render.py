#!/usr/bin/env python3
"""
servicemaster_render.py — drawing the table, the header and the pop-up boxes.

Everything draws onto a Canvas. CursesCanvas is the real terminal; the tests
use an in-memory canvas with the same methods.
"""

import curses
import curses.ascii

from servicemaster_core import AboutInfo, _
from servicemaster_units import Category, Scope
from servicemaster_view import (
    MIN_TERMINAL_HEIGHT,
    MIN_TERMINAL_WIDTH,
    SortColumn,
    SearchEngine,
    functions_legend,
    category_legend,
)
from servicemaster_theme import PAIR_NUMBERS

ELLIPSIS = "..."
STATE_MAX_LENGTH = 9


# --- Styles ---
class Style:
    """Text attributes for one write. pair is a semantic pair name or None."""

    def __init__(self, pair=None, bold=False, reverse=False, underline=False, dim=False):
        self.pair = pair
        self.bold = bold
        self.reverse = reverse
        self.underline = underline
        self.dim = dim

    def __eq__(self, other):
        return isinstance(other, Style) and vars(self) == vars(other)

    def __repr__(self):
        flags = [k for k in ("bold", "reverse", "underline", "dim") if getattr(self, k)]
        return f"Style({self.pair!r}{''.join(', ' + f for f in flags)})"


NORMAL = Style()
BOLD = Style(bold=True)
SELECTED = Style("highlight", bold=True)


# -------------------------
# Canvas
# -------------------------
class Canvas:
    """
    Character-cell surface the renderers draw on.
    Coordinates are (y, x) like curses. Writes past the edges are clipped.
    """

    def size(self):
        raise NotImplementedError

    def write_at(self, y, x, text, style=None):
        raise NotImplementedError

    def clear_region(self, y, x, height, width, style=None):
        raise NotImplementedError

    def set_style(self, style):
        raise NotImplementedError

    def border(self):
        raise NotImplementedError

    def hline(self, y, x, length):
        raise NotImplementedError

    def vline(self, y, x, length):
        raise NotImplementedError

    def box(self, y, x, height, width, style=None):
        raise NotImplementedError

    def erase(self):
        raise NotImplementedError

    def clear(self):
        """Erase and force a complete repaint on the next refresh."""
        self.erase()

    def refresh(self):
        raise NotImplementedError

    def read_key(self, timeout=None):
        """Next key code, or -1 when nothing arrived within timeout seconds."""
        raise NotImplementedError

    def unread_key(self, key):
        """Push key back so the next read_key returns it."""
        raise NotImplementedError

    def can_change_color(self):
        raise NotImplementedError

    def define_color(self, register, r, g, b):
        raise NotImplementedError

    def define_pair(self, number, fg, bg):
        raise NotImplementedError

    def reset_capabilities(self):
        pass


class CursesCanvas(Canvas):
    """Canvas on top of the curses standard screen."""

    def __init__(self, stdscr):
        self.stdscr = stdscr
        self.current = NORMAL
        self._colors_checked = None

    def _attr(self, style):
        style = style or self.current
        attr = curses.A_NORMAL
        if style.pair:
            attr |= curses.color_pair(PAIR_NUMBERS[style.pair])
        if style.bold:
            attr |= curses.A_BOLD
        if style.reverse:
            attr |= curses.A_REVERSE
        if style.underline:
            attr |= curses.A_UNDERLINE
        if style.dim:
            attr |= curses.A_DIM
        return attr

    def size(self):
        return self.stdscr.getmaxyx()

    def write_at(self, y, x, text, style=None):
        h, w = self.size()
        if y < 0 or y >= h or x >= w or not text:
            return
        if x < 0:
            text = text[-x:]
            x = 0
        text = text[:w - x]
        try:
            self.stdscr.addstr(y, x, text, self._attr(style))
        except curses.error:
            # Writing the bottom-right cell moves the cursor off screen.
            pass

    def clear_region(self, y, x, height, width, style=None):
        for row in range(y, y + height):
            self.write_at(row, x, " " * width, style or NORMAL)

    def set_style(self, style):
        self.current = style or NORMAL

    def hline(self, y, x, length):
        try:
            self.stdscr.hline(y, x, curses.ACS_HLINE, max(0, length))
        except curses.error:
            pass

    def vline(self, y, x, length):
        try:
            self.stdscr.vline(y, x, curses.ACS_VLINE, max(0, length))
        except curses.error:
            pass

    def box(self, y, x, height, width, style=None):
        try:
            win = self.stdscr.derwin(height, width, y, x)
            win.attrset(self._attr(style))
            win.border()
            win.attrset(curses.A_NORMAL)
        except curses.error:
            pass

    def border(self):
        try:
            self.stdscr.border()
        except curses.error:
            pass

    def erase(self):
        self.stdscr.erase()

    def clear(self):
        self.stdscr.clear()

    def refresh(self):
        self.stdscr.refresh()

    def read_key(self, timeout=None):
        if timeout is None:
            self.stdscr.timeout(-1)
        else:
            self.stdscr.timeout(max(0, int(timeout * 1000)))
        try:
            return self.stdscr.getch()
        finally:
            self.stdscr.nodelay(True)

    def unread_key(self, key):
        curses.ungetch(key)

    def can_change_color(self):
        if self._colors_checked is None:
            self._colors_checked = curses.has_colors() and curses.can_change_color()
        return self._colors_checked

    def define_color(self, register, r, g, b):
        curses.init_color(register, r, g, b)

    def define_pair(self, number, fg, bg):
        curses.init_pair(number, fg, bg)

    def reset_capabilities(self):
        self._colors_checked = None


# -------------------------
# Field fitting
# -------------------------

def fit_name(name, name_width):
    """Cut name so that '...' starts at column name_width - 4."""
    if len(name) >= name_width - 3:
        return name[:max(0, name_width - 5)] + ELLIPSIS
    return name


def fit_state(state, limit=STATE_MAX_LENGTH):
    # enabled-runtime shows as enabled-r
    return state[:limit]


def fit_description(description, available):
    if available <= len(ELLIPSIS):
        return description[:max(0, available)]
    if len(description) >= available:
        return description[:available - len(ELLIPSIS)] + ELLIPSIS
    return description


# -------------------------
# Row Renderer
# -------------------------
class RowRenderer:
    """Draws one unit record into one screen row."""

    def __init__(self, canvas, state):
        self.canvas = canvas
        self.state = state

    def draw(self, record, y, layout, selected=False):
        canvas = self.canvas
        cols = layout.columns
        width = layout.width
        style = SELECTED if selected else NORMAL

        # name
        canvas.clear_region(y, cols.name_start, 1, cols.state_start - 1 - cols.name_start, style)
        canvas.write_at(y, cols.name_start, fit_name(record.name, cols.name_width), style)

        # state, falls back to the load state
        cell = cols.status_width - 1
        canvas.clear_region(y, cols.state_start, 1, cell, style)
        canvas.write_at(y, cols.state_start, fit_state(record.state or "", min(STATE_MAX_LENGTH, cell)), style)

        canvas.clear_region(y, cols.active_start, 1, cell, style)
        canvas.write_at(y, cols.active_start, (record.active or "")[:cell], style)

        canvas.clear_region(y, cols.sub_start, 1, cell, style)
        canvas.write_at(y, cols.sub_start, (record.sub or "")[:cell], style)

        available = width - cols.description_start - 1
        canvas.clear_region(y, cols.description_start, 1, max(0, available), style)
        canvas.write_at(y, cols.description_start, fit_description(record.description or "", available), style)

        ann = self.state.annotation(record.name)
        ann.screen_row = y
        ann.dirty = False


# -------------------------
# Header Renderer
# -------------------------
class HeaderRenderer:
    """Title bar, legends, column titles and the table grid."""

    def __init__(self, canvas, state):
        self.canvas = canvas
        self.state = state

    @staticmethod
    def navigation_legend(theme_name):
        return _("Left/Right: Modus | Up/Down: Select | Return: Show status | +/-: Theme ({})").format(theme_name)

    @staticmethod
    def quit_legend():
        return _("Q/ESC:Quit")

    def draw(self, layout, theme_name, category_count):
        canvas = self.canvas
        w = layout.width
        h = layout.height
        cols = layout.columns

        canvas.border()

        headline = AboutInfo.get_headline()
        navigation = self.navigation_legend(theme_name)
        quit_text = self.quit_legend()
        canvas.write_at(1, 1, headline, BOLD)
        gap = w - len(headline) - len(quit_text) - len(navigation) - 2
        if gap > 0:
            canvas.write_at(1, len(headline) + 1 + gap // 2, navigation, BOLD)
        canvas.write_at(1, w - len(quit_text) - 1, quit_text, BOLD)

        canvas.write_at(2, 1, functions_legend(), Style("functions", bold=True))
        if layout.narrow:
            canvas.write_at(3, 1, category_legend(), Style("categories", bold=True))
        else:
            canvas.write_at(2, w - len(category_legend()) - 1, category_legend(), Style("categories", bold=True))

        row = layout.header_row
        self._draw_unit_heading(row, cols, category_count)

        for column, x in ((SortColumn.STATE, cols.state_start),
                          (SortColumn.ACTIVE, cols.active_start),
                          (SortColumn.SUB, cols.sub_start),
                          (SortColumn.DESCRIPTION, cols.description_start)):
            canvas.write_at(row, x, self.column_title(column), self.column_style(column))

        canvas.hline(row + 1, 1, w - 2)
        for x in cols.boundaries():
            canvas.vline(row, x - 1, h - row - 1)

    def column_title(self, column):
        title = SortColumn.title(column)
        sort = self.state.sort
        if sort.column == column:
            title += "v" if sort.descending else "^"
        return title

    def column_style(self, column):
        if self.state.highlight == column:
            return Style("header_highlight", bold=True)
        return BOLD

    def _draw_unit_heading(self, row, cols, category_count):
        canvas = self.canvas
        state = self.state
        canvas.write_at(row, 1, self.column_title(SortColumn.NAME), self.column_style(SortColumn.NAME))
        scope_name = _("SYSTEM") if state.scope == Scope.SYSTEM else _("USER")
        scope_text = f"({scope_name})"
        canvas.write_at(row, 7, scope_text, Style("accent", bold=True))

        cursor = 7 + len(scope_text) + 1
        pos_text = _("Pos.:{:3d}").format(state.scroll + state.selection)
        pos_x = cols.state_start - 10
        limit = cols.state_start - 1
        if pos_x >= cursor:
            canvas.write_at(row, pos_x, pos_text, BOLD)
            limit = pos_x - 1

        count_text = f"{Category.label(state.filter)}: {category_count}"
        hint = _("Space: User/System")
        if cursor + len(hint) < limit:
            canvas.write_at(row, cursor + 1, hint, BOLD)
            cursor += len(hint) + 2
        if cursor + len(count_text) < limit:
            canvas.write_at(row, cursor + 1, count_text, Style("accent", bold=True, underline=True))

    def draw_too_small(self):
        self.canvas.write_at(0, 0, _("Terminal too small! Min {}x{}.").format(
            MIN_TERMINAL_HEIGHT, MIN_TERMINAL_WIDTH))


# -------------------------
# Modals
# -------------------------
class Modal:
    """Centered pop-up box. handle_key() returns one of the result constants."""
    KEEP = "keep"
    CLOSE = "close"
    CONFIRM = "confirm"
    SUBMIT = "submit"

    def __init__(self, title, text):
        self.title = title
        self.text = text

    def lines(self):
        return str(self.text).split("\n")

    def geometry(self, h, w):
        lines = self.lines()
        widest = max(len(ln) for ln in lines) if lines else 0
        height = min(h, len(lines) + 2)
        width = min(w, max(widest, len(self.title) + 2) + 4)
        return height, width, max(0, (h - height) // 2), max(0, (w - width) // 2)

    def text_style(self):
        return BOLD

    def draw(self, canvas):
        h, w = canvas.size()
        height, width, y, x = self.geometry(h, w)
        canvas.clear_region(y, x, height, width)
        canvas.box(y, x, height, width, BOLD)
        canvas.write_at(y, x + max(1, width // 2 - len(self.title) // 2), self.title[:width - 2],
                        Style(bold=True, underline=True))
        self.draw_body(canvas, y, x, height, width)

    def draw_body(self, canvas, y, x, height, width):
        for i, ln in enumerate(self.visible_lines(height - 2)):
            canvas.write_at(y + 1 + i, x + 2, ln[:width - 4], self.text_style())

    def visible_lines(self, rows):
        return self.lines()[:rows]

    def handle_key(self, key):
        return Modal.CLOSE


class StatusModal(Modal):
    """
    Information box. Any key closes it; when the text is taller than the
    screen, Up/Down/PgUp/PgDn scroll instead.
    """

    def __init__(self, title, text):
        Modal.__init__(self, title, text)
        self.offset = 0
        self.rows = None

    def text_style(self):
        # single-line messages are warnings, multi-line ones are reports
        if len(self.lines()) == 1:
            return Style("modal_error", bold=True)
        return BOLD

    def visible_lines(self, rows):
        self.rows = rows
        return self.lines()[self.offset:self.offset + rows]

    def handle_key(self, key):
        if self.rows is None:
            return Modal.CLOSE
        rows = self.rows
        max_offset = max(0, len(self.lines()) - rows)
        if max_offset == 0:
            return Modal.CLOSE
        if key == curses.KEY_UP:
            self.offset = max(0, self.offset - 1)
        elif key == curses.KEY_DOWN:
            self.offset = min(max_offset, self.offset + 1)
        elif key == curses.KEY_PPAGE:
            self.offset = max(0, self.offset - rows)
        elif key == curses.KEY_NPAGE:
            self.offset = min(max_offset, self.offset + rows)
        else:
            return Modal.CLOSE
        return Modal.KEEP


class ConfirmModal(Modal):
    """Yes/no question. 'y' confirms, 'n' or Esc cancels, other keys are ignored."""

    def __init__(self, title, text, on_confirm=None):
        Modal.__init__(self, title, text + "\n\n" + _("Press 'y' to confirm, 'n' to cancel."))
        self.on_confirm = on_confirm

    def handle_key(self, key):
        if key in (ord('y'), ord('Y')):
            return Modal.CONFIRM
        if key in (ord('n'), ord('N'), curses.ascii.ESC):
            return Modal.CLOSE
        return Modal.KEEP


class SearchModal(Modal):
    """One-line text entry for the unit search."""

    WIDTH = 50

    def __init__(self, title=None, prompt=None):
        Modal.__init__(self, title or _("Search:"), "")
        self.prompt = prompt or _("Unit name: ")
        self.query = ""

    def geometry(self, h, w):
        width = min(w, self.WIDTH)
        height = min(h, 3)
        return height, width, max(0, (h - height) // 2), max(0, (w - width) // 2)

    def field_width(self, width):
        return max(1, width - 4 - len(self.prompt))

    def display_query(self, field_width):
        """Trailing part of the query that fits into field_width cells."""
        if len(self.query) >= field_width:
            return self.query[len(self.query) - field_width + 1:]
        return self.query

    def draw_body(self, canvas, y, x, height, width):
        canvas.write_at(y + 1, x + 2, self.prompt, BOLD)
        canvas.write_at(y + 1, x + 2 + len(self.prompt), self.display_query(self.field_width(width)), NORMAL)

    def handle_key(self, key):
        if key in (curses.KEY_ENTER, 10, 13):
            return Modal.SUBMIT
        if key == curses.ascii.ESC:
            return Modal.CLOSE
        if key in (curses.KEY_BACKSPACE, 127, 8):
            self.query = self.query[:-1]
        elif 0 <= key < 256 and curses.ascii.isprint(key):
            if len(self.query) < SearchEngine.MAX_QUERY_LENGTH:
                self.query += chr(key)
        return Modal.KEEP
