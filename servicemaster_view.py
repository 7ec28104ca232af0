#!/usr/bin/env python3
"""
servicemaster_view.py — the state behind the unit table.

Holds ViewState (filter, scope, scroll, selection, sort, theme index and the
dispatcher mode), the column layout, and the engines that filter, sort and
search the unit list. Nothing in here draws; see servicemaster_render.py.
"""

from servicemaster_core import _
from servicemaster_units import Category, Scope

# -------------------------
# Layout Engine
# -------------------------

MIN_NAME_WIDTH = 20
STATUS_COLUMN_WIDTH = 10
MIN_TERMINAL_WIDTH = 40
MIN_TERMINAL_HEIGHT = 10


def functions_legend():
    return "F1:START F2:STOP F3:RESTART F4:ENABLE F5:DISABLE F6:MASK F7:UNMASK F8:RELOAD"


def category_legend():
    return "A:ALL D:DEV I:SLICE S:SERVICE O:SOCKET T:TARGET R:TIMER M:MOUNT C:SCOPE N:AMOUNT W:SWAP P:PATH H:SSHOT"


class Columns:
    """
    Absolute x offsets of the five table columns.

    name_width counts the cells from the left border up to and including the
    separator in front of the state column, so it equals state_start.
    """

    def __init__(self, name_width, status_width):
        self.name_start = 1
        self.name_width = name_width
        self.status_width = status_width
        self.state_start = name_width
        self.active_start = self.state_start + status_width
        self.sub_start = self.active_start + status_width
        self.description_start = self.sub_start + status_width

    def boundaries(self):
        return [self.state_start, self.active_start, self.sub_start, self.description_start]

    def __repr__(self):
        return (f"Columns(state={self.state_start}, active={self.active_start}, "
                f"sub={self.sub_start}, description={self.description_start})")


def compute_columns(total_width):
    """Split total_width into the name, state, active, sub and description columns."""
    name_width = max(MIN_NAME_WIDTH, total_width // 2)
    status_width = STATUS_COLUMN_WIDTH
    limit = total_width - 2  # description_start must stay left of the right border

    excess = name_width + 3 * status_width - limit
    if excess > 0:
        shrink = min(excess, name_width - MIN_NAME_WIDTH)
        name_width -= shrink
        excess -= shrink
    if excess > 0:
        status_width = max(1, status_width - (excess + 2) // 3)
    return Columns(name_width, status_width)


class Layout:
    """Screen geometry derived from the terminal size. Rebuilt on every resize."""

    def __init__(self, height, width):
        self.height = height
        self.width = width
        self.columns = compute_columns(width)
        # The category legend gets its own line when it does not fit next to the F-keys.
        self.narrow = width < len(functions_legend()) + len(category_legend()) + 2
        self.header_row = 4 if self.narrow else 3
        self.body_top = self.header_row + 2
        self.page_height = max(0, height - self.body_top - 1)
        self.too_small = width < MIN_TERMINAL_WIDTH or height < MIN_TERMINAL_HEIGHT

    def row_y(self, row):
        return self.body_top + row


# -------------------------
# Sort model
# -------------------------

class SortColumn:
    """Column tags in header order. Tab walks them with next()."""
    NAME = "name"
    STATE = "state"
    ACTIVE = "active"
    SUB = "sub"
    DESCRIPTION = "description"

    ORDER = [NAME, STATE, ACTIVE, SUB, DESCRIPTION]

    @staticmethod
    def next(column):
        if column is None:
            return SortColumn.NAME
        return SortColumn.ORDER[(SortColumn.ORDER.index(column) + 1) % len(SortColumn.ORDER)]

    @staticmethod
    def prev(column):
        if column is None:
            return SortColumn.DESCRIPTION
        return SortColumn.ORDER[(SortColumn.ORDER.index(column) - 1) % len(SortColumn.ORDER)]

    @staticmethod
    def title(column):
        return {
            SortColumn.NAME: _("UNIT:"),
            SortColumn.STATE: _("STATE:"),
            SortColumn.ACTIVE: _("ACTIVE:"),
            SortColumn.SUB: _("SUB:"),
            SortColumn.DESCRIPTION: _("DESCRIPTION:"),
        }[column]


# Priority tables for the columns whose values have a meaningful order.
ENABLE_PRIORITY = ["enabled", "enabled-runtime", "loaded", "generated", "transient",
                   "static", "not-found", "disabled", "masked"]
ACTIVE_PRIORITY = ["active", "reloading", "refreshing", "activating", "deactivating",
                   "inactive", "failed", "maintenance"]
SUB_PRIORITY = ["running", "listening", "waiting", "mounted", "plugged", "active",
                "start", "start-pre", "start-post", "reload", "stop", "stop-post",
                "auto-restart", "exited", "elapsed", "dead", "failed"]

PRIORITY_TABLES = {
    SortColumn.STATE: ENABLE_PRIORITY,
    SortColumn.ACTIVE: ACTIVE_PRIORITY,
    SortColumn.SUB: SUB_PRIORITY,
}


def _field(record, column):
    if column == SortColumn.NAME:
        return record.name
    elif column == SortColumn.STATE:
        return record.state
    elif column == SortColumn.ACTIVE:
        return record.active
    elif column == SortColumn.SUB:
        return record.sub
    return record.description


class SortState:
    """Either no sort (column is None) or a column with a direction."""

    def __init__(self, column=None, descending=False):
        self.column = column
        self.descending = descending if column else False

    @property
    def active(self):
        return self.column is not None

    def __eq__(self, other):
        return isinstance(other, SortState) and (self.column, self.descending) == (other.column, other.descending)

    def __repr__(self):
        if not self.active:
            return "SortState(None)"
        direction = "desc" if self.descending else "asc"
        return f"SortState({self.column!r}, {direction})"


# -------------------------
# Filter/Sort Engine
# -------------------------

class FilterSort:
    """Applies the category filter and the column sort to the unit list."""

    def __init__(self, state):
        self.state = state

    @staticmethod
    def matches(category_filter, record):
        return category_filter == Category.ALL or category_filter == record.category

    def set_filter(self, category):
        self.state.filter = category
        self.state.scroll = 0
        self.state.selection = 0

    def toggle_sort(self, column):
        """Sort by column. Repeating the active column flips its direction."""
        state = self.state
        if state.sort.column == column:
            state.directions[column] = not state.directions.get(column, False)
        else:
            state.directions[column] = False
        state.sort = SortState(column, state.directions[column])
        return state.sort

    @staticmethod
    def sort_records(records, sort):
        if not sort.active:
            return list(records)
        column = sort.column
        table = PRIORITY_TABLES.get(column)
        if table is None:
            return sorted(records, key=lambda r: _field(r, column) or "", reverse=sort.descending)

        def key(record):
            value = _field(record, column)
            if value not in table:
                return (1, 0)
            rank = table.index(value)
            return (0, -rank if sort.descending else rank)
        return sorted(records, key=key)

    def ordered(self, records):
        """The full list in display order."""
        return self.sort_records(records, self.state.sort)

    def filtered(self, records):
        return [r for r in self.ordered(records) if self.matches(self.state.filter, r)]


# -------------------------
# Unit List View
# -------------------------

class UnitListView:
    """Scroll and selection bookkeeping over the filtered list."""

    def __init__(self, state):
        self.state = state

    def clamp(self, count, page_height):
        state = self.state
        if count <= 0 or page_height <= 0:
            state.scroll = 0
            state.selection = 0
            return
        max_scroll = max(0, count - page_height)
        state.scroll = max(0, min(state.scroll, max_scroll))
        state.selection = max(0, min(state.selection, min(page_height, count) - 1))

    def visible_page(self, filtered, page_height):
        self.clamp(len(filtered), page_height)
        return filtered[self.state.scroll:self.state.scroll + page_height]

    def selected_index(self):
        return self.state.scroll + self.state.selection

    def selected(self, filtered):
        idx = self.selected_index()
        if 0 <= idx < len(filtered):
            return filtered[idx]
        return None

    def move_selection(self, delta, count, page_height):
        state = self.state
        step = 1 if delta > 0 else -1
        for _i in range(abs(delta)):
            if step > 0:
                if state.selection < min(page_height, count) - 1:
                    state.selection += 1
                elif state.scroll + state.selection < count - 1:
                    state.scroll += 1
            else:
                if state.selection > 0:
                    state.selection -= 1
                elif state.scroll > 0:
                    state.scroll -= 1
        self.clamp(count, page_height)

    def page_down(self, count, page_height):
        state = self.state
        if state.scroll + page_height < count:
            state.scroll = min(state.scroll + page_height, max(0, count - page_height))
        state.selection = 0
        self.clamp(count, page_height)

    def page_up(self, count, page_height):
        state = self.state
        state.scroll = max(0, state.scroll - page_height)
        state.selection = 0
        self.clamp(count, page_height)

    def place(self, index, count, page_height):
        """Scroll so that the record at index is on screen and selected."""
        state = self.state
        if index >= page_height:
            state.scroll = index - page_height + 1
            state.selection = page_height - 1
        else:
            state.scroll = 0
            state.selection = index
        self.clamp(count, page_height)


# -------------------------
# Search Engine
# -------------------------

class SearchEngine:
    """Case-insensitive substring search over unit names."""

    MAX_QUERY_LENGTH = 64

    def __init__(self, state, filter_sort, list_view):
        self.state = state
        self.filter_sort = filter_sort
        self.list_view = list_view

    @staticmethod
    def find(records, query):
        needle = query.lower()
        for record in records:
            if needle in record.name.lower():
                return record
        return None

    def locate(self, records, query, page_height):
        """
        Look query up in the whole list and bring the hit on screen.
        Returns the matching record, or None with the view left untouched.
        """
        ordered = self.filter_sort.ordered(records)
        hit = self.find(ordered, query)
        if hit is None:
            return None
        self.filter_sort.set_filter(hit.category)
        filtered = [r for r in ordered if FilterSort.matches(hit.category, r)]
        self.list_view.place(filtered.index(hit), len(filtered), page_height)
        return hit


# -------------------------
# ViewState
# -------------------------

class Mode:
    NORMAL = "normal"
    ESCAPE_CAPTURE = "escape-capture"
    SEARCH_MODAL = "search-modal"
    HEADER_HIGHLIGHT = "header-highlight"


class RowAnnotation:
    def __init__(self):
        self.screen_row = -1
        self.dirty = False


class ViewState:
    """Everything the dispatcher mutates, in one place."""

    def __init__(self, scope=Scope.SYSTEM, category_filter=Category.SERVICE, theme_index=0):
        self.filter = category_filter
        self.scope = scope
        self.scroll = 0
        self.selection = 0
        self.sort = SortState()
        self.directions = {}
        self.highlight = None
        self.theme_index = theme_index
        self.mode = Mode.NORMAL
        self.modal = None
        self.annotations = {}

    def annotation(self, name):
        ann = self.annotations.get(name)
        if ann is None:
            ann = self.annotations[name] = RowAnnotation()
        return ann

    def invalidate_rows(self):
        for ann in self.annotations.values():
            ann.screen_row = -1

    def mark_dirty(self, names):
        for name in names:
            self.annotation(name).dirty = True
