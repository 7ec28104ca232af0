#!/usr/bin/env python3
"""
servicemaster_display.py — the interaction engine.

Display is what the entry point talks to: init(), redraw(), handle_input_event()
and teardown(). Each key goes through InputDispatcher, which mutates the
ViewState, asks the Unit Directory to act, or opens a modal. Display then
clamps the view against a freshly counted unit list and repaints.
"""

import os
import time
import curses
import curses.ascii
import logging

from servicemaster_core import build_reexec_argv, _
from servicemaster_units import Category, Operation, Scope
from servicemaster_view import (
    FilterSort,
    Layout,
    Mode,
    SearchEngine,
    SortColumn,
    UnitListView,
    ViewState,
)
from servicemaster_theme import ThemeManager
from servicemaster_render import (
    ConfirmModal,
    HeaderRenderer,
    Modal,
    RowRenderer,
    SearchModal,
    StatusModal,
)

logger = logging.getLogger(__name__)

KEY_ESC = curses.ascii.ESC
KEY_TAB = curses.ascii.TAB
KEY_SPACE = ord(' ')
ENTER_KEYS = (curses.KEY_ENTER, 10, 13)
FUNCTION_KEYS = {curses.KEY_F0 + n: op for n, op in enumerate(Operation.FUNCTION_KEYS, start=1)}

# Escape sequences for F1-F4 sent by terminals in legacy (rxvt/linux console) mode.
LEGACY_SEQUENCES = {
    "[11~": Operation.START,
    "[12~": Operation.STOP,
    "[13~": Operation.RESTART,
    "[14~": Operation.ENABLE,
}


# -------------------------
# Escape sequence capture
# -------------------------
class EscapeDecoder:
    """
    Collects the bytes following a lone ESC for at most `timeout` seconds.

    read_key(timeout) must return -1 when nothing arrives in time. The clock
    is injectable so tests can drive both timeouts deterministically. A curses
    key code read during capture is kept in `pushback` so it is not lost.
    """

    MAX_LENGTH = 9

    def __init__(self, clock=time.monotonic, timeout=0.05, grace=0.3):
        self.clock = clock
        self.timeout = timeout
        self.grace = grace
        self.last_sequence = ""
        self.pushback = None

    def capture(self, read_key):
        seq = ""
        self.pushback = None
        deadline = self.clock() + self.timeout
        while len(seq) < self.MAX_LENGTH:
            remaining = deadline - self.clock()
            if remaining <= 0:
                break
            ch = read_key(remaining)
            if ch is None or ch < 0:
                break
            if ch > 255:
                # A decoded curses key arrived before the timeout; hand it back.
                self.pushback = ch
                break
            seq += chr(ch)
            if seq.endswith("~"):
                break
        self.last_sequence = seq
        return LEGACY_SEQUENCES.get(seq)

    def grace_elapsed(self, start_time):
        """Some terminals send a stray ESC right after start-up; it must not quit."""
        return self.clock() - start_time >= self.grace


# -------------------------
# Privilege Gate
# -------------------------
class OpResult:
    OK = "ok"
    PRIVILEGE_DENIED = "privilege-denied"
    NO_SELECTION = "no-selection"
    FAILED = "failed"


class PrivilegeGate:
    """Local check whether an operation may be sent for a scope."""

    def __init__(self, euid_func=None):
        self.euid_func = euid_func or os.geteuid

    def privileged(self):
        return self.euid_func() == 0

    def allows(self, scope):
        return scope == Scope.USER or self.privileged()


def perform(directory, gate, scope, op, record):
    """Run op on record unless the gate refuses it. Returns an OpResult value."""
    if not gate.allows(scope):
        return OpResult.PRIVILEGE_DENIED
    if record is None:
        return OpResult.NO_SELECTION
    if not directory.operation(record, op):
        return OpResult.FAILED
    return OpResult.OK


# -------------------------
# Input Dispatcher
# -------------------------
class Outcome:
    """What the display has to do after one key."""

    def __init__(self, exit_code=None, clear=False, row=None):
        self.exit_code = exit_code
        self.clear = clear
        self.row = row


class InputDispatcher:
    """Turns one key into state changes. See Mode for the sub-states."""

    def __init__(self, display):
        self.display = display
        self.state = display.state

    def dispatch(self, key):
        state = self.state
        if key == curses.KEY_RESIZE:
            self.display.relayout()
            return Outcome(clear=True)
        if state.modal is not None:
            return self._modal_key(key)
        if key == KEY_ESC:
            return self._escape()
        if state.mode == Mode.HEADER_HIGHLIGHT:
            outcome = self._header_key(key)
            if outcome is not None:
                return outcome
        return self._normal_key(key)

    # --- normal mode ---
    def _normal_key(self, key):
        display = self.display
        if key in (curses.KEY_UP, ord('k')):
            return self._move(-1)
        elif key in (curses.KEY_DOWN, ord('j')):
            return self._move(1)
        elif key == curses.KEY_PPAGE:
            display.list_view.page_up(len(display.filtered()), display.layout.page_height)
            return Outcome(clear=True)
        elif key == curses.KEY_NPAGE:
            display.list_view.page_down(len(display.filtered()), display.layout.page_height)
            return Outcome(clear=True)
        elif key == curses.KEY_LEFT:
            return self._set_filter(Category.step(self.state.filter, -1))
        elif key == curses.KEY_RIGHT:
            return self._set_filter(Category.step(self.state.filter, 1))
        elif key in FUNCTION_KEYS:
            return self._operation(FUNCTION_KEYS[key])
        elif key == KEY_SPACE:
            return self._toggle_scope()
        elif key in ENTER_KEYS:
            return self._show_status()
        elif key == KEY_TAB:
            self.state.mode = Mode.HEADER_HIGHLIGHT
            self.state.highlight = SortColumn.next(self.state.highlight)
            return Outcome()
        elif key == ord('+'):
            return self._cycle_theme(1)
        elif key == ord('-'):
            return self._cycle_theme(-1)
        elif key == ord('f'):
            return self._open_search()
        elif key in (ord('q'), ord('Q')):
            return Outcome(exit_code=0)
        elif 0 <= key < 256 and chr(key) in Category.KEYS:
            return self._set_filter(Category.KEYS[chr(key)])
        return Outcome()

    def _move(self, delta):
        display = self.display
        display.list_view.move_selection(delta, len(display.filtered()), display.layout.page_height)
        return Outcome()

    def _set_filter(self, category):
        self.display.filter_sort.set_filter(category)
        return Outcome(clear=True)

    def _cycle_theme(self, delta):
        if self.display.theme.cycle(delta):
            return Outcome(clear=True)
        return Outcome()

    def _toggle_scope(self):
        display = self.display
        if display.directory.scope_is_system_only():
            self.state.modal = StatusModal(
                _("info:"), _("Only system units are available: no user session bus was found."))
            return Outcome()
        display.set_scope(Scope.other(self.state.scope))
        return Outcome(clear=True)

    def _show_status(self):
        display = self.display
        record = display.selected_record()
        if record is None:
            return Outcome()
        text = display.directory.status_text(record)
        self.state.modal = StatusModal(_("Status:"), text or _("No status information available."))
        return Outcome()

    # --- operations ---
    def _operation(self, op):
        display = self.display
        state = self.state
        record = display.selected_record()
        result = perform(display.directory, display.gate, state.scope, op, record)
        logger.info("%s %s -> %s", op, record.name if record else None, result)

        if result == OpResult.OK:
            if op in Operation.CHANGES_ENABLE_STATE:
                display.directory.refresh_enable_state(record)
                state.annotation(record.name).dirty = True
                if state.sort.column == SortColumn.STATE:
                    # The row may have moved.
                    return Outcome()
                return Outcome(row=record)
            return Outcome()
        if result == OpResult.PRIVILEGE_DENIED:
            self._privilege_denied()
        elif result == OpResult.NO_SELECTION:
            state.modal = StatusModal(_("Error:"), _("No valid service selected."))
        else:
            state.modal = StatusModal(f"{Operation.label(op)}:",
                                      _("Command could not be executed on this unit."))
        return Outcome()

    def _privilege_denied(self):
        display = self.display
        message = _("You must be root for this operation on system units. Press space to toggle: System/User.")
        if display.elevation_cmd:
            question = _("Restart ServiceMaster as root using '{}'?").format(" ".join(display.elevation_cmd))
            self.state.modal = ConfirmModal(_("info:"), message + "\n" + question, on_confirm=self._request_reexec)
        else:
            self.state.modal = StatusModal(_("info:"), message)

    def _request_reexec(self):
        display = self.display
        display.reexec_argv = build_reexec_argv(display.elevation_cmd, display.theme.active_name,
                                                Scope.SYSTEM, display.config_path)
        return Outcome(exit_code=0)

    # --- escape handling ---
    def _escape(self):
        state = self.state
        display = self.display
        if state.mode == Mode.HEADER_HIGHLIGHT:
            state.highlight = None
            state.mode = Mode.NORMAL
            return Outcome()

        state.mode = Mode.ESCAPE_CAPTURE
        try:
            op = display.decoder.capture(display.canvas.read_key)
        finally:
            state.mode = Mode.NORMAL
        if display.decoder.pushback is not None:
            display.canvas.unread_key(display.decoder.pushback)
        if op is not None:
            return self._operation(op)
        if display.decoder.grace_elapsed(display.start_time):
            return Outcome(exit_code=0)
        logger.debug("ignoring ESC during start-up grace period")
        return Outcome()

    # --- header highlight ---
    def _header_key(self, key):
        state = self.state
        if key == KEY_TAB or key in (curses.KEY_RIGHT, curses.KEY_DOWN):
            state.highlight = SortColumn.next(state.highlight)
            return Outcome()
        if key in (curses.KEY_LEFT, curses.KEY_UP):
            state.highlight = SortColumn.prev(state.highlight)
            return Outcome()
        if key in ENTER_KEYS:
            self.display.filter_sort.toggle_sort(state.highlight)
            state.highlight = None
            state.mode = Mode.NORMAL
            state.scroll = 0
            state.selection = 0
            return Outcome(clear=True)
        return None

    # --- search ---
    def _open_search(self):
        state = self.state
        if state.mode == Mode.SEARCH_MODAL:
            return Outcome()
        state.mode = Mode.SEARCH_MODAL
        state.modal = SearchModal()
        return Outcome()

    def _submit_search(self, query):
        display = self.display
        if not query:
            return Outcome()
        hit = display.search.locate(display.records(), query, display.layout.page_height)
        if hit is None:
            self.state.modal = StatusModal(_("Search:"), _("No unit found matching '{}'.").format(query))
        return Outcome(clear=True)

    # --- modals ---
    def _modal_key(self, key):
        state = self.state
        modal = state.modal
        result = modal.handle_key(key)
        if result == Modal.KEEP:
            return Outcome()
        state.modal = None
        if isinstance(modal, SearchModal):
            state.mode = Mode.NORMAL
            if result == Modal.SUBMIT:
                return self._submit_search(modal.query)
            return Outcome(clear=True)
        if result == Modal.CONFIRM and modal.on_confirm:
            return modal.on_confirm()
        return Outcome(clear=True)


# -------------------------
# Display
# -------------------------
class Display:
    """The display core: owns the ViewState and every component around it."""

    def __init__(self, canvas, store, directory, scope=None, gate=None, clock=time.monotonic,
                 elevation_cmd=None, config_path=None, decoder=None):
        self.canvas = canvas
        self.directory = directory
        self.gate = gate or PrivilegeGate()
        self.clock = clock
        self.elevation_cmd = elevation_cmd
        self.config_path = config_path
        if scope is None:
            scope = Scope.SYSTEM if self.gate.privileged() else Scope.USER

        self.state = ViewState(scope=scope, theme_index=store.active_index)
        self.theme = ThemeManager(store, self.state, canvas)
        self.filter_sort = FilterSort(self.state)
        self.list_view = UnitListView(self.state)
        self.search = SearchEngine(self.state, self.filter_sort, self.list_view)
        self.rows = RowRenderer(canvas, self.state)
        self.header = HeaderRenderer(canvas, self.state)
        self.decoder = decoder or EscapeDecoder(clock)
        self.dispatcher = InputDispatcher(self)

        self.layout = None
        self.start_time = None
        self.reexec_argv = None

    # --- lifecycle ---
    def init(self):
        self.start_time = self.clock()
        self.relayout()
        self.theme.apply()

    def teardown(self):
        self.state.modal = None
        self.canvas.erase()
        self.canvas.refresh()

    def relayout(self):
        """Recompute the geometry; called at start-up and on every resize."""
        self.canvas.reset_capabilities()
        h, w = self.canvas.size()
        self.layout = Layout(h, w)

    # --- accessors ---
    def records(self):
        return self.directory.units()

    def filtered(self):
        return self.filter_sort.filtered(self.records())

    def selected_record(self):
        return self.list_view.selected(self.filtered())

    def current_scope(self):
        return self.state.scope

    def current_filter(self):
        return self.state.filter

    def set_scope(self, scope):
        if scope == self.state.scope:
            return
        self.state.scope = scope
        self.state.annotations = {}
        self.directory = self.directory.switch_scope(scope)

    def show_message(self, title, text):
        self.state.modal = StatusModal(title, text)

    # --- drawing ---
    def redraw(self, directory=None):
        if directory is not None:
            self.directory = directory
        canvas = self.canvas
        layout = self.layout
        state = self.state

        canvas.erase()
        state.invalidate_rows()
        if layout.too_small:
            self.header.draw_too_small()
            canvas.refresh()
            return

        filtered = self.filtered()
        page = self.list_view.visible_page(filtered, layout.page_height)
        for row, record in enumerate(page):
            self.rows.draw(record, layout.row_y(row), layout, selected=(row == state.selection))
        self.header.draw(layout, self.theme.active_name, len(filtered))
        if state.modal is not None:
            state.modal.draw(canvas)
        canvas.refresh()

    def redraw_row(self, record):
        """Repaint the single row record was last drawn on. False when it is off screen."""
        ann = self.state.annotations.get(record.name)
        if ann is None or ann.screen_row < 0 or self.layout.too_small:
            return False
        selected = ann.screen_row == self.layout.row_y(self.state.selection)
        self.rows.draw(record, ann.screen_row, self.layout, selected)
        self.canvas.refresh()
        return True

    def apply_snapshot(self, records):
        """Take a freshly polled unit list and repaint what changed."""
        before = [r.name for r in self.filtered()]
        changed = self.directory.apply_snapshot(records)
        self.state.mark_dirty(changed)
        filtered = self.filtered()
        if before != [r.name for r in filtered] or self.state.modal is not None:
            self.list_view.clamp(len(filtered), self.layout.page_height)
            self.redraw()
            return
        for record in filtered:
            ann = self.state.annotations.get(record.name)
            if ann is not None and ann.dirty:
                self.redraw_row(record)

    # --- input ---
    def handle_input_event(self, key):
        """Process one key. Returns an exit code to stop, or None to keep going."""
        outcome = self.dispatcher.dispatch(key)
        if outcome.exit_code is not None:
            return outcome.exit_code

        self.list_view.clamp(len(self.filtered()), self.layout.page_height)
        if outcome.row is not None and self.state.modal is None and not outcome.clear:
            if self.redraw_row(outcome.row):
                return None
        if outcome.clear:
            self.canvas.clear()
        self.redraw()
        return None
