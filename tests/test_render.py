import curses

import pytest

from conftest import FakeCanvas, make_display, unit

from servicemaster_render import (
    ELLIPSIS,
    SELECTED,
    ConfirmModal,
    HeaderRenderer,
    Modal,
    RowRenderer,
    StatusModal,
    fit_description,
    fit_name,
    fit_state,
)
from servicemaster_units import Scope
from servicemaster_view import Layout, SortColumn, SortState, ViewState


@pytest.mark.parametrize("width", [40, 60, 100, 200])
def test_long_name_gets_ellipsis_at_name_width_minus_four(width):
    canvas = FakeCanvas(height=20, width=width)
    layout = Layout(20, width)
    name_width = layout.columns.name_width
    record = unit("x" * (name_width + 10) + ".service")

    RowRenderer(canvas, ViewState()).draw(record, 5, layout)

    line = canvas.line(5)
    start = name_width - 4
    assert line[start:start + 3] == ELLIPSIS
    assert line[1:start] == "x" * (start - 1)


def test_short_name_is_written_unchanged():
    assert fit_name("cron.service", 40) == "cron.service"


def test_state_is_hard_truncated():
    assert fit_state("enabled-runtime") == "enabled-r"
    assert fit_state("static") == "static"


def test_state_column_shows_load_state_without_enable_state():
    canvas = FakeCanvas(height=20, width=200)
    layout = Layout(20, 200)
    record = unit("gone.service", state=None, load="not-found")

    RowRenderer(canvas, ViewState()).draw(record, 6, layout)

    start = layout.columns.state_start
    assert canvas.line(6)[start:start + 9] == "not-found"


def test_long_description_is_cut_with_ellipsis():
    canvas = FakeCanvas(height=20, width=100)
    layout = Layout(20, 100)
    record = unit("a.service", description="D" * 60)

    RowRenderer(canvas, ViewState()).draw(record, 5, layout)

    start = layout.columns.description_start
    text = canvas.line(5)[start:99]
    assert text.endswith(ELLIPSIS)
    assert len(text) == 100 - start - 1


def test_fit_description_in_tiny_space():
    assert fit_description("abcdef", 2) == "ab"
    assert fit_description("abc", 10) == "abc"


def test_selected_row_uses_highlight_style():
    canvas = FakeCanvas(height=20, width=200)
    layout = Layout(20, 200)
    RowRenderer(canvas, ViewState()).draw(unit("a.service"), 7, layout, selected=True)
    assert canvas.styles[7][1] == SELECTED
    assert canvas.styles[7][layout.columns.description_start] == SELECTED


def test_draw_records_screen_row():
    state = ViewState()
    state.annotation("a.service").dirty = True
    RowRenderer(FakeCanvas(), state).draw(unit("a.service"), 9, Layout(30, 200))
    assert state.annotations["a.service"].screen_row == 9
    assert not state.annotations["a.service"].dirty


def test_header_shows_scope_theme_and_sort_marker():
    canvas = FakeCanvas(height=30, width=250)
    state = ViewState(scope=Scope.USER)
    state.sort = SortState(SortColumn.STATE, descending=True)
    layout = Layout(30, 250)

    HeaderRenderer(canvas, state).draw(layout, "Nord", 12)

    assert "ServiceMaster" in canvas.line(1)
    assert "Theme (Nord)" in canvas.line(1)
    assert "F1:START" in canvas.line(2)
    assert "A:ALL" in canvas.line(2)
    heading = canvas.line(layout.header_row)
    assert heading[7:13] == "(USER)"
    assert "STATE:v" in heading
    assert "Service: 12" in heading


def test_narrow_header_puts_categories_on_line_three():
    canvas = FakeCanvas(height=30, width=120)
    layout = Layout(30, 120)
    HeaderRenderer(canvas, ViewState()).draw(layout, "Default", 3)
    assert "F1:START" in canvas.line(2)
    assert canvas.line(3).startswith(" A:ALL")
    assert "UNIT:" in canvas.line(4)


def test_highlighted_header_uses_its_own_style():
    canvas = FakeCanvas(height=30, width=250)
    state = ViewState()
    state.highlight = SortColumn.SUB
    layout = Layout(30, 250)
    HeaderRenderer(canvas, state).draw(layout, "Default", 0)
    style = canvas.styles[layout.header_row][layout.columns.sub_start]
    assert style.pair == "header_highlight"


def test_too_small_terminal_shows_notice():
    display = make_display(canvas=FakeCanvas(height=8, width=30))
    assert "Terminal too small" in display.canvas.line(0)
    assert "cron.service" not in display.canvas.text()


def test_display_draws_the_service_list(display):
    text = display.canvas.text()
    assert "cron.service" in text
    assert "ssh.service" in text
    assert "backup.timer" not in text


def test_status_modal_scrolls_long_text():
    canvas = FakeCanvas(height=10, width=80)
    modal = StatusModal("Status:", "\n".join(f"line {i}" for i in range(30)))
    modal.draw(canvas)
    assert modal.handle_key(curses.KEY_DOWN) == Modal.KEEP
    assert modal.offset == 1
    assert modal.handle_key(ord('x')) == Modal.CLOSE


def test_short_status_modal_closes_on_any_key():
    canvas = FakeCanvas(height=30, width=80)
    modal = StatusModal("Error:", "No valid service selected.")
    modal.draw(canvas)
    assert "No valid service selected." in canvas.text()
    assert modal.text_style().pair == "modal_error"
    assert modal.handle_key(curses.KEY_DOWN) == Modal.CLOSE


def test_confirm_modal_keys():
    modal = ConfirmModal("info:", "Restart?")
    assert modal.handle_key(ord('x')) == Modal.KEEP
    assert modal.handle_key(ord('y')) == Modal.CONFIRM
    assert modal.handle_key(ord('n')) == Modal.CLOSE
    assert modal.handle_key(27) == Modal.CLOSE
