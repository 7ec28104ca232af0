"""Shared fixtures for the `tests/` suite.

The servicemaster modules live at the repository root, so the root is put on
`sys.path`. FakeCanvas and FakeDirectory stand in for the terminal and for
systemctl so the display core can be driven key by key.
"""

import sys
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from servicemaster_config import ColorSchemeStore  # noqa: E402
from servicemaster_display import Display, PrivilegeGate  # noqa: E402
from servicemaster_render import Canvas  # noqa: E402
from servicemaster_units import Category, Scope, UnitDirectory, UnitRecord  # noqa: E402


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeCanvas(Canvas):
    """In-memory character grid. Every cell remembers the style it was written with."""

    def __init__(self, height=30, width=200, keys=(), colors=True):
        self.height = height
        self.width = width
        self.keys = list(keys)
        self.colors = colors
        self.defined_colors = {}
        self.pairs = {}
        self.reset_count = 0
        self.erase_count = 0
        self.clear_count = 0
        self.refresh_count = 0
        self.read_timeouts = []
        self._blank()

    def _blank(self):
        self.cells = [[" "] * self.width for _ in range(self.height)]
        self.styles = [[None] * self.width for _ in range(self.height)]

    def resize(self, height, width):
        self.height = height
        self.width = width
        self._blank()

    def size(self):
        return self.height, self.width

    def write_at(self, y, x, text, style=None):
        if y < 0 or y >= self.height:
            return
        for i, ch in enumerate(text):
            if 0 <= x + i < self.width:
                self.cells[y][x + i] = ch
                self.styles[y][x + i] = style

    def clear_region(self, y, x, height, width, style=None):
        for row in range(y, y + height):
            self.write_at(row, x, " " * width, style)

    def set_style(self, style):
        pass

    def border(self):
        pass

    def hline(self, y, x, length):
        self.write_at(y, x, "-" * length)

    def vline(self, y, x, length):
        for row in range(y, y + length):
            self.write_at(row, x, "|")

    def box(self, y, x, height, width, style=None):
        pass

    def erase(self):
        self.erase_count += 1
        self._blank()

    def clear(self):
        self.clear_count += 1
        self.erase()

    def refresh(self):
        self.refresh_count += 1

    def read_key(self, timeout=None):
        self.read_timeouts.append(timeout)
        if self.keys:
            return self.keys.pop(0)
        return -1

    def unread_key(self, key):
        self.keys.insert(0, key)

    def can_change_color(self):
        return self.colors

    def define_color(self, register, r, g, b):
        self.defined_colors[register] = (r, g, b)

    def define_pair(self, number, fg, bg):
        self.pairs[number] = (fg, bg)

    def reset_capabilities(self):
        self.reset_count += 1

    def line(self, y):
        return "".join(self.cells[y])

    def text(self):
        return "\n".join(self.line(y) for y in range(self.height))


class FakeDirectory(UnitDirectory):
    """UnitDirectory over a fixed list. Every call that would reach systemd is logged."""

    def __init__(self, records=(), scope=Scope.SYSTEM, system_only=False, failing=(),
                 status=None, enable_states=None, other_scope_records=()):
        self.scope = scope
        self.records = list(records)
        self.system_only = system_only
        self.failing = set(failing)
        self.status = status or {}
        self.enable_states = enable_states or {}
        self.other_scope_records = list(other_scope_records)
        self.calls = []

    def nth(self, index):
        if 0 <= index < len(self.records):
            return self.records[index]
        return None

    def apply_snapshot(self, records):
        old = {r.name: r.signature() for r in self.records}
        self.records = list(records)
        return {r.name for r in records if r.name in old and old[r.name] != r.signature()}

    def operation(self, record, op):
        self.calls.append((op, record.name))
        return record.name not in self.failing

    def status_text(self, record):
        self.calls.append(("status", record.name))
        return self.status.get(record.name)

    def refresh_enable_state(self, record):
        self.calls.append(("is-enabled", record.name))
        record.enable_state = self.enable_states.get(record.name, record.enable_state)
        return record.enable_state

    def scope_is_system_only(self):
        return self.system_only

    def switch_scope(self, scope):
        self.calls.append(("switch", scope))
        return FakeDirectory(self.other_scope_records, scope=scope, other_scope_records=self.records)


def unit(name, active="active", sub="running", state="enabled", description="", load="loaded"):
    return UnitRecord(name, Category.from_unit_name(name), load=load, active=active, sub=sub,
                      description=description or "Unit " + name, enable_state=state)


def sample_units():
    return [
        unit("cron.service", description="Regular background program processing daemon"),
        unit("dbus.service", state="static", description="D-Bus System Message Bus"),
        unit("ssh.service", active="inactive", sub="dead", state="disabled", description="OpenBSD Secure Shell server"),
        unit("backup.timer", sub="waiting", description="Nightly backup"),
        unit("dbus.socket", sub="listening", state="static", description="D-Bus System Message Bus Socket"),
        unit("multi-user.target", sub="active", state="static", description="Multi-User System"),
    ]


def make_display(records=None, canvas=None, euid=0, clock=None, scope=None, elevation_cmd=None, **directory_kw):
    canvas = canvas or FakeCanvas()
    directory = FakeDirectory(sample_units() if records is None else records, **directory_kw)
    display = Display(canvas, ColorSchemeStore.defaults(), directory, scope=scope,
                      gate=PrivilegeGate(lambda: euid), clock=clock or FakeClock(),
                      elevation_cmd=elevation_cmd, config_path="/tmp/servicemaster.yaml")
    display.init()
    display.redraw()
    return display


@pytest.fixture
def canvas():
    return FakeCanvas()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def display(canvas, clock):
    return make_display(canvas=canvas, clock=clock)
