#!/usr/bin/env python3
"""
servicemaster_units.py — unit records and the directory that lists and controls them.

The display never talks to systemd itself. It reads UnitRecord objects through
a UnitDirectory and asks the directory to run operations on them.
SystemctlDirectory is the implementation used at runtime; it shells out to
systemctl through the shared CommandRunner.
"""

import os
import json
import logging

from servicemaster_core import CommandRunner, _

logger = logging.getLogger(__name__)

# -------------------------
# Categories, scopes, operations
# -------------------------

class Category:
    """Unit type tags. ALL is the pseudo-category that matches everything."""
    ALL = "all"
    DEVICE = "device"
    SLICE = "slice"
    SERVICE = "service"
    SOCKET = "socket"
    TARGET = "target"
    TIMER = "timer"
    MOUNT = "mount"
    SCOPE = "scope"
    AUTOMOUNT = "automount"
    SWAP = "swap"
    PATH = "path"
    SNAPSHOT = "snapshot"

    # Left/Right walk the filters in this order.
    ORDER = [ALL, DEVICE, SLICE, SERVICE, SOCKET, TARGET, TIMER,
             MOUNT, SCOPE, AUTOMOUNT, SWAP, PATH, SNAPSHOT]

    KEYS = {
        "a": ALL, "d": DEVICE, "i": SLICE, "s": SERVICE, "o": SOCKET,
        "t": TARGET, "r": TIMER, "m": MOUNT, "c": SCOPE, "n": AUTOMOUNT,
        "w": SWAP, "p": PATH, "h": SNAPSHOT,
    }

    @staticmethod
    def from_unit_name(name):
        suffix = name.rsplit(".", 1)[-1] if "." in name else ""
        if suffix in Category.ORDER and suffix != Category.ALL:
            return suffix
        return None

    @staticmethod
    def step(category, delta):
        """Neighbouring filter in ORDER, clamped at both ends."""
        idx = Category.ORDER.index(category) + delta
        idx = max(0, min(len(Category.ORDER) - 1, idx))
        return Category.ORDER[idx]

    @staticmethod
    def label(category):
        return category[:1].upper() + category[1:]


class Scope:
    SYSTEM = "system"
    USER = "user"

    @staticmethod
    def other(scope):
        return Scope.USER if scope == Scope.SYSTEM else Scope.SYSTEM


class Operation:
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    ENABLE = "enable"
    DISABLE = "disable"
    MASK = "mask"
    UNMASK = "unmask"
    RELOAD = "reload"

    # F1..F8 in this order.
    FUNCTION_KEYS = [START, STOP, RESTART, ENABLE, DISABLE, MASK, UNMASK, RELOAD]

    # Operations after which the enable state must be queried again.
    CHANGES_ENABLE_STATE = (ENABLE, DISABLE, MASK, UNMASK)

    @staticmethod
    def label(op):
        return {
            Operation.START: _("Start"),
            Operation.STOP: _("Stop"),
            Operation.RESTART: _("Restart"),
            Operation.ENABLE: _("Enable"),
            Operation.DISABLE: _("Disable"),
            Operation.MASK: _("Mask"),
            Operation.UNMASK: _("Unmask"),
            Operation.RELOAD: _("Reload"),
        }[op]


# -------------------------
# UnitRecord
# -------------------------

class UnitRecord:
    """One unit as reported by the directory. The display treats it as read-only."""

    def __init__(self, name, category, load="", active="", sub="", description="", enable_state=None):
        self.name = name
        self.category = category
        self.load = load
        self.active = active
        self.sub = sub
        self.description = description
        self.enable_state = enable_state

    @property
    def state(self):
        """Enable state when known, load state otherwise."""
        return self.enable_state if self.enable_state else self.load

    def signature(self):
        return (self.load, self.active, self.sub, self.enable_state)

    def __repr__(self):
        return f"UnitRecord({self.name!r}, {self.category!r}, active={self.active!r})"


# -------------------------
# UnitDirectory contract
# -------------------------

class UnitDirectory:
    """
    Ordinal view onto the units of one scope.

    Subclasses must keep the list stable between two calls to refresh(),
    so that nth() gives the same answer for the whole of one redraw.
    """
    scope = Scope.SYSTEM

    def nth(self, index):
        """Record at ordinal index, or None past the end."""
        raise NotImplementedError

    def units(self):
        result = []
        idx = 0
        while True:
            record = self.nth(idx)
            if record is None:
                return result
            result.append(record)
            idx += 1

    def fetch(self):
        """Build a fresh record list. Safe to call from a worker thread."""
        return self.units()

    def apply_snapshot(self, records):
        """Install a fetched list. Returns the names whose state changed."""
        return set()

    def refresh(self):
        """Re-poll the unit list. Returns the names whose state changed."""
        return self.apply_snapshot(self.fetch())

    def operation(self, record, op):
        raise NotImplementedError

    def status_text(self, record):
        raise NotImplementedError

    def refresh_enable_state(self, record):
        raise NotImplementedError

    def scope_is_system_only(self):
        return False

    def switch_scope(self, scope):
        raise NotImplementedError


# -------------------------
# systemctl implementation
# -------------------------

class SystemctlDirectory(UnitDirectory):
    """UnitDirectory backed by the systemctl command line tool."""

    def __init__(self, scope=Scope.SYSTEM, command_runner=None):
        self.scope = scope
        self.command_runner = command_runner or CommandRunner()
        self._records = []
        self._by_name = {}

    def _systemctl(self, *args):
        cmd = ["systemctl"]
        if self.scope == Scope.USER:
            cmd.append("--user")
        cmd += ["--no-pager"]
        cmd += list(args)
        return self.command_runner.run_sync(cmd)

    def _load_json(self, res, what):
        if res.returncode != 0:
            logger.warning("systemctl %s failed: %s", what, (res.stderr or "").strip())
            return []
        try:
            data = json.loads(res.stdout or "[]")
        except json.JSONDecodeError:
            logger.warning("systemctl %s: invalid JSON output", what)
            return []
        return data if isinstance(data, list) else []

    def fetch(self):
        """Query systemctl and build a fresh list of records (no state is touched)."""
        units = self._load_json(self._systemctl("list-units", "--all", "--output=json"), "list-units")
        files = self._load_json(self._systemctl("list-unit-files", "--output=json"), "list-unit-files")

        file_states = {}
        for entry in files:
            name = entry.get("unit_file")
            if name:
                file_states[name] = entry.get("state")

        records = []
        seen = set()
        for entry in units:
            name = entry.get("unit", "")
            category = Category.from_unit_name(name)
            if not category or name in seen:
                continue
            seen.add(name)
            records.append(UnitRecord(
                name,
                category,
                load=entry.get("load", ""),
                active=entry.get("active", ""),
                sub=entry.get("sub", ""),
                description=entry.get("description", ""),
                enable_state=file_states.get(name),
            ))

        # Installed unit files that are not loaded still show up, like systemctl list-unit-files.
        for name, state in file_states.items():
            category = Category.from_unit_name(name)
            if not category or name in seen or "@." in name:
                continue
            seen.add(name)
            records.append(UnitRecord(name, category, load="not-loaded", active="inactive",
                                      sub="dead", description="", enable_state=state))

        records.sort(key=lambda r: r.name)
        return records

    def apply_snapshot(self, records):
        """Swap in a fetched list. Returns the names whose state differs from before."""
        changed = set()
        for record in records:
            old = self._by_name.get(record.name)
            if old is not None and old.signature() != record.signature():
                changed.add(record.name)
        self._records = records
        self._by_name = {r.name: r for r in records}
        return changed

    def nth(self, index):
        if 0 <= index < len(self._records):
            return self._records[index]
        return None

    def operation(self, record, op):
        res = self._systemctl(op, record.name)
        if res.returncode != 0:
            logger.warning("systemctl %s %s failed: %s", op, record.name, (res.stderr or "").strip())
            return False
        logger.info("systemctl %s %s", op, record.name)
        return True

    def status_text(self, record):
        res = self._systemctl("status", "--full", record.name)
        # status exits 3 for inactive units and still prints the report
        text = (res.stdout or "").rstrip()
        if not text:
            return None
        return text

    def refresh_enable_state(self, record):
        res = self._systemctl("is-enabled", record.name)
        state = (res.stdout or "").strip().splitlines()
        record.enable_state = state[0] if state else None
        return record.enable_state

    def scope_is_system_only(self):
        runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
        if not runtime_dir:
            return True
        return not os.path.exists(os.path.join(runtime_dir, "bus"))

    def switch_scope(self, scope):
        directory = SystemctlDirectory(scope, self.command_runner)
        directory.refresh()
        return directory
