#!/usr/bin/env python3
"""
servicemaster_tui.py — curses entry point for the ServiceMaster dashboard.

Parses the command line, loads the colorschemes, then runs the Display inside
curses.wrapper. The unit list is re-polled on a worker thread every couple of
seconds; results come back to the main thread through the Scheduler.
"""

import os
import sys
import time
import curses
import argparse
import logging
import threading
import subprocess

import yaml

try:
    from servicemaster_core import (
        AboutInfo,
        CommandRunner,
        ConfigError,
        Scheduler,
        UnsupportedTerminalError,
        get_elevation_cmd,
        is_privileged,
        setup_logging,
        _,
        ngettext,
    )
    from servicemaster_config import (
        DEFAULT_SCHEMES,
        ColorSchemeStore,
        get_config_path,
    )
    from servicemaster_units import Scope, SystemctlDirectory
    from servicemaster_render import CursesCanvas
    from servicemaster_display import Display, PrivilegeGate
except ImportError as e:
    print("FATAL: Could not import servicemaster modules. Error: {}".format(e), file=sys.stderr)
    sys.exit(1)

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0
# Upper bound for one wait on input, so scheduled callbacks are not held back.
INPUT_TIMEOUT = 0.1
ESC_DELAY_MS = 25


# -------------------------
# Application
# -------------------------
class ServiceMasterApp:

    def __init__(self, stdscr, options, store, config_path):
        self.stdscr = stdscr
        self.options = options
        self.config_path = config_path
        self.running = True
        self.exit_code = 0
        self.scheduler = Scheduler()
        self._polling = False

        try:
            curses.curs_set(0)
        except curses.error:
            pass
        self.stdscr.nodelay(True)
        self.stdscr.keypad(True)
        curses.start_color()
        curses.set_escdelay(ESC_DELAY_MS)
        self.canvas = CursesCanvas(stdscr)

        elevation_cmd = get_elevation_cmd()
        self.command_runner = CommandRunner()
        gate = PrivilegeGate()

        scope = options.scope
        if scope is None:
            scope = Scope.SYSTEM if gate.privileged() else Scope.USER
        directory = SystemctlDirectory(scope, self.command_runner)
        if scope == Scope.USER and directory.scope_is_system_only():
            logger.info("no user session bus, showing system units")
            scope = Scope.SYSTEM
            directory = SystemctlDirectory(scope, self.command_runner)
        directory.refresh()

        self.display = Display(self.canvas, store, directory, scope=scope, gate=gate,
                               elevation_cmd=elevation_cmd, config_path=config_path)

    # --- background polling ---
    def poll_units(self):
        if self._polling:
            return
        self._polling = True
        directory = self.display.directory

        def worker():
            try:
                records = directory.fetch()
            except Exception:
                logger.exception("polling units failed")
                records = None
            self.scheduler.schedule(self.on_poll_finished, directory, records)
        threading.Thread(target=worker, daemon=True).start()

    def on_poll_finished(self, directory, records):
        self._polling = False
        # The scope may have been switched while the worker ran.
        if records is None or directory is not self.display.directory:
            return
        self.display.apply_snapshot(records)

    # --- main loop ---
    def run(self):
        display = self.display
        display.init()
        if not self.options.no_welcome:
            display.show_message(_("Welcome"), AboutInfo.get_welcome_text(self.config_path))
        display.redraw()

        next_poll = time.monotonic() + POLL_INTERVAL
        while self.running:
            self.scheduler.drain()

            ch = self.canvas.read_key(INPUT_TIMEOUT)
            if ch != -1:
                code = display.handle_input_event(ch)
                if code is not None:
                    self.exit_code = code
                    self.running = False
                    break

            if time.monotonic() >= next_poll:
                self.poll_units()
                next_poll = time.monotonic() + POLL_INTERVAL

        display.teardown()
        return self.exit_code


def main(stdscr, options, store, config_path):
    app = ServiceMasterApp(stdscr, options, store, config_path)
    code = app.run()
    return code, app.display.reexec_argv


# -------------------------
# Command line
# -------------------------
def build_parser(config_path=None):
    parser = argparse.ArgumentParser(
        prog="servicemaster",
        description=_("Terminal dashboard for systemd units."),
        epilog=AboutInfo.get_usage_epilog(config_path or get_config_path()),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--version", action="store_true", help=_("show the version and exit"))
    parser.add_argument("-w", "--no-welcome", action="store_true", help=_("do not show the welcome message"))
    parser.add_argument("-c", "--colorscheme", metavar="NAME", help=_("start with colorscheme NAME"))
    parser.add_argument("-l", "--list", action="store_true", help=_("list the available colorschemes and exit"))
    parser.add_argument("-p", "--print-config", action="store_true", help=_("print the configuration file and exit"))
    parser.add_argument("-e", "--edit-config", action="store_true",
                        help=_("open the configuration file in $EDITOR and exit"))
    parser.add_argument("--config", metavar="PATH", help=_("configuration file to use"))
    parser.add_argument("--scope", choices=[Scope.SYSTEM, Scope.USER], help=_("unit scope to show first"))
    parser.add_argument("--verbose", action="store_true", help=_("write debug messages to the log file"))
    return parser


def print_config(config_path):
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                sys.stdout.write(f.read())
        except OSError as e:
            print(_("Error opening file {}: {}").format(config_path, e), file=sys.stderr)
            return 1
        return 0
    print(_("# {} does not exist, built-in colorschemes:").format(config_path))
    sys.stdout.write(yaml.safe_dump({"actual_colorscheme": DEFAULT_SCHEMES[0]["name"],
                                     "colorschemes": DEFAULT_SCHEMES},
                                    sort_keys=False, default_flow_style=None))
    return 0


def edit_config(config_path):
    print("\n\n" + _("Configuration file: {}").format(config_path) + "\n")
    cmd = [os.environ.get("EDITOR") or "vi", config_path]
    if not is_privileged():
        elevation_cmd = get_elevation_cmd()
        if elevation_cmd:
            cmd = elevation_cmd + cmd
    try:
        returncode = subprocess.call(cmd)
    except OSError as e:
        returncode = 1
        logger.warning("editor failed: %s", e)
    if returncode != 0:
        print(_("Failed to edit configuration file"), file=sys.stderr)
        return 1
    return 0


def list_colorschemes(store):
    count = len(store)
    print(ngettext("{} colorscheme available:", "{} colorschemes available:", count).format(count))
    for idx, name in enumerate(store.names()):
        marker = "*" if idx == store.active_index else " "
        print(f" {marker} {name}")


def run(argv=None):
    options = build_parser().parse_args(argv)
    config_path = get_config_path(options.config)

    if options.version:
        print(_("Version: {}").format(AboutInfo.get_version()))
        print(_("Authors: {}").format(", ".join(AboutInfo.get_authors())))
        return 0
    if options.print_config:
        return print_config(config_path)
    if options.edit_config:
        return edit_config(config_path)

    setup_logging(options.verbose)
    try:
        store = ColorSchemeStore.from_config(config_path, options.colorscheme)
    except ConfigError as e:
        print(_("Failed to load colorschemes: {}").format(e), file=sys.stderr)
        return 1

    if options.list:
        list_colorschemes(store)
        return 0

    try:
        code, reexec_argv = curses.wrapper(main, options, store, config_path)
    except UnsupportedTerminalError as e:
        # curses.wrapper has already restored the terminal.
        print(str(e), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0

    if reexec_argv:
        logger.info("restarting as root: %s", " ".join(reexec_argv))
        os.execvp(reexec_argv[0], reexec_argv)
    return code


if __name__ == "__main__":
    sys.exit(run())
