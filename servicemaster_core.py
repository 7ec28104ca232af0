#!/usr/bin/env python3

import os
import sys
import shutil
import logging
import subprocess
import queue
import gettext
import locale

# -------------------------
# Set up locale and translation
# -------------------------

try:
    locale.setlocale(locale.LC_ALL, '')
    localedir = '/usr/share/locale'
    gettext.bindtextdomain('servicemaster', localedir)
    gettext.textdomain('servicemaster')
    _ = gettext.gettext
    ngettext = gettext.ngettext
except Exception:
    print("Warning: Could not set up locale. Using fallback translations.", file=sys.stderr)
    _ = lambda s: s
    ngettext = lambda s, p, n: s if n == 1 else p

logger = logging.getLogger(__name__)

# -------------------------
# Errors
# -------------------------

class ServiceMasterError(Exception):
    """Base class for errors raised by servicemaster."""


class ConfigError(ServiceMasterError):
    """The configuration file is missing pieces or holds invalid values."""


class UnsupportedTerminalError(ServiceMasterError):
    """The terminal cannot redefine its color registers."""


# -------------------------
# Logging
# -------------------------

def get_log_path():
    state_home = os.environ.get("XDG_STATE_HOME") or os.path.join(os.path.expanduser("~"), ".local", "state")
    return os.path.join(state_home, "servicemaster", "servicemaster.log")


def setup_logging(verbose=False, path=None):
    """
    Route log records to a file. stdout and stderr belong to curses while
    the dashboard runs, so nothing is logged to the terminal.
    """
    path = path or get_log_path()
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        # Read-only home: drop records instead of writing into the curses screen.
        handler = logging.NullHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
    return handler


# -------------------------
# Application Metadata/About Info
# -------------------------
class AboutInfo:
    """
    Centralized metadata for the servicemaster dashboard.
    """
    @staticmethod
    def get_program_name():
        return "ServiceMaster"

    @staticmethod
    def get_version():
        return "1.5.1"

    @staticmethod
    def get_headline():
        return f"{AboutInfo.get_program_name()} {AboutInfo.get_version()}"

    @staticmethod
    def get_website():
        return "https://github.com/lennart1978/servicemaster"

    @staticmethod
    def get_authors():
        return ["Lennart Martens"]

    @staticmethod
    def get_welcome_text(config_path):
        """Returns the translated text of the start-up welcome box."""
        return _("Welcome to ServiceMaster!\n\n"
                 "This tool allows you to manage Systemd units through an intuitive interface.\n\n"
                 "SECURITY GUIDELINE:\n"
                 "- Only root can manage system services.\n"
                 "- Regular users can only manage their own user services.\n\n"
                 "All colorschemes and settings are stored in the configuration file:\n{}\n\n"
                 "Press any key to continue...").format(config_path)

    @staticmethod
    def get_usage_epilog(config_path):
        return _("After launching ServiceMaster, you can use the following controls:\n"
                 "- Arrow keys, page up/down: Navigate through the list of units.\n"
                 "- Space: Toggle between system and user units.\n"
                 "- Enter: Show detailed status of the selected unit.\n"
                 "- F1-F8: Perform actions (start, stop, restart, etc.) on the selected unit.\n"
                 "- a-z: Quick filter units by type.\n"
                 "- Tab: Select a column header, Enter sorts by it.\n"
                 "- q or ESC: Quit the application.\n"
                 "- +,-: Switch between colorschemes.\n"
                 "- f: Search for units by name.\n\n"
                 "Configuration and colorschemes are stored in:\n{}\n\n"
                 "Website: {}").format(config_path, AboutInfo.get_website())


# -------------------------
# Core Command Runner
# -------------------------
class CommandResult:
    """Stand-in for subprocess.CompletedProcess when the command never ran."""
    def __init__(self, returncode, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class CommandRunner:
    """
    Runs external commands synchronously. Privilege is checked by the caller
    before a command is built; the runner never elevates on its own.
    """

    def run_sync(self, cmd_list):
        """
        Runs a command synchronously and returns the result object.
        """
        final = list(cmd_list)
        logger.debug("running %s", " ".join(final))
        try:
            return subprocess.run(final, text=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except FileNotFoundError as e:
            logger.warning("command not found: %s", e)
            return CommandResult(1, "", str(e))


# -------------------------
# Scheduler for main-thread hand-off
# -------------------------
class Scheduler:
    """Marshals function calls from worker threads to the main thread."""
    def __init__(self):
        self.q = queue.Queue()

    def schedule(self, func, *args):
        self.q.put((func, args))

    def drain(self, max_items=200):
        processed = 0
        while processed < max_items:
            try:
                func, args = self.q.get_nowait()
            except queue.Empty:
                break
            try:
                func(*args)
            except Exception:
                logger.exception("scheduled callback %r failed", func)
            processed += 1
        return processed


# -------------------------
# Privilege helpers
# -------------------------

def is_privileged():
    return os.geteuid() == 0


def get_elevation_cmd():
    """Pick the helper used to re-run ourselves as root, or None."""
    if is_privileged():
        return None
    elif shutil.which("sudo"):
        return ["sudo"]
    elif shutil.which("pkexec"):
        return ["pkexec"]
    return None


def build_reexec_argv(elevation_cmd, theme_name, scope, config_path=None):
    """
    Command line that restarts the dashboard under the elevation helper,
    keeping the active colorscheme and scope. The welcome box is skipped.
    """
    argv = list(elevation_cmd) + [sys.executable, "-m", "servicemaster_tui",
                                  "--no-welcome", "--colorscheme", theme_name, "--scope", scope]
    if config_path:
        argv += ["--config", config_path]
    return argv
