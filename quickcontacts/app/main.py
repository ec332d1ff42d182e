from __future__ import annotations

import argparse
import logging
import os
import sys
import time
import traceback

from PySide6.QtCore import QtMsgType, qInstallMessageHandler
from PySide6.QtWidgets import QApplication

from quickcontacts.app import config
from quickcontacts.app.contacts import (
    DirectoryProvider,
    JsonFileDirectoryProvider,
    PeopleApiDirectoryProvider,
)
from quickcontacts.app.quick_search import Hotkey
from quickcontacts.app.ui.main_window import MainWindow


# ============================================================================
# DEBUG CONFIGURATION - Environment Variables
# ============================================================================
# QUICKCONTACTS_DEBUG         - DEBUG level logging for all modules
# QUICKCONTACTS_DEBUG_SEARCH  - Print overlay render diagnostics
# QUICKCONTACTS_PEOPLE_TOKEN  - Bearer token for the People API provider
# ============================================================================

DEFAULT_PEOPLE_API = "https://people.googleapis.com"


def _debug_enabled(var_name: str) -> bool:
    """Check if a debug flag is enabled."""
    return os.getenv(var_name, "0") not in ("0", "false", "False", "", None)


def _qt_message_handler(mode: QtMsgType, context, message: str) -> None:
    """Forward Qt messages to stderr, dropping known harmless noise."""
    if "Accessible invalid" in message or "Could not find accessible on path" in message:
        return
    if mode == QtMsgType.QtDebugMsg:
        print(f"Qt Debug: {message}", file=sys.stderr)
    elif mode == QtMsgType.QtWarningMsg:
        print(f"Qt Warning: {message}", file=sys.stderr)
    elif mode == QtMsgType.QtCriticalMsg:
        print(f"Qt Critical: {message}", file=sys.stderr)
    elif mode == QtMsgType.QtFatalMsg:
        print(f"Qt Fatal: {message}", file=sys.stderr)
        sys.exit(1)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="QuickContacts desktop entry point.")
    parser.add_argument("--contacts-file", help="JSON contacts export to load instead of the People API.")
    parser.add_argument("--api-base", help=f"People API base URL (default: {DEFAULT_PEOPLE_API}; saved for later runs).")
    parser.add_argument("--token", default=os.getenv("QUICKCONTACTS_PEOPLE_TOKEN"), help="People API bearer token.")
    parser.add_argument("--hotkey", help="Quick search hotkey, e.g. Ctrl+K (saved for later runs).")
    parser.add_argument(
        "--debounce-ms", type=int, help="Quick search quiet interval in milliseconds (saved for later runs)."
    )
    parser.add_argument("--select", metavar="EMAIL", help="Open the contacts view on this email's contact.")
    return parser.parse_args(argv)


def build_provider(args: argparse.Namespace) -> DirectoryProvider:
    """Pick a directory provider from CLI flags, then saved settings."""
    contacts_file = args.contacts_file or config.load_contacts_file()
    if contacts_file:
        return JsonFileDirectoryProvider(contacts_file)
    base = args.api_base or config.load_people_api_base() or DEFAULT_PEOPLE_API
    expiry = config.load_contacts_cache_expiry_hours() * 60 * 60
    return PeopleApiDirectoryProvider(base, token=args.token, expiry_seconds=expiry)


def persist_cli_settings(args: argparse.Namespace) -> None:
    """Remember explicit CLI choices so later runs start the same way."""
    if args.contacts_file:
        config.save_contacts_file(args.contacts_file)
    if args.api_base:
        config.save_people_api_base(args.api_base)
    if args.debounce_ms is not None:
        config.save_quick_search_debounce_ms(args.debounce_ms)
    if args.hotkey:
        try:
            Hotkey.parse(args.hotkey)
        except ValueError as exc:
            print(f"[QuickContacts] Ignoring --hotkey: {exc}", file=sys.stderr)
        else:
            config.save_quick_search_hotkey(args.hotkey)


def _diag(msg: str) -> None:
    """Lightweight diagnostic logger for startup/teardown events."""
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    print(f"[QuickContactsDiag {timestamp}] {msg}", file=sys.stderr)


def main() -> None:
    args = _parse_args(sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if _debug_enabled("QUICKCONTACTS_DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    start_ts = time.time()
    _diag("Application starting.")
    config.init_settings()
    persist_cli_settings(args)
    qInstallMessageHandler(_qt_message_handler)
    qt_app = QApplication(sys.argv)
    qt_app.aboutToQuit.connect(lambda: _diag("QApplication aboutToQuit emitted."))
    window = MainWindow(build_provider(args), hotkey=args.hotkey)
    window.resize(1000, 700)
    try:
        window.show()
        window.startup(select_email=args.select)
        _diag("Main window shown; entering Qt event loop.")
        rc = qt_app.exec()
        _diag(f"Qt event loop exited with code {rc} after {time.time() - start_ts:.2f}s.")
        sys.exit(rc)
    except BaseException as exc:
        if isinstance(exc, SystemExit):
            raise
        _diag(f"Unhandled exception after {time.time() - start_ts:.2f}s: {exc}")
        traceback.print_exc()
        qt_app.quit()
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - manual entry point
    main()
