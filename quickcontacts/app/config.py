from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

GLOBAL_CONFIG = Path.home() / ".quickcontacts_config.json"

DEFAULT_HOTKEY = "Ctrl+K"


def init_settings() -> None:
    GLOBAL_CONFIG.parent.mkdir(parents=True, exist_ok=True)


def _read_global_config() -> dict:
    """Return the parsed global config, or an empty dict on error/missing."""
    if not GLOBAL_CONFIG.exists():
        return {}
    try:
        payload = json.loads(GLOBAL_CONFIG.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _update_global_config(updates: dict) -> None:
    """Merge updates into global config file."""
    existing = _read_global_config()
    existing.update(updates)
    GLOBAL_CONFIG.write_text(json.dumps(existing, indent=2), encoding="utf-8")


def _load_clamped_int(key: str, default: int, low: int, high: int) -> int:
    payload = _read_global_config()
    try:
        value = int(payload.get(key, default))
    except (TypeError, ValueError):
        return default
    return max(low, min(high, value))


def _save_clamped_int(key: str, value: int, default: int, low: int, high: int) -> None:
    try:
        val = max(low, min(high, int(value)))
    except (TypeError, ValueError):
        val = default
    _update_global_config({key: val})


def load_quick_search_debounce_ms() -> int:
    """Quiet interval for the hotkey overlay (default: 100)."""
    return _load_clamped_int("quick_search_debounce_ms", 100, 0, 2000)


def save_quick_search_debounce_ms(ms: int) -> None:
    _save_clamped_int("quick_search_debounce_ms", ms, 100, 0, 2000)


def load_contacts_filter_debounce_ms() -> int:
    """Quiet interval for the full contacts list filter (default: 200)."""
    return _load_clamped_int("contacts_filter_debounce_ms", 200, 0, 5000)


def load_handoff_delay_ms() -> int:
    return _load_clamped_int("handoff_delay_ms", 100, 0, 2000)


def load_focus_delay_ms() -> int:
    return _load_clamped_int("focus_delay_ms", 50, 0, 1000)


def load_contacts_cache_expiry_hours() -> int:
    """Hours a fetched People API directory stays fresh (default: 24)."""
    return _load_clamped_int("contacts_cache_expiry_hours", 24, 0, 24 * 30)


def load_quick_search_hotkey() -> str:
    """Load the overlay hotkey as a modifier+letter string such as 'Ctrl+K'."""
    payload = _read_global_config()
    hotkey = payload.get("quick_search_hotkey")
    if isinstance(hotkey, str) and hotkey.strip():
        return hotkey.strip()
    return DEFAULT_HOTKEY


def save_quick_search_hotkey(hotkey: str) -> None:
    _update_global_config({"quick_search_hotkey": hotkey.strip() or DEFAULT_HOTKEY})


def load_contacts_file() -> Optional[str]:
    payload = _read_global_config()
    path = payload.get("contacts_file")
    return path if isinstance(path, str) and path else None


def save_contacts_file(path: Optional[str]) -> None:
    _update_global_config({"contacts_file": str(Path(path)) if path else None})


def load_people_api_base() -> Optional[str]:
    payload = _read_global_config()
    base = payload.get("people_api_base")
    return base.rstrip("/") if isinstance(base, str) and base else None


def save_people_api_base(base: Optional[str]) -> None:
    _update_global_config({"people_api_base": base})


def load_main_window_geometry() -> Optional[str]:
    """Load the saved main window geometry (base64 encoded QByteArray)."""
    payload = _read_global_config()
    geometry = payload.get("main_window_geometry")
    return geometry if isinstance(geometry, str) else None


def save_main_window_geometry(geometry: str) -> None:
    _update_global_config({"main_window_geometry": geometry})
