"""Quick contact search: scoring, ranked results and the overlay session.

The overlay is opened with a global hotkey, debounces keystrokes into
evaluations against the shared directory cache and hands the chosen contact
to the contacts view. Everything visual goes through ``PresentationPort`` so
the controller runs without a display.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol, Sequence

from PySide6.QtCore import QObject, QTimer, Qt, Signal

from quickcontacts.app import config
from quickcontacts.app.contacts import Contact, DirectoryCache, DirectoryLoader

logger = logging.getLogger(__name__)

MAX_RESULTS = 10

NAME_PREFIX_SCORE = 100
NAME_CONTAINS_SCORE = 50
EMAIL_PREFIX_SCORE = 80
EMAIL_CONTAINS_SCORE = 40
ORG_PREFIX_SCORE = 60
ORG_CONTAINS_SCORE = 30


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MatchDetail:
    name_match: Optional[str] = None  # "start" | "contains"
    email_match: Optional[str] = None  # the email that matched
    org_match: Optional[str] = None  # "start" | "contains"


@dataclass(frozen=True)
class ScoredMatch:
    contact: Contact
    score: int
    detail: MatchDetail


def _text_match(text: Optional[str], needle: str) -> Optional[str]:
    if not text:
        return None
    lowered = text.lower()
    if lowered.startswith(needle):
        return "start"
    if needle in lowered:
        return "contains"
    return None


def score_contact(contact: Contact, query: str) -> ScoredMatch:
    """Score one contact against a query, case-insensitively.

    Name, email and organization each contribute independently. Emails are
    checked in order and the first one matching (prefix or substring) wins.
    """
    needle = query.lower()
    score = 0

    name_match = _text_match(contact.name, needle)
    if name_match == "start":
        score += NAME_PREFIX_SCORE
    elif name_match == "contains":
        score += NAME_CONTAINS_SCORE

    email_match = None
    for email in contact.emails:
        kind = _text_match(email, needle)
        if kind == "start":
            score += EMAIL_PREFIX_SCORE
        elif kind == "contains":
            score += EMAIL_CONTAINS_SCORE
        else:
            continue
        email_match = email
        break

    org_match = _text_match(contact.organization, needle)
    if org_match == "start":
        score += ORG_PREFIX_SCORE
    elif org_match == "contains":
        score += ORG_CONTAINS_SCORE

    return ScoredMatch(contact, score, MatchDetail(name_match, email_match, org_match))


def _rank_key(match: ScoredMatch) -> tuple:
    # Equal scores fall back to name, then identifier, so ordering never
    # depends on directory order.
    return (-match.score, (match.contact.name or "").casefold(), match.contact.identifier)


def build_result_set(contacts: Iterable[Contact], query: str) -> tuple[ScoredMatch, ...]:
    """Return at most MAX_RESULTS matches, best first. Blank queries match nothing."""
    needle = query.strip()
    if not needle:
        return ()
    scored = [m for m in (score_contact(c, needle) for c in contacts) if m.score > 0]
    scored.sort(key=_rank_key)
    return tuple(scored[:MAX_RESULTS])


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class SearchSession:
    """State for one overlay lifetime. Discarded on close."""

    generation: int
    query: str = ""
    results: tuple[ScoredMatch, ...] = ()
    cursor: int = -1
    pending: Optional[QTimer] = None
    alive: bool = True

    def set_results(self, results: Sequence[ScoredMatch]) -> None:
        self.results = tuple(results)
        self.cursor = 0 if self.results else -1

    def move_down(self) -> None:
        if self.results:
            self.cursor = min(self.cursor + 1, len(self.results) - 1)

    def move_up(self) -> None:
        if self.results:
            self.cursor = max(self.cursor - 1, 0)

    def hover(self, index: int) -> bool:
        """Select ``index`` under the mouse. Returns True if the cursor moved."""
        if 0 <= index < len(self.results) and index != self.cursor:
            self.cursor = index
            return True
        return False

    def selected(self) -> Optional[ScoredMatch]:
        if 0 <= self.cursor < len(self.results):
            return self.results[self.cursor]
        return None


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


class PresentationPort(Protocol):
    def show_overlay(self) -> None: ...

    def hide_overlay(self) -> None: ...

    def focus_query_input(self) -> None: ...

    def clear_query_input(self) -> None: ...

    def render_hint(self) -> None: ...

    def render_empty(self, query: str) -> None: ...

    def render_results(self, matches: Sequence[ScoredMatch], selected_index: int) -> None: ...


class DetailView(Protocol):
    def open_view(self) -> None:
        """Show the contacts view without forcing a directory reload."""
        ...

    def activate_entry(self, identifier: str) -> bool:
        """Select an already-rendered entry. Returns False if it is not there."""
        ...


KeyHandler = Callable[[int, Qt.KeyboardModifier], bool]


class KeyEventSource(Protocol):
    def install(self, handler: KeyHandler) -> None: ...


# ---------------------------------------------------------------------------
# Hotkey
# ---------------------------------------------------------------------------

_MODIFIERS = {
    "ctrl": Qt.ControlModifier,
    "control": Qt.ControlModifier,
    "cmd": Qt.ControlModifier,
    "meta": Qt.MetaModifier,
    "alt": Qt.AltModifier,
    "shift": Qt.ShiftModifier,
}


@dataclass(frozen=True)
class Hotkey:
    key: int
    modifiers: tuple = field(default_factory=tuple)

    @classmethod
    def parse(cls, text: str) -> "Hotkey":
        """Parse 'Ctrl+K' style text. Must be one or more modifiers plus a letter."""
        parts = [p.strip() for p in text.split("+") if p.strip()]
        if len(parts) < 2:
            raise ValueError(f"hotkey needs a modifier and a letter: {text!r}")
        letter = parts[-1].upper()
        if len(letter) != 1 or not letter.isalpha():
            raise ValueError(f"hotkey must end in a letter: {text!r}")
        try:
            modifiers = tuple(_MODIFIERS[p.lower()] for p in parts[:-1])
        except KeyError as exc:
            raise ValueError(f"unknown modifier {exc.args[0]!r} in {text!r}") from exc
        return cls(getattr(Qt.Key, f"Key_{letter}"), modifiers)

    def matches(self, key: int, modifiers: Qt.KeyboardModifier) -> bool:
        """Exact match: the listed modifiers, and no others, must be held."""
        if key != self.key:
            return False
        wanted = frozenset().union(*(_modifier_names(m) for m in self.modifiers))
        return _modifier_names(modifiers) == wanted


def _modifier_names(modifiers: Qt.KeyboardModifier) -> frozenset:
    names = set()
    # Cmd on macOS arrives as Meta on some setups
    if modifiers & Qt.ControlModifier or modifiers & Qt.MetaModifier:
        names.add("ctrl")
    if modifiers & Qt.AltModifier:
        names.add("alt")
    if modifiers & Qt.ShiftModifier:
        names.add("shift")
    return frozenset(names)


def _load_hotkey(text: Optional[str]) -> Hotkey:
    text = text or config.load_quick_search_hotkey()
    try:
        return Hotkey.parse(text)
    except ValueError as exc:
        logger.warning("Invalid quick search hotkey, using %s: %s", config.DEFAULT_HOTKEY, exc)
        return Hotkey.parse(config.DEFAULT_HOTKEY)


# ---------------------------------------------------------------------------
# Controllers
# ---------------------------------------------------------------------------


class InputController(QObject):
    """Turns keystrokes into debounced evaluations.

    A session has at most one pending evaluation. Scheduling a new one stops
    the previous timer, so evaluations run in submission order and only the
    latest query is ever evaluated.
    """

    def __init__(
        self,
        evaluate: Callable[[SearchSession, str], None],
        clear: Callable[[SearchSession], None],
        interval_ms: int,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self._evaluate = evaluate
        self._clear = clear
        self.interval_ms = interval_ms

    def submit(self, session: SearchSession, raw_text: str) -> None:
        query = raw_text.strip()
        self.cancel(session)
        session.query = query
        if not query:
            self._clear(session)
            return
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.setInterval(self.interval_ms)
        timer.timeout.connect(lambda: self._fire(session, timer, query))
        session.pending = timer
        timer.start()

    def cancel(self, session: SearchSession) -> None:
        timer = session.pending
        if timer is None:
            return
        session.pending = None
        timer.stop()
        timer.deleteLater()

    def _fire(self, session: SearchSession, timer: QTimer, query: str) -> None:
        if session.pending is not timer or not session.alive:
            return
        session.pending = None
        timer.deleteLater()
        try:
            self._evaluate(session, query)
        except Exception:
            logger.exception("Quick search evaluation failed for %r", query)


class SessionController(QObject):
    """Owns the overlay lifecycle: hotkey, navigation, commit and handoff."""

    sessionOpened = Signal()
    sessionClosed = Signal()
    contactCommitted = Signal(str)  # identifier

    def __init__(
        self,
        cache: DirectoryCache,
        loader: DirectoryLoader,
        presentation: PresentationPort,
        detail_view: DetailView,
        key_source: Optional[KeyEventSource] = None,
        *,
        debounce_ms: Optional[int] = None,
        hotkey: Optional[str] = None,
        focus_delay_ms: Optional[int] = None,
        handoff_delay_ms: Optional[int] = None,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self.cache = cache
        self.loader = loader
        self.presentation = presentation
        self.detail_view = detail_view
        self.hotkey = _load_hotkey(hotkey)
        self.focus_delay_ms = config.load_focus_delay_ms() if focus_delay_ms is None else focus_delay_ms
        self.handoff_delay_ms = config.load_handoff_delay_ms() if handoff_delay_ms is None else handoff_delay_ms
        interval = config.load_quick_search_debounce_ms() if debounce_ms is None else debounce_ms
        self.input = InputController(self._evaluate, self._clear_results, interval, self)
        self._session: Optional[SearchSession] = None
        self._generations = itertools.count(1)
        self.loader.finished.connect(self._on_directory_loaded)
        if key_source is not None:
            key_source.install(self.handle_key)

    @property
    def session(self) -> Optional[SearchSession]:
        return self._session

    def is_open(self) -> bool:
        return self._session is not None

    # --- keyboard -----------------------------------------------------------

    def handle_key(self, key: int, modifiers: Qt.KeyboardModifier) -> bool:
        """Route a key press. Returns True when the key was consumed."""
        if self.hotkey.matches(key, modifiers):
            self.open()
            return True
        session = self._session
        if session is None:
            return False
        if key == Qt.Key_Escape:
            self.close()
        elif key == Qt.Key_Down:
            session.move_down()
            self._render(session)
        elif key == Qt.Key_Up:
            session.move_up()
            self._render(session)
        elif key in (Qt.Key_Return, Qt.Key_Enter):
            self.commit_selected()
        else:
            return False
        return True

    # --- lifecycle ----------------------------------------------------------

    def open(self) -> None:
        if self._session is not None:
            return
        session = SearchSession(generation=next(self._generations))
        self._session = session
        self.presentation.clear_query_input()
        self.presentation.show_overlay()
        self.presentation.render_hint()
        QTimer.singleShot(self.focus_delay_ms, lambda: self._focus_input(session))
        if self.cache.is_empty():
            logger.debug("Directory cache cold; warming for session %d", session.generation)
            self.loader.request(False, session)
        self.sessionOpened.emit()

    def close(self) -> None:
        session = self._session
        if session is None:
            return
        self.input.cancel(session)
        session.alive = False
        self._session = None
        self.presentation.hide_overlay()
        self.presentation.clear_query_input()
        self.sessionClosed.emit()

    def click_outside(self) -> None:
        self.close()

    # --- input --------------------------------------------------------------

    def on_query_changed(self, text: str) -> None:
        if self._session is not None:
            self.input.submit(self._session, text)

    def hover(self, index: int) -> None:
        session = self._session
        if session is not None and session.hover(index):
            self._render(session)

    def activate(self, index: int) -> None:
        """Commit the result at ``index`` (mouse click)."""
        session = self._session
        if session is not None and 0 <= index < len(session.results):
            self._commit(session.results[index].contact)

    def commit_selected(self) -> None:
        session = self._session
        match = session.selected() if session is not None else None
        if match is not None:
            self._commit(match.contact)

    # --- internals ----------------------------------------------------------

    def _evaluate(self, session: SearchSession, query: str) -> None:
        session.set_results(build_result_set(self.cache.snapshot(), query))
        logger.debug("Query %r -> %d result(s)", query, len(session.results))
        self._render(session)

    def _clear_results(self, session: SearchSession) -> None:
        session.set_results(())
        self.presentation.render_hint()

    def _render(self, session: SearchSession) -> None:
        if not session.query:
            self.presentation.render_hint()
        elif not session.results:
            self.presentation.render_empty(session.query)
        else:
            self.presentation.render_results(session.results, session.cursor)

    def _focus_input(self, session: SearchSession) -> None:
        if session.alive and session is self._session:
            self.presentation.focus_query_input()

    def _on_directory_loaded(self, token: object, ok: bool, error: str) -> None:
        session = self._session
        if session is None or token is not session or not session.alive:
            return
        if not ok:
            logger.info("Quick search continuing without fresh directory: %s", error)
            return
        if session.query:
            self.input.cancel(session)
            self._evaluate(session, session.query)

    def _commit(self, contact: Contact) -> None:
        logger.info("Selected contact: %s", contact.name or contact.identifier)
        identifier = contact.identifier
        self.close()
        self.contactCommitted.emit(identifier)
        self._hand_off(identifier)

    def _hand_off(self, identifier: str) -> None:
        # Fire-and-forget: open the view, then look for the entry once.
        try:
            self.detail_view.open_view()
        except Exception:
            logger.exception("Contacts view failed to open")
            return
        QTimer.singleShot(self.handoff_delay_ms, lambda: self._activate_in_detail(identifier))

    def _activate_in_detail(self, identifier: str) -> None:
        try:
            found = self.detail_view.activate_entry(identifier)
        except Exception:
            logger.exception("Contacts view failed to select %s", identifier)
            return
        if not found:
            logger.debug("Contact %s not rendered yet; handoff dropped", identifier)
