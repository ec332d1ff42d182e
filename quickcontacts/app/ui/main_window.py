from __future__ import annotations

from typing import Optional

from PySide6.QtCore import QByteArray, Qt, QTimer
from PySide6.QtWidgets import (
    QLabel,
    QMainWindow,
    QPushButton,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from quickcontacts.app import config
from quickcontacts.app.contacts import DirectoryCache, DirectoryLoader, DirectoryProvider
from quickcontacts.app.quick_search import SessionController
from .contacts_panel import ContactsPanel
from .quick_search_overlay import GlobalKeyFilter, QuickSearchOverlay

QUICK_SEARCH_HELP = "Up/Down to move, Enter to open, Esc to close"


class MainWindow(QMainWindow):
    def __init__(self, provider: DirectoryProvider, hotkey: Optional[str] = None, parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("QuickContacts")
        self._hotkey_text = hotkey or config.load_quick_search_hotkey()
        self.cache = DirectoryCache(provider)
        self.loader = DirectoryLoader(self.cache, self)
        self.loader.finished.connect(self._on_directory_loaded)

        self.geometry_save_timer = QTimer(self)
        self.geometry_save_timer.setInterval(500)
        self.geometry_save_timer.setSingleShot(True)
        self.geometry_save_timer.timeout.connect(self._save_geometry)

        self.stack = QStackedWidget()
        self.home_page = self._build_home_page()
        self.stack.addWidget(self.home_page)
        self.contacts_panel = ContactsPanel(self.cache, self.loader)
        self.contacts_panel.openRequested.connect(self.show_contacts)
        self.stack.addWidget(self.contacts_panel)
        self.setCentralWidget(self.stack)

        self.overlay = QuickSearchOverlay(self)
        self.key_filter = GlobalKeyFilter(parent=self)
        self.quick_search = SessionController(
            self.cache,
            self.loader,
            self.overlay,
            self.contacts_panel,
            self.key_filter,
            hotkey=hotkey,
            parent=self,
        )
        self.overlay.queryEdited.connect(self.quick_search.on_query_changed)
        self.overlay.resultHovered.connect(self.quick_search.hover)
        self.overlay.resultClicked.connect(self.quick_search.activate)
        self.overlay.outsideClicked.connect(self.quick_search.click_outside)
        self.quick_search.sessionOpened.connect(self._on_quick_search_opened)
        self.quick_search.sessionClosed.connect(self._on_quick_search_closed)
        self.quick_search.contactCommitted.connect(self._on_contact_committed)

        self._restore_geometry()

    def _build_home_page(self) -> QWidget:
        page = QWidget()
        layout = QVBoxLayout(page)
        layout.addStretch(1)
        hint = QLabel(f"Press {self._hotkey_text} to search contacts")
        hint.setAlignment(Qt.AlignCenter)
        hint.setStyleSheet("color: gray; font-size: 16px;")
        layout.addWidget(hint)
        browse = QPushButton("Browse contacts")
        browse.clicked.connect(lambda: self.contacts_panel.open_view())
        layout.addWidget(browse, 0, Qt.AlignHCenter)
        layout.addStretch(2)
        return page

    def startup(self, select_email: Optional[str] = None) -> None:
        """Warm the directory, optionally landing on a contact by email."""
        self.statusBar().showMessage("Loading contacts...")
        if select_email:
            self.contacts_panel.select_email(select_email)
        else:
            self.loader.request(False, self)

    def show_contacts(self) -> None:
        self.stack.setCurrentWidget(self.contacts_panel)

    def show_home(self) -> None:
        self.stack.setCurrentWidget(self.home_page)

    def _on_directory_loaded(self, token: object, ok: bool, error: str) -> None:
        if ok:
            self.statusBar().showMessage(f"{len(self.cache.snapshot())} contacts loaded", 5000)
        else:
            self.statusBar().showMessage(f"Contacts unavailable: {error}", 10000)

    def _on_quick_search_opened(self) -> None:
        self.statusBar().showMessage(QUICK_SEARCH_HELP)

    def _on_quick_search_closed(self) -> None:
        if self.statusBar().currentMessage() == QUICK_SEARCH_HELP:
            self.statusBar().clearMessage()

    def _on_contact_committed(self, identifier: str) -> None:
        contact = self.cache.find_by_identifier(identifier)
        name = contact.name if contact is not None and contact.name else identifier
        self.statusBar().showMessage(f"Opened {name}", 5000)

    def _restore_geometry(self) -> None:
        saved_geometry = config.load_main_window_geometry()
        if not saved_geometry:
            return
        try:
            self.restoreGeometry(QByteArray.fromBase64(saved_geometry.encode("ascii")))
        except Exception as e:
            print(f"[QuickContacts] Failed to restore window geometry: {e}")

    def _save_geometry(self) -> None:
        try:
            geometry_b64 = self.saveGeometry().toBase64().data().decode("ascii")
            config.save_main_window_geometry(geometry_b64)
        except Exception as e:
            print(f"[QuickContacts] Failed to save window geometry: {e}")

    def resizeEvent(self, event) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self.geometry_save_timer.start()

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.geometry_save_timer.stop()
        self._save_geometry()
        self.quick_search.close()
        self.key_filter.remove()
        super().closeEvent(event)
