"""Full contacts list with a filter box and a detail pane."""

from __future__ import annotations

import html
from typing import Optional

from PySide6.QtCore import Qt, QTimer, Signal
from PySide6.QtWidgets import (
    QAbstractItemView,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QSplitter,
    QTextBrowser,
    QVBoxLayout,
    QWidget,
)

from quickcontacts.app import config
from quickcontacts.app.contacts import Contact, DirectoryCache, DirectoryLoader


def contact_matches(contact: Contact, query: str) -> bool:
    """Plain substring filter used by the list view (no ranking)."""
    needle = query.lower()
    if contact.name and needle in contact.name.lower():
        return True
    if any(needle in email.lower() for email in contact.emails):
        return True
    return bool(contact.organization and needle in contact.organization.lower())


class ContactsPanel(QWidget):
    """Directory list view. Also the target of quick search handoffs."""

    openRequested = Signal()
    contactSelected = Signal(str)  # identifier

    def __init__(self, cache: DirectoryCache, loader: DirectoryLoader, parent=None) -> None:
        super().__init__(parent)
        self.cache = cache
        self.loader = loader
        self._contacts_by_id: dict[str, Contact] = {}
        self._pending_email: Optional[str] = None

        self.filter_timer = QTimer(self)
        self.filter_timer.setInterval(config.load_contacts_filter_debounce_ms())
        self.filter_timer.setSingleShot(True)
        self.filter_timer.timeout.connect(self._populate)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)

        top_row = QHBoxLayout()
        self.filter_entry = QLineEdit()
        self.filter_entry.setPlaceholderText("Filter contacts…")
        self.filter_entry.textChanged.connect(lambda: self.filter_timer.start())
        top_row.addWidget(self.filter_entry, 1)
        self.refresh_button = QPushButton("Refresh")
        self.refresh_button.clicked.connect(lambda: self.reload(force_refresh=True))
        top_row.addWidget(self.refresh_button)
        layout.addLayout(top_row)

        self.count_label = QLabel("")
        self.count_label.setStyleSheet("color: gray; font-style: italic;")
        layout.addWidget(self.count_label)

        splitter = QSplitter(Qt.Horizontal)
        self.list_widget = QListWidget()
        self.list_widget.setSelectionMode(QAbstractItemView.SingleSelection)
        self.list_widget.currentItemChanged.connect(self._on_current_changed)
        splitter.addWidget(self.list_widget)
        self.detail = QTextBrowser()
        self.detail.setOpenExternalLinks(True)
        splitter.addWidget(self.detail)
        splitter.setStretchFactor(1, 1)
        layout.addWidget(splitter, 1)

        self.loader.finished.connect(self._on_directory_loaded)

    # --- detail view port ---------------------------------------------------

    def open_view(self) -> None:
        self.openRequested.emit()
        if self.cache.is_empty():
            self.reload()
        elif self.list_widget.count() == 0:
            self._populate()

    def activate_entry(self, identifier: str) -> bool:
        for row in range(self.list_widget.count()):
            item = self.list_widget.item(row)
            if item.data(Qt.UserRole) == identifier:
                self.list_widget.setCurrentItem(item)
                self.list_widget.scrollToItem(item, QAbstractItemView.PositionAtCenter)
                return True
        return False

    # --- other entry points -------------------------------------------------

    def reload(self, force_refresh: bool = False) -> None:
        self.count_label.setText("Loading contacts...")
        self.loader.request(force_refresh, self)

    def select_email(self, email: str) -> bool:
        """Open the view on the contact owning ``email``.

        With a cold cache the request is kept and completed after the next
        successful load.
        """
        self._pending_email = email
        self.open_view()
        return self._apply_pending_email()

    def _apply_pending_email(self) -> bool:
        email = self._pending_email
        if not email or self.cache.is_empty():
            return False
        self._pending_email = None
        contact = self.cache.find_by_email(email)
        if contact is None:
            print(f"[Contacts] No contact with email {email}")
            return False
        if self.filter_entry.text():
            self.filter_entry.clear()
        # The loader may have filled the cache before its signal reached us.
        if self.activate_entry(contact.identifier):
            return True
        self._populate()
        return self.activate_entry(contact.identifier)

    # --- internals ----------------------------------------------------------

    def _on_directory_loaded(self, token: object, ok: bool, error: str) -> None:
        if ok:
            self._populate()
            self._apply_pending_email()
        elif token is self:
            self.count_label.setText(f"Failed to load contacts: {error}")

    def _populate(self) -> None:
        query = self.filter_entry.text().strip()
        contacts = self.cache.snapshot()
        shown = [c for c in contacts if contact_matches(c, query)] if query else list(contacts)
        current = self.list_widget.currentItem()
        current_id = current.data(Qt.UserRole) if current else None

        self.list_widget.blockSignals(True)
        self.list_widget.clear()
        self._contacts_by_id = {}
        for contact in shown:
            item = QListWidgetItem(contact.name or (contact.emails[0] if contact.emails else contact.identifier))
            item.setData(Qt.UserRole, contact.identifier)
            if contact.organization:
                item.setToolTip(contact.organization)
            self.list_widget.addItem(item)
            self._contacts_by_id[contact.identifier] = contact
        self.list_widget.blockSignals(False)

        if query:
            self.count_label.setText(f"{len(shown)} of {len(contacts)} contacts")
        else:
            self.count_label.setText(f"{len(contacts)} contacts")
        if current_id:
            self.activate_entry(current_id)

    def _on_current_changed(self, current, previous) -> None:
        if current is None:
            return
        identifier = current.data(Qt.UserRole)
        contact = self._contacts_by_id.get(identifier)
        if contact is None:
            return
        self.detail.setHtml(self._detail_html(contact))
        self.contactSelected.emit(identifier)

    def _detail_html(self, contact: Contact) -> str:
        parts = [f"<h2>{html.escape(contact.name or 'Unknown')}</h2>"]
        role = " · ".join(html.escape(p) for p in (contact.title, contact.organization) if p)
        if role:
            parts.append(f"<p style='color: gray;'>{role}</p>")
        if contact.emails:
            links = "<br>".join(
                f"<a href='mailto:{html.escape(e)}'>{html.escape(e)}</a>" for e in contact.emails
            )
            parts.append(f"<p><b>Email</b><br>{links}</p>")
        if contact.phones:
            parts.append(f"<p><b>Phone</b><br>{'<br>'.join(html.escape(p) for p in contact.phones)}</p>")
        return "".join(parts)
