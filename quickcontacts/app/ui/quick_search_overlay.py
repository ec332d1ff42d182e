from __future__ import annotations

import html
import os
from typing import Optional, Sequence

from PySide6.QtCore import QEvent, QObject, QSize, Qt, Signal
from PySide6.QtGui import QPainter, QTextDocument
from PySide6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QFrame,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QStyle,
    QStyledItemDelegate,
    QVBoxLayout,
    QWidget,
)

from quickcontacts.app.quick_search import KeyHandler, ScoredMatch

HINT_TEXT = "Type to search contacts by name, email, or company"

_DEBUG = os.getenv("QUICKCONTACTS_DEBUG_SEARCH", "0") not in ("0", "false", "False", "")


def highlight_match(text: str, query: str) -> str:
    """Escape ``text`` and bold the first case-insensitive occurrence of ``query``."""
    if not text or not query:
        return html.escape(text or "")
    index = text.lower().find(query.lower())
    if index == -1:
        return html.escape(text)
    before = html.escape(text[:index])
    match = html.escape(text[index : index + len(query)])
    after = html.escape(text[index + len(query) :])
    return f'{before}<span style="font-weight: bold; background-color: rgba(255, 215, 0, 0.35);">{match}</span>{after}'


def result_label(match: ScoredMatch, query: str) -> str:
    """Rich-text label for one result row: initials, name, then email and company."""
    contact = match.contact
    email = match.detail.email_match or (contact.emails[0] if contact.emails else "")
    meta = [highlight_match(part, query) for part in (email, contact.organization or "") if part]
    label = (
        f"<span style='color: #5c6bc0; font-weight: bold;'>{html.escape(contact.initials)}</span>"
        f"&nbsp;&nbsp;{highlight_match(contact.name or '', query)}"
    )
    if meta:
        label += f"<br><span style='color: gray;'>{' · '.join(meta)}</span>"
    return label


class HTMLDelegate(QStyledItemDelegate):
    """Custom delegate to render HTML in list items."""

    def paint(self, painter: QPainter, option, index):
        painter.save()
        text = index.data(Qt.DisplayRole)
        doc = QTextDocument()
        doc.setDefaultFont(option.font)
        doc.setDocumentMargin(4)
        doc.setTextWidth(option.rect.width())
        if option.state & QStyle.StateFlag.State_Selected:
            painter.fillRect(option.rect, option.palette.highlight())
            doc.setDefaultStyleSheet("body { color: white; }")
        doc.setHtml(text)
        painter.translate(option.rect.topLeft())
        doc.drawContents(painter)
        painter.restore()

    def sizeHint(self, option, index):
        doc = QTextDocument()
        doc.setHtml(index.data(Qt.DisplayRole))
        doc.setDefaultFont(option.font)
        doc.setDocumentMargin(4)
        doc.setTextWidth(option.rect.width() if option.rect.width() > 0 else 520)
        size = doc.size()
        return QSize(int(size.width()), int(size.height()))


class QuickSearchOverlay(QWidget):
    """Dimmed overlay with a centered search panel.

    Implements the presentation side of quick search: the controller calls the
    ``render_*`` methods and listens to the signals below.
    """

    queryEdited = Signal(str)
    resultHovered = Signal(int)
    resultClicked = Signal(int)
    outsideClicked = Signal()

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setObjectName("quickSearchOverlay")
        self.setAttribute(Qt.WA_StyledBackground, True)
        self.setStyleSheet(
            "#quickSearchOverlay { background: rgba(0, 0, 0, 90); }"
            "#quickSearchPanel { background: palette(window); border: 1px solid #666; border-radius: 6px; }"
        )

        outer = QVBoxLayout(self)
        outer.setContentsMargins(0, 80, 0, 0)

        self.panel = QFrame(self)
        self.panel.setObjectName("quickSearchPanel")
        self.panel.setFixedWidth(560)
        outer.addWidget(self.panel, 0, Qt.AlignHCenter | Qt.AlignTop)

        layout = QVBoxLayout(self.panel)
        layout.setContentsMargins(10, 10, 10, 10)
        layout.setSpacing(6)

        self.search = QLineEdit()
        self.search.setPlaceholderText("Search contacts…")
        self.search.setCompleter(None)
        self.search.textChanged.connect(self.queryEdited)
        layout.addWidget(self.search)

        self.status_label = QLabel(HINT_TEXT)
        # Echoes the raw query back; never interpret it as markup.
        self.status_label.setTextFormat(Qt.PlainText)
        self.status_label.setStyleSheet("color: gray; font-style: italic; padding: 8px;")
        self.status_label.setAlignment(Qt.AlignCenter)
        layout.addWidget(self.status_label)

        self.list_widget = QListWidget()
        self.list_widget.setItemDelegate(HTMLDelegate(self.list_widget))
        self.list_widget.setSelectionMode(QAbstractItemView.SingleSelection)
        self.list_widget.setFocusPolicy(Qt.NoFocus)
        self.list_widget.setMouseTracking(True)
        self.list_widget.itemEntered.connect(lambda item: self.resultHovered.emit(self.list_widget.row(item)))
        self.list_widget.itemClicked.connect(lambda item: self.resultClicked.emit(self.list_widget.row(item)))
        self.list_widget.setMinimumHeight(320)
        self.list_widget.hide()
        layout.addWidget(self.list_widget)

        if parent is not None:
            parent.installEventFilter(self)
            self.setGeometry(parent.rect())
        self.hide()

    # --- presentation port --------------------------------------------------

    def show_overlay(self) -> None:
        parent = self.parentWidget()
        if parent is not None:
            self.setGeometry(parent.rect())
        self.show()
        self.raise_()

    def hide_overlay(self) -> None:
        self.hide()

    def focus_query_input(self) -> None:
        self.search.setFocus(Qt.ShortcutFocusReason)

    def clear_query_input(self) -> None:
        self.search.blockSignals(True)
        self.search.clear()
        self.search.blockSignals(False)

    def render_hint(self) -> None:
        self.list_widget.clear()
        self.list_widget.hide()
        self.status_label.setText(HINT_TEXT)
        self.status_label.show()

    def render_empty(self, query: str) -> None:
        self.list_widget.clear()
        self.list_widget.hide()
        self.status_label.setText(f'No contacts found for "{query}"')
        self.status_label.show()

    def render_results(self, matches: Sequence[ScoredMatch], selected_index: int) -> None:
        query = self.search.text().strip()
        self.list_widget.blockSignals(True)
        self.list_widget.clear()
        for match in matches:
            item = QListWidgetItem(result_label(match, query))
            item.setData(Qt.UserRole, match.contact.identifier)
            item.setToolTip(", ".join(match.contact.emails))
            self.list_widget.addItem(item)
        if 0 <= selected_index < self.list_widget.count():
            self.list_widget.setCurrentRow(selected_index)
            self.list_widget.scrollToItem(self.list_widget.item(selected_index), QAbstractItemView.EnsureVisible)
        self.list_widget.blockSignals(False)
        self.status_label.hide()
        self.list_widget.show()
        if _DEBUG:
            print(f"[QuickSearch] Rendered {len(matches)} result(s), selected={selected_index}")

    # --- events -------------------------------------------------------------

    def eventFilter(self, obj, event):  # type: ignore[override]
        if obj is self.parentWidget() and event.type() == QEvent.Resize:
            self.setGeometry(obj.rect())
        return super().eventFilter(obj, event)

    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        if not self.panel.geometry().contains(event.position().toPoint()):
            event.accept()
            self.outsideClicked.emit()
            return
        super().mousePressEvent(event)


class GlobalKeyFilter(QObject):
    """Application-wide key listener feeding the quick search controller."""

    def __init__(self, app: Optional[QApplication] = None, parent=None) -> None:
        super().__init__(parent)
        self._app = app or QApplication.instance()
        self._handler: Optional[KeyHandler] = None

    def install(self, handler: KeyHandler) -> None:
        self._handler = handler
        self._app.installEventFilter(self)

    def remove(self) -> None:
        self._app.removeEventFilter(self)
        self._handler = None

    def eventFilter(self, obj, event):  # type: ignore[override]
        # Key events reach the QWindow before the focus widget; only act once.
        if event.type() != QEvent.KeyPress or not isinstance(obj, QWidget) or self._handler is None:
            return False
        try:
            return bool(self._handler(event.key(), event.modifiers()))
        except Exception as exc:
            print(f"[QuickSearch] Key handler failed: {exc}")
            return False
