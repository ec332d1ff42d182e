"""Contact directory: records, providers, the shared cache and its loader.

The cache is the single write path for directory data. Readers take a
snapshot (an immutable tuple) so a refresh in progress never exposes a
half-updated collection.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Protocol

import httpx
from PySide6.QtCore import QObject, Signal

logger = logging.getLogger(__name__)

PERSON_FIELDS = "names,emailAddresses,phoneNumbers,organizations,photos"
PAGE_SIZE = 1000


class FetchError(Exception):
    """The directory could not be loaded."""


def _string_tuple(value) -> tuple[str, ...]:
    # A single address may be stored as a plain string instead of a list.
    if isinstance(value, str):
        value = [value]
    return tuple(str(v).strip() for v in (value or []) if v and str(v).strip())


@dataclass(frozen=True)
class Contact:
    identifier: str
    name: Optional[str] = None
    emails: tuple[str, ...] = ()
    organization: Optional[str] = None
    photo_url: Optional[str] = None
    given_name: str = ""
    family_name: str = ""
    phones: tuple[str, ...] = ()
    title: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Contact":
        """Build a contact from the flat JSON shape used by exports."""
        identifier = data.get("identifier") or data.get("resourceName")
        if not identifier:
            raise ValueError("contact is missing an identifier")
        return cls(
            identifier=str(identifier),
            name=data.get("name") or None,
            emails=_string_tuple(data.get("emails")),
            organization=data.get("organization") or None,
            photo_url=data.get("photoUrl") or data.get("photo_url") or None,
            given_name=data.get("givenName") or data.get("given_name") or "",
            family_name=data.get("familyName") or data.get("family_name") or "",
            phones=_string_tuple(data.get("phones")),
            title=data.get("title") or None,
        )

    @classmethod
    def from_person(cls, person: dict) -> "Contact":
        """Build a contact from a People API ``person`` resource."""
        names = person.get("names") or [{}]
        orgs = person.get("organizations") or [{}]
        photos = person.get("photos") or [{}]
        return cls(
            identifier=str(person["resourceName"]),
            name=names[0].get("displayName") or "Unknown",
            emails=tuple(e.get("value") for e in person.get("emailAddresses") or [] if e.get("value")),
            organization=orgs[0].get("name") or None,
            photo_url=photos[0].get("url") or None,
            given_name=names[0].get("givenName") or "",
            family_name=names[0].get("familyName") or "",
            phones=tuple(p.get("value") for p in person.get("phoneNumbers") or [] if p.get("value")),
            title=orgs[0].get("title") or None,
        )

    @property
    def initials(self) -> str:
        parts = (self.name or "").split()
        if not parts:
            return "?"
        if len(parts) == 1:
            return parts[0][0].upper()
        return (parts[0][0] + parts[-1][0]).upper()


class DirectoryProvider(Protocol):
    def fetch_all(self, force_refresh: bool = False) -> list[Contact]:
        """Return every contact or raise FetchError."""
        ...


def _parse_people(people: Iterable[dict]) -> list[Contact]:
    contacts: list[Contact] = []
    for person in people:
        try:
            contact = Contact.from_person(person)
        except (KeyError, TypeError, AttributeError, IndexError) as exc:
            logger.warning("Skipping malformed person record: %s", exc)
            continue
        # Only addressable contacts are useful for search.
        if contact.emails:
            contacts.append(contact)
    return contacts


class JsonFileDirectoryProvider:
    """Load contacts from a JSON export on disk.

    Accepts a bare list of contacts, ``{"contacts": [...]}``, or a raw People API
    ``{"connections": [...]}`` payload.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def fetch_all(self, force_refresh: bool = False) -> list[Contact]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise FetchError(f"Failed to read {self.path}: {exc}") from exc
        if isinstance(payload, dict) and "connections" in payload:
            return _parse_people(payload.get("connections") or [])
        records = payload.get("contacts") if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise FetchError(f"{self.path} does not contain a contact list")
        contacts: list[Contact] = []
        for record in records:
            try:
                contacts.append(Contact.from_dict(record))
            except (ValueError, AttributeError) as exc:
                logger.warning("Skipping contact in %s: %s", self.path.name, exc)
        logger.info("Loaded %d contacts from %s", len(contacts), self.path)
        return contacts


class PeopleApiDirectoryProvider:
    """Fetch ``people/me/connections`` page by page, with a freshness window."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        expiry_seconds: float = 24 * 60 * 60,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self.http = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=10.0, headers=headers)
        self.expiry_seconds = expiry_seconds
        self._cached: list[Contact] = []
        self._last_fetch: Optional[float] = None

    def fetch_all(self, force_refresh: bool = False) -> list[Contact]:
        if (
            not force_refresh
            and self._last_fetch is not None
            and time.monotonic() - self._last_fetch < self.expiry_seconds
        ):
            logger.debug("Using cached People API contacts")
            return list(self._cached)

        people: list[dict] = []
        page_token: Optional[str] = None
        try:
            while True:
                params = {"pageSize": PAGE_SIZE, "personFields": PERSON_FIELDS}
                if page_token:
                    params["pageToken"] = page_token
                resp = self.http.get("/v1/people/me/connections", params=params)
                resp.raise_for_status()
                data = resp.json()
                connections = data.get("connections") or []
                people.extend(connections)
                logger.debug("Fetched %d contacts (total: %d)", len(connections), len(people))
                page_token = data.get("nextPageToken")
                if not page_token:
                    break
        except httpx.HTTPError as exc:
            raise FetchError(f"People API request failed: {exc}") from exc
        except (ValueError, AttributeError) as exc:
            raise FetchError(f"Malformed People API response: {exc}") from exc

        contacts = _parse_people(people)
        self._cached = contacts
        self._last_fetch = time.monotonic()
        logger.info("Processed %d contacts with emails", len(contacts))
        return list(contacts)


class DirectoryCache:
    """Most recently loaded directory, replaced wholesale on refresh."""

    def __init__(self, provider: DirectoryProvider) -> None:
        self._provider = provider
        self._contacts: tuple[Contact, ...] = ()
        self._swap_lock = threading.Lock()
        self._load_lock = threading.Lock()

    def snapshot(self) -> tuple[Contact, ...]:
        return self._contacts

    def is_empty(self) -> bool:
        return not self._contacts

    def load_or_refresh(self, force_refresh: bool = False) -> tuple[Contact, ...]:
        """Return the cached directory, fetching it when empty or forced.

        On failure the previous collection is kept and FetchError propagates.
        """
        with self._load_lock:
            if not force_refresh and self._contacts:
                return self._contacts
            fetched = tuple(self._provider.fetch_all(force_refresh))
            with self._swap_lock:
                self._contacts = fetched
            return fetched

    def find_by_identifier(self, identifier: str) -> Optional[Contact]:
        for contact in self._contacts:
            if contact.identifier == identifier:
                return contact
        return None

    def find_by_email(self, email: str) -> Optional[Contact]:
        wanted = (email or "").strip().lower()
        if not wanted:
            return None
        for contact in self._contacts:
            if any(e.lower() == wanted for e in contact.emails):
                return contact
        return None


class DirectoryLoader(QObject):
    """Runs cache refreshes off the event loop and reports back via signal."""

    finished = Signal(object, bool, str)  # token, ok, error message

    def __init__(self, cache: DirectoryCache, parent=None) -> None:
        super().__init__(parent)
        self.cache = cache

    def request(self, force_refresh: bool = False, token: object = None) -> None:
        thread = threading.Thread(
            target=self._load_threadsafe, args=(force_refresh, token), daemon=True
        )
        thread.start()

    def _load_threadsafe(self, force_refresh: bool, token: object) -> None:
        try:
            contacts = self.cache.load_or_refresh(force_refresh)
        except FetchError as exc:
            logger.warning("Directory refresh failed: %s", exc)
            self.finished.emit(token, False, str(exc))
            return
        except Exception as exc:
            logger.exception("Directory refresh crashed: %s", exc)
            self.finished.emit(token, False, str(exc))
            return
        logger.info("Directory holds %d contacts", len(contacts))
        self.finished.emit(token, True, "")
