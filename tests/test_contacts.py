"""Tests for contact records, directory providers, the cache and its loader."""
import json

import httpx
import pytest

from quickcontacts.app.contacts import (
    Contact,
    DirectoryCache,
    FetchError,
    JsonFileDirectoryProvider,
    PeopleApiDirectoryProvider,
)

from fakes import ALICE, BOB, CAROL, ScriptedProvider, StaticProvider


def _person(idx, name, emails, org=None):
    person = {
        "resourceName": f"people/c{idx}",
        "names": [{"displayName": name, "givenName": name.split()[0], "familyName": name.split()[-1]}],
        "emailAddresses": [{"value": e} for e in emails],
    }
    if org:
        person["organizations"] = [{"name": org, "title": "CTO"}]
    return person


class TestContact:
    """Building contacts from stored and API payloads."""

    def test_from_person(self):
        """People API resources map onto contact fields."""
        person = _person(1, "Alice Smith", ["alice@x.com", ""], org="Alice Corp")
        person["phoneNumbers"] = [{"value": "555-1234"}]
        person["photos"] = [{"url": "https://example.com/a.png"}]
        contact = Contact.from_person(person)
        assert contact.identifier == "people/c1"
        assert contact.name == "Alice Smith"
        assert contact.emails == ("alice@x.com",)
        assert contact.organization == "Alice Corp"
        assert contact.title == "CTO"
        assert contact.phones == ("555-1234",)
        assert contact.photo_url == "https://example.com/a.png"
        assert contact.given_name == "Alice"

    def test_from_person_without_name(self):
        """Nameless people are called Unknown."""
        contact = Contact.from_person({"resourceName": "people/c9", "emailAddresses": [{"value": "a@b.c"}]})
        assert contact.name == "Unknown"
        assert contact.organization is None

    def test_from_dict(self):
        """Flat export records accept resourceName and photoUrl keys."""
        contact = Contact.from_dict(
            {"resourceName": "people/c2", "name": "Bob", "emails": ["b@x.com"], "photoUrl": "p.png"}
        )
        assert contact.identifier == "people/c2"
        assert contact.photo_url == "p.png"

    def test_from_dict_single_string_fields(self):
        """A lone email or phone stored as a string is kept whole."""
        contact = Contact.from_dict(
            {"identifier": "people/c9", "emails": "bob@x.com", "phones": "555-0199"}
        )
        assert contact.emails == ("bob@x.com",)
        assert contact.phones == ("555-0199",)

    def test_from_dict_requires_identifier(self):
        """Records without an identifier are rejected."""
        with pytest.raises(ValueError):
            Contact.from_dict({"name": "Nobody"})

    @pytest.mark.parametrize(
        "name, expected",
        [("Alice Smith", "AS"), ("Cher", "C"), ("Mary Ann Evans", "ME"), (None, "?"), ("  ", "?")],
    )
    def test_initials(self, name, expected):
        """Initials use the first and last name parts."""
        assert Contact(identifier="x", name=name).initials == expected


class TestJsonFileDirectoryProvider:
    """Loading exports from disk."""

    def test_flat_list(self, tmp_path):
        """A bare list of contact objects loads in order."""
        path = tmp_path / "contacts.json"
        path.write_text(
            json.dumps([{"identifier": "a", "name": "A"}, {"identifier": "b", "name": "B"}]),
            encoding="utf-8",
        )
        contacts = JsonFileDirectoryProvider(path).fetch_all()
        assert [c.identifier for c in contacts] == ["a", "b"]

    def test_contacts_key_skips_bad_records(self, tmp_path):
        """Records missing an identifier are skipped, not fatal."""
        path = tmp_path / "contacts.json"
        path.write_text(json.dumps({"contacts": [{"name": "no id"}, {"identifier": "ok"}]}), encoding="utf-8")
        contacts = JsonFileDirectoryProvider(path).fetch_all()
        assert [c.identifier for c in contacts] == ["ok"]

    def test_connections_payload_drops_contacts_without_email(self, tmp_path):
        """Raw People API exports are parsed and unaddressable people dropped."""
        path = tmp_path / "people.json"
        payload = {"connections": [_person(1, "Alice Smith", ["alice@x.com"]), _person(2, "No Mail", [])]}
        path.write_text(json.dumps(payload), encoding="utf-8")
        contacts = JsonFileDirectoryProvider(path).fetch_all()
        assert [c.name for c in contacts] == ["Alice Smith"]

    def test_missing_file(self, tmp_path):
        """A missing file is a FetchError."""
        with pytest.raises(FetchError):
            JsonFileDirectoryProvider(tmp_path / "nope.json").fetch_all()

    def test_invalid_payload(self, tmp_path):
        """Unparseable or wrongly shaped files are a FetchError."""
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        with pytest.raises(FetchError):
            JsonFileDirectoryProvider(bad).fetch_all()
        wrong = tmp_path / "wrong.json"
        wrong.write_text(json.dumps({"contacts": "nope"}), encoding="utf-8")
        with pytest.raises(FetchError):
            JsonFileDirectoryProvider(wrong).fetch_all()


class TestPeopleApiDirectoryProvider:
    """Paging, caching and errors against a mocked People API."""

    @staticmethod
    def _provider(handler, **kwargs):
        client = httpx.Client(base_url="https://people.test", transport=httpx.MockTransport(handler))
        return PeopleApiDirectoryProvider("https://people.test", client=client, **kwargs)

    def test_pages_through_connections(self):
        """All pages are fetched until nextPageToken runs out."""
        seen = []

        def handler(request):
            seen.append(dict(request.url.params))
            if request.url.params.get("pageToken") == "p2":
                return httpx.Response(200, json={"connections": [_person(2, "Bob Jones", ["bob@x.com"])]})
            return httpx.Response(
                200,
                json={"connections": [_person(1, "Alice Smith", ["alice@x.com"])], "nextPageToken": "p2"},
            )

        contacts = self._provider(handler).fetch_all()
        assert [c.name for c in contacts] == ["Alice Smith", "Bob Jones"]
        assert len(seen) == 2
        assert seen[0]["pageSize"] == "1000"
        assert "emailAddresses" in seen[0]["personFields"]

    def test_cached_until_forced(self):
        """A fresh result is reused; force_refresh goes back to the API."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"connections": [_person(1, "Alice Smith", ["alice@x.com"])]})

        provider = self._provider(handler)
        provider.fetch_all()
        provider.fetch_all()
        assert len(calls) == 1
        provider.fetch_all(force_refresh=True)
        assert len(calls) == 2

    def test_expired_cache_refetches(self):
        """A zero expiry window always refetches."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"connections": []})

        provider = self._provider(handler, expiry_seconds=0)
        provider.fetch_all()
        provider.fetch_all()
        assert len(calls) == 2

    def test_http_error(self):
        """HTTP failures surface as FetchError."""
        provider = self._provider(lambda request: httpx.Response(401, json={"error": "unauthorized"}))
        with pytest.raises(FetchError):
            provider.fetch_all()

    def test_malformed_body(self):
        """Non-JSON bodies surface as FetchError."""
        provider = self._provider(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(FetchError):
            provider.fetch_all()

    def test_sends_bearer_token(self):
        """The token is sent as a bearer Authorization header."""
        provider = PeopleApiDirectoryProvider("https://people.test", token="s3cret")
        assert provider.http.headers["Authorization"] == "Bearer s3cret"
        provider.http.close()


class TestDirectoryCache:
    """Load, refresh and failure semantics of the shared cache."""

    def test_load_populates(self):
        """The first load fetches and stores the directory."""
        cache = DirectoryCache(StaticProvider([ALICE, BOB]))
        assert cache.is_empty()
        assert cache.load_or_refresh() == (ALICE, BOB)
        assert cache.snapshot() == (ALICE, BOB)

    def test_unforced_load_is_noop_when_present(self):
        """A non-forced load with data present never calls the provider."""
        provider = StaticProvider([ALICE])
        cache = DirectoryCache(provider)
        cache.load_or_refresh()
        cache.load_or_refresh()
        assert provider.calls == [False]

    def test_forced_refresh_replaces_wholesale(self):
        """A forced refresh swaps in the new collection."""
        provider = StaticProvider([ALICE, BOB])
        cache = DirectoryCache(provider)
        before = cache.load_or_refresh()
        provider.contacts = [CAROL]
        after = cache.load_or_refresh(force_refresh=True)
        assert after == (CAROL,)
        assert before == (ALICE, BOB)
        assert provider.calls == [False, True]

    def test_failure_keeps_previous(self):
        """A failed refresh leaves the last good collection in place."""
        cache = DirectoryCache(ScriptedProvider([ALICE], FetchError("offline")))
        cache.load_or_refresh()
        with pytest.raises(FetchError):
            cache.load_or_refresh(force_refresh=True)
        assert cache.snapshot() == (ALICE,)

    def test_failure_on_empty_cache(self):
        """A failed first load leaves the cache empty."""
        cache = DirectoryCache(ScriptedProvider(FetchError("offline")))
        with pytest.raises(FetchError):
            cache.load_or_refresh()
        assert cache.is_empty()

    def test_lookups(self):
        """Contacts can be found by identifier or any email."""
        cache = DirectoryCache(StaticProvider([ALICE, CAROL]))
        cache.load_or_refresh()
        assert cache.find_by_identifier("people/c3") == CAROL
        assert cache.find_by_identifier("missing") is None
        assert cache.find_by_email("  CJ@Work.Example ") == CAROL
        assert cache.find_by_email("") is None


class TestDirectoryLoader:
    """Background refreshes reported via signal."""

    def test_success_signal(self, qtbot, loader_for):
        """A successful load emits ok with the caller's token."""
        cache = DirectoryCache(StaticProvider([ALICE]))
        loader = loader_for(cache)
        token = object()
        with qtbot.waitSignal(loader.finished, timeout=2000) as blocker:
            loader.request(False, token)
        assert blocker.args[0] is token
        assert blocker.args[1] is True
        assert cache.snapshot() == (ALICE,)

    def test_failure_signal(self, qtbot, loader_for):
        """A failed load emits not-ok with the error text instead of raising."""
        cache = DirectoryCache(ScriptedProvider(FetchError("directory offline")))
        loader = loader_for(cache)
        with qtbot.waitSignal(loader.finished, timeout=2000) as blocker:
            loader.request(True, "token")
        assert blocker.args == ["token", False, "directory offline"]

    def test_unexpected_error_is_contained(self, qtbot, loader_for):
        """Provider bugs are reported as failures, not raised."""
        cache = DirectoryCache(ScriptedProvider(RuntimeError("boom")))
        loader = loader_for(cache)
        with qtbot.waitSignal(loader.finished, timeout=2000) as blocker:
            loader.request()
        assert blocker.args[1] is False
