import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from quickcontacts.app import config
from quickcontacts.app.contacts import DirectoryCache, DirectoryLoader

from fakes import ALICE, BOB, CAROL, FakeDetailView, FakePresentation, StaticProvider


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the settings file at a temp location for every test."""
    path = tmp_path / "quickcontacts_config.json"
    monkeypatch.setattr(config, "GLOBAL_CONFIG", path)
    return path


@pytest.fixture
def directory():
    return [ALICE, BOB, CAROL]


@pytest.fixture
def loaded_cache(directory):
    cache = DirectoryCache(StaticProvider(directory))
    cache.load_or_refresh()
    return cache


@pytest.fixture
def loader_for(qapp):
    """Build a DirectoryLoader for a cache (needs a QApplication)."""
    def _make(cache):
        return DirectoryLoader(cache)

    return _make


@pytest.fixture
def presentation():
    return FakePresentation()


@pytest.fixture
def detail_view():
    return FakeDetailView(rendered={ALICE.identifier, BOB.identifier, CAROL.identifier})
