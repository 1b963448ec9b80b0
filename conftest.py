import pytest

from shelfs.cli import LibraryManager
from shelfs.library import Library, open_library
from shelfs.persistence import SnapshotStore
from shelfs.ui_helpers import OUTPUT_MODE_ENV


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def lib(data_dir):
    # Seeded library backed by a per-test snapshot directory
    return open_library(data_dir)


@pytest.fixture
def empty_lib(data_dir):
    return Library(snapshot=SnapshotStore(data_dir))


@pytest.fixture
def admin_session(lib):
    session = lib.session()
    assert session.login("admin@example.com", "passwordsafe")
    return session


@pytest.fixture(autouse=True)
def _reset_cli_state(monkeypatch):
    monkeypatch.delenv(OUTPUT_MODE_ENV, raising=False)
    LibraryManager.reset()
    yield
    LibraryManager.reset()
