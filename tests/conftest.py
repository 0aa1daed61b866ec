from __future__ import annotations

from pathlib import Path

import pytest

from classifieds.storage import Storage

PROJECT_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(autouse=True)
def _run_from_project_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Relative config paths resolve against the project root."""
    monkeypatch.chdir(PROJECT_ROOT)


@pytest.fixture
def storage(tmp_path: Path):
    """A throwaway listings store."""
    store = Storage(str(tmp_path / "feed.db"))
    yield store
    store.close()
