import pytest

from dropiq.core import config, database
from dropiq.core.metrics import metrics


@pytest.fixture(autouse=True)
def isolated_database(tmp_path, monkeypatch):
    """Point every test at its own SQLite file and start from clean counters."""
    monkeypatch.setattr(database, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setattr(config, "ENABLE_DB", True)
    monkeypatch.setattr(config, "DEV_CREATE_ALL", True)
    monkeypatch.setattr(config, "ADMIN_EMAILS", ["admin@example.com"])
    metrics.reset()
    yield
