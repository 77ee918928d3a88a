import pytest

import backend.config as config
import database.db as db


@pytest.fixture()
def store_path(tmp_path, monkeypatch):
    path = tmp_path / "attendance_test.json"

    # Point the store to a temp file for isolation.
    monkeypatch.setattr(config, "DATA_PATH", path)
    monkeypatch.setattr(db, "DATA_PATH", path)

    db.create_store()
    return path
