"""Shared fixtures: a throwaway SQLite database per test."""

import pytest

from storage import db


@pytest.fixture
def database(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    db.init_db(seed=True)
    yield


@pytest.fixture
def publisher_id(database):
    return db.create_publisher(name="Acme Audio", email="ops@acme.fm")["id"]
