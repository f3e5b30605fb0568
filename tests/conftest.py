"""Shared fixtures for the congregation_backup tests."""

import pytest

from congregation_backup.auth.session import StaticSession, User
from congregation_backup.backup.registry import EntityRegistry
from congregation_backup.storage.db import CongregationDatabase


@pytest.fixture
def user():
    """An authenticated caller."""
    return User(id="u1", name="Secretary")


@pytest.fixture
def session(user):
    """Session reporting the authenticated caller."""
    return StaticSession(user)


@pytest.fixture
def anonymous():
    """Session with no authenticated caller."""
    return StaticSession(None)


@pytest.fixture
def registry():
    """Registry over an initialized in-memory database."""
    db = CongregationDatabase(":memory:")
    reg = EntityRegistry(db)
    reg.initialize()
    yield reg
    db.close()


@pytest.fixture
def file_registry(tmp_path):
    """Registry over an initialized file database."""
    reg = EntityRegistry(CongregationDatabase(str(tmp_path / "congregation.db")))
    reg.initialize()
    return reg
