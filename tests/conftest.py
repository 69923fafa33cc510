"""Shared fixtures."""

import pytest

from database import SqlProfileStore
from profiles import ProfileService
from settings import Settings
from tests.helpers import SALT


@pytest.fixture
def sql_store() -> SqlProfileStore:
    """A fresh in-memory SQL store with tables created."""
    store = SqlProfileStore("sqlite:///:memory:")
    store.init_db()
    return store


@pytest.fixture
def service(sql_store: SqlProfileStore) -> ProfileService:
    return ProfileService(sql_store, SALT)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        bot_token="123456:TEST-TOKEN",
        code_salt=SALT,
        store_backend="sql",
        database_url="sqlite:///:memory:",
        website_url="https://example.com/account/profile",
    )
