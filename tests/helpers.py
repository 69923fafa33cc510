"""Test helpers shared across modules."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from database import SqlProfileStore, TeleUser

SALT = "test-salt"


def make_update(chat_id=42, first_name="Ann", last_name=None, username="ann"):
    """A Telegram update with just the parts the handlers read."""
    update = MagicMock()
    update.effective_chat.id = chat_id
    update.effective_user.first_name = first_name
    update.effective_user.last_name = last_name
    update.effective_user.username = username
    update.effective_message.reply_text = AsyncMock()
    return update


def make_context(profiles, settings=None):
    return SimpleNamespace(bot_data={"profiles": profiles, "settings": settings}, error=None)


def count_profiles(store: SqlProfileStore) -> int:
    db = store.SessionLocal()
    try:
        return db.query(TeleUser).count()
    finally:
        db.close()
