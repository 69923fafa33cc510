import os
from dataclasses import dataclass

from dotenv import load_dotenv

from errors import ConfigError

BACKENDS = ("pocketbase", "sql")


@dataclass(frozen=True)
class Settings:
    bot_token: str
    code_salt: str
    store_backend: str = "pocketbase"
    pocketbase_url: str = ""
    pocketbase_token: str = ""
    pocketbase_collection: str = "tele_users"
    database_url: str = "sqlite:///bot.db"
    website_url: str = "https://redruby.one/account/profile"
    webhook_url: str = ""
    port: int = 8080
    request_timeout: float = 10.0


def load_settings(environ=None, dotenv: bool = True) -> Settings:
    """Read settings from the environment, after loading .env when asked."""
    if environ is None:
        if dotenv:
            load_dotenv()
        environ = os.environ

    bot_token = environ.get("BOT_TOKEN") or environ.get("TELEGRAM_BOT_TOKEN", "")
    code_salt = environ.get("UNIQUE_CODE_SALT", "")
    backend = environ.get("STORE_BACKEND", "pocketbase").strip().lower()
    pocketbase_url = environ.get("POCKETBASE_URL", "").rstrip("/")

    if not bot_token:
        raise ConfigError("BOT_TOKEN is required")
    if not code_salt:
        raise ConfigError("UNIQUE_CODE_SALT is required")
    if backend not in BACKENDS:
        raise ConfigError(f"STORE_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}")
    if backend == "pocketbase" and not pocketbase_url:
        raise ConfigError("POCKETBASE_URL is required for the pocketbase backend")

    try:
        port = int(environ.get("PORT", "8080"))
        timeout = float(environ.get("REQUEST_TIMEOUT", "10"))
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e

    return Settings(
        bot_token=bot_token,
        code_salt=code_salt,
        store_backend=backend,
        pocketbase_url=pocketbase_url,
        pocketbase_token=environ.get("POCKETBASE_TOKEN", ""),
        pocketbase_collection=environ.get("POCKETBASE_COLLECTION", "tele_users"),
        database_url=environ.get("DATABASE_URL", "sqlite:///bot.db"),
        website_url=environ.get("WEBSITE_URL", "https://redruby.one/account/profile"),
        webhook_url=environ.get("WEBHOOK_URL", "").rstrip("/"),
        port=port,
        request_timeout=timeout,
    )
