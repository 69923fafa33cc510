import asyncio
import html
import logging
import re
import sys
from telegram import Update, ReplyKeyboardMarkup, InlineKeyboardMarkup, InlineKeyboardButton
from telegram.constants import ParseMode
from telegram.ext import Application, MessageHandler, filters, ContextTypes, CommandHandler
from telegram.error import Conflict, NetworkError, TimedOut, RetryAfter

from database import SqlProfileStore
from errors import ConfigError, StoreError
from pocketbase_store import PocketBaseStore
from profiles import Absent, DisplayFields, Found, ProfileService, Saved
from settings import load_settings

# Setup logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)

# Keyboard buttons
INFO_BUTTON = "📊 Get my info"
WEBSITE_BUTTON = "🌐 Visit website"
HELP_BUTTON = "❓ Help"
CODE_BUTTON = "🔄 My code"

HELP_TEXT = (
    "Available commands:\n"
    f"{INFO_BUTTON} - View your saved information\n"
    f"{WEBSITE_BUTTON} - Go to our website\n"
    f"{HELP_BUTTON} - Show this help message\n"
    f"{CODE_BUTTON} - Get your code again"
)
SAVE_ERROR = "Sorry, there was an error processing your request. Please try again later."
REGENERATE_ERROR = "Sorry, there was an error regenerating your code. Please try again later."
LOOKUP_ERROR = "Sorry, we couldn't load your information. Please try again later."


def main_keyboard():
    return ReplyKeyboardMarkup(
        [[INFO_BUTTON, WEBSITE_BUTTON], [HELP_BUTTON, CODE_BUTTON]],
        resize_keyboard=True
    )


# Edited messages are ignored
NEW_MESSAGES = filters.UpdateType.MESSAGE


def button(label):
    return NEW_MESSAGES & filters.Regex(f"^{re.escape(label)}$")


def format_profile(profile):
    name = " ".join(part for part in (profile.first_name, profile.last_name) if part)
    lines = ["Your information:", ""]
    if name:
        lines.append(f"Name: {html.escape(name)}")
    if profile.username:
        lines.append(f"Username: @{html.escape(profile.username)}")
    lines.append(f"Unique Code: <code>{profile.unique_code}</code>")
    return "\n".join(lines)


async def _register(update: Update, context: ContextTypes.DEFAULT_TYPE):
    profiles: ProfileService = context.bot_data["profiles"]
    # Store calls block; keep them off the event loop
    return await asyncio.to_thread(
        profiles.upsert, update.effective_chat.id, DisplayFields.from_user(update.effective_user)
    )


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user = update.effective_user
    result = await _register(update, context)

    if not isinstance(result, Saved):
        await update.effective_message.reply_text(SAVE_ERROR)
        return

    first_name = html.escape(user.first_name or "there")
    await update.effective_message.reply_text(
        f"Welcome, {first_name}! Your unique code has been generated.",
        reply_markup=main_keyboard()
    )
    # Separate message so the code is easy to copy
    await update.effective_message.reply_text(
        f"Your unique code:\n\n<code>{result.code}</code>\n\n"
        "Please copy this code and paste it on our website to connect your Telegram account.",
        parse_mode=ParseMode.HTML
    )


async def my_code(update: Update, context: ContextTypes.DEFAULT_TYPE):
    result = await _register(update, context)

    if not isinstance(result, Saved):
        await update.effective_message.reply_text(REGENERATE_ERROR)
        return

    await update.effective_message.reply_text(
        f"Your unique code:\n\n<code>{result.code}</code>\n\n"
        "Please use this code to connect your Telegram account on our website.",
        parse_mode=ParseMode.HTML
    )


async def my_info(update: Update, context: ContextTypes.DEFAULT_TYPE):
    profiles: ProfileService = context.bot_data["profiles"]
    result = await asyncio.to_thread(profiles.lookup, update.effective_chat.id)

    if isinstance(result, Found):
        await update.effective_message.reply_text(format_profile(result.profile), parse_mode=ParseMode.HTML)
    elif isinstance(result, Absent):
        await update.effective_message.reply_text("No information found. Please use /start to register.")
    else:
        await update.effective_message.reply_text(LOOKUP_ERROR)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.effective_message.reply_text(HELP_TEXT)


async def visit_website(update: Update, context: ContextTypes.DEFAULT_TYPE):
    website_url = context.bot_data["settings"].website_url
    await update.effective_message.reply_text(
        "Visit our website:",
        reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton("Go to website", url=website_url)]])
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    error = context.error

    if isinstance(error, RetryAfter):
        logger.warning(f"Rate limited by Telegram. Retry after {error.retry_after}s")
        return

    if isinstance(error, Conflict):
        logger.error("Conflict - multiple instances")
        return

    if isinstance(error, (NetworkError, TimedOut)):
        logger.warning(f"Network error: {error}")
        return

    update_type = type(update).__name__ if update is not None else "no update"
    logger.error(f"Exception while handling {update_type}", exc_info=error)


def build_store(settings):
    if settings.store_backend == "sql":
        return SqlProfileStore(settings.database_url)
    return PocketBaseStore(
        settings.pocketbase_url,
        collection=settings.pocketbase_collection,
        token=settings.pocketbase_token,
        timeout=settings.request_timeout
    )


def build_application(settings, profiles):
    application = (
        Application.builder()
        .token(settings.bot_token)
        .concurrent_updates(True)
        .build()
    )
    application.bot_data["settings"] = settings
    application.bot_data["profiles"] = profiles

    application.add_error_handler(error_handler)
    application.add_handler(CommandHandler("start", start, filters=NEW_MESSAGES))
    application.add_handler(CommandHandler("help", help_command, filters=NEW_MESSAGES))
    application.add_handler(CommandHandler("info", my_info, filters=NEW_MESSAGES))
    application.add_handler(CommandHandler("code", my_code, filters=NEW_MESSAGES))
    application.add_handler(MessageHandler(button(HELP_BUTTON), help_command))
    application.add_handler(MessageHandler(button(INFO_BUTTON), my_info))
    application.add_handler(MessageHandler(button(WEBSITE_BUTTON), visit_website))
    application.add_handler(MessageHandler(button(CODE_BUTTON), my_code))
    return application


def main():
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    store = build_store(settings)
    try:
        store.health_check()
    except StoreError as e:
        logger.error(f"Failed to connect to the {settings.store_backend} store: {e}")
        sys.exit(1)
    logger.info(f"Connected to the {settings.store_backend} store")

    application = build_application(settings, ProfileService(store, settings.code_salt))

    logger.info("Link bot running")

    if settings.webhook_url:
        application.run_webhook(
            listen="0.0.0.0",
            port=settings.port,
            webhook_url=f"{settings.webhook_url}/webhook",
            url_path="webhook",
            drop_pending_updates=True
        )
    else:
        application.run_polling(
            drop_pending_updates=True,
            allowed_updates=Update.ALL_TYPES
        )


if __name__ == "__main__":
    main()
