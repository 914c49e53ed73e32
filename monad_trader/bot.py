#!/usr/bin/env python3
"""
Monad Testnet Trading Bot

A Telegram bot that allows users to:
1. Create or import a wallet (private key or mnemonic)
2. Check MON and token balances
3. Buy and sell tokens on Uniswap V2 on Monad Testnet

Requires:
- python-telegram-bot
- web3
- requests
- sqlite3 (built-in)
"""

import logging
import sys

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)
from web3 import Web3

from .config import Settings, load_settings, setup_logging
from .dispatcher import TradingDispatcher
from .errors import ERROR_MESSAGES
from .explorer import ExplorerClient
from .flow import COMMANDS, Event
from .session import SessionStore
from .storage import WalletStore
from .swap import SwapEngine
from .transport import TelegramTransport
from .wallets import WalletProvider

logger = logging.getLogger(__name__)


def event_from_update(update: Update) -> Event:
    """Translate a Telegram update into a transport-neutral Event."""
    user_id = str(update.effective_user.id)
    chat_id = update.effective_chat.id

    query = update.callback_query
    if query is not None:
        return Event(user_id=user_id, chat_id=chat_id, button=query.data, callback_id=query.id)

    message = update.effective_message
    text = message.text or ''
    if text.startswith('/'):
        command = text.split()[0][1:]
        return Event(user_id=user_id, chat_id=chat_id, command=command, message_id=message.message_id)
    return Event(user_id=user_id, chat_id=chat_id, text=text, message_id=message.message_id)


def build_dispatcher(settings: Settings, application: Application) -> TradingDispatcher:
    w3 = Web3(Web3.HTTPProvider(settings.rpc_url))

    wallets = WalletStore(settings.database_path)
    wallets.load()

    return TradingDispatcher(
        settings=settings,
        wallets=wallets,
        sessions=SessionStore(),
        wallet_provider=WalletProvider(w3),
        swap_engine=SwapEngine(w3, settings),
        explorer=ExplorerClient(settings.monadscan_api_url),
        transport=TelegramTransport(application.bot),
    )


def build_application(settings: Settings) -> Application:
    """Create the Telegram application with every handler routed to one dispatcher."""
    # Users' flows interleave; one user's own events are not serialized
    application = Application.builder().token(settings.bot_token).concurrent_updates(True).build()
    dispatcher = build_dispatcher(settings, application)

    async def on_update(update: Update, context: ContextTypes.DEFAULT_TYPE):
        await dispatcher.dispatch(event_from_update(update))

    async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.error(f"Unhandled error while processing update: {context.error}", exc_info=context.error)
        if isinstance(update, Update) and update.effective_chat:
            try:
                await context.bot.send_message(update.effective_chat.id, ERROR_MESSAGES['GENERAL_ERROR'])
            except TelegramError as e:
                logger.warning(f"Could not report error to chat {update.effective_chat.id}: {e}")

    application.add_handler(CommandHandler(list(COMMANDS), on_update))
    application.add_handler(MessageHandler(filters.UpdateType.MESSAGE & filters.TEXT & ~filters.COMMAND, on_update))
    application.add_handler(CallbackQueryHandler(on_update))
    application.add_error_handler(on_error)
    return application


def main():
    """Start the bot."""
    settings = load_settings()
    setup_logging(settings.debug, settings.log_file)

    if not settings.bot_token:
        logger.error("TELEGRAM_BOT_TOKEN is not set in the .env file or environment variables")
        sys.exit(1)

    application = build_application(settings)

    logger.info("Monad Testnet Trading Bot started")
    logger.info(f"Network: Monad Testnet ({settings.chain_id})")
    logger.info(f"RPC: {settings.rpc_url}")

    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == '__main__':
    main()
