"""
Outbound chat transport.

The dispatcher only talks to the ChatTransport protocol; TelegramTransport
is the production implementation over python-telegram-bot.
"""

import logging
from typing import Optional, Protocol

from telegram import Bot, InlineKeyboardMarkup, LinkPreviewOptions
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


def _link_preview(disabled: bool) -> Optional[LinkPreviewOptions]:
    return LinkPreviewOptions(is_disabled=True) if disabled else None


class ChatTransport(Protocol):
    async def send_message(self, chat_id: int, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None,
                           parse_mode: Optional[str] = None, disable_web_page_preview: bool = False) -> int:
        ...

    async def edit_message(self, chat_id: int, message_id: int, text: str,
                           reply_markup: Optional[InlineKeyboardMarkup] = None,
                           parse_mode: Optional[str] = None, disable_web_page_preview: bool = False):
        ...

    async def delete_message(self, chat_id: int, message_id: int):
        ...

    async def answer_callback(self, callback_id: str):
        ...


class TelegramTransport:
    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(self, chat_id, text, reply_markup=None, parse_mode=None, disable_web_page_preview=False):
        message = await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            reply_markup=reply_markup,
            parse_mode=parse_mode,
            link_preview_options=_link_preview(disable_web_page_preview),
        )
        return message.message_id

    async def edit_message(self, chat_id, message_id, text, reply_markup=None, parse_mode=None,
                           disable_web_page_preview=False):
        await self.bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=message_id,
            reply_markup=reply_markup,
            parse_mode=parse_mode,
            link_preview_options=_link_preview(disable_web_page_preview),
        )

    async def delete_message(self, chat_id, message_id):
        try:
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
        except TelegramError as e:
            # Message too old or already gone
            logger.warning(f"Could not delete message {message_id} in {chat_id}: {e}")

    async def answer_callback(self, callback_id):
        try:
            await self.bot.answer_callback_query(callback_id)
        except TelegramError as e:
            logger.debug(f"Could not answer callback {callback_id}: {e}")
