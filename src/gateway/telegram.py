"""Telegram Gateway — aiogram v3 implementation."""

import logging
from collections.abc import Awaitable, Callable

from aiogram import Bot, Dispatcher, types
from aiogram.exceptions import TelegramAPIError
from aiogram.types import KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove
from aiogram.utils.keyboard import InlineKeyboardBuilder

from src.core.exceptions import NotificationError
from src.gateway.types import IncomingMessage, MessageType, OutgoingMessage

logger = logging.getLogger(__name__)


class TelegramGateway:
    """Gateway implementation for Telegram via aiogram v3."""

    def __init__(self, token: str, webhook_url: str = ""):
        self.bot = Bot(token=token)
        self.dp = Dispatcher()
        self.webhook_url = webhook_url
        self._handler: Callable[[IncomingMessage], Awaitable[None]] | None = None

    def on_message(self, handler: Callable[[IncomingMessage], Awaitable[None]]) -> None:
        self._handler = handler

        @self.dp.message()
        async def _on_message(msg: types.Message):
            await self._handler(self._convert_message(msg))

        @self.dp.callback_query()
        async def _on_callback(callback: types.CallbackQuery):
            incoming = IncomingMessage(
                id=str(callback.id),
                user_id=str(callback.from_user.id),
                chat_id=str(callback.message.chat.id),
                type=MessageType.callback,
                callback_data=callback.data,
                message_id=str(callback.message.message_id),
                username=callback.from_user.username,
                raw=callback,
            )
            await self._handler(incoming)
            await callback.answer()

    async def send(self, message: OutgoingMessage) -> None:
        try:
            if message.edit_message_id:
                await self.bot.edit_message_text(
                    text=message.text,
                    chat_id=int(message.chat_id),
                    message_id=int(message.edit_message_id),
                    parse_mode=message.parse_mode,
                    reply_markup=_inline_keyboard(message.buttons, message.buttons_per_row),
                )
                return

            await self.bot.send_message(
                chat_id=int(message.chat_id),
                text=message.text,
                parse_mode=message.parse_mode,
                reply_markup=_reply_markup(message),
            )
        except TelegramAPIError as e:
            raise NotificationError(
                f"Telegram rejected message to chat {message.chat_id}: {e}"
            ) from e

    async def start(self) -> None:
        if self.webhook_url:
            await self.bot.set_webhook(self.webhook_url)
            logger.info("Webhook set to %s", self.webhook_url)
        else:
            logger.info("No webhook URL, use feed_update() for webhook mode")

    async def stop(self) -> None:
        if self.webhook_url:
            await self.bot.delete_webhook()
        await self.bot.session.close()

    async def feed_update(self, data: dict) -> None:
        """Feed a raw webhook update to aiogram dispatcher."""
        update = types.Update(**data)
        await self.dp.feed_update(self.bot, update)

    @staticmethod
    def _convert_message(msg: types.Message) -> IncomingMessage:
        return IncomingMessage(
            id=str(msg.message_id),
            user_id=str(msg.from_user.id) if msg.from_user else "",
            chat_id=str(msg.chat.id),
            type=MessageType.text,
            text=msg.text or msg.caption,
            message_id=str(msg.message_id),
            username=msg.from_user.username if msg.from_user else None,
            raw=msg,
        )


def _inline_keyboard(buttons: list[dict] | None, per_row: int = 1):
    if not buttons:
        return None
    builder = InlineKeyboardBuilder()
    for btn in buttons:
        if "url" in btn:
            builder.button(text=btn["text"], url=btn["url"])
        else:
            builder.button(text=btn["text"], callback_data=btn["callback"])
    builder.adjust(per_row)
    return builder.as_markup()


def _reply_markup(message: OutgoingMessage):
    if message.reply_keyboard:
        return ReplyKeyboardMarkup(
            keyboard=[[KeyboardButton(text=label)] for label in message.reply_keyboard],
            resize_keyboard=True,
        )
    if message.remove_reply_keyboard:
        return ReplyKeyboardRemove()
    return _inline_keyboard(message.buttons, message.buttons_per_row)
