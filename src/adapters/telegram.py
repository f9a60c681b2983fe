# SPDX-License-Identifier: MIT
"""Telegram adapter built on ``python-telegram-bot``.

The adapter owns a :class:`telegram.ext.Application` that long-polls the Bot
API. Every text message (commands included, they are handled downstream) is
checked against the allowlist and handed to the callback registered with
:meth:`TelegramAdapter.attach` together with its chat id, which serves as the
conversation key.

The application is driven manually (``initialize``/``start_polling``/``start``)
rather than through ``run_polling`` because it shares the event loop with the
HTTP gateway.
"""

from __future__ import annotations

from typing import Callable

import logfire
from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from runtime.settings import StreamingMode

from .base import PlatformAdapter

MessageCallback = Callable[[str, str], None]


class TelegramAdapter(PlatformAdapter):
    """Poll Telegram for messages and send replies.

    An empty allowlist admits every user; otherwise only listed user ids are
    served and everybody else is ignored silently.
    """

    platform_type = "telegram"

    def __init__(
        self,
        token: str,
        streaming_mode: StreamingMode = "stream",
        allowed_user_ids: list[str] | None = None,
        *,
        poll_timeout: int = 30,
        application: Application | None = None,
    ) -> None:
        super().__init__(streaming_mode)
        self._allowed = list(allowed_user_ids or [])
        self._poll_timeout = poll_timeout
        self._application = application or Application.builder().token(token).build()
        self._application.add_handler(MessageHandler(filters.TEXT, self._on_text))
        self._on_message: MessageCallback | None = None
        self._started = False
        logfire.info(
            "Telegram adapter initialised",
            mode=streaming_mode,
            access="whitelist" if self._allowed else "public",
            allowlist_size=len(self._allowed),
        )

    @property
    def application(self) -> Application:
        return self._application

    def attach(self, on_message: MessageCallback) -> None:
        """Register the callback receiving ``(conversation_id, text)``.

        ``on_message`` must not block; the gateway passes a callback that
        submits the message to the lock manager and returns immediately.
        """
        self._on_message = on_message

    async def send_message(self, conversation_id: str, message: str) -> None:
        chat_id: int | str = (
            int(conversation_id)
            if conversation_id.lstrip("-").isdigit()
            else conversation_id
        )
        await self._application.bot.send_message(chat_id=chat_id, text=message)

    def is_user_authorized(self, user_id: int | str) -> bool:
        if not self._allowed:
            return True
        return str(user_id) in self._allowed

    @staticmethod
    def conversation_id(update: Update) -> str:
        """Return the chat id of ``update`` as a string.

        Raises:
            ValueError: If the update carries no chat.
        """
        chat = update.effective_chat
        if chat is None:
            raise ValueError("No chat in update")
        return str(chat.id)

    def handle_update(self, update: Update) -> bool:
        """Route one update to the attached callback when it is an authorised text.

        Returns:
            ``True`` when the update was handed to the callback.
        """
        message = update.effective_message
        text = message.text if message is not None else None
        if not text or self._on_message is None:
            return False
        sender = update.effective_user
        if sender is None or not self.is_user_authorized(sender.id):
            logfire.warning(
                "Unauthorised Telegram user",
                user_id=sender.id if sender else None,
                username=sender.username if sender else None,
            )
            return False
        try:
            conversation_id = self.conversation_id(update)
        except ValueError:
            logfire.warning("Telegram message without chat, skipping")
            return False
        self._on_message(conversation_id, text)
        return True

    async def _on_text(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        self.handle_update(update)

    @staticmethod
    def _polling_error(exc: TelegramError) -> None:
        logfire.warning("Telegram polling failed", error=repr(exc))

    async def start(self) -> None:
        """Start long polling, discarding updates queued while offline."""
        await self._application.initialize()
        await self._application.updater.start_polling(
            timeout=self._poll_timeout,
            allowed_updates=[Update.MESSAGE],
            drop_pending_updates=True,
            error_callback=self._polling_error,
        )
        await self._application.start()
        self._started = True
        logfire.info("Telegram bot started (polling, pending updates dropped)")

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        if self._application.updater.running:
            await self._application.updater.stop()
        if self._application.running:
            await self._application.stop()
        await self._application.shutdown()
        logfire.info("Telegram bot stopped")


__all__ = ["MessageCallback", "TelegramAdapter"]
