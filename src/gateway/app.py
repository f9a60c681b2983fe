# SPDX-License-Identifier: MIT
"""FastAPI application exposing webhooks, the test harness and health probes.

Every inbound message, whatever its source, is routed through the shared
:class:`~gateway.dispatcher.MessageDispatcher`. Webhook handlers acknowledge
immediately and leave the work queued; Slack requires an answer within three
seconds no matter how long the agent runs.

Routes:
    GET    /health                       liveness
    GET    /health/concurrency           lock manager snapshot
    GET    /health/dispatch              per-source dispatch counters
    POST   /test/message                 submit through the test adapter
    GET    /test/messages/{id}           messages recorded by the test adapter
    DELETE /test/messages[/{id}]         clear recorded messages
    POST   /webhooks/slack               Slack Events API
    POST   /slack/commands               Slack slash commands
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import parse_qs

import logfire
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from adapters import SlackAdapter, TelegramAdapter, TestAdapter, translate_command
from coordination import ConversationLockManager
from observability import telemetry
from runtime.environment import RuntimeEnv
from runtime.settings import Settings

from .dispatcher import MessageDispatcher
from .orchestrator import MessageHandler, load_handler


class TestMessageRequest(BaseModel):
    """Body accepted by ``POST /test/message``."""

    conversationId: str | None = None
    message: str | None = None


def build_slack_adapter(settings: Settings) -> SlackAdapter | None:
    """Return a Slack adapter when a bot token is configured."""
    if not settings.slack_bot_token:
        logfire.info("Slack adapter not initialised (missing SLACK_BOT_TOKEN)")
        return None
    return SlackAdapter(
        settings.slack_bot_token,
        settings.slack_streaming_mode,
        settings.slack_allowlist,
    )


def build_telegram_adapter(settings: Settings) -> TelegramAdapter | None:
    """Return a Telegram adapter when a bot token is configured."""
    if not settings.telegram_bot_token:
        logfire.info("Telegram adapter not initialised (missing TELEGRAM_BOT_TOKEN)")
        return None
    return TelegramAdapter(
        settings.telegram_bot_token,
        settings.telegram_streaming_mode,
        settings.telegram_allowlist,
        poll_timeout=settings.telegram_poll_timeout,
    )


def create_app(
    settings: Settings | None = None,
    *,
    lock_manager: ConversationLockManager | None = None,
    handler: MessageHandler | None = None,
    test_adapter: TestAdapter | None = None,
    slack: SlackAdapter | None = None,
    telegram: TelegramAdapter | None = None,
    start_adapters: bool = True,
) -> FastAPI:
    """Build the gateway application.

    Missing collaborators are derived from the initialised
    :class:`~runtime.environment.RuntimeEnv`: its settings, its lock manager,
    the handler named by ``settings.orchestrator`` and the platform adapters
    whose tokens are configured.

    Args:
        settings: Application settings; defaults to the runtime environment's.
        lock_manager: Shared coordinator; defaults to the runtime environment's.
        handler: Orchestrator entry point for each message.
        test_adapter: Adapter backing the ``/test`` endpoints.
        slack: Slack adapter; enables the Slack routes.
        telegram: Telegram adapter; polls during the app lifespan.
        start_adapters: Start and stop adapters with the app lifespan.

    Returns:
        The configured :class:`FastAPI` application.
    """

    if settings is None or lock_manager is None:
        env = RuntimeEnv.instance()
        settings = settings or env.settings
        lock_manager = lock_manager or env.lock_manager
    handler = handler or load_handler(settings.orchestrator)
    if test_adapter is None and settings.test_adapter_enabled:
        test_adapter = TestAdapter()
    slack = slack or build_slack_adapter(settings)
    telegram = telegram or build_telegram_adapter(settings)
    dispatcher = MessageDispatcher(lock_manager, handler)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if telegram is not None:
            telegram.attach(
                lambda conversation_id, text: dispatcher.submit(
                    telegram, conversation_id, text
                )
            )
        if start_adapters and slack is not None:
            await slack.start()
        if start_adapters and telegram is not None:
            await telegram.start()
        logfire.info(
            "Gateway ready",
            max_concurrent=lock_manager.max_concurrent,
            slack=slack is not None,
            telegram=telegram is not None,
            test_adapter=test_adapter is not None,
        )
        try:
            yield
        finally:
            logfire.info("Gateway shutting down")
            try:
                # Stop intake before draining so no message arrives afterwards.
                if start_adapters and telegram is not None:
                    await telegram.stop()
            finally:
                await dispatcher.drain()
                if start_adapters and slack is not None:
                    await slack.stop()
                telemetry.log_summary()

    app = FastAPI(title="Conversation Gateway", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.lock_manager = lock_manager
    app.state.test_adapter = test_adapter
    app.state.slack = slack
    app.state.telegram = telegram

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logfire.warning(
            "Validation error", path=request.url.path, errors=str(exc.errors())
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request data"},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/health/concurrency")
    async def health_concurrency() -> JSONResponse:
        try:
            stats = lock_manager.get_stats()
        except Exception as exc:  # pylint: disable=broad-except
            logfire.error("Failed to read lock manager stats", error=repr(exc))
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"status": "error", "reason": "Failed to get stats"},
            )
        body = stats.model_dump(
            by_alias=True, exclude={"per_conversation_queue_depths"}
        )
        return JSONResponse(content={"status": "ok", **body})

    @app.get("/health/dispatch")
    async def health_dispatch() -> dict[str, Any]:
        return {
            "status": "ok",
            "pending": dispatcher.pending,
            "sources": telemetry.snapshot(),
        }

    if test_adapter is not None:
        _register_test_routes(app, dispatcher, test_adapter)
    if slack is not None:
        _register_slack_routes(app, dispatcher, slack)
    return app


def _register_test_routes(
    app: FastAPI, dispatcher: MessageDispatcher, adapter: TestAdapter
) -> None:
    @app.post("/test/message")
    async def test_message(payload: TestMessageRequest) -> JSONResponse:
        if not payload.conversationId or not payload.message:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "conversationId and message required"},
            )
        await adapter.receive_message(payload.conversationId, payload.message)
        dispatcher.submit(adapter, payload.conversationId, payload.message)
        return JSONResponse(
            content={
                "success": True,
                "conversationId": payload.conversationId,
                "message": payload.message,
            }
        )

    @app.get("/test/messages/{conversation_id}")
    async def test_messages(conversation_id: str) -> dict[str, Any]:
        return {
            "conversationId": conversation_id,
            "messages": adapter.get_sent_messages(conversation_id),
        }

    @app.delete("/test/messages")
    async def clear_all_messages() -> dict[str, bool]:
        adapter.clear_messages()
        return {"success": True}

    @app.delete("/test/messages/{conversation_id}")
    async def clear_messages(conversation_id: str) -> dict[str, bool]:
        adapter.clear_messages(conversation_id)
        return {"success": True}


def _register_slack_routes(
    app: FastAPI, dispatcher: MessageDispatcher, slack: SlackAdapter
) -> None:
    @app.post("/webhooks/slack")
    async def slack_events(request: Request) -> Any:
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "Invalid JSON body"},
            )
        event = body.get("event")
        if not isinstance(event, dict):
            event = {}
        logfire.debug(
            "Slack webhook received",
            type=body.get("type"),
            event_type=event.get("type"),
        )
        if body.get("type") == "url_verification":
            return PlainTextResponse(str(body.get("challenge", "")))
        if body.get("type") == "event_callback":
            extracted = slack.extract_message(event)
            if extracted is not None:
                conversation_id, text = extracted
                logfire.info(
                    "Processing Slack message",
                    user_id=slack.user_id(event),
                    conversation_id=conversation_id,
                )
                dispatcher.submit(slack, conversation_id, text)
        return PlainTextResponse("OK")

    @app.post("/slack/commands")
    async def slack_commands(request: Request) -> JSONResponse:
        params = {
            key: values[0]
            for key, values in parse_qs(
                (await request.body()).decode("utf-8"), keep_blank_values=True
            ).items()
        }
        command = params.get("command")
        text = params.get("text", "")
        user_id = params.get("user_id")
        channel_id = params.get("channel_id")
        internal = translate_command(command)
        logfire.info(
            "Slack command received",
            command=command,
            internal=internal,
            user_id=user_id,
            channel_id=channel_id,
        )
        if user_id and not slack.is_user_allowed(user_id):
            logfire.warning("Unauthorised Slack command", user_id=user_id)
            return JSONResponse(
                content={
                    "response_type": "ephemeral",
                    "text": "Sorry, you are not authorized to use this bot.",
                }
            )
        if not channel_id:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "channel_id required"},
            )
        full_command = f"{internal} {text}" if text else internal
        dispatcher.submit(slack, channel_id, full_command, source="slack-command")
        return JSONResponse(
            content={"response_type": "in_channel", "text": f"Processing {internal}..."}
        )


__all__ = ["create_app", "build_slack_adapter", "build_telegram_adapter"]
