"""Slack Connection - the Nexus connection that integrates a module with Slack."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import aiohttp
import httpx
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient
from slack_sdk.webhook.async_client import AsyncWebhookClient

from nexus_slack.adapters.base_connection import Connection, find_property
from nexus_slack.adapters.slack.command_adapter import SlackCommandAdapter, SubCommandDispatcher
from nexus_slack.adapters.slack.event_adapter import SlackEventAdapter
from nexus_slack.adapters.slack.interaction_adapter import SlackInteractionAdapter
from nexus_slack.adapters.slack.response_url import ResponseUrlBudget
from nexus_slack.adapters.slack.slack_verifier import SlackRequestVerifier
from nexus_slack.adapters.slack.types import (
    SlackAppConfig,
    SlackInteractionHandler,
    SlackMessage,
    SlackMessageResponse,
    SlackPayload,
    SlackRouter,
    SlackSubCommandList,
)
from nexus_slack.config.settings import Config
from nexus_slack.exceptions import SlackConfigurationError, SlackConnectionError

logger = logging.getLogger(__name__)


class SlackConnection(Connection):
    """Integrates a Nexus module with Slack.

    Besides the events, interactions and commands channels mounted on
    `connect`, the connection offers helpers around the Web API, incoming
    webhooks and response URLs. Every inbound channel validates the signing
    secret before a listener sees the payload.
    """

    name = "Slack"

    def __init__(self, config: SlackAppConfig, global_config: Mapping[str, Any] | None = None):
        super().__init__(config, global_config)
        self.config: SlackAppConfig = config
        self.event_adapter: SlackEventAdapter | None = None
        self.message_adapter: SlackInteractionAdapter | None = None
        self.commands_adapter: SlackCommandAdapter | None = None
        self.incoming_webhooks: dict[str, AsyncWebhookClient] | None = None
        self.api_as_app: AsyncWebClient | None = None
        self.api_as_bot: AsyncWebClient | None = None
        self.response_urls = ResponseUrlBudget()
        self._verifier: SlackRequestVerifier | None = None

    @property
    def commands(self) -> dict[str, SubCommandDispatcher]:
        return self.commands_adapter.dispatchers if self.commands_adapter else {}

    @property
    def verifier(self) -> SlackRequestVerifier:
        if self._verifier is None:
            env = self.global_config.get("env") or Config.NEXUS_ENV
            self._verifier = SlackRequestVerifier(
                self.config.signing_secret, development=env == "development"
            )
        return self._verifier

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> SlackConnection:
        cfg = self.config

        # Some endpoints only accept the bot token
        if self.api_as_bot is None and cfg.bot_user_oauth_token:
            self.api_as_bot = AsyncWebClient(token=cfg.bot_user_oauth_token)

        if self.api_as_app is None and cfg.client_oauth_token:
            self.api_as_app = AsyncWebClient(token=cfg.client_oauth_token)

        if self.event_adapter is None and cfg.event_listeners:
            router = self._require_router("event listeners")
            self.event_adapter = SlackEventAdapter(cfg.signing_secret, verifier=self.verifier)
            for event_type, listener in cfg.event_listeners.items():
                self.event_adapter.on(event_type, listener)
            self.event_adapter.mount(router, self)

        if self.message_adapter is None and cfg.interaction_listeners:
            router = self._require_router("interaction listeners")
            self.message_adapter = SlackInteractionAdapter(
                cfg.signing_secret, ack_timeout=cfg.ack_timeout, verifier=self.verifier
            )
            for handler in cfg.interaction_listeners:
                self.add_interaction(handler)
            self.message_adapter.mount(router, self)

        if self.commands_adapter is None and cfg.commands:
            router = self._require_router("commands")
            self._create_commands_adapter()
            for cmd in cfg.commands:
                self.add_command(router, cmd.command, cmd.sub_commands, cmd.default_sub_command)

        if self.incoming_webhooks is None and cfg.incoming_webhooks:
            self.incoming_webhooks = {url: AsyncWebhookClient(url) for url in cfg.incoming_webhooks}

        logger.info(
            "Slack connection ready for app %s (events=%s, interactions=%s, commands=%s)",
            cfg.app_id,
            bool(self.event_adapter),
            bool(self.message_adapter),
            ", ".join(self.commands) or "none",
        )
        return self

    def disconnect(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_command(
        self,
        router: SlackRouter,
        command: str,
        sub_commands: SlackSubCommandList,
        default_sub_command: str | None = None,
    ) -> bool:
        """Route `/slack/commands/{command}` on `router` to the given sub-commands."""
        if self.commands_adapter is None:
            self._create_commands_adapter()
        return self.commands_adapter.add_command(router, self, command, sub_commands, default_sub_command)

    def add_interaction(self, handler: SlackInteractionHandler) -> None:
        if self.message_adapter is None:
            raise SlackConfigurationError("Trying to add an interaction handler without calling connect first")
        self.message_adapter.add(handler)

    def _create_commands_adapter(self) -> None:
        self.commands_adapter = SlackCommandAdapter(
            self.config.signing_secret, ack_timeout=self.config.ack_timeout, verifier=self.verifier
        )

    def _require_router(self, what: str) -> SlackRouter:
        if self.config.sub_app is None:
            raise SlackConfigurationError(f"A sub_app is required to receive Slack {what}")
        return self.config.sub_app

    # ------------------------------------------------------------------
    # Outgoing messages
    # ------------------------------------------------------------------

    async def send_to_incoming_webhook(self, slack_channel: str, payload: dict[str, Any]) -> bool:
        """Post `payload` to an incoming webhook URL registered with the app.

        Failures are logged, not raised. Returns True when Slack accepted the post.
        """
        if self.incoming_webhooks is None:
            self.incoming_webhooks = {}
        if slack_channel not in self.incoming_webhooks:
            self.incoming_webhooks[slack_channel] = AsyncWebhookClient(slack_channel)

        try:
            response = await self.incoming_webhooks[slack_channel].send_dict(payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Slack IncomingWebhook post failed with %s", e)
            return False

        if response.status_code != 200:
            logger.error(
                "Slack IncomingWebhook post failed with %s: %s", response.status_code, response.body
            )
            return False
        return True

    async def send_message_response(
        self, slack_request_data: Mapping[str, Any], message_response_data: Any
    ) -> SlackMessageResponse:
        """Reply to a Slack request through its response_url.

        A request must be answered within 3 seconds; longer work can instead
        post here. The URL is valid for 30 minutes and accepts at most five posts.
        https://api.slack.com/interactivity/handling#responses

        Raises SlackConnectionError when the request carries no response_url.
        """
        response_url = slack_request_data.get("response_url")
        if not response_url:
            raise SlackConnectionError("The given slack message does not have a response URL")

        refusal = self.response_urls.reserve(response_url)
        if refusal:
            logger.warning("Not posting message response: %s", refusal)
            return SlackMessageResponse(success=False, message=refusal, error=None)

        try:
            async with httpx.AsyncClient(timeout=Config.RESPONSE_URL_TIMEOUT) as client:
                response = await client.post(response_url, json=message_response_data)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            return SlackMessageResponse(
                success=False,
                message=f"Post to slack for command response failed with error code {e.response.status_code}: {e}",
                error=e,
            )
        except httpx.HTTPError as e:
            return SlackMessageResponse(
                success=False,
                message=f"Post to slack for command response failed with error {type(e).__name__}: {e}",
                error=e,
            )

        return SlackMessageResponse(success=True, message="Successfully posted message response", error=None)

    # ------------------------------------------------------------------
    # Web API helpers
    # ------------------------------------------------------------------

    def extract_text_from_payload(self, payload: SlackPayload) -> list[str]:
        """Every `text` and `pretext` value in the payload, without duplicates."""
        text: list[str] = []
        for key, value in payload.items():
            if key in ("pretext", "text") and isinstance(value, str):
                text.append(value)
            elif isinstance(value, Mapping):
                text.extend(self.extract_text_from_payload(value))
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, Mapping):
                        text.extend(self.extract_text_from_payload(item))

        return list(dict.fromkeys(text))

    async def get_channel_thread(self, channel: str, thread_ts: str) -> list[SlackMessage]:
        """All messages of a thread. https://api.slack.com/methods/conversations.replies"""
        client = self._app_client()
        try:
            thread_messages = await client.conversations_replies(channel=channel, ts=thread_ts, limit=10)
        except SlackApiError as e:
            raise SlackConnectionError(
                f"Unable to get the channel thread. Failed with this error: {e.response.get('error')}"
            ) from e

        if not thread_messages.get("ok"):
            raise SlackConnectionError(
                f"Unable to get the channel thread. Failed with this error: {thread_messages.get('error')}"
            )
        return thread_messages.get("messages", [])

    async def get_parent_thread(self, msg: SlackMessage) -> str | None:
        """Find the thread_ts for a message.

        Uses the thread_ts in the message itself when there is one; otherwise
        looks the message up by channel and ts. None means the message is not
        part of a thread (or is not a message).
        """
        thread_ts = find_property(msg, "thread_ts")
        if thread_ts:
            return thread_ts

        ts = find_property(msg, "ts")
        channel = find_property(msg, "channel")
        if channel and ts:
            # Reaction events don't carry the message details
            if isinstance(channel, Mapping):
                channel = channel.get("id")
            full_message = await self.get_message_from_channel_and_ts(channel, ts)
            return find_property(full_message, "thread_ts") if full_message else None

        return None

    async def get_message_from_channel_and_ts(self, channel: str, ts: str) -> SlackMessage | None:
        client = self._app_client()
        try:
            history = await client.conversations_history(channel=channel, latest=ts, limit=1, inclusive=True)
        except SlackApiError as e:
            raise SlackConnectionError(
                f"Unable to get message {ts} in {channel}: {e.response.get('error')}"
            ) from e

        messages = history.get("messages") if history else None
        if not messages:
            return None
        return messages[0]

    def _app_client(self) -> AsyncWebClient:
        if self.api_as_app is None:
            raise SlackConnectionError("No client OAuth token configured; call connect first")
        return self.api_as_app


def create_connection(cfg: SlackAppConfig, global_cfg: Mapping[str, Any] | None = None) -> Connection:
    return SlackConnection(cfg, global_cfg)
