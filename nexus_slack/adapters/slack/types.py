"""Slack connection types - configuration, handler signatures and acknowledgements."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import re
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from fastapi import APIRouter, FastAPI

from nexus_slack.config.settings import Config
from nexus_slack.exceptions import SlackConfigurationError

if TYPE_CHECKING:
    from nexus_slack.adapters.slack.slack_connection import SlackConnection

SlackMessage = dict[str, Any]
SlackPayload = dict[str, Any]

# Anything routes can be registered on
SlackRouter = Union[FastAPI, APIRouter]


@dataclass
class SlackAckResponse:
    """Synchronous answer to a Slack request.

    `body` is what gets serialized back to Slack; `code` is the HTTP status.
    """

    code: int | None = None
    text: str | None = None
    body: dict[str, Any] | None = None
    response_action: str | None = None
    response_type: str | None = None
    replace_original: bool | None = None
    errors: dict[str, Any] | None = None

    def to_body(self) -> dict[str, Any] | None:
        """Body to send back, falling back to the message fields when `body` is unset."""
        if self.body is not None:
            return self.body
        fields = {
            "text": self.text,
            "response_action": self.response_action,
            "response_type": self.response_type,
            "replace_original": self.replace_original,
            "errors": self.errors,
        }
        body = {k: v for k, v in fields.items() if v is not None}
        return body or None


@dataclass
class SlackMessageResponse:
    """Outcome of a post to a response_url."""

    success: bool
    message: str
    error: Exception | None = None


SlackSubCommandFunction = Callable[
    ["SlackConnection", str, SlackPayload], Awaitable[SlackAckResponse]
]
SlackSubCommandList = dict[str, SlackSubCommandFunction]

SlackEventFunction = Callable[
    ["SlackConnection", SlackPayload], Awaitable[Union[SlackAckResponse, None]]
]
SlackEventList = dict[str, SlackEventFunction]

SlackInteractionFunction = Callable[
    ["SlackConnection", SlackPayload], Awaitable[Union[SlackAckResponse, None]]
]

MatchingConstraints = Union[str, re.Pattern, dict[str, Any]]


@dataclass
class SlackCommand:
    command: str
    sub_commands: SlackSubCommandList
    default_sub_command: str | None = None


class SlackInteractionType(str, Enum):
    ACTION = "action"
    OPTION = "option"
    SHORTCUT = "shortcut"
    VIEW_SUBMISSION = "view_submission"
    VIEW_CLOSED = "view_closed"

    @classmethod
    def _missing_(cls, value):
        # Also accept the camelCase spellings (viewSubmission, viewClosed)
        if isinstance(value, str):
            normalized = re.sub(r"(?<!^)(?=[A-Z])", "_", value).lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


@dataclass
class SlackInteractionHandler:
    type: SlackInteractionType
    matching_constraints: MatchingConstraints
    handler: SlackInteractionFunction

    def __post_init__(self):
        try:
            self.type = SlackInteractionType(self.type)
        except ValueError as e:
            valid = ", ".join(member.value for member in SlackInteractionType)
            raise SlackConfigurationError(
                f"Unknown interaction type {self.type!r}; expected one of: {valid}"
            ) from e


@dataclass
class SlackAppConfig:
    """Everything needed to integrate an app with Slack.

    These values are available once the app is created:
    https://api.slack.com/start/overview#creating
    """

    app_id: str
    client_id: str
    client_secret: str
    signing_secret: str
    client_oauth_token: str | None = None
    bot_user_oauth_token: str | None = None

    sub_app: SlackRouter | None = None
    event_listeners: SlackEventList | None = None
    interaction_listeners: list[SlackInteractionHandler] | None = None
    commands: list[SlackCommand] | None = None
    incoming_webhooks: list[str] | None = None

    ack_timeout: float = field(default_factory=lambda: Config.SLACK_ACK_TIMEOUT)

    @classmethod
    def from_env(cls, **overrides: Any) -> "SlackAppConfig":
        """Build a config from environment settings; keyword arguments win."""
        values: dict[str, Any] = {
            "app_id": Config.SLACK_APP_ID,
            "client_id": Config.SLACK_CLIENT_ID,
            "client_secret": Config.SLACK_CLIENT_SECRET,
            "signing_secret": Config.SLACK_SIGNING_SECRET,
            "client_oauth_token": Config.SLACK_CLIENT_OAUTH_TOKEN,
            "bot_user_oauth_token": Config.SLACK_BOT_USER_OAUTH_TOKEN,
            "incoming_webhooks": list(Config.SLACK_INCOMING_WEBHOOKS) or None,
        }
        values.update(overrides)
        return cls(**values)
