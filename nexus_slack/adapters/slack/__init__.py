"""Slack connection: events, interactions, slash commands, webhooks and the Web API."""

from nexus_slack.adapters.slack.command_adapter import (
    SlackCommandAdapter,
    SubCommandDispatcher,
)
from nexus_slack.adapters.slack.event_adapter import SlackEventAdapter
from nexus_slack.adapters.slack.interaction_adapter import SlackInteractionAdapter
from nexus_slack.adapters.slack.slack_connection import SlackConnection, create_connection
from nexus_slack.adapters.slack.slack_verifier import SlackRequestVerifier, parse_body
from nexus_slack.adapters.slack.types import (
    SlackAckResponse,
    SlackAppConfig,
    SlackCommand,
    SlackInteractionHandler,
    SlackInteractionType,
    SlackMessageResponse,
)

__all__ = [
    "SlackAckResponse",
    "SlackAppConfig",
    "SlackCommand",
    "SlackCommandAdapter",
    "SlackConnection",
    "SlackEventAdapter",
    "SlackInteractionAdapter",
    "SlackInteractionHandler",
    "SlackInteractionType",
    "SlackMessageResponse",
    "SlackRequestVerifier",
    "SubCommandDispatcher",
    "create_connection",
    "parse_body",
]
