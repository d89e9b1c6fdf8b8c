"""
nexus-slack
===========

A Nexus connection for Slack. Modules configure a `SlackAppConfig` and the
connection mounts the Slack channels on the router the host gives it:

    POST /slack/events              - Events API callbacks
    POST /slack/interactions        - buttons, menus, shortcuts, modals
    POST /slack/commands/{command}  - slash commands and their sub-commands

Every request is verified against the app's signing secret first.
"""

from nexus_slack.adapters.base_connection import Connection, find_property
from nexus_slack.adapters.slack import (
    SlackAckResponse,
    SlackAppConfig,
    SlackCommand,
    SlackConnection,
    SlackInteractionHandler,
    SlackInteractionType,
    SlackMessageResponse,
    create_connection,
)

__version__ = "1.0.0"

__all__ = [
    "Connection",
    "SlackAckResponse",
    "SlackAppConfig",
    "SlackCommand",
    "SlackConnection",
    "SlackInteractionHandler",
    "SlackInteractionType",
    "SlackMessageResponse",
    "create_connection",
    "find_property",
]
