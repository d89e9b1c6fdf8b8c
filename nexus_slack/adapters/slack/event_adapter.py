"""
Slack Event Adapter
===================

Receives the Events API at `POST /slack/events`.

SLACK EVENT TYPES:
------------------
1. url_verification - answered by the verification middleware
2. event_callback   - dispatched by `event.type` to the registered listener

Slack expects a 200 within 3 seconds, so listeners run as background tasks
after the acknowledgement has been sent.
See: https://api.slack.com/apis/connections/events-api
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import BackgroundTasks, Request, Response

from nexus_slack.adapters.slack.slack_verifier import SlackRequestVerifier
from nexus_slack.adapters.slack.types import SlackEventFunction, SlackRouter

if TYPE_CHECKING:
    from nexus_slack.adapters.slack.slack_connection import SlackConnection

logger = logging.getLogger(__name__)

EVENTS_ROUTE = "/slack/events"


class SlackEventAdapter:
    """Dispatches verified Events API callbacks to listeners by event type."""

    def __init__(self, signing_secret: str, verifier: SlackRequestVerifier | None = None):
        self.verifier = verifier or SlackRequestVerifier(signing_secret)
        self.listeners: dict[str, SlackEventFunction] = {}

    def on(self, event_type: str, listener: SlackEventFunction) -> None:
        if event_type in self.listeners:
            logger.warning("Replacing listener for Slack event %s", event_type)
        self.listeners[event_type] = listener

    def mount(self, router: SlackRouter, connection: SlackConnection) -> None:
        async def slack_events(request: Request, body: dict[str, Any]) -> Response:
            return self.dispatch(connection, body)

        router.add_api_route(
            EVENTS_ROUTE,
            self.verifier.middleware(slack_events),
            methods=["POST"],
            include_in_schema=False,
        )

    def dispatch(self, connection: SlackConnection, body: dict[str, Any]) -> Response:
        """Acknowledge an event envelope and schedule its listener."""
        response = self.verifier.respond()
        if body.get("type") != "event_callback":
            logger.debug("Ignoring Slack envelope of type %s", body.get("type"))
            return response

        event = body.get("event") or {}
        event_type = event.get("type")
        listener = self.listeners.get(event_type)
        if listener is None:
            logger.debug("No listener for Slack event %s", event_type)
            return response

        logger.info("Slack event %s in channel %s", event_type, event.get("channel"))
        tasks = BackgroundTasks()
        tasks.add_task(_run_listener, listener, connection, event, event_type)
        response.background = tasks
        return response


async def _run_listener(
    listener: SlackEventFunction,
    connection: SlackConnection,
    event: dict[str, Any],
    event_type: str,
) -> None:
    try:
        await listener(connection, event)
    except Exception as e:
        logger.exception("Listener for Slack event %s failed: %s", event_type, e)
