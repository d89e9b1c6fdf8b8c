"""
Slack Interaction Adapter
=========================

Receives interactive payloads (buttons, menus, shortcuts, modals) at
`POST /slack/interactions`. Slack posts them as a form with one `payload`
field holding JSON; the verification middleware unwraps it.

HANDLER KINDS:
--------------
action          - block_actions, interactive_message, dialog_submission
option          - block_suggestion, dialog_suggestion, interactive_message menus
shortcut        - shortcut (global), message_action (message shortcut)
view_submission - view_submission
view_closed     - view_closed

Handlers are tried in registration order and the first match wins. Options
and view submissions need an answer in the response body, so their handlers
are awaited; everything else is acknowledged first and handled afterwards.
See: https://api.slack.com/interactivity/handling
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Any

from fastapi import BackgroundTasks, Request, Response
from fastapi.responses import JSONResponse

from nexus_slack.adapters.slack.slack_verifier import POWERED_BY, SlackRequestVerifier
from nexus_slack.adapters.slack.types import (
    MatchingConstraints,
    SlackInteractionHandler,
    SlackInteractionType,
    SlackRouter,
)
from nexus_slack.config.settings import Config

if TYPE_CHECKING:
    from nexus_slack.adapters.slack.slack_connection import SlackConnection

logger = logging.getLogger(__name__)

INTERACTIONS_ROUTE = "/slack/interactions"

ACTION_TYPES = {"block_actions", "interactive_message", "dialog_submission"}
OPTION_TYPES = {"block_suggestion", "dialog_suggestion", "interactive_message"}
SHORTCUT_TYPES = {"shortcut", "message_action"}
OPTIONS_WITHIN = {
    "block_actions": "block_suggestion",
    "interactive_message": "interactive_message",
    "dialog": "dialog_suggestion",
}

# Kinds whose handler result is the response body
SYNCHRONOUS_KINDS = {SlackInteractionType.OPTION, SlackInteractionType.VIEW_SUBMISSION}


def interaction_kind(payload: dict[str, Any]) -> SlackInteractionType | None:
    """Classify an interactive payload."""
    payload_type = payload.get("type")
    if payload_type == "interactive_message":
        # Legacy message menus ask for options without any actions
        return SlackInteractionType.ACTION if payload.get("actions") else SlackInteractionType.OPTION
    if payload_type in ACTION_TYPES:
        return SlackInteractionType.ACTION
    if payload_type in OPTION_TYPES:
        return SlackInteractionType.OPTION
    if payload_type in SHORTCUT_TYPES:
        return SlackInteractionType.SHORTCUT
    if payload_type == "view_submission":
        return SlackInteractionType.VIEW_SUBMISSION
    if payload_type == "view_closed":
        return SlackInteractionType.VIEW_CLOSED
    return None


def _matches(value: Any, expected: Any) -> bool:
    if isinstance(expected, re.Pattern):
        return isinstance(value, str) and expected.search(value) is not None
    return value == expected


def _callback_id(payload: dict[str, Any]) -> str | None:
    return payload.get("callback_id") or (payload.get("view") or {}).get("callback_id")


def _match_action(payload: dict[str, Any], constraints: MatchingConstraints) -> bool:
    actions = payload.get("actions") or []
    if not isinstance(constraints, dict):
        return _matches(_callback_id(payload), constraints) or any(
            _matches(action.get("action_id"), constraints) for action in actions
        )

    if "callback_id" in constraints and not _matches(_callback_id(payload), constraints["callback_id"]):
        return False
    if "type" in constraints and not (
        _matches(payload.get("type"), constraints["type"])
        or any(_matches(action.get("type"), constraints["type"]) for action in actions)
    ):
        return False
    if "block_id" in constraints or "action_id" in constraints:
        return any(
            all(
                _matches(action.get(key), constraints[key])
                for key in ("block_id", "action_id")
                if key in constraints
            )
            for action in actions
        )
    return True


def _match_option(payload: dict[str, Any], constraints: MatchingConstraints) -> bool:
    if not isinstance(constraints, dict):
        return _matches(_callback_id(payload), constraints)

    within = constraints.get("within")
    if within is not None and OPTIONS_WITHIN.get(within) != payload.get("type"):
        return False
    return all(
        _matches(_callback_id(payload) if key == "callback_id" else payload.get(key), constraints[key])
        for key in ("callback_id", "block_id", "action_id")
        if key in constraints
    )


def _match_shortcut(payload: dict[str, Any], constraints: MatchingConstraints) -> bool:
    if not isinstance(constraints, dict):
        return _matches(_callback_id(payload), constraints)
    if "type" in constraints and not _matches(payload.get("type"), constraints["type"]):
        return False
    if "callback_id" in constraints and not _matches(_callback_id(payload), constraints["callback_id"]):
        return False
    return True


def _match_view(payload: dict[str, Any], constraints: MatchingConstraints) -> bool:
    view = payload.get("view") or {}
    if not isinstance(constraints, dict):
        return _matches(view.get("callback_id"), constraints)
    return all(
        _matches(view.get(key), constraints[key])
        for key in ("callback_id", "external_id")
        if key in constraints
    )


MATCHERS = {
    SlackInteractionType.ACTION: _match_action,
    SlackInteractionType.OPTION: _match_option,
    SlackInteractionType.SHORTCUT: _match_shortcut,
    SlackInteractionType.VIEW_SUBMISSION: _match_view,
    SlackInteractionType.VIEW_CLOSED: _match_view,
}


class SlackInteractionAdapter:
    """Dispatches verified interactive payloads to the first matching handler."""

    def __init__(
        self,
        signing_secret: str,
        ack_timeout: float = Config.SLACK_ACK_TIMEOUT,
        verifier: SlackRequestVerifier | None = None,
    ):
        self.verifier = verifier or SlackRequestVerifier(signing_secret)
        self.ack_timeout = ack_timeout
        self.handlers: list[SlackInteractionHandler] = []

    def add(self, handler: SlackInteractionHandler) -> None:
        self.handlers.append(handler)

    def find_handler(self, payload: dict[str, Any]) -> SlackInteractionHandler | None:
        kind = interaction_kind(payload)
        if kind is None:
            return None
        matcher = MATCHERS[kind]
        for handler in self.handlers:
            if SlackInteractionType(handler.type) == kind and matcher(payload, handler.matching_constraints):
                return handler
        return None

    def mount(self, router: SlackRouter, connection: SlackConnection) -> None:
        async def slack_interactions(request: Request, body: dict[str, Any]) -> Response:
            return await self.dispatch(connection, body)

        router.add_api_route(
            INTERACTIONS_ROUTE,
            self.verifier.middleware(slack_interactions),
            methods=["POST"],
            include_in_schema=False,
        )

    async def dispatch(self, connection: SlackConnection, payload: dict[str, Any]) -> Response:
        handler = self.find_handler(payload)
        if handler is None:
            logger.info("No handler for Slack interaction %s (%s)", payload.get("type"), _callback_id(payload))
            return self.verifier.respond()

        kind = SlackInteractionType(handler.type)
        logger.info("Slack interaction %s matched a %s handler", payload.get("type"), kind.value)

        if kind in SYNCHRONOUS_KINDS:
            return await self._answer(connection, handler, payload)

        response = self.verifier.respond()
        tasks = BackgroundTasks()
        tasks.add_task(_run_handler, handler, connection, payload)
        response.background = tasks
        return response

    async def _answer(
        self,
        connection: SlackConnection,
        handler: SlackInteractionHandler,
        payload: dict[str, Any],
    ) -> Response:
        try:
            result = await asyncio.wait_for(handler.handler(connection, payload), timeout=self.ack_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s handler did not answer within %.1fs", handler.type, self.ack_timeout)
            return self.verifier.respond()
        except Exception as e:
            logger.exception("%s handler failed: %s", handler.type, e)
            return self.verifier.respond()

        reply = result.to_body() if result is not None else None
        if reply is None:
            return self.verifier.respond()
        return JSONResponse(reply, status_code=result.code or 200, headers={"X-Slack-Powered-By": POWERED_BY})


async def _run_handler(
    handler: SlackInteractionHandler,
    connection: SlackConnection,
    payload: dict[str, Any],
) -> None:
    try:
        await handler.handler(connection, payload)
    except Exception as e:
        logger.exception("%s handler failed: %s", handler.type, e)
