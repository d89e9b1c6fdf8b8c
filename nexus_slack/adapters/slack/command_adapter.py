"""
Slack Command Adapter
=====================

Slash commands are posted to `/slack/commands/{command}`. The adapter puts
the request verification middleware in front of each command route and then
picks the sub-command handler from the command text.

SUB-COMMAND DISPATCH:
---------------------
    /deploy status api      -> sub-command "status", text "api"
    /deploy please ship it  -> default sub-command, text "please ship it"
    /deploy                 -> default sub-command, text ""

Without a default sub-command, text that does not start with a known
sub-command is answered with the list of valid actions.

ACKNOWLEDGEMENT WINDOW:
-----------------------
Slack gives a command 3 seconds to answer. A handler that overruns is
acknowledged with an empty 200; it keeps running and its reply is posted
to the request's `response_url` once it finishes.
See: https://api.slack.com/interactivity/slash-commands
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from nexus_slack.adapters.slack.slack_formatter import SlackFormatter
from nexus_slack.adapters.slack.slack_verifier import POWERED_BY, SlackRequestVerifier
from nexus_slack.adapters.slack.types import (
    SlackAckResponse,
    SlackRouter,
    SlackSubCommandFunction,
    SlackSubCommandList,
)
from nexus_slack.config.settings import Config
from nexus_slack.exceptions import SlackConfigurationError

if TYPE_CHECKING:
    from nexus_slack.adapters.slack.slack_connection import SlackConnection

logger = logging.getLogger(__name__)


def command_route(command: str) -> str:
    return f"/slack/commands/{command.lstrip('/')}"


class SubCommandDispatcher:
    """Maps the text of one slash command onto its sub-command handlers."""

    def __init__(
        self,
        command: str,
        sub_commands: SlackSubCommandList,
        default_sub_command: str | None = None,
    ):
        if not sub_commands:
            raise SlackConfigurationError(
                "You have to specify at least one sub-command even if there's only one. It will be "
                "used as the default sub-command so the user will never have to enter it."
            )

        self.command = command
        self.sub_commands: dict[str, SlackSubCommandFunction] = {
            name.lower(): handler for name, handler in sub_commands.items()
        }

        if default_sub_command is not None:
            default_sub_command = default_sub_command.lower()
            if default_sub_command not in self.sub_commands:
                raise SlackConfigurationError(
                    "You have specified a default sub-command that is not in the list of sub-commands"
                )
        elif len(self.sub_commands) == 1:
            default_sub_command = next(iter(self.sub_commands))

        self.default_sub_command = default_sub_command

    @property
    def names(self) -> list[str]:
        return list(self.sub_commands)

    def resolve(self, text: str) -> tuple[str | None, str]:
        """Return (sub-command, text for its handler); sub-command is None when nothing applies."""
        parts = text.strip().split(None, 1)
        action = parts[0].lower() if parts else ""

        if action in self.sub_commands:
            return action, parts[1] if len(parts) > 1 else ""

        # No sub-command given (or an unknown word): the whole text goes to the default
        return self.default_sub_command, text


class SlackCommandAdapter:
    """Verifies command requests and dispatches them to sub-command handlers.

    Unlike the event and interaction channels there is nothing to emit here;
    each command route calls its handler directly.
    """

    def __init__(
        self,
        signing_secret: str,
        ack_timeout: float = Config.SLACK_ACK_TIMEOUT,
        verifier: SlackRequestVerifier | None = None,
    ):
        self.signing_secret = signing_secret
        self.ack_timeout = ack_timeout
        self.verifier = verifier or SlackRequestVerifier(signing_secret)
        self.dispatchers: dict[str, SubCommandDispatcher] = {}
        self._formatter = SlackFormatter()
        self._late_replies: set[asyncio.Task] = set()

    def middleware(self, handler):
        return self.verifier.middleware(handler)

    def add_command(
        self,
        router: SlackRouter,
        connection: SlackConnection,
        command: str,
        sub_commands: SlackSubCommandList,
        default_sub_command: str | None = None,
    ) -> bool:
        if command in self.dispatchers:
            raise SlackConfigurationError("You cannot add the same command twice to a Command Adapter")

        dispatcher = SubCommandDispatcher(command, sub_commands, default_sub_command)
        self.dispatchers[command] = dispatcher

        async def handle_command(request: Request, body: dict[str, Any]) -> Response:
            return await self.dispatch(connection, dispatcher, body)

        handle_command.__name__ = f"slack_command_{command.lstrip('/')}"
        router.add_api_route(
            command_route(command),
            self.middleware(handle_command),
            methods=["POST"],
            include_in_schema=False,
        )
        logger.info("Registered Slack command %s (sub-commands: %s)", command, ", ".join(dispatcher.names))
        return True

    async def dispatch(
        self,
        connection: SlackConnection,
        dispatcher: SubCommandDispatcher,
        body: dict[str, Any],
    ) -> Response:
        """Run the sub-command selected by a verified command body."""
        text = body.get("text")
        if not isinstance(text, str):
            # Not a proper slash command request
            return JSONResponse(self._formatter.format_invalid_request(), status_code=400)

        action, text_without_action = dispatcher.resolve(text)
        if action is None:
            return JSONResponse(self._formatter.format_unrecognized_action(dispatcher.names))

        response_url = body.get("response_url")
        if response_url:
            connection.response_urls.register(response_url)

        logger.info("Running %s %s for user %s", dispatcher.command, action, body.get("user_id"))
        handler = dispatcher.sub_commands[action]
        return await self._acknowledge(connection, handler(connection, text_without_action, body), body)

    async def _acknowledge(self, connection: SlackConnection, call, body: dict[str, Any]) -> Response:
        task = asyncio.ensure_future(call)
        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=self.ack_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Command handler did not answer within %.1fs; its reply will go to the response_url",
                self.ack_timeout,
            )
            late = asyncio.create_task(self._reply_late(connection, task, body))
            self._late_replies.add(late)
            late.add_done_callback(self._late_replies.discard)
            return self.verifier.respond()
        except Exception as e:
            logger.exception("Command handler failed: %s", e)
            message = str(e) if self.verifier.development else "Something went wrong. Try again shortly."
            return JSONResponse(self._formatter.format_error(message), headers={"X-Slack-Powered-By": POWERED_BY})

        return self._to_response(result)

    async def _reply_late(self, connection: SlackConnection, task: asyncio.Future, body: dict[str, Any]) -> None:
        try:
            result = await task
        except Exception as e:
            logger.exception("Command handler failed after acknowledgement: %s", e)
            return

        reply = result.to_body() if result is not None else None
        if not reply:
            return
        if not body.get("response_url"):
            logger.warning("Late command reply dropped: request has no response_url")
            return

        outcome = await connection.send_message_response(body, reply)
        if not outcome.success:
            logger.warning("Late command reply failed: %s", outcome.message)

    def _to_response(self, result: SlackAckResponse | None) -> Response:
        if result is None:
            return self.verifier.respond()
        reply = result.to_body()
        status_code = result.code or 200
        if reply is None:
            return Response(status_code=status_code, headers={"X-Slack-Powered-By": POWERED_BY})
        return JSONResponse(reply, status_code=status_code, headers={"X-Slack-Powered-By": POWERED_BY})
