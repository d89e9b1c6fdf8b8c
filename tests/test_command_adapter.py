"""
Tests for slash command routes: verification, dispatch and acknowledgement.

Run with: pytest tests/test_command_adapter.py -v
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI

from nexus_slack.adapters.slack.command_adapter import SlackCommandAdapter, SubCommandDispatcher
from nexus_slack.adapters.slack.response_url import ResponseUrlBudget
from nexus_slack.adapters.slack.types import SlackAckResponse, SlackCommand, SlackMessageResponse
from nexus_slack.exceptions import SlackConfigurationError

from conftest import RESPONSE_URL, SIGNING_SECRET


def _deploy_command(calls: list) -> SlackCommand:
    async def status(conn, text, payload):
        calls.append(("status", text, payload["user_id"]))
        return SlackAckResponse(body={"response_type": "ephemeral", "text": f"status of {text or 'everything'}"})

    async def ship(conn, text, payload):
        calls.append(("ship", text, payload["user_id"]))
        return SlackAckResponse(code=200, text=f"shipping {text}", response_type="in_channel")

    return SlackCommand("deploy", {"status": status, "ship": ship})


def _command_fields(text):
    fields = {
        "command": "/deploy",
        "user_id": "U0001",
        "channel_id": "C0001",
        "trigger_id": "13345224609.738474920.8088930838d88f008e0",
        "response_url": RESPONSE_URL,
    }
    if text is not None:
        fields["text"] = text
    return fields


class TestCommandRoute:
    def test_sub_command_is_dispatched(self, connected, signed_headers, form_body):
        calls = []
        client, _ = connected(commands=[_deploy_command(calls)])
        body = form_body(_command_fields("ship api"))

        res = client.post("/slack/commands/deploy", content=body, headers=signed_headers(body))

        assert res.status_code == 200
        assert res.json() == {"text": "shipping api", "response_type": "in_channel"}
        assert calls == [("ship", "api", "U0001")]

    def test_default_sub_command_gets_whole_text(self, connected, signed_headers, form_body):
        calls = []
        command = _deploy_command(calls)
        command.default_sub_command = "status"
        client, _ = connected(commands=[command])
        body = form_body(_command_fields("is api up"))

        res = client.post("/slack/commands/deploy", content=body, headers=signed_headers(body))

        assert res.status_code == 200
        assert res.json()["text"] == "status of is api up"
        assert calls == [("status", "is api up", "U0001")]

    def test_unrecognized_action_lists_sub_commands(self, connected, signed_headers, form_body):
        calls = []
        client, _ = connected(commands=[_deploy_command(calls)])
        body = form_body(_command_fields("rollback"))

        res = client.post("/slack/commands/deploy", content=body, headers=signed_headers(body))

        assert res.status_code == 200
        assert res.json() == {"text": ":x: *You must provide one of the following actions: status,ship*"}
        assert calls == []

    def test_missing_text_is_an_invalid_request(self, connected, signed_headers, form_body):
        client, _ = connected(commands=[_deploy_command([])])
        body = form_body(_command_fields(None))

        res = client.post("/slack/commands/deploy", content=body, headers=signed_headers(body))

        assert res.status_code == 400
        assert res.json() == {"code": 400, "message": "Invalid slack request"}

    def test_repeated_text_field_is_an_invalid_request(self, connected, signed_headers):
        calls = []
        client, _ = connected(commands=[_deploy_command(calls)])
        body = "command=%2Fdeploy&text=ship&text=status&response_url=" + RESPONSE_URL

        res = client.post("/slack/commands/deploy", content=body, headers=signed_headers(body))

        assert res.status_code == 400
        assert calls == []

    def test_unsigned_request_never_reaches_handler(self, connected, form_body):
        calls = []
        client, _ = connected(commands=[_deploy_command(calls)])
        body = form_body(_command_fields("ship api"))

        res = client.post(
            "/slack/commands/deploy",
            content=body,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert res.status_code == 404
        assert calls == []

    def test_failing_handler_answers_with_error_message(self, connected, signed_headers, form_body):
        async def broken(conn, text, payload):
            raise RuntimeError("database is down")

        client, _ = connected(commands=[SlackCommand("deploy", {"status": broken})])
        body = form_body(_command_fields(""))

        res = client.post("/slack/commands/deploy", content=body, headers=signed_headers(body))

        assert res.status_code == 200
        assert res.json()["response_type"] == "ephemeral"
        assert "Something went wrong" in res.json()["text"]

    def test_handler_without_reply_is_an_empty_ack(self, connected, signed_headers, form_body):
        async def quiet(conn, text, payload):
            return None

        client, _ = connected(commands=[SlackCommand("deploy", {"status": quiet})])
        body = form_body(_command_fields("status"))

        res = client.post("/slack/commands/deploy", content=body, headers=signed_headers(body))

        assert res.status_code == 200
        assert res.content == b""

    def test_response_url_is_registered(self, connected, signed_headers, form_body):
        client, connection = connected(commands=[_deploy_command([])])
        body = form_body(_command_fields("status"))

        client.post("/slack/commands/deploy", content=body, headers=signed_headers(body))

        assert RESPONSE_URL in connection.response_urls._usage


class TestAddCommand:
    def test_same_command_twice_is_rejected(self, connected):
        _, connection = connected(commands=[_deploy_command([])])

        with pytest.raises(SlackConfigurationError):
            connection.add_command(FastAPI(), "deploy", {"status": AsyncMock()})

    def test_command_added_after_connect(self, connected, signed_headers, form_body):
        client, connection = connected()

        async def hello(conn, text, payload):
            return SlackAckResponse(body={"text": f"hello {text}"})

        assert connection.add_command(client.app, "/greet", {"hello": hello}) is True

        body = form_body(_command_fields("world"))
        res = client.post("/slack/commands/greet", content=body, headers=signed_headers(body))

        assert res.json() == {"text": "hello world"}
        assert "/greet" in connection.commands


class TestAcknowledgementWindow:
    """Handlers slower than the ack window reply through the response_url."""

    @pytest.mark.asyncio
    async def test_slow_handler_replies_late(self):
        async def slow(conn, text, payload):
            await asyncio.sleep(0.2)
            return SlackAckResponse(body={"text": f"done with {text}"})

        adapter = SlackCommandAdapter(SIGNING_SECRET, ack_timeout=0.05)
        dispatcher = SubCommandDispatcher("report", {"build": slow})
        connection = MagicMock()
        connection.response_urls = ResponseUrlBudget()
        connection.send_message_response = AsyncMock(
            return_value=SlackMessageResponse(success=True, message="ok")
        )
        body = {"command": "/report", "text": "build weekly", "response_url": RESPONSE_URL}

        res = await adapter.dispatch(connection, dispatcher, body)

        assert res.status_code == 200
        assert res.body == b""
        connection.send_message_response.assert_not_awaited()

        await asyncio.gather(*list(adapter._late_replies))

        connection.send_message_response.assert_awaited_once_with(body, {"text": "done with weekly"})

    @pytest.mark.asyncio
    async def test_fast_handler_answers_inline(self):
        async def fast(conn, text, payload):
            return SlackAckResponse(body={"text": "done"})

        adapter = SlackCommandAdapter(SIGNING_SECRET, ack_timeout=1.0)
        dispatcher = SubCommandDispatcher("report", {"build": fast})
        connection = MagicMock()
        connection.response_urls = ResponseUrlBudget()
        connection.send_message_response = AsyncMock()

        res = await adapter.dispatch(connection, dispatcher, {"text": "build", "response_url": RESPONSE_URL})

        assert json.loads(res.body) == {"text": "done"}
        assert not adapter._late_replies
        connection.send_message_response.assert_not_awaited()
