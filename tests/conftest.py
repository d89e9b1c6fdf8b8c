import time
from urllib.parse import urlencode

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from slack_sdk.signature import SignatureVerifier

from nexus_slack.adapters.slack.slack_connection import SlackConnection
from nexus_slack.adapters.slack.types import SlackAppConfig

SIGNING_SECRET = "test-signing-secret"
RESPONSE_URL = "https://hooks.slack.com/commands/T000/1234/abcd"


def _signed_headers(body: str, timestamp: int | None = None, secret: str = SIGNING_SECRET,
                    content_type: str = "application/x-www-form-urlencoded") -> dict:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    signature = SignatureVerifier(secret).generate_signature(timestamp=ts, body=body)
    return {
        "X-Slack-Request-Timestamp": ts,
        "X-Slack-Signature": signature,
        "Content-Type": content_type,
    }


@pytest.fixture()
def signed_headers():
    """Headers Slack would send for a given raw body."""
    return _signed_headers


@pytest.fixture()
def form_body():
    def _form_body(fields: dict) -> str:
        return urlencode(fields)

    return _form_body


@pytest.fixture()
def slack_config():
    def _slack_config(**kwargs) -> SlackAppConfig:
        return SlackAppConfig(
            app_id="A0001",
            client_id="1234.5678",
            client_secret="client-secret",
            signing_secret=SIGNING_SECRET,
            **kwargs,
        )

    return _slack_config


@pytest.fixture()
def connected(slack_config):
    """Connect a SlackConnection to a fresh app and return (client, connection)."""

    def _connected(**kwargs):
        app = FastAPI()
        connection = SlackConnection(slack_config(sub_app=app, **kwargs), {"env": "testing"}).connect()
        return TestClient(app), connection

    return _connected
