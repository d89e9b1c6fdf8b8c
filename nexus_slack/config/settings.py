"""Application configuration settings"""

import os
from dotenv import load_dotenv

load_dotenv()


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # Environment ("development" exposes error details in Slack responses)
    NEXUS_ENV = os.getenv("NEXUS_ENV", "production")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_PATH = os.getenv("LOG_PATH") or None
    LOG_FORMAT = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s",
    )

    # Slack app credentials (https://api.slack.com/start/overview#creating)
    SLACK_APP_ID = os.getenv("SLACK_APP_ID", "")
    SLACK_CLIENT_ID = os.getenv("SLACK_CLIENT_ID", "")
    SLACK_CLIENT_SECRET = os.getenv("SLACK_CLIENT_SECRET", "")
    SLACK_SIGNING_SECRET = os.getenv("SLACK_SIGNING_SECRET", "")
    # The "User" OAuth token; the Slack docs often just call it "the token"
    SLACK_CLIENT_OAUTH_TOKEN = os.getenv("SLACK_CLIENT_OAUTH_TOKEN") or None
    SLACK_BOT_USER_OAUTH_TOKEN = os.getenv("SLACK_BOT_USER_OAUTH_TOKEN") or None
    SLACK_INCOMING_WEBHOOKS = _split_list(os.getenv("SLACK_INCOMING_WEBHOOKS", ""))

    # Request verification
    SLACK_REQUEST_MAX_AGE = int(os.getenv("SLACK_REQUEST_MAX_AGE", "300"))  # seconds

    # Slack waits 3 seconds for the synchronous acknowledgement
    SLACK_ACK_TIMEOUT = float(os.getenv("SLACK_ACK_TIMEOUT", "3.0"))

    # response_url: valid for 30 minutes, at most 5 posts
    SLACK_RESPONSE_URL_MAX_POSTS = int(os.getenv("SLACK_RESPONSE_URL_MAX_POSTS", "5"))
    SLACK_RESPONSE_URL_TTL = int(os.getenv("SLACK_RESPONSE_URL_TTL", "1800"))
    RESPONSE_URL_TIMEOUT = float(os.getenv("RESPONSE_URL_TIMEOUT", "10"))

