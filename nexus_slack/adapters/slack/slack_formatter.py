"""Slack Response Formatter - Formats connection replies into Slack message bodies."""

import logging

logger = logging.getLogger(__name__)


class SlackFormatter:
    """Formats the connection's own replies to Slack requests."""

    def format_unrecognized_action(self, sub_command_names: list[str]) -> dict:
        """Reply for a command whose action is missing and has no default."""
        return {
            "text": f":x: *You must provide one of the following actions: {','.join(sub_command_names)}*"
        }

    def format_invalid_request(self) -> dict:
        return {"code": 400, "message": "Invalid slack request"}

    def format_error(self, error_message: str) -> dict:
        """Format error message with warning style."""
        return {
            "response_type": "ephemeral",
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": f":x: *Error:* {error_message}",
                    },
                }
            ],
            "text": f"Error: {error_message}",
        }
