"""
SlackConnectionError - Raised when Slack cannot be reached or answers with an error.
"""


class SlackConnectionError(Exception):
    """Exception raised for failed Slack API or response URL calls."""

    def __init__(self, message: str = "Slack request failed"):
        super().__init__(message)
        self.message = message
