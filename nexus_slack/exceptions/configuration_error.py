"""
SlackConfigurationError - Raised when commands or listeners are registered incorrectly.
"""


class SlackConfigurationError(ValueError):
    """Exception raised for invalid connection configuration."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
