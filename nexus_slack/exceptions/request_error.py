"""
SlackRequestError - Raised when an incoming Slack request cannot be accepted.
Maps to: HTTP 404 for signature/timestamp failures, otherwise `status` or 500
"""

from enum import Enum


class ErrorCode(str, Enum):
    SIGNATURE_VERIFICATION_FAILURE = "SLACKHTTPHANDLER_REQUEST_SIGNATURE_VERIFICATION_FAILURE"
    REQUEST_TIME_FAILURE = "SLACKHTTPHANDLER_REQUEST_TIMELIMIT_FAILURE"
    BODY_PARSER_NOT_PERMITTED = "SLACKADAPTER_BODY_PARSER_NOT_PERMITTED_FAILURE"


class SlackRequestError(Exception):
    """Exception raised when a Slack request fails verification or parsing."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        status: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
