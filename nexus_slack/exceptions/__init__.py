"""
SLACK CONNECTION EXCEPTIONS

Raised by the connection and its channels. The request channels map
SlackRequestError to an HTTP status; the others surface to the caller.
"""

from nexus_slack.exceptions.request_error import SlackRequestError, ErrorCode
from nexus_slack.exceptions.configuration_error import SlackConfigurationError
from nexus_slack.exceptions.connection_error import SlackConnectionError

__all__ = [
    "ErrorCode",
    "SlackRequestError",
    "SlackConfigurationError",
    "SlackConnectionError",
]
