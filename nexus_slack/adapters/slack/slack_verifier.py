"""
Slack Request Verification
==========================

Middleware shared by every Slack channel (commands, events, interactions).

For each request it:
1. Reads the RAW body (the signature is computed over the exact bytes Slack sent)
2. Verifies X-Slack-Signature / X-Slack-Request-Timestamp against the signing secret
3. Parses the verified body (url-encoded form, `payload` JSON field, or JSON)
4. Answers Slack's `url_verification` challenge
5. Hands the parsed body to the wrapped handler

A rejected request is answered the way Slack's own adapters answer it: 404 for a
bad signature or a stale timestamp, 500 for anything else.
See: https://api.slack.com/authentication/verifying-requests-from-slack
"""

import hmac
import json
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs

from fastapi import Request, Response
from slack_sdk.signature import Clock, SignatureVerifier

from nexus_slack.config.logging_config import NO_CORRELATION_ID, correlation_id_var
from nexus_slack.config.settings import Config
from nexus_slack.exceptions import ErrorCode, SlackRequestError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Slack-Signature"
TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
POWERED_BY = "nexus-slack"

SlackBodyHandler = Callable[[Request, dict[str, Any]], Awaitable[Response]]


def parse_body(body: str, content_type: str | None = None) -> dict[str, Any]:
    """Parse a verified raw body.

    Url-encoded fields become strings (lists when repeated). A `payload` field
    holds the real JSON body of interactive requests.
    """
    try:
        if (content_type or "").startswith("application/json") or body.lstrip().startswith("{"):
            parsed = json.loads(body)
        else:
            fields = parse_qs(body, keep_blank_values=True)
            parsed = {k: v[0] if len(v) == 1 else v for k, v in fields.items()}
            if parsed.get("payload"):
                parsed = json.loads(parsed["payload"])
    except (ValueError, TypeError) as e:
        raise SlackRequestError(f"Unable to parse request body: {e}", status=400) from e

    if not isinstance(parsed, dict):
        raise SlackRequestError("Request body is not an object", status=400)
    return parsed


class SlackRequestVerifier:
    """Verifies and parses incoming Slack requests."""

    def __init__(
        self,
        signing_secret: str,
        max_age: int = Config.SLACK_REQUEST_MAX_AGE,
        development: bool | None = None,
        clock: Clock | None = None,
    ):
        self._signature_verifier = SignatureVerifier(signing_secret=signing_secret)
        self._clock = clock or Clock()
        self.max_age = max_age
        if development is None:
            development = Config.NEXUS_ENV == "development"
        self.development = development

    def verify(self, body: str, timestamp: str | None, signature: str | None) -> None:
        """Raise SlackRequestError unless the signature over `body` is valid and fresh."""
        if not signature or not timestamp:
            raise SlackRequestError(
                "Slack request signing verification failed. Some headers are missing.",
                code=ErrorCode.SIGNATURE_VERIFICATION_FAILURE,
            )

        try:
            request_timestamp = int(timestamp)
        except ValueError as e:
            raise SlackRequestError(
                "Slack request signing verification failed. Timestamp is invalid.",
                code=ErrorCode.SIGNATURE_VERIFICATION_FAILURE,
            ) from e

        if abs(self._clock.now() - request_timestamp) > self.max_age:
            raise SlackRequestError(
                "Slack request signing verification failed. Timestamp is too old.",
                code=ErrorCode.REQUEST_TIME_FAILURE,
            )

        expected = self._signature_verifier.generate_signature(timestamp=timestamp, body=body)
        # Header values arrive latin-1 decoded and may hold non-ASCII characters
        if expected is None or not hmac.compare_digest(expected.encode(), signature.encode("utf-8")):
            raise SlackRequestError(
                "Slack request signing verification failed. Signature mismatch.",
                code=ErrorCode.SIGNATURE_VERIFICATION_FAILURE,
            )

    async def read_verified_body(self, request: Request) -> dict[str, Any]:
        """Verify the raw request body and return it parsed."""
        try:
            raw = await request.body()
        except RuntimeError as e:
            # Something upstream consumed the stream without keeping the raw bytes
            raise SlackRequestError(
                "Parsing request body prohibits request signature verification",
                code=ErrorCode.BODY_PARSER_NOT_PERMITTED,
            ) from e

        raw_body = raw.decode("utf-8", errors="replace")
        self.verify(
            raw_body,
            request.headers.get(TIMESTAMP_HEADER),
            request.headers.get(SIGNATURE_HEADER),
        )
        return parse_body(raw_body, request.headers.get("content-type"))

    def respond(
        self,
        error: SlackRequestError | None = None,
        *,
        content: str | None = None,
        fail_with_no_retry: bool = False,
        redirect_location: str | None = None,
    ) -> Response:
        """Build the response for a handled (or rejected) Slack request."""
        logger.debug("Sending response - error: %s, content: %s", error, content)
        headers: dict[str, str] = {}

        if error is not None:
            if isinstance(error.status, int):
                status_code = error.status
            elif error.code in (
                ErrorCode.SIGNATURE_VERIFICATION_FAILURE,
                ErrorCode.REQUEST_TIME_FAILURE,
            ):
                status_code = 404
            else:
                status_code = 500
        else:
            if fail_with_no_retry:
                status_code = 500
                headers["X-Slack-No-Retry"] = "1"
            elif redirect_location:
                status_code = 301
                headers["Location"] = redirect_location
            else:
                status_code = 200
            headers["X-Slack-Powered-By"] = POWERED_BY

        return Response(
            content=content or None,
            status_code=status_code,
            headers=headers,
            media_type="text/plain" if content else None,
        )

    def handle_error(self, error: SlackRequestError) -> Response:
        logger.warning("Rejecting Slack request - message: %s, code: %s", error.message, error.code)
        if self.development:
            return self.respond(SlackRequestError(error.message, status=500), content=error.message)
        return self.respond(error)

    def middleware(self, handler: SlackBodyHandler) -> Callable[[Request], Awaitable[Response]]:
        """Wrap `handler(request, body)` into a FastAPI endpoint that only sees verified bodies."""

        async def endpoint(request: Request) -> Response:
            try:
                body = await self.read_verified_body(request)
            except SlackRequestError as e:
                return self.handle_error(e)

            _bind_correlation_id(request, body)

            # Handle URL verification challenge
            if body.get("type") == "url_verification":
                logger.info("Handling url verification")
                return self.respond(content=str(body.get("challenge") or ""))

            return await handler(request, body)

        endpoint.__name__ = getattr(handler, "__name__", "slack_endpoint")
        return endpoint


def _bind_correlation_id(request: Request, body: dict[str, Any]) -> None:
    correlation_id = request.headers.get("X-Correlation-ID") or body.get("trigger_id")
    correlation_id_var.set(correlation_id or NO_CORRELATION_ID)
