"""Response URL bookkeeping.

A response_url from a Slack request stays valid for 30 minutes after the
request and accepts at most five posts. The budget tracks both limits per URL
so the connection can refuse a post Slack would reject anyway.
https://api.slack.com/interactivity/handling#message_responses
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable

from nexus_slack.config.settings import Config

logger = logging.getLogger(__name__)


@dataclass
class _Usage:
    issued: float
    posts: int = 0


@dataclass
class ResponseUrlBudget:
    max_posts: int = Config.SLACK_RESPONSE_URL_MAX_POSTS
    ttl: float = Config.SLACK_RESPONSE_URL_TTL
    clock: Callable[[], float] = time.monotonic
    # How many expired URLs are remembered after their usage is dropped
    max_retired: int = 10_000
    _usage: dict[str, _Usage] = field(default_factory=dict)
    _retired: "OrderedDict[str, None]" = field(default_factory=OrderedDict)

    def register(self, response_url: str) -> None:
        """Record when Slack handed out `response_url`."""
        now = self.clock()
        self._forget_stale(now)
        if response_url in self._retired:
            return
        self._usage.setdefault(response_url, _Usage(issued=now))

    def reserve(self, response_url: str) -> str | None:
        """Count a post against `response_url`. Returns the refusal reason, or None when allowed."""
        now = self.clock()
        self._forget_stale(now)

        if response_url in self._retired:
            return "response_url expired"

        usage = self._usage.setdefault(response_url, _Usage(issued=now))
        if now - usage.issued > self.ttl:
            return f"response_url expired {int(now - usage.issued)}s after it was issued"
        if usage.posts >= self.max_posts:
            return f"response_url already used {usage.posts} times (limit {self.max_posts})"
        usage.posts += 1
        return None

    def _forget_stale(self, now: float) -> None:
        # Expired URLs keep their usage for one more ttl, then only their name
        stale = [url for url, usage in self._usage.items() if now - usage.issued > 2 * self.ttl]
        for url in stale:
            logger.debug("Retiring stale response_url %s", url)
            del self._usage[url]
            self._retired[url] = None
        while len(self._retired) > self.max_retired:
            self._retired.popitem(last=False)
