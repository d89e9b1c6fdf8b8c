"""
Connection Adapters
===================

Adapters plug an external chat platform into the Nexus host as a pluggable
connection. Each adapter implements `Connection` (connect/disconnect) and
registers its HTTP channels on the router the host hands it.

Available Adapters:
- slack: Slack connection (see adapters/slack/)
"""

from nexus_slack.adapters.base_connection import Connection, find_property

__all__ = ["Connection", "find_property"]
