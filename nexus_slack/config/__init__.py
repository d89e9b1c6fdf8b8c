from nexus_slack.config.settings import Config

__all__ = ["Config"]
