"""StatusWatch - self-hosted uptime monitoring engine."""

__version__ = "1.0.0"
