"""Contract testing helpers: matchers, message and provider-state middleware, a reverse proxy, and port, JSON and log utilities."""

__version__ = "0.1.0"