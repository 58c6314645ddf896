"""Chat memory storage and the one-time consolidated index migration."""

__version__ = "0.3.0"
