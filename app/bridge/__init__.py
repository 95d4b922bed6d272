"""chatbridge -- chat transport to reply-backend bridge."""

__version__ = "1.0.0"
