"""FinChat: a single-session terminal client for a remote chat completion service."""

__version__ = "0.1.0"
