"""Account and session backend with live session revocation."""

__version__ = "1.0.0"
