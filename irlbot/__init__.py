"""Twitch chat bot that starts and stops an OBS IRL stream on broadcaster commands."""

__version__ = "1.0.0"
