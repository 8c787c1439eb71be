"""Zip Captions Relay - forwards control commands to the Zip Captions extension."""

__version__ = "1.0.0"
