"""Peer-to-peer book lending between registered users."""

__version__ = "0.1.0"
