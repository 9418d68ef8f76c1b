"""Signaling relay for one-to-many peer-to-peer screen sharing."""

__version__ = "0.1.0"
