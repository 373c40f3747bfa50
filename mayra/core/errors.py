"""
Error types and user-visible error strings for the live session engine.
"""

# User-visible failures; each one is cleared by SessionController.reset_error()
OFFLINE_ERROR = "Offline Mode: Internet unavailable"
MISSING_KEY_ERROR = "API Key is missing"
CONNECTION_FAILED = "Connection failed"

OFFLINE_NOTICE = "I'm offline right now, but I'll do my best when you reconnect."


class MicrophoneAccessError(PermissionError):
    """The microphone could not be opened (denied, busy or absent)."""


class TransportError(Exception):
    """The remote conversation service failed or rejected the session."""
