"""Anonymous channel posts with pseudonymous threaded replies for Telegram."""

__version__ = "0.3.0"
