"""Telegram Bot API adapter for the hole state machine."""
