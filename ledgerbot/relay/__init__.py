"""One-time code relay package."""

from ledgerbot.relay.auth_relay import AuthRelay

__all__ = ["AuthRelay"]
