"""Identity resolution package."""

from ledgerbot.identity.resolver import IdentityResolver

__all__ = ["IdentityResolver"]
