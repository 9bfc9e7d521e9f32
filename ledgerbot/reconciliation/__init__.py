"""Ledger reconciliation package."""

from ledgerbot.reconciliation.reconciler import Reconciler

__all__ = ["Reconciler"]
