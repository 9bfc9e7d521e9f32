"""
Ledger Bot - Source Package

A chat assistant that turns free-form messages into ledger entries
for the account bound to the sender's chat address.

DESIGN PRINCIPLES:
1. The model extracts, the code decides what is persisted
2. An entry is only ever written for the resolved account
3. Every turn gets exactly one reply
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Bot Team"
