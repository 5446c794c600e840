"""
Crew Kernel - shift settlement core

The ledger-backed core of the crew marketplace:
- Shift lifecycle state machine with per-assignment completion
- Escrow hold / release / refund with exact money arithmetic
- One-rating-per-pair running averages
- Administrator dispute resolution (refund, ban)
- Optimistic concurrency on every mutable ledger row
"""

__version__ = "0.1.0"
