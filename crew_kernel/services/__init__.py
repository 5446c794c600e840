"""Kernel services: every ledger write goes through one of these."""

from crew_kernel.services.dispute_resolver import DisputeResolver
from crew_kernel.services.escrow_service import EscrowService
from crew_kernel.services.ledger_store import LedgerStore
from crew_kernel.services.lifecycle_service import ShiftLifecycleService
from crew_kernel.services.rating_aggregator import RatingAggregator
from crew_kernel.services.trust_recorder import TrustRecorder

__all__ = [
    "LedgerStore",
    "EscrowService",
    "RatingAggregator",
    "TrustRecorder",
    "DisputeResolver",
    "ShiftLifecycleService",
]
