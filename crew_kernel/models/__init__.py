"""Ledger models for the crew settlement kernel."""

from crew_kernel.models.dispute import DisputeModel
from crew_kernel.models.escrow import EscrowHoldModel
from crew_kernel.models.rating import RatingModel, UserRatingStatModel
from crew_kernel.models.shift import AssignmentModel, ShiftModel
from crew_kernel.models.status_log import ShiftStatusLogModel
from crew_kernel.models.trust_event import TrustEventModel
from crew_kernel.models.worker_profile import ProfileStatus, WorkerProfileModel

__all__ = [
    "ShiftModel",
    "AssignmentModel",
    "EscrowHoldModel",
    "RatingModel",
    "UserRatingStatModel",
    "DisputeModel",
    "WorkerProfileModel",
    "ProfileStatus",
    "ShiftStatusLogModel",
    "TrustEventModel",
]
