"""Read-only query selectors over the settlement ledger."""

from crew_kernel.selectors.dispute_selector import DisputeSelector
from crew_kernel.selectors.rating_selector import RatingSelector
from crew_kernel.selectors.shift_selector import ShiftSelector
from crew_kernel.selectors.trust_selector import TrustSelector

__all__ = ["ShiftSelector", "RatingSelector", "DisputeSelector", "TrustSelector"]
