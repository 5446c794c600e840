"""
BaseService -- abstract base for kernel services.

Responsibility:
    The common constructor and session contract for every service that
    writes to the settlement ledger.  Services use ``session.flush()``,
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    Services flush within the caller's transaction and never commit or roll
    back.  The caller (SettlementOrchestrator or a test) owns the boundary,
    so a command and every row it touches commit or vanish together.
"""

from abc import ABC

from sqlalchemy.orm import Session

from crew_kernel.domain.clock import Clock, SystemClock
from crew_kernel.domain.policy import SettlementPolicy


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and persists with
        ``flush()``.  Time comes from the injected Clock only.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.policy = policy or SettlementPolicy()
