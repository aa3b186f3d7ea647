"""Message confirmation tracking for fil-quick-wallet."""

from filwallet.features.monitoring.service import (
    ConfirmationWaiter,
    ProposalResult,
    WaitState,
)

__all__ = [
    "ConfirmationWaiter",
    "ProposalResult",
    "WaitState",
]
