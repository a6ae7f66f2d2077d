"""
Payout data model.
"""

from .payout import (
    ActivityDelta,
    ActivitySnapshot,
    BlockRange,
    CheckOutcome,
    CheckResult,
    PaymentStatus,
    PayoutBatch,
    PayoutPlan,
    PayoutRecord,
    Period,
    Recipient,
    ReconciliationResult,
    ResolvedPeriod,
    SubmissionReport,
    TransferCall,
)

__all__ = [
    "ActivityDelta",
    "ActivitySnapshot",
    "BlockRange",
    "CheckOutcome",
    "CheckResult",
    "PaymentStatus",
    "PayoutBatch",
    "PayoutPlan",
    "PayoutRecord",
    "Period",
    "Recipient",
    "ReconciliationResult",
    "ResolvedPeriod",
    "SubmissionReport",
    "TransferCall",
]
