"""
Payout computation and submission stages.
"""

from .period import PeriodResolver
from .activity import ActivityDeltaReader, ActivitySource
from .seats import RecipientEnumerator, SeatScanStrategy
from .allocation import (
    AllocationEntry,
    FixedStipendPolicy,
    PayoutAllocator,
    ProportionalPolicy,
    RateTable,
    RateTier,
    TieredRatePolicy,
)
from .preflight import BalancePreflightChecker
from .batch import BatchTransactionBuilder, encode_transfer
from .submitter import IdempotentSubmitter
from .reconciler import StatusReconciler
from .manual import ManualEntry, parse_manual_entries
from .pipeline import PayoutPipeline, QueueResult

__all__ = [
    "PeriodResolver",
    "ActivityDeltaReader",
    "ActivitySource",
    "RecipientEnumerator",
    "SeatScanStrategy",
    "AllocationEntry",
    "FixedStipendPolicy",
    "PayoutAllocator",
    "ProportionalPolicy",
    "RateTable",
    "RateTier",
    "TieredRatePolicy",
    "BalancePreflightChecker",
    "BatchTransactionBuilder",
    "encode_transfer",
    "IdempotentSubmitter",
    "StatusReconciler",
    "ManualEntry",
    "parse_manual_entries",
    "PayoutPipeline",
    "QueueResult",
]
