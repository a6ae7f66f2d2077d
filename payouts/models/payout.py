"""
Types for payout computation and submission.
Every stage produces a fresh immutable value; nothing is mutated in place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from payouts.core.config import TokenSettings
from payouts.utils.validation import to_base_units


class PaymentStatus(Enum):
    """Lifecycle of a computed payout, recomputed from live state."""
    NONE = "none"
    QUEUED = "queued"
    EXECUTED = "executed"


class CheckOutcome(Enum):
    """Result of a single reconciliation check."""
    CONFIRMED = "confirmed"
    ABSENT = "absent"
    UNKNOWN = "unknown"  # source could not be queried


@dataclass(frozen=True)
class Recipient:
    """A payee resolved for one computation run."""
    recipient_id: str
    address: str
    chain: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    seat_index: Optional[int] = None


@dataclass(frozen=True)
class Period:
    """Calendar period with timezone-aware boundaries."""
    label: str
    start: datetime
    end: datetime


@dataclass(frozen=True)
class BlockRange:
    """Start and end block of a period on one chain."""
    chain: str
    start_block: int
    end_block: int


@dataclass(frozen=True)
class ResolvedPeriod:
    """A period resolved into block numbers per chain."""
    period: Period
    blocks: Dict[str, BlockRange] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.period.label

    def block_range(self, chain: str) -> BlockRange:
        return self.blocks[chain]


@dataclass(frozen=True)
class ActivitySnapshot:
    """Cumulative activity counter of a recipient at a block; None when absent."""
    recipient_id: str
    chain: str
    block_number: int
    cumulative_value: Optional[Decimal]


@dataclass(frozen=True)
class ActivityDelta:
    """Activity of a recipient within a period, summed across chains."""
    recipient_id: str
    value: Decimal
    per_chain: Dict[str, Decimal] = field(default_factory=dict)

    @classmethod
    def from_snapshots(cls, start: ActivitySnapshot, end: ActivitySnapshot) -> "ActivityDelta":
        # Missing start means the recipient was onboarded mid-period
        start_value = start.cumulative_value if start.cumulative_value is not None else Decimal(0)
        end_value = end.cumulative_value if end.cumulative_value is not None else Decimal(0)
        value = end_value - start_value
        return cls(recipient_id=end.recipient_id, value=value, per_chain={end.chain: value})

    def combine(self, other: "ActivityDelta") -> "ActivityDelta":
        per_chain = dict(self.per_chain)
        for chain, value in other.per_chain.items():
            per_chain[chain] = per_chain.get(chain, Decimal(0)) + value
        return ActivityDelta(
            recipient_id=self.recipient_id,
            value=self.value + other.value,
            per_chain=per_chain,
        )


@dataclass(frozen=True)
class PayoutRecord:
    """Amount owed to one recipient in one token."""
    recipient_id: str
    address: str
    amount: Decimal
    token: TokenSettings
    chain: str
    activity_value: Optional[Decimal] = None
    allocation_percentage: Optional[Decimal] = None
    label: Optional[str] = None


@dataclass(frozen=True)
class TransferCall:
    """An encoded ERC-20 transfer, the unit proposed to the relay."""
    token_contract: str
    recipient_address: str
    amount: int  # base units
    chain: str
    data: str  # 0x-prefixed calldata


@dataclass(frozen=True)
class PayoutBatch:
    """Ordered transfer calls proposed together."""
    chain: str
    calls: Tuple[TransferCall, ...] = ()

    def __len__(self) -> int:
        return len(self.calls)

    def __iter__(self):
        return iter(self.calls)

    @property
    def recipients(self) -> List[str]:
        """Sorted set of recipient addresses, as compared during reconciliation."""
        return sorted({call.recipient_address for call in self.calls})

    def totals_by_token(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for call in self.calls:
            totals[call.token_contract] = totals.get(call.token_contract, 0) + call.amount
        return totals


@dataclass
class SubmissionReport:
    """Outcome of proposing a batch to the relay."""
    proposed: int = 0
    queued: List[TransferCall] = field(default_factory=list)
    skipped: List[TransferCall] = field(default_factory=list)
    safe_tx_hashes: List[str] = field(default_factory=list)
    partial: bool = False
    error: Optional[str] = None

    @property
    def queued_count(self) -> int:
        return len(self.queued)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def already_queued(self) -> bool:
        """A non-empty batch with nothing new queued was queued earlier."""
        return self.proposed > 0 and self.queued_count == 0 and not self.partial


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one reconciliation source, distinguishing unknown from absent."""
    outcome: CheckOutcome
    error: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.outcome is CheckOutcome.CONFIRMED


@dataclass(frozen=True)
class ReconciliationResult:
    """Payment status with the evidence it was derived from."""
    status: PaymentStatus
    queued_check: CheckResult
    executed_check: CheckResult

    @property
    def authoritative(self) -> bool:
        return (
            self.queued_check.outcome is not CheckOutcome.UNKNOWN
            and self.executed_check.outcome is not CheckOutcome.UNKNOWN
        )


@dataclass(frozen=True)
class PayoutPlan:
    """Computed payouts for one flow, awaiting review."""
    flow: str
    chain: str
    safe_address: str
    records: Tuple[PayoutRecord, ...]
    period: Optional[ResolvedPeriod] = None

    @property
    def tokens(self) -> List[TokenSettings]:
        seen: Dict[str, TokenSettings] = {}
        for record in self.records:
            seen.setdefault(record.token.address, record.token)
        return list(seen.values())

    @property
    def transfer_count(self) -> int:
        """Records that become a transfer; amounts below one base unit are dropped."""
        return sum(1 for r in self.records if to_base_units(r.amount, r.token.decimals) > 0)

    def total(self, token: TokenSettings) -> Decimal:
        return sum(
            (r.amount for r in self.records if r.token.address == token.address and r.amount > 0),
            Decimal(0),
        )
