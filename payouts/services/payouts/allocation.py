"""
Payout allocation policies.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from payouts.core.config import RateTierSettings, TokenSettings
from payouts.core.exceptions import ValidationError, ZeroBasisError
from payouts.models import PayoutRecord


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AllocationEntry:
    """A recipient with the value an allocation policy works from."""
    recipient_id: str
    address: str
    value: Optional[Decimal] = None  # activity delta; None for stipend policies


@dataclass(frozen=True)
class Allocation:
    entry: AllocationEntry
    amount: Decimal
    percentage: Optional[Decimal] = None


@dataclass(frozen=True)
class RateTier:
    """Rate applied to values below `limit` (or up to it when inclusive)."""
    limit: Optional[Decimal]
    rate: Decimal
    inclusive: bool = False

    def matches(self, value: Decimal) -> bool:
        if self.limit is None:
            return True
        return value <= self.limit if self.inclusive else value < self.limit


class RateTable:
    """Ordered breakpoint table; the first matching tier wins."""

    def __init__(self, tiers: Sequence[RateTier]):
        if not tiers:
            raise ValidationError("Rate table needs at least one tier")
        self.tiers = tuple(tiers)

    @classmethod
    def from_settings(cls, tiers: Iterable[RateTierSettings]) -> "RateTable":
        return cls([RateTier(limit=t.limit, rate=t.rate, inclusive=t.inclusive) for t in tiers])

    def rate_for(self, value: Decimal) -> Decimal:
        for tier in self.tiers:
            if tier.matches(value):
                return tier.rate
        raise ValidationError(f"No rate tier matches {value}", {"value": str(value)})


class ProportionalPolicy:
    """Splits a fixed budget by each recipient's share of total activity."""

    name = "proportional"

    def __init__(self, total_budget: Decimal):
        self.total_budget = Decimal(total_budget)

    def allocate(self, entries: Sequence[AllocationEntry]) -> List[Allocation]:
        total = sum((e.value or Decimal(0) for e in entries), Decimal(0))
        if total == 0:
            raise ZeroBasisError(self.total_budget, len(entries))

        allocations = []
        for entry in entries:
            percentage = (entry.value or Decimal(0)) / total
            allocations.append(Allocation(
                entry=entry,
                amount=self.total_budget * percentage,
                percentage=percentage,
            ))

        # Stable, so equal shares keep registry order
        return sorted(allocations, key=lambda a: a.percentage, reverse=True)


class TieredRatePolicy:
    """
    Pays each recipient a rate of its own activity, converted by a price.

    The rate comes from a breakpoint table keyed by the activity value; the
    result, in fee currency, is divided by `price` to get payout tokens.
    """

    name = "tiered"

    def __init__(self, table: RateTable, price: Decimal):
        if price is None or Decimal(price) <= 0:
            raise ValidationError("Exchange price must be positive", {"price": str(price)})
        self.table = table
        self.price = Decimal(price)

    def fee_amount(self, value: Decimal) -> Decimal:
        """Amount owed in fee currency before conversion."""
        return value * self.table.rate_for(value)

    def allocate(self, entries: Sequence[AllocationEntry]) -> List[Allocation]:
        return [
            Allocation(entry=entry, amount=self.fee_amount(entry.value or Decimal(0)) / self.price)
            for entry in entries
        ]


class FixedStipendPolicy:
    """Pays the same amount to every recipient."""

    name = "fixed_stipend"

    def __init__(self, amount: Decimal):
        self.amount = Decimal(amount)

    def allocate(self, entries: Sequence[AllocationEntry]) -> List[Allocation]:
        return [Allocation(entry=entry, amount=self.amount) for entry in entries]


class PayoutAllocator:
    """Turns allocation policy output into payout records for one token."""

    def __init__(self, token: TokenSettings, chain: Optional[str] = None):
        self.token = token
        self.chain = chain or token.chain
        self.logger = logger.bind(service="payout_allocator")

    def allocate(
        self,
        policy,
        entries: Sequence[AllocationEntry],
        label: Optional[str] = None
    ) -> Tuple[PayoutRecord, ...]:
        """
        Compute payout records under a policy.

        Raises:
            ZeroBasisError: Proportional policy with zero total activity
            ValidationError: Tiered policy with no matching tier or bad price
        """
        allocations = policy.allocate(entries)
        records = tuple(
            PayoutRecord(
                recipient_id=a.entry.recipient_id,
                address=a.entry.address,
                amount=a.amount,
                token=self.token,
                chain=self.chain,
                activity_value=a.entry.value,
                allocation_percentage=a.percentage,
                label=label,
            )
            for a in allocations
        )

        self.logger.info(
            "Payouts allocated",
            policy=policy.name,
            token=self.token.symbol,
            recipients=len(records),
            total=str(sum((r.amount for r in records), Decimal(0)))
        )
        return records
