"""
Payout period resolution.
"""

import calendar
from datetime import datetime, tzinfo
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

import structlog

from payouts.models import BlockRange, Period, ResolvedPeriod
from .interfaces import ChainDataReader


logger = structlog.get_logger(__name__)


def load_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Time zone for period boundaries; None means the host's local zone."""
    return ZoneInfo(name) if name else None


def _localize(naive: datetime, tz: Optional[tzinfo]) -> datetime:
    # astimezone() on a naive value applies the local offset valid at that date
    return naive.replace(tzinfo=tz) if tz is not None else naive.astimezone()


class PeriodResolver:
    """Maps calendar months to block ranges on each chain."""

    def __init__(self, chain_reader: ChainDataReader, tz: Optional[tzinfo] = None):
        self.chain_reader = chain_reader
        self.tz = tz
        self.logger = logger.bind(service="period_resolver")

    @staticmethod
    def for_month(year: int, month: int, tz: Optional[tzinfo] = None) -> Period:
        """Period covering one calendar month, midnight to midnight."""
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {month}")
        next_year, next_month = (year + 1, 1) if month == 12 else (year, month + 1)
        start = _localize(datetime(year, month, 1), tz)
        end = _localize(datetime(next_year, next_month, 1), tz)
        return Period(label=start.strftime("%B %Y"), start=start, end=end)

    @classmethod
    def previous_month(cls, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> Period:
        """The calendar month before the one containing `now`."""
        if now is None:
            now = datetime.now(tz) if tz is not None else datetime.now().astimezone()
        elif now.tzinfo is not None and tz is not None:
            now = now.astimezone(tz)
        year, month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
        return cls.for_month(year, month, tz)

    @staticmethod
    def boundary_timestamp(boundary: datetime) -> int:
        """
        Unix timestamp queried for a boundary.

        The boundary's own UTC offset is added back, so local midnight on the
        1st is looked up as midnight of that calendar date in indexer time.
        """
        if boundary.tzinfo is None:
            return calendar.timegm(boundary.timetuple())
        return int(boundary.timestamp() + boundary.utcoffset().total_seconds())

    async def resolve(self, period: Period, chains: Sequence[str]) -> ResolvedPeriod:
        """
        Resolve the period into start/end blocks on every chain.

        Raises:
            BlockNotFoundError: If a boundary is beyond a chain's head
        """
        start_ts = self.boundary_timestamp(period.start)
        end_ts = self.boundary_timestamp(period.end)

        blocks = {}
        for chain in chains:
            start_block = await self.chain_reader.block_number_at_or_after(chain, start_ts)
            end_block = await self.chain_reader.block_number_at_or_after(chain, end_ts)
            blocks[chain] = BlockRange(chain=chain, start_block=start_block, end_block=end_block)
            self.logger.info(
                "Resolved period blocks",
                period=period.label,
                chain=chain,
                start_block=start_block,
                end_block=end_block
            )

        return ResolvedPeriod(period=period, blocks=blocks)
