"""
Test payout period resolution.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from payouts.core.config import MAINNET, OPTIMISM
from payouts.core.exceptions import BlockNotFoundError, NotFoundError
from payouts.services.payouts import PeriodResolver

from conftest import MARCH_END, MARCH_START


def test_for_month_label_and_boundaries():
    """Month periods run from midnight on the 1st to midnight on the next 1st."""
    period = PeriodResolver.for_month(2024, 3, ZoneInfo("UTC"))

    assert period.label == "March 2024"
    assert period.start == datetime(2024, 3, 1, tzinfo=ZoneInfo("UTC"))
    assert period.end == datetime(2024, 4, 1, tzinfo=ZoneInfo("UTC"))


def test_for_month_december_rolls_over_year():
    period = PeriodResolver.for_month(2023, 12, ZoneInfo("UTC"))

    assert period.label == "December 2023"
    assert period.end == datetime(2024, 1, 1, tzinfo=ZoneInfo("UTC"))


def test_for_month_rejects_invalid_month():
    with pytest.raises(ValueError):
        PeriodResolver.for_month(2024, 13)


def test_previous_month_in_january():
    """The default period is the calendar month before now."""
    now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    period = PeriodResolver.previous_month(now, ZoneInfo("UTC"))

    assert period.label == "December 2023"


def test_previous_month_uses_payout_zone():
    # 00:30 on April 1st in UTC is still March 31st in New York
    now = datetime(2024, 4, 1, 0, 30, tzinfo=timezone.utc)
    period = PeriodResolver.previous_month(now, ZoneInfo("America/New_York"))

    assert period.label == "February 2024"


@pytest.mark.parametrize("zone", ["UTC", "America/New_York", "Asia/Tokyo"])
def test_boundary_timestamp_is_calendar_date_in_indexer_time(zone):
    """Local midnight is corrected by its own offset, whatever the zone."""
    period = PeriodResolver.for_month(2024, 3, ZoneInfo(zone))

    assert PeriodResolver.boundary_timestamp(period.start) == MARCH_START
    assert PeriodResolver.boundary_timestamp(period.end) == MARCH_END


def test_boundary_timestamp_host_local_zone():
    period = PeriodResolver.for_month(2024, 3)

    assert PeriodResolver.boundary_timestamp(period.start) == MARCH_START
    assert PeriodResolver.boundary_timestamp(period.end) == MARCH_END


@pytest.mark.asyncio
async def test_resolve_blocks_per_chain(chain_reader):
    resolver = PeriodResolver(chain_reader, ZoneInfo("UTC"))
    period = PeriodResolver.for_month(2024, 3, ZoneInfo("UTC"))

    resolved = await resolver.resolve(period, [MAINNET, OPTIMISM])

    assert resolved.label == "March 2024"
    assert resolved.block_range(MAINNET).start_block == 19_350_000
    assert resolved.block_range(MAINNET).end_block == 19_560_000
    assert resolved.block_range(OPTIMISM).start_block == 116_900_000
    assert resolved.block_range(OPTIMISM).end_block == 118_240_000


@pytest.mark.asyncio
async def test_resolve_unfinished_period_is_not_found(chain_reader):
    """A boundary past the chain head aborts resolution instead of using block 0."""
    resolver = PeriodResolver(chain_reader, ZoneInfo("UTC"))
    period = PeriodResolver.for_month(2024, 4, ZoneInfo("UTC"))

    with pytest.raises(BlockNotFoundError) as exc_info:
        await resolver.resolve(period, [MAINNET])

    assert isinstance(exc_info.value, NotFoundError)
    assert exc_info.value.code == "NOT_FOUND"
