"""
Test seat-based recipient enumeration.
"""

import pytest

from payouts.core.config import OPTIMISM
from payouts.services.payouts import RecipientEnumerator, SeatScanStrategy

from conftest import ALICE, BOB, CAROL, SEAT_NFT, FakeChainReader


def seat_reader(*owners) -> FakeChainReader:
    reader = FakeChainReader()
    for index, owner in enumerate(owners, start=1):
        reader.owners[(SEAT_NFT.lower(), index)] = owner
    reader.names[SEAT_NFT.lower()] = "Spartan Council"
    reader.symbols[SEAT_NFT.lower()] = "SC"
    return reader


@pytest.mark.asyncio
async def test_enumeration_stops_at_zero_owner(zero_address):
    reader = seat_reader(ALICE, BOB, zero_address, CAROL)
    enumerator = RecipientEnumerator(reader, max_seats=10, prefer_total_supply=False)

    recipients = await enumerator.enumerate(OPTIMISM, SEAT_NFT)

    assert [r.address for r in recipients] == [ALICE, BOB]
    assert [r.seat_index for r in recipients] == [1, 2]
    assert recipients[0].recipient_id == "SC#1"
    assert recipients[0].name == "Spartan Council"
    assert recipients[0].chain == OPTIMISM


@pytest.mark.asyncio
async def test_enumeration_stops_at_failed_read():
    """A reverting ownerOf marks the end of supply, not an error."""
    reader = seat_reader(ALICE, BOB, CAROL)
    enumerator = RecipientEnumerator(reader, max_seats=10, prefer_total_supply=False)

    recipients = await enumerator.enumerate(OPTIMISM, SEAT_NFT)

    assert [r.address for r in recipients] == [ALICE, BOB, CAROL]
    owner_reads = [c for c in reader.calls if c[0] == "ownerOf"]
    assert [c[3] for c in owner_reads] == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_bounded_scan_truncates_at_max_seats():
    reader = seat_reader(ALICE, BOB, CAROL, ALICE)
    enumerator = RecipientEnumerator(reader, max_seats=2, prefer_total_supply=False)

    strategy, limit = await enumerator.scan_limit(OPTIMISM, SEAT_NFT)
    recipients = await enumerator.enumerate(OPTIMISM, SEAT_NFT)

    assert strategy is SeatScanStrategy.BOUNDED_SCAN
    assert limit == 2
    assert [r.address for r in recipients] == [ALICE, BOB]


@pytest.mark.asyncio
async def test_total_supply_preferred_over_bound():
    reader = seat_reader(ALICE, BOB, CAROL)
    reader.supplies[SEAT_NFT.lower()] = 3
    enumerator = RecipientEnumerator(reader, max_seats=1, prefer_total_supply=True)

    strategy, limit = await enumerator.scan_limit(OPTIMISM, SEAT_NFT)
    recipients = await enumerator.enumerate(OPTIMISM, SEAT_NFT)

    assert strategy is SeatScanStrategy.TOTAL_SUPPLY
    assert limit == 3
    assert len(recipients) == 3


@pytest.mark.asyncio
async def test_missing_total_supply_falls_back_to_bounded_scan():
    reader = seat_reader(ALICE, BOB, CAROL)
    enumerator = RecipientEnumerator(reader, max_seats=2, prefer_total_supply=True)

    strategy, limit = await enumerator.scan_limit(OPTIMISM, SEAT_NFT)

    assert strategy is SeatScanStrategy.BOUNDED_SCAN
    assert limit == 2


@pytest.mark.asyncio
async def test_monotonic_seats_produce_no_duplicates():
    reader = seat_reader(ALICE, BOB, CAROL)
    enumerator = RecipientEnumerator(reader, max_seats=10, prefer_total_supply=False)

    recipients = await enumerator.enumerate(OPTIMISM, SEAT_NFT)
    addresses = [r.address for r in recipients]

    assert len(addresses) == len(set(addresses))
