"""
Seat-based recipient discovery.
"""

from enum import Enum
from typing import List, Optional, Tuple

import structlog

from payouts.core.exceptions import ChainReadError
from payouts.models import Recipient
from payouts.utils.validation import EvmValidator
from .interfaces import ChainDataReader


logger = structlog.get_logger(__name__)


FIRST_SEAT_INDEX = 1


class SeatScanStrategy(Enum):
    """How the end of the seat sequence is determined."""
    TOTAL_SUPPLY = "total_supply"  # scan up to the contract's reported supply
    BOUNDED_SCAN = "bounded_scan"  # scan up to a configured maximum


class RecipientEnumerator:
    """
    Discovers recipients as the owners of sequentially indexed NFT seats.

    Enumeration starts at index 1 and stops at the first owner that is the
    zero address or whose ownerOf read fails. The scan never exceeds the
    supply reported by the contract, or `max_seats` when the supply is not
    used or cannot be read.
    """

    def __init__(
        self,
        chain_reader: ChainDataReader,
        max_seats: int = 30,
        prefer_total_supply: bool = True
    ):
        self.chain_reader = chain_reader
        self.max_seats = max_seats
        self.prefer_total_supply = prefer_total_supply
        self.logger = logger.bind(service="recipient_enumerator")

    async def scan_limit(self, chain: str, nft_address: str, block: int = 0) -> Tuple[SeatScanStrategy, int]:
        """Pick the scan strategy and its upper bound for a seat contract."""
        if self.prefer_total_supply:
            try:
                supply = await self.chain_reader.total_supply(chain, nft_address, block)
                return SeatScanStrategy.TOTAL_SUPPLY, int(supply)
            except ChainReadError as e:
                self.logger.info(
                    "Total supply unavailable, using bounded scan",
                    nft=nft_address,
                    max_seats=self.max_seats,
                    error=str(e)
                )
        return SeatScanStrategy.BOUNDED_SCAN, self.max_seats

    async def describe(self, chain: str, nft_address: str) -> Tuple[Optional[str], Optional[str]]:
        """Display name and symbol of a seat contract, None where unreadable."""
        values = []
        for read in (self.chain_reader.name, self.chain_reader.symbol):
            try:
                values.append(await read(chain, nft_address))
            except ChainReadError as e:
                self.logger.warning("Seat contract metadata unavailable", nft=nft_address, error=str(e))
                values.append(None)
        return values[0], values[1]

    async def enumerate(self, chain: str, nft_address: str, block: int = 0) -> List[Recipient]:
        """
        List seat holders in seat order.

        Args:
            chain: Chain the seat contract lives on
            nft_address: Seat NFT contract
            block: Block to read at; 0 reads the latest state

        Returns:
            Recipients with `seat_index` set, one per occupied seat
        """
        strategy, limit = await self.scan_limit(chain, nft_address, block)
        name, symbol = await self.describe(chain, nft_address)
        label = symbol or nft_address

        recipients: List[Recipient] = []
        index = FIRST_SEAT_INDEX
        stop_reason = "limit"

        while index <= limit:
            try:
                owner = await self.chain_reader.owner_of(chain, nft_address, index, block)
            except ChainReadError:
                stop_reason = "read_failed"
                break

            if not owner or EvmValidator.is_zero_address(owner):
                stop_reason = "zero_owner"
                break

            recipients.append(Recipient(
                recipient_id=f"{label}#{index}",
                address=EvmValidator.checksum(owner),
                chain=chain,
                name=name,
                symbol=symbol,
                seat_index=index,
            ))
            index += 1

        if stop_reason == "limit" and strategy is SeatScanStrategy.BOUNDED_SCAN:
            self.logger.warning(
                "Seat scan reached its bound; later seats are not included",
                nft=nft_address,
                max_seats=limit
            )

        self.logger.info(
            "Seats enumerated",
            nft=nft_address,
            name=name,
            strategy=strategy.value,
            seats=len(recipients),
            stop_reason=stop_reason
        )
        return recipients
