"""
Shared fixtures and in-memory fakes for the external collaborators.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest
from eth_utils import to_checksum_address

from payouts.core.config import MAINNET, OPTIMISM, CouncilSettings, Settings, TokenSettings
from payouts.core.exceptions import (
    BlockNotFoundError,
    ChainReadError,
    ExternalServiceError,
    SubmissionFailedError,
)
from payouts.services.safe_relay import SafeRelay
from payouts.services.transfer_history import TokenTransfer
from payouts.utils.validation import ZERO_ADDRESS


def address(byte: str) -> str:
    """Checksummed test address made of one repeated byte, e.g. address("a1")."""
    return to_checksum_address("0x" + byte * 20)


SNX_L1 = address("c1")
SNX_L2 = address("c2")
SUSD_L1 = address("c3")
PARTNERS_SAFE = address("5a")
PERPS_SAFE = address("5b")
COUNCIL_SAFE = address("5c")
SIGNER = address("99")
SEAT_NFT = address("ee")

ALICE = address("a1")
BOB = address("b2")
CAROL = address("c4")

# March 2024 boundaries as queried from the indexer
MARCH_START = 1709251200
MARCH_END = 1711929600


class FakeChainReader:
    """Chain reader answering from dictionaries; unknown reads fail like reverts."""

    def __init__(self):
        self.blocks: Dict[Tuple[str, int], int] = {}
        self.balances: Dict[Tuple[str, str], int] = {}
        self.owners: Dict[Tuple[str, int], str] = {}
        self.supplies: Dict[str, int] = {}
        self.names: Dict[str, str] = {}
        self.symbols: Dict[str, str] = {}
        self.calls: List[Tuple] = []

    async def block_number_at_or_after(self, chain: str, timestamp: int) -> int:
        self.calls.append(("block", chain, timestamp))
        if (chain, timestamp) not in self.blocks:
            raise BlockNotFoundError(chain, timestamp)
        return self.blocks[(chain, timestamp)]

    async def call(self, chain, contract, method, args=(), block=0):
        raise ChainReadError(f"{method} not supported by fake")

    async def balance_of(self, chain: str, token: str, account: str, block: int = 0) -> int:
        self.calls.append(("balanceOf", chain, token, account))
        return self.balances.get((token.lower(), account.lower()), 0)

    async def owner_of(self, chain: str, nft: str, index: int, block: int = 0) -> str:
        self.calls.append(("ownerOf", chain, nft, index))
        try:
            return self.owners[(nft.lower(), index)]
        except KeyError:
            raise ChainReadError("ERC721: invalid token ID")

    async def total_supply(self, chain: str, contract: str, block: int = 0) -> int:
        if contract.lower() not in self.supplies:
            raise ChainReadError("totalSupply reverted")
        return self.supplies[contract.lower()]

    async def name(self, chain: str, contract: str) -> str:
        return self.names.get(contract.lower(), "Seat")

    async def symbol(self, chain: str, contract: str) -> str:
        return self.symbols.get(contract.lower(), "SEAT")

    def set_balance(self, token: str, account: str, whole_tokens, decimals: int = 18):
        self.balances[(token.lower(), account.lower())] = int(Decimal(whole_tokens) * 10 ** decimals)


class FakeActivityIndexer:
    """Cumulative counters keyed by (recipient id, block)."""

    def __init__(self, values: Optional[Dict[Tuple[str, int], Decimal]] = None):
        self.values = dict(values or {})
        self.requests: List[Tuple[str, int]] = []

    async def cumulative_activity(self, recipient_id: str, block_number: int) -> Optional[Decimal]:
        self.requests.append((recipient_id, block_number))
        return self.values.get((recipient_id, block_number))


class FakePriceFeed:
    def __init__(self, price):
        self.price = Decimal(price)

    async def latest_price(self) -> Decimal:
        return self.price


class FakeSigner:
    def __init__(self, addr: str = SIGNER, reject: bool = False):
        self.address = addr
        self.reject = reject
        self.signed: List[bytes] = []

    def sign_hash(self, message_hash: bytes) -> bytes:
        if self.reject:
            raise SubmissionFailedError("User rejected signature")
        self.signed.append(message_hash)
        return b"\x01" * 65


class InMemorySafeService:
    """Safe transaction service keeping proposals as pending transactions."""

    def __init__(self, nonce: int = 0):
        self.nonce = nonce
        self.pending: List[dict] = []
        self.proposals: List[dict] = []
        self.fail_on_proposal: Optional[int] = None  # 1-based proposal number that fails
        self.unreachable = False

    def _check(self):
        if self.unreachable:
            raise ExternalServiceError("Safe transaction service unreachable: connection refused")

    async def get_safe_nonce(self, safe_address: str) -> int:
        self._check()
        return self.nonce

    async def get_pending_transactions(self, safe_address: str, min_nonce: int) -> List[dict]:
        self._check()
        return [tx for tx in self.pending if tx["nonce"] >= min_nonce]

    async def propose_transaction(self, safe_address: str, payload: dict) -> None:
        self._check()
        if self.fail_on_proposal == len(self.proposals) + 1:
            raise ExternalServiceError("Safe transaction service returned HTTP 500")
        self.proposals.append(payload)
        self.pending.append({
            "safeTxHash": payload["contractTransactionHash"],
            "nonce": payload["nonce"],
            "to": payload["to"],
            "value": payload["value"],
            "data": payload["data"],
            "dataDecoded": None,
        })

    async def close(self):
        pass


class FakeTransferHistory:
    def __init__(self, transfers: Optional[List[TokenTransfer]] = None, unavailable: bool = False):
        self.transfers = list(transfers or [])
        self.unavailable = unavailable

    async def list_transfers(self, token_contract: str, account: str) -> List[TokenTransfer]:
        if self.unavailable:
            raise ExternalServiceError("Transfer history API error: Max rate limit reached")
        return list(self.transfers)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="development",
        payout_timezone="UTC",
        snx_token_l1=TokenSettings(chain=MAINNET, address=SNX_L1, symbol="SNX"),
        snx_token_l2=TokenSettings(chain=OPTIMISM, address=SNX_L2, symbol="SNX"),
        susd_token_l1=TokenSettings(chain=MAINNET, address=SUSD_L1, symbol="sUSD"),
        partners_safe_l1=PARTNERS_SAFE,
        partners_safe_l2=PERPS_SAFE,
        council_safe=COUNCIL_SAFE,
        partner_addresses_l1={"A": ALICE, "B": BOB, "C": CAROL},
        partner_addresses_l2={"A": ALICE, "B": BOB},
        councils=[CouncilSettings(name="Spartan Council", nft_address=SEAT_NFT, stipend=Decimal("1000"))],
        partners_total_distribution=Decimal("10000"),
        max_council_seats=5,
    )


@pytest.fixture
def chain_reader() -> FakeChainReader:
    reader = FakeChainReader()
    reader.blocks.update({
        (MAINNET, MARCH_START): 19_350_000,
        (MAINNET, MARCH_END): 19_560_000,
        (OPTIMISM, MARCH_START): 116_900_000,
        (OPTIMISM, MARCH_END): 118_240_000,
    })
    return reader


@pytest.fixture
def safe_service() -> InMemorySafeService:
    return InMemorySafeService()


@pytest.fixture
def relay(test_settings, safe_service) -> SafeRelay:
    return SafeRelay(test_settings.chain(MAINNET), safe_service, chunk_size=50, origin="tests")


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def zero_address() -> str:
    return ZERO_ADDRESS
