"""
Interfaces of the external collaborators used by the payout pipeline.
Concrete adapters live in `payouts.services`; tests substitute in-memory fakes.
"""

from decimal import Decimal
from typing import Any, List, Optional, Protocol, Sequence


class ChainDataReader(Protocol):
    async def block_number_at_or_after(self, chain: str, timestamp: int) -> int: ...

    async def call(self, chain: str, contract: str, method: str, args: Sequence[Any] = (), block: int = 0) -> Any: ...

    async def balance_of(self, chain: str, token: str, account: str, block: int = 0) -> int: ...

    async def owner_of(self, chain: str, nft: str, index: int, block: int = 0) -> str: ...

    async def total_supply(self, chain: str, contract: str, block: int = 0) -> int: ...

    async def name(self, chain: str, contract: str) -> str: ...

    async def symbol(self, chain: str, contract: str) -> str: ...


class ActivityIndexer(Protocol):
    async def cumulative_activity(self, recipient_id: str, block_number: int) -> Optional[Decimal]: ...


class PriceFeed(Protocol):
    async def latest_price(self) -> Decimal: ...


class Signer(Protocol):
    address: str

    def sign_hash(self, message_hash: bytes) -> bytes: ...


class RelaySession(Protocol):
    submitted: list

    async def append_transaction(self, to: str, data: str, value: int = 0, force: bool = False) -> bool: ...

    async def submit(self) -> Any: ...


class RelayService(Protocol):
    async def init(self, account: str, signer: Signer) -> RelaySession: ...

    async def list_pending(self, account: str) -> List[Any]: ...


class TransferHistory(Protocol):
    async def list_transfers(self, token_contract: str, account: str) -> List[Any]: ...
