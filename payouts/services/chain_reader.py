"""
EVM chain data reader.
Wraps web3 contract calls at a given block and block-by-timestamp lookups.
"""

from typing import Any, Dict, Optional, Sequence

import aiohttp
import structlog
from web3 import AsyncWeb3

from payouts.core.config import Settings, settings as default_settings
from payouts.core.exceptions import ChainReadError
from payouts.services.graph_client import BlocksSubgraph, SubgraphClient


logger = structlog.get_logger(__name__)


LATEST_BLOCK = 0

# Minimal ERC-20 / ERC-721 surface used by the payout flows
TOKEN_ABI = [
    {"name": "name", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "string"}]},
    {"name": "symbol", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "string"}]},
    {"name": "decimals", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "uint8"}]},
    {"name": "totalSupply", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "uint256"}]},
    {"name": "balanceOf", "type": "function", "stateMutability": "view",
     "inputs": [{"name": "account", "type": "address"}],
     "outputs": [{"name": "", "type": "uint256"}]},
    {"name": "ownerOf", "type": "function", "stateMutability": "view",
     "inputs": [{"name": "tokenId", "type": "uint256"}],
     "outputs": [{"name": "", "type": "address"}]},
]


def block_identifier(block: int) -> Any:
    """Block 0 conventionally means the chain's latest block."""
    return "latest" if not block else int(block)


class ChainReader:
    """
    Async reader for contract state across configured chains.

    Provides:
    - Block number lookup for a timestamp (via the chain's blocks subgraph)
    - Generic view calls at a block
    - Typed helpers for balanceOf / ownerOf / name / symbol / totalSupply
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        web3s: Optional[Dict[str, AsyncWeb3]] = None,
        block_indexes: Optional[Dict[str, BlocksSubgraph]] = None,
    ):
        self.settings = settings or default_settings
        self._session = session
        self._web3s: Dict[str, AsyncWeb3] = dict(web3s or {})
        self._block_indexes: Dict[str, BlocksSubgraph] = dict(block_indexes or {})
        self._owned_clients = []
        self.logger = logger.bind(service="chain_reader")

    def _web3(self, chain: str) -> AsyncWeb3:
        if chain not in self._web3s:
            chain_settings = self.settings.chain(chain)
            self._web3s[chain] = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
                chain_settings.rpc_url,
                request_kwargs={"timeout": self.settings.http_timeout},
            ))
        return self._web3s[chain]

    def _blocks(self, chain: str) -> BlocksSubgraph:
        if chain not in self._block_indexes:
            client = SubgraphClient(
                self.settings.chain(chain).blocks_subgraph_url,
                session=self._session,
                timeout=self.settings.http_timeout,
            )
            self._owned_clients.append(client)
            self._block_indexes[chain] = BlocksSubgraph(chain, client)
        return self._block_indexes[chain]

    async def close(self):
        """Close subgraph clients and RPC providers created by this reader."""
        for client in self._owned_clients:
            await client.close()
        self._owned_clients.clear()
        for w3 in self._web3s.values():
            disconnect = getattr(w3.provider, "disconnect", None)
            if disconnect is not None:
                await disconnect()

    async def block_number_at_or_after(self, chain: str, timestamp: int) -> int:
        """Resolve the earliest block at or after a Unix timestamp."""
        return await self._blocks(chain).block_number_at_or_after(timestamp)

    async def call(
        self,
        chain: str,
        contract: str,
        method: str,
        args: Sequence[Any] = (),
        block: int = LATEST_BLOCK
    ) -> Any:
        """
        Call a view method on a contract at a block.

        Raises:
            ChainReadError: If the call reverts or the RPC fails
        """
        w3 = self._web3(chain)
        try:
            instance = w3.eth.contract(address=w3.to_checksum_address(contract), abi=TOKEN_ABI)
            function = getattr(instance.functions, method)
            return await function(*args).call(block_identifier=block_identifier(block))
        except Exception as e:
            self.logger.debug(
                "Contract call failed",
                chain=chain,
                contract=contract,
                method=method,
                args=[str(a) for a in args],
                block=block,
                error=str(e)
            )
            raise ChainReadError(
                f"{method} call failed on {chain}: {e}",
                {"chain": chain, "contract": contract, "method": method, "block": block}
            )

    async def balance_of(self, chain: str, token: str, account: str, block: int = LATEST_BLOCK) -> int:
        return int(await self.call(chain, token, "balanceOf", [account], block))

    async def owner_of(self, chain: str, nft: str, index: int, block: int = LATEST_BLOCK) -> str:
        return await self.call(chain, nft, "ownerOf", [index], block)

    async def total_supply(self, chain: str, contract: str, block: int = LATEST_BLOCK) -> int:
        return int(await self.call(chain, contract, "totalSupply", [], block))

    async def name(self, chain: str, contract: str) -> str:
        return await self.call(chain, contract, "name")

    async def symbol(self, chain: str, contract: str) -> str:
        return await self.call(chain, contract, "symbol")
