"""
GraphQL client for The Graph subgraphs.
Used for block-by-timestamp lookups, cumulative activity counters and prices.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp
import structlog

from payouts.core.exceptions import BlockNotFoundError, IndexerError


logger = structlog.get_logger(__name__)


BLOCKS_QUERY = """
query blockAtOrAfter($timestamp: BigInt!) {
  blocks(first: 1, orderBy: timestamp, orderDirection: asc, where: {timestamp_gte: $timestamp}) {
    id
    number
    timestamp
  }
}
"""


class SubgraphClient:
    """Async GraphQL client bound to a single subgraph endpoint."""

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: int = 30
    ):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(service="subgraph_client", url=url)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a GraphQL query and return its `data` object.

        Raises:
            IndexerError: On transport failures, non-200 responses or GraphQL errors
        """
        session = await self._get_session()
        payload = {"query": query, "variables": variables or {}}

        try:
            async with session.post(self.url, json=payload, timeout=self.timeout) as response:
                if response.status != 200:
                    body = await response.text()
                    raise IndexerError(
                        f"Subgraph returned HTTP {response.status}",
                        {"url": self.url, "status": response.status, "body": body[:500]}
                    )
                result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("Subgraph request failed", error=str(e))
            raise IndexerError(f"Subgraph request failed: {e}", {"url": self.url})

        if result.get("errors"):
            self.logger.error("Subgraph query returned errors", errors=result["errors"])
            raise IndexerError(
                "Subgraph query returned errors",
                {"url": self.url, "errors": result["errors"]}
            )

        return result.get("data") or {}


class BlocksSubgraph:
    """Resolves timestamps to block numbers using a blocks subgraph."""

    def __init__(self, chain: str, client: SubgraphClient):
        self.chain = chain
        self.client = client
        self.logger = logger.bind(service="blocks_subgraph", chain=chain)

    async def block_number_at_or_after(self, timestamp: int) -> int:
        """
        Get the earliest block whose timestamp is at or after `timestamp`.

        Raises:
            BlockNotFoundError: If the chain has not reached the timestamp yet
        """
        data = await self.client.query(BLOCKS_QUERY, {"timestamp": str(int(timestamp))})
        blocks = data.get("blocks") or []
        if not blocks:
            self.logger.warning("No block at or after timestamp", timestamp=timestamp)
            raise BlockNotFoundError(self.chain, int(timestamp))

        number = int(blocks[0]["number"])
        self.logger.debug("Resolved block", timestamp=timestamp, block=number)
        return number
