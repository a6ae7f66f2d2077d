"""
Subgraph-backed activity indexers and price feed.
"""

from decimal import Decimal
from typing import Dict, Optional

import structlog

from payouts.core.exceptions import IndexerError
from payouts.services.graph_client import SubgraphClient


logger = structlog.get_logger(__name__)

WEI = Decimal(10) ** 18


class SubgraphActivityIndexer:
    """
    Cumulative per-recipient activity counters from a subgraph entity.

    Each block is fetched once per indexer instance and memoised, so a run
    asking for many recipients at the same block sees one consistent
    snapshot of the indexer state.
    """

    def __init__(
        self,
        chain: str,
        client: SubgraphClient,
        entity: str,
        value_field: str,
        scale: Decimal = Decimal(1),
        page_size: int = 1000
    ):
        self.chain = chain
        self.client = client
        self.entity = entity
        self.value_field = value_field
        self.scale = scale
        self.page_size = page_size
        self._snapshots: Dict[int, Dict[str, Decimal]] = {}
        self.logger = logger.bind(service="activity_indexer", chain=chain, entity=entity)

    def _query(self) -> str:
        return (
            "query snapshot($block: Int!, $lastId: ID!) {\n"
            f"  {self.entity}(\n"
            f"    first: {self.page_size}, orderBy: id, orderDirection: asc,\n"
            "    where: {id_gt: $lastId}, block: {number: $block}\n"
            "  ) {\n"
            f"    id\n    {self.value_field}\n"
            "  }\n"
            "}\n"
        )

    async def snapshot(self, block_number: int) -> Dict[str, Decimal]:
        """Get all counters at a block keyed by upper-cased recipient id."""
        if block_number in self._snapshots:
            return self._snapshots[block_number]

        values = {}
        last_id = ""
        while True:
            data = await self.client.query(self._query(), {"block": int(block_number), "lastId": last_id})
            rows = data.get(self.entity)
            if rows is None:
                raise IndexerError(
                    f"Subgraph response is missing {self.entity}",
                    {"chain": self.chain, "block": block_number}
                )

            for row in rows:
                raw = row.get(self.value_field)
                if raw is None:
                    continue
                values[str(row["id"]).upper()] = Decimal(str(raw)) / self.scale

            # A short page is the last one
            if len(rows) < self.page_size:
                break
            last_id = str(rows[-1]["id"])

        self.logger.debug("Fetched activity snapshot", block=block_number, entries=len(values))
        self._snapshots[block_number] = values
        return values

    async def cumulative_activity(self, recipient_id: str, block_number: int) -> Optional[Decimal]:
        """Cumulative counter for a recipient at a block, or None if not indexed yet."""
        values = await self.snapshot(block_number)
        return values.get(recipient_id.upper())


class SubgraphPriceFeed:
    """Latest fifteen-minute SNX average price from the rates subgraph."""

    QUERY = """
    {
      fifteenMinuteSNXPrices(orderBy: id, orderDirection: desc, first: 1) {
        id
        averagePrice
      }
    }
    """

    def __init__(self, client: SubgraphClient):
        self.client = client
        self.logger = logger.bind(service="price_feed")

    async def latest_price(self) -> Decimal:
        data = await self.client.query(self.QUERY)
        prices = data.get("fifteenMinuteSNXPrices") or []
        if not prices:
            raise IndexerError("No SNX price available from rates subgraph")

        price = Decimal(str(prices[0]["averagePrice"])) / WEI
        self.logger.info("SNX price fetched", price=str(price))
        return price
