"""
Test subgraph-backed adapters with a canned GraphQL client.
"""

from decimal import Decimal

import pytest

from payouts.core.config import MAINNET, OPTIMISM
from payouts.core.exceptions import BlockNotFoundError, IndexerError
from payouts.services.activity_indexer import WEI, SubgraphActivityIndexer, SubgraphPriceFeed
from payouts.services.chain_reader import block_identifier
from payouts.services.graph_client import BlocksSubgraph


class CannedSubgraphClient:
    """Returns queued `data` objects and records the variables sent."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.variables = []

    async def query(self, query, variables=None):
        self.variables.append(variables)
        return self.responses.pop(0)


@pytest.mark.asyncio
async def test_block_lookup_returns_first_block():
    client = CannedSubgraphClient({"blocks": [{"id": "0xabc", "number": "19350000", "timestamp": "1709251200"}]})

    number = await BlocksSubgraph(MAINNET, client).block_number_at_or_after(1709251200)

    assert number == 19350000
    assert client.variables == [{"timestamp": "1709251200"}]


@pytest.mark.asyncio
async def test_block_lookup_past_head_is_not_found():
    client = CannedSubgraphClient({"blocks": []})

    with pytest.raises(BlockNotFoundError):
        await BlocksSubgraph(OPTIMISM, client).block_number_at_or_after(4102444800)


@pytest.mark.asyncio
async def test_indexer_snapshot_fetched_once_per_block():
    client = CannedSubgraphClient({"exchangePartners": [
        {"id": "curve", "usdFees": "1500.25"},
        {"id": "DHEDGE", "usdFees": "10"},
    ]})
    indexer = SubgraphActivityIndexer(MAINNET, client, "exchangePartners", "usdFees")

    assert await indexer.cumulative_activity("CURVE", 100) == Decimal("1500.25")
    assert await indexer.cumulative_activity("dhedge", 100) == Decimal("10")
    assert await indexer.cumulative_activity("SADDLE", 100) is None
    assert client.variables == [{"block": 100, "lastId": ""}]


@pytest.mark.asyncio
async def test_indexer_pages_through_all_recipients():
    client = CannedSubgraphClient(
        {"exchangePartners": [{"id": "1INCH", "usdFees": "1"}, {"id": "CURVE", "usdFees": "2"}]},
        {"exchangePartners": [{"id": "DHEDGE", "usdFees": "3"}, {"id": "KWENTA", "usdFees": "4"}]},
        {"exchangePartners": [{"id": "SADDLE", "usdFees": "5"}]},
    )
    indexer = SubgraphActivityIndexer(MAINNET, client, "exchangePartners", "usdFees", page_size=2)

    assert await indexer.cumulative_activity("SADDLE", 100) == Decimal("5")
    assert len(await indexer.snapshot(100)) == 5
    assert [v["lastId"] for v in client.variables] == ["", "CURVE", "KWENTA"]

@pytest.mark.asyncio
async def test_indexer_scales_wei_values():
    client = CannedSubgraphClient({"frontends": [{"id": "0xfe", "fees": str(3 * 10 ** 18)}]})
    indexer = SubgraphActivityIndexer(OPTIMISM, client, "frontends", "fees", scale=WEI)

    assert await indexer.cumulative_activity("0xFE", 5) == Decimal("3")


@pytest.mark.asyncio
async def test_indexer_missing_entity_is_error():
    client = CannedSubgraphClient({})
    indexer = SubgraphActivityIndexer(MAINNET, client, "exchangePartners", "usdFees")

    with pytest.raises(IndexerError):
        await indexer.snapshot(1)


@pytest.mark.asyncio
async def test_price_feed_latest_average():
    client = CannedSubgraphClient({"fifteenMinuteSNXPrices": [{"id": "1", "averagePrice": str(25 * 10 ** 17)}]})

    assert await SubgraphPriceFeed(client).latest_price() == Decimal("2.5")


@pytest.mark.asyncio
async def test_price_feed_without_prices_is_error():
    with pytest.raises(IndexerError):
        await SubgraphPriceFeed(CannedSubgraphClient({"fifteenMinuteSNXPrices": []})).latest_price()


def test_block_zero_means_latest():
    assert block_identifier(0) == "latest"
    assert block_identifier(123) == 123
