"""
Payout pipeline composition root.

Owns the HTTP session and every external client for one run, and wires
the stages together for each payout flow:

    period -> activity deltas (or seat scan) -> allocation -> [review]
    -> balance preflight -> batch build -> submission -> reconciliation
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import aiohttp
import structlog

from payouts.core.config import MAINNET, OPTIMISM, Settings, settings as default_settings
from payouts.core.exceptions import ConfigurationError
from payouts.models import (
    PayoutBatch,
    PayoutPlan,
    PayoutRecord,
    Period,
    ReconciliationResult,
    ResolvedPeriod,
    SubmissionReport,
)
from payouts.services.activity_indexer import WEI, SubgraphActivityIndexer, SubgraphPriceFeed
from payouts.services.chain_reader import ChainReader
from payouts.services.graph_client import SubgraphClient
from payouts.services.safe_relay import SafeRelay, SafeTransactionServiceClient
from payouts.services.transfer_history import EtherscanClient
from payouts.utils.validation import EvmValidator
from .activity import ActivityDeltaReader, ActivitySource
from .allocation import (
    AllocationEntry,
    FixedStipendPolicy,
    PayoutAllocator,
    ProportionalPolicy,
    RateTable,
    TieredRatePolicy,
)
from .batch import BatchTransactionBuilder
from .interfaces import ActivityIndexer, ChainDataReader, PriceFeed, RelayService, Signer, TransferHistory
from .manual import ManualEntry
from .period import PeriodResolver, load_timezone
from .preflight import BalancePreflightChecker
from .reconciler import StatusReconciler
from .seats import RecipientEnumerator
from .submitter import IdempotentSubmitter


logger = structlog.get_logger(__name__)


FLOW_PARTNERS = "partners"
FLOW_PERPS = "perps"
FLOW_COUNCIL = "council"
FLOW_MANUAL = "manual"

# Activity indexer keys
SPOT_L1 = "spot_l1"
SPOT_L2 = "spot_l2"
PERPS = "perps"


@dataclass
class QueueResult:
    """Everything produced by queueing a plan."""
    batch: PayoutBatch
    report: SubmissionReport
    reconciliation: ReconciliationResult


class PayoutPipeline:
    """
    Computes, queues and reconciles payouts for every flow.

    External collaborators can be injected; anything not injected is built
    on first use from settings and closed on exit.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        chain_reader: Optional[ChainDataReader] = None,
        indexers: Optional[Dict[str, ActivityIndexer]] = None,
        price_feed: Optional[PriceFeed] = None,
        relays: Optional[Dict[str, RelayService]] = None,
        histories: Optional[Dict[str, TransferHistory]] = None,
    ):
        self.settings = settings or default_settings
        self.tz = load_timezone(self.settings.payout_timezone)

        self._session: Optional[aiohttp.ClientSession] = None
        self._owned = []
        self._chain_reader = chain_reader
        self._indexers: Dict[str, ActivityIndexer] = dict(indexers or {})
        self._price_feed = price_feed
        self._relays: Dict[str, RelayService] = dict(relays or {})
        self._histories: Dict[str, TransferHistory] = dict(histories or {})

        self.builder = BatchTransactionBuilder()
        self.logger = logger.bind(service="payout_pipeline")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close every client this pipeline created."""
        for client in self._owned:
            await client.close()
        self._owned.clear()
        if self._session is not None:
            await self._session.close()
            self._session = None

    # Collaborators

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.http_timeout)
            )
        return self._session

    def _subgraph(self, url: str) -> SubgraphClient:
        return SubgraphClient(url, session=self._http(), timeout=self.settings.http_timeout)

    @property
    def chain_reader(self) -> ChainDataReader:
        if self._chain_reader is None:
            reader = ChainReader(self.settings, session=self._http())
            self._owned.append(reader)
            self._chain_reader = reader
        return self._chain_reader

    def indexer(self, key: str) -> ActivityIndexer:
        if key not in self._indexers:
            if key == SPOT_L1:
                client = self._subgraph(self.settings.exchanger_subgraph_url)
                self._indexers[key] = SubgraphActivityIndexer(MAINNET, client, "exchangePartners", "usdFees")
            elif key == SPOT_L2:
                if not self.settings.exchanger_l2_subgraph_url:
                    raise ConfigurationError("L2 exchanger subgraph not configured")
                client = self._subgraph(self.settings.exchanger_l2_subgraph_url)
                self._indexers[key] = SubgraphActivityIndexer(OPTIMISM, client, "exchangePartners", "usdFees")
            elif key == PERPS:
                client = self._subgraph(self.settings.perps_subgraph_url)
                self._indexers[key] = SubgraphActivityIndexer(OPTIMISM, client, "frontends", "fees", scale=WEI)
            else:
                raise ConfigurationError(f"Unknown activity indexer: {key}")
        return self._indexers[key]

    @property
    def price_feed(self) -> PriceFeed:
        if self._price_feed is None:
            self._price_feed = SubgraphPriceFeed(self._subgraph(self.settings.rates_subgraph_url))
        return self._price_feed

    def relay(self, chain: str) -> RelayService:
        if chain not in self._relays:
            chain_settings = self.settings.chain(chain)
            service = SafeTransactionServiceClient(
                chain_settings.safe_service_url,
                session=self._http(),
                timeout=self.settings.http_timeout,
            )
            self._relays[chain] = SafeRelay(
                chain_settings,
                service,
                chunk_size=self.settings.safe_batch_chunk_size,
                origin=self.settings.safe_origin,
            )
        return self._relays[chain]

    def history(self, chain: str) -> TransferHistory:
        if chain not in self._histories:
            self._histories[chain] = EtherscanClient(
                self.settings.chain(chain),
                api_key=self.settings.etherscan_api_key,
                session=self._http(),
                timeout=self.settings.http_timeout,
            )
        return self._histories[chain]

    def reconciler(self, chain: str) -> StatusReconciler:
        return StatusReconciler(self.relay(chain), self.history(chain))

    # Safes

    def _require_safe(self, address: Optional[str], setting: str) -> str:
        if not address:
            raise ConfigurationError(f"Paying safe not configured ({setting.upper()})")
        return EvmValidator.checksum(address)

    def resolve_safe(self, choice: str) -> str:
        """Paying safe for a manual payout: `partners`, `council` or an address."""
        if choice == FLOW_PARTNERS:
            return self._require_safe(self.settings.partners_safe_l1, "partners_safe_l1")
        if choice == FLOW_COUNCIL:
            return self._require_safe(self.settings.council_safe, "council_safe")
        return EvmValidator.checksum(choice)

    # Periods

    def default_period(self, now: Optional[datetime] = None) -> Period:
        return PeriodResolver.previous_month(now, self.tz)

    def month(self, year: int, month: int) -> Period:
        return PeriodResolver.for_month(year, month, self.tz)

    async def resolve_period(self, period: Period, chains: Sequence[str]) -> ResolvedPeriod:
        return await PeriodResolver(self.chain_reader, self.tz).resolve(period, chains)

    # Flows

    async def compute_partner_payouts(self, period: Optional[Period] = None) -> PayoutPlan:
        """
        Spot exchange partners: L1 and L2 fee deltas, proportional budget.

        Raises:
            BlockNotFoundError: If the period has not ended on a chain
            ZeroBasisError: If no partner generated fees
        """
        period = period or self.default_period()
        registry = {partner_id: partner_id for partner_id in self.settings.partner_addresses_l1}

        sources = [ActivitySource(MAINNET, self.indexer(SPOT_L1), registry)]
        if self.settings.exchanger_l2_subgraph_url or SPOT_L2 in self._indexers:
            sources.append(ActivitySource(OPTIMISM, self.indexer(SPOT_L2), registry))

        resolved = await self.resolve_period(period, [s.chain for s in sources])
        deltas = await ActivityDeltaReader(sources).read(resolved)

        entries = [
            AllocationEntry(
                recipient_id=d.recipient_id,
                address=self.settings.partner_addresses_l1[d.recipient_id],
                value=d.value,
            )
            for d in deltas
        ]
        token = self.settings.snx_token_l1
        records = PayoutAllocator(token).allocate(
            ProportionalPolicy(self.settings.partners_total_distribution), entries, label=resolved.label
        )

        return PayoutPlan(
            flow=FLOW_PARTNERS,
            chain=token.chain,
            safe_address=self._require_safe(self.settings.partners_safe_l1, "partners_safe_l1"),
            records=records,
            period=resolved,
        )

    async def compute_perps_payouts(self, period: Optional[Period] = None) -> PayoutPlan:
        """
        Perps frontends: L2 fee deltas at tiered rates, paid in SNX at the current price.

        Raises:
            BlockNotFoundError: If the period has not ended on Optimism
            ValidationError: If no rate tier matches or the price is not positive
        """
        period = period or self.default_period()
        registry = {partner_id: partner_id for partner_id in self.settings.partner_addresses_l2}
        sources = [ActivitySource(OPTIMISM, self.indexer(PERPS), registry)]

        resolved = await self.resolve_period(period, [OPTIMISM])
        deltas = await ActivityDeltaReader(sources).read(resolved)
        price = await self.price_feed.latest_price()

        entries = [
            AllocationEntry(
                recipient_id=d.recipient_id,
                address=self.settings.partner_addresses_l2[d.recipient_id],
                value=d.value,
            )
            for d in deltas
        ]
        policy = TieredRatePolicy(RateTable.from_settings(self.settings.perps_rate_tiers), price)
        token = self.settings.snx_token_l2
        records = PayoutAllocator(token).allocate(policy, entries, label=resolved.label)

        return PayoutPlan(
            flow=FLOW_PERPS,
            chain=token.chain,
            safe_address=self._require_safe(self.settings.partners_safe_l2, "partners_safe_l2"),
            records=records,
            period=resolved,
        )

    async def compute_council_payouts(self) -> PayoutPlan:
        """Council seats: current NFT holders of every council, fixed stipend each."""
        if not self.settings.councils:
            raise ConfigurationError("No councils configured; set COUNCILS (see .env.example)")

        enumerator = RecipientEnumerator(
            self.chain_reader,
            max_seats=self.settings.max_council_seats,
            prefer_total_supply=self.settings.prefer_total_supply,
        )
        chain = self.settings.council_payout_chain
        allocator = PayoutAllocator(self.settings.snx_token(chain))

        records: List[PayoutRecord] = []
        for council in self.settings.councils:
            seats = await enumerator.enumerate(council.chain, council.nft_address)
            entries = [AllocationEntry(recipient_id=r.recipient_id, address=r.address) for r in seats]
            records.extend(allocator.allocate(FixedStipendPolicy(council.stipend), entries, label=council.name))

        return PayoutPlan(
            flow=FLOW_COUNCIL,
            chain=chain,
            safe_address=self._require_safe(self.settings.council_safe, "council_safe"),
            records=tuple(records),
        )

    def compute_manual_payouts(self, entries: Sequence[ManualEntry], safe: str = FLOW_PARTNERS) -> PayoutPlan:
        """Manual rows: one SNX and one sUSD record per row, for non-zero amounts."""
        snx = self.settings.snx_token_l1
        susd = self.settings.susd_token_l1

        records = []
        for index, entry in enumerate(entries, start=1):
            for token, amount in ((snx, entry.snx), (susd, entry.susd)):
                if amount > 0:
                    records.append(PayoutRecord(
                        recipient_id=f"row-{index}",
                        address=entry.address,
                        amount=amount,
                        token=token,
                        chain=MAINNET,
                        label=FLOW_MANUAL,
                    ))

        return PayoutPlan(
            flow=FLOW_MANUAL,
            chain=MAINNET,
            safe_address=self.resolve_safe(safe),
            records=tuple(records),
        )

    # Submission and status

    async def preflight(self, plan: PayoutPlan) -> Dict[str, Decimal]:
        """Check the paying safe covers every token of the plan."""
        return await BalancePreflightChecker(self.chain_reader).check_all(plan.records, plan.safe_address)

    async def reconcile(self, plan: PayoutPlan) -> ReconciliationResult:
        return await self.reconciler(plan.chain).reconcile(plan.safe_address, plan.records)

    async def queue(self, plan: PayoutPlan, signer: Signer) -> QueueResult:
        """
        Preflight, build, submit and re-reconcile a reviewed plan.

        Raises:
            InsufficientFundsError: Before anything is built or proposed
            SubmissionFailedError: If nothing could be queued
        """
        await self.preflight(plan)
        batch = self.builder.build(plan.records, plan.chain)
        report = await IdempotentSubmitter(self.relay(plan.chain)).submit(batch, plan.safe_address, signer)
        reconciliation = await self.reconcile(plan)

        self.logger.info(
            "Plan queued",
            flow=plan.flow,
            safe=plan.safe_address,
            queued=report.queued_count,
            skipped=report.skipped_count,
            partial=report.partial,
            status=reconciliation.status.value
        )
        return QueueResult(batch=batch, report=report, reconciliation=reconciliation)
