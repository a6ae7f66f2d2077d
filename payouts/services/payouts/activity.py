"""
Activity delta reading across one or more chains.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

import structlog

from payouts.models import ActivityDelta, ActivitySnapshot, ResolvedPeriod
from .interfaces import ActivityIndexer


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ActivitySource:
    """A recipient registry tracked by one indexer on one chain."""
    chain: str
    indexer: ActivityIndexer
    registry: Mapping[str, str]  # recipient id -> on-chain identifier


class ActivityDeltaReader:
    """
    Fetches cumulative counters at the period boundaries and diffs them.

    Recipients tracked on several chains get one combined delta. Reads are
    issued one at a time; both snapshots of a recipient come from the same
    indexer instance, which serves each block from a single fetch.
    """

    def __init__(self, sources: Sequence[ActivitySource]):
        self.sources = list(sources)
        self.logger = logger.bind(service="activity_reader")

    async def _snapshot(
        self,
        source: ActivitySource,
        recipient_id: str,
        block_number: int
    ) -> ActivitySnapshot:
        identifier = source.registry[recipient_id]
        value = await source.indexer.cumulative_activity(identifier, block_number)
        return ActivitySnapshot(
            recipient_id=recipient_id,
            chain=source.chain,
            block_number=block_number,
            cumulative_value=value,
        )

    async def read(self, resolved: ResolvedPeriod) -> List[ActivityDelta]:
        """
        Compute per-recipient activity deltas for the period.

        Returns deltas in registry order (first source first, then ids only
        present in later sources).
        """
        combined: Dict[str, ActivityDelta] = {}

        for source in self.sources:
            blocks = resolved.block_range(source.chain)
            for recipient_id in source.registry:
                start = await self._snapshot(source, recipient_id, blocks.start_block)
                end = await self._snapshot(source, recipient_id, blocks.end_block)
                delta = ActivityDelta.from_snapshots(start, end)

                if delta.value < 0:
                    self.logger.warning(
                        "Negative activity delta",
                        recipient=recipient_id,
                        chain=source.chain,
                        start=str(start.cumulative_value),
                        end=str(end.cumulative_value),
                    )

                existing: Optional[ActivityDelta] = combined.get(recipient_id)
                combined[recipient_id] = existing.combine(delta) if existing else delta

        deltas = list(combined.values())
        self.logger.info(
            "Activity deltas computed",
            period=resolved.label,
            recipients=len(deltas),
            total=str(sum((d.value for d in deltas), Decimal(0)))
        )
        return deltas
