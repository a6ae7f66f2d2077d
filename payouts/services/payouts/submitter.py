"""
Idempotent batch submission through the relay.
"""

from typing import List

import structlog

from payouts.core.exceptions import PayoutsException, SubmissionFailedError
from payouts.models import PayoutBatch, SubmissionReport, TransferCall
from .interfaces import RelayService, Signer


logger = structlog.get_logger(__name__)


class IdempotentSubmitter:
    """
    Proposes a batch without duplicating calls already in the relay queue.

    Submitting the same batch twice queues nothing the second time. When
    the relay fails after some chunks were queued, the queued part is
    reported as partial rather than raised; nothing is rolled back.
    """

    def __init__(self, relay: RelayService):
        self.relay = relay
        self.logger = logger.bind(service="idempotent_submitter")

    async def submit(self, batch: PayoutBatch, safe_address: str, signer: Signer) -> SubmissionReport:
        """
        Propose every call of the batch to the Safe queue.

        Raises:
            SubmissionFailedError: If the relay or signer fails before anything was queued
        """
        report = SubmissionReport(proposed=len(batch))
        if not batch.calls:
            return report

        try:
            session = await self.relay.init(safe_address, signer)
        except PayoutsException as e:
            self.logger.error("Relay session could not be opened", safe=safe_address, error=e.message)
            raise SubmissionFailedError(
                f"Could not open relay session: {e.message}",
                {"safe": safe_address, "cause": e.code}
            ) from e

        appended: List[TransferCall] = []
        for call in batch:
            if await session.append_transaction(call.token_contract, call.data, force=False):
                appended.append(call)
            else:
                report.skipped.append(call)

        try:
            result = await session.submit()
            report.safe_tx_hashes = list(result.safe_tx_hashes)
            report.queued = appended[:len(result.transactions)]
        except PayoutsException as e:
            queued = appended[:len(session.submitted)]
            if not queued:
                self.logger.error("Batch submission failed", safe=safe_address, error=e.message)
                raise SubmissionFailedError(
                    f"Batch submission failed: {e.message}",
                    {"safe": safe_address, "cause": e.code}
                ) from e

            report.queued = queued
            report.safe_tx_hashes = list(getattr(session, "safe_tx_hashes", []))
            report.partial = True
            report.error = e.message
            self.logger.warning(
                "Batch partially submitted",
                safe=safe_address,
                queued=len(queued),
                remaining=len(appended) - len(queued),
                error=e.message
            )
            return report

        self.logger.info(
            "Batch submitted",
            safe=safe_address,
            proposed=report.proposed,
            queued=report.queued_count,
            skipped=report.skipped_count
        )
        return report
