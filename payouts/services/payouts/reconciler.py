"""
Payment status reconciliation against the relay queue and transfer history.
"""

from typing import Dict, List, Sequence, Set, Tuple

import structlog

from payouts.core.config import TokenSettings
from payouts.core.exceptions import PayoutsException, ReconciliationUnavailableError
from payouts.models import CheckOutcome, CheckResult, PaymentStatus, PayoutRecord, ReconciliationResult
from payouts.utils.validation import EvmValidator, to_base_units
from .interfaces import RelayService, TransferHistory


logger = structlog.get_logger(__name__)


def expected_recipients(records: Sequence[PayoutRecord]) -> List[str]:
    """Sorted set of checksummed addresses that would receive a transfer."""
    return sorted({
        EvmValidator.checksum(r.address)
        for r in records
        if to_base_units(r.amount, r.token.decimals) > 0
    })


class StatusReconciler:
    """
    Recomputes the status of a payout set: NONE, QUEUED or EXECUTED.

    QUEUED: a pending Safe transaction transfers to exactly the expected
    recipient set. EXECUTED: any historical transfer from the Safe matches
    the recipient and value of any one record. The executed match is weak;
    a single matching transfer marks the whole set as executed.

    A source that cannot be queried yields an UNKNOWN check and the result
    is not authoritative; the other check still runs.
    """

    def __init__(self, relay: RelayService, history: TransferHistory):
        self.relay = relay
        self.history = history
        self.logger = logger.bind(service="status_reconciler")

    async def check_queued(self, safe_address: str, records: Sequence[PayoutRecord]) -> CheckResult:
        expected = expected_recipients(records)
        if not expected:
            return CheckResult(CheckOutcome.ABSENT)

        try:
            pending = await self.relay.list_pending(safe_address)
        except PayoutsException as e:
            error = ReconciliationUnavailableError(
                f"Pending queue unavailable: {e.message}",
                {"safe": safe_address, "cause": e.code}
            )
            self.logger.warning("Queued check unavailable", safe=safe_address, error=error.message)
            return CheckResult(CheckOutcome.UNKNOWN, error.message)

        for tx in pending:
            recipients = sorted({EvmValidator.checksum(r) for r in tx.recipients})
            if recipients == expected:
                self.logger.info("Matching pending transaction", safe=safe_address, nonce=tx.nonce)
                return CheckResult(CheckOutcome.CONFIRMED)
        return CheckResult(CheckOutcome.ABSENT)

    async def check_executed(self, safe_address: str, records: Sequence[PayoutRecord]) -> CheckResult:
        by_token: Dict[str, Tuple[TokenSettings, Set[Tuple[str, int]]]] = {}
        for record in records:
            value = to_base_units(record.amount, record.token.decimals)
            if value <= 0:
                continue
            _token, expected = by_token.setdefault(record.token.address, (record.token, set()))
            expected.add((record.address.lower(), value))

        for token, expected in by_token.values():
            try:
                transfers = await self.history.list_transfers(token.address, safe_address)
            except PayoutsException as e:
                error = ReconciliationUnavailableError(
                    f"Transfer history unavailable: {e.message}",
                    {"safe": safe_address, "token": token.address, "cause": e.code}
                )
                self.logger.warning("Executed check unavailable", safe=safe_address, error=error.message)
                return CheckResult(CheckOutcome.UNKNOWN, error.message)

            for transfer in transfers:
                if (transfer.recipient.lower(), int(transfer.value)) in expected:
                    self.logger.info(
                        "Matching historical transfer",
                        safe=safe_address,
                        token=token.symbol,
                        tx_hash=transfer.tx_hash
                    )
                    return CheckResult(CheckOutcome.CONFIRMED)

        return CheckResult(CheckOutcome.ABSENT)

    async def reconcile(self, safe_address: str, records: Sequence[PayoutRecord]) -> ReconciliationResult:
        queued = await self.check_queued(safe_address, records)
        executed = await self.check_executed(safe_address, records)

        if executed.confirmed:
            status = PaymentStatus.EXECUTED
        elif queued.confirmed:
            status = PaymentStatus.QUEUED
        else:
            status = PaymentStatus.NONE

        result = ReconciliationResult(status=status, queued_check=queued, executed_check=executed)
        self.logger.info(
            "Payment status reconciled",
            safe=safe_address,
            status=status.value,
            authoritative=result.authoritative
        )
        return result
