"""
Transfer call encoding.
"""

from typing import Sequence

import structlog
from eth_abi import encode
from eth_utils import encode_hex

from payouts.core.exceptions import ValidationError
from payouts.models import PayoutBatch, PayoutRecord, TransferCall
from payouts.services.safe_relay import TRANSFER_SELECTOR
from payouts.utils.validation import EvmValidator, to_base_units


logger = structlog.get_logger(__name__)


def encode_transfer(recipient: str, amount: int) -> str:
    """Calldata for ERC-20 `transfer(recipient, amount)`."""
    return encode_hex(TRANSFER_SELECTOR + encode(["address", "uint256"], [recipient, int(amount)]))


class BatchTransactionBuilder:
    """Maps payout records to ordered ERC-20 transfer calls."""

    def __init__(self):
        self.logger = logger.bind(service="batch_builder")

    def build(self, records: Sequence[PayoutRecord], chain: str) -> PayoutBatch:
        """
        Encode every record with a positive amount, in record order.

        Raises:
            ValidationError: If a record targets another chain or an invalid address
        """
        calls = []
        dropped = 0

        for record in records:
            if record.chain != chain:
                raise ValidationError(
                    f"Record for {record.recipient_id} is on {record.chain}, batch is on {chain}",
                    {"recipient": record.recipient_id, "chain": record.chain}
                )

            amount = to_base_units(record.amount, record.token.decimals)
            if amount <= 0:
                dropped += 1
                continue

            recipient = EvmValidator.checksum(record.address)
            calls.append(TransferCall(
                token_contract=EvmValidator.checksum(record.token.address),
                recipient_address=recipient,
                amount=amount,
                chain=chain,
                data=encode_transfer(recipient, amount),
            ))

        self.logger.info("Batch built", chain=chain, calls=len(calls), dropped=dropped)
        return PayoutBatch(chain=chain, calls=tuple(calls))
