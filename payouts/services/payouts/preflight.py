"""
Balance preflight before any transfer is built.
"""

from decimal import Decimal
from typing import Dict, Sequence

import structlog

from payouts.core.config import TokenSettings
from payouts.core.exceptions import InsufficientFundsError
from payouts.models import PayoutRecord
from payouts.utils.validation import whole_units
from .interfaces import ChainDataReader


logger = structlog.get_logger(__name__)


class BalancePreflightChecker:
    """Checks that a paying account holds enough of a token for a payout set."""

    def __init__(self, chain_reader: ChainDataReader):
        self.chain_reader = chain_reader
        self.logger = logger.bind(service="balance_preflight")

    async def check(self, records: Sequence[PayoutRecord], account: str, token: TokenSettings) -> Decimal:
        """
        Compare the payable total in `token` against the account balance.

        The balance is truncated to whole tokens before comparing; payout
        amounts in this domain are whole numbers.

        Returns:
            The total required

        Raises:
            InsufficientFundsError: If the total exceeds the balance
        """
        total = sum(
            (r.amount for r in records if r.token.address == token.address and r.amount > 0),
            Decimal(0)
        )
        if total == 0:
            return total

        raw_balance = await self.chain_reader.balance_of(token.chain, token.address, account)
        balance = whole_units(raw_balance, token.decimals)

        self.logger.info(
            "Balance preflight",
            account=account,
            token=token.symbol,
            required=str(total),
            available=balance
        )

        if total > balance:
            raise InsufficientFundsError(total, balance, token.symbol)
        return total

    async def check_all(self, records: Sequence[PayoutRecord], account: str) -> Dict[str, Decimal]:
        """Run the check for every token present in the records."""
        tokens: Dict[str, TokenSettings] = {}
        for record in records:
            tokens.setdefault(record.token.address, record.token)

        return {
            token.symbol: await self.check(records, account, token)
            for token in tokens.values()
        }
