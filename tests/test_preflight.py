"""
Test balance preflight.
"""

from decimal import Decimal

import pytest

from payouts.core.config import MAINNET, TokenSettings
from payouts.core.exceptions import InsufficientFundsError
from payouts.models import PayoutRecord
from payouts.services.payouts import BalancePreflightChecker

from conftest import ALICE, BOB, PARTNERS_SAFE, SNX_L1, SUSD_L1, FakeChainReader


SNX = TokenSettings(chain=MAINNET, address=SNX_L1, symbol="SNX")
SUSD = TokenSettings(chain=MAINNET, address=SUSD_L1, symbol="sUSD")


def record(address, amount, token=SNX):
    return PayoutRecord(
        recipient_id=address, address=address, amount=Decimal(str(amount)), token=token, chain=MAINNET
    )


@pytest.mark.asyncio
async def test_insufficient_balance_fails():
    reader = FakeChainReader()
    reader.set_balance(SNX_L1, PARTNERS_SAFE, 1000)
    checker = BalancePreflightChecker(reader)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await checker.check([record(ALICE, 1000), record(BOB, 500)], PARTNERS_SAFE, SNX)

    assert exc_info.value.code == "INSUFFICIENT_FUNDS"
    assert exc_info.value.details["required"] == "1500"
    assert exc_info.value.details["available"] == "1000"


@pytest.mark.asyncio
async def test_sufficient_balance_returns_total():
    reader = FakeChainReader()
    reader.set_balance(SNX_L1, PARTNERS_SAFE, 1500)

    total = await BalancePreflightChecker(reader).check(
        [record(ALICE, 1000), record(BOB, 500)], PARTNERS_SAFE, SNX
    )

    assert total == Decimal("1500")


@pytest.mark.asyncio
async def test_balance_truncated_to_whole_tokens():
    reader = FakeChainReader()
    reader.set_balance(SNX_L1, PARTNERS_SAFE, "1500.9")
    checker = BalancePreflightChecker(reader)

    await checker.check([record(ALICE, 1500)], PARTNERS_SAFE, SNX)
    with pytest.raises(InsufficientFundsError):
        await checker.check([record(ALICE, "1500.5")], PARTNERS_SAFE, SNX)


@pytest.mark.asyncio
async def test_only_records_in_token_and_positive_amounts_count():
    reader = FakeChainReader()
    reader.set_balance(SNX_L1, PARTNERS_SAFE, 100)

    total = await BalancePreflightChecker(reader).check(
        [record(ALICE, 100), record(BOB, -50), record(BOB, 900, SUSD)], PARTNERS_SAFE, SNX
    )

    assert total == Decimal("100")


@pytest.mark.asyncio
async def test_check_all_covers_each_token():
    reader = FakeChainReader()
    reader.set_balance(SNX_L1, PARTNERS_SAFE, 100)
    reader.set_balance(SUSD_L1, PARTNERS_SAFE, 10)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await BalancePreflightChecker(reader).check_all(
            [record(ALICE, 100), record(ALICE, 20, SUSD)], PARTNERS_SAFE
        )

    assert exc_info.value.details["token"] == "sUSD"


@pytest.mark.asyncio
async def test_nothing_to_pay_skips_balance_read():
    reader = FakeChainReader()

    total = await BalancePreflightChecker(reader).check([record(ALICE, 0)], PARTNERS_SAFE, SNX)

    assert total == 0
    assert reader.calls == []
