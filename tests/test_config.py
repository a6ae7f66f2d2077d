"""
Test settings loading and validation.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from payouts.core.config import MAINNET, OPTIMISM, Settings
from payouts.core.exceptions import ConfigurationError
from payouts.utils.validation import to_base_units, whole_units


def test_defaults_cover_both_chains():
    settings = Settings()

    assert settings.chain(MAINNET).chain_id == 1
    assert settings.chain(OPTIMISM).chain_id == 10
    assert settings.snx_token(OPTIMISM) == settings.snx_token_l2


def test_unknown_chain_is_configuration_error():
    with pytest.raises(ConfigurationError) as exc_info:
        Settings().chain("arbitrum")

    assert exc_info.value.code == "CONFIGURATION_ERROR"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PARTNERS_TOTAL_DISTRIBUTION", "2500")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("PARTNER_ADDRESSES_L2", '{"KWENTA": "0x0000000000000000000000000000000000000001"}')

    settings = Settings()

    assert settings.partners_total_distribution == Decimal("2500")
    assert settings.log_level == "DEBUG"
    assert list(settings.partner_addresses_l2) == ["KWENTA"]


def test_invalid_environment_rejected():
    with pytest.raises(PydanticValidationError):
        Settings(environment="prod")


def test_seat_bound_must_be_positive():
    with pytest.raises(PydanticValidationError):
        Settings(max_council_seats=0)


def test_base_unit_conversions():
    assert to_base_units(Decimal("1.5")) == 1_500_000_000_000_000_000
    assert to_base_units("0.1234567", decimals=6) == 123456
    assert whole_units(1_999_999_999_999_999_999) == 1


def test_councils_read_from_json_environment(monkeypatch):
    monkeypatch.setenv("COUNCILS", (
        '[{"name": "Spartan Council", "nft_address": "0x0000000000000000000000000000000000000005", "stipend": "1000"},'
        ' {"name": "Grants Council", "nft_address": "0x0000000000000000000000000000000000000006", "stipend": "500"}]'
    ))

    councils = Settings().councils

    assert [c.name for c in councils] == ["Spartan Council", "Grants Council"]
    assert [c.stipend for c in councils] == [Decimal("1000"), Decimal("500")]
    assert all(c.chain == OPTIMISM for c in councils)


def test_explorer_links():
    chain = Settings().chain(OPTIMISM)

    assert chain.block_url(118240000) == "https://optimistic.etherscan.io/block/118240000"
    assert chain.address_url("0xabc") == "https://optimistic.etherscan.io/address/0xabc"


def test_app_version_follows_package():
    from payouts import __version__

    assert Settings().app_version == __version__
