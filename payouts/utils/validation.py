"""
EVM address and token amount helpers.
Provides address checksumming and fixed-point conversions shared by the
preflight check, the batch builder and reconciliation.
"""

from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Any, Union

from eth_utils import is_address, to_checksum_address

from payouts.core.exceptions import ValidationError


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class EvmValidator:
    """Validator for EVM addresses."""

    @staticmethod
    def is_valid_address(address: Any) -> bool:
        """
        Validate if a value is a well-formed EVM address.

        Args:
            address: Value to validate

        Returns:
            True if valid, False otherwise
        """
        try:
            return bool(address) and is_address(address)
        except (TypeError, ValueError):
            return False

    @staticmethod
    def checksum(address: str) -> str:
        """
        Normalise an address to its EIP-55 checksum form.

        Raises:
            ValidationError: If the address is malformed
        """
        if not EvmValidator.is_valid_address(address):
            raise ValidationError(f"Invalid address: {address}", {"address": address})
        return to_checksum_address(address)

    @staticmethod
    def is_zero_address(address: Any) -> bool:
        if not address:
            return True
        return str(address).lower() == ZERO_ADDRESS


def to_base_units(amount: Union[Decimal, int, str], decimals: int = 18) -> int:
    """
    Convert a token amount to integer base units (wei for 18 decimals).

    Precision beyond the token's decimals cannot be transferred and is
    truncated; nothing else is rounded.
    """
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    # uint256 needs up to 78 significant digits
    with localcontext() as ctx:
        ctx.prec = 78
        quantum = Decimal(1).scaleb(-decimals)
        return int(value.quantize(quantum, rounding=ROUND_DOWN).scaleb(decimals))


def whole_units(base_units: int, decimals: int = 18) -> int:
    """Convert base units to whole tokens, dropping the fractional part."""
    return int(base_units) // (10 ** decimals)
