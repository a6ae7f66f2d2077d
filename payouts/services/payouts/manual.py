"""
Free-form manual payout entries.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List

from payouts.core.exceptions import ValidationError
from payouts.utils.validation import EvmValidator


@dataclass(frozen=True)
class ManualEntry:
    """One `address,snx,susd` row."""
    address: str
    snx: Decimal = Decimal(0)
    susd: Decimal = Decimal(0)


def _parse_amount(raw: str) -> Decimal:
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return Decimal(0)
    return value if value.is_finite() else Decimal(0)


def parse_manual_entries(text: str) -> List[ManualEntry]:
    """
    Parse CSV rows of `address,snx,susd`.

    Rows without an address are skipped; missing or unparsable amounts
    are 0.

    Raises:
        ValidationError: If a row's address is not a valid EVM address
    """
    entries = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        columns = line.split(",")
        address = columns[0].strip()
        if not address:
            continue

        if not EvmValidator.is_valid_address(address):
            raise ValidationError(
                f"Invalid address on line {line_number}: {address}",
                {"line": line_number, "address": address}
            )

        entries.append(ManualEntry(
            address=EvmValidator.checksum(address),
            snx=_parse_amount(columns[1]) if len(columns) > 1 else Decimal(0),
            susd=_parse_amount(columns[2]) if len(columns) > 2 else Decimal(0),
        ))
    return entries
