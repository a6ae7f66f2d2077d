"""
Token transfer history from an Etherscan-compatible explorer API.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

import aiohttp
import structlog

from payouts.core.config import ChainSettings
from payouts.core.exceptions import ExternalServiceError


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TokenTransfer:
    """A historical ERC-20 transfer."""
    recipient: str
    value: int
    sender: str = ""
    tx_hash: str = ""
    block_number: int = 0


class EtherscanClient:
    """Reads `tokentx` history for an account on one chain."""

    def __init__(
        self,
        chain_settings: ChainSettings,
        api_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: int = 30
    ):
        self.chain_settings = chain_settings
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(service="etherscan_client", chain_id=chain_settings.chain_id)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def list_transfers(self, token_contract: str, account: str) -> List[TokenTransfer]:
        """
        Get the most recent token transfers involving `account`.

        Raises:
            ExternalServiceError: If the explorer cannot be queried
        """
        params = {
            "chainid": str(self.chain_settings.chain_id),
            "module": "account",
            "action": "tokentx",
            "contractaddress": token_contract,
            "address": account,
            "page": "1",
            "offset": "10000",
            "sort": "desc",
        }
        if self.api_key:
            params["apikey"] = self.api_key

        session = await self._get_session()
        try:
            async with session.get(
                self.chain_settings.history_api_url, params=params, timeout=self.timeout
            ) as response:
                if response.status != 200:
                    raise ExternalServiceError(
                        f"Transfer history API returned HTTP {response.status}",
                        {"status": response.status}
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("Transfer history request failed", error=str(e))
            raise ExternalServiceError(f"Transfer history request failed: {e}")

        result = data.get("result")
        if str(data.get("status")) != "1":
            # An account without transfers is reported as a failed status
            if isinstance(result, list) and not result:
                return []
            raise ExternalServiceError(
                f"Transfer history API error: {data.get('message')}",
                {"result": result if isinstance(result, str) else None}
            )

        transfers = [
            TokenTransfer(
                recipient=row["to"],
                value=int(row["value"]),
                sender=row.get("from", ""),
                tx_hash=row.get("hash", ""),
                block_number=int(row.get("blockNumber") or 0),
            )
            for row in result
        ]
        self.logger.debug("Fetched transfer history", account=account, transfers=len(transfers))
        return transfers
