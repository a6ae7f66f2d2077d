"""
Safe multisig transaction relay.

Provides:
- A REST client for the Safe transaction service (nonce, pending queue, proposals)
- A batch session that skips calls already pending in the queue and proposes
  the rest as MultiSend transactions signed by the operator
- Helpers to decode MultiSend payloads and transfer recipients
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp
import structlog
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_abi.packed import encode_packed
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, keccak

from payouts.core.config import ChainSettings
from payouts.core.exceptions import ExternalServiceError, PayoutsException, SubmissionFailedError
from payouts.utils.validation import EvmValidator, ZERO_ADDRESS


logger = structlog.get_logger(__name__)


CALL = 0
DELEGATE_CALL = 1

MULTISEND_SELECTOR = function_signature_to_4byte_selector("multiSend(bytes)")
TRANSFER_SELECTOR = function_signature_to_4byte_selector("transfer(address,uint256)")

DOMAIN_SEPARATOR_TYPEHASH = keccak(text="EIP712Domain(uint256 chainId,address verifyingContract)")
SAFE_TX_TYPEHASH = keccak(
    text=(
        "SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,"
        "uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)"
    )
)


@dataclass(frozen=True)
class SafeCall:
    """A single call executed by the Safe."""
    to: str
    data: str
    value: int = 0

    @property
    def key(self) -> Tuple[str, str]:
        """Identity used for duplicate detection: destination and payload."""
        return self.to.lower(), (self.data or "0x").lower()


@dataclass(frozen=True)
class SafeTransaction:
    """A multisig transaction as hashed and proposed."""
    to: str
    data: str
    nonce: int
    operation: int = CALL
    value: int = 0
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS


@dataclass(frozen=True)
class PendingTransaction:
    """A queued, not yet executed, Safe transaction."""
    safe_tx_hash: str
    nonce: int
    recipients: List[str] = field(default_factory=list)
    calls: List[SafeCall] = field(default_factory=list)


@dataclass
class SubmitResult:
    """Calls newly proposed by a session submit."""
    transactions: List[SafeCall] = field(default_factory=list)
    safe_tx_hashes: List[str] = field(default_factory=list)


def encode_multisend(calls: Sequence[SafeCall]) -> str:
    """Encode calls as `multiSend(bytes)` calldata."""
    packed = b"".join(
        encode_packed(
            ["uint8", "address", "uint256", "uint256", "bytes"],
            [CALL, call.to, call.value, len(decode_hex(call.data)), decode_hex(call.data)],
        )
        for call in calls
    )
    return encode_hex(MULTISEND_SELECTOR + encode(["bytes"], [packed]))


def decode_multisend(data: str) -> List[SafeCall]:
    """Decode `multiSend(bytes)` calldata back into its calls."""
    raw = decode_hex(data)
    if raw[:4] != MULTISEND_SELECTOR:
        raise ValueError("Not a multiSend payload")

    (packed,) = decode(["bytes"], raw[4:])
    calls = []
    offset = 0
    while offset < len(packed):
        # operation(1) to(20) value(32) dataLength(32) data(dataLength)
        to = encode_hex(packed[offset + 1:offset + 21])
        value = int.from_bytes(packed[offset + 21:offset + 53], "big")
        length = int.from_bytes(packed[offset + 53:offset + 85], "big")
        payload = packed[offset + 85:offset + 85 + length]
        calls.append(SafeCall(to=EvmValidator.checksum(to), data=encode_hex(payload), value=value))
        offset += 85 + length
    return calls


def decode_transfer_recipient(data: str) -> Optional[str]:
    """Recipient of an ERC-20 `transfer` calldata, or None for other calls."""
    raw = decode_hex(data or "0x")
    if raw[:4] != TRANSFER_SELECTOR:
        return None
    recipient, _amount = decode(["address", "uint256"], raw[4:])
    return EvmValidator.checksum(recipient)


def pending_calls(tx: Dict[str, Any]) -> List[SafeCall]:
    """Calls carried by a pending transaction, unpacking MultiSend batches."""
    decoded = tx.get("dataDecoded") or {}
    if decoded.get("method") == "multiSend":
        parameters = decoded.get("parameters") or []
        nested = parameters[0].get("valueDecoded") if parameters else None
        if nested:
            return [SafeCall(to=v["to"], data=v.get("data") or "0x", value=int(v.get("value") or 0)) for v in nested]

    data = tx.get("data") or "0x"
    if decode_hex(data)[:4] == MULTISEND_SELECTOR:
        return decode_multisend(data)
    return [SafeCall(to=tx["to"], data=data, value=int(tx.get("value") or 0))]


def decode_pending_recipients(tx: Dict[str, Any]) -> List[str]:
    """Transfer recipients of a pending transaction, using the service's decoding when present."""
    decoded = tx.get("dataDecoded") or {}
    if decoded.get("method") == "multiSend":
        parameters = decoded.get("parameters") or []
        nested = parameters[0].get("valueDecoded") if parameters else None
        if nested and all(v.get("dataDecoded") for v in nested):
            return [
                EvmValidator.checksum(v["dataDecoded"]["parameters"][0]["value"])
                for v in nested
            ]

    recipients = []
    for call in pending_calls(tx):
        recipient = decode_transfer_recipient(call.data)
        if recipient:
            recipients.append(recipient)
    return recipients


def safe_tx_hash(chain_id: int, safe_address: str, tx: SafeTransaction) -> bytes:
    """EIP-712 hash of a Safe transaction, as signed by owners."""
    domain_separator = keccak(encode(
        ["bytes32", "uint256", "address"],
        [DOMAIN_SEPARATOR_TYPEHASH, chain_id, safe_address],
    ))
    struct_hash = keccak(encode(
        ["bytes32", "address", "uint256", "bytes32", "uint8", "uint256",
         "uint256", "uint256", "address", "address", "uint256"],
        [
            SAFE_TX_TYPEHASH, tx.to, tx.value, keccak(decode_hex(tx.data)), tx.operation,
            tx.safe_tx_gas, tx.base_gas, tx.gas_price, tx.gas_token, tx.refund_receiver, tx.nonce,
        ],
    ))
    return keccak(b"\x19\x01" + domain_separator + struct_hash)


class SafeTransactionServiceClient:
    """REST client for a Safe transaction service instance."""

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: int = 30
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(service="safe_transaction_service", url=self.base_url)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        session = await self._get_session()
        try:
            async with session.request(method, url, timeout=self.timeout, **kwargs) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise ExternalServiceError(
                        f"Safe transaction service returned HTTP {response.status}",
                        {"url": url, "status": response.status, "body": body[:500]}
                    )
                text = await response.text()
                return json.loads(text) if text else None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("Safe transaction service request failed", url=url, error=str(e))
            raise ExternalServiceError(f"Safe transaction service unreachable: {e}", {"url": url})

    async def get_safe_nonce(self, safe_address: str) -> int:
        info = await self._request("GET", f"{self.base_url}/api/v1/safes/{safe_address}/")
        return int(info["nonce"])

    async def get_pending_transactions(self, safe_address: str, min_nonce: int) -> List[Dict[str, Any]]:
        """Get unexecuted multisig transactions with nonce >= `min_nonce`."""
        url = f"{self.base_url}/api/v1/safes/{safe_address}/multisig-transactions/"
        params = {"executed": "false", "nonce__gte": str(min_nonce), "limit": "100"}
        results: List[Dict[str, Any]] = []

        while url:
            page = await self._request("GET", url, params=params)
            results.extend(page.get("results") or [])
            url = page.get("next")
            params = None  # `next` already carries the query string

        return results

    async def propose_transaction(self, safe_address: str, payload: Dict[str, Any]) -> None:
        await self._request(
            "POST",
            f"{self.base_url}/api/v1/safes/{safe_address}/multisig-transactions/",
            json=payload,
        )


class SafeBatchSession:
    """
    Accumulates transfer calls for one Safe and proposes them in batches.

    Calls whose destination and payload are already pending in the Safe's
    queue are skipped unless `force` is set. Identical calls appended in the
    same session are all kept.
    """

    def __init__(
        self,
        service: SafeTransactionServiceClient,
        safe_address: str,
        signer,
        chain_settings: ChainSettings,
        chunk_size: int = 50,
        origin: str = ""
    ):
        self.service = service
        self.safe_address = EvmValidator.checksum(safe_address)
        self.signer = signer
        self.chain_settings = chain_settings
        self.chunk_size = chunk_size
        self.origin = origin
        self.transactions: List[SafeCall] = []
        self.submitted: List[SafeCall] = []
        self.safe_tx_hashes: List[str] = []
        self._pending_keys = set()
        self._next_nonce: Optional[int] = None
        self.logger = logger.bind(service="safe_batch_session", safe=self.safe_address)

    async def init(self) -> "SafeBatchSession":
        """Load the Safe nonce and the calls already waiting in its queue."""
        nonce = await self.service.get_safe_nonce(self.safe_address)
        pending = await self.service.get_pending_transactions(self.safe_address, nonce)

        self._pending_keys = set()
        for tx in pending:
            try:
                self._pending_keys.update(call.key for call in pending_calls(tx))
            except (ValueError, KeyError, IndexError, DecodingError, PayoutsException) as e:
                self.logger.debug("Could not decode pending transaction", nonce=tx.get("nonce"), error=str(e))
        pending_nonces = [int(tx["nonce"]) for tx in pending]
        self._next_nonce = max([nonce] + [n + 1 for n in pending_nonces])

        self.logger.info(
            "Safe batch session initialized",
            nonce=nonce,
            next_nonce=self._next_nonce,
            pending_transactions=len(pending),
            pending_calls=len(self._pending_keys)
        )
        return self

    async def append_transaction(self, to: str, data: str, value: int = 0, force: bool = False) -> bool:
        """
        Add a call to the batch.

        Returns:
            False when the call was skipped as a duplicate
        """
        call = SafeCall(to=EvmValidator.checksum(to), data=data, value=value)
        if not force and call.key in self._pending_keys:
            self.logger.info("Skipping call already pending in Safe queue", to=call.to)
            return False
        self.transactions.append(call)
        return True

    def _build_transaction(self, calls: Sequence[SafeCall], nonce: int) -> SafeTransaction:
        if len(calls) == 1:
            call = calls[0]
            return SafeTransaction(to=call.to, data=call.data, value=call.value, nonce=nonce)
        return SafeTransaction(
            to=EvmValidator.checksum(self.chain_settings.multisend_address),
            data=encode_multisend(calls),
            operation=DELEGATE_CALL,
            nonce=nonce,
        )

    async def submit(self) -> SubmitResult:
        """
        Sign and propose every appended call, one Safe transaction per chunk.

        Chunks proposed before a failure stay queued and are listed in
        `self.submitted`; the error is re-raised.
        """
        if self._next_nonce is None:
            raise SubmissionFailedError("Safe batch session used before init()")

        # Chunks are proposed in append order, so `submitted` is a prefix of `transactions`
        remaining = self.transactions[len(self.submitted):]
        for start in range(0, len(remaining), self.chunk_size):
            chunk = remaining[start:start + self.chunk_size]
            tx = self._build_transaction(chunk, self._next_nonce)
            tx_hash = safe_tx_hash(self.chain_settings.chain_id, self.safe_address, tx)
            signature = self.signer.sign_hash(tx_hash)

            payload = {
                "to": tx.to,
                "value": str(tx.value),
                "data": tx.data,
                "operation": tx.operation,
                "safeTxGas": str(tx.safe_tx_gas),
                "baseGas": str(tx.base_gas),
                "gasPrice": str(tx.gas_price),
                "gasToken": tx.gas_token,
                "refundReceiver": tx.refund_receiver,
                "nonce": tx.nonce,
                "contractTransactionHash": encode_hex(tx_hash),
                "sender": EvmValidator.checksum(self.signer.address),
                "signature": encode_hex(signature),
                "origin": self.origin,
            }
            await self.service.propose_transaction(self.safe_address, payload)

            self.submitted.extend(chunk)
            self.safe_tx_hashes.append(encode_hex(tx_hash))
            self._pending_keys.update(call.key for call in chunk)
            self._next_nonce += 1
            self.logger.info(
                "Proposed Safe transaction",
                nonce=tx.nonce,
                calls=len(chunk),
                safe_tx_hash=encode_hex(tx_hash)
            )

        return SubmitResult(transactions=list(self.submitted), safe_tx_hashes=list(self.safe_tx_hashes))


class SafeRelay:
    """Relay/queue service for one chain backed by the Safe transaction service."""

    def __init__(
        self,
        chain_settings: ChainSettings,
        service: SafeTransactionServiceClient,
        chunk_size: int = 50,
        origin: str = ""
    ):
        self.chain_settings = chain_settings
        self.service = service
        self.chunk_size = chunk_size
        self.origin = origin
        self.logger = logger.bind(service="safe_relay", chain_id=chain_settings.chain_id)

    async def init(self, account: str, signer) -> SafeBatchSession:
        session = SafeBatchSession(
            self.service,
            account,
            signer,
            self.chain_settings,
            chunk_size=self.chunk_size,
            origin=self.origin,
        )
        return await session.init()

    async def list_pending(self, account: str) -> List[PendingTransaction]:
        """Pending transactions of a Safe with their decoded transfer recipients."""
        safe = EvmValidator.checksum(account)
        nonce = await self.service.get_safe_nonce(safe)
        pending = []
        for tx in await self.service.get_pending_transactions(safe, nonce):
            try:
                recipients = decode_pending_recipients(tx)
                calls = pending_calls(tx)
            except (ValueError, KeyError, IndexError, DecodingError, PayoutsException) as e:
                # Unrelated transactions in the queue may not decode
                self.logger.debug("Could not decode pending transaction", error=str(e))
                recipients, calls = [], []
            pending.append(PendingTransaction(
                safe_tx_hash=tx.get("safeTxHash", ""),
                nonce=int(tx["nonce"]),
                recipients=recipients,
                calls=calls,
            ))
        return pending

    async def close(self):
        await self.service.close()
