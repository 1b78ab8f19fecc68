"""Reliable transaction submission with RPC failover and confirmation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import random
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import aiohttp
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Processed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from realms_multisig.config import MultisigConfig
from realms_multisig.constants import PACKET_DATA_SIZE
from realms_multisig.errors import ConfigurationError, RpcRequestError, TransactionTooLargeError
from realms_multisig.logging_config import short_key

logger = logging.getLogger(__name__)

# Circuit breaker settings
CIRCUIT_BREAKER_FAILURE_THRESHOLD = 3  # failures before marking endpoint as unhealthy
CIRCUIT_BREAKER_RECOVERY_SECONDS = 60  # seconds before retrying a failed endpoint
RPC_HEALTH_CACHE_SECONDS = 10  # cache health check results for this long

MAX_BLOCKHASH_REFRESHES = 2

_endpoint_failures: Dict[str, int] = {}
_endpoint_last_failure: Dict[str, float] = {}
_endpoint_health_cache: Dict[str, Tuple[bool, float]] = {}


def _backoff_delay(base: float, attempt: int, max_delay: float = 30.0) -> float:
    """Exponential backoff with jitter to prevent thundering herd."""
    delay = min(max_delay, base * (2 ** attempt))
    jitter = delay * 0.1 * random.random()
    return delay + jitter


def _mark_endpoint_failure(endpoint_url: str) -> None:
    _endpoint_failures[endpoint_url] = _endpoint_failures.get(endpoint_url, 0) + 1
    _endpoint_last_failure[endpoint_url] = time.time()
    logger.warning(f"RPC endpoint failure #{_endpoint_failures[endpoint_url]}: {endpoint_url}")


def _mark_endpoint_success(endpoint_url: str) -> None:
    _endpoint_failures[endpoint_url] = 0


def _is_endpoint_available(endpoint_url: str) -> bool:
    """Check if endpoint is available (not circuit-broken)."""
    failures = _endpoint_failures.get(endpoint_url, 0)
    if failures < CIRCUIT_BREAKER_FAILURE_THRESHOLD:
        return True
    last_failure = _endpoint_last_failure.get(endpoint_url, 0)
    if time.time() - last_failure > CIRCUIT_BREAKER_RECOVERY_SECONDS:
        logger.info(f"RPC endpoint recovery attempt: {endpoint_url}")
        return True
    return False


def reset_circuit_breakers() -> None:
    """Reset all circuit breakers - useful for testing or manual recovery."""
    _endpoint_failures.clear()
    _endpoint_last_failure.clear()
    _endpoint_health_cache.clear()
    logger.info("All RPC circuit breakers reset")


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def rpc_request(description: str) -> Iterator[None]:
    """Re-raise node and transport failures of a read as ``RpcRequestError``."""
    try:
        yield
    except (RPCException, SolanaRpcException, asyncio.TimeoutError) as exc:
        logger.warning(f"RPC {description} failed: {exc}")
        raise RpcRequestError(f"RPC {description} failed: {exc}", {"request": description}) from exc


def _is_blockhash_expired(error: Optional[str]) -> bool:
    if not error:
        return False
    lower = error.lower()
    return "blockhash" in lower or "blockhashnotfound" in lower or "blockhash not found" in lower


def describe_simulation_error(error: Optional[str]) -> Optional[str]:
    """Return a short, human-readable hint for common Solana simulation errors."""
    if not error:
        return None

    lower = error.lower()
    if "alreadyprocessed" in lower:
        return "Transaction already processed; likely duplicate or replayed."
    if "blockhash" in lower:
        return "Blockhash expired; rebuild and re-sign the transaction."
    if "accountinuse" in lower:
        return "Account in use; retry with backoff."
    if "insufficientfunds" in lower:
        return "Insufficient funds for fee, rent or transfer."
    if "accountalreadyinitialized" in lower or "already in use" in lower:
        return "Account already exists; the realm, record or vote was created before."
    if "invalidaccountdata" in lower:
        return "Invalid account data; verify mint/account ownership."
    if "uninitializedaccount" in lower:
        return "Account not initialized; create the associated token account first."
    if "signatureverificationfailed" in lower or "missingrequiredsignature" in lower:
        return "Signature verification failed; ensure every required signer signed."

    match = re.search(r"InstructionErrorCustom\((\d+)\)|custom program error: (0x[0-9a-fA-F]+)", error)
    if match:
        code = match.group(1) or str(int(match.group(2), 16))
        return f"Custom program error {code}; a governance or token program constraint failed."
    return None


def classify_simulation_error(error: Optional[str]) -> str:
    """Classify simulation errors to reduce noisy retries."""
    if not error:
        return "unknown"

    lower = error.lower()
    if "alreadyprocessed" in lower:
        return "permanent"
    if "insufficientfunds" in lower:
        return "permanent"
    if "invalidaccountdata" in lower or "uninitializedaccount" in lower:
        return "permanent"
    if "signatureverificationfailed" in lower or "missingrequiredsignature" in lower:
        return "permanent"
    # Program errors carry arbitrary codes, so match them before the HTTP status checks
    if "instructionerror" in lower or "custom program error" in lower:
        return "permanent"
    if "blockhash" in lower:
        return "retryable"
    if "accountinuse" in lower:
        return "retryable"
    if "timeout" in lower or "timed out" in lower:
        return "retryable"
    if "connection" in lower or "network" in lower:
        return "retryable"
    if "rate limit" in lower or "429" in lower or "503" in lower:
        return "retryable"
    return "unknown"


def is_retryable_error(error: Optional[str]) -> bool:
    return classify_simulation_error(error) == "retryable"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@dataclass
class RpcEndpoint:
    name: str
    url: str
    timeout_ms: int = 30000
    rate_limit: int = 100  # requests per second (approximate)


def _substitute_env(value: str) -> Optional[str]:
    if "${" not in value:
        return value
    start = value.find("${")
    end = value.find("}", start + 2)
    if start == -1 or end == -1:
        return value
    env_name = value[start + 2 : end]
    env_value = os.environ.get(env_name)
    if not env_value:
        return None
    return value.replace(f"${{{env_name}}}", env_value)


def load_rpc_endpoints(config: MultisigConfig) -> List[RpcEndpoint]:
    """Primary endpoint first, then fallbacks; unresolved ${VAR} URLs are skipped."""
    endpoints: List[RpcEndpoint] = []
    primary = _substitute_env(config.rpc_url)
    if primary:
        endpoints.append(RpcEndpoint(name="primary", url=primary, timeout_ms=config.rpc_timeout_ms))
    else:
        logger.warning(f"Primary RPC URL references an unset variable: {config.rpc_url}")

    for idx, raw in enumerate(config.rpc_fallback_urls):
        url = _substitute_env(raw)
        if not url:
            logger.warning(f"Skipping fallback RPC with unset variable: {raw}")
            continue
        endpoints.append(RpcEndpoint(name=f"fallback_{idx + 1}", url=url, timeout_ms=config.rpc_timeout_ms))

    logger.debug(f"Loaded {len(endpoints)} Solana RPC endpoints")
    return endpoints


async def _rpc_health(endpoint: RpcEndpoint) -> bool:
    """Check RPC endpoint health with caching."""
    if not _is_endpoint_available(endpoint.url):
        logger.debug(f"Endpoint {endpoint.name} is circuit-broken")
        return False

    cached = _endpoint_health_cache.get(endpoint.url)
    if cached:
        is_healthy, cache_time = cached
        if time.time() - cache_time < RPC_HEALTH_CACHE_SECONDS:
            return is_healthy

    payload = {"jsonrpc": "2.0", "id": 1, "method": "getHealth"}
    timeout = aiohttp.ClientTimeout(total=min(endpoint.timeout_ms / 1000, 5))  # Cap health check at 5s
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(endpoint.url, json=payload) as resp:
                if resp.status != 200:
                    _endpoint_health_cache[endpoint.url] = (False, time.time())
                    return False
                data = await resp.json()
                is_healthy = data.get("result") == "ok"
                _endpoint_health_cache[endpoint.url] = (is_healthy, time.time())
                if is_healthy:
                    _mark_endpoint_success(endpoint.url)
                return is_healthy
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.debug(f"Health check failed for {endpoint.name}: {e}")
        _endpoint_health_cache[endpoint.url] = (False, time.time())
        _mark_endpoint_failure(endpoint.url)
        return False


async def get_healthy_endpoints(endpoints: Iterable[RpcEndpoint]) -> List[RpcEndpoint]:
    """Healthy endpoints in configured order, checked in parallel."""
    endpoints_list = list(endpoints)

    available = [ep for ep in endpoints_list if _is_endpoint_available(ep.url)]
    if not available:
        logger.warning("All endpoints circuit-broken, allowing recovery attempt")
        available = endpoints_list

    results = await asyncio.gather(*[_rpc_health(ep) for ep in available], return_exceptions=True)

    healthy = [ep for ep, result in zip(available, results) if result is True]
    if not healthy:
        logger.warning("No healthy endpoints found, returning all available")
        return available
    return healthy


async def connect(config: MultisigConfig) -> AsyncClient:
    """Open an ``AsyncClient`` on the first healthy configured endpoint."""
    endpoints = load_rpc_endpoints(config)
    if not endpoints:
        raise ConfigurationError("No usable RPC endpoint configured")
    healthy = await get_healthy_endpoints(endpoints)
    endpoint = healthy[0]
    logger.info(f"Using RPC endpoint {endpoint.name}")
    return AsyncClient(endpoint.url, commitment=config.rpc_commitment, timeout=endpoint.timeout_ms / 1000)


# ---------------------------------------------------------------------------
# Build, send, confirm
# ---------------------------------------------------------------------------


@dataclass
class TransactionSendResult:
    success: bool
    signature: Optional[str] = None
    error: Optional[str] = None
    simulation_error: Optional[str] = None
    error_hint: Optional[str] = None  # Human-readable hint
    retryable: bool = False
    logs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_transaction(
    instructions: Sequence[Instruction],
    payer: Keypair,
    blockhash: Hash,
    signers: Sequence[Keypair] = (),
) -> VersionedTransaction:
    """Compile a v0 message and sign it with the payer plus any extra signers."""
    message = MessageV0.try_compile(payer.pubkey(), list(instructions), [], blockhash)
    keypairs: List[Keypair] = [payer]
    for signer in signers:
        if all(signer.pubkey() != kp.pubkey() for kp in keypairs):
            keypairs.append(signer)
    tx = VersionedTransaction(message, keypairs)
    size = len(bytes(tx))
    if size > PACKET_DATA_SIZE:
        raise TransactionTooLargeError(
            f"Transaction is {size} bytes, above the {PACKET_DATA_SIZE} byte packet limit",
            size=size,
            limit=PACKET_DATA_SIZE,
        )
    return tx


async def _get_blockhash(client: AsyncClient, commitment: Commitment) -> Tuple[Hash, int]:
    resp = await client.get_latest_blockhash(commitment)
    return resp.value.blockhash, resp.value.last_valid_block_height


def _reached(status: Optional[TransactionConfirmationStatus], commitment: Commitment) -> bool:
    if status is None:
        return False
    if commitment == Processed:
        return True
    if commitment == Confirmed:
        return status in (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)
    return status == TransactionConfirmationStatus.Finalized


async def _confirm_signature(
    client: AsyncClient,
    signature: Signature,
    last_valid_block_height: int,
    *,
    commitment: Commitment = Confirmed,
    timeout_seconds: float = 30,
    poll_interval: float = 0.5,
) -> Tuple[bool, Optional[str]]:
    """Poll signature status with backoff until confirmed, failed or expired."""
    start = time.monotonic()
    poll_count = 0

    while time.monotonic() - start < timeout_seconds:
        try:
            resp = await client.get_signature_statuses([signature])
            value = resp.value[0] if resp.value else None
            if value is not None:
                if value.err is not None:
                    error_str = str(value.err)
                    logger.warning(f"Transaction {short_key(signature)} failed: {error_str}")
                    return False, error_str
                if _reached(value.confirmation_status, commitment):
                    logger.info(f"Transaction {short_key(signature)} {commitment}")
                    return True, None
        except (RPCException, SolanaRpcException) as exc:
            logger.debug(f"Status check failed: {exc}")

        poll_count += 1
        wait_time = min(poll_interval * (1.2 ** min(poll_count, 10)), 2.0)
        await asyncio.sleep(wait_time)

    try:
        height = (await client.get_block_height(commitment)).value
    except (RPCException, SolanaRpcException):
        height = None
    if height is not None and height > last_valid_block_height:
        logger.warning(f"Transaction {short_key(signature)} blockhash expired before confirmation")
        return False, "BlockhashNotFound: blockhash expired before confirmation"

    logger.warning(f"Transaction {short_key(signature)} confirmation timeout after {timeout_seconds}s")
    return False, "confirmation_timeout"


async def send_and_confirm(
    client: AsyncClient,
    instructions: Sequence[Instruction],
    payer: Keypair,
    signers: Sequence[Keypair] = (),
    *,
    commitment: Commitment = Confirmed,
    simulate: bool = True,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    confirm_timeout: float = 30,
) -> TransactionSendResult:
    """
    Build, sign, submit and confirm a transaction.

    - The same signed transaction is re-sent on transient failures, so a
      retry can never land twice
    - An expired blockhash triggers a rebuild and re-sign (bounded)
    - Permanent simulation errors return immediately
    """
    last_error: Optional[str] = None
    last_simulation_error: Optional[str] = None
    logs: List[str] = []
    refresh_count = 0
    current_tx: Optional[VersionedTransaction] = None
    last_valid_block_height = 0

    for attempt in range(max_retries):
        try:
            if current_tx is None:
                blockhash, last_valid_block_height = await _get_blockhash(client, commitment)
                current_tx = build_transaction(instructions, payer, blockhash, signers)

            if simulate:
                sim = await client.simulate_transaction(current_tx, commitment=commitment)
                if sim.value is not None and sim.value.err is not None:
                    sim_error = str(sim.value.err)
                    logs = list(sim.value.logs or [])
                    last_simulation_error = sim_error
                    if classify_simulation_error(sim_error) == "permanent":
                        logger.error(f"Permanent simulation error: {sim_error}")
                        return TransactionSendResult(
                            success=False,
                            error="simulation_failed",
                            simulation_error=sim_error,
                            error_hint=describe_simulation_error(sim_error),
                            retryable=False,
                            logs=logs,
                        )
                    if _is_blockhash_expired(sim_error) and refresh_count < MAX_BLOCKHASH_REFRESHES:
                        logger.info("Blockhash expired during simulation, refreshing...")
                        refresh_count += 1
                        current_tx = None
                    last_error = sim_error
                    raise _RetryableSendError(sim_error)

            opts = TxOpts(skip_preflight=False, preflight_commitment=commitment, max_retries=3)
            send_resp = await client.send_raw_transaction(bytes(current_tx), opts=opts)
            signature = send_resp.value
            logger.info(f"Transaction sent: {short_key(signature)}")

            confirmed, confirm_err = await _confirm_signature(
                client,
                signature,
                last_valid_block_height,
                commitment=commitment,
                timeout_seconds=confirm_timeout,
            )
            if confirmed:
                return TransactionSendResult(success=True, signature=str(signature), logs=logs)

            last_error = confirm_err or "confirmation_failed"
            if confirm_err and confirm_err != "confirmation_timeout" and not _is_blockhash_expired(confirm_err):
                # Landed on chain with an error; resending cannot help
                return TransactionSendResult(
                    success=False,
                    signature=str(signature),
                    error=last_error,
                    error_hint=describe_simulation_error(last_error),
                    retryable=False,
                    logs=logs,
                )
            if _is_blockhash_expired(last_error) and refresh_count < MAX_BLOCKHASH_REFRESHES:
                logger.info("Blockhash expired during confirmation, refreshing...")
                refresh_count += 1
                current_tx = None

        except _RetryableSendError:
            pass
        except (RPCException, SolanaRpcException, asyncio.TimeoutError) as exc:
            last_error = str(exc) or type(exc).__name__
            logger.warning(f"RPC error on attempt {attempt + 1}/{max_retries}: {last_error}")
            if classify_simulation_error(last_error) == "permanent":
                return TransactionSendResult(
                    success=False,
                    error=last_error,
                    error_hint=describe_simulation_error(last_error),
                    retryable=False,
                    logs=logs,
                )
            if _is_blockhash_expired(last_error) and refresh_count < MAX_BLOCKHASH_REFRESHES:
                refresh_count += 1
                current_tx = None

        if attempt < max_retries - 1:
            wait_time = _backoff_delay(retry_delay, attempt)
            logger.info(f"Retry {attempt + 1}/{max_retries} in {wait_time:.1f}s...")
            await asyncio.sleep(wait_time)

    final_error = last_error or "rpc_failed"
    logger.error(f"Transaction failed after {max_retries} attempts: {final_error}")
    return TransactionSendResult(
        success=False,
        error=final_error,
        simulation_error=last_simulation_error,
        error_hint=describe_simulation_error(last_simulation_error or last_error),
        retryable=is_retryable_error(final_error),
        logs=logs,
    )


class _RetryableSendError(Exception):
    """Internal signal: skip to the next attempt."""
