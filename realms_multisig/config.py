"""
Multisig client configuration.

Settings come from the process environment, optionally seeded from a
``.env`` file (loaded with override=False so real environment variables
always win).

Usage:
    from realms_multisig.config import MultisigConfig

    config = MultisigConfig.from_env()
    print(config.rpc_url, config.commitment)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Type, TypeVar, Union

from dotenv import load_dotenv
from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed
from solders.pubkey import Pubkey

from realms_multisig.constants import (
    DEFAULT_VOTE_DURATION_SECONDS,
    GOVERNANCE_PROGRAM_ID,
    PUBLIC_MAINNET_RPC,
)
from realms_multisig.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_COMMITMENTS = {"processed": Processed, "confirmed": Confirmed, "finalized": Finalized}


def load_env_file(path: Optional[Union[str, Path]] = None) -> bool:
    """Load a .env file without overwriting variables that are already set."""
    env_path = Path(path) if path else Path.cwd() / ".env"
    if not env_path.exists():
        return False
    loaded = load_dotenv(env_path, override=False)
    logger.debug(f"Loaded .env from {env_path}")
    return loaded


def _get_env(key: str, default: T = None, cast: Type[T] = str) -> T:
    """Get environment variable with type casting."""
    value = os.environ.get(key)

    if value is None or value.strip() == "":
        return default

    value = value.strip()

    if cast == bool:
        return value.lower() in ("true", "1", "yes", "on")

    if cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            raise ConfigurationError(f"{key} must be a {cast.__name__}, got {value!r}", {"key": key})

    if cast == list:
        return [v.strip() for v in value.split(",") if v.strip()]

    return value


@dataclass
class MultisigConfig:
    """RPC, signer and submission settings."""
    rpc_url: str = PUBLIC_MAINNET_RPC
    rpc_fallback_urls: List[str] = field(default_factory=list)
    program_id: Pubkey = GOVERNANCE_PROGRAM_ID
    commitment: str = "confirmed"
    keypair_path: str = ""
    vote_duration: int = DEFAULT_VOTE_DURATION_SECONDS
    confirm_timeout: float = 30.0
    max_retries: int = 3
    simulate: bool = True
    log_level: str = "INFO"
    log_json: bool = False
    rpc_timeout_ms: int = 30000

    def __post_init__(self) -> None:
        if self.commitment not in _COMMITMENTS:
            raise ConfigurationError(
                f"Unsupported commitment {self.commitment!r}; expected one of {sorted(_COMMITMENTS)}"
            )
        if self.vote_duration <= 0:
            raise ConfigurationError(f"Vote duration must be positive, got {self.vote_duration}")
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be at least 1, got {self.max_retries}")

    @property
    def rpc_commitment(self) -> Commitment:
        return _COMMITMENTS[self.commitment]

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "MultisigConfig":
        load_env_file(env_file)

        program_id_raw = _get_env("MULTISIG_PROGRAM_ID", "")
        try:
            program_id = Pubkey.from_string(program_id_raw) if program_id_raw else GOVERNANCE_PROGRAM_ID
        except ValueError:
            raise ConfigurationError(f"MULTISIG_PROGRAM_ID is not a valid address: {program_id_raw!r}")

        return cls(
            rpc_url=_get_env("MULTISIG_RPC_URL", PUBLIC_MAINNET_RPC),
            rpc_fallback_urls=_get_env("MULTISIG_RPC_FALLBACK_URLS", [], list),
            program_id=program_id,
            commitment=_get_env("MULTISIG_COMMITMENT", "confirmed").lower(),
            keypair_path=_get_env("MULTISIG_KEYPAIR_PATH", ""),
            vote_duration=_get_env("MULTISIG_VOTE_DURATION", DEFAULT_VOTE_DURATION_SECONDS, int),
            confirm_timeout=_get_env("MULTISIG_CONFIRM_TIMEOUT", 30.0, float),
            max_retries=_get_env("MULTISIG_MAX_RETRIES", 3, int),
            simulate=_get_env("MULTISIG_SIMULATE", True, bool),
            log_level=_get_env("MULTISIG_LOG_LEVEL", "INFO").upper(),
            log_json=_get_env("MULTISIG_LOG_JSON", False, bool),
            rpc_timeout_ms=_get_env("MULTISIG_RPC_TIMEOUT_MS", 30000, int),
        )
