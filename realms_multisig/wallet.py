"""Signer and address loading. Never logs secret key material."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from realms_multisig.errors import ConfigurationError, ValidationError
from realms_multisig.logging_config import short_key

logger = logging.getLogger(__name__)

KEYPAIR_PATH_ENV = "MULTISIG_KEYPAIR_PATH"
KEYPAIR_B58_ENV = "MULTISIG_KEYPAIR_B58"
SOLANA_CLI_KEYPAIR = Path.home() / ".config" / "solana" / "id.json"


def _load_keypair_from_file(path: Path) -> Keypair:
    if not path.exists():
        raise ConfigurationError(f"Keypair file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Keypair file is not valid JSON: {path}") from exc
    if not isinstance(data, list):
        raise ConfigurationError(f"Keypair file must hold a JSON byte array: {path}")
    try:
        return Keypair.from_bytes(bytes(data))
    except (ValueError, TypeError) as exc:
        # Error text is kept generic so key bytes never reach logs
        raise ConfigurationError(f"Keypair file does not contain a valid keypair: {path}") from exc


def _load_keypair_from_b58(encoded: str) -> Keypair:
    try:
        return Keypair.from_bytes(base58.b58decode(encoded.strip()))
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"{KEYPAIR_B58_ENV} does not contain a valid base58 keypair") from exc


def load_keypair(path: Optional[str] = None) -> Keypair:
    """Load the payer keypair.

    Lookup order: explicit ``path``, ``MULTISIG_KEYPAIR_PATH``,
    ``MULTISIG_KEYPAIR_B58``, then the Solana CLI default keypair.
    """
    if path:
        keypair = _load_keypair_from_file(Path(path).expanduser())
        source = str(path)
    elif os.environ.get(KEYPAIR_PATH_ENV):
        keypair = _load_keypair_from_file(Path(os.environ[KEYPAIR_PATH_ENV]).expanduser())
        source = KEYPAIR_PATH_ENV
    elif os.environ.get(KEYPAIR_B58_ENV):
        keypair = _load_keypair_from_b58(os.environ[KEYPAIR_B58_ENV])
        source = KEYPAIR_B58_ENV
    elif SOLANA_CLI_KEYPAIR.exists():
        keypair = _load_keypair_from_file(SOLANA_CLI_KEYPAIR)
        source = str(SOLANA_CLI_KEYPAIR)
    else:
        raise ConfigurationError(
            f"No signer configured - pass a keypair path, set {KEYPAIR_PATH_ENV} or {KEYPAIR_B58_ENV}"
        )

    logger.info(f"Loaded signer {short_key(keypair.pubkey())} from {source}")
    return keypair


def load_pubkey(value: str, label: str = "address") -> Pubkey:
    try:
        return Pubkey.from_string(value.strip())
    except ValueError as exc:
        raise ValidationError(f"Invalid {label}: {value!r}") from exc
