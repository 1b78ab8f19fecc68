"""Deterministic SPL Governance program-derived addresses.

Every address here is derived offline with ``Pubkey.find_program_address``;
no RPC calls are made.
"""

from __future__ import annotations

from typing import Optional

from solders.pubkey import Pubkey

from realms_multisig.governance.program_id import PROGRAM_ID

GOVERNANCE_SEED = b"governance"
ACCOUNT_GOVERNANCE_SEED = b"account-governance"
NATIVE_TREASURY_SEED = b"native-treasury"
REALM_CONFIG_SEED = b"realm-config"
PROPOSAL_DEPOSIT_SEED = b"proposal-deposit"

# PDA seeds are capped at 32 bytes each
MAX_SEED_LENGTH = 32


def _program(program_id: Optional[Pubkey]) -> Pubkey:
    return program_id if program_id is not None else PROGRAM_ID


def derive_realm_pda(name: str, program_id: Optional[Pubkey] = None) -> Pubkey:
    seed = name.encode("utf-8")
    if len(seed) > MAX_SEED_LENGTH:
        raise ValueError(f"Realm name exceeds {MAX_SEED_LENGTH} bytes: {name!r}")
    pda, _ = Pubkey.find_program_address([GOVERNANCE_SEED, seed], _program(program_id))
    return pda


def derive_governing_token_holding_pda(
    realm: Pubkey, governing_token_mint: Pubkey, program_id: Optional[Pubkey] = None
) -> Pubkey:
    pda, _ = Pubkey.find_program_address(
        [GOVERNANCE_SEED, bytes(realm), bytes(governing_token_mint)],
        _program(program_id),
    )
    return pda


def derive_realm_config_pda(realm: Pubkey, program_id: Optional[Pubkey] = None) -> Pubkey:
    pda, _ = Pubkey.find_program_address([REALM_CONFIG_SEED, bytes(realm)], _program(program_id))
    return pda


def derive_token_owner_record_pda(
    realm: Pubkey,
    governing_token_mint: Pubkey,
    governing_token_owner: Pubkey,
    program_id: Optional[Pubkey] = None,
) -> Pubkey:
    pda, _ = Pubkey.find_program_address(
        [GOVERNANCE_SEED, bytes(realm), bytes(governing_token_mint), bytes(governing_token_owner)],
        _program(program_id),
    )
    return pda


def derive_governance_pda(realm: Pubkey, seed: Pubkey, program_id: Optional[Pubkey] = None) -> Pubkey:
    pda, _ = Pubkey.find_program_address(
        [ACCOUNT_GOVERNANCE_SEED, bytes(realm), bytes(seed)],
        _program(program_id),
    )
    return pda


def derive_native_treasury_pda(governance: Pubkey, program_id: Optional[Pubkey] = None) -> Pubkey:
    pda, _ = Pubkey.find_program_address([NATIVE_TREASURY_SEED, bytes(governance)], _program(program_id))
    return pda


def derive_proposal_pda(
    governance: Pubkey,
    governing_token_mint: Pubkey,
    proposal_seed: Pubkey,
    program_id: Optional[Pubkey] = None,
) -> Pubkey:
    pda, _ = Pubkey.find_program_address(
        [GOVERNANCE_SEED, bytes(governance), bytes(governing_token_mint), bytes(proposal_seed)],
        _program(program_id),
    )
    return pda


def derive_proposal_deposit_pda(
    proposal: Pubkey, depositor: Pubkey, program_id: Optional[Pubkey] = None
) -> Pubkey:
    pda, _ = Pubkey.find_program_address(
        [PROPOSAL_DEPOSIT_SEED, bytes(proposal), bytes(depositor)],
        _program(program_id),
    )
    return pda


def derive_proposal_transaction_pda(
    proposal: Pubkey,
    option_index: int = 0,
    index: int = 0,
    program_id: Optional[Pubkey] = None,
) -> Pubkey:
    if not 0 <= option_index <= 0xFF:
        raise ValueError(f"option_index out of u8 range: {option_index}")
    if not 0 <= index <= 0xFFFF:
        raise ValueError(f"transaction index out of u16 range: {index}")
    pda, _ = Pubkey.find_program_address(
        [
            GOVERNANCE_SEED,
            bytes(proposal),
            option_index.to_bytes(1, "little"),
            index.to_bytes(2, "little"),
        ],
        _program(program_id),
    )
    return pda


def derive_vote_record_pda(
    proposal: Pubkey, token_owner_record: Pubkey, program_id: Optional[Pubkey] = None
) -> Pubkey:
    pda, _ = Pubkey.find_program_address(
        [GOVERNANCE_SEED, bytes(proposal), bytes(token_owner_record)],
        _program(program_id),
    )
    return pda


def derive_multisig_governance(realm: Pubkey, program_id: Optional[Pubkey] = None) -> Pubkey:
    """The multisig governance is seeded with its own realm address."""
    return derive_governance_pda(realm, realm, program_id)


def derive_multisig_wallet(realm: Pubkey, program_id: Optional[Pubkey] = None) -> Pubkey:
    """Native treasury of the multisig governance, i.e. the multisig wallet."""
    return derive_native_treasury_pda(derive_multisig_governance(realm, program_id), program_id)


def derive_signatory_record_pda(
    proposal: Pubkey, signatory: Pubkey, program_id: Optional[Pubkey] = None
) -> Pubkey:
    pda, _ = Pubkey.find_program_address(
        [GOVERNANCE_SEED, bytes(proposal), bytes(signatory)],
        _program(program_id),
    )
    return pda
