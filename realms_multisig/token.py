"""SPL token and system transfer instruction helpers."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, TransferParams as SystemTransferParams
from solders.system_program import create_account, transfer as system_transfer
from spl.token.instructions import (
    AuthorityType,
    InitializeMintParams,
    SetAuthorityParams,
    TransferParams,
    create_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    set_authority,
    transfer,
)

from realms_multisig.constants import MINT_ACCOUNT_SIZE, SOL_DECIMALS, TOKEN_PROGRAM_ID, U64_MAX
from realms_multisig.errors import ValidationError

Amount = Union[int, float, str, Decimal]


def to_base_units(amount: Amount, decimals: int) -> int:
    """Scale a UI amount to integer base units (``amount * 10**decimals``).

    Floats go through their shortest repr so ``0.1`` stays ``0.1``. Amounts
    finer than the mint precision are rejected rather than truncated.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise ValidationError(f"Amount must be a non-negative number, got {amount!r}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount {amount} has more precision than {decimals} decimals allow",
            {"amount": str(amount), "decimals": decimals},
        )
    if scaled > U64_MAX:
        raise ValidationError(
            f"Amount {amount} exceeds the u64 range at {decimals} decimals",
            {"amount": str(amount), "decimals": decimals},
        )
    return int(scaled)


def sol_to_lamports(amount: Amount) -> int:
    return to_base_units(amount, SOL_DECIMALS)


def create_mint_instructions(
    *,
    payer: Pubkey,
    mint: Pubkey,
    mint_authority: Pubkey,
    lamports: int,
    decimals: int = 0,
    freeze_authority: Optional[Pubkey] = None,
) -> List[Instruction]:
    """Allocate a rent-exempt mint account and initialize it."""
    return [
        create_account(
            CreateAccountParams(
                from_pubkey=payer,
                to_pubkey=mint,
                lamports=lamports,
                space=MINT_ACCOUNT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            )
        ),
        initialize_mint(
            InitializeMintParams(
                decimals=decimals,
                program_id=TOKEN_PROGRAM_ID,
                mint=mint,
                mint_authority=mint_authority,
                freeze_authority=freeze_authority,
            )
        ),
    ]


def set_mint_authority_instruction(mint: Pubkey, current_authority: Pubkey, new_authority: Pubkey) -> Instruction:
    return set_authority(
        SetAuthorityParams(
            program_id=TOKEN_PROGRAM_ID,
            account=mint,
            authority=AuthorityType.MINT_TOKENS,
            current_authority=current_authority,
            new_authority=new_authority,
        )
    )


def associated_token_address(mint: Pubkey, owner: Pubkey) -> Pubkey:
    """ATA of ``owner``; PDA owners such as a native treasury are allowed."""
    return get_associated_token_address(owner, mint)


def create_associated_token_account_instruction(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    return create_associated_token_account(payer, owner, mint)


def transfer_instruction(source: Pubkey, dest: Pubkey, owner: Pubkey, amount: int) -> Instruction:
    return transfer(
        TransferParams(
            program_id=TOKEN_PROGRAM_ID,
            source=source,
            dest=dest,
            owner=owner,
            amount=amount,
        )
    )


def sol_transfer_instruction(source: Pubkey, dest: Pubkey, lamports: int) -> Instruction:
    return system_transfer(SystemTransferParams(from_pubkey=source, to_pubkey=dest, lamports=lamports))
