"""SPL Governance instruction builders.

Each builder returns a solders ``Instruction`` whose data is the one-byte
instruction index followed by the Borsh-encoded arguments. Account order
mirrors the program's processor; PDAs are derived here so callers only pass
the addresses they own.
"""

from __future__ import annotations

import typing
from typing import Optional, Sequence

import borsh_construct as borsh
from anchorpy.borsh_extension import BorshPubkey
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from realms_multisig.constants import FULL_SUPPLY_FRACTION, SYSTEM_PROGRAM_ID, SYSVAR_RENT_ID, TOKEN_PROGRAM_ID
from realms_multisig.governance import pda
from realms_multisig.governance.program_id import PROGRAM_ID
from realms_multisig.governance.types import (
    GovernanceConfig,
    GoverningTokenConfigArgs,
    GoverningTokenType,
    InstructionData,
    MintMaxVoterWeightSource,
    RealmConfigArgs,
    SetRealmAuthorityAction,
    Vote,
    VoteType,
)


class GovernanceInstruction:
    CREATE_REALM = 0
    DEPOSIT_GOVERNING_TOKENS = 1
    CREATE_GOVERNANCE = 4
    CREATE_PROPOSAL = 6
    INSERT_TRANSACTION = 9
    SIGN_OFF_PROPOSAL = 12
    CAST_VOTE = 13
    EXECUTE_TRANSACTION = 16
    SET_REALM_AUTHORITY = 21
    CREATE_TOKEN_OWNER_RECORD = 23
    CREATE_NATIVE_TREASURY = 25


create_realm_layout = borsh.CStruct("name" / borsh.String, "config_args" / RealmConfigArgs.layout)
deposit_governing_tokens_layout = borsh.CStruct("amount" / borsh.U64)
create_governance_layout = borsh.CStruct("config" / GovernanceConfig.layout)
create_proposal_layout = borsh.CStruct(
    "name" / borsh.String,
    "description_link" / borsh.String,
    "vote_type" / VoteType.layout,
    "options" / borsh.Vec(borsh.String),
    "use_deny_option" / borsh.Bool,
    "proposal_seed" / BorshPubkey,
)
insert_transaction_layout = borsh.CStruct(
    "option_index" / borsh.U8,
    "index" / borsh.U16,
    "hold_up_time" / borsh.U32,
    "instructions" / borsh.Vec(InstructionData.layout),
)
cast_vote_layout = borsh.CStruct("vote" / Vote.layout)
set_realm_authority_layout = borsh.CStruct("action" / borsh.U8)


def _program(program_id: Optional[Pubkey]) -> Pubkey:
    return program_id if program_id is not None else PROGRAM_ID


def _data(discriminator: int, layout: typing.Any = None, args: typing.Optional[dict] = None) -> bytes:
    identifier = bytes([discriminator])
    if layout is None:
        return identifier
    return identifier + layout.build(args)


def create_realm(
    *,
    name: str,
    community_token_mint: Pubkey,
    realm_authority: Pubkey,
    payer: Pubkey,
    min_community_weight_to_create_governance: int,
    council_token_mint: Optional[Pubkey] = None,
    community_mint_max_voter_weight_source: Optional[MintMaxVoterWeightSource] = None,
    community_token_type: GoverningTokenType = GoverningTokenType.LIQUID,
    council_token_type: GoverningTokenType = GoverningTokenType.LIQUID,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    realm = pda.derive_realm_pda(name, program)
    keys: list[AccountMeta] = [
        AccountMeta(pubkey=realm, is_signer=False, is_writable=True),
        AccountMeta(pubkey=realm_authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=community_token_mint, is_signer=False, is_writable=False),
        AccountMeta(
            pubkey=pda.derive_governing_token_holding_pda(realm, community_token_mint, program),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSVAR_RENT_ID, is_signer=False, is_writable=False),
    ]
    if council_token_mint is not None:
        keys.append(AccountMeta(pubkey=council_token_mint, is_signer=False, is_writable=False))
        keys.append(
            AccountMeta(
                pubkey=pda.derive_governing_token_holding_pda(realm, council_token_mint, program),
                is_signer=False,
                is_writable=True,
            )
        )
    keys.append(AccountMeta(pubkey=pda.derive_realm_config_pda(realm, program), is_signer=False, is_writable=True))

    config_args = RealmConfigArgs(
        use_council_mint=council_token_mint is not None,
        min_community_weight_to_create_governance=min_community_weight_to_create_governance,
        community_mint_max_voter_weight_source=(
            community_mint_max_voter_weight_source
            or MintMaxVoterWeightSource.supply_fraction(FULL_SUPPLY_FRACTION)
        ),
        community_token_config_args=GoverningTokenConfigArgs(token_type=community_token_type),
        council_token_config_args=GoverningTokenConfigArgs(token_type=council_token_type),
    )
    data = _data(
        GovernanceInstruction.CREATE_REALM,
        create_realm_layout,
        {"name": name, "config_args": config_args.to_encodable()},
    )
    return Instruction(program, data, keys)


def create_token_owner_record(
    *,
    realm: Pubkey,
    governing_token_owner: Pubkey,
    governing_token_mint: Pubkey,
    payer: Pubkey,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    token_owner_record = pda.derive_token_owner_record_pda(realm, governing_token_mint, governing_token_owner, program)
    keys = [
        AccountMeta(pubkey=realm, is_signer=False, is_writable=False),
        AccountMeta(pubkey=governing_token_owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=token_owner_record, is_signer=False, is_writable=True),
        AccountMeta(pubkey=governing_token_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program, _data(GovernanceInstruction.CREATE_TOKEN_OWNER_RECORD), keys)


def deposit_governing_tokens(
    *,
    realm: Pubkey,
    governing_token_mint: Pubkey,
    governing_token_source: Pubkey,
    governing_token_owner: Pubkey,
    governing_token_source_authority: Pubkey,
    payer: Pubkey,
    amount: int,
    owner_is_signer: bool = True,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    """Deposit governing tokens into the realm holding account.

    When ``governing_token_source`` is the mint itself the program mints the
    deposit directly, which requires ``governing_token_source_authority`` to
    be the mint authority. ``owner_is_signer=False`` is only valid once the
    owner's token owner record already exists.
    """
    program = _program(program_id)
    keys = [
        AccountMeta(pubkey=realm, is_signer=False, is_writable=False),
        AccountMeta(
            pubkey=pda.derive_governing_token_holding_pda(realm, governing_token_mint, program),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(pubkey=governing_token_source, is_signer=False, is_writable=True),
        AccountMeta(pubkey=governing_token_owner, is_signer=owner_is_signer, is_writable=False),
        AccountMeta(pubkey=governing_token_source_authority, is_signer=True, is_writable=False),
        AccountMeta(
            pubkey=pda.derive_token_owner_record_pda(realm, governing_token_mint, governing_token_owner, program),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=pda.derive_realm_config_pda(realm, program), is_signer=False, is_writable=False),
    ]
    data = _data(GovernanceInstruction.DEPOSIT_GOVERNING_TOKENS, deposit_governing_tokens_layout, {"amount": amount})
    return Instruction(program, data, keys)


def create_governance(
    *,
    realm: Pubkey,
    governance_seed: Pubkey,
    config: GovernanceConfig,
    payer: Pubkey,
    create_authority: Pubkey,
    token_owner_record: Optional[Pubkey] = None,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    keys = [
        AccountMeta(pubkey=realm, is_signer=False, is_writable=False),
        AccountMeta(pubkey=pda.derive_governance_pda(realm, governance_seed, program), is_signer=False, is_writable=True),
        AccountMeta(pubkey=governance_seed, is_signer=False, is_writable=False),
        # The realm authority may create governances without a token owner record
        AccountMeta(pubkey=token_owner_record or SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=create_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=pda.derive_realm_config_pda(realm, program), is_signer=False, is_writable=False),
    ]
    data = _data(GovernanceInstruction.CREATE_GOVERNANCE, create_governance_layout, {"config": config.to_encodable()})
    return Instruction(program, data, keys)


def create_native_treasury(
    *,
    governance: Pubkey,
    payer: Pubkey,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    keys = [
        AccountMeta(pubkey=governance, is_signer=False, is_writable=False),
        AccountMeta(pubkey=pda.derive_native_treasury_pda(governance, program), is_signer=False, is_writable=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program, _data(GovernanceInstruction.CREATE_NATIVE_TREASURY), keys)


def set_realm_authority(
    *,
    realm: Pubkey,
    realm_authority: Pubkey,
    action: SetRealmAuthorityAction,
    new_realm_authority: Optional[Pubkey] = None,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    keys = [
        AccountMeta(pubkey=realm, is_signer=False, is_writable=True),
        AccountMeta(pubkey=realm_authority, is_signer=True, is_writable=False),
    ]
    if action is not SetRealmAuthorityAction.REMOVE:
        if new_realm_authority is None:
            raise ValueError(f"{action.name} requires a new realm authority")
        keys.append(AccountMeta(pubkey=new_realm_authority, is_signer=False, is_writable=False))
    data = _data(GovernanceInstruction.SET_REALM_AUTHORITY, set_realm_authority_layout, {"action": int(action)})
    return Instruction(program, data, keys)


def create_proposal(
    *,
    realm: Pubkey,
    governance: Pubkey,
    proposal_owner_record: Pubkey,
    governing_token_mint: Pubkey,
    governance_authority: Pubkey,
    payer: Pubkey,
    proposal_seed: Pubkey,
    name: str,
    options: Sequence[str],
    description_link: str = "",
    vote_type: Optional[VoteType] = None,
    use_deny_option: bool = True,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    proposal = pda.derive_proposal_pda(governance, governing_token_mint, proposal_seed, program)
    keys = [
        AccountMeta(pubkey=realm, is_signer=False, is_writable=False),
        AccountMeta(pubkey=proposal, is_signer=False, is_writable=True),
        AccountMeta(pubkey=governance, is_signer=False, is_writable=True),
        AccountMeta(pubkey=proposal_owner_record, is_signer=False, is_writable=True),
        AccountMeta(pubkey=governing_token_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=governance_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=pda.derive_realm_config_pda(realm, program), is_signer=False, is_writable=False),
        AccountMeta(pubkey=pda.derive_proposal_deposit_pda(proposal, payer, program), is_signer=False, is_writable=True),
    ]
    args = {
        "name": name,
        "description_link": description_link,
        "vote_type": (vote_type or VoteType.single_choice()).to_encodable(),
        "options": list(options),
        "use_deny_option": use_deny_option,
        "proposal_seed": proposal_seed,
    }
    return Instruction(program, _data(GovernanceInstruction.CREATE_PROPOSAL, create_proposal_layout, args), keys)


def insert_transaction(
    *,
    governance: Pubkey,
    proposal: Pubkey,
    token_owner_record: Pubkey,
    governance_authority: Pubkey,
    payer: Pubkey,
    instructions: Sequence[Instruction],
    option_index: int = 0,
    index: int = 0,
    hold_up_time: int = 0,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    keys = [
        AccountMeta(pubkey=governance, is_signer=False, is_writable=False),
        AccountMeta(pubkey=proposal, is_signer=False, is_writable=True),
        AccountMeta(pubkey=token_owner_record, is_signer=False, is_writable=False),
        AccountMeta(pubkey=governance_authority, is_signer=True, is_writable=False),
        AccountMeta(
            pubkey=pda.derive_proposal_transaction_pda(proposal, option_index, index, program),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSVAR_RENT_ID, is_signer=False, is_writable=False),
    ]
    args = {
        "option_index": option_index,
        "index": index,
        "hold_up_time": hold_up_time,
        "instructions": [InstructionData.from_instruction(ix).to_encodable() for ix in instructions],
    }
    return Instruction(program, _data(GovernanceInstruction.INSERT_TRANSACTION, insert_transaction_layout, args), keys)


def sign_off_proposal(
    *,
    realm: Pubkey,
    governance: Pubkey,
    proposal: Pubkey,
    signatory: Pubkey,
    proposal_owner_record: Optional[Pubkey] = None,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    """Sign off a draft proposal.

    The proposal owner signs off with its token owner record; any other
    signatory signs off through its signatory record.
    """
    program = _program(program_id)
    keys = [
        AccountMeta(pubkey=realm, is_signer=False, is_writable=True),
        AccountMeta(pubkey=governance, is_signer=False, is_writable=True),
        AccountMeta(pubkey=proposal, is_signer=False, is_writable=True),
        AccountMeta(pubkey=signatory, is_signer=True, is_writable=False),
    ]
    if proposal_owner_record is not None:
        keys.append(AccountMeta(pubkey=proposal_owner_record, is_signer=False, is_writable=False))
    else:
        keys.append(
            AccountMeta(
                pubkey=pda.derive_signatory_record_pda(proposal, signatory, program),
                is_signer=False,
                is_writable=True,
            )
        )
    return Instruction(program, _data(GovernanceInstruction.SIGN_OFF_PROPOSAL), keys)


def cast_vote(
    *,
    realm: Pubkey,
    governance: Pubkey,
    proposal: Pubkey,
    proposal_owner_record: Pubkey,
    voter_token_owner_record: Pubkey,
    governance_authority: Pubkey,
    vote_governing_token_mint: Pubkey,
    payer: Pubkey,
    vote: Vote,
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    keys = [
        AccountMeta(pubkey=realm, is_signer=False, is_writable=True),
        AccountMeta(pubkey=governance, is_signer=False, is_writable=True),
        AccountMeta(pubkey=proposal, is_signer=False, is_writable=True),
        AccountMeta(pubkey=proposal_owner_record, is_signer=False, is_writable=True),
        AccountMeta(pubkey=voter_token_owner_record, is_signer=False, is_writable=True),
        AccountMeta(pubkey=governance_authority, is_signer=True, is_writable=False),
        AccountMeta(
            pubkey=pda.derive_vote_record_pda(proposal, voter_token_owner_record, program),
            is_signer=False,
            is_writable=True,
        ),
        AccountMeta(pubkey=vote_governing_token_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=pda.derive_realm_config_pda(realm, program), is_signer=False, is_writable=False),
    ]
    data = _data(GovernanceInstruction.CAST_VOTE, cast_vote_layout, {"vote": vote.to_encodable()})
    return Instruction(program, data, keys)


def execute_transaction(
    *,
    governance: Pubkey,
    proposal: Pubkey,
    proposal_transaction: Pubkey,
    instruction_accounts: Sequence[AccountMeta],
    program_id: Optional[Pubkey] = None,
) -> Instruction:
    program = _program(program_id)
    keys = [
        AccountMeta(pubkey=governance, is_signer=False, is_writable=False),
        AccountMeta(pubkey=proposal, is_signer=False, is_writable=True),
        AccountMeta(pubkey=proposal_transaction, is_signer=False, is_writable=True),
        *instruction_accounts,
    ]
    return Instruction(program, _data(GovernanceInstruction.EXECUTE_TRANSACTION), keys)
