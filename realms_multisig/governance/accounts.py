"""SPL Governance account decoders.

Governance accounts are tagged by their first byte (``GovernanceAccountType``)
instead of an Anchor discriminator. Only the fields this package reads are
declared; trailing reserved space is left unparsed.
"""

from __future__ import annotations

import typing
from dataclasses import dataclass
from typing import Optional

import borsh_construct as borsh
from anchorpy.borsh_extension import BorshPubkey
from construct import ConstructError, Padding
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.pubkey import Pubkey

from realms_multisig.errors import AccountDecodeError, AccountNotFoundError
from realms_multisig.governance.program_id import PROGRAM_ID
from realms_multisig.governance.types import (
    GovernanceAccountType,
    GovernanceConfig,
    InstructionData,
    MintMaxVoterWeightSource,
    ProposalState,
    TransactionExecutionStatus,
    VoteThreshold,
    VoteType,
)
from realms_multisig.rpc import rpc_request

T = typing.TypeVar("T", bound="GovernanceAccount")


class GovernanceAccount:
    account_types: typing.ClassVar[typing.Tuple[GovernanceAccountType, ...]] = ()
    layout: typing.ClassVar[typing.Any] = None

    @classmethod
    def decode(cls: typing.Type[T], data: bytes, address: Optional[Pubkey] = None) -> T:
        addr = str(address) if address is not None else None
        if not data:
            raise AccountDecodeError(f"Empty account data for {cls.__name__}", address=addr)
        account_type = data[0]
        if account_type not in cls.account_types:
            raise AccountDecodeError(
                f"Account type {account_type} is not a {cls.__name__}",
                address=addr,
                account_type=account_type,
            )
        try:
            return cls._from_decoded(cls.layout.parse(data), address)
        except (ConstructError, KeyError, ValueError) as exc:
            raise AccountDecodeError(
                f"Malformed {cls.__name__} account: {exc}", address=addr, account_type=account_type
            ) from exc

    @classmethod
    def _from_decoded(cls: typing.Type[T], dec: typing.Any, address: Optional[Pubkey]) -> T:
        raise NotImplementedError

    @classmethod
    async def fetch(
        cls: typing.Type[T],
        conn: AsyncClient,
        address: Pubkey,
        commitment: Optional[Commitment] = None,
        program_id: Pubkey = PROGRAM_ID,
    ) -> T:
        with rpc_request(f"getAccountInfo {address}"):
            resp = await conn.get_account_info(address, commitment=commitment)
        info = resp.value
        if info is None:
            raise AccountNotFoundError(f"{cls.__name__} account not found: {address}", address=str(address))
        if info.owner != program_id:
            raise AccountDecodeError(
                f"{cls.__name__} account {address} is not owned by {program_id}", address=str(address)
            )
        return cls.decode(bytes(info.data), address)


@dataclass
class Realm(GovernanceAccount):
    address: Optional[Pubkey]
    community_mint: Pubkey
    council_mint: Optional[Pubkey]
    min_community_weight_to_create_governance: int
    community_mint_max_voter_weight_source: MintMaxVoterWeightSource
    authority: Optional[Pubkey]
    name: str

    account_types: typing.ClassVar = (GovernanceAccountType.REALM_V1, GovernanceAccountType.REALM_V2)
    layout: typing.ClassVar = borsh.CStruct(
        "account_type" / borsh.U8,
        "community_mint" / BorshPubkey,
        "config"
        / borsh.CStruct(
            "legacy1" / borsh.U8,
            "legacy2" / borsh.U8,
            "reserved" / Padding(6),
            "min_community_weight_to_create_governance" / borsh.U64,
            "community_mint_max_voter_weight_source" / MintMaxVoterWeightSource.layout,
            "council_mint" / borsh.Option(BorshPubkey),
        ),
        "reserved" / Padding(6),
        "legacy1" / borsh.U16,
        "authority" / borsh.Option(BorshPubkey),
        "name" / borsh.String,
    )

    @classmethod
    def _from_decoded(cls, dec: typing.Any, address: Optional[Pubkey]) -> "Realm":
        return cls(
            address=address,
            community_mint=dec.community_mint,
            council_mint=dec.config.council_mint,
            min_community_weight_to_create_governance=dec.config.min_community_weight_to_create_governance,
            community_mint_max_voter_weight_source=MintMaxVoterWeightSource.from_decoded(
                dec.config.community_mint_max_voter_weight_source
            ),
            authority=dec.authority,
            name=dec.name,
        )


@dataclass
class Governance(GovernanceAccount):
    address: Optional[Pubkey]
    realm: Pubkey
    governance_seed: Pubkey
    config: GovernanceConfig

    account_types: typing.ClassVar = (
        GovernanceAccountType.GOVERNANCE_V2,
        GovernanceAccountType.PROGRAM_GOVERNANCE_V2,
        GovernanceAccountType.MINT_GOVERNANCE_V2,
        GovernanceAccountType.TOKEN_GOVERNANCE_V2,
    )
    layout: typing.ClassVar = borsh.CStruct(
        "account_type" / borsh.U8,
        "realm" / BorshPubkey,
        "governance_seed" / BorshPubkey,
        "reserved1" / borsh.U32,
        "config" / GovernanceConfig.layout,
    )

    @classmethod
    def _from_decoded(cls, dec: typing.Any, address: Optional[Pubkey]) -> "Governance":
        return cls(
            address=address,
            realm=dec.realm,
            governance_seed=dec.governance_seed,
            config=GovernanceConfig.from_decoded(dec.config),
        )


@dataclass
class ProposalOption:
    label: str
    vote_weight: int
    vote_result: int
    transactions_executed_count: int
    transactions_count: int
    transactions_next_index: int

    layout: typing.ClassVar = borsh.CStruct(
        "label" / borsh.String,
        "vote_weight" / borsh.U64,
        "vote_result" / borsh.U8,
        "transactions_executed_count" / borsh.U16,
        "transactions_count" / borsh.U16,
        "transactions_next_index" / borsh.U16,
    )

    @classmethod
    def from_decoded(cls, obj: typing.Any) -> "ProposalOption":
        return cls(
            label=obj.label,
            vote_weight=obj.vote_weight,
            vote_result=obj.vote_result,
            transactions_executed_count=obj.transactions_executed_count,
            transactions_count=obj.transactions_count,
            transactions_next_index=obj.transactions_next_index,
        )


@dataclass
class Proposal(GovernanceAccount):
    address: Optional[Pubkey]
    governance: Pubkey
    governing_token_mint: Pubkey
    state: ProposalState
    token_owner_record: Pubkey
    signatories_count: int
    signatories_signed_off_count: int
    vote_type: VoteType
    options: typing.List[ProposalOption]
    deny_vote_weight: Optional[int]
    abstain_vote_weight: Optional[int]
    draft_at: int
    signing_off_at: Optional[int]
    voting_at: Optional[int]
    voting_completed_at: Optional[int]
    executing_at: Optional[int]
    closed_at: Optional[int]
    max_vote_weight: Optional[int]
    vote_threshold: Optional[VoteThreshold]
    name: str
    description_link: str

    account_types: typing.ClassVar = (GovernanceAccountType.PROPOSAL_V2,)
    layout: typing.ClassVar = borsh.CStruct(
        "account_type" / borsh.U8,
        "governance" / BorshPubkey,
        "governing_token_mint" / BorshPubkey,
        "state" / borsh.U8,
        "token_owner_record" / BorshPubkey,
        "signatories_count" / borsh.U8,
        "signatories_signed_off_count" / borsh.U8,
        "vote_type" / VoteType.layout,
        "options" / borsh.Vec(ProposalOption.layout),
        "deny_vote_weight" / borsh.Option(borsh.U64),
        "reserved1" / borsh.U8,
        "abstain_vote_weight" / borsh.Option(borsh.U64),
        "start_voting_at" / borsh.Option(borsh.I64),
        "draft_at" / borsh.I64,
        "signing_off_at" / borsh.Option(borsh.I64),
        "voting_at" / borsh.Option(borsh.I64),
        "voting_at_slot" / borsh.Option(borsh.U64),
        "voting_completed_at" / borsh.Option(borsh.I64),
        "executing_at" / borsh.Option(borsh.I64),
        "closed_at" / borsh.Option(borsh.I64),
        "execution_flags" / borsh.U8,
        "max_vote_weight" / borsh.Option(borsh.U64),
        "max_voting_time" / borsh.Option(borsh.U32),
        "vote_threshold" / borsh.Option(VoteThreshold.layout),
        "reserved" / Padding(64),
        "name" / borsh.String,
        "description_link" / borsh.String,
    )

    @classmethod
    def _from_decoded(cls, dec: typing.Any, address: Optional[Pubkey]) -> "Proposal":
        return cls(
            address=address,
            governance=dec.governance,
            governing_token_mint=dec.governing_token_mint,
            state=ProposalState(dec.state),
            token_owner_record=dec.token_owner_record,
            signatories_count=dec.signatories_count,
            signatories_signed_off_count=dec.signatories_signed_off_count,
            vote_type=VoteType.from_decoded(dec.vote_type),
            options=[ProposalOption.from_decoded(option) for option in dec.options],
            deny_vote_weight=dec.deny_vote_weight,
            abstain_vote_weight=dec.abstain_vote_weight,
            draft_at=dec.draft_at,
            signing_off_at=dec.signing_off_at,
            voting_at=dec.voting_at,
            voting_completed_at=dec.voting_completed_at,
            executing_at=dec.executing_at,
            closed_at=dec.closed_at,
            max_vote_weight=dec.max_vote_weight,
            vote_threshold=(
                VoteThreshold.from_decoded(dec.vote_threshold) if dec.vote_threshold is not None else None
            ),
            name=dec.name,
            description_link=dec.description_link,
        )

    @property
    def yes_vote_weight(self) -> int:
        return self.options[0].vote_weight if self.options else 0


@dataclass
class ProposalTransaction(GovernanceAccount):
    address: Optional[Pubkey]
    proposal: Pubkey
    option_index: int
    transaction_index: int
    hold_up_time: int
    instructions: typing.List[InstructionData]
    executed_at: Optional[int]
    execution_status: TransactionExecutionStatus

    account_types: typing.ClassVar = (GovernanceAccountType.PROPOSAL_TRANSACTION_V2,)
    layout: typing.ClassVar = borsh.CStruct(
        "account_type" / borsh.U8,
        "proposal" / BorshPubkey,
        "option_index" / borsh.U8,
        "transaction_index" / borsh.U16,
        "hold_up_time" / borsh.U32,
        "instructions" / borsh.Vec(InstructionData.layout),
        "executed_at" / borsh.Option(borsh.I64),
        "execution_status" / borsh.U8,
    )

    @classmethod
    def _from_decoded(cls, dec: typing.Any, address: Optional[Pubkey]) -> "ProposalTransaction":
        return cls(
            address=address,
            proposal=dec.proposal,
            option_index=dec.option_index,
            transaction_index=dec.transaction_index,
            hold_up_time=dec.hold_up_time,
            instructions=[InstructionData.from_decoded(ix) for ix in dec.instructions],
            executed_at=dec.executed_at,
            execution_status=TransactionExecutionStatus(dec.execution_status),
        )
