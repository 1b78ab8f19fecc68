"""Borsh types shared by SPL Governance instructions and accounts.

Laid out the way AnchorPy client-gen emits types: each type carries a
``layout`` plus ``to_encodable`` / ``from_decoded`` so it can be nested in
instruction arguments and account structs.
"""

from __future__ import annotations

import typing
from dataclasses import dataclass
from enum import Enum, IntEnum

import borsh_construct as borsh
from anchorpy.borsh_extension import BorshPubkey, EnumForCodegen
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey


class GovernanceAccountType(IntEnum):
    UNINITIALIZED = 0
    REALM_V1 = 1
    TOKEN_OWNER_RECORD_V1 = 2
    GOVERNANCE_V1 = 3
    PROGRAM_GOVERNANCE_V1 = 4
    PROPOSAL_V1 = 5
    SIGNATORY_RECORD_V1 = 6
    VOTE_RECORD_V1 = 7
    PROPOSAL_INSTRUCTION_V1 = 8
    MINT_GOVERNANCE_V1 = 9
    TOKEN_GOVERNANCE_V1 = 10
    REALM_CONFIG = 11
    VOTE_RECORD_V2 = 12
    PROPOSAL_TRANSACTION_V2 = 13
    PROPOSAL_V2 = 14
    PROGRAM_METADATA = 15
    REALM_V2 = 16
    TOKEN_OWNER_RECORD_V2 = 17
    GOVERNANCE_V2 = 18
    PROGRAM_GOVERNANCE_V2 = 19
    MINT_GOVERNANCE_V2 = 20
    TOKEN_GOVERNANCE_V2 = 21
    SIGNATORY_RECORD_V2 = 22
    PROPOSAL_DEPOSIT = 23
    REQUIRED_SIGNATORY = 24


class ProposalState(IntEnum):
    DRAFT = 0
    SIGNING_OFF = 1
    VOTING = 2
    SUCCEEDED = 3
    EXECUTING = 4
    COMPLETED = 5
    CANCELLED = 6
    DEFEATED = 7
    EXECUTING_WITH_ERRORS = 8
    VETOED = 9


class OptionVoteResult(IntEnum):
    NONE = 0
    SUCCEEDED = 1
    DEFEATED = 2


class InstructionExecutionFlags(IntEnum):
    NONE = 0
    ORDERED = 1
    USE_TRANSACTION = 2


class TransactionExecutionStatus(IntEnum):
    NONE = 0
    SUCCESS = 1
    ERROR = 2


class SetRealmAuthorityAction(IntEnum):
    SET_UNCHECKED = 0
    SET_CHECKED = 1
    REMOVE = 2


# ---------------------------------------------------------------------------
# Unit enums encoded through EnumForCodegen
# ---------------------------------------------------------------------------


class VoteTipping(Enum):
    STRICT = "Strict"
    EARLY = "Early"
    DISABLED = "Disabled"

    def to_encodable(self) -> dict:
        return {self.value: {}}

    @classmethod
    def from_decoded(cls, obj: dict) -> "VoteTipping":
        return cls(next(iter(obj)))


vote_tipping_layout = EnumForCodegen(
    "Strict" / borsh.CStruct(),
    "Early" / borsh.CStruct(),
    "Disabled" / borsh.CStruct(),
)


class GoverningTokenType(Enum):
    LIQUID = "Liquid"
    MEMBERSHIP = "Membership"
    DORMANT = "Dormant"

    def to_encodable(self) -> dict:
        return {self.value: {}}

    @classmethod
    def from_decoded(cls, obj: dict) -> "GoverningTokenType":
        return cls(next(iter(obj)))


governing_token_type_layout = EnumForCodegen(
    "Liquid" / borsh.CStruct(),
    "Membership" / borsh.CStruct(),
    "Dormant" / borsh.CStruct(),
)


class MultiChoiceType(Enum):
    FULL_WEIGHT = "FullWeight"
    WEIGHTED = "Weighted"

    def to_encodable(self) -> dict:
        return {self.value: {}}

    @classmethod
    def from_decoded(cls, obj: dict) -> "MultiChoiceType":
        return cls(next(iter(obj)))


multi_choice_type_layout = EnumForCodegen(
    "FullWeight" / borsh.CStruct(),
    "Weighted" / borsh.CStruct(),
)


# ---------------------------------------------------------------------------
# Data-carrying enums
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VoteThreshold:
    kind: str
    value: int = 0

    layout: typing.ClassVar = EnumForCodegen(
        "YesVotePercentage" / borsh.CStruct("item_0" / borsh.U8),
        "QuorumPercentage" / borsh.CStruct("item_0" / borsh.U8),
        "Disabled" / borsh.CStruct(),
    )

    @classmethod
    def yes_vote_percentage(cls, percentage: int) -> "VoteThreshold":
        if not 1 <= percentage <= 100:
            raise ValueError(f"Vote threshold percentage must be within 1..100, got {percentage}")
        return cls("YesVotePercentage", percentage)

    @classmethod
    def disabled(cls) -> "VoteThreshold":
        return cls("Disabled")

    def to_encodable(self) -> dict:
        if self.kind == "Disabled":
            return {"Disabled": {}}
        return {self.kind: {"item_0": self.value}}

    @classmethod
    def from_decoded(cls, obj: dict) -> "VoteThreshold":
        if "Disabled" in obj:
            return cls.disabled()
        for kind in ("YesVotePercentage", "QuorumPercentage"):
            if kind in obj:
                return cls(kind, obj[kind]["item_0"])
        raise ValueError("Invalid enum object")


@dataclass(frozen=True)
class MintMaxVoterWeightSource:
    kind: str
    value: int

    layout: typing.ClassVar = EnumForCodegen(
        "SupplyFraction" / borsh.CStruct("item_0" / borsh.U64),
        "Absolute" / borsh.CStruct("item_0" / borsh.U64),
    )

    @classmethod
    def supply_fraction(cls, fraction: int) -> "MintMaxVoterWeightSource":
        return cls("SupplyFraction", fraction)

    def to_encodable(self) -> dict:
        return {self.kind: {"item_0": self.value}}

    @classmethod
    def from_decoded(cls, obj: dict) -> "MintMaxVoterWeightSource":
        kind = next(iter(obj))
        return cls(kind, obj[kind]["item_0"])


@dataclass(frozen=True)
class VoteType:
    """SingleChoice, or MultiChoice with its option bounds."""

    choice_type: typing.Optional[MultiChoiceType] = None
    min_voter_options: int = 0
    max_voter_options: int = 0
    max_winning_options: int = 0

    layout: typing.ClassVar = EnumForCodegen(
        "SingleChoice" / borsh.CStruct(),
        "MultiChoice"
        / borsh.CStruct(
            "choice_type" / multi_choice_type_layout,
            "min_voter_options" / borsh.U8,
            "max_voter_options" / borsh.U8,
            "max_winning_options" / borsh.U8,
        ),
    )

    @classmethod
    def single_choice(cls) -> "VoteType":
        return cls()

    @property
    def is_single_choice(self) -> bool:
        return self.choice_type is None

    def to_encodable(self) -> dict:
        if self.is_single_choice:
            return {"SingleChoice": {}}
        return {
            "MultiChoice": {
                "choice_type": self.choice_type.to_encodable(),
                "min_voter_options": self.min_voter_options,
                "max_voter_options": self.max_voter_options,
                "max_winning_options": self.max_winning_options,
            }
        }

    @classmethod
    def from_decoded(cls, obj: dict) -> "VoteType":
        if "SingleChoice" in obj:
            return cls()
        val = obj["MultiChoice"]
        return cls(
            choice_type=MultiChoiceType.from_decoded(val["choice_type"]),
            min_voter_options=val["min_voter_options"],
            max_voter_options=val["max_voter_options"],
            max_winning_options=val["max_winning_options"],
        )


@dataclass(frozen=True)
class VoteChoice:
    rank: int
    weight_percentage: int

    layout: typing.ClassVar = borsh.CStruct("rank" / borsh.U8, "weight_percentage" / borsh.U8)

    def to_encodable(self) -> dict:
        return {"rank": self.rank, "weight_percentage": self.weight_percentage}


@dataclass(frozen=True)
class Vote:
    """Approve with ranked choices, or Deny. The layout covers every variant the program accepts."""

    kind: str
    choices: typing.Tuple[VoteChoice, ...] = ()

    layout: typing.ClassVar = EnumForCodegen(
        "Approve" / borsh.CStruct("item_0" / borsh.Vec(VoteChoice.layout)),
        "Deny" / borsh.CStruct(),
        "Abstain" / borsh.CStruct(),
        "Veto" / borsh.CStruct(),
    )

    @classmethod
    def approve(cls, choices: typing.Sequence[VoteChoice] = (VoteChoice(rank=0, weight_percentage=100),)) -> "Vote":
        return cls("Approve", tuple(choices))

    @classmethod
    def deny(cls) -> "Vote":
        return cls("Deny")

    def to_encodable(self) -> dict:
        if self.kind == "Approve":
            return {"Approve": {"item_0": [choice.to_encodable() for choice in self.choices]}}
        return {self.kind: {}}


# ---------------------------------------------------------------------------
# Structs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GoverningTokenConfigArgs:
    token_type: GoverningTokenType = GoverningTokenType.LIQUID
    use_voter_weight_addin: bool = False
    use_max_voter_weight_addin: bool = False

    layout: typing.ClassVar = borsh.CStruct(
        "use_voter_weight_addin" / borsh.Bool,
        "use_max_voter_weight_addin" / borsh.Bool,
        "token_type" / governing_token_type_layout,
    )

    def to_encodable(self) -> dict:
        return {
            "use_voter_weight_addin": self.use_voter_weight_addin,
            "use_max_voter_weight_addin": self.use_max_voter_weight_addin,
            "token_type": self.token_type.to_encodable(),
        }


@dataclass(frozen=True)
class RealmConfigArgs:
    use_council_mint: bool
    min_community_weight_to_create_governance: int
    community_mint_max_voter_weight_source: MintMaxVoterWeightSource
    community_token_config_args: GoverningTokenConfigArgs
    council_token_config_args: GoverningTokenConfigArgs

    layout: typing.ClassVar = borsh.CStruct(
        "use_council_mint" / borsh.Bool,
        "min_community_weight_to_create_governance" / borsh.U64,
        "community_mint_max_voter_weight_source" / MintMaxVoterWeightSource.layout,
        "community_token_config_args" / GoverningTokenConfigArgs.layout,
        "council_token_config_args" / GoverningTokenConfigArgs.layout,
    )

    def to_encodable(self) -> dict:
        return {
            "use_council_mint": self.use_council_mint,
            "min_community_weight_to_create_governance": self.min_community_weight_to_create_governance,
            "community_mint_max_voter_weight_source": self.community_mint_max_voter_weight_source.to_encodable(),
            "community_token_config_args": self.community_token_config_args.to_encodable(),
            "council_token_config_args": self.council_token_config_args.to_encodable(),
        }


@dataclass(frozen=True)
class GovernanceConfig:
    community_vote_threshold: VoteThreshold
    min_community_weight_to_create_proposal: int
    min_transaction_hold_up_time: int
    voting_base_time: int
    community_vote_tipping: VoteTipping
    council_vote_threshold: VoteThreshold
    council_veto_vote_threshold: VoteThreshold
    min_council_weight_to_create_proposal: int
    council_vote_tipping: VoteTipping
    community_veto_vote_threshold: VoteThreshold
    voting_cool_off_time: int
    deposit_exempt_proposal_count: int

    layout: typing.ClassVar = borsh.CStruct(
        "community_vote_threshold" / VoteThreshold.layout,
        "min_community_weight_to_create_proposal" / borsh.U64,
        "min_transaction_hold_up_time" / borsh.U32,
        "voting_base_time" / borsh.U32,
        "community_vote_tipping" / vote_tipping_layout,
        "council_vote_threshold" / VoteThreshold.layout,
        "council_veto_vote_threshold" / VoteThreshold.layout,
        "min_council_weight_to_create_proposal" / borsh.U64,
        "council_vote_tipping" / vote_tipping_layout,
        "community_veto_vote_threshold" / VoteThreshold.layout,
        "voting_cool_off_time" / borsh.U32,
        "deposit_exempt_proposal_count" / borsh.U8,
    )

    def to_encodable(self) -> dict:
        return {
            "community_vote_threshold": self.community_vote_threshold.to_encodable(),
            "min_community_weight_to_create_proposal": self.min_community_weight_to_create_proposal,
            "min_transaction_hold_up_time": self.min_transaction_hold_up_time,
            "voting_base_time": self.voting_base_time,
            "community_vote_tipping": self.community_vote_tipping.to_encodable(),
            "council_vote_threshold": self.council_vote_threshold.to_encodable(),
            "council_veto_vote_threshold": self.council_veto_vote_threshold.to_encodable(),
            "min_council_weight_to_create_proposal": self.min_council_weight_to_create_proposal,
            "council_vote_tipping": self.council_vote_tipping.to_encodable(),
            "community_veto_vote_threshold": self.community_veto_vote_threshold.to_encodable(),
            "voting_cool_off_time": self.voting_cool_off_time,
            "deposit_exempt_proposal_count": self.deposit_exempt_proposal_count,
        }

    @classmethod
    def from_decoded(cls, obj: typing.Any) -> "GovernanceConfig":
        return cls(
            community_vote_threshold=VoteThreshold.from_decoded(obj["community_vote_threshold"]),
            min_community_weight_to_create_proposal=obj["min_community_weight_to_create_proposal"],
            min_transaction_hold_up_time=obj["min_transaction_hold_up_time"],
            voting_base_time=obj["voting_base_time"],
            community_vote_tipping=VoteTipping.from_decoded(obj["community_vote_tipping"]),
            council_vote_threshold=VoteThreshold.from_decoded(obj["council_vote_threshold"]),
            council_veto_vote_threshold=VoteThreshold.from_decoded(obj["council_veto_vote_threshold"]),
            min_council_weight_to_create_proposal=obj["min_council_weight_to_create_proposal"],
            council_vote_tipping=VoteTipping.from_decoded(obj["council_vote_tipping"]),
            community_veto_vote_threshold=VoteThreshold.from_decoded(obj["community_veto_vote_threshold"]),
            voting_cool_off_time=obj["voting_cool_off_time"],
            deposit_exempt_proposal_count=obj["deposit_exempt_proposal_count"],
        )


@dataclass(frozen=True)
class InstructionData:
    """An instruction stored inside a proposal transaction."""

    program_id: Pubkey
    accounts: typing.Tuple[AccountMeta, ...]
    data: bytes

    layout: typing.ClassVar = borsh.CStruct(
        "program_id" / BorshPubkey,
        "accounts"
        / borsh.Vec(
            borsh.CStruct(
                "pubkey" / BorshPubkey,
                "is_signer" / borsh.Bool,
                "is_writable" / borsh.Bool,
            )
        ),
        "data" / borsh.Bytes,
    )

    @classmethod
    def from_instruction(cls, ix: Instruction) -> "InstructionData":
        return cls(program_id=ix.program_id, accounts=tuple(ix.accounts), data=bytes(ix.data))

    def to_instruction(self) -> Instruction:
        return Instruction(self.program_id, self.data, list(self.accounts))

    def to_encodable(self) -> dict:
        return {
            "program_id": self.program_id,
            "accounts": [
                {"pubkey": meta.pubkey, "is_signer": meta.is_signer, "is_writable": meta.is_writable}
                for meta in self.accounts
            ],
            "data": self.data,
        }

    @classmethod
    def from_decoded(cls, obj: typing.Any) -> "InstructionData":
        return cls(
            program_id=obj["program_id"],
            accounts=tuple(
                AccountMeta(pubkey=meta["pubkey"], is_signer=meta["is_signer"], is_writable=meta["is_writable"])
                for meta in obj["accounts"]
            ),
            data=bytes(obj["data"]),
        )
