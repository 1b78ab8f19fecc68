"""Public result types returned by MultiSig operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from solders.pubkey import Pubkey

from realms_multisig.governance.types import ProposalState


class TransactionStatus(Enum):
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @classmethod
    def from_proposal_state(cls, state: ProposalState) -> "TransactionStatus":
        """Collapse the on-chain proposal state for display.

        States reached only after a passing vote (Executing, Completed,
        ExecutingWithErrors) count as succeeded, and Cancelled / Vetoed count
        as failed alongside Defeated.
        """
        if state in (
            ProposalState.SUCCEEDED,
            ProposalState.EXECUTING,
            ProposalState.COMPLETED,
            ProposalState.EXECUTING_WITH_ERRORS,
        ):
            return cls.SUCCEEDED
        if state in (ProposalState.DEFEATED, ProposalState.CANCELLED, ProposalState.VETOED):
            return cls.FAILED
        return cls.ACTIVE


@dataclass(frozen=True)
class CreateMultisigResult:
    tx_signature: str
    multisig_key: Pubkey
    multisig_wallet: Pubkey

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_signature": self.tx_signature,
            "multisig_key": str(self.multisig_key),
            "multisig_wallet": str(self.multisig_wallet),
        }


@dataclass(frozen=True)
class CreateTransactionResult:
    tx_signature: str
    transaction_key: Pubkey

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_signature": self.tx_signature,
            "transaction_key": str(self.transaction_key),
        }


@dataclass(frozen=True)
class MultisigTransaction:
    """Display view of a multisig proposal."""

    key: Pubkey
    yes_vote: int
    no_vote: int
    status: TransactionStatus
    executed: bool
    multisig_key: Pubkey
    state: ProposalState = ProposalState.DRAFT
    title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": str(self.key),
            "title": self.title,
            "yes_vote": self.yes_vote,
            "no_vote": self.no_vote,
            "status": self.status.value,
            "state": self.state.name.lower(),
            "executed": self.executed,
            "multisig_key": str(self.multisig_key),
        }
