"""SPL Governance bindings: PDAs, instruction builders and account decoders."""

from realms_multisig.governance.accounts import Governance, Proposal, ProposalOption, ProposalTransaction, Realm
from realms_multisig.governance.client import SplGovernance
from realms_multisig.governance.program_id import PROGRAM_ID

__all__ = [
    "PROGRAM_ID",
    "SplGovernance",
    "Realm",
    "Governance",
    "Proposal",
    "ProposalOption",
    "ProposalTransaction",
]
