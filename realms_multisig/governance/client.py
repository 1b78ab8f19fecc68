"""Read-side facade over the SPL Governance program accounts."""

from __future__ import annotations

import logging
from typing import List, Optional

import base58
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import MemcmpOpts
from solders.pubkey import Pubkey

from realms_multisig.errors import AccountDecodeError
from realms_multisig.governance import pda
from realms_multisig.governance.accounts import Governance, Proposal, ProposalTransaction, Realm
from realms_multisig.governance.program_id import PROGRAM_ID
from realms_multisig.governance.types import GovernanceAccountType
from realms_multisig.rpc import rpc_request

logger = logging.getLogger(__name__)


class SplGovernance:
    """Fetches and decodes governance accounts for one program deployment."""

    def __init__(
        self,
        connection: AsyncClient,
        program_id: Optional[Pubkey] = None,
        commitment: Commitment = Confirmed,
    ):
        self.connection = connection
        self.program_id = program_id or PROGRAM_ID
        self.commitment = commitment

    async def get_realm(self, realm: Pubkey) -> Realm:
        return await Realm.fetch(self.connection, realm, self.commitment, self.program_id)

    async def get_governance(self, governance: Pubkey) -> Governance:
        return await Governance.fetch(self.connection, governance, self.commitment, self.program_id)

    async def get_proposal(self, proposal: Pubkey) -> Proposal:
        return await Proposal.fetch(self.connection, proposal, self.commitment, self.program_id)

    async def get_proposal_transaction(self, proposal_transaction: Pubkey) -> ProposalTransaction:
        return await ProposalTransaction.fetch(
            self.connection, proposal_transaction, self.commitment, self.program_id
        )

    async def get_proposal_transaction_for(
        self, proposal: Pubkey, option_index: int = 0, index: int = 0
    ) -> ProposalTransaction:
        address = pda.derive_proposal_transaction_pda(proposal, option_index, index, self.program_id)
        return await self.get_proposal_transaction(address)

    async def get_proposals_for_governance(self, governance: Pubkey) -> List[Proposal]:
        """All ProposalV2 accounts whose governance field matches ``governance``."""
        filters = [
            MemcmpOpts(offset=0, bytes=base58.b58encode(bytes([GovernanceAccountType.PROPOSAL_V2])).decode()),
            MemcmpOpts(offset=1, bytes=str(governance)),
        ]
        with rpc_request(f"getProgramAccounts {self.program_id}"):
            resp = await self.connection.get_program_accounts(
                self.program_id,
                commitment=self.commitment,
                encoding="base64",
                filters=filters,
            )
        proposals: List[Proposal] = []
        for keyed in resp.value or []:
            try:
                proposals.append(Proposal.decode(bytes(keyed.account.data), keyed.pubkey))
            except AccountDecodeError as exc:
                logger.warning(f"Skipping undecodable proposal {keyed.pubkey}: {exc.message}")
        logger.debug(f"Found {len(proposals)} proposals for governance {str(governance)[:8]}...")
        return proposals
