"""
M-of-N multisig operations on top of SPL Governance.

A multisig is a realm with a membership council mint (one token per
member) and a single governance whose native treasury is the multisig
wallet. Each multisig transaction is a proposal with one "Approve" option
and one inserted proposal transaction. Vote tallying, lifecycle and custody
are enforced on chain; this class only composes and submits instructions.

Usage:
    multisig = MultiSig(client, payer)
    created = await multisig.create_multisig(2, [alice, bob, carol])
    ix = multisig.get_sol_transfer_instruction(created.multisig_key, 1, recipient)
    proposal = await multisig.create_transaction(created.multisig_key, "Pay", [ix])
"""

from __future__ import annotations

import logging
import random
import time
from typing import List, Optional, Sequence

from solana.rpc.async_api import AsyncClient
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from realms_multisig import token
from realms_multisig.config import MultisigConfig
from realms_multisig.constants import (
    DEFAULT_VOTE_DURATION_SECONDS,
    DEPOSIT_EXEMPT_PROPOSAL_COUNT,
    DISABLED_VOTER_WEIGHT,
    MINT_ACCOUNT_SIZE,
)
from realms_multisig.errors import (
    TransactionAlreadyExecutedError,
    TransactionFailedError,
    TransactionNotSucceededError,
    ValidationError,
)
from realms_multisig.governance import instructions as gov_ix
from realms_multisig.governance import pda
from realms_multisig.governance.accounts import Proposal
from realms_multisig.governance.client import SplGovernance
from realms_multisig.governance.types import (
    GovernanceConfig,
    GoverningTokenType,
    SetRealmAuthorityAction,
    Vote,
    VoteThreshold,
    VoteTipping,
)
from realms_multisig.logging_config import OperationContext, short_key
from realms_multisig.rpc import build_transaction, rpc_request, send_and_confirm
from realms_multisig.token import Amount
from realms_multisig.types import (
    CreateMultisigResult,
    CreateTransactionResult,
    MultisigTransaction,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

APPROVE_OPTION = "Approve"


def threshold_percentage(threshold: int, signer_count: int) -> int:
    """Council yes-vote percentage for an M-of-N multisig, rounded down."""
    return (threshold * 100) // signer_count


def multisig_governance_config(threshold: int, signer_count: int, vote_duration: int) -> GovernanceConfig:
    """Council-only governance: strict tipping, no veto, anyone on the council may propose."""
    return GovernanceConfig(
        community_vote_threshold=VoteThreshold.disabled(),
        min_community_weight_to_create_proposal=DISABLED_VOTER_WEIGHT,
        min_transaction_hold_up_time=0,
        voting_base_time=vote_duration,
        community_vote_tipping=VoteTipping.DISABLED,
        council_vote_threshold=VoteThreshold.yes_vote_percentage(threshold_percentage(threshold, signer_count)),
        council_veto_vote_threshold=VoteThreshold.disabled(),
        min_council_weight_to_create_proposal=1,
        council_vote_tipping=VoteTipping.STRICT,
        community_veto_vote_threshold=VoteThreshold.disabled(),
        voting_cool_off_time=0,
        deposit_exempt_proposal_count=DEPOSIT_EXEMPT_PROPOSAL_COUNT,
    )


def _validate_multisig_params(threshold: int, signers: Sequence[Pubkey]) -> None:
    if threshold > len(signers):
        raise ValidationError(
            "The threshold exceeds the signers' count.",
            {"threshold": threshold, "signers": len(signers)},
        )
    if not signers:
        raise ValidationError("A multisig needs at least one signer.")
    if threshold < 1:
        raise ValidationError(f"The threshold must be at least 1, got {threshold}.")
    if len(set(signers)) != len(signers):
        raise ValidationError("The signers contain duplicate addresses.")
    if threshold_percentage(threshold, len(signers)) < 1:
        raise ValidationError(
            f"A threshold of {threshold} of {len(signers)} rounds down to 0%.",
            {"threshold": threshold, "signers": len(signers)},
        )


def _realm_name() -> str:
    return f"Multisig {int(time.time() * 1000)} {random.randint(0, 99999)}"


class MultiSig:
    """Multisig operations for one payer against one governance deployment."""

    def __init__(
        self,
        connection: AsyncClient,
        payer: Keypair,
        program_id: Optional[Pubkey] = None,
        config: Optional[MultisigConfig] = None,
    ):
        self.connection = connection
        self.payer = payer
        self.config = config or MultisigConfig()
        self.program_id = program_id or self.config.program_id
        self.spl_governance = SplGovernance(connection, self.program_id, self.config.rpc_commitment)

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    def governance_address(self, multisig_key: Pubkey) -> Pubkey:
        return pda.derive_multisig_governance(multisig_key, self.program_id)

    def wallet_address(self, multisig_key: Pubkey) -> Pubkey:
        return pda.derive_multisig_wallet(multisig_key, self.program_id)

    async def _council_mint(self, multisig_key: Pubkey) -> Pubkey:
        realm = await self.spl_governance.get_realm(multisig_key)
        if realm.council_mint is None:
            raise ValidationError(f"Realm {multisig_key} has no council mint and is not a multisig")
        return realm.council_mint

    def _token_owner_record(self, multisig_key: Pubkey, council_mint: Pubkey) -> Pubkey:
        return pda.derive_token_owner_record_pda(multisig_key, council_mint, self.payer.pubkey(), self.program_id)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def _send(self, instructions: Sequence[Instruction], signers: Sequence[Keypair] = ()) -> str:
        result = await send_and_confirm(
            self.connection,
            instructions,
            self.payer,
            signers,
            commitment=self.config.rpc_commitment,
            simulate=self.config.simulate,
            max_retries=self.config.max_retries,
            confirm_timeout=self.config.confirm_timeout,
        )
        if not result.success:
            message = result.error_hint or result.simulation_error or result.error or "transaction failed"
            raise TransactionFailedError(f"Transaction failed: {message}", result)
        return result.signature

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_multisig(
        self,
        threshold: int,
        signers: Sequence[Pubkey],
        vote_duration: Optional[int] = None,
    ) -> CreateMultisigResult:
        """
        Create an M-of-N multisig.

        Args:
            threshold: Minimum number of approvals needed to execute
            signers: Every member of the multisig
            vote_duration: Voting window in seconds (default one day)

        Returns:
            The creation signature, the multisig key (realm) and the
            multisig wallet (native treasury)
        """
        _validate_multisig_params(threshold, signers)
        if vote_duration is None:
            vote_duration = self.config.vote_duration or DEFAULT_VOTE_DURATION_SECONDS
        if vote_duration <= 0:
            raise ValidationError(f"Vote duration must be positive, got {vote_duration}")

        payer = self.payer.pubkey()
        realm_name = _realm_name()
        realm = pda.derive_realm_pda(realm_name, self.program_id)
        governance = self.governance_address(realm)
        native_treasury = self.wallet_address(realm)

        with OperationContext("create_multisig", multisig=realm):
            community_mint = Keypair()
            council_mint = Keypair()

            ixs: List[Instruction] = [
                gov_ix.create_realm(
                    name=realm_name,
                    community_token_mint=community_mint.pubkey(),
                    realm_authority=payer,
                    payer=payer,
                    min_community_weight_to_create_governance=DISABLED_VOTER_WEIGHT,
                    council_token_mint=council_mint.pubkey(),
                    community_token_type=GoverningTokenType.DORMANT,
                    council_token_type=GoverningTokenType.MEMBERSHIP,
                    program_id=self.program_id,
                )
            ]

            for signer in signers:
                ixs.append(
                    gov_ix.create_token_owner_record(
                        realm=realm,
                        governing_token_owner=signer,
                        governing_token_mint=council_mint.pubkey(),
                        payer=payer,
                        program_id=self.program_id,
                    )
                )
                # The record exists already, so the member does not sign
                ixs.append(
                    gov_ix.deposit_governing_tokens(
                        realm=realm,
                        governing_token_mint=council_mint.pubkey(),
                        governing_token_source=council_mint.pubkey(),
                        governing_token_owner=signer,
                        governing_token_source_authority=payer,
                        payer=payer,
                        amount=1,
                        owner_is_signer=False,
                        program_id=self.program_id,
                    )
                )

            ixs.append(
                gov_ix.create_governance(
                    realm=realm,
                    governance_seed=realm,
                    config=multisig_governance_config(threshold, len(signers), vote_duration),
                    payer=payer,
                    create_authority=payer,
                    program_id=self.program_id,
                )
            )
            ixs.append(gov_ix.create_native_treasury(governance=governance, payer=payer, program_id=self.program_id))
            ixs.append(token.set_mint_authority_instruction(community_mint.pubkey(), payer, native_treasury))
            ixs.append(token.set_mint_authority_instruction(council_mint.pubkey(), payer, native_treasury))
            ixs.append(
                gov_ix.set_realm_authority(
                    realm=realm,
                    realm_authority=payer,
                    action=SetRealmAuthorityAction.SET_CHECKED,
                    new_realm_authority=governance,
                    program_id=self.program_id,
                )
            )

            # Size-check the realm transaction before the mints cost any rent
            build_transaction(ixs, self.payer, Hash.default())
            await self._create_mints(community_mint, council_mint)

            logger.info(f"Creating {threshold}-of-{len(signers)} multisig {realm_name!r}")
            signature = await self._send(ixs)
            logger.info(f"Multisig {short_key(realm)} created, wallet {short_key(native_treasury)}")

        return CreateMultisigResult(tx_signature=signature, multisig_key=realm, multisig_wallet=native_treasury)

    async def _create_mints(self, community_mint: Keypair, council_mint: Keypair) -> str:
        """Create the zero-decimal community and council mints, payer as mint authority."""
        payer = self.payer.pubkey()
        with rpc_request("getMinimumBalanceForRentExemption"):
            rent = (await self.connection.get_minimum_balance_for_rent_exemption(MINT_ACCOUNT_SIZE)).value
        ixs: List[Instruction] = []
        for mint in (community_mint, council_mint):
            ixs.extend(
                token.create_mint_instructions(
                    payer=payer,
                    mint=mint.pubkey(),
                    mint_authority=payer,
                    lamports=rent,
                    decimals=0,
                )
            )
        signature = await self._send(ixs, [community_mint, council_mint])
        logger.info(
            f"Created community mint {short_key(community_mint.pubkey())} "
            f"and council mint {short_key(council_mint.pubkey())}"
        )
        return signature

    # ------------------------------------------------------------------
    # Transfer instructions
    # ------------------------------------------------------------------

    async def get_token_transfer_instructions(
        self,
        multisig_key: Pubkey,
        mint: Pubkey,
        amount: Amount,
        recipient: Pubkey,
    ) -> List[Instruction]:
        """Instructions that move ``amount`` UI units of ``mint`` out of the multisig wallet.

        The recipient's associated token account is created first when it
        does not exist yet, paid for by the multisig wallet.
        """
        native_treasury = self.wallet_address(multisig_key)
        source = token.associated_token_address(mint, native_treasury)
        destination = token.associated_token_address(mint, recipient)

        with rpc_request(f"getTokenSupply {mint}"):
            supply = await self.connection.get_token_supply(mint)
        decimals = supply.value.decimals
        base_units = token.to_base_units(amount, decimals)

        ixs: List[Instruction] = []
        with rpc_request(f"getAccountInfo {destination}"):
            existing = await self.connection.get_account_info(destination)
        if existing.value is None:
            logger.debug(f"Recipient token account {short_key(destination)} missing, adding create instruction")
            ixs.append(token.create_associated_token_account_instruction(native_treasury, recipient, mint))

        ixs.append(token.transfer_instruction(source, destination, native_treasury, base_units))
        return ixs

    def get_sol_transfer_instruction(self, multisig_key: Pubkey, amount: Amount, recipient: Pubkey) -> Instruction:
        return token.sol_transfer_instruction(
            self.wallet_address(multisig_key), recipient, token.sol_to_lamports(amount)
        )

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    async def create_transaction(
        self,
        multisig_key: Pubkey,
        title: str,
        instructions: Sequence[Instruction],
    ) -> CreateTransactionResult:
        """Propose ``instructions`` and cast the proposer's approval in one transaction."""
        if not instructions:
            raise ValidationError("A multisig transaction needs at least one instruction.")

        payer = self.payer.pubkey()
        governance = self.governance_address(multisig_key)
        council_mint = await self._council_mint(multisig_key)
        token_owner_record = self._token_owner_record(multisig_key, council_mint)
        proposal_seed = Keypair().pubkey()
        proposal = pda.derive_proposal_pda(governance, council_mint, proposal_seed, self.program_id)

        with OperationContext("create_transaction", multisig=multisig_key, proposal=proposal):
            ixs = [
                gov_ix.create_proposal(
                    realm=multisig_key,
                    governance=governance,
                    proposal_owner_record=token_owner_record,
                    governing_token_mint=council_mint,
                    governance_authority=payer,
                    payer=payer,
                    proposal_seed=proposal_seed,
                    name=title,
                    options=[APPROVE_OPTION],
                    description_link="",
                    use_deny_option=True,
                    program_id=self.program_id,
                ),
                gov_ix.insert_transaction(
                    governance=governance,
                    proposal=proposal,
                    token_owner_record=token_owner_record,
                    governance_authority=payer,
                    payer=payer,
                    instructions=instructions,
                    option_index=0,
                    index=0,
                    hold_up_time=0,
                    program_id=self.program_id,
                ),
                gov_ix.sign_off_proposal(
                    realm=multisig_key,
                    governance=governance,
                    proposal=proposal,
                    signatory=payer,
                    proposal_owner_record=token_owner_record,
                    program_id=self.program_id,
                ),
                gov_ix.cast_vote(
                    realm=multisig_key,
                    governance=governance,
                    proposal=proposal,
                    proposal_owner_record=token_owner_record,
                    voter_token_owner_record=token_owner_record,
                    governance_authority=payer,
                    vote_governing_token_mint=council_mint,
                    payer=payer,
                    vote=Vote.approve(),
                    program_id=self.program_id,
                ),
            ]
            logger.info(f"Proposing {title!r} with {len(instructions)} instruction(s)")
            signature = await self._send(ixs)

        return CreateTransactionResult(tx_signature=signature, transaction_key=proposal)

    async def _vote(self, multisig_key: Pubkey, transaction_key: Pubkey, vote: Vote) -> str:
        payer = self.payer.pubkey()
        council_mint = await self._council_mint(multisig_key)
        proposal = await self.spl_governance.get_proposal(transaction_key)

        with OperationContext(f"vote_{vote.kind.lower()}", multisig=multisig_key, proposal=transaction_key):
            ix = gov_ix.cast_vote(
                realm=multisig_key,
                governance=self.governance_address(multisig_key),
                proposal=transaction_key,
                proposal_owner_record=proposal.token_owner_record,
                voter_token_owner_record=self._token_owner_record(multisig_key, council_mint),
                governance_authority=payer,
                vote_governing_token_mint=council_mint,
                payer=payer,
                vote=vote,
                program_id=self.program_id,
            )
            logger.info(f"Casting {vote.kind} vote")
            return await self._send([ix])

    async def approve_transaction(self, multisig_key: Pubkey, transaction_key: Pubkey) -> str:
        return await self._vote(multisig_key, transaction_key, Vote.approve())

    async def reject_transaction(self, multisig_key: Pubkey, transaction_key: Pubkey) -> str:
        return await self._vote(multisig_key, transaction_key, Vote.deny())

    async def execute_transaction(self, transaction_key: Pubkey) -> str:
        """Execute an approved multisig transaction.

        Raises:
            TransactionNotSucceededError: the proposal has not passed
            TransactionAlreadyExecutedError: execution already started
        """
        status = await self.get_transaction(transaction_key)
        if status.status is not TransactionStatus.SUCCEEDED:
            raise TransactionNotSucceededError(
                "The transaction does not succeed.",
                {"transaction": str(transaction_key), "state": status.state.name.lower()},
            )
        if status.executed:
            raise TransactionAlreadyExecutedError(
                f"Transaction {transaction_key} was already executed",
                {"transaction": str(transaction_key)},
            )

        governance = self.governance_address(status.multisig_key)
        native_treasury = self.wallet_address(status.multisig_key)

        with OperationContext("execute_transaction", multisig=status.multisig_key, proposal=transaction_key):
            proposal_transaction = await self.spl_governance.get_proposal_transaction_for(transaction_key)

            accounts: List[AccountMeta] = []
            for stored in proposal_transaction.instructions:
                accounts.append(AccountMeta(pubkey=stored.program_id, is_signer=False, is_writable=False))
                for meta in stored.accounts:
                    # The treasury PDA is signed for by the program
                    is_signer = meta.is_signer and meta.pubkey != native_treasury
                    accounts.append(AccountMeta(pubkey=meta.pubkey, is_signer=is_signer, is_writable=meta.is_writable))

            ix = gov_ix.execute_transaction(
                governance=governance,
                proposal=transaction_key,
                proposal_transaction=proposal_transaction.address,
                instruction_accounts=accounts,
                program_id=self.program_id,
            )
            logger.info(f"Executing {len(proposal_transaction.instructions)} instruction(s)")
            return await self._send([ix])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def _to_transaction(proposal: Proposal, multisig_key: Pubkey) -> MultisigTransaction:
        return MultisigTransaction(
            key=proposal.address,
            yes_vote=proposal.yes_vote_weight,
            no_vote=proposal.deny_vote_weight or 0,
            status=TransactionStatus.from_proposal_state(proposal.state),
            executed=proposal.executing_at is not None,
            multisig_key=multisig_key,
            state=proposal.state,
            title=proposal.name,
        )

    async def get_transaction(self, transaction_key: Pubkey) -> MultisigTransaction:
        proposal = await self.spl_governance.get_proposal(transaction_key)
        governance = await self.spl_governance.get_governance(proposal.governance)
        return self._to_transaction(proposal, governance.realm)

    async def get_transactions_for_multisig(self, multisig_key: Pubkey) -> List[MultisigTransaction]:
        proposals = await self.spl_governance.get_proposals_for_governance(self.governance_address(multisig_key))
        return [self._to_transaction(proposal, multisig_key) for proposal in proposals]
