"""Account decoding and the SplGovernance read facade."""

import pytest
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from solders.system_program import TransferParams, transfer

from conftest import governance_data, proposal_data, proposal_transaction_data, realm_data
from realms_multisig.errors import AccountDecodeError, AccountNotFoundError, RpcRequestError
from realms_multisig.governance import pda
from realms_multisig.governance.accounts import Governance, Proposal, ProposalTransaction, Realm
from realms_multisig.governance.client import SplGovernance
from realms_multisig.governance.types import (
    GovernanceAccountType,
    InstructionData,
    ProposalState,
    TransactionExecutionStatus,
    VoteThreshold,
    VoteTipping,
)


class TestRealmDecode:
    def test_decodes_fields(self):
        community, council, authority = (Keypair().pubkey() for _ in range(3))
        realm = Realm.decode(realm_data("Multisig 1 2", community, council, authority))
        assert realm.name == "Multisig 1 2"
        assert realm.community_mint == community
        assert realm.council_mint == council
        assert realm.authority == authority
        assert realm.community_mint_max_voter_weight_source.kind == "SupplyFraction"

    def test_realm_without_council(self):
        realm = Realm.decode(realm_data("dao", Keypair().pubkey(), None, None))
        assert realm.council_mint is None
        assert realm.authority is None


class TestGovernanceDecode:
    def test_decodes_multisig_config(self):
        realm = Keypair().pubkey()
        governance = Governance.decode(governance_data(realm, threshold=2, signer_count=3))
        assert governance.realm == realm
        assert governance.governance_seed == realm
        assert governance.config.council_vote_threshold == VoteThreshold.yes_vote_percentage(66)
        assert governance.config.community_vote_threshold == VoteThreshold.disabled()
        assert governance.config.council_vote_tipping is VoteTipping.STRICT
        assert governance.config.voting_base_time == 86_400


class TestProposalDecode:
    def test_decodes_votes_and_state(self):
        governance, mint, record = (Keypair().pubkey() for _ in range(3))
        proposal = Proposal.decode(
            proposal_data(governance, mint, record, state=ProposalState.SUCCEEDED, yes_votes=2, no_votes=1)
        )
        assert proposal.state is ProposalState.SUCCEEDED
        assert proposal.governance == governance
        assert proposal.token_owner_record == record
        assert proposal.yes_vote_weight == 2
        assert proposal.deny_vote_weight == 1
        assert proposal.options[0].label == "Approve"
        assert proposal.executing_at is None
        assert proposal.vote_threshold == VoteThreshold.yes_vote_percentage(66)
        assert proposal.name == "Pay contributor"

    def test_executing_at(self):
        data = proposal_data(Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey(), executing_at=1_700_000_500)
        assert Proposal.decode(data).executing_at == 1_700_000_500

    def test_wrong_account_type(self):
        data = realm_data("dao", Keypair().pubkey(), None, None)
        with pytest.raises(AccountDecodeError) as exc_info:
            Proposal.decode(data)
        assert exc_info.value.account_type == GovernanceAccountType.REALM_V2

    def test_empty_data(self):
        with pytest.raises(AccountDecodeError, match="Empty account data"):
            Proposal.decode(b"")

    def test_truncated_data(self):
        data = proposal_data(Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey())
        with pytest.raises(AccountDecodeError, match="Malformed Proposal"):
            Proposal.decode(data[:60])

    def test_unknown_state(self):
        data = bytearray(proposal_data(Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()))
        data[65] = 42  # state byte follows account_type, governance and mint
        with pytest.raises(AccountDecodeError):
            Proposal.decode(bytes(data))


class TestProposalTransactionDecode:
    def test_round_trips_instructions(self):
        proposal = Keypair().pubkey()
        inner = transfer(TransferParams(from_pubkey=Keypair().pubkey(), to_pubkey=Keypair().pubkey(), lamports=9))
        decoded = ProposalTransaction.decode(proposal_transaction_data(proposal, [inner, inner]))
        assert decoded.proposal == proposal
        assert decoded.instructions == [InstructionData.from_instruction(inner)] * 2
        assert decoded.instructions[0].to_instruction() == inner
        assert decoded.execution_status is TransactionExecutionStatus.NONE
        assert decoded.executed_at is None


class TestFetch:
    @pytest.mark.asyncio
    async def test_missing_account(self, fake_client):
        address = Keypair().pubkey()
        with pytest.raises(AccountNotFoundError) as exc_info:
            await Realm.fetch(fake_client, address)
        assert exc_info.value.address == str(address)

    @pytest.mark.asyncio
    async def test_wrong_owner(self, fake_client):
        address = Keypair().pubkey()
        fake_client.add_account(address, realm_data("dao", Keypair().pubkey(), None, None), owner=Keypair().pubkey())
        with pytest.raises(AccountDecodeError, match="is not owned by"):
            await Realm.fetch(fake_client, address)

    @pytest.mark.asyncio
    async def test_rpc_failure(self, fake_client):
        fake_client.get_account_info.side_effect = RPCException("connection reset")
        with pytest.raises(RpcRequestError, match="getAccountInfo"):
            await Realm.fetch(fake_client, Keypair().pubkey())

    @pytest.mark.asyncio
    async def test_sets_address(self, fake_client):
        address = Keypair().pubkey()
        fake_client.add_account(address, realm_data("dao", Keypair().pubkey(), None, None))
        realm = await Realm.fetch(fake_client, address)
        assert realm.address == address


class TestSplGovernance:
    @pytest.mark.asyncio
    async def test_get_proposal_transaction_for(self, fake_client):
        proposal = Keypair().pubkey()
        inner = transfer(TransferParams(from_pubkey=Keypair().pubkey(), to_pubkey=Keypair().pubkey(), lamports=1))
        fake_client.add_account(
            pda.derive_proposal_transaction_pda(proposal), proposal_transaction_data(proposal, [inner])
        )
        client = SplGovernance(fake_client)
        stored = await client.get_proposal_transaction_for(proposal)
        assert stored.instructions[0].program_id == inner.program_id

    @pytest.mark.asyncio
    async def test_proposals_filtered_by_governance(self, fake_client, multisig_accounts):
        other_governance = Keypair().pubkey()
        fake_client.add_account(
            Keypair().pubkey(),
            proposal_data(other_governance, multisig_accounts.council_mint, multisig_accounts.proposer_record),
        )
        client = SplGovernance(fake_client)
        proposals = await client.get_proposals_for_governance(multisig_accounts.governance)
        assert [p.address for p in proposals] == [multisig_accounts.proposal]

    @pytest.mark.asyncio
    async def test_skips_undecodable_proposals(self, fake_client, multisig_accounts, caplog):
        broken = Keypair().pubkey()
        valid = proposal_data(
            multisig_accounts.governance, multisig_accounts.council_mint, multisig_accounts.proposer_record
        )
        fake_client.add_account(broken, valid[:70])
        client = SplGovernance(fake_client)
        proposals = await client.get_proposals_for_governance(multisig_accounts.governance)
        assert [p.address for p in proposals] == [multisig_accounts.proposal]
        assert "Skipping undecodable proposal" in caplog.text
