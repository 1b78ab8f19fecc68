"""
Shared fixtures for the realms-multisig test suite.

The fake RPC client answers the handful of JSON-RPC calls the package
makes from an in-memory account map, and records every raw transaction it
is asked to send so tests can decode and inspect them. No network access.
"""

import base58
import pytest
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from realms_multisig.constants import DISABLED_VOTER_WEIGHT, FULL_SUPPLY_FRACTION, GOVERNANCE_PROGRAM_ID
from realms_multisig.governance import pda
from realms_multisig.governance.accounts import Governance, Proposal, ProposalTransaction, Realm
from realms_multisig.governance.types import GovernanceAccountType, InstructionData, ProposalState
from realms_multisig.multisig import multisig_governance_config

ENV_VARS = (
    "MULTISIG_RPC_URL",
    "MULTISIG_RPC_FALLBACK_URLS",
    "MULTISIG_PROGRAM_ID",
    "MULTISIG_COMMITMENT",
    "MULTISIG_KEYPAIR_PATH",
    "MULTISIG_KEYPAIR_B58",
    "MULTISIG_VOTE_DURATION",
    "MULTISIG_CONFIRM_TIMEOUT",
    "MULTISIG_MAX_RETRIES",
    "MULTISIG_SIMULATE",
    "MULTISIG_LOG_LEVEL",
    "MULTISIG_LOG_JSON",
    "MULTISIG_RPC_TIMEOUT_MS",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep host MULTISIG_* variables (and anything .env loads) out of tests."""
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    yield


@pytest.fixture(autouse=True)
def fresh_circuit_breakers():
    from realms_multisig.rpc import reset_circuit_breakers

    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


# ==============================================================================
# Account data builders
# ==============================================================================


def realm_data(name: str, community_mint: Pubkey, council_mint: Optional[Pubkey], authority: Optional[Pubkey]) -> bytes:
    return Realm.layout.build(
        {
            "account_type": int(GovernanceAccountType.REALM_V2),
            "community_mint": community_mint,
            "config": {
                "legacy1": 0,
                "legacy2": 0,
                "min_community_weight_to_create_governance": DISABLED_VOTER_WEIGHT,
                "community_mint_max_voter_weight_source": {"SupplyFraction": {"item_0": FULL_SUPPLY_FRACTION}},
                "council_mint": council_mint,
            },
            "legacy1": 0,
            "authority": authority,
            "name": name,
        }
    )


def governance_data(realm: Pubkey, threshold: int = 2, signer_count: int = 3) -> bytes:
    return Governance.layout.build(
        {
            "account_type": int(GovernanceAccountType.GOVERNANCE_V2),
            "realm": realm,
            "governance_seed": realm,
            "reserved1": 0,
            "config": multisig_governance_config(threshold, signer_count, 86_400).to_encodable(),
        }
    )


def proposal_data(
    governance: Pubkey,
    council_mint: Pubkey,
    token_owner_record: Pubkey,
    state: ProposalState = ProposalState.VOTING,
    yes_votes: int = 1,
    no_votes: int = 0,
    executing_at: Optional[int] = None,
    name: str = "Pay contributor",
) -> bytes:
    return Proposal.layout.build(
        {
            "account_type": int(GovernanceAccountType.PROPOSAL_V2),
            "governance": governance,
            "governing_token_mint": council_mint,
            "state": int(state),
            "token_owner_record": token_owner_record,
            "signatories_count": 1,
            "signatories_signed_off_count": 1,
            "vote_type": {"SingleChoice": {}},
            "options": [
                {
                    "label": "Approve",
                    "vote_weight": yes_votes,
                    "vote_result": 0,
                    "transactions_executed_count": 0,
                    "transactions_count": 1,
                    "transactions_next_index": 1,
                }
            ],
            "deny_vote_weight": no_votes,
            "reserved1": 0,
            "abstain_vote_weight": None,
            "start_voting_at": None,
            "draft_at": 1_700_000_000,
            "signing_off_at": 1_700_000_000,
            "voting_at": 1_700_000_000,
            "voting_at_slot": 250_000_000,
            "voting_completed_at": None,
            "executing_at": executing_at,
            "closed_at": None,
            "execution_flags": 0,
            "max_vote_weight": 3,
            "max_voting_time": None,
            "vote_threshold": {"YesVotePercentage": {"item_0": 66}},
            "name": name,
            "description_link": "",
        }
    )


def proposal_transaction_data(proposal: Pubkey, instructions: List[Instruction]) -> bytes:
    return ProposalTransaction.layout.build(
        {
            "account_type": int(GovernanceAccountType.PROPOSAL_TRANSACTION_V2),
            "proposal": proposal,
            "option_index": 0,
            "transaction_index": 0,
            "hold_up_time": 0,
            "instructions": [InstructionData.from_instruction(ix).to_encodable() for ix in instructions],
            "executed_at": None,
            "execution_status": 0,
        }
    )


# ==============================================================================
# Fake RPC client
# ==============================================================================


class FakeRpcClient:
    """In-memory stand-in for ``solana.rpc.async_api.AsyncClient``."""

    def __init__(self, token_decimals: int = 6):
        self.accounts: Dict[Pubkey, Tuple[Pubkey, bytes]] = {}
        self.sent: List[bytes] = []
        self.token_decimals = token_decimals
        self.simulation_errors: List[Optional[str]] = []
        self.status_errors: List[Optional[str]] = []

        self.get_latest_blockhash = AsyncMock(
            return_value=SimpleNamespace(
                value=SimpleNamespace(blockhash=Hash.default(), last_valid_block_height=1_000)
            )
        )
        self.get_block_height = AsyncMock(return_value=SimpleNamespace(value=10))
        self.get_minimum_balance_for_rent_exemption = AsyncMock(return_value=SimpleNamespace(value=1_461_600))
        self.get_token_supply = AsyncMock(side_effect=self._token_supply)
        self.get_account_info = AsyncMock(side_effect=self._account_info)
        self.get_program_accounts = AsyncMock(side_effect=self._program_accounts)
        self.simulate_transaction = AsyncMock(side_effect=self._simulate)
        self.send_raw_transaction = AsyncMock(side_effect=self._send_raw)
        self.get_signature_statuses = AsyncMock(side_effect=self._signature_statuses)
        self.close = AsyncMock()

    def add_account(self, address: Pubkey, data: bytes, owner: Pubkey = GOVERNANCE_PROGRAM_ID) -> None:
        self.accounts[address] = (owner, data)

    def _token_supply(self, mint, *args, **kwargs):
        return SimpleNamespace(value=SimpleNamespace(decimals=self.token_decimals, amount="0"))

    def _account_info(self, address, *args, **kwargs):
        entry = self.accounts.get(address)
        if entry is None:
            return SimpleNamespace(value=None)
        owner, data = entry
        return SimpleNamespace(value=SimpleNamespace(owner=owner, data=data, lamports=1, executable=False))

    def _program_accounts(self, program_id, *args, filters=None, **kwargs):
        matches = []
        for address, (owner, data) in self.accounts.items():
            if owner != program_id:
                continue
            ok = True
            for memcmp in filters or []:
                expected = base58.b58decode(memcmp.bytes)
                if data[memcmp.offset : memcmp.offset + len(expected)] != expected:
                    ok = False
                    break
            if ok:
                matches.append(SimpleNamespace(pubkey=address, account=SimpleNamespace(data=data, owner=owner)))
        return SimpleNamespace(value=matches)

    def _simulate(self, tx, *args, **kwargs):
        err = self.simulation_errors.pop(0) if self.simulation_errors else None
        return SimpleNamespace(value=SimpleNamespace(err=err, logs=["Program log: simulated"]))

    def _send_raw(self, raw, *args, **kwargs):
        self.sent.append(bytes(raw))
        return SimpleNamespace(value=VersionedTransaction.from_bytes(bytes(raw)).signatures[0])

    def _signature_statuses(self, signatures, *args, **kwargs):
        err = self.status_errors.pop(0) if self.status_errors else None
        return SimpleNamespace(
            value=[SimpleNamespace(err=err, confirmation_status=TransactionConfirmationStatus.Confirmed)]
        )


def decode_sent(raw: bytes) -> List[Tuple[Pubkey, bytes, List[Pubkey]]]:
    """(program_id, data, accounts) for every instruction of a sent transaction."""
    message = VersionedTransaction.from_bytes(raw).message
    keys = list(message.account_keys)
    return [
        (keys[ix.program_id_index], bytes(ix.data), [keys[i] for i in bytes(ix.accounts)])
        for ix in message.instructions
    ]


@pytest.fixture
def fake_client() -> FakeRpcClient:
    return FakeRpcClient()


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def no_sleep(monkeypatch):
    sleep = AsyncMock()
    monkeypatch.setattr("realms_multisig.rpc.asyncio.sleep", sleep)
    return sleep


@pytest.fixture
def multisig_accounts(fake_client, payer):
    """A 2-of-3 multisig with one proposal voting, loaded into the fake client."""
    realm = pda.derive_realm_pda("Multisig 1700000000000 42")
    community_mint = Keypair().pubkey()
    council_mint = Keypair().pubkey()
    governance = pda.derive_multisig_governance(realm)
    proposer_record = pda.derive_token_owner_record_pda(realm, council_mint, Keypair().pubkey())
    proposal = pda.derive_proposal_pda(governance, council_mint, Keypair().pubkey())

    fake_client.add_account(realm, realm_data("Multisig 1700000000000 42", community_mint, council_mint, governance))
    fake_client.add_account(governance, governance_data(realm))
    fake_client.add_account(proposal, proposal_data(governance, council_mint, proposer_record))

    return SimpleNamespace(
        realm=realm,
        governance=governance,
        wallet=pda.derive_native_treasury_pda(governance),
        council_mint=council_mint,
        community_mint=community_mint,
        proposer_record=proposer_record,
        proposal=proposal,
    )
