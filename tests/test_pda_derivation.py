"""
test_pda_derivation.py: Tests for deterministic SPL Governance PDA derivation.

Tests:
    1. Realm PDA is deterministic and rejects names over 32 bytes
    2. Multisig governance is seeded with its own realm
    3. Multisig wallet is the native treasury of that governance
    4. Proposal transaction PDA range-checks option and index
    5. A custom program id yields different addresses
"""

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from realms_multisig.constants import GOVERNANCE_PROGRAM_ID
from realms_multisig.governance import pda
from realms_multisig.governance.program_id import PROGRAM_ID

# Test wallet (known Solana devnet address, no funds)
TEST_WALLET = Pubkey.from_string("9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM")
REALM_NAME = "Multisig 1700000000000 42"


class TestProgramId:
    def test_default_program_is_spl_governance(self):
        assert PROGRAM_ID == GOVERNANCE_PROGRAM_ID
        assert str(PROGRAM_ID) == "GovER5Lthms3bLBqWub97yVrMmEogzX7xNjdXpPPCVZw"


class TestRealmPda:
    def test_is_deterministic(self):
        assert pda.derive_realm_pda(REALM_NAME) == pda.derive_realm_pda(REALM_NAME)

    def test_matches_find_program_address(self):
        expected, _ = Pubkey.find_program_address([b"governance", REALM_NAME.encode()], GOVERNANCE_PROGRAM_ID)
        assert pda.derive_realm_pda(REALM_NAME) == expected

    def test_different_names_differ(self):
        assert pda.derive_realm_pda("Multisig a") != pda.derive_realm_pda("Multisig b")

    def test_rejects_long_name(self):
        with pytest.raises(ValueError, match="exceeds 32 bytes"):
            pda.derive_realm_pda("x" * 33)

    def test_accepts_32_byte_name(self):
        assert isinstance(pda.derive_realm_pda("x" * 32), Pubkey)

    def test_custom_program_id(self):
        other_program = Keypair().pubkey()
        assert pda.derive_realm_pda(REALM_NAME, other_program) != pda.derive_realm_pda(REALM_NAME)


class TestMultisigAddresses:
    def test_governance_seeded_with_realm(self):
        realm = pda.derive_realm_pda(REALM_NAME)
        assert pda.derive_multisig_governance(realm) == pda.derive_governance_pda(realm, realm)

    def test_governance_seed_layout(self):
        realm = pda.derive_realm_pda(REALM_NAME)
        expected, _ = Pubkey.find_program_address(
            [b"account-governance", bytes(realm), bytes(realm)], GOVERNANCE_PROGRAM_ID
        )
        assert pda.derive_multisig_governance(realm) == expected

    def test_wallet_is_native_treasury(self):
        realm = pda.derive_realm_pda(REALM_NAME)
        governance = pda.derive_multisig_governance(realm)
        expected, _ = Pubkey.find_program_address([b"native-treasury", bytes(governance)], GOVERNANCE_PROGRAM_ID)
        assert pda.derive_multisig_wallet(realm) == expected

    def test_wallet_is_off_curve(self):
        realm = pda.derive_realm_pda(REALM_NAME)
        assert not pda.derive_multisig_wallet(realm).is_on_curve()


class TestTokenOwnerRecordPda:
    def test_depends_on_owner(self):
        realm = pda.derive_realm_pda(REALM_NAME)
        mint = Keypair().pubkey()
        first = pda.derive_token_owner_record_pda(realm, mint, TEST_WALLET)
        second = pda.derive_token_owner_record_pda(realm, mint, Keypair().pubkey())
        assert first != second

    def test_seed_layout(self):
        realm = pda.derive_realm_pda(REALM_NAME)
        mint = Keypair().pubkey()
        expected, _ = Pubkey.find_program_address(
            [b"governance", bytes(realm), bytes(mint), bytes(TEST_WALLET)], GOVERNANCE_PROGRAM_ID
        )
        assert pda.derive_token_owner_record_pda(realm, mint, TEST_WALLET) == expected


class TestProposalTransactionPda:
    def test_index_encoded_little_endian(self):
        proposal = Keypair().pubkey()
        expected, _ = Pubkey.find_program_address(
            [b"governance", bytes(proposal), bytes([0]), (258).to_bytes(2, "little")],
            GOVERNANCE_PROGRAM_ID,
        )
        assert pda.derive_proposal_transaction_pda(proposal, 0, 258) == expected

    def test_option_and_index_change_address(self):
        proposal = Keypair().pubkey()
        base = pda.derive_proposal_transaction_pda(proposal)
        assert pda.derive_proposal_transaction_pda(proposal, 1, 0) != base
        assert pda.derive_proposal_transaction_pda(proposal, 0, 1) != base

    @pytest.mark.parametrize("option_index,index", [(-1, 0), (256, 0), (0, -1), (0, 65536)])
    def test_rejects_out_of_range(self, option_index, index):
        with pytest.raises(ValueError):
            pda.derive_proposal_transaction_pda(Keypair().pubkey(), option_index, index)


class TestRecordPdas:
    def test_vote_record_and_signatory_record_share_seed_shape(self):
        proposal = Keypair().pubkey()
        key = Keypair().pubkey()
        assert pda.derive_vote_record_pda(proposal, key) == pda.derive_signatory_record_pda(proposal, key)

    def test_proposal_deposit_depends_on_payer(self):
        proposal = Keypair().pubkey()
        assert pda.derive_proposal_deposit_pda(proposal, TEST_WALLET) != pda.derive_proposal_deposit_pda(
            proposal, Keypair().pubkey()
        )

    def test_realm_config_seed(self):
        realm = pda.derive_realm_pda(REALM_NAME)
        expected, _ = Pubkey.find_program_address([b"realm-config", bytes(realm)], GOVERNANCE_PROGRAM_ID)
        assert pda.derive_realm_config_pda(realm) == expected
