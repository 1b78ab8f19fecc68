import json
import logging
from unittest.mock import AsyncMock

import pytest
from solana.rpc.core import RPCException
from solders.keypair import Keypair

from conftest import proposal_data
from realms_multisig import cli
from realms_multisig.errors import ConfigurationError
from realms_multisig.governance.types import ProposalState


@pytest.fixture(autouse=True)
def restore_root_logger(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def wired(monkeypatch, fake_client, no_sleep):
    monkeypatch.setattr(cli, "connect", AsyncMock(return_value=fake_client))
    monkeypatch.setattr(cli, "load_keypair", lambda path=None: Keypair())
    return fake_client


class TestParser:
    def test_create(self):
        signers = [str(Keypair().pubkey()) for _ in range(2)]
        args = cli.build_parser().parse_args(
            ["create", "--threshold", "2", "--signer", signers[0], "--signer", signers[1], "--vote-duration", "60"]
        )
        assert args.threshold == 2
        assert args.signer == signers
        assert args.vote_duration == 60
        assert args.func is cli.cmd_create

    def test_global_options(self):
        args = cli.build_parser().parse_args(
            ["--rpc", "https://rpc.example", "--json", "--log-level", "debug", "show", "abc"]
        )
        assert args.rpc == "https://rpc.example"
        assert args.json is True
        assert args.log_level == "DEBUG"
        assert args.func is cli.cmd_show

    def test_propose_token(self):
        args = cli.build_parser().parse_args(["propose-token", "ms", "mint", "to", "1.25", "--title", "Grant"])
        assert (args.multisig, args.mint, args.recipient, args.amount, args.title) == ("ms", "mint", "to", "1.25", "Grant")

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestCommands:
    def test_show_prints_json(self, wired, multisig_accounts, capsys):
        args = cli.build_parser().parse_args(["--json", "show", str(multisig_accounts.proposal)])
        assert args.func(args) == 0

        payload = json.loads(capsys.readouterr().out)
        assert payload["key"] == str(multisig_accounts.proposal)
        assert payload["status"] == "active"
        assert payload["state"] == "voting"
        assert payload["multisig_key"] == str(multisig_accounts.realm)
        wired.close.assert_awaited_once()

    def test_list_text_output(self, wired, multisig_accounts, capsys):
        wired.add_account(
            Keypair().pubkey(),
            proposal_data(
                multisig_accounts.governance,
                multisig_accounts.council_mint,
                multisig_accounts.proposer_record,
                state=ProposalState.SUCCEEDED,
            ),
        )
        args = cli.build_parser().parse_args(["list", str(multisig_accounts.realm)])
        assert args.func(args) == 0

        out = capsys.readouterr().out
        assert f"wallet: {multisig_accounts.wallet}" in out
        assert out.count('"key"') == 2

    def test_execute_not_succeeded_exits_nonzero(self, wired, multisig_accounts, capsys):
        args = cli.build_parser().parse_args(["execute", str(multisig_accounts.proposal)])
        assert args.func(args) == 1
        assert "TX_003" in capsys.readouterr().out

    def test_invalid_address(self, wired, capsys):
        args = cli.build_parser().parse_args(["--json", "show", "not-a-key"])
        assert args.func(args) == 1
        payload = json.loads(capsys.readouterr().out)
        assert payload["error"]["code"] == "VAL_001"

    def test_missing_signer(self, monkeypatch, capsys):
        def no_keypair(path=None):
            raise ConfigurationError("No signer configured")

        monkeypatch.setattr(cli, "load_keypair", no_keypair)
        connect = AsyncMock()
        monkeypatch.setattr(cli, "connect", connect)
        args = cli.build_parser().parse_args(["show", str(Keypair().pubkey())])

        assert args.func(args) == 1
        assert "[ERROR] CFG_001: No signer configured" in capsys.readouterr().out
        connect.assert_not_awaited()

    def test_propose_sol(self, wired, multisig_accounts, capsys):
        recipient = Keypair().pubkey()
        args = cli.build_parser().parse_args(
            ["--json", "propose-sol", str(multisig_accounts.realm), str(recipient), "0.25"]
        )
        assert args.func(args) == 0
        payload = json.loads(capsys.readouterr().out)
        assert set(payload) == {"tx_signature", "transaction_key"}
        assert len(wired.sent) == 1

    def test_amount_beyond_u64(self, wired, multisig_accounts, capsys):
        args = cli.build_parser().parse_args(
            ["propose-sol", str(multisig_accounts.realm), str(Keypair().pubkey()), "20000000000"]
        )
        assert args.func(args) == 1
        assert "[ERROR] VAL_001" in capsys.readouterr().out
        assert wired.sent == []

    def test_rpc_failure_reported(self, wired, multisig_accounts, capsys):
        wired.get_account_info.side_effect = RPCException("Node is behind")
        args = cli.build_parser().parse_args(["show", str(multisig_accounts.proposal)])
        assert args.func(args) == 1
        assert "[ERROR] RPC_001" in capsys.readouterr().out
