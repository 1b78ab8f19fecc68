import json
import logging

from realms_multisig.logging_config import (
    JSONFormatter,
    OperationContext,
    StructuredFormatter,
    correlation_id_var,
    multisig_var,
    operation_var,
    proposal_var,
    short_key,
)


def _record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("realms_multisig.test", logging.INFO, __file__, 1, message, None, None)


def test_short_key() -> None:
    assert short_key("GovER5Lthms3bLBqWub97yVrMmEogzX7xNjdXpPPCVZw") == "GovER5Lt...CVZw"
    assert short_key("short") == "short"


def test_operation_context_sets_and_resets() -> None:
    with OperationContext("execute", multisig="RealmKey", proposal="ProposalKey") as ctx:
        assert correlation_id_var.get() == ctx.correlation_id
        assert multisig_var.get() == "RealmKey"
        assert proposal_var.get() == "ProposalKey"
    assert correlation_id_var.get() is None
    assert multisig_var.get() is None
    assert proposal_var.get() is None


def test_nested_contexts_restore_outer() -> None:
    with OperationContext("outer", multisig="A"):
        with OperationContext("inner", multisig="B"):
            assert multisig_var.get() == "B"
        assert multisig_var.get() == "A"


def test_json_formatter_includes_context() -> None:
    with OperationContext("create", multisig="RealmKey", correlation_id="abc-123"):
        payload = json.loads(JSONFormatter(extra_fields={"service": "multisig"}).format(_record()))
    assert payload["message"] == "hello"
    assert payload["correlation_id"] == "abc-123"
    assert payload["multisig"] == "RealmKey"
    assert payload["service"] == "multisig"
    assert "proposal" not in payload


def test_structured_formatter_abbreviates_keys() -> None:
    key = "GovER5Lthms3bLBqWub97yVrMmEogzX7xNjdXpPPCVZw"
    with OperationContext("vote", proposal=key, correlation_id="0123456789"):
        line = StructuredFormatter(use_color=False).format(_record("voting"))
    assert "voting" in line
    assert "correlation_id=01234567" in line
    assert f"proposal={short_key(key)}" in line
    assert key not in line


def test_operation_name_is_logged() -> None:
    with OperationContext("execute_transaction", multisig="RealmKey"):
        payload = json.loads(JSONFormatter().format(_record()))
        line = StructuredFormatter(use_color=False).format(_record())
    assert payload["operation"] == "execute_transaction"
    assert "op=execute_transaction" in line
    assert operation_var.get() is None
