"""M-of-N multisig client for the SPL Governance (Realms) program."""

from realms_multisig.config import MultisigConfig
from realms_multisig.errors import (
    AccountDecodeError,
    AccountNotFoundError,
    ConfigurationError,
    MultisigError,
    RpcRequestError,
    TransactionAlreadyExecutedError,
    TransactionFailedError,
    TransactionNotSucceededError,
    TransactionTooLargeError,
    ValidationError,
)
from realms_multisig.multisig import MultiSig
from realms_multisig.types import (
    CreateMultisigResult,
    CreateTransactionResult,
    MultisigTransaction,
    TransactionStatus,
)

__version__ = "0.1.0"

__all__ = [
    "MultiSig",
    "MultisigConfig",
    "CreateMultisigResult",
    "CreateTransactionResult",
    "MultisigTransaction",
    "TransactionStatus",
    "MultisigError",
    "RpcRequestError",
    "ValidationError",
    "ConfigurationError",
    "AccountNotFoundError",
    "AccountDecodeError",
    "TransactionFailedError",
    "TransactionTooLargeError",
    "TransactionNotSucceededError",
    "TransactionAlreadyExecutedError",
]
