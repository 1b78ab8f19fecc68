"""Custom exception hierarchy."""
from typing import Any, Dict, Optional


class MultisigError(Exception):
    """Base exception for all multisig errors."""
    code: str = "MSIG_000"

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(MultisigError):
    """Input validation failed."""
    code = "VAL_001"


class ConfigurationError(MultisigError):
    """Configuration error."""
    code = "CFG_001"


class AccountNotFoundError(MultisigError):
    """On-chain account does not exist."""
    code = "ACC_001"

    def __init__(self, message: str, address: str = None):
        super().__init__(message, {"address": address})
        self.address = address


class AccountDecodeError(MultisigError):
    """Account data could not be decoded as the expected governance account."""
    code = "ACC_002"

    def __init__(self, message: str, address: str = None, account_type: Optional[int] = None):
        super().__init__(message, {"address": address, "account_type": account_type})
        self.address = address
        self.account_type = account_type


class TransactionFailedError(MultisigError):
    """Submission or confirmation of a transaction failed."""
    code = "TX_001"

    def __init__(self, message: str, result: Any = None):
        details = result.to_dict() if result is not None and hasattr(result, "to_dict") else {}
        super().__init__(message, details)
        self.result = result

    @property
    def retryable(self) -> bool:
        return bool(getattr(self.result, "retryable", False))


class TransactionTooLargeError(MultisigError):
    """Serialized transaction exceeds the packet size limit."""
    code = "TX_002"

    def __init__(self, message: str, size: int = 0, limit: int = 0):
        super().__init__(message, {"size": size, "limit": limit})
        self.size = size
        self.limit = limit


class TransactionNotSucceededError(MultisigError):
    """Multisig transaction has not been approved."""
    code = "TX_003"


class TransactionAlreadyExecutedError(MultisigError):
    """Multisig transaction was already executed."""
    code = "TX_004"


class RpcRequestError(MultisigError):
    """An RPC read failed at the node or transport level."""
    code = "RPC_001"
