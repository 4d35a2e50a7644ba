from enum import Enum


class LedgerErrorKind(str, Enum):
    NETWORK = "network"
    HTTP = "http"
    PARSE = "parse"


class VerificationError(Exception):
    """Base class for failures that end up as an indeterminate verdict."""


class ConfigurationError(VerificationError):
    """No ledger mapping (or no ledger connection) for the store."""


class ReferenceValidationError(VerificationError):
    """Reference is empty or too long; raised before any external call."""


class LedgerError(VerificationError):
    """Classified failure of a ledger read."""
    def __init__(self, kind: LedgerErrorKind, message: str, status_code: int = 0):
        super().__init__(f"{kind.value} error: {message}")
        self.kind = kind
        self.message = message
        self.status_code = status_code


class CascadeFailure(Exception):
    """Secondary cascade step failed. Logged and swallowed by the engine."""
    def __init__(self, delivery_id: int, step: str, cause: Exception):
        super().__init__(f"{step} failed for delivery #{delivery_id}: {cause}")
        self.delivery_id = delivery_id
        self.step = step
        self.cause = cause


class EntityNotFoundError(LookupError):
    def __init__(self, entity: str, entity_id: int):
        super().__init__(f"{entity} #{entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id
