"""Error taxonomy shared by the service and the client.

Learn: Four failure families, one per subsystem:
- ValidationError: bad input caught locally, never reaches the network
- GatewayError: the identity provider said no (bad credentials, expired
  token, transport failure)
- TransferError: HTTP-level failure talking to the Profile Service
- StoreError: persistence failure inside the service

PreconditionError is separate: the caller invoked a session operation
from a state that does not allow it.
"""

from typing import Any, Optional


class AccountFlowError(Exception):
    """Base class for every expected failure in this package."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AccountFlowError):
    """Locally checked input is invalid (e.g. unknown account type)."""


class GatewayError(AccountFlowError):
    """The identity provider rejected or failed a call."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code

    def __repr__(self) -> str:
        return f"GatewayError(code={self.code!r}, message={self.message!r})"


class TransferError(AccountFlowError):
    """Non-2xx status or malformed body from the Profile Service.

    status_code is None when the request never got a response.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class StoreError(AccountFlowError):
    """The profile store failed to read or write."""


class PreconditionError(AccountFlowError):
    """A session operation was invoked from a state that forbids it."""

    def __init__(self, operation: str, state: str):
        super().__init__(f"{operation} is not allowed while {state}")
        self.operation = operation
        self.state = state
