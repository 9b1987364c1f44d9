"""Client half: the session state machine and its Profile Service client."""

from accountflow.client.federated import FederatedSignIn, LocalFederatedSignIn
from accountflow.client.session import SessionController
from accountflow.client.state import (
    Authenticated,
    Authenticating,
    AuthState,
    Failed,
    NeedsAdditionalInfo,
    NeedsEmailVerification,
    SignedOut,
    SigningIn,
)
from accountflow.client.transfer import ProfileClient

__all__ = [
    "AuthState",
    "Authenticated",
    "Authenticating",
    "Failed",
    "FederatedSignIn",
    "LocalFederatedSignIn",
    "NeedsAdditionalInfo",
    "NeedsEmailVerification",
    "ProfileClient",
    "SessionController",
    "SignedOut",
    "SigningIn",
]
