"""Identity provider contracts and the in-process development provider."""

from accountflow.gateway.base import (
    CredentialGateway,
    FederatedCredential,
    FederatedSession,
    Identity,
    IdentityAdmin,
    ProfileHint,
)
from accountflow.gateway.local import LocalCredentialGateway, LocalIdentityProvider

__all__ = [
    "CredentialGateway",
    "FederatedCredential",
    "FederatedSession",
    "Identity",
    "IdentityAdmin",
    "LocalCredentialGateway",
    "LocalIdentityProvider",
    "ProfileHint",
]
