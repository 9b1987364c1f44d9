"""Federated sign-in SDK contract.

Learn: The federated provider (e.g. Google) runs its own interactive
flow and hands back an id token plus basic profile details. We only
need two calls from it: sign_in() and sign_out().
"""

from abc import ABC, abstractmethod

from accountflow.auth.tokens import create_federated_token
from accountflow.errors import GatewayError
from accountflow.gateway.base import FederatedCredential


class FederatedSignIn(ABC):
    @abstractmethod
    async def sign_in(self) -> FederatedCredential:
        """Run the provider's flow; raises GatewayError if the user bails out."""

    @abstractmethod
    async def sign_out(self) -> None:
        ...


class LocalFederatedSignIn(FederatedSignIn):
    """Development stand-in: always signs in as the configured account.

    The token it returns is accepted by LocalIdentityProvider.
    """

    def __init__(self, email: str, display_name: str = ""):
        self.email = email
        self.display_name = display_name
        self.signed_in = False

    async def sign_in(self) -> FederatedCredential:
        if not self.email:
            raise GatewayError("federated-cancelled", "Federated sign-in was cancelled")
        self.signed_in = True
        return FederatedCredential(
            id_token=create_federated_token(self.email, self.display_name),
            email=self.email,
            display_name=self.display_name,
        )

    async def sign_out(self) -> None:
        self.signed_in = False
