#!/usr/bin/env python3
"""
AccountFlow Quickstart — the whole sign-up flow in one script.

Sign up → verify email → refresh → authenticated, then a federated
sign-in that has to complete its profile. Everything runs in-process:
the Profile Service app, a throwaway SQLite store, and the development
identity provider.

Run with: python examples/quickstart.py

Requires: pip install -e '.[test]'   (aiosqlite for the SQLite store)
"""

import asyncio
import tempfile
from pathlib import Path

from httpx import ASGITransport, AsyncClient

from accountflow.client import (
    LocalFederatedSignIn,
    ProfileClient,
    SessionController,
)
from accountflow.db.engine import close_engine, init_engine
from accountflow.gateway.local import LocalCredentialGateway, LocalIdentityProvider
from accountflow.main import create_app


def show(step: str, controller: SessionController) -> None:
    profile = controller.profile
    print(f"   {step:<28} state={controller.state.name:<26} phone={profile.phone!r}")


async def main():
    with tempfile.TemporaryDirectory() as tmp:
        await init_engine(f"sqlite+aiosqlite:///{Path(tmp) / 'profiles.db'}", create_schema=True)
        provider = LocalIdentityProvider(password_rounds=4)
        app = create_app(identity_admin=provider)

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://local/api/v1") as http:

            def controller_for(federated=None) -> SessionController:
                gateway = LocalCredentialGateway(provider)
                profiles = ProfileClient(gateway.mint_bearer_token, http=http)
                return SessionController(gateway, profiles, federated=federated)

            # ── Email / password ──────────────────────────────────────────
            print("1. Email sign-up")
            alice = controller_for()
            await alice.sign_up(
                "alice@example.com",
                "correct-horse",
                {"display_name": "Alice", "phone": "555-0100", "account_type": "staff"},
            )
            show("after sign_up", alice)
            print(f"   verification emails queued: {len(provider.outbox)}")

            await alice.refresh_verification_status()
            show("refresh (not clicked yet)", alice)

            provider.confirm_email(alice.profile.subject_id)  # the user clicks the link
            await alice.refresh_verification_status()
            show("refresh (clicked)", alice)
            print(f"   mirror repaired: {alice.profile.email_verified_mirror}")

            # ── Federated ─────────────────────────────────────────────────
            print("\n2. Federated sign-in")
            bob = controller_for(LocalFederatedSignIn("bob@example.com", "Bob"))
            await bob.sign_in_with_federated_provider()
            show("after federated sign-in", bob)
            print(f"   missing: {bob.state.missing_fields}")

            await bob.complete_profile({"phone": "555-0199"})
            show("after complete_profile", bob)

            await bob.logout()
            show("after logout", bob)

        await close_engine()


if __name__ == "__main__":
    asyncio.run(main())
