"""Token and password helpers, and the local identity provider."""

import pytest

from accountflow.auth.passwords import hash_password, verify_password
from accountflow.auth.tokens import (
    FEDERATED_TOKEN,
    TokenError,
    create_federated_token,
    create_id_token,
    verify_token,
)
from accountflow.errors import GatewayError


# ═══════════════════════════════════════════════════════════
# Tokens
# ═══════════════════════════════════════════════════════════


def test_id_token_round_trip():
    claims = verify_token(create_id_token("sub-1", "a@example.com", True))
    assert claims["sub"] == "sub-1"
    assert claims["email"] == "a@example.com"
    assert claims["email_verified"] is True


def test_federated_token_is_not_an_id_token():
    token = create_federated_token("a@example.com", "Ana")
    with pytest.raises(TokenError):
        verify_token(token)
    assert verify_token(token, expected_type=FEDERATED_TOKEN)["name"] == "Ana"


def test_expired_token_rejected():
    token = create_id_token("sub-1", "a@example.com", True, expires_minutes=-1)
    with pytest.raises(TokenError, match="expired"):
        verify_token(token)


def test_garbage_token_rejected():
    with pytest.raises(TokenError):
        verify_token("not.a.token")


# ═══════════════════════════════════════════════════════════
# Passwords
# ═══════════════════════════════════════════════════════════


def test_password_hash_verifies():
    hashed = hash_password("secret123", rounds=4)
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)


# ═══════════════════════════════════════════════════════════
# LocalIdentityProvider
# ═══════════════════════════════════════════════════════════


def test_create_account_rules(provider):
    with pytest.raises(GatewayError) as exc:
        provider.create_account("not-an-email", "secret123")
    assert exc.value.code == "invalid-email"

    with pytest.raises(GatewayError) as exc:
        provider.create_account("a@example.com", "123")
    assert exc.value.code == "weak-password"

    provider.create_account("a@example.com", "secret123")
    with pytest.raises(GatewayError) as exc:
        provider.create_account("A@example.com", "secret123")
    assert exc.value.code == "email-already-in-use"


def test_check_password(provider):
    account = provider.create_account("a@example.com", "secret123")
    assert provider.check_password("a@example.com", "secret123") is account
    with pytest.raises(GatewayError) as exc:
        provider.check_password("a@example.com", "wrong")
    assert exc.value.code == "invalid-credential"


def test_federated_link_verifies_existing_account(provider):
    account = provider.create_account("a@example.com", "secret123")
    linked, hint = provider.link_federated(create_federated_token("a@example.com", "Ana"))
    assert linked is account
    assert linked.email_verified is True
    assert hint.display_name == "Ana"


@pytest.mark.asyncio
async def test_verify_bearer_token_reflects_live_account(provider):
    account = provider.create_account("a@example.com", "secret123")
    token = provider.issue_id_token(account.subject_id)
    provider.confirm_email(account.subject_id)

    identity = await provider.verify_bearer_token(token)
    assert identity.subject_id == account.subject_id
    assert identity.email_verified is True
