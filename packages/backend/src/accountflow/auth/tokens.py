"""JWT bearer token minting and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
The development identity provider signs two kinds of token:
- id: proves an identity to the Profile Service (sub, email, email_verified)
- federated: what a federated sign-in SDK hands back (email, name)

The Profile Service only ever sees id tokens.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from accountflow.config import settings

ID_TOKEN = "id"
FEDERATED_TOKEN = "federated"


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def _encode(payload: dict, expires_minutes: Optional[int]) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **payload,
        "iss": settings.token_issuer,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or settings.token_expire_minutes),
    }
    return jwt.encode(payload, settings.token_secret, algorithm=settings.token_algorithm)


def create_id_token(
    subject_id: str,
    email: str,
    email_verified: bool,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a bearer token for the Profile Service."""
    return _encode(
        {
            "sub": subject_id,
            "type": ID_TOKEN,
            "email": email,
            "email_verified": email_verified,
        },
        expires_minutes,
    )


def create_federated_token(
    email: str,
    name: str = "",
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a federated credential as a sign-in SDK would return it."""
    return _encode(
        {
            "sub": f"federated:{email}",
            "type": FEDERATED_TOKEN,
            "email": email,
            "name": name,
        },
        expires_minutes,
    )


def verify_token(token: str, expected_type: str = ID_TOKEN) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token,
            settings.token_secret,
            algorithms=[settings.token_algorithm],
            issuer=settings.token_issuer,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != expected_type:
        raise TokenError(f"Expected a {expected_type} token")
    return payload
