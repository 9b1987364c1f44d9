"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current identity from the request. The bearer token
is the ONLY source of the subject id. Request bodies may carry a
subjectId but it is ignored.

The IdentityAdmin lives on app.state so the app factory (and tests)
decide which identity provider backs the service.
"""

from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request

from accountflow.errors import GatewayError
from accountflow.gateway.base import Identity, IdentityAdmin

logger = structlog.get_logger()

_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def get_identity_admin(request: Request) -> IdentityAdmin:
    return request.app.state.identity_admin


async def get_current_identity(
    authorization: Optional[str] = Header(None),
    admin: IdentityAdmin = Depends(get_identity_admin),
) -> Identity:
    """Resolve the bearer token to an Identity (401 on any failure)."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail={"error": "Invalid Authorization header", "details": None},
            headers=_CHALLENGE,
        )

    token = authorization[7:].strip()
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"error": "Invalid Authorization header", "details": "Empty bearer token"},
            headers=_CHALLENGE,
        )

    try:
        identity = await admin.verify_bearer_token(token)
    except GatewayError as e:
        logger.info("auth.token_rejected", code=e.code)
        raise HTTPException(
            status_code=401,
            detail={"error": "Authentication failed", "details": e.message},
            headers=_CHALLENGE,
        )

    structlog.contextvars.bind_contextvars(subject_id=identity.subject_id)
    return identity
