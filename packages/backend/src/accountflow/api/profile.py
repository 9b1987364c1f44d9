"""Profile API routes.

Learn: Routes handle HTTP concerns (status codes, error responses),
the ProfileService handles business logic. Every route depends on
get_current_identity first, so a bad token is rejected with 401
before any store access.

- POST /profile              → idempotent upsert (201 created / 200 updated)
- GET /profile               → the caller's record, or 404 (a normal answer)
- POST /profile/verify-email → mark verified at the provider + mirror
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from accountflow.auth.dependencies import get_current_identity, get_identity_admin
from accountflow.db.engine import get_db
from accountflow.errors import GatewayError
from accountflow.gateway.base import Identity, IdentityAdmin
from accountflow.schemas.profile import EmailVerificationRead, ProfilePatch, ProfileRecord
from accountflow.services.profile_service import ProfileService

router = APIRouter(prefix="/profile")


def _svc(
    db: AsyncSession = Depends(get_db),
    admin: IdentityAdmin = Depends(get_identity_admin),
) -> ProfileService:
    return ProfileService(db, admin)


async def _read_patch(request: Request) -> ProfilePatch:
    """Parse the body after authentication has run; empty body is an empty patch."""
    raw = await request.body()
    if not raw.strip():
        return ProfilePatch()
    try:
        return ProfilePatch.model_validate_json(raw)
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Malformed request body",
                "details": jsonable_encoder(e.errors(include_url=False, include_context=False)),
            },
        )


@router.post(
    "",
    response_model=ProfileRecord,
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": ProfilePatch.model_json_schema(by_alias=True)}},
        }
    },
)
async def upsert_profile(
    request: Request,
    response: Response,
    identity: Identity = Depends(get_current_identity),
    svc: ProfileService = Depends(_svc),
):
    """Create or merge-patch the caller's profile.

    Learn: The body is read by hand instead of as a typed parameter.
    FastAPI decodes typed bodies before running dependencies, which would
    answer 400 to an unauthenticated request with a bad body; the token
    must be checked first.
    """
    patch = await _read_patch(request)
    result = await svc.upsert_profile(identity, patch)
    response.status_code = 201 if result.created else 200
    return result.profile


@router.get("", response_model=ProfileRecord)
async def get_profile(
    identity: Identity = Depends(get_current_identity),
    svc: ProfileService = Depends(_svc),
):
    profile = await svc.get_profile(identity)
    if profile is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "Profile not found", "details": None},
        )
    return profile


@router.post("/verify-email", response_model=EmailVerificationRead)
async def verify_email(
    identity: Identity = Depends(get_current_identity),
    svc: ProfileService = Depends(_svc),
):
    """Mark the caller's email verified and mirror the flag into the profile."""
    try:
        result = await svc.verify_email(identity)
    except GatewayError as e:
        raise HTTPException(
            status_code=500,
            detail={"error": "Internal server error", "details": e.message},
        )
    return EmailVerificationRead(subject_id=result.subject_id, mirrored=result.mirrored)
