"""Authentication endpoints for operator access."""

from __future__ import annotations

from fastapi import APIRouter

from .. import schemas
from ..security import CallerIdentity, authenticate_operator, create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token", response_model=schemas.TokenResponse)
def obtain_access_token(payload: schemas.LoginRequest) -> schemas.TokenResponse:
    """Authenticate an operator and return an access token bound to their organisation."""

    identity: CallerIdentity = authenticate_operator(payload.username, payload.password)
    token = create_access_token(identity)
    return schemas.TokenResponse(access_token=token)
