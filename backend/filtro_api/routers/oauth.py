from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from filtro_api.database import get_db
from filtro_api.schemas.oauth import (
    ClientCredentialsRequest,
    PasswordGrantRequest,
    TokenResponse,
    UserTokenResponse,
)
from filtro_api.services.credential_service import credential_service

router = APIRouter()


@router.post("/token", response_model=TokenResponse)
async def client_token(body: ClientCredentialsRequest, db: AsyncSession = Depends(get_db)):
    """client_credentials grant. ``scope`` narrows the client's configured scopes; never widens them."""
    return await credential_service.client_credentials_grant(
        db, body.client_id, body.client_secret, body.scope
    )


@router.post("/user-token", response_model=UserTokenResponse)
async def user_token(body: PasswordGrantRequest, db: AsyncSession = Depends(get_db)):
    """password grant for portal users. Always scope ``portal``; authorization is role based."""
    return await credential_service.password_grant(db, body.email, body.password)
