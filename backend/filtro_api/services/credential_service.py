import logging
from typing import Optional
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool
from filtro_api.auth import (
    ClientPrincipal,
    Principal,
    authenticate,
    bearer_token,
    check_access,
    client_claims,
    compile_permissions,
    create_token,
    route_path,
    user_claims,
)
from filtro_api.exceptions import ApiError
from filtro_api.models.app_user import AppUser
from filtro_api.models.client import Client
from filtro_api.passwords import verify_secret

logger = logging.getLogger(__name__)

INLINE_CREDENTIAL_KEYS = ("client_id", "client_secret", "clientId", "clientSecret")


class CredentialService:
    """OAuth2 grants and credential checks against the Client/AppUser store."""

    async def authenticate_client(self, db: AsyncSession, client_id: str, client_secret: str) -> Client:
        result = await db.execute(select(Client).where(Client.client_id == client_id))
        client = result.scalar_one_or_none()
        if not client or not client.is_active:
            logger.warning("Rejected credentials for unknown or disabled client %s", client_id)
            raise ApiError(401, "invalid_client")
        if not await run_in_threadpool(verify_secret, client_secret, client.secret_hash):
            logger.warning("Rejected secret for client %s", client_id)
            raise ApiError(401, "invalid_client")
        return client

    async def client_credentials_grant(
        self,
        db: AsyncSession,
        client_id: str,
        client_secret: str,
        scope: Optional[str] = None,
    ) -> dict:
        client = await self.authenticate_client(db, client_id, client_secret)
        configured = list(client.scopes or [])

        if scope:
            requested = [s for s in scope.split(" ") if s]
            invalid = [s for s in requested if s not in configured]
            if invalid:
                raise ApiError(400, "invalid_scope", invalid_scopes=invalid)
            granted = requested
        else:
            granted = configured

        token, expires_in = create_token(client_claims(client, granted))
        logger.info("Issued client token for %s (scopes: %s)", client.client_id, " ".join(granted))
        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": expires_in,
            "scope": " ".join(granted),
        }

    async def password_grant(self, db: AsyncSession, email: str, password: str) -> dict:
        email = email.strip().lower()
        result = await db.execute(select(AppUser).where(AppUser.email == email))
        user = result.scalar_one_or_none()
        if not user or not user.is_active:
            logger.warning("Rejected login for unknown or disabled user %s", email)
            raise ApiError(401, "invalid_user")
        if not await run_in_threadpool(verify_secret, password, user.password_hash):
            logger.warning("Rejected password for user %s", email)
            raise ApiError(401, "invalid_user")

        claims = user_claims(user)
        token, expires_in = create_token(claims)
        logger.info("Issued portal token for %s (role: %s)", user.email, user.role)
        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": expires_in,
            "scope": " ".join(claims["scopes"]),
            "role": user.role,
            "companyCode": user.company_code,
        }

    async def authorize_webhook(
        self,
        request: Request,
        body: dict,
        db: AsyncSession,
        required_scope: str,
    ) -> Principal:
        """
        Bearer token if present, otherwise inline ``client_id``/``client_secret`` from the body.
        Both paths apply the admin bypass, the ``required_scope`` check and the permission match.
        """
        method, path = request.method, route_path(request)

        if bearer_token(request):
            principal = authenticate(request)
            if principal.actor_type == "user" and not principal.is_admin:
                raise ApiError(403, "user_token_not_allowed")
            check_access(principal, method, path, [required_scope], permissions=True)
            return principal

        client_id = str(body.get("client_id") or body.get("clientId") or "").strip()
        client_secret = str(body.get("client_secret") or body.get("clientSecret") or "").strip()
        if not client_id or not client_secret:
            raise ApiError(401, "missing_client_credentials")

        client = await self.authenticate_client(db, client_id, client_secret)
        principal = ClientPrincipal(
            subject=client.client_id,
            scopes=list(client.scopes or []),
            permissions=compile_permissions(client.permissions),
            is_admin=bool(client.is_admin),
            company_codes=list(client.company_codes or []),
        )
        check_access(principal, method, path, [required_scope], permissions=True)
        return principal


def strip_inline_credentials(payload: dict) -> dict:
    """Copy of ``payload`` without any embedded client credentials."""
    return {k: v for k, v in payload.items() if k not in INLINE_CREDENTIAL_KEYS}


credential_service = CredentialService()
