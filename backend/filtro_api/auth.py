"""
Auth module: token minting/validation, principals and the per-route guard.

Tokens are signed JWTs carrying a snapshot of the caller's authorization claims
(scopes, permissions, admin flag). Editing or disabling a Client/AppUser does not
touch tokens already issued; they stay valid until ``exp``.

Two actor shapes exist, discriminated by the ``actorType`` claim:
  - "client": machine credential (client_credentials grant)
  - "user":   portal operator (password grant), always scoped to "portal"
"""

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union
from jose import jwt, JWTError
from fastapi import Request
from filtro_api.config import get_settings
from filtro_api.exceptions import ApiError

logger = logging.getLogger(__name__)

PORTAL_SCOPE = "portal"
SUPER_ADMIN = "super_admin"


@dataclass(frozen=True)
class Permission:
    """A ``{method, path}`` pair. ``path`` is a regular expression searched in the route path."""
    method: str
    path: str
    pattern: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    @classmethod
    def compile(cls, raw: dict) -> "Permission":
        method = str(raw.get("method") or "").upper()
        path = str(raw.get("path") or "")
        try:
            pattern = re.compile(path)
        except re.error:
            # Uncompilable patterns never match
            logger.warning("Ignoring invalid permission pattern %r", path)
            pattern = None
        return cls(method=method, path=path, pattern=pattern)

    def allows(self, method: str, path: str) -> bool:
        if self.pattern is None or self.method != method.upper():
            return False
        return self.pattern.search(path) is not None

    def to_claim(self) -> dict:
        return {"method": self.method, "path": self.path}


def compile_permissions(raw: Optional[Iterable]) -> list[Permission]:
    return [Permission.compile(p) for p in (raw or []) if isinstance(p, dict)]


@dataclass
class _Principal:
    subject: str
    scopes: list = field(default_factory=list)
    permissions: list = field(default_factory=list)  # list[Permission]
    is_admin: bool = False

    def has_scopes(self, required: Optional[Iterable[str]]) -> bool:
        return all(s in self.scopes for s in (required or ()))

    def is_allowed(self, method: str, path: str) -> bool:
        """An empty permission list never allows anything."""
        return any(p.allows(method, path) for p in self.permissions)


@dataclass
class ClientPrincipal(_Principal):
    actor_type: str = field(default="client", init=False)
    company_codes: list = field(default_factory=list)


@dataclass
class UserPrincipal(_Principal):
    actor_type: str = field(default="user", init=False)
    role: str = "company_user"
    company_code: Optional[str] = None
    user_id: Optional[int] = None
    external_user_id: Optional[int] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN


Principal = Union[ClientPrincipal, UserPrincipal]


def client_claims(client, scopes: list[str]) -> dict:
    """Claim-set for a Client model instance and an already validated scope list."""
    return {
        "sub": client.client_id,
        "actorType": "client",
        "scopes": list(scopes),
        "perms": [p.to_claim() for p in compile_permissions(client.permissions)],
        "isAdmin": bool(client.is_admin),
        "companyCodes": list(client.company_codes or []),
    }


def user_claims(user) -> dict:
    """Claim-set for an AppUser model instance."""
    return {
        "sub": user.email,
        "actorType": "user",
        "scopes": [PORTAL_SCOPE],
        "perms": [],
        "isAdmin": user.role == SUPER_ADMIN,
        "role": user.role,
        "companyCode": user.company_code,
        "userId": user.id,
        "externalUserId": user.external_user_id,
    }


def create_token(claims: dict) -> tuple[str, int]:
    """Sign ``claims``. Returns ``(token, expires_in)``; every call yields a distinct token."""
    settings = get_settings()
    now = int(time.time())
    payload = {
        **claims,
        "iat": now,
        "exp": now + settings.token_ttl_seconds,
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return token, settings.token_ttl_seconds


def principal_from_claims(payload: dict) -> Optional[Principal]:
    common = dict(
        subject=str(payload["sub"]),
        scopes=list(payload.get("scopes") or []),
        permissions=compile_permissions(payload.get("perms")),
        is_admin=bool(payload.get("isAdmin", False)),
    )
    actor_type = payload.get("actorType", "client")
    if actor_type == "client":
        return ClientPrincipal(company_codes=list(payload.get("companyCodes") or []), **common)
    if actor_type == "user":
        return UserPrincipal(
            role=payload.get("role") or "company_user",
            company_code=payload.get("companyCode"),
            user_id=payload.get("userId"),
            external_user_id=payload.get("externalUserId"),
            **common,
        )
    return None


def decode_token(token: str) -> Optional[Principal]:
    """Decode and validate a JWT. Returns None if invalid/expired/malformed."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if not isinstance(payload, dict) or not payload.get("sub"):
        return None
    return principal_from_claims(payload)


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def route_path(request: Request) -> str:
    """Full request path, router prefix included, without the query string."""
    return request.url.path


def authenticate(request: Request) -> Principal:
    token = bearer_token(request)
    principal = decode_token(token) if token else None
    if principal is None:
        raise ApiError(401, "unauthorized")
    return principal


def check_access(
    principal: Principal,
    method: str,
    path: str,
    scopes: Optional[Iterable[str]] = None,
    permissions: bool = False,
) -> None:
    """Admin bypass, then scope superset, then (optionally) method+path permission match."""
    if principal.is_admin:
        return
    if not principal.has_scopes(scopes):
        raise ApiError(403, "insufficient_scopes")
    if permissions and not principal.is_allowed(method, path):
        raise ApiError(403, "not_allowed")


class RequireAuth:
    """
    Route dependency declaring the route's requirement, e.g.
    ``Depends(RequireAuth(scopes=["read"], permissions=True))``.
    Routes without ``auth`` simply do not declare it.
    """

    def __init__(self, scopes: Optional[list[str]] = None, permissions: bool = False):
        self.scopes = list(scopes or [])
        self.permissions = permissions

    async def __call__(self, request: Request) -> Principal:
        principal = authenticate(request)
        check_access(principal, request.method, route_path(request), self.scopes, self.permissions)
        return principal
