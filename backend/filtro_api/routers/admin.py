import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from starlette.concurrency import run_in_threadpool
from filtro_api.auth import Principal, RequireAuth
from filtro_api.database import get_db
from filtro_api.exceptions import ApiError, already_exists, invalid_request, not_found
from filtro_api.models.app_user import AppUser
from filtro_api.models.client import Client
from filtro_api.models.company import Company
from filtro_api.passwords import generate_secret, hash_secret
from filtro_api.schemas.admin import (
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    CompanyCreate,
    CompanyResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from filtro_api.services.submission_service import can_see_private, submission_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def require_admin(principal: Principal = Depends(RequireAuth())) -> Principal:
    if not principal.is_admin and "admin" not in principal.scopes:
        raise ApiError(403, "admin_only")
    return principal


async def require_super_admin(principal: Principal = Depends(RequireAuth())) -> Principal:
    if not can_see_private(principal):
        raise ApiError(403, "super_admin_only")
    return principal


def _client_response(client: Client) -> ClientResponse:
    return ClientResponse(
        clientId=client.client_id,
        companyCodes=client.company_codes or [],
        scopes=client.scopes or [],
        permissions=client.permissions or [],
        isAdmin=bool(client.is_admin),
        status=client.status,
        createdAt=client.created_at,
        updatedAt=client.updated_at,
    )


def _user_response(user: AppUser) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        fullName=user.full_name,
        role=user.role,
        companyCode=user.company_code,
        externalUserId=user.external_user_id,
        status=user.status,
        createdAt=user.created_at,
    )


def _codes(values: list[str]) -> list[str]:
    return list(dict.fromkeys(v.strip().lower() for v in values if v.strip()))


async def _get_client(db: AsyncSession, client_id: str) -> Client:
    result = await db.execute(select(Client).where(Client.client_id == client_id))
    client = result.scalar_one_or_none()
    if not client:
        raise not_found("client")
    return client


# --- Clients ---------------------------------------------------------------

@router.post("/clients", status_code=201)
async def create_client(
    data: ClientCreate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    existing = await db.scalar(select(Client.id).where(Client.client_id == data.client_id))
    if existing:
        raise already_exists("client")

    raw_secret = data.client_secret or generate_secret()
    client = Client(
        client_id=data.client_id,
        secret_hash=await run_in_threadpool(hash_secret, raw_secret),
        company_codes=_codes(data.company_codes),
        scopes=data.scopes,
        permissions=[p.model_dump() for p in data.permissions],
        is_admin=data.is_admin,
        status="active",
    )
    db.add(client)
    await db.flush()
    await db.refresh(client)
    logger.info("Client %s created by %s", client.client_id, admin.subject)

    # The raw secret is only ever returned here
    return {**_client_response(client).model_dump(), "clientSecret": raw_secret}


@router.get("/clients")
async def list_clients(db: AsyncSession = Depends(get_db), admin: Principal = Depends(require_admin)):
    result = await db.execute(select(Client).order_by(Client.client_id))
    return {"clients": [_client_response(c) for c in result.scalars().all()]}


@router.patch("/clients/{client_id}")
async def update_client(
    client_id: str,
    data: ClientUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    client = await _get_client(db, client_id)

    raw_secret = data.client_secret or (generate_secret() if data.rotate_secret else None)
    if raw_secret:
        client.secret_hash = await run_in_threadpool(hash_secret, raw_secret)
    if data.company_codes is not None:
        client.company_codes = _codes(data.company_codes)
    if data.scopes is not None:
        client.scopes = data.scopes
    if data.permissions is not None:
        client.permissions = [p.model_dump() for p in data.permissions]
    if data.is_admin is not None:
        client.is_admin = data.is_admin
    if data.status is not None:
        client.status = data.status

    await db.flush()
    await db.refresh(client)
    logger.info("Client %s updated by %s", client.client_id, admin.subject)

    response = _client_response(client).model_dump()
    if raw_secret:
        response["clientSecret"] = raw_secret
    return response


@router.delete("/clients/{client_id}")
async def delete_client(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    client = await _get_client(db, client_id)
    await db.delete(client)
    await db.flush()
    logger.info("Client %s deleted by %s", client_id, admin.subject)
    return {"deleted": True, "clientId": client_id}


# --- Users -----------------------------------------------------------------

@router.post("/users", status_code=201, response_model=UserResponse)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    email = data.email.strip().lower()
    existing = await db.scalar(select(AppUser.id).where(AppUser.email == email))
    if existing:
        raise already_exists("user")

    user = AppUser(
        email=email,
        full_name=data.full_name.strip(),
        password_hash=await run_in_threadpool(hash_secret, data.password),
        role=data.role,
        company_code=data.company_code.strip().lower() if data.company_code else None,
        external_user_id=data.external_user_id,
        status="active",
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("User %s (%s) created by %s", user.email, user.role, admin.subject)
    return _user_response(user)


@router.get("/users")
async def list_users(db: AsyncSession = Depends(get_db), admin: Principal = Depends(require_admin)):
    result = await db.execute(select(AppUser).order_by(AppUser.email))
    return {"users": [_user_response(u) for u in result.scalars().all()]}


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    user = await db.get(AppUser, user_id)
    if not user:
        raise not_found("user")

    changes = data.model_dump(exclude_unset=True)
    role = changes.get("role", user.role)
    company_code = changes.get("company_code", user.company_code)
    if role != "super_admin" and not (company_code or "").strip():
        raise invalid_request()

    if "password" in changes and data.password:
        user.password_hash = await run_in_threadpool(hash_secret, data.password)
    if data.full_name is not None:
        user.full_name = data.full_name.strip()
    if "company_code" in changes:
        user.company_code = company_code.strip().lower() if company_code else None
    if "external_user_id" in changes:
        user.external_user_id = data.external_user_id
    if data.status is not None:
        user.status = data.status
    user.role = role

    await db.flush()
    await db.refresh(user)
    logger.info("User %s updated by %s", user.email, admin.subject)
    return _user_response(user)


# --- Companies -------------------------------------------------------------

@router.post("/companies", status_code=201, response_model=CompanyResponse)
async def create_company(
    data: CompanyCreate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    code = data.code.strip().lower()
    name = data.name.strip()
    existing = await db.scalar(
        select(Company.id).where((Company.code == code) | (Company.name == name))
    )
    if existing:
        raise already_exists("company")

    company = Company(name=name, code=code, status="active")
    db.add(company)
    await db.flush()
    await db.refresh(company)
    return CompanyResponse.model_validate(company)


@router.get("/companies")
async def list_companies(db: AsyncSession = Depends(get_db), admin: Principal = Depends(require_admin)):
    result = await db.execute(select(Company).order_by(Company.code))
    return {"companies": [CompanyResponse.model_validate(c) for c in result.scalars().all()]}


# --- Submissions -----------------------------------------------------------

@router.get("/submissions/{submission_id}/derivation")
async def get_submission_derivation(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_super_admin),
):
    """Stored cross-center comparison and matcher trace for one submission."""
    return await submission_service.get_derivation(db, submission_id)
