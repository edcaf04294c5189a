from typing import Any
from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from filtro_api.config import get_settings
from filtro_api.database import get_db
from filtro_api.services.credential_service import credential_service
from filtro_api.services.submission_service import submission_service

router = APIRouter()


@router.post("/filtroclientes", status_code=201)
async def ingest_filtroclientes(
    request: Request,
    body: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """
    Intake form webhook. Accepts a bearer token or inline ``client_id``/``client_secret``
    in the body. Responds with the normalized record and the current-center match;
    ``matchCrossCenter`` is only included for super_admin users.
    """
    settings = get_settings()
    principal = await credential_service.authorize_webhook(
        request, body, db, required_scope=settings.webhook_scope
    )
    return await submission_service.ingest(db, body, principal)
