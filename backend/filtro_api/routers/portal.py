import json
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import String, select, func
from filtro_api.auth import PORTAL_SCOPE, Principal, RequireAuth
from filtro_api.database import get_db
from filtro_api.exceptions import ApiError, not_found
from filtro_api.models.clinical_study import ClinicalStudy
from filtro_api.schemas.study import StudyCreate, StudyListResponse, StudyResponse, StudyUpdate
from filtro_api.services.submission_service import can_see_private, submission_service

router = APIRouter()

portal_user = RequireAuth(scopes=[PORTAL_SCOPE])


async def require_super_admin(principal: Principal = Depends(portal_user)) -> Principal:
    if not can_see_private(principal):
        raise ApiError(403, "super_admin_only")
    return principal


async def _get_study(db: AsyncSession, study_id: int) -> ClinicalStudy:
    study = await db.get(ClinicalStudy, study_id)
    if not study:
        raise not_found("study")
    return study


# --- Submissions -----------------------------------------------------------

@router.get("/submissions")
async def list_submissions(
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    onlyWithMatch: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(portal_user),
):
    return await submission_service.list_visible(db, principal, limit, skip, onlyWithMatch)


@router.get("/submissions/{submission_id}")
async def get_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(portal_user),
):
    return await submission_service.get_visible(db, principal, submission_id)


# --- Studies ---------------------------------------------------------------

@router.get("/studies", response_model=StudyListResponse)
async def list_studies(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    estado: str = Query("", description="Filter by protocol status"),
    enfermedad: str = Query("", description="Filter by disease (contains)"),
    centro: str = Query("", description="Filter by center code"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(portal_user),
):
    query = select(ClinicalStudy)
    if estado:
        query = query.where(func.lower(ClinicalStudy.estado_protocolo) == estado.strip().lower())
    if enfermedad:
        query = query.where(ClinicalStudy.enfermedad.icontains(enfermedad, autoescape=True))
    if centro:
        # centros_protocolo is a JSON list; match the code as serialized (quoted, ASCII-escaped)
        needle = json.dumps(centro.strip().lower())
        query = query.where(ClinicalStudy.centros_protocolo.cast(String).icontains(needle, autoescape=True))

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0
    query = query.order_by(ClinicalStudy.id).offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)

    return StudyListResponse(
        studies=[StudyResponse.model_validate(s) for s in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/studies/{study_id}", response_model=StudyResponse)
async def get_study(
    study_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(portal_user),
):
    return StudyResponse.model_validate(await _get_study(db, study_id))


@router.post("/studies", response_model=StudyResponse, status_code=201)
async def create_study(
    data: StudyCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_super_admin),
):
    study = ClinicalStudy(**data.model_dump())
    db.add(study)
    await db.flush()
    await db.refresh(study)
    return StudyResponse.model_validate(study)


@router.patch("/studies/{study_id}", response_model=StudyResponse)
async def update_study(
    study_id: int,
    data: StudyUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_super_admin),
):
    study = await _get_study(db, study_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(study, key, value)
    await db.flush()
    await db.refresh(study)
    return StudyResponse.model_validate(study)


@router.delete("/studies/{study_id}")
async def delete_study(
    study_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_super_admin),
):
    study = await _get_study(db, study_id)
    await db.delete(study)
    await db.flush()
    return {"deleted": True, "id": study_id}
