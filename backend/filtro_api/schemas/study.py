from pydantic import BaseModel
from datetime import datetime
from typing import Any, Optional


class StudyBase(BaseModel):
    protocolo: Optional[str] = None
    enfermedad: Optional[str] = None
    tipo_enfermedad: Optional[str] = None
    subtipo: Optional[str] = None
    fase_protocolo: Optional[float] = None
    estado_protocolo: Optional[str] = None
    centros_protocolo: list[str] = []
    metastasis: Optional[str] = None
    cirugia: Optional[str] = None
    tratamiento: Optional[str] = None
    quimioterapia: Optional[str] = None
    radioterapia: Optional[str] = None
    inmunoterapia: Optional[str] = None
    terapia_hormonal: Optional[str] = None
    terapia_dirigida: Optional[str] = None
    ecog_min: Optional[float] = None
    ecog_max: Optional[float] = None
    cod_clinical_trials_protocolo: Optional[str] = None
    url_clinical_trials_protocolo: Optional[str] = None
    extra: dict[str, Any] = {}


class StudyCreate(StudyBase):
    pass


class StudyUpdate(BaseModel):
    protocolo: Optional[str] = None
    enfermedad: Optional[str] = None
    tipo_enfermedad: Optional[str] = None
    subtipo: Optional[str] = None
    fase_protocolo: Optional[float] = None
    estado_protocolo: Optional[str] = None
    centros_protocolo: Optional[list[str]] = None
    metastasis: Optional[str] = None
    cirugia: Optional[str] = None
    tratamiento: Optional[str] = None
    quimioterapia: Optional[str] = None
    radioterapia: Optional[str] = None
    inmunoterapia: Optional[str] = None
    terapia_hormonal: Optional[str] = None
    terapia_dirigida: Optional[str] = None
    ecog_min: Optional[float] = None
    ecog_max: Optional[float] = None
    cod_clinical_trials_protocolo: Optional[str] = None
    url_clinical_trials_protocolo: Optional[str] = None
    extra: Optional[dict[str, Any]] = None


class StudyResponse(StudyBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StudyListResponse(BaseModel):
    studies: list[StudyResponse]
    total: int
    page: int
    page_size: int
