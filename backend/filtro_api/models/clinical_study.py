from sqlalchemy import Column, Integer, Float, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from filtro_api.database import Base

# Columns that make up the catalog document handed to the matcher.
STUDY_FIELDS = (
    "protocolo",
    "enfermedad",
    "tipo_enfermedad",
    "subtipo",
    "fase_protocolo",
    "estado_protocolo",
    "centros_protocolo",
    "metastasis",
    "cirugia",
    "tratamiento",
    "quimioterapia",
    "radioterapia",
    "inmunoterapia",
    "terapia_hormonal",
    "terapia_dirigida",
    "ecog_min",
    "ecog_max",
    "cod_clinical_trials_protocolo",
    "url_clinical_trials_protocolo",
)


class ClinicalStudy(Base):
    __tablename__ = "clinical_studies"

    id = Column(Integer, primary_key=True, index=True)
    protocolo = Column(String(100), index=True)
    enfermedad = Column(String(200), index=True)
    tipo_enfermedad = Column(String(200))
    subtipo = Column(String(200))
    fase_protocolo = Column(Float)
    estado_protocolo = Column(String(50), index=True)  # "Reclutando" | "Cerrado" | ...
    centros_protocolo = Column(JSON, default=list)

    # Yes/no rules: "si" | "no" | "no relevante"
    metastasis = Column(String(30))
    cirugia = Column(String(30))
    tratamiento = Column(String(30))

    # Per-treatment-type flags; "no" excludes patients who received it
    quimioterapia = Column(String(30))
    radioterapia = Column(String(30))
    inmunoterapia = Column(String(30))
    terapia_hormonal = Column(String(30))
    terapia_dirigida = Column(String(30))

    ecog_min = Column(Float)
    ecog_max = Column(Float)
    cod_clinical_trials_protocolo = Column(String(100))
    url_clinical_trials_protocolo = Column(Text)
    extra = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_document(self) -> dict:
        doc = dict(self.extra or {})
        for name in STUDY_FIELDS:
            doc[name] = getattr(self, name)
        doc["id"] = self.id
        return doc
