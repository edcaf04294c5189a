from sqlalchemy import Column, Integer, Float, String, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from filtro_api.database import Base


class IntakeSubmission(Base):
    """One webhook call. Written once, never updated."""

    __tablename__ = "intake_submissions"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(50), nullable=False, default="filtroclientes", index=True)
    source_user_id = Column(Float, index=True)
    source_user_ref = Column(String(200), index=True)
    company_codes = Column(JSON, default=list)
    raw_payload = Column(JSON, nullable=False)
    normalized = Column(JSON, nullable=False)
    match = Column(JSON)
    match_cross_center = Column(JSON)
    match_debug = Column(JSON)
    total_matches = Column(Integer, default=0, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
    companies = relationship(
        "SubmissionCompany", back_populates="submission", cascade="all, delete-orphan"
    )

    def to_document(self, include_private: bool = False) -> dict:
        """Public document shape. Cross-center and debug data only when ``include_private``."""
        doc = {
            "id": self.id,
            "source": self.source,
            "sourceUserId": self.source_user_id,
            "sourceUserRef": self.source_user_ref,
            "companyCodes": self.company_codes or [],
            "rawPayload": self.raw_payload,
            "normalized": self.normalized,
            "match": self.match,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_private:
            doc["matchCrossCenter"] = self.match_cross_center
            doc["matchDebug"] = self.match_debug
        return doc


class SubmissionCompany(Base):
    __tablename__ = "intake_submission_companies"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("intake_submissions.id"), nullable=False, index=True)
    company_code = Column(String(100), nullable=False, index=True)
    submission = relationship("IntakeSubmission", back_populates="companies")
