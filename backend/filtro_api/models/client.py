from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from filtro_api.database import Base


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(100), unique=True, nullable=False, index=True)
    secret_hash = Column(String(100), nullable=False)
    company_codes = Column(JSON, default=list)
    scopes = Column(JSON, default=list)
    permissions = Column(JSON, default=list)  # [{"method": "POST", "path": "^/webhooks/.*"}]
    is_admin = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default="active", nullable=False)  # "active" | "disabled"
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_active(self) -> bool:
        return self.status == "active"
