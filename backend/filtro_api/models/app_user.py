from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from filtro_api.database import Base


class AppUser(Base):
    __tablename__ = "app_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(200), unique=True, nullable=False, index=True)  # always lowercased
    full_name = Column(String(200), nullable=False)
    password_hash = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, index=True)  # "super_admin" | "company_admin" | "company_user"
    company_code = Column(String(100), index=True)  # required unless super_admin
    external_user_id = Column(Integer, index=True)
    status = Column(String(20), default="active", nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_active(self) -> bool:
        return self.status == "active"
