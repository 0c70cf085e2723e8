import enum

from sqlalchemy import Column, String, Boolean, DateTime, Enum
from bgv_otp.core.database import Base
from bgv_otp.core.timezone import get_ist_now


class AppRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    OPS_TEAM = "ops_team"
    VENDOR_TEAM = "vendor_team"
    QC_TEAM = "qc_team"
    VENDOR = "vendor"
    GIG_WORKER = "gig_worker"
    CLIENT = "client"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False, unique=True)
    email = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(20), index=True)
    role = Column(
        Enum(AppRole, name="app_role_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AppRole.GIG_WORKER,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=get_ist_now, nullable=False)
    updated_at = Column(DateTime, default=get_ist_now, onupdate=get_ist_now, nullable=False)
