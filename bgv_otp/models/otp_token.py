import enum

from sqlalchemy import Column, String, Integer, DateTime, Enum, Index, text
from bgv_otp.core.database import Base
from bgv_otp.core.timezone import get_ist_now


class OTPPurpose(str, enum.Enum):
    LOGIN = "login"
    ACCOUNT_SETUP = "account_setup"


class OTPStatus(str, enum.Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    SUPERSEDED = "superseded"


class OTPToken(Base):
    __tablename__ = "otp_tokens"
    __table_args__ = (
        # at most one active token per (phone, purpose)
        Index(
            "uq_otp_tokens_active_phone_purpose",
            "phone_number",
            "purpose",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_otp_tokens_phone_created", "phone_number", "created_at"),
    )

    id = Column(String(36), primary_key=True)
    phone_number = Column(String(20), nullable=False)
    otp_code = Column(String(64), nullable=False)
    purpose = Column(
        Enum(OTPPurpose, name="otp_purpose_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    user_id = Column(String(36), nullable=True)
    status = Column(
        Enum(OTPStatus, name="otp_status_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OTPStatus.ACTIVE,
    )
    expires_at = Column(DateTime, nullable=False)
    verified_at = Column(DateTime)
    superseded_at = Column(DateTime)
    attempt_count = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    created_at = Column(DateTime, default=get_ist_now, nullable=False)

    def is_expired(self, now) -> bool:
        return now >= self.expires_at

    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempt_count)
