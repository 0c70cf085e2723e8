import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError
from sqlalchemy.orm import Session

from bgv_otp.core.config import Settings, settings
from bgv_otp.core.exceptions import (
    AccountInactive,
    AccountNotFound,
    InvalidSessionToken,
    SessionCreationFailed,
)
from bgv_otp.core.otp import clean_phone, mask_phone
from bgv_otp.core.security import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE, create_token, decode_token
from bgv_otp.models.profile import Profile
from bgv_otp.services.profile_service import get_profile_by_phone, get_profile_by_user_id

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class SessionConfig:
    secret_key: str
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 30

    @classmethod
    def from_settings(cls, config: Settings) -> "SessionConfig":
        return cls(
            secret_key=config.JWT_SECRET_KEY,
            access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES,
            refresh_token_expire_days=config.REFRESH_TOKEN_EXPIRE_DAYS,
        )


def get_session_config() -> SessionConfig:
    """Dependency to get session token configuration"""
    return SessionConfig.from_settings(settings)


@dataclass
class AuthSession:
    user_id: str
    role: str
    email: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    expires_in: int
    token_type: str = "bearer"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["expires_at"] = int(self.expires_at.timestamp())
        return data


class SessionService:
    """Turns a verified phone number into an access/refresh token pair"""

    def __init__(self, db: Session, config: SessionConfig):
        self.db = db
        self.config = config

    def establish(self, phone_number: str, user_id: Optional[str] = None) -> AuthSession:
        """
        Mint a session for the account that owns the verified phone.
        A user_id that does not hold this phone is treated as no account.
        """
        phone_number = clean_phone(phone_number)
        if user_id:
            profile = get_profile_by_user_id(self.db, user_id)
            if profile is not None and clean_phone(profile.phone) != phone_number:
                logger.warning("Session for %s refused: user %s holds another phone", mask_phone(phone_number), user_id)
                profile = None
        else:
            profile = get_profile_by_phone(self.db, phone_number, active_only=False)

        self._ensure_usable(profile)
        logger.info("Creating session for %s (%s)", profile.user_id, mask_phone(phone_number))
        return self._mint(profile)

    def refresh(self, refresh_token: str) -> AuthSession:
        try:
            payload = decode_token(refresh_token, self.config.secret_key, REFRESH_TOKEN_TYPE)
        except JWTError:
            raise InvalidSessionToken()

        profile = get_profile_by_user_id(self.db, payload["sub"])
        self._ensure_usable(profile)
        return self._mint(profile)

    @staticmethod
    def _ensure_usable(profile: Optional[Profile]) -> None:
        if profile is None:
            raise AccountNotFound()
        if not profile.is_active:
            raise AccountInactive()

    def _mint(self, profile: Profile) -> AuthSession:
        role = profile.role.value
        claims = {"role": role, "email": profile.email, "phone": profile.phone}
        access_delta = timedelta(minutes=self.config.access_token_expire_minutes)

        try:
            access_token, expires_at = create_token(
                profile.user_id, ACCESS_TOKEN_TYPE, access_delta, self.config.secret_key, claims
            )
            refresh_token, _ = create_token(
                profile.user_id,
                REFRESH_TOKEN_TYPE,
                timedelta(days=self.config.refresh_token_expire_days),
                self.config.secret_key,
            )
        except JWTError as e:
            logger.error("Session token signing failed for %s: %s", profile.user_id, e)
            raise SessionCreationFailed() from e

        return AuthSession(
            user_id=profile.user_id,
            role=role,
            email=profile.email,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            expires_in=int(access_delta.total_seconds()),
        )
