"""
OTP Service
Handles OTP issuance, verification and resend against the otp_tokens table
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bgv_otp.core.config import Settings, settings
from bgv_otp.core.exceptions import (
    AccountNotFound,
    AttemptsExhausted,
    DeliveryFailed,
    Expired,
    InvalidCode,
    RateLimited,
    UpstreamUnavailable,
    ValidationError,
)
from bgv_otp.core.otp import (
    build_login_message,
    build_setup_message,
    build_verification_url,
    clean_phone,
    generate_otp,
    hash_otp,
    is_valid_otp_format,
    is_valid_phone,
    mask_phone,
    otp_matches,
)
from bgv_otp.core.sms import SMSGateway, SMSMessage
from bgv_otp.core.timezone import get_ist_now
from bgv_otp.models.otp_token import OTPPurpose, OTPStatus, OTPToken
from bgv_otp.services.profile_service import (
    get_profile_by_email,
    get_profile_by_phone,
    get_profile_by_user_id,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class OTPConfig:
    expiry_minutes: int = 5
    login_expiry_minutes: int = 10
    max_attempts: int = 3
    rate_limit_max_requests: int = 3
    rate_limit_window_seconds: int = 300
    rate_limit_retry_after_seconds: int = 300
    verification_base_url: str = "http://localhost:3000"
    login_template_id: Optional[str] = None
    setup_template_id: Optional[str] = None

    @classmethod
    def from_settings(cls, config: Settings) -> "OTPConfig":
        return cls(
            expiry_minutes=config.OTP_EXPIRY_MINUTES,
            login_expiry_minutes=config.LOGIN_OTP_EXPIRY_MINUTES,
            max_attempts=config.OTP_MAX_ATTEMPTS,
            rate_limit_max_requests=config.OTP_RATE_LIMIT_MAX_REQUESTS,
            rate_limit_window_seconds=config.OTP_RATE_LIMIT_WINDOW_SECONDS,
            rate_limit_retry_after_seconds=config.OTP_RATE_LIMIT_RETRY_AFTER_SECONDS,
            verification_base_url=config.VERIFICATION_BASE_URL,
            login_template_id=config.SMS_LOGIN_TEMPLATE_ID,
            setup_template_id=config.SMS_SETUP_TEMPLATE_ID,
        )


def get_otp_config() -> OTPConfig:
    """Dependency to get OTP configuration"""
    return OTPConfig.from_settings(settings)


@dataclass
class IssuedOTP:
    token_id: str
    phone_number: str
    purpose: OTPPurpose
    user_id: Optional[str]
    expires_at: datetime
    expires_in_seconds: int


@dataclass
class LoginVerification:
    user_id: Optional[str]
    token_id: str
    purpose: OTPPurpose = OTPPurpose.LOGIN


@dataclass
class AccountSetupVerification:
    user_id: Optional[str]
    token_id: str
    purpose: OTPPurpose = OTPPurpose.ACCOUNT_SETUP


VerificationResult = Union[LoginVerification, AccountSetupVerification]


@dataclass
class OTPStatusInfo:
    active: bool
    expires_in_seconds: int = 0
    attempts_remaining: int = 0


def _login_sms(config: OTPConfig, otp: str, mobile_number: str, first_name: Optional[str]) -> SMSMessage:
    return SMSMessage(
        mobile_number=mobile_number,
        text=build_login_message(otp, first_name),
        template_id=config.login_template_id,
    )


def _setup_sms(config: OTPConfig, otp: str, mobile_number: str, first_name: Optional[str]) -> SMSMessage:
    url = build_verification_url(config.verification_base_url, mobile_number, OTPPurpose.ACCOUNT_SETUP.value)
    return SMSMessage(
        mobile_number=mobile_number,
        text=build_setup_message(otp, url),
        template_id=config.setup_template_id,
    )


SMS_BUILDERS = {
    OTPPurpose.LOGIN: _login_sms,
    OTPPurpose.ACCOUNT_SETUP: _setup_sms,
}

VERIFICATION_RESULTS = {
    OTPPurpose.LOGIN: LoginVerification,
    OTPPurpose.ACCOUNT_SETUP: AccountSetupVerification,
}


class OTPService:
    """Issue, verify and resend OTPs for a (phone, purpose) pair"""

    def __init__(
        self,
        db: Session,
        gateway: Optional[SMSGateway] = None,
        config: Optional[OTPConfig] = None,
        clock: Callable[[], datetime] = get_ist_now,
    ):
        self.db = db
        self.gateway = gateway
        self.config = config or OTPConfig()
        self.clock = clock

    # ------------------------------------------------------------------
    # Issuer
    # ------------------------------------------------------------------

    def issue(
        self,
        phone_number: str,
        purpose: Union[str, OTPPurpose],
        email: Optional[str] = None,
        user_id: Optional[str] = None,
        first_name: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
    ) -> IssuedOTP:
        """
        Generate a new OTP, supersede older active ones and send it.

        Raises:
            ValidationError, AccountNotFound, RateLimited, DeliveryFailed
        """
        mobile_number, otp_purpose = self._validate(phone_number, purpose)
        account_id, display_name = self._resolve_account(mobile_number, otp_purpose, email, user_id, first_name)
        self._enforce_issue_limit(mobile_number)
        return self._issue(mobile_number, otp_purpose, account_id, display_name, ttl_minutes)

    def issue_login(self, phone_number: str) -> IssuedOTP:
        """Login entry point: active account by phone, longer TTL."""
        mobile_number, otp_purpose = self._validate(phone_number, OTPPurpose.LOGIN)
        profile = get_profile_by_phone(self.db, mobile_number)
        if not profile:
            raise AccountNotFound("No active account found with this phone number")
        self._enforce_issue_limit(mobile_number)
        return self._issue(
            mobile_number,
            otp_purpose,
            profile.user_id,
            profile.first_name,
            self.config.login_expiry_minutes,
        )

    # ------------------------------------------------------------------
    # Resend Controller
    # ------------------------------------------------------------------

    def resend(self, phone_number: str, purpose: Union[str, OTPPurpose], email: Optional[str] = None) -> IssuedOTP:
        """
        Supersede outstanding OTPs and issue a fresh one.
        The issuance rate limit does not apply here.
        """
        mobile_number, otp_purpose = self._validate(phone_number, purpose)
        account_id, display_name = self._resolve_account(mobile_number, otp_purpose, email, None, None)
        return self._issue(mobile_number, otp_purpose, account_id, display_name, None)

    # ------------------------------------------------------------------
    # Verifier
    # ------------------------------------------------------------------

    def verify(self, phone_number: str, otp_code: str, purpose: Union[str, OTPPurpose]) -> VerificationResult:
        """
        Check a submitted code against the active token and consume it.

        Raises:
            ValidationError, InvalidCode, Expired, AttemptsExhausted
        """
        mobile_number, otp_purpose = self._validate(phone_number, purpose)
        otp_code = (otp_code or "").strip()
        if not otp_code:
            raise ValidationError()
        if not is_valid_otp_format(otp_code):
            raise ValidationError("OTP code must be 6 digits")

        now = self.clock()
        token = self._active_token(mobile_number, otp_purpose)

        if token is None:
            raise InvalidCode()

        if token.is_expired(now):
            raise Expired()

        if token.attempt_count >= token.max_attempts:
            raise AttemptsExhausted()

        if not otp_matches(otp_code, token.otp_code):
            attempts = self._register_failed_attempt(token)
            logger.info(
                "Wrong OTP for %s (%s), attempt %s/%s",
                mask_phone(mobile_number), otp_purpose.value, attempts, token.max_attempts,
            )
            if attempts >= token.max_attempts:
                raise AttemptsExhausted()
            raise InvalidCode()

        token_id, user_id = token.id, token.user_id

        # Conditional update decides the winner between concurrent submissions
        consumed = (
            self.db.query(OTPToken)
            .filter(
                OTPToken.id == token_id,
                OTPToken.status == OTPStatus.ACTIVE,
                OTPToken.attempt_count < OTPToken.max_attempts,
                OTPToken.expires_at > now,
            )
            .update(
                {OTPToken.status: OTPStatus.CONSUMED, OTPToken.verified_at: now},
                synchronize_session=False,
            )
        )
        self.db.commit()

        if consumed != 1:
            raise InvalidCode()

        logger.info("OTP verified for %s (%s)", mask_phone(mobile_number), otp_purpose.value)
        return VERIFICATION_RESULTS[otp_purpose](user_id=user_id, token_id=token_id)

    def status(self, phone_number: str, purpose: Union[str, OTPPurpose]) -> OTPStatusInfo:
        """Remaining time and attempts for the current OTP, if any"""
        mobile_number, otp_purpose = self._validate(phone_number, purpose)
        now = self.clock()
        token = self._active_token(mobile_number, otp_purpose)

        if token is None or token.is_expired(now):
            return OTPStatusInfo(active=False)

        return OTPStatusInfo(
            active=True,
            expires_in_seconds=int((token.expires_at - now).total_seconds()),
            attempts_remaining=token.attempts_remaining(),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(phone_number: Optional[str], purpose) -> tuple[str, OTPPurpose]:
        mobile_number = clean_phone(phone_number)
        if not mobile_number or not purpose:
            raise ValidationError()
        if not is_valid_phone(mobile_number):
            raise ValidationError("Invalid phone number")
        try:
            return mobile_number, OTPPurpose(purpose)
        except ValueError:
            raise ValidationError("Invalid purpose")

    def _resolve_account(
        self,
        mobile_number: str,
        purpose: OTPPurpose,
        email: Optional[str],
        user_id: Optional[str],
        first_name: Optional[str],
    ) -> tuple[Optional[str], Optional[str]]:
        """Returns (user_id, first_name) for the account the OTP belongs to"""
        if purpose == OTPPurpose.LOGIN:
            # login only ever belongs to the active account holding this phone
            profile = get_profile_by_phone(self.db, mobile_number)
            if profile is None:
                raise AccountNotFound()
            if user_id and user_id != profile.user_id:
                logger.warning("Login OTP for %s requested with a foreign user_id", mask_phone(mobile_number))
                raise AccountNotFound()
            if email and email.strip().lower() != (profile.email or "").lower():
                logger.warning("Login OTP for %s requested with a foreign email", mask_phone(mobile_number))
                raise AccountNotFound()
            return profile.user_id, first_name or profile.first_name

        profile = None
        if user_id:
            profile = get_profile_by_user_id(self.db, user_id)
        elif email:
            profile = get_profile_by_email(self.db, email)
            user_id = profile.user_id if profile else None

        if profile is None:
            profile = get_profile_by_phone(self.db, mobile_number)

        return user_id, first_name or (profile.first_name if profile else None)

    def _enforce_issue_limit(self, mobile_number: str) -> None:
        window_start = self.clock() - timedelta(seconds=self.config.rate_limit_window_seconds)
        recent = (
            self.db.query(func.count(OTPToken.id))
            .filter(
                OTPToken.phone_number == mobile_number,
                OTPToken.status != OTPStatus.CONSUMED,
                OTPToken.created_at >= window_start,
            )
            .scalar()
        )
        if recent >= self.config.rate_limit_max_requests:
            retry_after = self.config.rate_limit_retry_after_seconds
            logger.warning("OTP issuance rate limited for %s (%s recent)", mask_phone(mobile_number), recent)
            raise RateLimited(
                f"Too many OTP requests. Please try again in {retry_after} seconds.",
                retry_after=retry_after,
            )

    def _active_token(self, mobile_number: str, purpose: OTPPurpose) -> Optional[OTPToken]:
        return (
            self.db.query(OTPToken)
            .filter(
                OTPToken.phone_number == mobile_number,
                OTPToken.purpose == purpose,
                OTPToken.status == OTPStatus.ACTIVE,
            )
            .order_by(OTPToken.created_at.desc())
            .first()
        )

    def _register_failed_attempt(self, token: OTPToken) -> int:
        (
            self.db.query(OTPToken)
            .filter(
                OTPToken.id == token.id,
                OTPToken.status == OTPStatus.ACTIVE,
                OTPToken.attempt_count < OTPToken.max_attempts,
            )
            .update(
                {OTPToken.attempt_count: OTPToken.attempt_count + 1},
                synchronize_session=False,
            )
        )
        self.db.commit()
        self.db.refresh(token)
        return token.attempt_count

    def _issue(
        self,
        mobile_number: str,
        purpose: OTPPurpose,
        user_id: Optional[str],
        first_name: Optional[str],
        ttl_minutes: Optional[int],
    ) -> IssuedOTP:
        now = self.clock()
        ttl_minutes = ttl_minutes or self.config.expiry_minutes
        expires_at = now + timedelta(minutes=ttl_minutes)
        otp = generate_otp()
        token_id = str(uuid4())

        token = OTPToken(
            id=token_id,
            phone_number=mobile_number,
            otp_code=hash_otp(otp),
            purpose=purpose,
            user_id=user_id,
            status=OTPStatus.ACTIVE,
            expires_at=expires_at,
            attempt_count=0,
            max_attempts=self.config.max_attempts,
            created_at=now,
        )

        # Supersede and insert in one transaction
        try:
            superseded = (
                self.db.query(OTPToken)
                .filter(
                    OTPToken.phone_number == mobile_number,
                    OTPToken.purpose == purpose,
                    OTPToken.status == OTPStatus.ACTIVE,
                )
                .update(
                    {OTPToken.status: OTPStatus.SUPERSEDED, OTPToken.superseded_at: now},
                    synchronize_session=False,
                )
            )
            self.db.add(token)
            self.db.commit()
        except IntegrityError as e:
            # a concurrent request inserted its own active token first
            self.db.rollback()
            logger.warning("Concurrent OTP issuance for %s: %s", mask_phone(mobile_number), e.orig)
            raise UpstreamUnavailable("Another OTP request is in progress. Please try again.") from e

        logger.info(
            "OTP issued for %s (%s), superseded %s, expires %s",
            mask_phone(mobile_number), purpose.value, superseded, expires_at.isoformat(),
        )

        if self.gateway is None:
            raise DeliveryFailed("SMS service not configured")

        message = SMS_BUILDERS[purpose](self.config, otp, mobile_number, first_name)
        try:
            self.gateway.send(message)
        except DeliveryFailed:
            logger.warning("OTP delivery failed for %s, token %s kept for resend", mask_phone(mobile_number), token_id)
            raise

        return IssuedOTP(
            token_id=token_id,
            phone_number=mobile_number,
            purpose=purpose,
            user_id=user_id,
            expires_at=expires_at,
            expires_in_seconds=ttl_minutes * 60,
        )
