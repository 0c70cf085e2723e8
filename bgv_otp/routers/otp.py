import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bgv_otp.core.config import settings
from bgv_otp.core.database import get_db
from bgv_otp.core.exceptions import OTPError, RateLimited
from bgv_otp.core.otp import clean_phone
from bgv_otp.core.redis import RateLimiter
from bgv_otp.core.sms import SMSGateway, get_sms_gateway
from bgv_otp.models.otp_token import OTPPurpose
from bgv_otp.schemas.otp import (
    LoginOTPRequest,
    OTPSentResponse,
    OTPStatusResponse,
    ResendOTPRequest,
    SendOTPRequest,
    SessionPayload,
    VerifyOTPRequest,
    VerifyOTPResponse,
)
from bgv_otp.services.otp_service import LoginVerification, OTPConfig, OTPService, get_otp_config
from bgv_otp.services.session_service import SessionConfig, SessionService, get_session_config

router = APIRouter(prefix="/api/v1/otp", tags=["otp"])

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@router.post("/send", response_model=OTPSentResponse, response_model_exclude_none=True)
def send_otp(
    payload: SendOTPRequest,
    db: Session = Depends(get_db),
    gateway: SMSGateway = Depends(get_sms_gateway),
    config: OTPConfig = Depends(get_otp_config),
):
    issued = OTPService(db, gateway, config).issue(
        payload.phone_number,
        payload.purpose,
        email=payload.email,
        user_id=payload.user_id,
        first_name=payload.first_name,
    )
    return OTPSentResponse(
        message="OTP sent successfully",
        expires_in_seconds=issued.expires_in_seconds,
    )


@router.post("/login", response_model=OTPSentResponse)
def login_with_otp(
    payload: LoginOTPRequest,
    db: Session = Depends(get_db),
    gateway: SMSGateway = Depends(get_sms_gateway),
    config: OTPConfig = Depends(get_otp_config),
):
    issued = OTPService(db, gateway, config).issue_login(payload.phone_number)
    return OTPSentResponse(
        message="OTP sent successfully",
        expires_in_seconds=issued.expires_in_seconds,
        expires_at=issued.expires_at.isoformat(),
    )


@router.post("/verify", response_model=VerifyOTPResponse, response_model_exclude_none=True)
def verify_otp(
    payload: VerifyOTPRequest,
    db: Session = Depends(get_db),
    config: OTPConfig = Depends(get_otp_config),
    session_config: SessionConfig = Depends(get_session_config),
):
    mobile_number = clean_phone(payload.phone_number)

    # Rate limit: max verification requests per phone per window
    is_allowed, _ = RateLimiter.check_rate_limit(
        identifier=mobile_number,
        action="verify_otp",
        max_requests=settings.VERIFY_RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.VERIFY_RATE_LIMIT_WINDOW_SECONDS,
    )

    if not is_allowed:
        retry_after = RateLimiter.get_remaining_time(mobile_number, "verify_otp")
        raise RateLimited(
            f"Too many verification attempts. Please try again in {retry_after} seconds.",
            retry_after=retry_after,
        )

    result = OTPService(db, config=config).verify(payload.phone_number, payload.otp_code, payload.purpose)

    if isinstance(result, LoginVerification):
        session = SessionService(db, session_config).establish(mobile_number, user_id=result.user_id)
        return VerifyOTPResponse(
            message="OTP verified successfully",
            user_id=session.user_id,
            role=session.role,
            email=session.email,
            session=SessionPayload(**session.to_dict()),
        )

    return VerifyOTPResponse(message="OTP verified successfully", user_id=result.user_id)


@router.post("/resend", response_model=OTPSentResponse, response_model_exclude_none=True)
def resend_otp(
    payload: ResendOTPRequest,
    db: Session = Depends(get_db),
    gateway: SMSGateway = Depends(get_sms_gateway),
    config: OTPConfig = Depends(get_otp_config),
):
    mobile_number = clean_phone(payload.phone_number)
    purpose = payload.purpose.value

    # Cooldown between resends lives here, not in the service
    is_allowed, retry_after = RateLimiter.acquire_cooldown(
        mobile_number, purpose, settings.RESEND_COOLDOWN_SECONDS
    )
    if not is_allowed:
        raise RateLimited(
            f"Please wait {retry_after} seconds before requesting a new OTP",
            retry_after=retry_after,
        )

    try:
        issued = OTPService(db, gateway, config).resend(payload.phone_number, payload.purpose, email=payload.email)
    except OTPError:
        RateLimiter.release_cooldown(mobile_number, purpose)
        raise

    return OTPSentResponse(
        message="OTP resent successfully",
        expires_in_seconds=issued.expires_in_seconds,
    )


@router.get("/status", response_model=OTPStatusResponse)
def otp_status(
    phone_number: str = Query(...),
    purpose: OTPPurpose = Query(...),
    db: Session = Depends(get_db),
    config: OTPConfig = Depends(get_otp_config),
):
    info = OTPService(db, config=config).status(phone_number, purpose)
    return OTPStatusResponse(
        active=info.active,
        expires_in_seconds=info.expires_in_seconds,
        attempts_remaining=info.attempts_remaining,
    )
