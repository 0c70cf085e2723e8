from typing import Optional

from pydantic import BaseModel

from bgv_otp.models.otp_token import OTPPurpose


class SendOTPRequest(BaseModel):
    phone_number: str
    purpose: OTPPurpose
    email: Optional[str] = None
    user_id: Optional[str] = None
    first_name: Optional[str] = None


class ResendOTPRequest(BaseModel):
    phone_number: str
    purpose: OTPPurpose
    email: Optional[str] = None


class VerifyOTPRequest(BaseModel):
    phone_number: str
    otp_code: str
    purpose: OTPPurpose


class LoginOTPRequest(BaseModel):
    phone_number: str


class RefreshSessionRequest(BaseModel):
    refresh_token: str


class OTPSentResponse(BaseModel):
    success: bool = True
    message: str
    expires_in_seconds: int
    expires_at: Optional[str] = None


class SessionPayload(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    expires_at: int


class VerifyOTPResponse(BaseModel):
    success: bool = True
    message: str
    user_id: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    session: Optional[SessionPayload] = None


class OTPStatusResponse(BaseModel):
    success: bool = True
    active: bool
    expires_in_seconds: int
    attempts_remaining: int


class SessionResponse(BaseModel):
    success: bool = True
    user_id: str
    role: str
    email: str
    session: SessionPayload
