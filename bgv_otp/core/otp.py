import hashlib
import hmac
import re
import secrets
from typing import Optional

PHONE_PATTERN = re.compile(r"^\+?\d{10,15}$")
OTP_PATTERN = re.compile(r"^\d{6}$")
INDIAN_MOBILE_PATTERN = re.compile(r"^[6-9]\d{9}$")


def generate_otp() -> str:
    return str(secrets.randbelow(900000) + 100000)


def hash_otp(otp: str) -> str:
    return hashlib.sha256(otp.encode()).hexdigest()


def otp_matches(otp: str, otp_hash: str) -> bool:
    return hmac.compare_digest(hash_otp(otp), otp_hash)


def is_valid_otp_format(otp: str) -> bool:
    return bool(OTP_PATTERN.match(otp or ""))


def clean_phone(mobile_number: Optional[str]) -> str:
    """Strip separators so the same number always maps to the same stored key."""
    if not mobile_number:
        return ""
    return re.sub(r"[\s\-().]", "", mobile_number.strip())


def is_valid_phone(mobile_number: str) -> bool:
    return bool(PHONE_PATTERN.match(mobile_number or ""))


def format_phone_e164(mobile_number: str) -> str:
    """Ensure phone number has +91 prefix for the SMS gateway."""
    phone = clean_phone(mobile_number)
    if INDIAN_MOBILE_PATTERN.match(phone):
        return f"+91{phone}"
    if not phone.startswith("+"):
        phone = phone[2:] if phone.startswith("91") else phone
        return f"+91{phone}"
    return phone


def mask_phone(mobile_number: str, visible_digits: int = 4) -> str:
    phone = clean_phone(mobile_number)
    if len(phone) <= visible_digits:
        return phone
    return "*" * (len(phone) - visible_digits) + phone[-visible_digits:]


def build_login_message(otp: str, first_name: Optional[str] = None) -> str:
    display_name = first_name or "User"
    return f"Hi {display_name}\nYour OTP to login to the BGV Portal is {otp}\n\nRegards -Awign"


def build_verification_url(base_url: str, mobile_number: str, purpose: str) -> str:
    return f"{base_url.rstrip('/')}/verify-phone/{mobile_number}?purpose={purpose}"


def build_setup_message(otp: str, verification_url: str) -> str:
    return f"{otp} is the OTP for your verification.\n\nVerify here: {verification_url}\n\nCheers!\nTeam AWIGN"
