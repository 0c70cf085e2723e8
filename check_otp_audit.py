"""
Show the OTP history (audit trail) for a set of phone numbers.
Codes are stored hashed and are never printed.

Usage:
    python check_otp_audit.py 9999999999 8888888888
"""

import sys

from bgv_otp.core.database import SessionLocal
from bgv_otp.core.otp import clean_phone, mask_phone
from bgv_otp.models.otp_token import OTPToken


def _fmt(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def run(numbers, db=None) -> dict:
    """Print token history per number and return it keyed by number."""
    own_session = db is None
    db = db or SessionLocal()
    history = {}
    try:
        for number in numbers:
            phone = clean_phone(number)
            tokens = (
                db.query(OTPToken)
                .filter(OTPToken.phone_number == phone)
                .order_by(OTPToken.created_at.desc())
                .all()
            )
            history[phone] = tokens

            if not tokens:
                print(f"  {mask_phone(phone)}: no OTPs issued")
                continue

            print(f"  {mask_phone(phone)}: {len(tokens)} OTP(s)")
            for token in tokens:
                print(
                    f"    {token.purpose.value:<14} {token.status.value:<10} "
                    f"attempts={token.attempt_count}/{token.max_attempts} "
                    f"created={_fmt(token.created_at)} expires={_fmt(token.expires_at)} "
                    f"verified={_fmt(token.verified_at)} superseded={_fmt(token.superseded_at)}"
                )
    finally:
        if own_session:
            db.close()

    return history


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python check_otp_audit.py <phone_number> [<phone_number> ...]")
        sys.exit(1)

    run(sys.argv[1:])
