from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from bgv_otp.models.profile import Profile


def get_profile_by_user_id(db: Session, user_id: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.user_id == user_id).first()


def get_profile_by_email(db: Session, email: str) -> Optional[Profile]:
    return db.query(Profile).filter(func.lower(Profile.email) == email.strip().lower()).first()


def get_profile_by_phone(db: Session, mobile_number: str, active_only: bool = True) -> Optional[Profile]:
    query = db.query(Profile).filter(Profile.phone == mobile_number)
    if active_only:
        query = query.filter(Profile.is_active == True)  # noqa: E712
    # an active profile wins over a disabled one sharing the number
    return query.order_by(Profile.is_active.desc(), Profile.created_at.desc()).first()
