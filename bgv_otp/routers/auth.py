from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bgv_otp.core.database import get_db
from bgv_otp.schemas.otp import RefreshSessionRequest, SessionPayload, SessionResponse
from bgv_otp.services.session_service import SessionConfig, SessionService, get_session_config

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/refresh", response_model=SessionResponse)
def refresh_session(
    body: RefreshSessionRequest,
    db: Session = Depends(get_db),
    session_config: SessionConfig = Depends(get_session_config),
):
    session = SessionService(db, session_config).refresh(body.refresh_token)
    return SessionResponse(
        user_id=session.user_id,
        role=session.role,
        email=session.email,
        session=SessionPayload(**session.to_dict()),
    )
