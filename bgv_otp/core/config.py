from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    APP_ENV: str = "development"
    DATABASE_URL: str = "sqlite:///./bgv_otp.db"

    # Comma-separated list of allowed browser origins, "*" for any
    CORS_ORIGINS: str = "*"

    # OTP lifecycle
    OTP_EXPIRY_MINUTES: int = 5
    LOGIN_OTP_EXPIRY_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 3

    # Issuance limit: max unconsumed OTPs per phone in the trailing window
    OTP_RATE_LIMIT_MAX_REQUESTS: int = 3
    OTP_RATE_LIMIT_WINDOW_SECONDS: int = 300
    OTP_RATE_LIMIT_RETRY_AFTER_SECONDS: int = 300

    # Enforced at the HTTP boundary through Redis
    RESEND_COOLDOWN_SECONDS: int = 60
    VERIFY_RATE_LIMIT_MAX_REQUESTS: int = 10
    VERIFY_RATE_LIMIT_WINDOW_SECONDS: int = 300

    # SMS gateway ("awign" or "console")
    SMS_PROVIDER: str = "awign"
    SMS_API_URL: str = "https://core-api.awign.com/api/v1/sms/to_number"
    SMS_ACCESS_TOKEN: Optional[str] = None
    SMS_CLIENT_ID: Optional[str] = None
    SMS_UID: Optional[str] = None
    SMS_SENDER_ID: str = "IAWIGN"
    SMS_CHANNEL: str = "telspiel"
    SMS_LOGIN_TEMPLATE_ID: str = "1107176258859911807"
    SMS_SETUP_TEMPLATE_ID: str = "1107160412653314461"
    SMS_TIMEOUT_SECONDS: float = 10.0

    # Deep link sent with account_setup codes
    VERIFICATION_BASE_URL: str = "http://localhost:3000"

    # Session tokens
    JWT_SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # Redis Configuration (optional, rate limiting fails open without it)
    REDIS_HOST: Optional[str] = None
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_DB: int = 0

    class Config:
        env_file = ".env"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

settings = Settings()
