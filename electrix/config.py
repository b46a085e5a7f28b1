from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # Core
    environment: str = Field(default="dev")
    app_name: str = Field(default="Electrix")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Backend service (Supabase)
    supabase_url: str = Field(default="http://localhost:54321", alias="SUPABASE_URL")
    supabase_anon_key: str = Field(default="", alias="SUPABASE_ANON_KEY")
    images_bucket: str = Field(default="housing-images", alias="IMAGES_BUCKET")

    # Login handles are RUTs mapped onto synthetic emails under this domain
    login_domain: str = Field(default="electrix.com", alias="LOGIN_DOMAIN")
    min_password_length: int = Field(default=6, alias="MIN_PASSWORD_LENGTH")

    # Browser session cookie
    session_secret: str = Field(default="change-me-electrix-dev-session-secret", alias="SESSION_SECRET")
    session_algorithm: str = Field(default="HS256")
    session_cookie_name: str = Field(default="electrix_session", alias="SESSION_COOKIE_NAME")
    session_ttl_seconds: int = Field(default=60 * 60 * 24 * 7, alias="SESSION_TTL")  # 7d
    session_cookie_secure: bool = Field(default=False, alias="SESSION_COOKIE_SECURE")
    # In-memory viewer state is dropped after this long without a request
    session_idle_seconds: int = Field(default=60 * 60 * 8, alias="SESSION_IDLE_TTL")  # 8h

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Rate limit
    rate_limit: str = Field(default="100/minute")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True


settings = Settings()
