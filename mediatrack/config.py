from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Anime & Manga Tracker"
    secret_key: str = "dev-secret-change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    database_url: str = "sqlite:///./app.db"

    # Public URL of the frontend; used to build links in outgoing emails
    app_url: str = "http://127.0.0.1:8000"
    require_email_verification: bool = True
    verification_token_ttl_hours: int = 24
    reset_token_ttl_minutes: int = 60

    # Jikan (MyAnimeList mirror) catalog
    catalog_base_url: str = "https://api.jikan.moe/v4"
    catalog_timeout: float = 10.0

    # Resend email delivery; when unset, emails are written to the log instead
    resend_api_key: str | None = None
    email_from: str = "onboarding@resend.dev"

    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
