from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Stockroom"
    DATABASE_URL: str = "sqlite:///./stockroom.db"

    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 72

    # Password reset codes
    RESET_CODE_TTL_MINUTES: int = 5

    # Transactional email (SendGrid v3 API)
    SENDGRID_API_KEY: str = ""
    SENDGRID_API_URL: str = "https://api.sendgrid.com/v3/mail/send"
    MAIL_FROM: str = ""

    # Webhook: list of callback URLs notified of product changes (comma-separated)
    WEBHOOK_URLS: str = ""

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
