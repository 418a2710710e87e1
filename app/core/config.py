from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str

    # If DEV and you hit SSL cert issues on Windows, set DB_SSL_VERIFY=false in .env
    DB_SSL_VERIFY: bool = True
    ENV: str = "dev"  # "dev" or "prod"

    # Upper bound for a single round trip to the hosted database
    STORE_TIMEOUT_SECONDS: float = 10.0

    LOG_LEVEL: str = "INFO"

    # Used only when a request omits X-Admin-Email in dev mode
    DEFAULT_ADMIN_EMAIL: str | None = None

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
