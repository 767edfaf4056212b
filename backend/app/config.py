from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str
    database_echo: bool = False
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_pool_timeout: float = 10.0

    # Bearer tokens are issued by the identity provider; we only verify them.
    secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 10080

    storage_dir: str = "storage"
    storage_public_url: str = "/files"
    max_upload_size: int = 50 * 1024 * 1024

    default_page_size: int = 20
    max_page_size: int = 100

    run_migrations: bool = True
    rate_limit_enabled: bool = True
    log_level: str = "INFO"

    cors_origins: str = "http://localhost,http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
