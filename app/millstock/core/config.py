from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "MILLSTOCK"

    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, gt=0)

    DATABASE_URL: str = "sqlite+pysqlite:///./millstock.db"
    DB_BUSY_TIMEOUT_MS: int = Field(default=5000, ge=0)
    TRANSACTION_TIMEOUT_MS: int = Field(default=15000, ge=0)
    TRANSACTION_MAX_RETRIES: int = Field(default=3, ge=0)

    TRANSFER_NUMBER_PREFIX: str = Field(default="TRF", pattern=r"^[A-Z]+$")
    STOCK_ADJUSTMENTS_LIST_LIMIT: int = Field(default=100, gt=0)

    SUPERADMIN_USERNAME: str = "superadmin"
    SUPERADMIN_EMAIL: str = "superadmin@example.com"
    SUPERADMIN_PASSWORD: str = "change-me"
    SEED_MATERIAL_TYPES: list[str] = Field(default_factory=list)

    METRICS_ENABLED: bool = True
    OPS_ENABLE_INTEGRITY_SCAN: bool = True


settings = Settings()
