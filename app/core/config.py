from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'ledger_user'
    POSTGRES_PASSWORD: str = 'ledger_pass'
    POSTGRES_DB: str = 'ledger_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    # Full SQLAlchemy URL, overrides the POSTGRES_* values (tests use SQLite)
    DATABASE_URL: Optional[str] = None

    # Redis settings (Celery broker)
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Ledger settings
    # Money is stored with two decimals, so half a cent separates "equal" from "different"
    FINANCIAL_TOLERANCE: Decimal = Decimal("0.005")
    DEFAULT_INVOICE_PREFIX: str = "INV"
    DEFAULT_RECEIPT_PREFIX: str = "REC"
    DOCUMENT_NUMBER_PADDING: int = 5
    TRANSACTION_MAX_RETRIES: int = 3
    OVERDUE_SWEEP_INTERVAL: float = 3600.0

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("FINANCIAL_TOLERANCE")
    @classmethod
    def validate_tolerance(cls, v):
        if not v.is_finite() or v <= 0:
            raise ValueError("FINANCIAL_TOLERANCE debe ser un monto positivo")
        return v

    @field_validator("DEFAULT_INVOICE_PREFIX", "DEFAULT_RECEIPT_PREFIX")
    @classmethod
    def normalize_prefix(cls, v):
        return v.strip().upper()

settings = Settings()
