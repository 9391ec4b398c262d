from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Credit Ledger API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Customer credit grouping and payment allocation for retail shops"

    # Ledger Store (system of record for credit sales and payments)
    LEDGER_API_BASE: str = "http://localhost:8000"
    LEDGER_API_TOKEN: str = ""
    LEDGER_TIMEOUT_SECONDS: float = 30.0
    DETAIL_FETCH_CONCURRENCY: int = 6

    # Allocation journal (MongoDB)
    JOURNAL_ENABLED: bool = False
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "credit_ledger"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
