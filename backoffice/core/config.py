from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Retail Back-Office Ledger Verification"
    LOG_LEVEL: str = "INFO"

    # External ledger (NocoDB) connection, one per deployment
    LEDGER_BASE_URL: str = ""
    LEDGER_API_TOKEN: str = ""
    LEDGER_PROJECT_ID: str = ""
    LEDGER_TIMEOUT_SECONDS: float = 10.0

    # Verification
    VERIFICATION_CACHE_TTL_SECONDS: int = 3600
    REFERENCE_MAX_LENGTH: int = 100
    BATCH_VERIFICATION_DELAY_SECONDS: float = 0.5

    class Config:
        case_sensitive = True

settings = Settings()
