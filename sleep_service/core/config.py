import os
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()

class Settings:
    # Environment setting
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
    SERVICE_NAME = os.getenv("SERVICE_NAME", "sleep")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
    LOG_DIR = os.getenv("LOG_DIR", "logs")

    # db creds
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_NAME = os.getenv("DB_NAME", "soulence")
    DB_PORT = os.getenv("DB_PORT", "5432")

    # Pattern analysis
    PATTERN_LOOKBACK_DAYS = int(os.getenv("PATTERN_LOOKBACK_DAYS", "21"))

    # Background analysis queue
    ANALYSIS_QUEUE_SIZE = int(os.getenv("ANALYSIS_QUEUE_SIZE", "1000"))
    ANALYSIS_WORKERS = int(os.getenv("ANALYSIS_WORKERS", "2"))

    # Inbound cross-service event polling
    EVENT_POLL_INTERVAL_SECONDS = float(os.getenv("EVENT_POLL_INTERVAL_SECONDS", "30"))
    EVENT_POLL_BATCH_SIZE = int(os.getenv("EVENT_POLL_BATCH_SIZE", "50"))

    # Build URL with SSL requirement based on environment
    def _build_database_url(self):
        override = os.getenv("DATABASE_URL")
        if override:
            return override
        base_url = f"postgresql+asyncpg://{self.DB_USER}:{quote_plus(self.DB_PASSWORD)}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        if self.ENVIRONMENT == "development":
            return base_url
        else:
            return f"{base_url}?ssl=require"

    @property
    def DATABASE_URL(self):
        return self._build_database_url()

settings = Settings()
