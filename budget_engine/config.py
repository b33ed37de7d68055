from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel
import os

# Load .env automatically
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "development")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./budget.db")
    sql_echo: bool = _flag("SQL_ECHO", "false")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Single org used when a request carries no X-Org-Id header.
    default_org_id: str = os.getenv("DEFAULT_ORG_ID", "00000000-0000-0000-0000-000000000001")
    currency: str = os.getenv("CURRENCY", "CAD")
    seed_default_categories: bool = _flag("SEED_DEFAULT_CATEGORIES", "true")
    cors_origins: List[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]
    api_base_url: str = os.getenv("API_BASE_URL", "http://localhost:8000")


# Global settings instance
settings = Settings()
