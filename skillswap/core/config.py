from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
from dotenv import load_dotenv
import logging

# Load environment variables
load_dotenv()

class Settings(BaseSettings):
    app_name: str = "SkillSwap API"
    debug: bool = False
    environment: str = "development"
    api_v1_prefix: str = "/api/v1"
    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Storage backend: "memory" or "supabase"
    storage_backend: str = "memory"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    jwt_secret: str = "your-secret-key"
    jwt_algorithm: str = "HS256"

    # Swap lifecycle
    response_window_days: int = 7
    allow_cancel_after_accept: bool = True
    expiry_sweep_interval_seconds: int = 3600

    # Ratings
    rating_edit_window_hours: int = 24

    default_page_size: int = 20
    max_page_size: int = 100

    class Config:
        env_file = ".env"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the application process."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
