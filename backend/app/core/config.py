from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Application
    app_name: str = "Adaptive Quiz Engine"
    debug: bool = False
    app_id: str = "default-app-id"

    # Supabase (empty means in-memory stores)
    supabase_url: str = ""
    supabase_service_key: str = ""

    # Question selection
    class_cache_ttl_seconds: float = 300.0
    default_bank_probability: float = 0.7
    default_daily_goal: int = 4
    # Ratio of the attempt budget after which acceptance is relaxed (None = off)
    acceptance_relax_after: Optional[float] = None

    # CORS
    frontend_url: str = "http://localhost:5173"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
