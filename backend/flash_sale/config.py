import tempfile
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # hold window shared by all of an actor's active reservations
    RESERVATION_TTL_SECONDS: int = 120

    SCHEDULER_ENABLED: bool = True
    EXPIRE_SWEEP_INTERVAL_SECONDS: int = 30
    EXPIRE_SWEEP_BATCH_SIZE: int = 500
    DEFERRED_EXPIRY_ENABLED: bool = True

    LOCK_TIMEOUT_SECONDS: float = 10.0
    LOCK_DIR: str = tempfile.gettempdir()

    RESET_DB: bool = False
    ADMIN_RESET_ENABLED: bool = False
    ADMIN_TOKEN: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
