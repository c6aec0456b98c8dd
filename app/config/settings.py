from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./vm.db"

    # JWT
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Authentication
    disable_auth: bool = False  # Solo desarrollo: usa dev_user_id como actor
    dev_user_id: Optional[int] = None

    # Environment
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS
    allowed_origins: List[str] = ["*"]

    # Candidatos / paginación
    candidates_batch_size: int = 500
    default_page_size: int = 15
    max_page_size: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
