from pydantic_settings import BaseSettings, NoDecode
from pydantic import field_validator
from typing import Annotated, Optional, List, Union


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./data/data.db"

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None

    # Contact view quota
    quota_backend: str = "sql"  # 'sql' or 'redis'
    daily_contact_limit: int = 50
    quota_key_ttl_hours: int = 48  # Redis keys only; SQL rows are kept

    # Pagination
    default_page_size: int = 10
    contacts_max_page_size: int = 50
    agencies_max_page_size: int = 100

    # Firebase
    firebase_project_id: str
    firebase_credentials_path: str

    # API
    api_v1_str: str = "/api/v1"

    # Environment
    environment: str = "development"
    debug: bool = True

    # CORS
    cors_origins: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from environment variable (comma-separated) or use default list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('quota_backend')
    @classmethod
    def validate_quota_backend(cls, v: str) -> str:
        backend = v.strip().lower()
        if backend not in ('sql', 'redis'):
            raise ValueError(f"quota_backend must be 'sql' or 'redis', got {v!r}")
        return backend

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from environment


settings = Settings()
