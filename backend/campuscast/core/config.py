from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    database_url: str = "sqlite:///./campuscast.db"
    redis_url: Optional[str] = None  # in-process change feed when unset
    secret_key: str = "change-me"
    jwt_secret_key: Optional[str] = None
    admin_email: str = "admin@campuscast.local"
    admin_password: str = "admin"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    # Security
    access_token_expire_minutes: int = 60

    # Object storage (Supabase Storage compatible REST API)
    storage_url: Optional[str] = None
    storage_service_key: Optional[str] = None
    storage_bucket: str = "podcasts"
    signed_url_ttl_seconds: int = 3600

    class Config:
        env_file = ".env"
        case_sensitive = False

    def model_post_init(self, __context):
        if not self.jwt_secret_key:
            self.jwt_secret_key = self.secret_key


settings = Settings()
