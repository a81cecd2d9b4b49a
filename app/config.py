# config.py
import logging
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import ValidationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def patched_database_url(self):
        if self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql://", 1)
        return self.database_url

    @property
    def s3_configured(self) -> bool:
        return all([
            self.aws_access_key_id,
            self.aws_secret_access_key,
            self.aws_region,
            self.aws_bucket_name,
        ])

    database_url: str = "sqlite:///./adlume.db"

    # Identity provider (session JWT verification)
    clerk_jwt_key: str
    clerk_jwt_algorithm: str = "RS256"
    clerk_issuer: Optional[str] = None

    # AI providers
    openai_api_key: Optional[str] = None
    replicate_api_token: Optional[str] = None
    elevenlabs_api_key: Optional[str] = None

    # Object storage
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: Optional[str] = None
    aws_bucket_name: Optional[str] = None
    local_upload_dir: str = "public/uploads"

    redis_url: Optional[str] = None
    credit_cache_ttl_seconds: int = 300

    provider_max_retries: int = 3
    provider_retry_base_delay: float = 1.0
    enforce_credit_balance: bool = False

    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    log_level: str = "INFO"

    def validate(self):
        required_vars = ['clerk_jwt_key', 'database_url']
        for var in required_vars:
            if not getattr(self, var, None):
                raise ValueError(f"Missing required config: {var}")


try:
    settings = Settings()
    settings.validate()
except ValidationError as ve:
    logger.error(f"Config validation failed: {ve}")
    raise
