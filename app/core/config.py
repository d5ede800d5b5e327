from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import validator

class Settings(BaseSettings):
    # API Settings
    PROJECT_NAME: str = "Unlimited Options"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # Database Settings
    SQLALCHEMY_DATABASE_URI: str = "sqlite:///./unlimited_options.db"

    # JWT Settings
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    OAUTH_STATE_EXPIRE_MINUTES: int = 10

    # CORS Settings
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def assemble_cors_origins(cls, v: str | List[str]) -> List[str] | str:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Shopify Settings
    SHOPIFY_API_KEY: str = ""
    SHOPIFY_API_SECRET: str = ""
    SHOPIFY_SCOPES: str = "read_products,write_products,read_inventory,write_inventory,read_orders,write_draft_orders"
    SHOPIFY_API_VERSION: str = "2024-01"
    # Custom-app fallback when no OAuth session is stored for a shop
    SHOPIFY_SHOP_DOMAIN: str = ""
    SHOPIFY_ACCESS_TOKEN: str = ""
    SHOPIFY_LOCATION_ID: Optional[str] = None
    SHOPIFY_TIMEOUT: int = 30
    APP_URL: str = "http://localhost:8000"

    # Redis Settings
    REDIS_URL: str = ""
    CACHE_TTL: int = 1800

    # Variant engine
    RECOMMENDATION_LIMIT: int = 2
    VARIANT_BATCH_SIZE: int = 50
    MATERIALIZE_LIMIT: int = 100
    MATERIALIZE_CONCURRENCY: int = 4
    ERROR_DETAIL_LIMIT: int = 10

    LOG_LEVEL: str = "INFO"

    @property
    def DATABASE_URL(self) -> str:
        """Get full database URL."""
        return self.SQLALCHEMY_DATABASE_URI

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
