import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    database_name: str
    port: int
    api_url: str
    whatsapp_phone: str
    local_store_path: str
    catalog_fallback_path: Optional[str]
    max_page_limit: int
    request_timeout: float
    admin_username: str
    admin_password: str
    environment: str


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME", "elsahaba"),
        port=int(os.getenv("PORT", 8000)),
        api_url=os.getenv("API_URL", "http://localhost:8000/api").rstrip("/"),
        whatsapp_phone=os.getenv("WHATSAPP_PHONE", "201149219332"),
        local_store_path=os.getenv("LOCAL_STORE_PATH", os.path.expanduser("~/.elsahaba/storage.json")),
        catalog_fallback_path=os.getenv("CATALOG_FALLBACK_PATH", "data/products.json"),
        max_page_limit=int(os.getenv("MAX_PAGE_LIMIT", 100)),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", 10)),
        admin_username=os.getenv("ADMIN_USERNAME", "admin"),
        admin_password=os.getenv("ADMIN_PASSWORD", "admin123"),
        environment=(os.getenv("ENVIRONMENT") or os.getenv("ENV") or "development").lower(),
    )
